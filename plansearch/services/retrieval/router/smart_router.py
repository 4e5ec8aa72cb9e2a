"""
Smart Query Router

Top-level entry point for plan-set questions. Coordinates:
1. Query classification
2. Visual-inspection delegation for component counting and takeoffs
3. Direct structured lookup for quantity questions
4. Complete-system-data retrieval or station-aware vector search
5. Context assembly and fire-and-forget analytics

Each strategy converts its own failures into an error note, so the router
always returns best-effort context.
"""

import time
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.schemas.query import (
    CompleteSystemData,
    DirectLookupResult,
    EnhancedSearchResult,
    QueryClassification,
    QueryType,
    RoutingMetadata,
    RoutingMethod,
    RoutingOptions,
    RoutingResult,
)
from plansearch.services.retrieval.complete_data.system_data_service import SystemDataService
from plansearch.services.retrieval.context.context_builder import build_context, dedupe_vector_results
from plansearch.services.retrieval.lookup.direct_lookup import DirectLookupService
from plansearch.services.retrieval.query_understanding.query_classifier import QueryClassifier
from plansearch.services.retrieval.query_understanding.visual_analysis import build_visual_request
from plansearch.services.retrieval.router.analytics_logger import QueryAnalyticsEvent, QueryAnalyticsLogger
from plansearch.services.retrieval.vector.station_aware_search import StationAwareSearchService
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

FALLBACK_CONFIDENCE = 0.3


class SmartRouter:
    """Chooses and runs retrieval strategies for one question at a time."""

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[EngineConfig] = None,
        classifier: Optional[QueryClassifier] = None,
        analytics: Optional[QueryAnalyticsLogger] = None,
    ):
        self.config = config or settings.engine_config()
        self.classifier = classifier or QueryClassifier()
        self.direct_lookup = DirectLookupService(session, self.config)
        self.vector_search = StationAwareSearchService(session, self.config)
        self.system_data = SystemDataService(session, self.config)
        self.analytics = analytics or QueryAnalyticsLogger()

    async def route(
        self,
        query: str,
        project_id: UUID,
        options: Optional[RoutingOptions] = None,
    ) -> RoutingResult:
        """
        Route a question and assemble its retrieval context.

        Args:
            query: Question text
            project_id: Project scope
            options: Per-call limits and feature switches

        Returns:
            RoutingResult; ``success`` is False only when routing itself failed
        """
        options = options or RoutingOptions()
        start_time = time.time()

        try:
            result = await self._route(query, project_id, options)
        except Exception as e:
            LOGGER.error(
                "Routing failed, returning fallback result",
                extra={"project_id": str(project_id), "error": str(e)},
                exc_info=True,
            )
            result = RoutingResult(
                classification=QueryClassification(original_query=query or "", confidence=FALLBACK_CONFIDENCE),
                method=RoutingMethod.VECTOR_ONLY,
                context="No relevant context found.",
                metadata=RoutingMetadata(errors=[f"routing failed: {e}"]),
                success=False,
            )

        result.metadata.latency_ms = int((time.time() - start_time) * 1000)

        LOGGER.info(
            "Query routed",
            extra={
                "query_type": result.classification.type.value,
                "method": result.method.value,
                "strategies": result.metadata.strategies,
                "vector_results": result.metadata.vector_result_count,
                "complete_data_chunks": result.metadata.complete_data_chunks,
                "latency_ms": result.metadata.latency_ms,
                "errors": len(result.metadata.errors),
            },
        )

        self._emit_analytics(query, project_id, result)
        return result

    async def _route(self, query: str, project_id: UUID, options: RoutingOptions) -> RoutingResult:
        classification = self.classifier.classify(query)
        metadata = RoutingMetadata()

        # Project overview comes straight from structured records
        if classification.type == QueryType.PROJECT_SUMMARY:
            metadata.strategies.append("project_summary")
            summary = await self.direct_lookup.get_project_summary(project_id)
            self._note_error(metadata, summary.error)
            if summary.found:
                metadata.direct_lookup_count = len(summary.records)
                return RoutingResult(
                    classification=classification,
                    method=RoutingMethod.DIRECT_ONLY,
                    context=build_context(direct_lookup=summary),
                    direct_lookup=summary,
                    metadata=metadata,
                )

        if options.enable_visual_analysis:
            visual_request = build_visual_request(query, classification)
            if visual_request:
                metadata.strategies.append("visual_analysis")
                return RoutingResult(
                    classification=classification,
                    method=RoutingMethod.VISUAL_ANALYSIS,
                    context=build_context(visual_request=visual_request),
                    visual_analysis=visual_request,
                    metadata=metadata,
                )

        direct: Optional[DirectLookupResult] = None
        if classification.type == QueryType.QUANTITY or classification.needs_direct_lookup:
            metadata.strategies.append("direct_lookup")
            direct = await self.direct_lookup.lookup(project_id, classification)
            self._note_error(metadata, direct.error)
            if direct.found and direct.confidence < self.config.confidence.minimum_acceptable:
                LOGGER.info(
                    "Direct lookup below confidence floor",
                    extra={"confidence": direct.confidence, "item": direct.item_name},
                )
                direct = direct.model_copy(update={"found": False})
            if direct.found:
                metadata.direct_lookup_count = max(1, len(direct.records))

        complete: Optional[CompleteSystemData] = None
        if options.enable_complete_data and classification.needs_complete_data:
            complete = await self._complete_data(project_id, classification, metadata)

        vector_results: List[EnhancedSearchResult] = []
        if complete is None:
            vector_results = await self._vector_search(query, project_id, classification, options, metadata)

        method = self._select_method(direct, complete, vector_results)
        if complete is not None:
            vector_results = dedupe_vector_results(
                vector_results, exclude_chunk_ids={c["chunk_id"] for c in complete.chunks}
            )

        return RoutingResult(
            classification=classification,
            method=method,
            context=build_context(
                direct_lookup=direct if direct and direct.found else None,
                vector_results=vector_results,
                complete_data=complete,
            ),
            direct_lookup=direct,
            vector_results=vector_results,
            complete_data=complete,
            metadata=metadata,
        )

    async def _complete_data(
        self,
        project_id: UUID,
        classification: QueryClassification,
        metadata: RoutingMetadata,
    ) -> Optional[CompleteSystemData]:
        """Complete system data, or None when vector search should run instead."""
        system_name = classification.search_hints.system_name
        if not system_name:
            system_name = await self.system_data.auto_detect_system(project_id, classification.item_name)
        metadata.detected_system = system_name
        metadata.strategies.append("complete_data")

        complete = await self.system_data.get_complete_system_data(project_id, system_name)
        if complete.error:
            self._note_error(metadata, complete.error)
            return None
        if not complete.chunks:
            LOGGER.info("Complete data empty, falling back to vector search", extra={"system_name": system_name})
            return None

        metadata.complete_data_chunks = complete.total_chunks
        return complete

    async def _vector_search(
        self,
        query: str,
        project_id: UUID,
        classification: QueryClassification,
        options: RoutingOptions,
        metadata: RoutingMetadata,
    ) -> List[EnhancedSearchResult]:
        metadata.strategies.append("vector_search")
        response = await self.vector_search.search(
            query=query,
            project_id=project_id,
            classification=classification,
            limit=options.max_results,
            similarity_threshold=options.similarity_threshold,
            document_id=options.document_id,
        )
        self._note_error(metadata, response.error)
        results = dedupe_vector_results(response.results)
        metadata.vector_result_count = len(results)
        return results

    @staticmethod
    def _select_method(
        direct: Optional[DirectLookupResult],
        complete: Optional[CompleteSystemData],
        vector_results: List[EnhancedSearchResult],
    ) -> RoutingMethod:
        if complete is not None:
            return RoutingMethod.COMPLETE_DATA
        if direct is not None and direct.found:
            return RoutingMethod.HYBRID if vector_results else RoutingMethod.DIRECT_ONLY
        return RoutingMethod.VECTOR_ONLY

    @staticmethod
    def _note_error(metadata: RoutingMetadata, error: Optional[str]) -> None:
        if error:
            metadata.errors.append(error)

    def _emit_analytics(self, query: str, project_id: UUID, result: RoutingResult) -> None:
        try:
            self.analytics.emit(
                QueryAnalyticsEvent(
                    project_id=project_id,
                    query_text=query or "",
                    query_type=result.classification.type.value,
                    response_method=result.method.value,
                    success=result.success,
                    latency_ms=result.metadata.latency_ms,
                    vector_search_results=result.metadata.vector_result_count,
                    direct_lookup_results=result.metadata.direct_lookup_count,
                    vision_calls_made=1 if result.visual_analysis else 0,
                    query_classification=result.classification.model_dump(mode="json"),
                    extra_metadata={
                        "strategies": result.metadata.strategies,
                        "errors": result.metadata.errors,
                        "detected_system": result.metadata.detected_system,
                        "complete_data_chunks": result.metadata.complete_data_chunks,
                    },
                )
            )
        except Exception as e:
            LOGGER.warning(f"Analytics emit failed: {e}")

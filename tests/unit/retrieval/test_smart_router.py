"""Tests for the smart query router.

Tests:
- Strategy selection per query type
- Visual delegation skipping indexed retrieval
- Complete-data retrieval replacing vector search, with fallback
- Confidence floor on direct lookups
- Fallback result on unexpected failure
- Analytics emission
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from plansearch.schemas.query import (
    CompleteSystemData,
    DirectLookupResult,
    EnhancedSearchResult,
    QueryType,
    RoutingMethod,
    RoutingOptions,
    VectorSearchResponse,
)
from plansearch.services.retrieval.router.analytics_logger import QueryAnalyticsEvent
from plansearch.services.retrieval.router.smart_router import SmartRouter


def vector_hit(score=0.7):
    return EnhancedSearchResult(
        chunk_id=uuid4(),
        document_id=uuid4(),
        content="WATER LINE 'A' 12-IN DI PIPE",
        sheet_number="CU102",
        base_similarity=score,
        boosted_score=score,
    )


@pytest.fixture
def analytics():
    return MagicMock()


@pytest.fixture
def router(mock_session, engine_config, analytics):
    router = SmartRouter(mock_session, engine_config, analytics=analytics)
    router.direct_lookup = MagicMock()
    router.direct_lookup.lookup = AsyncMock(return_value=DirectLookupResult(found=False))
    router.direct_lookup.get_project_summary = AsyncMock(return_value=DirectLookupResult(found=False))
    router.vector_search = MagicMock()
    router.vector_search.search = AsyncMock(return_value=VectorSearchResponse())
    router.system_data = MagicMock()
    router.system_data.get_complete_system_data = AsyncMock(return_value=CompleteSystemData())
    router.system_data.auto_detect_system = AsyncMock(return_value=None)
    return router


class TestSmartRouter:
    """Test SmartRouter.route."""

    @pytest.mark.asyncio
    async def test_general_query_uses_vector_search(self, router, project_id):
        router.vector_search.search.return_value = VectorSearchResponse(results=[vector_hit()], candidates_considered=1)

        result = await router.route("Tell me something nice", project_id)

        assert result.success is True
        assert result.method == RoutingMethod.VECTOR_ONLY
        assert result.metadata.strategies == ["vector_search"]
        assert result.metadata.vector_result_count == 1
        assert "## Relevant Plan Text" in result.context
        router.direct_lookup.lookup.assert_not_called()

    @pytest.mark.asyncio
    async def test_length_question_uses_complete_data_instead_of_vector(self, router, project_id):
        """Test that complete system data replaces vector search when it has chunks."""
        router.direct_lookup.lookup.return_value = DirectLookupResult(
            found=True, method="termination_points", answer="WATER LINE 'A': 3,212.34 LF", confidence=0.9,
        )
        router.system_data.get_complete_system_data.return_value = CompleteSystemData(
            system_name="Water Line A",
            chunks=[{"chunk_id": str(uuid4()), "content": "WATER LINE 'A' STA 13+00", "sheet_number": "CU102"}],
            sheets=["CU102"],
            total_chunks=1,
        )

        result = await router.route("What is the total length of waterline A?", project_id)

        assert result.classification.type == QueryType.QUANTITY
        assert result.method == RoutingMethod.COMPLETE_DATA
        assert result.metadata.strategies == ["direct_lookup", "complete_data"]
        assert result.metadata.detected_system == "Water Line A"
        assert result.metadata.complete_data_chunks == 1
        assert "## Structured Data" in result.context
        assert "## Complete Data: Water Line A" in result.context
        router.vector_search.search.assert_not_called()
        router.system_data.auto_detect_system.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_complete_data_falls_back_to_vector(self, router, project_id):
        router.direct_lookup.lookup.return_value = DirectLookupResult(found=True, answer="3,212.34 LF", confidence=0.9)
        router.vector_search.search.return_value = VectorSearchResponse(results=[vector_hit()])

        result = await router.route("What is the total length of waterline A?", project_id)

        assert result.method == RoutingMethod.HYBRID
        assert result.complete_data is None
        assert result.metadata.strategies == ["direct_lookup", "complete_data", "vector_search"]

    @pytest.mark.asyncio
    async def test_component_count_is_delegated_to_visual_inspection(self, router, project_id):
        """Test that visual queries skip every indexed strategy."""
        result = await router.route("How many 12-inch gate valves are on sheet CU107?", project_id)

        assert result.method == RoutingMethod.VISUAL_ANALYSIS
        assert result.visual_analysis.component_type == "gate valve"
        assert result.visual_analysis.sheet_number == "CU107"
        assert "## Visual Inspection Required" in result.context
        router.direct_lookup.lookup.assert_not_called()
        router.vector_search.search.assert_not_called()
        router.system_data.get_complete_system_data.assert_not_called()

    @pytest.mark.asyncio
    async def test_visual_analysis_can_be_disabled(self, router, project_id):
        options = RoutingOptions(enable_visual_analysis=False, enable_complete_data=False, max_results=5)

        result = await router.route("How many 12-inch gate valves are on sheet CU107?", project_id, options)

        assert result.visual_analysis is None
        router.direct_lookup.lookup.assert_awaited_once()
        router.system_data.get_complete_system_data.assert_not_called()
        assert router.vector_search.search.call_args.kwargs["limit"] == 5

    @pytest.mark.asyncio
    async def test_low_confidence_direct_lookup_is_discarded(self, router, project_id):
        router.direct_lookup.lookup.return_value = DirectLookupResult(
            found=True, method="quantities", answer="1 EA", confidence=0.3, item_name="plug",
        )
        options = RoutingOptions(enable_complete_data=False)

        result = await router.route("What is the total length of waterline A?", project_id, options)

        assert result.direct_lookup.found is False
        assert result.method == RoutingMethod.VECTOR_ONLY
        assert "## Structured Data" not in result.context

    @pytest.mark.asyncio
    async def test_project_summary_is_direct_only(self, router, project_id):
        router.direct_lookup.get_project_summary.return_value = DirectLookupResult(
            found=True, method="project_summary", answer="- fitting: 3 items", confidence=0.9,
            records=[{"item_type": "fitting"}],
        )

        result = await router.route("Give me a project overview", project_id)

        assert result.method == RoutingMethod.DIRECT_ONLY
        assert result.metadata.strategies == ["project_summary"]
        assert result.metadata.direct_lookup_count == 1
        router.vector_search.search.assert_not_called()

    @pytest.mark.asyncio
    async def test_strategy_errors_are_collected(self, router, project_id):
        router.vector_search.search.return_value = VectorSearchResponse(error="vector search failed: timeout")

        result = await router.route("Tell me something nice", project_id)

        assert result.success is True
        assert result.metadata.errors == ["vector search failed: timeout"]
        assert result.context == "No relevant context found."

    @pytest.mark.asyncio
    async def test_unexpected_failure_returns_fallback(self, router, project_id):
        """Test that an exception escaping a strategy yields a fallback result."""
        router.vector_search.search.side_effect = RuntimeError("boom")

        result = await router.route("Tell me something nice", project_id)

        assert result.success is False
        assert result.classification.confidence == pytest.approx(0.3)
        assert result.metadata.errors == ["routing failed: boom"]

    @pytest.mark.asyncio
    async def test_analytics_event_is_emitted(self, router, analytics, project_id):
        await router.route("Tell me something nice", project_id)

        analytics.emit.assert_called_once()
        event = analytics.emit.call_args.args[0]
        assert isinstance(event, QueryAnalyticsEvent)
        assert event.query_type == "general"
        assert event.response_method == "vector_only"
        assert event.extra_metadata["strategies"] == ["vector_search"]

    @pytest.mark.asyncio
    async def test_analytics_failure_does_not_break_routing(self, router, analytics, project_id):
        analytics.emit.side_effect = RuntimeError("queue gone")

        result = await router.route("Tell me something nice", project_id)

        assert result.success is True

"""
Station-Aware Vector Search

1. Embed the question using SentenceTransformer
2. Oversample candidates from the chunk embedding index
3. Rerank with station, sheet-type and critical-sheet boosts
4. Trim to the requested limit

Embedding or store failures come back as an empty response with an error
note so the router can still use its other strategies.
"""

import asyncio
from typing import List, Optional
from uuid import UUID

from sentence_transformers import SentenceTransformer
from sqlalchemy.ext.asyncio import AsyncSession

from plansearch.core.config import EngineConfig, settings
from plansearch.repositories.chunk_repository import ChunkRepository
from plansearch.schemas.query import QueryClassification, QueryType, VectorSearchResponse
from plansearch.services.retrieval.vector.station_reranker import StationAwareReranker
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Module-level singleton for the embedding model (expensive to load)
_embedding_model: SentenceTransformer | None = None


def _get_embedding_model() -> SentenceTransformer:
    """Get or lazily load the shared SentenceTransformer model."""
    global _embedding_model
    if _embedding_model is None:
        LOGGER.info(f"Loading embedding model: {settings.embedding.model}")
        _embedding_model = SentenceTransformer(settings.embedding.model)
    return _embedding_model


async def embed_text(text: str) -> List[float]:
    """Embed one string; encoding is CPU-bound so it runs in a thread."""
    model = _get_embedding_model()
    embedding = await asyncio.to_thread(model.encode, text)
    return embedding.tolist()


class StationAwareSearchService:
    """Top-k semantic search over plan chunks with domain re-ranking."""

    def __init__(self, session: AsyncSession, config: Optional[EngineConfig] = None):
        self.config = config or settings.engine_config()
        self.chunk_repo = ChunkRepository(session)
        self.reranker = StationAwareReranker(self.config.scoring)

    async def search(
        self,
        query: str,
        project_id: UUID,
        classification: QueryClassification,
        limit: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        document_id: Optional[UUID] = None,
    ) -> VectorSearchResponse:
        """
        Execute station-aware search.

        Args:
            query: Question text to embed
            project_id: Project scope
            classification: Classification driving the boosts
            limit: Results to return; defaults by query type
            similarity_threshold: Minimum base similarity; defaults by query type
            document_id: Optional single-document scope

        Returns:
            VectorSearchResponse with results sorted by boosted_score
        """
        limits = self.config.search
        is_quantity = classification.type == QueryType.QUANTITY
        if limit is None:
            limit = limits.quantity_limit if is_quantity else limits.default_limit
        if similarity_threshold is None:
            similarity_threshold = limits.quantity_threshold if is_quantity else limits.default_threshold

        try:
            embedding = await embed_text(query)
            raw_results = await self.chunk_repo.semantic_search(
                embedding=embedding,
                project_id=project_id,
                limit=limit * limits.oversample_factor,
                min_similarity=similarity_threshold,
                sheet_number=classification.sheet_number,
                document_id=document_id,
            )
        except Exception as e:
            LOGGER.error(
                "Vector search failed",
                extra={"project_id": str(project_id), "error": str(e)},
                exc_info=True,
            )
            return VectorSearchResponse(error=f"vector search failed: {e}")

        if not raw_results:
            LOGGER.info("No vector results found", extra={"project_id": str(project_id)})
            return VectorSearchResponse()

        reranked = self.reranker.rerank(raw_results, classification)
        results = reranked[:limit]

        LOGGER.info(
            "Vector retrieval complete",
            extra={
                "query_type": classification.type.value,
                "raw_count": len(raw_results),
                "final_count": len(results),
                "top_score": results[0].boosted_score if results else 0.0,
            },
        )

        return VectorSearchResponse(results=results, candidates_considered=len(raw_results))

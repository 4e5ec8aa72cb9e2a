"""Semantic search with station-aware reranking."""

from plansearch.services.retrieval.vector.station_reranker import StationAwareReranker
from plansearch.services.retrieval.vector.station_aware_search import StationAwareSearchService

__all__ = ["StationAwareReranker", "StationAwareSearchService"]

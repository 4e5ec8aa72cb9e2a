"""
Station-Aware Reranking for Vector Search Results

Applies construction-plan boosts to raw vector search results:
1. Station proximity: linear falloff inside a window around the query station
2. Sheet-type match: query-type dependent, index sheets pushed down for quantities
3. Critical sheet: sheets flagged during vision processing
4. Index-sheet penalty: quantity and location queries only

All weights come from ``ScoringWeights`` and are heuristic.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from plansearch.core.config import ScoringWeights
from plansearch.database.models import DocumentChunk
from plansearch.schemas.query import BoostFactors, EnhancedSearchResult, QueryClassification, QueryType
from plansearch.services.parsing import station_parser
from plansearch.services.parsing.sheet_classifier import is_likely_index_sheet
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

DRAWING_SHEET_TYPES = ("plan", "profile")
INDEX_SHEET_TYPES = ("index", "toc")
PENALIZED_QUERY_TYPES = (QueryType.QUANTITY, QueryType.LOCATION)


def chunk_stations(chunk: DocumentChunk) -> List[station_parser.Station]:
    """Stations tagged on a chunk, falling back to stations found in its text."""
    texts: List[str] = list(chunk.stations or [])
    if chunk.station:
        texts.append(chunk.station)

    stations = [s for s in (station_parser.parse(t) for t in texts) if s]
    if not stations:
        stations = station_parser.extract_stations_from_text(chunk.content)
    return stations


class StationAwareReranker:
    """Reranks vector search results using plan-set boosting signals."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def rerank(
        self,
        results: Sequence[Tuple[DocumentChunk, float]],
        classification: QueryClassification,
    ) -> List[EnhancedSearchResult]:
        """
        Rerank search results with station and sheet-type boosting.

        Args:
            results: (DocumentChunk, cosine_distance) tuples from search
            classification: Classification of the query being answered

        Returns:
            EnhancedSearchResult list sorted by boosted_score descending
        """
        if not results:
            return []

        anchor = station_parser.parse(classification.station) if classification.station else None
        preferred = [t.value for t in classification.search_hints.preferred_sheet_types]

        reranked: List[EnhancedSearchResult] = []
        for chunk, distance in results:
            similarity = max(0.0, 1.0 - distance)
            stations = chunk_stations(chunk)

            boosts = BoostFactors(
                station_proximity=self.station_proximity_boost(anchor, stations),
                sheet_type_match=self.sheet_type_boost(chunk.sheet_type, classification.type, preferred),
                critical_sheet=self.critical_sheet_boost(chunk.is_critical_sheet, classification.type),
                index_sheet_penalty=self.index_sheet_penalty(chunk, classification.type),
            )

            reranked.append(
                EnhancedSearchResult(
                    chunk_id=chunk.id,
                    document_id=chunk.document_id,
                    content=chunk.content,
                    page_number=chunk.page_number,
                    sheet_number=chunk.sheet_number,
                    sheet_type=chunk.sheet_type,
                    chunk_type=chunk.chunk_type,
                    system_name=chunk.system_name,
                    stations=[station_parser.format_station(s) for s in stations],
                    is_critical_sheet=bool(chunk.is_critical_sheet),
                    vision_data=chunk.vision_data,
                    base_similarity=similarity,
                    boost_factors=boosts,
                    boosted_score=similarity + boosts.total,
                )
            )

        reranked.sort(key=lambda r: r.boosted_score, reverse=True)

        LOGGER.info(
            "Reranking complete",
            extra={
                "query_type": classification.type.value,
                "anchor_station": classification.station,
                "total_results": len(reranked),
                "top_score": reranked[0].boosted_score if reranked else 0.0,
                "bottom_score": reranked[-1].boosted_score if reranked else 0.0,
            },
        )

        return reranked

    def station_proximity_boost(
        self,
        anchor: Optional[station_parser.Station],
        stations: Iterable[station_parser.Station],
    ) -> float:
        """Full boost at distance zero, nothing at or beyond the window."""
        if anchor is None:
            return 0.0
        distances = [station_parser.distance(anchor, s) for s in stations]
        if not distances:
            return 0.0

        nearest = min(distances)
        window = self.weights.station_window_feet
        if nearest >= window:
            return 0.0
        return self.weights.station_max_boost * (1.0 - nearest / window)

    def sheet_type_boost(
        self,
        sheet_type: Optional[str],
        query_type: QueryType,
        preferred_sheet_types: Sequence[str],
    ) -> float:
        if not sheet_type:
            return 0.0
        sheet_type = sheet_type.lower()

        if query_type == QueryType.QUANTITY:
            if sheet_type in INDEX_SHEET_TYPES:
                return self.weights.quantity_index_sheet_boost
            if sheet_type in DRAWING_SHEET_TYPES:
                return self.weights.sheet_type_boost * self.weights.drawing_sheet_multiplier
            if sheet_type in preferred_sheet_types:
                return self.weights.sheet_type_boost
            return 0.0

        if sheet_type in preferred_sheet_types:
            return self.weights.sheet_type_boost * self.weights.other_query_multiplier
        return 0.0

    def critical_sheet_boost(self, is_critical: Optional[bool], query_type: QueryType) -> float:
        if not is_critical:
            return 0.0
        if query_type == QueryType.QUANTITY:
            return self.weights.critical_sheet_boost
        return self.weights.critical_sheet_boost * self.weights.critical_sheet_other_multiplier

    def index_sheet_penalty(self, chunk: DocumentChunk, query_type: QueryType) -> float:
        if query_type not in PENALIZED_QUERY_TYPES:
            return 0.0
        if is_likely_index_sheet(chunk.sheet_number, chunk.sheet_type, chunk.content):
            return -self.weights.index_sheet_penalty
        return 0.0

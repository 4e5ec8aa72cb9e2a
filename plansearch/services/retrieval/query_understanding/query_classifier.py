"""
Query Classification for Plan-Set Questions

Turns a free-text question into a QueryClassification:
- Query type and intent from the ordered rule table
- Item name, system name, material and detail number
- Station anchor(s), sheet number and size filter
- Retrieval flags consumed by the smart router
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from plansearch.core.config import SearchLimits
from plansearch.schemas.query import QueryClassification, QueryIntent, QueryType, SearchHints
from plansearch.services.parsing.station_parser import extract_stations_from_text, format_station
from plansearch.services.retrieval.query_understanding.rules import (
    AGGREGATION_PATTERNS,
    CLASSIFICATION_RULES,
    COMPLETE_DATA_SIGNALS,
    GENERAL_CONFIDENCE,
    INFORMATIONAL_PATTERNS,
    LOCATION_PATTERNS,
    QUANTITY_PATTERNS,
    ClassificationRule,
)
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

SHEET_NUMBER_PATTERNS = [
    re.compile(r"(?:sheet|drawing|page)\s+([\w\d-]+)", re.I),
    re.compile(r"\b([A-Z]{1,2}-?\d{1,3})\b"),  # C-001, SD1, CU107
]

SIZE_FILTER_PATTERN = re.compile(r"(\d+)\s*-?\s*in(?:ch(?:es)?)?\b|(\d+)\s*\"", re.I)

SYSTEM_NAME_PATTERNS = [
    re.compile(r"(?:water\s*line|waterline|storm\s*drain|stormdrain|sewer\s*line|sanitary\s*sewer|fire\s*line)\s+['\"]?([A-Z\d-]+)['\"]?", re.I),
    re.compile(r"\b(WL|SD|SS|FP)-[A-Z\d]+\b", re.I),
    re.compile(r"\b(?:line|drain)\s+['\"]?([A-Z])['\"]?\b", re.I),
]

_GENERIC_SYSTEMS = [
    (re.compile(r"waterline|water\s*line", re.I), "WATER LINE"),
    (re.compile(r"stormdrain|storm\s*drain", re.I), "STORM DRAIN"),
    (re.compile(r"sewer", re.I), "SEWER"),
    (re.compile(r"fire\s*line", re.I), "FIRE LINE"),
]

MATERIALS = [
    "ductile iron", "pvc", "hdpe", "concrete", "steel", "copper", "aggregate",
    "asphalt", "class 2", "class 3", "bedding", "backfill",
]

# Trailing clauses that are not part of the item being asked about
_ITEM_TRAILERS = [
    re.compile(r"\s+(?:on|in|at|along|from)\s+(?:sheet|drawing|page|station|sta)\b.*$", re.I),
    re.compile(r"\s+(?:are|is)\s+(?:there|on|in|shown|needed|required|installed)\b.*$", re.I),
    re.compile(r"\s+(?:do\s+we\s+have|do\s+i\s+need|in\s+the\s+project|on\s+the\s+plans?|in\s+total)$", re.I),
]
_ITEM_TRAILING_STOPWORD = re.compile(r"\s*\b(?:the|a|an|is|are|in|of|for|at|on|to)\b\s*$", re.I)
_QUOTED = re.compile(r"\"([^\"]+)\"|'([^']+)'")


def extract_size_filter(query: Optional[str]) -> Optional[str]:
    """``12-inch`` / ``12 in`` / ``12"`` -> ``12-IN``."""
    if not query:
        return None
    match = SIZE_FILTER_PATTERN.search(query)
    if not match:
        return None
    return f"{match.group(1) or match.group(2)}-IN"


def extract_stations(query: str) -> List[str]:
    """Normalized stations in order of appearance; the first is the anchor."""
    return [format_station(station) for station in extract_stations_from_text(query)]


def extract_sheet_number(query: str) -> Optional[str]:
    for pattern in SHEET_NUMBER_PATTERNS:
        match = pattern.search(query)
        if match:
            return match.group(1).upper()
    return None


def extract_system_name(query: str) -> Optional[str]:
    """System label such as ``Water Line A`` used for complete-data retrieval."""
    for pattern in SYSTEM_NAME_PATTERNS:
        match = pattern.search(query)
        if match:
            name = match.group(0).strip()
            name = re.sub(r"^waterline", "Water Line", name, flags=re.I)
            name = re.sub(r"^stormdrain", "Storm Drain", name, flags=re.I)
            return name

    for pattern, label in _GENERIC_SYSTEMS:
        if pattern.search(query):
            return label
    return None


def extract_material(query: str) -> Optional[str]:
    lowered = query.lower()
    for material in MATERIALS:
        if re.search(rf"\b{re.escape(material)}\b", lowered):
            return material
    return None


def clean_item_name(raw: str) -> Optional[str]:
    item = raw.strip()
    for trailer in _ITEM_TRAILERS:
        item = trailer.sub("", item)
    item = re.sub(r"[?.,;]+$", "", item)
    item = _ITEM_TRAILING_STOPWORD.sub("", item)
    item = re.sub(r"\s+", " ", item).strip().lower()
    return item or None


def extract_item_name(normalized: str, raw: str, query_type: QueryType) -> Optional[str]:
    """Item being asked about, lowercased.

    Quantity and location questions take the object of the first matching
    pattern; otherwise a quoted phrase is used when present.
    """
    if query_type == QueryType.QUANTITY:
        for pattern in QUANTITY_PATTERNS:
            match = pattern.search(normalized)
            if match and match.group(1):
                return clean_item_name(match.group(1))

    if query_type == QueryType.LOCATION:
        for pattern in LOCATION_PATTERNS:
            match = pattern.search(normalized)
            if match and match.lastindex and match.group(1) and not match.group(1)[0].isdigit():
                return clean_item_name(match.group(1))

    quoted = _QUOTED.search(raw)
    if quoted:
        return (quoted.group(1) or quoted.group(2)).strip().lower()
    return None


def determine_intent(normalized: str, has_station: bool) -> QueryIntent:
    if any(pattern.search(normalized) for pattern in QUANTITY_PATTERNS):
        return QueryIntent.QUANTITATIVE
    if any(pattern.search(normalized) for pattern in INFORMATIONAL_PATTERNS):
        return QueryIntent.INFORMATIONAL
    if has_station or re.search(r"(?:at|near|around)\s+(?:station|sta)\b", normalized):
        return QueryIntent.LOCATIONAL
    return QueryIntent.INFORMATIONAL


class QueryClassifier:
    """Rule-table classifier for plan-set questions.

    ``classify`` never raises: empty or garbled input, and any unexpected
    failure, degrade to a general classification.
    """

    def __init__(self, rules: Tuple[ClassificationRule, ...] = CLASSIFICATION_RULES):
        self.rules = rules

    def classify(self, query: Optional[str]) -> QueryClassification:
        if not query or not query.strip():
            LOGGER.info("Empty query, returning general classification")
            return QueryClassification(original_query=query or "", confidence=0.0)

        try:
            return self._classify(query)
        except Exception as e:
            LOGGER.warning(
                "Classification failed, degrading to general",
                extra={"error": str(e), "query": query[:200]},
                exc_info=True,
            )
            return QueryClassification(original_query=query, confidence=0.3)

    def _classify(self, query: str) -> QueryClassification:
        normalized = query.lower().strip()
        stations = extract_stations(query)
        station = stations[0] if stations else None
        sheet_number = extract_sheet_number(query)
        size_filter = extract_size_filter(query)

        for rule in self.rules:
            if not rule.matches(normalized, query):
                continue
            classification = self._apply_rule(rule, query, normalized, stations, sheet_number, size_filter)
            LOGGER.info(
                "Query classified",
                extra={
                    "query_type": classification.type.value,
                    "confidence": classification.confidence,
                    "item_name": classification.item_name,
                    "station": classification.station,
                },
            )
            return classification

        return QueryClassification(
            type=QueryType.GENERAL,
            confidence=GENERAL_CONFIDENCE,
            intent=determine_intent(normalized, station is not None),
            original_query=query,
            station=station,
            stations=stations,
            sheet_number=sheet_number,
            size_filter=size_filter,
            needs_vector_search=True,
        )

    def _apply_rule(
        self,
        rule: ClassificationRule,
        query: str,
        normalized: str,
        stations: List[str],
        sheet_number: Optional[str],
        size_filter: Optional[str],
    ) -> QueryClassification:
        query_type = rule.query_type
        system_name = extract_system_name(query)
        item_name = extract_item_name(normalized, query, query_type)
        if query_type == QueryType.UTILITY_CROSSING and system_name:
            item_name = system_name

        is_aggregation = any(pattern.search(normalized) for pattern in AGGREGATION_PATTERNS)
        if query_type == QueryType.PROJECT_SUMMARY:
            is_aggregation = True

        needs_complete_data = False
        if query_type == QueryType.QUANTITY:
            needs_complete_data = bool(system_name) or any(
                pattern.search(normalized) for pattern in COMPLETE_DATA_SIGNALS
            )
        elif query_type == QueryType.PROJECT_SUMMARY:
            needs_complete_data = True

        keywords = list(rule.keywords)
        if query_type == QueryType.QUANTITY and item_name:
            keywords = [item_name]

        detail_number = None
        if query_type == QueryType.DETAIL:
            detail_match = re.search(r"detail\s+([\w\d/-]+)", query, re.I)
            detail_number = detail_match.group(1) if detail_match else None

        return QueryClassification(
            type=query_type,
            confidence=rule.confidence,
            intent=rule.intent,
            original_query=query,
            item_name=item_name,
            station=stations[0] if stations else None,
            stations=stations,
            sheet_number=sheet_number,
            size_filter=size_filter,
            material=extract_material(query) if query_type == QueryType.SPECIFICATION else None,
            detail_number=detail_number,
            needs_direct_lookup=rule.needs_direct_lookup,
            needs_vector_search=rule.needs_vector_search,
            needs_vision=rule.needs_vision,
            needs_complete_data=needs_complete_data,
            is_aggregation_query=is_aggregation,
            search_hints=SearchHints(
                preferred_sheet_types=list(rule.preferred_sheet_types),
                keywords=keywords,
                system_name=system_name,
            ),
        )


def build_search_parameters(
    classification: QueryClassification,
    project_id: Any,
    limits: Optional[SearchLimits] = None,
) -> Dict[str, Any]:
    """Direct-lookup and vector-search parameters for a classification."""
    limits = limits or SearchLimits()
    is_quantity = classification.type == QueryType.QUANTITY

    params: Dict[str, Any] = {}
    if classification.needs_direct_lookup and classification.item_name:
        params["direct_lookup_params"] = {
            "project_id": project_id,
            "search_term": classification.item_name,
        }

    filters: Dict[str, Any] = {}
    if classification.sheet_number:
        filters["sheet_number"] = classification.sheet_number
    if classification.search_hints.preferred_sheet_types:
        filters["sheet_types"] = [t.value for t in classification.search_hints.preferred_sheet_types]

    params["vector_search_params"] = {
        "project_id": project_id,
        "query": classification.original_query,
        "similarity_threshold": limits.quantity_threshold if is_quantity else limits.default_threshold,
        "limit": limits.quantity_limit if is_quantity else limits.default_limit,
        "filters": filters,
    }
    return params


def get_search_strategy(classification: QueryClassification) -> Dict[str, List[str]]:
    """Ordered strategies with human-readable steps."""
    steps: List[str] = []
    priority_order: List[str] = []

    if classification.needs_direct_lookup:
        steps.append("Try direct database lookup for structured data")
        priority_order.append("direct_lookup")
    if classification.needs_complete_data:
        steps.append("Retrieve every chunk for the named system")
        priority_order.append("complete_data")
    if classification.needs_vector_search:
        steps.append("Perform semantic vector search")
        priority_order.append("vector_search")
    if classification.needs_vision:
        steps.append("Consider vision analysis for visual/spatial queries")
        priority_order.append("vision")

    return {"steps": steps, "priority_order": priority_order}

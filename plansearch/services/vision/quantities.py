"""Quantity helpers: item categorization, near-duplicate removal, row building."""

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from plansearch.schemas.vision import Quantity, VisionExtractionResult
from plansearch.services.parsing import station_parser
from plansearch.services.parsing.utility_abbreviations import normalize_size
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

STATION_TOLERANCE_FEET = 1.0

# Checked in order
ITEM_TYPE_PATTERNS = [
    (re.compile(r"valve|hydrant|\btee\b|bend|elbow|\bcap\b|plug|coupling|reducer|sleeve|fitting|\barv\b|defl", re.I), "fitting"),
    (re.compile(r"water.*line|\bwl-|potable|domestic water", re.I), "waterline"),
    (re.compile(r"storm.*drain|\bsd-|storm.*sewer|storm.*water", re.I), "storm_drain"),
    (re.compile(r"sanitary.*sewer|\bss-|sewer.*line|wastewater", re.I), "sewer"),
    (re.compile(r"paving|pavement|asphalt|\bac\b|concrete|\bpcc\b", re.I), "paving"),
    (re.compile(r"curb|gutter|c&g", re.I), "curb_gutter"),
    (re.compile(r"sidewalk|pedestrian|walkway", re.I), "sidewalk"),
    (re.compile(r"grading|earthwork|excavation|\bfill\b|\bcut\b", re.I), "grading"),
    (re.compile(r"drain|drainage|culvert", re.I), "drainage"),
    (re.compile(r"electric|power|\bgas\b|telecom|fiber", re.I), "utility"),
]

_ITEM_CODE = re.compile(r"\b([A-Z]{1,3}[-_][A-Z0-9]{1,3})\b")
_TRAILING_LETTER = re.compile(r"\b([A-Z])\s*['\"]?\s*$")

ItemKey = Tuple[str, Optional[str], Optional[str]]


def categorize_item_type(item_name: Optional[str]) -> Optional[str]:
    if not item_name:
        return None
    for pattern, item_type in ITEM_TYPE_PATTERNS:
        if pattern.search(item_name):
            return item_type
    return None


def extract_item_number(item_name: Optional[str]) -> Optional[str]:
    """``WL-A`` from ``WL-A 12-IN``; ``A`` from ``Water Line A``."""
    if not item_name:
        return None
    match = _ITEM_CODE.search(item_name)
    if match:
        return match.group(1)
    match = _TRAILING_LETTER.search(item_name)
    if match:
        return match.group(1)
    return None


def stations_approximately_equal(a: Optional[str], b: Optional[str]) -> bool:
    """Within one foot; two missing stations count as equal."""
    if not a and not b:
        return True
    distance = station_parser.distance_between(a, b)
    if distance is None:
        return (a or "").strip().upper() == (b or "").strip().upper()
    return distance <= STATION_TOLERANCE_FEET


def _normalized_name(name: str) -> str:
    return re.sub(r"\s+", " ", name.lower()).strip()


def item_key(item_name: str, size: Optional[str], station: Optional[str]) -> ItemKey:
    return (_normalized_name(item_name), normalize_size(size), station)


def is_duplicate(key: ItemKey, existing: Iterable[ItemKey]) -> bool:
    name, size, station = key
    for other_name, other_size, other_station in existing:
        names_match = name == other_name or name in other_name or other_name in name
        sizes_match = not size or not other_size or size == other_size
        if names_match and sizes_match and stations_approximately_equal(station, other_station):
            return True
    return False


def dedupe_quantities(
    quantities: Sequence[Quantity],
    existing: Optional[List[ItemKey]] = None,
) -> List[Quantity]:
    """Drop items already seen (same item and size, stations within one foot).

    ``existing`` is extended in place with the kept items so callers can
    carry it across the pages of a document.
    """
    seen = existing if existing is not None else []
    unique: List[Quantity] = []
    for quantity in quantities:
        if not quantity.item_name.strip():
            continue
        key = item_key(quantity.item_name, quantity.size, quantity.station_from)
        if is_duplicate(key, seen):
            LOGGER.debug(f"Skipping duplicate: {quantity.item_name} at {quantity.station_from or 'unknown'}")
            continue
        seen.append(key)
        unique.append(quantity)

    if len(unique) < len(quantities):
        LOGGER.info(
            "Removed duplicate quantities",
            extra={"received": len(quantities), "unique": len(unique)},
        )
    return unique


def quantity_rows(
    quantities: Sequence[Quantity],
    result: VisionExtractionResult,
    project_id: UUID,
    document_id: UUID,
    chunk_id: Optional[UUID],
    sheet_number: Optional[str],
    source_type: str = "vision",
) -> List[Dict[str, Any]]:
    """ProjectQuantity column values for extracted items."""
    rows = []
    for quantity in quantities:
        rows.append({
            "project_id": project_id,
            "document_id": document_id,
            "chunk_id": chunk_id,
            "item_name": quantity.item_name.strip(),
            "item_type": categorize_item_type(quantity.item_name),
            "item_number": extract_item_number(quantity.item_name),
            "quantity": quantity.quantity,
            "unit": quantity.unit,
            "size": normalize_size(quantity.size),
            "description": quantity.description,
            "station_from": quantity.station_from,
            "station_to": quantity.station_to,
            "sheet_number": quantity.sheet_number or sheet_number,
            "source_type": source_type,
            "source_context": quantity.source_context.value,
            "confidence": quantity.confidence,
            "extra_metadata": {
                "sheet_title": result.sheet_metadata.sheet_title,
                "discipline": result.sheet_metadata.discipline,
                "is_index_sheet": result.sheet_metadata.is_index_sheet,
            },
        })
    return rows

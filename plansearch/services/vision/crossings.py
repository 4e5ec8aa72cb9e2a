"""Utility crossing helpers: row building, per-utility counts and summaries.

The helpers accept ORM rows or ``UtilityCrossing`` models; anything exposing
``crossing_utility``, ``utility_full_name``, ``station`` and the flags works.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from plansearch.schemas.vision import UtilityCrossing
from plansearch.services.parsing.utility_abbreviations import (
    get_utility_full_name,
    normalize_size,
    normalize_utility_code,
)
from plansearch.services.vision.termination_points import station_numeric


def crossing_rows(
    crossings: Sequence[UtilityCrossing],
    project_id: UUID,
    document_id: UUID,
    chunk_id: Optional[UUID],
    sheet_number: Optional[str],
    source_type: str = "vision",
) -> List[Dict[str, Any]]:
    rows = []
    for crossing in crossings:
        code = normalize_utility_code(crossing.crossing_utility) or crossing.crossing_utility.strip().upper()
        notes = " ".join(part for part in (crossing.description, crossing.notes) if part) or None
        rows.append({
            "project_id": project_id,
            "document_id": document_id,
            "chunk_id": chunk_id,
            "crossing_utility": code,
            "utility_full_name": crossing.utility_full_name or get_utility_full_name(code),
            "station": crossing.station,
            "station_numeric": station_numeric(crossing.station),
            "elevation": crossing.elevation,
            "is_existing": crossing.is_existing,
            "is_proposed": crossing.is_proposed,
            "size": normalize_size(crossing.size),
            "sheet_number": crossing.sheet_reference or sheet_number,
            "notes": notes,
            "source_type": source_type,
            "confidence": crossing.confidence,
        })
    return rows


def _group_key(crossing: Any) -> str:
    return crossing.utility_full_name or crossing.crossing_utility


def count_crossings_by_type(crossings: Iterable[Any]) -> List[Dict[str, Any]]:
    """Totals per crossing utility, most frequent first."""
    counts: Dict[str, Dict[str, Any]] = {}
    for crossing in crossings:
        entry = counts.setdefault(crossing.crossing_utility, {
            "crossing_utility": crossing.crossing_utility,
            "utility_full_name": crossing.utility_full_name or get_utility_full_name(crossing.crossing_utility),
            "total_count": 0,
            "existing_count": 0,
            "proposed_count": 0,
        })
        entry["total_count"] += 1
        if crossing.is_existing:
            entry["existing_count"] += 1
        if crossing.is_proposed:
            entry["proposed_count"] += 1
    return sorted(counts.values(), key=lambda e: (-e["total_count"], e["crossing_utility"]))


def format_crossing_summary(crossings: Iterable[Any]) -> str:
    grouped: "OrderedDict[str, List[Any]]" = OrderedDict()
    for crossing in crossings:
        grouped.setdefault(_group_key(crossing), []).append(crossing)
    if not grouped:
        return "No utility crossings found."

    lines: List[str] = []
    for utility_name, group in grouped.items():
        lines.append(f"\n**{utility_name}:** {len(group)} crossing(s)")
        for crossing in group:
            details = []
            if crossing.station:
                details.append(f"Station {crossing.station}")
            if crossing.elevation is not None:
                details.append(f"Elev {crossing.elevation:.2f} ft")
            if crossing.size:
                details.append(crossing.size)
            if crossing.is_existing:
                details.append("Existing")
            if crossing.is_proposed:
                details.append("Proposed")
            sheet = getattr(crossing, "sheet_number", None) or getattr(crossing, "sheet_reference", None)
            if sheet:
                details.append(f"Sheet {sheet}")
            lines.append(f"  - {', '.join(details) or 'No details'}")
    return "\n".join(lines)

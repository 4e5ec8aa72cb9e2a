"""Termination point helpers.

BEGIN/END labels on plan and profile drawings are the most authoritative
source for a utility's length: a paired BEGIN/END gives the length by
station subtraction. These helpers work on any objects exposing
``utility_name``, ``termination_type``, ``station`` and ``sheet_number``
(ORM rows or ``TerminationPoint`` models).
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from plansearch.services.parsing import station_parser
from plansearch.services.parsing.system_names import normalize_label
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

_UTILITY_TYPE_HINTS = [
    (("water", "wl"), "water"),
    (("storm", "sd"), "storm"),
    (("sewer", "ss"), "sewer"),
    (("gas",), "gas"),
    (("electric", "power"), "electric"),
    (("telecom", "fiber"), "telecom"),
]


@dataclass(frozen=True)
class LengthCalculation:
    """
    Length of one utility run.

    Attributes:
        utility_name: Utility as labeled on the BEGIN point
        begin_station: BEGIN station text
        end_station: END station text, or the document maximum when estimated
        begin_sheet: Sheet carrying the BEGIN label
        end_sheet: Sheet carrying the END label
        length_lf: Length in linear feet
        confidence: Lower of the two endpoint confidences; 0.5 when estimated
        estimated: True when END was missing and the document maximum was used
    """

    utility_name: str
    begin_station: str
    end_station: str
    begin_sheet: Optional[str]
    end_sheet: Optional[str]
    length_lf: float
    confidence: float
    estimated: bool = False


def _type_of(point: Any) -> str:
    value = getattr(point, "termination_type", "")
    return str(getattr(value, "value", value)).upper()


def infer_utility_type(utility_name: Optional[str]) -> Optional[str]:
    if not utility_name:
        return None
    lowered = utility_name.lower()
    for hints, utility_type in _UTILITY_TYPE_HINTS:
        if any(hint in lowered for hint in hints):
            return utility_type
    return None


def station_numeric(station: Optional[str]) -> Optional[float]:
    parsed = station_parser.parse(station)
    return parsed.total_length_units if parsed else None


def calculate_utility_length(
    points: Iterable[Any],
    document_max_station: Optional[station_parser.Station] = None,
) -> Optional[LengthCalculation]:
    """Length from the first BEGIN and the last END of one utility.

    Reversed or identical endpoints are rejected rather than negated. With a
    BEGIN but no END, the run is estimated to the document-wide maximum
    station when one is given and flagged as an estimate.
    """
    points = list(points)
    begins = [p for p in points if _type_of(p) == "BEGIN" and station_parser.parse(p.station)]
    ends = [p for p in points if _type_of(p) == "END" and station_parser.parse(p.station)]
    if not begins:
        return None

    begin = min(begins, key=lambda p: station_parser.parse(p.station).total_length_units)
    begin_station = station_parser.parse(begin.station)

    if ends:
        end = max(ends, key=lambda p: station_parser.parse(p.station).total_length_units)
        length = station_parser.range_length(begin_station, station_parser.parse(end.station))
        if length is None:
            LOGGER.warning(
                "Rejected reversed termination stations",
                extra={"utility": begin.utility_name, "begin": begin.station, "end": end.station},
            )
            return None
        return LengthCalculation(
            utility_name=begin.utility_name,
            begin_station=begin.station,
            end_station=end.station,
            begin_sheet=getattr(begin, "sheet_number", None),
            end_sheet=getattr(end, "sheet_number", None),
            length_lf=round(length, 2),
            confidence=min(float(begin.confidence or 0.0), float(end.confidence or 0.0)),
        )

    estimate = station_parser.estimate_open_range(begin_station, document_max_station)
    if estimate is None:
        return None
    return LengthCalculation(
        utility_name=begin.utility_name,
        begin_station=begin.station,
        end_station=station_parser.format_station(estimate.end_station),
        begin_sheet=getattr(begin, "sheet_number", None),
        end_sheet=None,
        length_lf=round(estimate.length, 2),
        confidence=estimate.confidence,
        estimated=True,
    )


def group_by_utility(points: Iterable[Any]) -> "OrderedDict[str, List[Any]]":
    """Group points by normalized utility label, keeping first-seen order."""
    grouped: "OrderedDict[str, List[Any]]" = OrderedDict()
    for point in points:
        grouped.setdefault(normalize_label(point.utility_name), []).append(point)
    return grouped


def validate_termination_points(points: Iterable[Any]) -> Dict[str, List]:
    """Split utilities into complete runs and those missing BEGIN or END."""
    complete: List[Dict[str, Any]] = []
    missing_begin: List[str] = []
    missing_end: List[str] = []

    for group in group_by_utility(points).values():
        name = group[0].utility_name
        types = {_type_of(p) for p in group}
        if "BEGIN" not in types:
            missing_begin.append(name)
        if "END" not in types:
            missing_end.append(name)
        if "BEGIN" in types and "END" in types:
            calculation = calculate_utility_length(group)
            if calculation:
                complete.append({"utility_name": name, "length_lf": calculation.length_lf})

    return {"complete": complete, "missing_begin": missing_begin, "missing_end": missing_end}


def format_termination_summary(points: Iterable[Any]) -> str:
    grouped = group_by_utility(points)
    if not grouped:
        return "No termination points found."

    lines: List[str] = []
    for group in grouped.values():
        lines.append(f"\n**{group[0].utility_name}:**")
        for point in group:
            kind = _type_of(point).replace("_", "-")
            lines.append(f"  - {kind} at {point.station} (Sheet {getattr(point, 'sheet_number', None) or '?'})")
        calculation = calculate_utility_length(group)
        if calculation:
            lines.append(f"  - **Calculated Length: {calculation.length_lf:.2f} LF**")
    return "\n".join(lines)


def termination_rows(
    points: Iterable[Any],
    project_id: UUID,
    document_id: UUID,
    chunk_id: Optional[UUID],
    sheet_number: Optional[str],
    source_type: str = "vision",
) -> List[Dict[str, Any]]:
    """UtilityTerminationPoint column values; points without a parseable station are dropped."""
    rows = []
    for point in points:
        numeric = station_numeric(point.station)
        if numeric is None:
            LOGGER.warning(
                "Skipping termination point with unreadable station",
                extra={"utility": point.utility_name, "station": point.station},
            )
            continue
        rows.append({
            "project_id": project_id,
            "document_id": document_id,
            "chunk_id": chunk_id,
            "utility_name": point.utility_name.strip(),
            "utility_type": point.utility_type or infer_utility_type(point.utility_name),
            "termination_type": _type_of(point),
            "station": station_parser.normalize(point.station) or point.station,
            "station_numeric": numeric,
            "sheet_number": getattr(point, "sheet_reference", None) or sheet_number,
            "notes": point.notes,
            "source_type": source_type,
            "confidence": point.confidence,
        })
    return rows

"""
Post-extraction validation for one page.

Flags are logged and returned for downstream distrust; flagged items are
kept. The one hard rule is semantic: a "crossing" labeled like a component of
the primary utility (its pipe size, or a sized fitting) is removed. The rule
is the same ``is_primary_component_label`` check that text-based crossing
extraction applies.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from plansearch.schemas.vision import Quantity, UtilityCrossing, VisionExtractionResult
from plansearch.services.parsing.station_parser import is_strict_station
from plansearch.services.parsing.utility_abbreviations import is_primary_component_label, normalize_size
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

MAX_QUANTITIES_PER_PAGE = 20
MAX_CROSSINGS_PER_PAGE = 5

SUSPICIOUS_STATION_TOKENS = re.compile(r"RT$|LT$|Q/S|O/S|DEFL|-\d+-|ROAD|MATCH", re.I)


@dataclass(frozen=True)
class SuspiciousStation:
    """One station value that failed the strict format check.

    Attributes:
        source: "quantity", "termination_point" or "crossing"
        label: Item name, utility name or crossing utility of the record
        field: Attribute holding the station
        station: The offending value
    """

    source: str
    label: str
    field: str
    station: str


@dataclass
class ExtractionValidation:
    """
    Validation outcome for one page.

    Attributes:
        page_number: Page validated
        primary_size: Pipe size taken as the primary utility's on this sheet
        suspicious_stations: Malformed or offset/road-reference stations in any record
        high_quantity_count: More quantities than a single sheet plausibly carries
        high_crossing_count: More crossings than a single sheet plausibly carries
        crossings_without_elevation: Crossings lacking the reference number that marks a real crossing
        rejected_crossings: Crossings removed as components of the primary utility
    """

    page_number: int
    primary_size: Optional[str] = None
    suspicious_stations: List[SuspiciousStation] = field(default_factory=list)
    high_quantity_count: bool = False
    high_crossing_count: bool = False
    crossings_without_elevation: List[UtilityCrossing] = field(default_factory=list)
    rejected_crossings: List[UtilityCrossing] = field(default_factory=list)

    @property
    def flags(self) -> List[str]:
        flags = []
        if self.suspicious_stations:
            flags.append("suspicious_stations")
        if self.high_quantity_count:
            flags.append("high_quantity_count")
        if self.high_crossing_count:
            flags.append("high_crossing_count")
        if self.crossings_without_elevation:
            flags.append("crossings_without_elevation")
        return flags


def is_suspicious_station(station: Optional[str]) -> bool:
    """Offsets, road references, match lines and anything off the strict format."""
    if not station:
        return False
    station = station.strip()
    if SUSPICIOUS_STATION_TOKENS.search(station):
        return True
    return not is_strict_station(station)


def find_suspicious_stations(result: VisionExtractionResult) -> List[SuspiciousStation]:
    """Every station field on the page that fails the strict check, in record order."""
    candidates: List[Tuple[str, str, str, Optional[str]]] = []
    for q in result.quantities:
        candidates.append(("quantity", q.item_name, "station_from", q.station_from))
        candidates.append(("quantity", q.item_name, "station_to", q.station_to))
    for tp in result.termination_points:
        candidates.append(("termination_point", tp.utility_name, "station", tp.station))
    for c in result.utility_crossings:
        candidates.append(("crossing", c.crossing_utility, "station", c.station))

    return [
        SuspiciousStation(source=source, label=label, field=attr, station=station.strip())
        for source, label, attr, station in candidates
        if is_suspicious_station(station)
    ]


def primary_utility_size(quantities: List[Quantity]) -> Optional[str]:
    """Most common pipe size among the sheet's quantities; ties go to the first seen."""
    sizes = [normalize_size(q.size) for q in quantities if q.size]
    sizes = [s for s in sizes if s]
    if not sizes:
        return None
    return Counter(sizes).most_common(1)[0][0]


def is_component_not_crossing(crossing: UtilityCrossing, primary_size: Optional[str] = None) -> bool:
    """A crossing whose size, description or notes read as a primary-utility component label."""
    return any(
        is_primary_component_label(text, primary_size)
        for text in (crossing.size, crossing.description, crossing.notes)
    )


def filter_crossings(
    crossings: List[UtilityCrossing],
    primary_size: Optional[str] = None,
) -> Tuple[List[UtilityCrossing], List[UtilityCrossing]]:
    """(kept, rejected) split of extracted crossings."""
    kept: List[UtilityCrossing] = []
    rejected: List[UtilityCrossing] = []
    for crossing in crossings:
        (rejected if is_component_not_crossing(crossing, primary_size) else kept).append(crossing)
    return kept, rejected


def validate_extraction(
    result: VisionExtractionResult,
    primary_size: Optional[str] = None,
) -> Tuple[VisionExtractionResult, ExtractionValidation]:
    """Flag over-extraction and bad stations; drop component labels reported as crossings.

    ``primary_size`` defaults to the most common size among the page's quantities.
    """
    primary_size = normalize_size(primary_size) or primary_utility_size(result.quantities)
    kept, rejected = filter_crossings(result.utility_crossings, primary_size)
    validation = ExtractionValidation(
        page_number=result.page_number,
        primary_size=primary_size,
        suspicious_stations=find_suspicious_stations(result),
        high_quantity_count=len(result.quantities) > MAX_QUANTITIES_PER_PAGE,
        high_crossing_count=len(kept) > MAX_CROSSINGS_PER_PAGE,
        crossings_without_elevation=[c for c in kept if c.elevation is None],
        rejected_crossings=rejected,
    )

    if validation.suspicious_stations:
        LOGGER.warning(
            "Suspicious station numbers in extraction",
            extra={
                "page_number": result.page_number,
                "stations": [
                    {"source": s.source, "label": s.label, "field": s.field, "station": s.station}
                    for s in validation.suspicious_stations
                ],
            },
        )
    if validation.high_quantity_count:
        LOGGER.warning(
            "High quantity count, possible over-extraction",
            extra={"page_number": result.page_number, "quantities": len(result.quantities)},
        )
    if validation.high_crossing_count:
        LOGGER.warning(
            "High crossing count, possible over-detection",
            extra={
                "page_number": result.page_number,
                "crossings": [{"utility": c.crossing_utility, "station": c.station} for c in kept],
            },
        )
    if rejected:
        LOGGER.info(
            "Removed component labels reported as crossings",
            extra={
                "page_number": result.page_number,
                "primary_size": primary_size,
                "rejected": [c.description or c.notes or c.size for c in rejected],
            },
        )
        result = result.model_copy(update={"utility_crossings": kept})

    return result, validation

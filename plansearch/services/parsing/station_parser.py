"""Station (linear referencing) parsing and arithmetic.

Plan sheets locate features along an alignment as ``major+offset`` where one
major unit is 100 feet, e.g. ``13+50.25`` is 1350.25 ft from the origin.
Everything here is pure and never raises on malformed input; unparseable text
yields ``None`` so callers working on noisy OCR text can degrade gracefully.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

FEET_PER_STATION = 100.0

# Lenient: optional STA/STATION prefix, any zero padding, any offset digits
_STATION_PATTERN = re.compile(
    r"^\s*(?:STA(?:TION)?\.?\s*)?(\d+)\s*\+\s*(\d+(?:\.\d+)?)\s*$",
    re.IGNORECASE,
)

# Strict drawing-label form used to flag suspicious extractions
STRICT_STATION_PATTERN = re.compile(r"^\d{1,3}\+\d{2}(\.\d{1,2})?$")

_STATION_IN_TEXT = re.compile(
    r"(?:\bSTA(?:TION)?\.?\s*)?\b(\d{1,4}\+\d{2}(?:\.\d{1,2})?)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Station:
    """A normalized position along an alignment.

    Attributes:
        major_station: Whole 100-foot stations
        offset: Feet past the major station, always in [0, 100)
    """

    major_station: int
    offset: float

    def __post_init__(self):
        if self.major_station < 0:
            raise ValueError(f"major_station must be non-negative, got {self.major_station}")
        if not 0.0 <= self.offset < FEET_PER_STATION:
            raise ValueError(f"offset must be in [0, 100), got {self.offset}")

    @property
    def total_length_units(self) -> float:
        return self.major_station * FEET_PER_STATION + self.offset

    def __str__(self) -> str:
        return format_station(self)


def parse(text: Optional[str]) -> Optional[Station]:
    """Parse ``13+00``, ``STA 13+00`` or ``0013+50.00`` into a Station.

    Returns None for anything else, including offsets of 100 or more.
    """
    if not text:
        return None

    match = _STATION_PATTERN.match(text)
    if not match:
        return None

    major = int(match.group(1))
    offset = float(match.group(2))
    if offset >= FEET_PER_STATION:
        return None

    return Station(major_station=major, offset=offset)


def format_station(station: Station) -> str:
    """Render a Station in drawing notation (``13+00``, ``4+38.83``)."""
    if float(station.offset).is_integer():
        return f"{station.major_station}+{int(station.offset):02d}"
    offset_text = f"{station.offset:09.6f}".rstrip("0").rstrip(".")
    return f"{station.major_station}+{offset_text}"


def normalize(text: Optional[str]) -> Optional[str]:
    """Canonical drawing notation for a station string, or None."""
    station = parse(text)
    return format_station(station) if station else None


def feet_to_station(feet: float) -> Station:
    """Convert an absolute distance in feet to a Station."""
    if feet < 0:
        raise ValueError(f"feet must be non-negative, got {feet}")
    major = int(feet // FEET_PER_STATION)
    offset = round(feet - major * FEET_PER_STATION, 6)
    # Float error can land the offset on 100.0
    if offset >= FEET_PER_STATION:
        major += 1
        offset = 0.0
    return Station(major_station=major, offset=offset)


def distance(a: Station, b: Station) -> float:
    """Symmetric distance in feet."""
    return abs(a.total_length_units - b.total_length_units)


def distance_between(a: Optional[str], b: Optional[str]) -> Optional[float]:
    """Distance in feet between two station strings, None if either is unparseable."""
    sta_a, sta_b = parse(a), parse(b)
    if sta_a is None or sta_b is None:
        return None
    return distance(sta_a, sta_b)


def compare(a: Station, b: Station) -> int:
    """-1, 0 or 1 following position along the alignment."""
    delta = a.total_length_units - b.total_length_units
    if delta < 0:
        return -1
    if delta > 0:
        return 1
    return 0


def range_length(start: Station, end: Station) -> Optional[float]:
    """Length in feet from ``start`` to ``end``.

    A non-positive result means the endpoints were extracted in the wrong
    order (or are identical) and is rejected with None rather than negated.
    """
    length = end.total_length_units - start.total_length_units
    if length <= 0:
        return None
    return length


@dataclass(frozen=True)
class RangeEstimate:
    """Estimated length of an open-ended range (``13+00 to End``).

    Attributes:
        length: Estimated length in feet
        end_station: Document-wide maximum station used as the end
        estimated: Always True; the value is a fallback, not a measurement
        confidence: Heuristic confidence, kept below drawing-label values
    """

    length: float
    end_station: Station
    estimated: bool = True
    confidence: float = 0.5


def estimate_open_range(
    start: Station,
    document_max_station: Optional[Station],
) -> Optional[RangeEstimate]:
    """Estimate an open-ended range from the largest station seen in the document.

    Returns None when no maximum is known or it does not lie after ``start``.
    """
    if document_max_station is None:
        return None
    length = range_length(start, document_max_station)
    if length is None:
        return None
    return RangeEstimate(length=length, end_station=document_max_station)


def extract_stations_from_text(text: Optional[str]) -> list[Station]:
    """All distinct stations mentioned in free text, in order of appearance."""
    if not text:
        return []

    seen: set[float] = set()
    stations: list[Station] = []
    for match in _STATION_IN_TEXT.finditer(text):
        station = parse(match.group(1))
        if station is None or station.total_length_units in seen:
            continue
        seen.add(station.total_length_units)
        stations.append(station)
    return stations


def find_max_station(texts: Iterable[Optional[str]]) -> Optional[Station]:
    """Largest station across a collection of texts (e.g. every chunk of a document)."""
    best: Optional[Station] = None
    for text in texts:
        for station in extract_stations_from_text(text):
            if best is None or station.total_length_units > best.total_length_units:
                best = station
    return best


def is_strict_station(text: Optional[str]) -> bool:
    """True when text is exactly a drawing-label station like ``13+00`` or ``4+38.83``."""
    return bool(text and STRICT_STATION_PATTERN.match(text.strip()))

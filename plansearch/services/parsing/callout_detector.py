"""Callout box detection in extracted plan text.

Plan sheets list the components installed at a station in boxed callouts::

    WATER LINE 'A' STA 13+00
    - 1 - 12-IN GATE VALVE AND VALVE BOX
    - 1 - 12-IN X 8-IN TEE
    - 1 - 12-IN PLUG

The detector scans line by line: a header line opens a callout and the
bullet/numbered lines after it are consumed as components until the first
non-component line closes it.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from plansearch.services.parsing.station_parser import Station, parse as parse_station

# Header patterns: group 1 is the system identifier, group 2 the station
CALLOUT_HEADER_PATTERNS = [
    re.compile(r"WATER\s+LINE\s+['\"]?([A-Z\d-]+)['\"]?\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"\b(WL)[-_]([A-Z\d]+)\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"STORM\s+DRAIN\s+['\"]?([A-Z\d-]+)['\"]?\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"\b(SD)[-_]([A-Z\d]+)\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"(?:SANITARY\s+)?SEWER\s+(?:LINE\s+)?['\"]?([A-Z\d-]+)['\"]?\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"\b(SS)[-_]([A-Z\d]+)\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"FIRE\s+(?:PROTECTION\s+)?LINE\s+['\"]?([A-Z\d-]+)['\"]?\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"\b(FP)[-_]([A-Z\d]+)\s+STA\s+([\d+.]+)", re.I),
    re.compile(r"(?:UTILITY\s+)?LINE\s+['\"]?([A-Z\d-]+)['\"]?\s+(?:AT\s+)?STA(?:TION)?\s+([\d+.]+)", re.I),
]

_SYSTEM_TYPE_PATTERN = re.compile(r"(WATER\s+LINE|STORM\s+DRAIN|SEWER|FIRE.*?LINE)", re.I)

_SYSTEM_CODES = {
    "WL": "WATER LINE",
    "SD": "STORM DRAIN",
    "SS": "SEWER",
    "FP": "FIRE LINE",
}

COMPONENT_LINE_PATTERNS = [
    # "- 1 - 12-IN GATE VALVE AND VALVE BOX"
    re.compile(r"^\s*[-•*]\s*(\d+)\s*[-–]\s*(.+)$", re.I),
    # "1 - 12-IN GATE VALVE"
    re.compile(r"^\s*(\d+)\s*[-–]\s*([A-Z\d-].+)$", re.I),
    # "(1) 12-IN GATE VALVE"
    re.compile(r"^\s*\((\d+)\)\s*(.+)$", re.I),
]

_UNIT = r"(?:INCH|IN|\"|FOOT|FT|')(?![A-Z])"
SIZE_PATTERN = re.compile(
    rf"(\d+(?:\.\d+)?[-\s]?{_UNIT}(?:\s*[×xX]\s*\d+(?:\.\d+)?[-\s]?(?:{_UNIT})?)?)",
    re.I,
)

_QUICK_PATTERNS = [
    re.compile(r"(?:WATER|STORM|SEWER|FIRE).*STA\s+[\d+.]", re.I),
    re.compile(r"[-•*]\s*\d+\s*[-–]\s*\d+[-\s]?IN", re.I),
]

# Chunks carrying real component or crossing data
_COMPONENT_INDICATORS = [
    re.compile(r"\d+\s*-\s*\d+.*(?:VALVE|TEE|BEND|CAP|COUPLING|REDUCER|HYDRANT|ARV|SLEEVE|PLUG)", re.I),
    re.compile(r"GATE\s*VALVE", re.I),
    re.compile(r"FIRE\s*HYDRANT", re.I),
    re.compile(r"AIR\s*RELEASE", re.I),
    re.compile(r"TAPPING\s*SLEEVE", re.I),
    re.compile(r"THRUST\s*BLOCK", re.I),
    re.compile(r"BLOW.?OFF", re.I),
    re.compile(r"SERVICE\s*(?:CONNECTION|LATERAL)", re.I),
    re.compile(r"\d+-IN\s+(?:DI|PVC|HDPE|STEEL|CI)\s+PIPE", re.I),
    re.compile(r"ELEC\s+\d", re.I),
    re.compile(r"\bSS\b.*\d+\.\d+", re.I),
    re.compile(r"\bSTM\b.*\d+\.\d+", re.I),
]

_MATCH_LINE = re.compile(r"MATCH\s*LINE", re.I)
_NAVIGATION = re.compile(r"(?:MATCH\s*LINE|SEE\s+SHEET|PLAN\s*-|PROFILE\s*-|KEY\s*PLAN|STA\s+\d)", re.I)
NAVIGATION_DENSITY_THRESHOLD = 0.4


@dataclass(frozen=True)
class Component:
    """One line item inside a callout box.

    Attributes:
        quantity: Count, at least 1
        name: Component name with the size removed (e.g. "GATE VALVE AND VALVE BOX")
        full_description: Text after the quantity
        size: Size token such as "12-IN", if present
    """

    quantity: int
    name: str
    full_description: str
    size: Optional[str] = None


@dataclass(frozen=True)
class CalloutBox:
    """A detected callout box.

    Attributes:
        header: Header line as written
        system_name: Normalized system label, e.g. "WATER LINE 'A'"
        station_text: Station as written in the header
        station: Parsed station, None when the header station is malformed
        components: Component lines in order
        source_span: [start, end) character offsets into the source text
        confidence: Heuristic score; grows with the number of components
        full_text: Header plus consumed component lines
    """

    header: str
    system_name: str
    station_text: str
    station: Optional[Station]
    components: Tuple[Component, ...]
    source_span: Tuple[int, int]
    confidence: float
    full_text: str


@dataclass
class CalloutMetadata:
    """Chunk-level tags derived from the callouts it contains."""

    is_callout_box: bool
    contains_components: bool
    component_list: List[str] = field(default_factory=list)
    component_count: int = 0
    system_name: Optional[str] = None
    station: Optional[str] = None


def callout_confidence(component_count: int) -> float:
    """0.7 for a bare header, 0.9 with components, 0.95 with three or more."""
    if component_count >= 3:
        return 0.95
    if component_count >= 1:
        return 0.9
    return 0.7


def match_callout_header(line: str) -> Optional[Tuple[str, str]]:
    """Return (system_name, station_text) when the line is a callout header."""
    for pattern in CALLOUT_HEADER_PATTERNS:
        match = pattern.search(line)
        if not match:
            continue

        groups = match.groups()
        if len(groups) == 3:
            code, identifier, station_text = groups
            system_type = _SYSTEM_CODES[code.upper()]
        else:
            identifier, station_text = groups
            type_match = _SYSTEM_TYPE_PATTERN.search(line)
            system_type = type_match.group(1) if type_match else "LINE"

        system_type = re.sub(r"\s+", " ", system_type.upper())
        return f"{system_type} '{identifier.upper()}'", station_text

    return None


def parse_component_line(line: str) -> Optional[Component]:
    """Parse a bullet or numbered component line."""
    for pattern in COMPONENT_LINE_PATTERNS:
        match = pattern.match(line)
        if not match:
            continue

        quantity = int(match.group(1))
        if quantity < 1:
            return None

        description = match.group(2).strip()
        size_match = SIZE_PATTERN.search(description)
        size = size_match.group(1).strip() if size_match else None

        name = description
        if size:
            name = SIZE_PATTERN.sub("", description, count=1).strip()
            name = re.sub(r"^[-–\s]+", "", name).strip()

        return Component(
            quantity=quantity,
            name=name,
            full_description=description,
            size=size.upper() if size else None,
        )

    return None


def detect_callouts(text: Optional[str]) -> List[CalloutBox]:
    """Find every callout box in ``text``."""
    if not text:
        return []

    callouts: List[CalloutBox] = []
    current: Optional[Dict[str, Any]] = None
    char_index = 0

    def close(end_index: int) -> None:
        components = tuple(current["components"])
        callouts.append(
            CalloutBox(
                header=current["header"],
                system_name=current["system_name"],
                station_text=current["station_text"],
                station=parse_station(current["station_text"]),
                components=components,
                source_span=(current["start"], end_index),
                confidence=callout_confidence(len(components)),
                full_text="\n".join(current["lines"]),
            )
        )

    for line in text.split("\n"):
        stripped = line.strip()
        header = match_callout_header(line)

        if header:
            if current is not None:
                close(char_index)
            system_name, station_text = header
            current = {
                "header": stripped,
                "system_name": system_name,
                "station_text": station_text,
                "components": [],
                "start": char_index,
                "lines": [line],
            }
        elif current is not None and stripped:
            component = parse_component_line(stripped)
            if component:
                current["components"].append(component)
                current["lines"].append(line)
            elif current["components"]:
                close(char_index)
                current = None

        char_index += len(line) + 1

    if current is not None:
        close(len(text))

    return callouts


def extract_callout_metadata(text: Optional[str]) -> CalloutMetadata:
    """Summarize callouts in a chunk for tagging at ingestion time."""
    callouts = detect_callouts(text)
    if not callouts:
        return CalloutMetadata(is_callout_box=False, contains_components=False)

    primary = callouts[0]
    components = [component for callout in callouts for component in callout.components]

    return CalloutMetadata(
        is_callout_box=True,
        contains_components=bool(components),
        component_list=[component.name for component in components],
        component_count=len(components),
        system_name=primary.system_name,
        station=primary.station_text,
    )


def has_callout_box_pattern(text: Optional[str]) -> bool:
    """Cheap pre-check without a full scan."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in _QUICK_PATTERNS)


def split_preserving_callouts(text: str, max_chunk_size: int = 1000) -> List[Dict[str, Any]]:
    """Split text into chunks, never cutting through a callout box.

    Text between callouts is split on line boundaries to stay under
    ``max_chunk_size``; callouts are emitted whole regardless of size.
    """
    callouts = detect_callouts(text)
    if not callouts:
        return [{"text": piece, "has_callout": False} for piece in _split_lines(text, max_chunk_size)]

    chunks: List[Dict[str, Any]] = []
    cursor = 0
    for callout in callouts:
        start, end = callout.source_span
        if start > cursor:
            for piece in _split_lines(text[cursor:start], max_chunk_size):
                chunks.append({"text": piece, "has_callout": False})

        chunks.append({
            "text": callout.full_text,
            "has_callout": True,
            "metadata": extract_callout_metadata(callout.full_text),
        })
        cursor = max(cursor, end)

    if cursor < len(text):
        for piece in _split_lines(text[cursor:], max_chunk_size):
            chunks.append({"text": piece, "has_callout": False})

    return chunks


def _split_lines(text: str, max_chunk_size: int) -> List[str]:
    pieces: List[str] = []
    buffer: List[str] = []
    size = 0
    for line in text.split("\n"):
        if buffer and size + len(line) + 1 > max_chunk_size:
            pieces.append("\n".join(buffer).strip())
            buffer, size = [], 0
        buffer.append(line)
        size += len(line) + 1
    if buffer:
        pieces.append("\n".join(buffer).strip())
    return [piece for piece in pieces if piece]


def has_component_data(content: str) -> bool:
    return any(pattern.search(content) for pattern in _COMPONENT_INDICATORS)


def is_match_line_only_chunk(content: Optional[str]) -> bool:
    """True for sheet-navigation noise with no component data.

    A chunk is noise when it has a match-line marker, none of the component
    indicators, and navigation phrases make up more than 40% of its words.
    """
    if not content or not _MATCH_LINE.search(content):
        return False
    if has_component_data(content):
        return False

    words = content.split()
    if not words:
        return False

    navigation_words = sum(len(match.group(0).split()) for match in _NAVIGATION.finditer(content))
    return navigation_words > 0 and navigation_words / len(words) > NAVIGATION_DENSITY_THRESHOLD

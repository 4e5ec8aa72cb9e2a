"""Utility abbreviation dictionary and crossing indicator extraction.

Profile views mark crossing utilities with short labels (ELEC, SS, STM...)
next to an elevation rather than the word "crossing". This module normalizes
those labels and pulls crossing indicators out of extracted page text.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

UTILITY_ABBREVIATIONS: Dict[str, Dict] = {
    "ELEC": {"full_name": "Electrical", "category": "power", "aliases": ["E", "ELECTRIC", "ELECTRICAL"]},
    "SS": {"full_name": "Sanitary Sewer", "category": "sewer", "aliases": ["S", "SAN SEWER", "SANITARY", "SANITARY SEWER"]},
    "STM": {"full_name": "Storm Drain", "category": "storm", "aliases": ["SD", "D", "STORM", "STORM DRAIN", "STORM SEWER"]},
    "W": {"full_name": "Water Line", "category": "water", "aliases": ["WL", "WATER", "WATER LINE", "WATER MAIN"]},
    "GAS": {"full_name": "Gas Line", "category": "gas", "aliases": ["G", "GAS LINE", "NAT GAS", "NATURAL GAS"]},
    "TEL": {"full_name": "Telephone/Telecom", "category": "telecom", "aliases": ["T", "TELEPHONE", "TELECOM", "TEL/CATV", "CATV", "CABLE"]},
    "FO": {"full_name": "Fiber Optic", "category": "telecom", "aliases": ["FIBER", "FIBER OPTIC", "FIB OPT"]},
    "EXIST": {"full_name": "Existing Utility", "category": "modifier", "aliases": ["EX", "EXISTING"]},
    "PROP": {"full_name": "Proposed Utility", "category": "modifier", "aliases": ["NEW", "PROPOSED"]},
    "OHE": {"full_name": "Overhead Electric", "category": "power", "aliases": ["OH ELEC", "OVERHEAD ELEC"]},
    "UGE": {"full_name": "Underground Electric", "category": "power", "aliases": ["UG ELEC", "UNDERGROUND ELEC"]},
    "IRR": {"full_name": "Irrigation", "category": "water", "aliases": ["IRRIGATION", "IRR LINE"]},
    "RW": {"full_name": "Reclaimed Water", "category": "water", "aliases": ["RECLAIMED", "RECLAIMED WATER"]},
    "FM": {"full_name": "Force Main", "category": "sewer", "aliases": ["FORCE MAIN", "F.M."]},
}

UTILITY_ALIAS_MAP: Dict[str, str] = {}
for _code, _info in UTILITY_ABBREVIATIONS.items():
    UTILITY_ALIAS_MAP[_code] = _code
    for _alias in _info["aliases"]:
        UTILITY_ALIAS_MAP[_alias] = _code

CROSSING_KEYWORDS = {
    "primary": [
        "cross", "crossing", "crosses", "intersect", "intersects", "intersection",
        "conflict", "conflicts", "interference", "interferes",
    ],
    "utility_types": [
        "electrical", "elec", "sewer", "sanitary", "storm", "water", "gas",
        "telecom", "telephone", "fiber", "cable", "utility", "utilities",
    ],
    "questions": [
        "what utilities", "which utilities", "what lines", "which lines",
        "other systems", "existing utilities", "what crosses", "what intersects",
        "any conflicts", "any crossings", "list crossings", "show crossings",
        "find crossings",
    ],
}

_CODES = r"ELEC|E|SS|S|STM|SD|D|W|WL|GAS|G|TEL|T|FO|OHE|UGE|IRR|RW|FM"

CROSSING_PATTERNS = {
    "utility_with_elevation": re.compile(
        rf"\b({_CODES})\b\s+(?:INV\s+)?(?:ELEV\s*=?\s*)?(\d+\.?\d*)\s*±?", re.I
    ),
    "station": re.compile(r"\b(?:STA\.?\s*)?(\d{1,3}\+\d{2}(?:\.\d{2})?)\b", re.I),
    "existing_utility": re.compile(
        r"\b(EXIST(?:ING)?|EX)\s+(ELEC|SS|STM|SD|W|WL|GAS|TEL|FO|WATER LINE|WATER|SEWER|STORM|ELECTRIC|GAS LINE)\b", re.I
    ),
    "proposed_utility": re.compile(
        r"\b(PROP(?:OSED)?|NEW)\s+(ELEC|SS|STM|SD|W|WL|GAS|TEL|FO|WATER|SEWER|STORM|ELECTRIC)\b", re.I
    ),
    "sized_utility": re.compile(
        r"\b(\d+)\s*-?\s*(?:INCH|IN|\")\s+(ELEC|E|SS|S|STM|SD|D|W|WL|GAS|G|TEL|T|FO)\b", re.I
    ),
}

# Pipe sizes such as 12-IN, 12 INCH, 12", 12X8
PIPE_SIZE_PATTERN = re.compile(r"\b\d+(?:\.\d+)?\s*-?\s*(?:INCH|IN)\b|\b\d+(?:\.\d+)?\s*\"|\b\d+\s*[×X]\s*\d+\b", re.I)

COMPONENT_KEYWORD_PATTERN = re.compile(
    r"\b(?:VALVE|TEE|BEND|ELBOW|DEFL(?:ECTION)?|CAP|PLUG|COUPLING|REDUCER|HYDRANT|SLEEVE|ARV|FITTING)\b",
    re.I,
)


@dataclass
class CrossingIndicator:
    """A utility crossing hint found in page text."""

    utility_code: str
    utility_full_name: str
    raw_match: str
    elevation: Optional[float] = None
    station: Optional[str] = None
    is_existing: bool = False
    is_proposed: bool = False
    size: Optional[str] = None
    sources: List[str] = field(default_factory=list)


def normalize_utility_code(text: Optional[str]) -> Optional[str]:
    """Map an abbreviation or alias to its standard code."""
    if not text:
        return None
    return UTILITY_ALIAS_MAP.get(text.strip().upper())


def get_utility_full_name(code: str) -> str:
    normalized = normalize_utility_code(code)
    if normalized:
        return UTILITY_ABBREVIATIONS[normalized]["full_name"]
    return code


def get_utility_category(code: str) -> Optional[str]:
    normalized = normalize_utility_code(code)
    return UTILITY_ABBREVIATIONS[normalized]["category"] if normalized else None


def contains_crossing_keywords(text: Optional[str]) -> bool:
    """True for a crossing keyword plus a utility mention, or a crossing question phrase."""
    if not text:
        return False
    lower = text.lower()

    has_primary = any(keyword in lower for keyword in CROSSING_KEYWORDS["primary"])
    has_utility_type = any(keyword in lower for keyword in CROSSING_KEYWORDS["utility_types"])
    has_question = any(phrase in lower for phrase in CROSSING_KEYWORDS["questions"])

    return (has_primary and has_utility_type) or has_question


def normalize_size(size: Optional[str]) -> Optional[str]:
    """``12 inch`` / ``12"`` / ``12-in`` -> ``12-IN``."""
    if not size:
        return None
    match = re.search(r"(\d+(?:\.\d+)?)\s*-?\s*(?:INCH|IN|\")", size, re.I)
    if match:
        return f"{match.group(1)}-IN"
    return size.strip().upper()


def is_primary_component_label(description: Optional[str], primary_size: Optional[str] = None) -> bool:
    """True when a label describes a component of the primary utility.

    A label carrying the primary utility's pipe size (e.g. "12-IN") is a
    component of that utility, as is any sized label that also names a
    fitting (tee, bend, deflection, valve...). Neither is ever a crossing.
    """
    if not description:
        return False

    target = normalize_size(primary_size)
    if target:
        for match in PIPE_SIZE_PATTERN.finditer(description):
            if normalize_size(match.group(0)) == target:
                return True

    return bool(PIPE_SIZE_PATTERN.search(description) and COMPONENT_KEYWORD_PATTERN.search(description))


def extract_crossing_indicators(text: Optional[str], primary_size: Optional[str] = None) -> List[CrossingIndicator]:
    """Pull crossing indicators from profile-view text.

    Lines that are component labels of the primary utility are skipped
    entirely. Stations on the same line are attached first; otherwise
    indicators take the document's stations in order of appearance.
    """
    if not text:
        return []

    indicators: List[CrossingIndicator] = []
    all_stations = [match.group(1) for match in CROSSING_PATTERNS["station"].finditer(text)]

    for line in text.split("\n"):
        if not line.strip() or is_primary_component_label(line, primary_size):
            continue

        line_station_match = CROSSING_PATTERNS["station"].search(line)
        line_station = line_station_match.group(1) if line_station_match else None
        by_code: Dict[str, CrossingIndicator] = {}

        def upsert(code_text: str, raw: str, source: str) -> Optional[CrossingIndicator]:
            code = normalize_utility_code(code_text)
            if not code or UTILITY_ABBREVIATIONS[code]["category"] == "modifier":
                return None
            indicator = by_code.get(code)
            if indicator is None:
                indicator = CrossingIndicator(
                    utility_code=code,
                    utility_full_name=get_utility_full_name(code),
                    raw_match=raw.strip(),
                    station=line_station,
                )
                by_code[code] = indicator
            indicator.sources.append(source)
            return indicator

        for match in CROSSING_PATTERNS["utility_with_elevation"].finditer(line):
            # "STA 13+00" style numbers are stations, not elevations
            if "+" in line[match.end(2):match.end(2) + 1]:
                continue
            indicator = upsert(match.group(1), match.group(0), "elevation")
            if indicator and indicator.elevation is None:
                indicator.elevation = float(match.group(2))

        for match in CROSSING_PATTERNS["existing_utility"].finditer(line):
            indicator = upsert(match.group(2), match.group(0), "existing")
            if indicator:
                indicator.is_existing = True

        for match in CROSSING_PATTERNS["proposed_utility"].finditer(line):
            indicator = upsert(match.group(2), match.group(0), "proposed")
            if indicator:
                indicator.is_proposed = True

        for match in CROSSING_PATTERNS["sized_utility"].finditer(line):
            indicator = upsert(match.group(2), match.group(0), "sized")
            if indicator:
                indicator.size = f"{match.group(1)}-IN"

        indicators.extend(by_code.values())

    for idx, indicator in enumerate(indicators):
        if indicator.station is None and idx < len(all_stations):
            indicator.station = all_stations[idx]

    return indicators


def format_crossing_table(indicators: List[CrossingIndicator], system_name: Optional[str] = None) -> str:
    """Markdown table of crossing indicators."""
    if not indicators:
        return "No utility crossing indicators found in extracted text."

    header = f"## Utility Crossings - {system_name}\n\n" if system_name else "## Utility Crossings\n\n"
    rows = [
        "| Station | Crossing Utility | Elevation/Depth | Type | Size | Notes |",
        "|---------|------------------|-----------------|------|------|-------|",
    ]
    for indicator in indicators:
        kind = "Existing" if indicator.is_existing else "Proposed" if indicator.is_proposed else "Unknown"
        elevation = f"{indicator.elevation}± ft" if indicator.elevation is not None else "Not specified"
        rows.append(
            f"| {indicator.station or 'Not specified'} "
            f"| {indicator.utility_full_name} ({indicator.utility_code}) "
            f"| {elevation} | {kind} | {indicator.size or '-'} | {indicator.raw_match or '-'} |"
        )

    return header + "\n".join(rows) + f"\n\n**Total:** {len(indicators)} utility crossing(s) identified"

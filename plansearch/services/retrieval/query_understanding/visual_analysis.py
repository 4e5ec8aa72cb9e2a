"""
Visual-inspection eligibility.

Counting or locating physical components is unreliable from indexed text, so
such questions are handed to direct inspection of the page images. This
module decides eligibility and extracts the task parameters; building and
sending the image request is the application layer's job.
"""

import re
from typing import Optional

from plansearch.schemas.query import QueryClassification, VisualAnalysisRequest, VisualTaskType
from plansearch.services.retrieval.query_understanding.query_classifier import extract_size_filter
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

COMPONENT_KEYWORDS = "|".join([
    r"valves?",
    r"tees?",
    r"fittings?",
    r"hydrants?",
    r"caps?",
    r"plugs?",
    r"bends?",
    r"elbows?",
    r"manholes?",
    r"mh",
    r"catch\s*basins?",
    r"cb",
    r"arvs?",
    r"air\s*release",
    r"defl(?:ection)?s?",
    r"vert\s*defl",
    r"couplings?",
    r"reducers?",
    r"tapping\s*sleeves?",
    r"tap\s*sleeves?",
    r"t\.s\.",
    r"hot\s*taps?",
])
_COMPONENT = rf"\b(?:{COMPONENT_KEYWORDS})(?!\w)"

_BEND_ANGLE = r"\d+(?:\.\d+)?\s*[°º]?\s*bend|quarter\s*bend|eighth\s*bend|[¼⅛]\s*bend|1/16\s*bend|1/32\s*bend"

VISUAL_TRIGGERS = [
    # Component counting
    re.compile(rf"how\s+many.*{_COMPONENT}", re.I),
    re.compile(rf"\bcount.*{_COMPONENT}", re.I),
    re.compile(rf"number\s+of.*{_COMPONENT}", re.I),
    re.compile(rf"\btotal.*{_COMPONENT}", re.I),
    re.compile(rf"\blist.*{_COMPONENT}", re.I),
    re.compile(rf"\btake\s*-?off.*{_COMPONENT}", re.I),
    re.compile(rf"\d+\s*-?\s*in(?:ch)?\b.*{_COMPONENT}", re.I),
    re.compile(_BEND_ANGLE, re.I),
    # Utility crossings
    re.compile(r"\bwhat\b.*\bcross(?:ing|es)?\b", re.I),
    re.compile(r"utilit(?:y|ies).*\bcross(?:ing|es)?\b", re.I),
    re.compile(r"\b(?:find|list)\b.*\bcrossings?\b", re.I),
    # Verification
    re.compile(r"\b(?:verify|confirm|double.?check)\b", re.I),
    re.compile(r"actually.*how\s+many", re.I),
    re.compile(r"correct.*count", re.I),
    re.compile(r"re.?examine|re.?analy[sz]e|look.*again", re.I),
    # Explicit inspection
    re.compile(r"can\s+you\s+see", re.I),
    re.compile(r"\b(?:look\s+at|examine)\b.*\bsheet", re.I),
]

# Checked in order; specific types before their generic family
COMPONENT_TYPES = [
    (re.compile(r"gate\s*valve", re.I), "gate valve"),
    (re.compile(r"butterfly\s*valve", re.I), "butterfly valve"),
    (re.compile(r"check\s*valve", re.I), "check valve"),
    (re.compile(r"arv\s*tee|air\s*release\s*(?:valve\s*)?tee", re.I), "arv tee"),
    (re.compile(r"air\s*release\s*valve|\barv\b", re.I), "air release valve"),
    (re.compile(r"blow.?off", re.I), "blow-off"),
    (re.compile(r"fire\s*hydrant|\bfh\b|\bhydrant", re.I), "fire hydrant"),
    (re.compile(r"manhole|\bmh\b|m\.h\.", re.I), "manhole"),
    (re.compile(r"catch\s*basin|\bcb\b|c\.b\.|storm\s*inlet|drain\s*inlet", re.I), "catch basin"),
    (re.compile(r"\btees?\b", re.I), "tee"),
    (re.compile(r"defl(?:ection)?\s*coupling|vert(?:ical)?\s*defl|horiz(?:ontal)?\s*defl", re.I), "deflection"),
    (re.compile(r"90\s*[°º]?\s*bend|quarter\s*bend|¼\s*bend", re.I), "90° bend"),
    (re.compile(r"45\s*[°º]?\s*bend|eighth\s*bend|⅛\s*bend", re.I), "45° bend"),
    (re.compile(r"22\.?5\s*[°º]?\s*bend|1/16\s*bend", re.I), "22.5° bend"),
    (re.compile(r"11\.?25\s*[°º]?\s*bend|1/32\s*bend", re.I), "11.25° bend"),
    (re.compile(r"\bbends?\b|\belbows?\b", re.I), "bend"),
    (re.compile(r"tapping\s*sleeve|tap\s*sleeve|\bt\.s\.|hot\s*tap|tapping\s*saddle", re.I), "tapping sleeve"),
    (re.compile(r"coupling", re.I), "coupling"),
    (re.compile(r"reducer", re.I), "reducer"),
    (re.compile(r"\bcaps?\b", re.I), "cap"),
    (re.compile(r"\bplugs?\b", re.I), "plug"),
    (re.compile(r"valve", re.I), "valve"),
]

UTILITY_NAME_PATTERNS = [
    (re.compile(r"water\s*line\s*['\"]?([a-z])\b", re.I), "Water Line"),
    (re.compile(r"\bwl\s*-?\s*['\"]?([a-z])\b", re.I), "Water Line"),
    (re.compile(r"storm\s*drain\s*['\"]?([a-z])\b", re.I), "Storm Drain"),
    (re.compile(r"\bsd\s*-?\s*['\"]?([a-z])\b", re.I), "Storm Drain"),
    (re.compile(r"sewer\s*(?:line\s*)?['\"]?([a-z])\b", re.I), "Sewer"),
    (re.compile(r"\bss\s*-?\s*['\"]?([a-z])\b", re.I), "Sewer"),
]

_GENERIC_UTILITIES = [
    (re.compile(r"water\s*line", re.I), "Water Line"),
    (re.compile(r"storm\s*drain", re.I), "Storm Drain"),
    (re.compile(r"sewer", re.I), "Sewer"),
]

_SHEET_REFERENCE = re.compile(r"(?:sheet|drawing|page)\s+([\w\d-]+)", re.I)


def requires_visual_analysis(query: Optional[str]) -> bool:
    if not query:
        return False
    return any(trigger.search(query) for trigger in VISUAL_TRIGGERS)


def extract_component_type(query: str) -> Optional[str]:
    for pattern, component_type in COMPONENT_TYPES:
        if pattern.search(query):
            return component_type
    return None


def extract_utility_name(query: str) -> Optional[str]:
    """``Water Line A`` style name, or the bare family when no letter is given."""
    for pattern, family in UTILITY_NAME_PATTERNS:
        match = pattern.search(query)
        if match:
            return f"{family} {match.group(1).upper()}"
    for pattern, family in _GENERIC_UTILITIES:
        if pattern.search(query):
            return family
    return None


def determine_visual_task(query: str) -> VisualTaskType:
    lowered = query.lower()

    if extract_component_type(lowered) or re.search(r"\bcomponents?\b", lowered):
        if re.search(r"take\s*-?off", lowered):
            return VisualTaskType.MATERIAL_TAKEOFF
        return VisualTaskType.COUNT_COMPONENTS
    if re.search(_BEND_ANGLE, lowered):
        return VisualTaskType.COUNT_COMPONENTS
    if re.search(r"cross|crossing|conflict", lowered):
        return VisualTaskType.FIND_CROSSINGS
    if re.search(r"length|termination|\bbegin\b|\bend\b|total.*feet|\blf\b", lowered):
        return VisualTaskType.VERIFY_LENGTH
    if re.search(r"where|location|\bfind\b|locate", lowered):
        return VisualTaskType.LOCATE_FEATURE
    return VisualTaskType.GENERAL_INSPECTION


def build_visual_request(
    query: str,
    classification: Optional[QueryClassification] = None,
) -> Optional[VisualAnalysisRequest]:
    """Task parameters for a visually eligible query, or None."""
    if not requires_visual_analysis(query):
        return None

    sheet_number = classification.sheet_number if classification else None
    if not sheet_number:
        match = _SHEET_REFERENCE.search(query)
        sheet_number = match.group(1).upper() if match else None

    request = VisualAnalysisRequest(
        query=query,
        task_type=determine_visual_task(query),
        component_type=extract_component_type(query),
        size_filter=extract_size_filter(query),
        utility_name=extract_utility_name(query),
        sheet_number=sheet_number,
    )
    LOGGER.info(
        "Visual analysis required",
        extra={
            "task_type": request.task_type.value,
            "component_type": request.component_type,
            "size_filter": request.size_filter,
            "sheet_number": request.sheet_number,
        },
    )
    return request

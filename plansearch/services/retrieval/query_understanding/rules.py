"""
Ordered classification rule table.

Each rule maps a set of regex patterns to a classification effect. Rules are
tried top to bottom and the first rule with a matching pattern decides the
query type. The confidences are heuristic scores for ordering, not
probabilities.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Pattern, Tuple

from plansearch.schemas.query import QueryIntent, QueryType
from plansearch.schemas.vision import SheetType
from plansearch.services.parsing.utility_abbreviations import contains_crossing_keywords


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(pattern, re.I) for pattern in patterns)


@dataclass(frozen=True)
class ClassificationRule:
    """
    One row of the rule table.

    Attributes:
        query_type: Type assigned when the rule fires
        confidence: Heuristic score assigned when the rule fires
        intent: Retrieval intent assigned when the rule fires
        patterns: Any match fires the rule
        preferred_sheet_types: Sheet types favored by re-ranking
        needs_direct_lookup: Try structured records first
        needs_vector_search: Run similarity search
        needs_vision: Page images are useful for this type
        extra_check: Optional predicate on the raw query that also fires the rule
        keywords: Fixed search keywords for this type
    """

    query_type: QueryType
    confidence: float
    intent: QueryIntent
    patterns: Tuple[Pattern, ...]
    preferred_sheet_types: Tuple[SheetType, ...] = ()
    needs_direct_lookup: bool = False
    needs_vector_search: bool = True
    needs_vision: bool = False
    extra_check: Optional[Callable[[str], bool]] = None
    keywords: Tuple[str, ...] = field(default_factory=tuple)

    def first_match(self, text: str) -> Optional[re.Match]:
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return match
        return None

    def matches(self, normalized: str, raw: str) -> bool:
        if self.first_match(normalized):
            return True
        return bool(self.extra_check and self.extra_check(raw))


# Group 1 of each quantity pattern is the item being measured. The
# "total length of X" form comes first so its object wins over the
# broader "total X" form.
QUANTITY_PATTERNS = _compile(
    r"(?:total|entire|complete)\s+(?:length|amount|quantity|footage)\s+(?:of|for)\s+(.+?)(?:\?|$)",
    r"(?:how\s+many|count|total|quantity|takeoff|list\s+all)\s+(.+?)(?:\?|$)",
    r"(?:give\s+me\s+a\s+takeoff|provide\s+a\s+takeoff)\s+(?:of|for)?\s*(.+?)(?:\?|$)",
    r"(?:count\s+all|list\s+all|enumerate)\s+(.+?)(?:\?|$)",
    r"(?:what|how\s+much)\s+(?:is|of)?\s*(?:the)?\s+(?:total|complete)\s+(.+?)(?:\?|$)",
    r"(?:linear\s+feet|lf|footage)\s+(?:of|for|in)\s+(.+?)(?:\?|$)",
    r"how\s+long\s+(?:is|are)?\s*(?:the)?\s*(.+?)(?:\?|$)",
    r"(?:what|what's)\s+(?:is)?\s*(?:the)?\s*length\s+(?:of|for)\s+(.+?)(?:\?|$)",
    r"(?:length|footage|amount|sum)\s+of\s+(.+?)(?:\?|$)",
)

AGGREGATION_PATTERNS = _compile(
    r"(?:total|sum|aggregate|combined)\s+(?:length|amount|quantity|footage|volume|area)\s+(?:of|for)\s+(.+?)(?:\?|$)",
    r"(?:what|how much)\s+(?:is|are)?\s*(?:the)?\s+(?:total|sum|aggregate)\s+(.+?)(?:\?|$)",
    r"(?:add up|sum up|total up)\s+(?:all)?\s*(.+?)(?:\?|$)",
    r"(?:sum|total)\s+all\s+(.+?)(?:\?|$)",
)

# Signals that top-k search would under-count
COMPLETE_DATA_SIGNALS = _compile(
    r"\btake\s*-?off\b",
    r"\bhow\s+many\b",
    r"\bcount(?:\s+all)?\b",
    r"\blist\s+all\b",
    r"\benumerate\b",
    r"\b(?:total|entire|complete)\b",
)

INFORMATIONAL_PATTERNS = _compile(
    r"(?:what\s+is|what\s+does|explain|describe|tell\s+me\s+about)\s+(.+?)(?:\?|$)",
    r"(?:what\s+are\s+the\s+requirements|what\s+are\s+the\s+specs)\s+(?:for|of)?\s*(.+?)(?:\?|$)",
    r"(?:how\s+does|why\s+does|when\s+should)\s+(.+?)(?:\?|$)",
)

LOCATION_PATTERNS = _compile(
    r"(?:where|location|position)\s+(?:is|are|of)\s+(.+?)(?:\?|$)",
    r"(?:at|near|around)\s+(?:station|sta)\s+([\d+.]+)",
    r"(?:show|find)\s+(?:me)?\s*(?:the)?\s+(?:location|position)\s+(?:of)\s+(.+?)(?:\?|$)",
    r"what\s+(?:is|are)\s+(?:at|near)\s+(?:station|sta)\s+([\d+.]+)",
)

SPECIFICATION_PATTERNS = _compile(
    r"(?:spec|specification|requirement|standard)(?:s)?\s+(?:for|of)\s+(.+?)(?:\?|$)",
    r"what\s+(?:material|type|size|diameter|class)\s+(?:of|is|for)\s+(.+?)(?:\?|$)",
    r"(?:shall|must|required|minimum|maximum)\s+(.+?)(?:\?|$)",
    r"(?:material|bedding|backfill|installation)\s+(?:for|requirement|spec)",
)

DETAIL_PATTERNS = _compile(
    r"(?:detail|section|typical)\s+([\w\d/-]+)",
    r"(?:how|what)\s+(?:to|do|does)\s+(?:install|construct|build)\s+(.+?)(?:\?|$)",
    r"(?:show|find)\s+(?:me)?\s*(?:the)?\s+detail\s+(?:for|of)\s+(.+?)(?:\?|$)",
    r"(?:construction|installation)\s+(?:detail|method|procedure)",
)

REFERENCE_PATTERNS = _compile(
    r"(?:sheet|drawing)\s+([\w\d-]+)",
    r"(?:see|refer to|reference)\s+sheet\s+([\w\d-]+)",
    r"(?:what|which)\s+sheet(?:s)?\s+(?:show|contain|have)\s+(.+?)(?:\?|$)",
)

PROJECT_SUMMARY_PATTERNS = _compile(
    r"(?:analyze|overview|understand|summarize|review)\s+(?:the|this|entire|complete|whole)?\s*project",
    r"(?:complete|full|entire)\s+project\s+(?:takeoff|analysis|overview|summary)",
    r"what'?s\s+in\s+(?:the|this)\s+project",
    r"(?:project|plan|set)\s+(?:overview|summary|analysis)",
    r"(?:show|tell|give)\s+(?:me)?\s*(?:a|the)?\s*project\s+(?:overview|summary)",
)

UTILITY_CROSSING_PATTERNS = _compile(
    r"(?:what|which|list|show|find)\s+(?:utilities?|lines?|systems?)\s+(?:cross|crosses|crossing|intersect|intersects)",
    r"(?:cross|crosses|crossing|intersect|intersects)\s+(?:the)?\s*(?:water|sewer|storm|electrical|gas|telecom|fiber|line)",
    r"(?:any|what|which|list)\s+(?:conflicts?|interferences?)\s+(?:with)?\s*(?:existing)?\s*(?:utilities?|lines?)",
    r"(?:existing|proposed)\s+(?:utilities?|lines?)\s+(?:that)?\s*(?:cross|conflict|interfere)",
    r"where\s+(?:does|do)\s+(?:the)?\s*(?:\w+\s+)?(?:utility|utilities|line|lines)\s+cross",
    r"(?:crossing|conflict)\s+(?:at|near)?\s*(?:station|sta)",
    r"(?:list|show|find|identify)\s+(?:all)?\s*(?:utility)?\s*(?:crossings?|conflicts?|interferences?)",
    r"(?:crossings?|conflicts?)\s+(?:with|along|at)\s+(?:the)?\s*(?:\w+\s+)?(?:line|alignment)",
)

CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        query_type=QueryType.QUANTITY,
        confidence=0.9,
        intent=QueryIntent.QUANTITATIVE,
        patterns=QUANTITY_PATTERNS,
        preferred_sheet_types=(SheetType.PLAN, SheetType.PROFILE, SheetType.TITLE, SheetType.SUMMARY),
        needs_direct_lookup=True,
    ),
    ClassificationRule(
        query_type=QueryType.LOCATION,
        confidence=0.85,
        intent=QueryIntent.LOCATIONAL,
        patterns=LOCATION_PATTERNS,
        preferred_sheet_types=(SheetType.PLAN, SheetType.PROFILE),
        needs_vision=True,
    ),
    ClassificationRule(
        query_type=QueryType.SPECIFICATION,
        confidence=0.8,
        intent=QueryIntent.INFORMATIONAL,
        patterns=SPECIFICATION_PATTERNS,
        preferred_sheet_types=(SheetType.SUMMARY, SheetType.LEGEND),
    ),
    ClassificationRule(
        query_type=QueryType.DETAIL,
        confidence=0.8,
        intent=QueryIntent.INFORMATIONAL,
        patterns=DETAIL_PATTERNS,
        preferred_sheet_types=(SheetType.DETAIL,),
        needs_vision=True,
    ),
    ClassificationRule(
        query_type=QueryType.REFERENCE,
        confidence=0.75,
        intent=QueryIntent.INFORMATIONAL,
        patterns=REFERENCE_PATTERNS,
    ),
    ClassificationRule(
        query_type=QueryType.PROJECT_SUMMARY,
        confidence=0.9,
        intent=QueryIntent.QUANTITATIVE,
        patterns=PROJECT_SUMMARY_PATTERNS,
        preferred_sheet_types=(SheetType.SUMMARY, SheetType.TITLE, SheetType.INDEX),
        needs_direct_lookup=True,
        needs_vector_search=False,
    ),
    ClassificationRule(
        query_type=QueryType.UTILITY_CROSSING,
        confidence=0.85,
        intent=QueryIntent.QUANTITATIVE,
        patterns=UTILITY_CROSSING_PATTERNS,
        preferred_sheet_types=(SheetType.PROFILE, SheetType.PLAN),
        needs_vector_search=False,
        needs_vision=True,
        extra_check=contains_crossing_keywords,
        keywords=("ELEC", "SS", "STM", "GAS", "TEL", "W", "FO", "EXIST", "EXISTING"),
    ),
)

GENERAL_CONFIDENCE = 0.5

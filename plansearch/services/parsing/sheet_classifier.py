"""Sheet-level structure detection.

Classifies a page's role in the drawing set from its extracted text and
chooses which pages are worth sending to vision analysis. Sheet types are
scoring hints; index sheets in particular are known to be unreliable.
"""

import re
from typing import List, Optional, Sequence

from plansearch.schemas.vision import SheetType
from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Checked in order; the first hit wins
SHEET_TYPE_PATTERNS = [
    (SheetType.INDEX, re.compile(r"\b(SHEET\s+INDEX|INDEX\s+OF\s+(?:SHEETS|DRAWINGS)|TABLE\s+OF\s+CONTENTS)\b", re.I)),
    (SheetType.PROFILE, re.compile(r"\b(PROFILE|ELEVATION|UTILITY\s+CROSSING|VERTICAL\s+ALIGNMENT|INVERT|RIM\s+ELEV)\b", re.I)),
    (SheetType.PLAN, re.compile(r"\b(PLAN\s+VIEW|PLAN\s+SHEET|HORIZONTAL\s+ALIGNMENT|LAYOUT|SITE\s+PLAN)\b", re.I)),
    (SheetType.DETAIL, re.compile(r"\b(STANDARD\s+DETAILS?|TYPICAL\s+DETAILS?|DETAIL\s+SHEET|MISCELLANEOUS\s+DETAILS)\b", re.I)),
    (SheetType.SUMMARY, re.compile(r"\b(SUMMARY|QUANTITIES|GENERAL\s+NOTES|PROJECT\s+DATA)\b", re.I)),
    (SheetType.LEGEND, re.compile(r"\b(LEGEND|ABBREVIATIONS)\b", re.I)),
]

# Only the head of the page is inspected; title blocks and headings live there
CLASSIFY_TEXT_LIMIT = 3000

SMALL_DOCUMENT_PAGES = 100
EDGE_PAGES = 10

TRADE_SHEET_PATTERNS = [
    re.compile(r"^CU\d+", re.I),    # civil utilities
    re.compile(r"^E-?\d+", re.I),   # electrical
    re.compile(r"^S-?\d+", re.I),   # structural / sewer
    re.compile(r"^SD\d+", re.I),    # storm drain
    re.compile(r"^SS\d+", re.I),    # sanitary sewer
    re.compile(r"^STM\d+", re.I),   # storm
    re.compile(r"^GR\d+", re.I),    # grading
    re.compile(r"^FP\d+", re.I),    # fire protection
    re.compile(r"^W\d+", re.I),     # water
    re.compile(r"^M-?\d+", re.I),   # mechanical
    re.compile(r"^P-?\d+", re.I),   # plumbing
    re.compile(r"^A-?\d+", re.I),   # architectural
]

_INDEX_SHEET_NUMBERS = {"i-1", "idx-1"}
_INDEX_CONTENT_PHRASES = ("sheet index", "table of contents", "index of sheets")
_SHEET_DESCRIPTION_HEADER = re.compile(r"\bsheet\b.*\bdescription\b", re.I)


def classify_sheet_type(text: Optional[str], page_number: int) -> SheetType:
    """Guess the sheet type of a page from its text.

    Page 1 is the title sheet. Otherwise keyword patterns decide, and pages
    2-3 without a match default to summary.
    """
    if page_number == 1:
        return SheetType.TITLE

    head = (text or "")[:CLASSIFY_TEXT_LIMIT]
    for sheet_type, pattern in SHEET_TYPE_PATTERNS:
        if pattern.search(head):
            return sheet_type

    if page_number <= 3:
        return SheetType.SUMMARY

    return SheetType.UNKNOWN


def is_likely_index_sheet(
    sheet_number: Optional[str],
    sheet_type: Optional[str],
    content: Optional[str],
) -> bool:
    """Index / table-of-contents check from metadata, sheet naming, or content."""
    if sheet_type and sheet_type.lower() in ("index", "toc"):
        return True

    if sheet_number:
        lowered = sheet_number.lower()
        if (
            "index" in lowered
            or "toc" in lowered
            or "table of contents" in lowered
            or lowered in _INDEX_SHEET_NUMBERS
        ):
            return True

    if content:
        lowered = content.lower()
        if any(phrase in lowered for phrase in _INDEX_CONTENT_PHRASES):
            return True
        if _SHEET_DESCRIPTION_HEADER.search(lowered):
            return True

    return False


def identify_critical_pages(
    total_pages: int,
    max_sheets: int = 200,
    sheet_names: Optional[Sequence[str]] = None,
) -> List[int]:
    """Pick 1-based page numbers to analyze.

    Documents up to 100 pages are analyzed in full. Larger sets keep the
    first and last ten pages, sample the middle evenly within the budget,
    and add any page whose sheet name matches a construction trade prefix.
    """
    if total_pages <= 0:
        return []

    if total_pages <= SMALL_DOCUMENT_PAGES:
        return list(range(1, total_pages + 1))

    LOGGER.info(
        "Sampling critical pages",
        extra={"total_pages": total_pages, "max_sheets": max_sheets},
    )

    critical = set(range(1, min(EDGE_PAGES, total_pages) + 1))
    critical.update(range(max(total_pages - EDGE_PAGES + 1, EDGE_PAGES + 1), total_pages + 1))

    remaining_budget = max(1, max_sheets - 2 * EDGE_PAGES)
    interval = max(1, (total_pages - 2 * EDGE_PAGES) // remaining_budget)

    for page in range(EDGE_PAGES + 1, total_pages - EDGE_PAGES + 1, interval):
        if len(critical) >= max_sheets:
            break
        critical.add(page)

    if sheet_names:
        for index, name in enumerate(sheet_names):
            if name and any(pattern.match(name.strip()) for pattern in TRADE_SHEET_PATTERNS):
                critical.add(index + 1)

    selected = sorted(page for page in critical if page <= total_pages)[:max_sheets]
    LOGGER.info("Selected critical pages", extra={"selected": len(selected)})
    return selected

"""Utility system name normalization and lexical variants.

Plan sets label the same run inconsistently ("WATER LINE 'A'", "WL-A",
"Waterline A"), so lookups match against every common spelling.
"""

import re
from typing import List, Optional, Tuple

SYSTEM_FAMILIES = {
    "water line": "WL",
    "storm drain": "SD",
    "sanitary sewer": "SS",
    "sewer line": "SS",
    "sewer": "SS",
    "fire line": "FP",
    "fire protection line": "FP",
}

_CODE_FAMILIES = {
    "wl": "water line",
    "sd": "storm drain",
    "ss": "sewer",
    "fp": "fire line",
}

_COMPACT_FAMILIES = {
    "waterline": "water line",
    "stormdrain": "storm drain",
    "fireline": "fire line",
    "sewerline": "sewer line",
}

_FAMILY_PATTERN = re.compile(
    r"^(fire\s+protection\s+line|water\s+line|storm\s+drain|sanitary\s+sewer|sewer\s+line|sewer|fire\s+line)"
    r"(?:\s+([a-z0-9][a-z0-9-]*))?$"
)
_CODE_PATTERN = re.compile(r"^(wl|sd|ss|fp)\s*[-_\s]\s*([a-z0-9][a-z0-9-]*)$")


def normalize_label(name: Optional[str]) -> str:
    """Lowercase, drop quotes, split compact family names, collapse whitespace."""
    if not name:
        return ""
    text = name.lower().replace("'", " ").replace('"', " ").replace("`", " ")
    for compact, spaced in _COMPACT_FAMILIES.items():
        text = re.sub(rf"\b{compact}\b", spaced, text)
    return re.sub(r"\s+", " ", text).strip()


def compact_label(name: Optional[str]) -> str:
    """Normalized label with every non-alphanumeric character removed."""
    return re.sub(r"[^a-z0-9]", "", normalize_label(name))


def split_system_name(name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """(family, identifier) for names like ``waterline a`` or ``WL-A``."""
    label = normalize_label(name)
    match = _FAMILY_PATTERN.match(label)
    if match:
        family = re.sub(r"\s+", " ", match.group(1))
        return family, match.group(2)
    match = _CODE_PATTERN.match(label)
    if match:
        return _CODE_FAMILIES[match.group(1)], match.group(2)
    return None, None


def generate_system_variants(name: Optional[str]) -> List[str]:
    """Spellings of a system name used for ILIKE matching, original first."""
    if not name or not name.strip():
        return []

    variants: List[str] = [name.strip(), normalize_label(name)]
    family, identifier = split_system_name(name)

    if family:
        code = SYSTEM_FAMILIES[family]
        compact_family = family.replace(" ", "")
        if identifier:
            ident = identifier.upper()
            variants.extend([
                f"{family.upper()} {ident}",
                f"{family.upper()} '{ident}'",
                f'{family.upper()} "{ident}"',
                f"{compact_family.upper()} {ident}",
                f"{code}-{ident}",
                f"{code} {ident}",
                f"{code}_{ident}",
            ])
        else:
            variants.extend([family.upper(), compact_family.upper()])

    seen = set()
    unique: List[str] = []
    for variant in variants:
        key = variant.lower()
        if variant and key not in seen:
            seen.add(key)
            unique.append(variant)
    return unique


def same_system(a: Optional[str], b: Optional[str]) -> bool:
    """True when two labels name the same system (``WL-A`` == ``Water Line 'A'``)."""
    family_a, ident_a = split_system_name(a)
    family_b, ident_b = split_system_name(b)
    if family_a and family_b:
        return SYSTEM_FAMILIES[family_a] == SYSTEM_FAMILIES[family_b] and (ident_a or "") == (ident_b or "")
    return bool(a and b) and compact_label(a) == compact_label(b)

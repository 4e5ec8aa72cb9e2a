import json
import re
from typing import Any, Dict, List, Union

from plansearch.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, tolerating common formatting noise.

    Handles:
    - Markdown code fences anywhere in the text (```json ... ```)
    - Prose before or after the JSON payload
    - Trailing commas before a closing bracket

    Args:
        text: Raw model output

    Returns:
        Parsed JSON value or None if nothing parseable was found
    """
    if not text:
        return None

    cleaned = text.strip()
    fence_match = _FENCE_PATTERN.search(cleaned)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    candidate = _outermost_object(cleaned)
    if candidate is None:
        LOGGER.error("No JSON object found in model output", extra={"preview": cleaned[:200]})
        return None

    for attempt in (candidate, re.sub(r",\s*([}\]])", r"\1", candidate)):
        try:
            return json.loads(attempt)
        except json.JSONDecodeError:
            continue

    LOGGER.error("Failed to parse JSON after repairs", extra={"preview": candidate[:200]})
    return None


def _outermost_object(text: str) -> str | None:
    """Return the substring between the first '{' and the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]

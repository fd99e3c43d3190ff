"""
NutriLens AI - Response Sanitizer

Inference responses often arrive wrapped in markdown fences
(```json ... ```). This module strips that framing and parses the
payload. Parse failures are raised, never replaced by an empty result,
so prompt or format drift upstream is visible immediately.
"""

import json
import logging
import re
from typing import Any

from nutrilens.core.errors import ResponseParseError

logger = logging.getLogger(__name__)

# Opening fence with an optional language tag, e.g. "```json" or "```"
_OPENING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a leading fence marker and a trailing closing marker."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_structured_response(text: str | None, source: str = "inference") -> Any:
    """
    Strip transport framing from raw inference text and parse it as JSON.

    Args:
        text: Raw text returned by the inference service
        source: Name of the calling stage, used in error messages

    Returns:
        The decoded JSON value

    Raises:
        ResponseParseError: If the cleaned text is empty or not valid JSON
    """
    if text is None:
        raise ResponseParseError(source, "Inference service returned no content")

    cleaned = strip_code_fences(text)
    if not cleaned:
        raise ResponseParseError(source, "Inference service returned an empty payload")

    try:
        return json.loads(cleaned, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        preview = cleaned[:120] + ("..." if len(cleaned) > 120 else "")
        logger.warning(f"{source}: unparseable payload: {preview!r}")
        raise ResponseParseError(source, f"Malformed JSON payload: {e.msg}", e) from e
    except ValueError as e:
        logger.warning(f"{source}: {e}")
        raise ResponseParseError(source, f"Malformed JSON payload: {e}", e) from e


def _reject_constant(name: str) -> Any:
    # json.loads accepts NaN and Infinity, which are not valid JSON
    raise ValueError(f"non-finite number {name}")


def parse_json_array(text: str | None, source: str = "inference") -> list[Any]:
    """Parse a payload that must be a JSON array."""
    data = parse_structured_response(text, source)
    if not isinstance(data, list):
        raise ResponseParseError(
            source,
            f"Expected a JSON array, got {type(data).__name__}"
        )
    return data

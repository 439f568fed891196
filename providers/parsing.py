"""Parse structured (JSON) output from model responses.

Models do not reliably return bare JSON: some wrap it in markdown fences,
some add prose before or after, and some emit raw newlines inside string
values. ``parse_structured_output`` tolerates all three and raises
``ParseError`` with the raw text when nothing usable is found.
"""

import json
import logging
import re
from typing import Optional

from errors import ParseError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced top-level ``{...}`` in text, or None.

    Braces inside string literals are ignored. If the object never closes,
    falls back to the span up to the last ``}``.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    end = text.rfind("}")
    return text[start:end + 1] if end > start else None


def parse_structured_output(content: str, *, provider: Optional[str] = None) -> dict:
    """Parse a JSON object out of a model response."""
    raw = content or ""
    cleaned = strip_code_fences(raw)
    candidate = find_json_object(cleaned) or cleaned

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        # strict=False accepts raw control characters (newline, tab, CR) inside strings
        try:
            data = json.loads(candidate, strict=False)
        except json.JSONDecodeError as e:
            logger.warning(
                "Unparseable structured output from provider=%s: %s (raw=%r)",
                provider, e, raw[:1000],
            )
            raise ParseError(
                f"Failed to parse JSON response: {e}", provider=provider, raw_response=raw,
            ) from e

    if not isinstance(data, dict):
        raise ParseError(
            f"Expected a JSON object, got {type(data).__name__}", provider=provider, raw_response=raw,
        )
    return data

"""
Defensive parsing of remote classifier replies.

Model output is treated as adversarial. Parsing walks a fixed chain:
direct JSON, fenced ```json block, balanced-brace extraction (with trailing
comma repair) and, as a last resort, a regex scan for a single expected key.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA_PATTERN = re.compile(r",(\s*[}\]])")


def response_text(response: Any) -> str:
    """First choice message content of a chat completion, or an empty string."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    content = getattr(getattr(choices[0], "message", None), "content", None)
    return content if isinstance(content, str) else ""


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_PATTERN.sub(r"\1", text)


def extract_balanced_object(text: str) -> str | None:
    """Return the first brace-balanced ``{...}`` span, ignoring braces in strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    for attempt in (candidate, strip_trailing_commas(candidate)):
        try:
            parsed = json.loads(attempt)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def parse_json_object(text: str | None) -> dict[str, Any] | None:
    """Best-effort JSON object extraction; ``None`` when every strategy fails."""
    if not text or not text.strip():
        return None
    stripped = text.strip()

    candidates: list[str] = [stripped]
    fence = _FENCE_PATTERN.search(stripped)
    if fence is not None:
        candidates.append(fence.group(1).strip())
    balanced = extract_balanced_object(stripped)
    if balanced is not None:
        candidates.append(balanced)
    first_brace = stripped.find("{")
    if first_brace > 0:
        candidates.append(stripped[first_brace:])

    for candidate in candidates:
        parsed = _loads_object(candidate)
        if parsed is not None:
            return parsed
    return None


def scan_boolean_field(text: str | None, field: str) -> bool | None:
    """Look for ``"field": true|false`` in raw text; ``None`` when the key is absent."""
    if not text:
        return None
    key = re.escape(field)
    has_true = re.search(rf'"{key}"\s*:\s*true', text, re.IGNORECASE) is not None
    has_false = re.search(rf'"{key}"\s*:\s*false', text, re.IGNORECASE) is not None
    if has_true and not has_false:
        return True
    if has_false:
        return False
    return None


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def coerce_float(value: Any, *, default: float) -> float:
    """Finite float from model output, ``default`` for missing, NaN or non-numeric values."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number

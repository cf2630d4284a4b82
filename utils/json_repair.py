"""
Helpers for turning raw model text into JSON.
Handles markdown fences, surrounding prose, truncated output and trailing commas.
"""

import json
import re
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```json\s*", re.IGNORECASE)
_FENCE_ANY = re.compile(r"```\s*")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    text = _FENCE_OPEN.sub("", text.strip())
    return _FENCE_ANY.sub("", text).strip()


def slice_between(text: str, opener: str, closer: str, allow_open_end: bool = False) -> Optional[str]:
    """Return text from the first `opener` to the last `closer`, or None."""
    start = text.find(opener)
    if start == -1:
        return None
    end = text.rfind(closer)
    if end == -1 or end < start:
        return text[start:] if allow_open_end else None
    return text[start:end + 1]


def find_balanced_object(text: str, start: int) -> Optional[str]:
    """Return the object starting at `start` up to its matching closing brace."""
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        char = text[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def close_truncated_json(text: str) -> str:
    """Append the closers needed to balance a JSON document cut off mid-way."""
    stack = []
    in_string = False
    escape_next = False
    for char in text:
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _CLOSERS:
            stack.append(char)
        elif char in ("}", "]") and stack:
            stack.pop()

    if not stack and not in_string:
        return text

    repaired = text
    if in_string:
        repaired += '"'
    repaired = repaired.rstrip()
    if repaired.endswith(","):
        repaired = repaired[:-1]
    repaired += "".join(_CLOSERS[opener] for opener in reversed(stack))
    logger.warning(f"Closed {len(stack)} unterminated JSON structure(s) in truncated output")
    return repaired


def clean_json_text(text: str) -> str:
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _CONTROL_CHARS.sub("", text)


def parse_model_json(text: str, expect: str = "object", truncated: bool = False) -> Any:
    """
    Parse an object (`expect="object"`) or array (`expect="array"`) out of raw
    model output. Raises ValueError when nothing parseable is found.
    """
    opener, closer = ("{", "}") if expect == "object" else ("[", "]")
    expected_type = dict if expect == "object" else list
    sanitized = strip_code_fences(text)

    # Try direct parsing first
    try:
        parsed = json.loads(sanitized)
        if isinstance(parsed, expected_type):
            return parsed
    except json.JSONDecodeError:
        pass

    candidate = slice_between(sanitized, opener, closer, allow_open_end=truncated)
    if candidate is None:
        raise ValueError(f"No JSON {expect} found in model response")

    if truncated:
        candidate = close_truncated_json(candidate)
    candidate = clean_json_text(candidate)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON from model near position {e.pos}: {candidate[max(0, e.pos - 200):e.pos + 200]}")
        raise ValueError(f"Invalid JSON from model: {e.msg}") from e

    if not isinstance(parsed, expected_type):
        raise ValueError(f"Model response is not a JSON {expect}")
    return parsed

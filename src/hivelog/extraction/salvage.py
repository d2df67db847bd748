"""Two-stage JSON salvage for language-model extraction responses.

The model is asked for a JSON array of inspection candidates but the text
it returns is not always valid JSON:
  - wrapped in a markdown fence (```json ... ```)
  - unescaped quotes, raw newlines or tabs inside string values
  - trailing commas before a closing bracket or brace

Stage 1 strips fences and parses strictly. Text that parses is returned
exactly as it was, so legitimate content is never rewritten. Stage 2
applies textual repairs and parses again. The repair is best-effort: it
scans ``"key": "value"`` spans character by character and can misjudge
where a value ends, in which case the result is ``Malformed``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from hivelog.errors import EmptyExtraction, MalformedExtraction
from hivelog.extraction.schemas import HIVE_REF_KEY

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```(?:json)?", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"```$")

# Opening of a string-valued member: the '{' or ',' before the key is
# required so the scan cannot start on the closing quote of a value.
_STRING_MEMBER_OPEN = re.compile(r'([{,]\s*)"((?:[^"\\\n]|\\.)*)"\s*:\s*"')

_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

# Object keys under which models sometimes nest the candidate array.
_WRAPPER_KEYS = ("inspections", "inspectionResults")


@dataclass(frozen=True, slots=True)
class Parsed:
    """Response text that parsed as JSON.

    Attributes:
        text: The parseable text (fence-stripped; repaired when ``repaired``).
        value: The decoded JSON value.
        repaired: True when stage 2 repairs were needed.
    """

    text: str
    value: object
    repaired: bool = False


@dataclass(frozen=True, slots=True)
class Malformed:
    """Response text that could not be parsed even after repair."""

    original: str
    repaired: str
    error: str


SalvageResult = Parsed | Malformed


def strip_fences(text: str) -> str:
    """Remove a leading ``` / ```json fence and a trailing ``` fence."""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _decode(text: str) -> tuple[object, str | None]:
    """Return (value, None) on success or (None, error message)."""
    try:
        return json.loads(text), None
    except json.JSONDecodeError as e:
        return None, str(e)


def _value_end(text: str, start: int) -> int:
    """Find the quote closing the string value that begins at *start*.

    A quote closes the value when the next non-space character ends the
    member: '}' or ']' or end of text, or a ',' that is itself followed by
    a new key, a closing bracket, or end of text. Returns -1 when no
    closing quote is found.
    """
    i = start
    length = len(text)
    while i < length:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j >= length or text[j] in "}]":
                return i
            if text[j] == ",":
                k = j + 1
                while k < length and text[k].isspace():
                    k += 1
                if k >= length or text[k] in '"}]':
                    return i
        i += 1
    return -1


def _escape_value(raw: str) -> str:
    """Escape bare quotes and control characters inside a string value."""
    out: list[str] = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw):
            out.append(raw[i : i + 2])
            i += 2
            continue
        if ch == '"':
            out.append('\\"')
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _escape_string_values(text: str) -> str:
    out: list[str] = []
    pos = 0
    while True:
        match = _STRING_MEMBER_OPEN.search(text, pos)
        if match is None:
            out.append(text[pos:])
            break
        out.append(text[pos : match.end()])
        end = _value_end(text, match.end())
        if end == -1:
            out.append(text[match.end() :])
            break
        out.append(_escape_value(text[match.end() : end]))
        out.append('"')
        pos = end + 1
    return "".join(out)


def repair_json_text(text: str) -> str:
    """Apply the textual repairs: string escaping, then trailing commas."""
    repaired = _escape_string_values(text)
    return _TRAILING_COMMA.sub(r"\1", repaired)


def salvage_json(response: str) -> SalvageResult:
    """Turn a model response into parseable JSON text, or report why not.

    Args:
        response: Raw language-model response text.

    Returns:
        ``Parsed`` with the (possibly repaired) text and decoded value, or
        ``Malformed`` carrying the original and the best repair attempt.
    """
    stripped = strip_fences(response)

    value, error = _decode(stripped)
    if error is None:
        return Parsed(text=stripped, value=value)

    repaired = repair_json_text(stripped)
    value, repair_error = _decode(repaired)
    if repair_error is None:
        logger.info("Repaired malformed extraction JSON (%s)", error)
        return Parsed(text=repaired, value=value, repaired=True)

    return Malformed(original=response, repaired=repaired, error=repair_error)


def _unwrap(value: object) -> list[object] | None:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        if HIVE_REF_KEY not in value:
            for key in _WRAPPER_KEYS:
                nested = value.get(key)
                if isinstance(nested, list):
                    return nested
        return [value]
    return None


def load_candidates(response: str | None) -> list[dict]:
    """Decode a model response into a list of extraction candidates.

    A single object is promoted to a one-element list, and an object that
    only wraps the list (``{"inspections": [...]}``) is unwrapped.
    Elements that are not objects are dropped.

    Raises:
        EmptyExtraction: The response holds no candidates.
        MalformedExtraction: The response is not JSON even after repair.
    """
    if response is None or not strip_fences(response):
        raise EmptyExtraction()

    result = salvage_json(response)
    if isinstance(result, Malformed):
        logger.warning("Unparseable extraction response: %s", result.error)
        raise MalformedExtraction(result.original, result.repaired, result.error)

    items = _unwrap(result.value)
    if items is None:
        raise EmptyExtraction(
            f"Extraction response is a JSON {type(result.value).__name__}, not an object or array"
        )

    candidates: list[dict] = []
    for index, item in enumerate(items):
        if isinstance(item, dict):
            candidates.append(item)
        else:
            logger.warning("Dropping non-object extraction element %d: %r", index, item)

    if not candidates:
        raise EmptyExtraction("Extraction response contains no candidate objects")
    return candidates

"""
Pull the JSON object out of an LLM reply.

Models wrap their answer in markdown fences, prepend chatter ("Sure! Here is
your itinerary:") and leave trailing commas behind.  ``extract_json`` strips
the noise around the payload; it does not try to repair the payload itself
beyond the trailing-comma fix.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Tuple

from errors import MalformedResponse

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 500

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?")


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _balanced_span(text: str) -> Optional[Tuple[int, int]]:
    """Return (start, end) of the first ``{...}`` block whose braces balance.

    Braces inside JSON string literals are ignored.
    """
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and start != -1:
            in_string = True
        elif ch == "{":
            if start == -1:
                start = i
            depth += 1
        elif ch == "}" and start != -1:
            depth -= 1
            if depth == 0:
                return start, i + 1
    return None


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket.

    Commas inside string literals are left alone.
    """
    out = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == ",":
            j = i + 1
            while j < len(text) and text[j].isspace():
                j += 1
            if j < len(text) and text[j] in "}]":
                continue
        out.append(ch)
    return "".join(out)


def extract_json(text: str) -> str:
    """Return the JSON object embedded in *text* as a string.

    When no balanced ``{...}`` span is found the de-fenced text is returned
    as-is, and the parse step decides whether it is usable.
    """
    cleaned = _strip_fences((text or "").strip())

    first_brace = cleaned.find("{")
    if first_brace > 0:
        cleaned = cleaned[first_brace:]

    span = _balanced_span(cleaned)
    if span is not None:
        cleaned = cleaned[span[0]:span[1]]

    return remove_trailing_commas(cleaned)


def parse_json(text: str) -> Any:
    """Extract and decode the JSON object in an LLM reply.

    Raises MalformedResponse with the first 500 characters of the cleaned
    text when decoding fails.
    """
    cleaned = extract_json(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        snippet = cleaned[:SNIPPET_LENGTH]
        logger.error("JSON parse error: %s; content: %s", exc, snippet)
        raise MalformedResponse(f"Failed to parse AI response: {exc.msg}", snippet=snippet) from exc

"""
Response Extractor

Locates and parses the single JSON value embedded in raw model output.
Every stage goes through `extract_json`; nothing else in the package
parses model text.

Candidates, tried in order (first successful json.loads wins):
1. A fenced ```json block
2. A fenced plain ``` block
3. The first balanced {...} or [...] span, found by bracket matching

Pure: no state, no logging, same input gives the same result.
"""

import json
import re
from typing import Any, Iterator, List, Union

from converge.agents.failures import ParseCause, ParseFailure

_FENCED_JSON = re.compile(r"```json[ \t]*\r?\n?([\s\S]*?)```", re.IGNORECASE)
_FENCED_PLAIN = re.compile(r"```[ \t]*\r?\n([\s\S]*?)```")

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = {"}", "]"}


def coerce_text(content: Any) -> str:
    """
    Flatten LangChain message content into plain text.

    Gemini responses may arrive as a list of parts; only text parts are
    kept (thinking parts are handled by the invoker as traces).
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    if content is None:
        return ""
    return str(content)


def _balanced_end(text: str, start: int) -> int:
    """
    Index just past the bracket that closes text[start], or -1.

    String literals and escapes are skipped so braces inside JSON strings
    do not count. A mismatched closer ends the scan.
    """
    stack = [_OPENERS[text[start]]]
    in_string = False
    escaped = False

    for index in range(start + 1, len(text)):
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
        elif char in _OPENERS:
            stack.append(_OPENERS[char])
        elif char in _CLOSERS:
            if char != stack[-1]:
                return -1
            stack.pop()
            if not stack:
                return index + 1
    return -1


def _bracket_spans(text: str) -> Iterator[str]:
    """
    Yield balanced spans, starting from the first opener onwards.

    An opener that never closes ends the scan: the reply was cut off, and a
    balanced fragment nested inside it is not the answer.
    """
    position = 0
    while position < len(text):
        starts = [i for i in (text.find("{", position), text.find("[", position)) if i != -1]
        if not starts:
            return
        start = min(starts)
        end = _balanced_end(text, start)
        if end == -1:
            return
        yield text[start:end]
        position = end


def _candidates(text: str) -> Iterator[str]:
    for match in _FENCED_JSON.finditer(text):
        yield match.group(1).strip()
    for match in _FENCED_PLAIN.finditer(text):
        yield match.group(1).strip()
    yield from _bracket_spans(text)


def extract_json(content: Any) -> Union[Any, ParseFailure]:
    """
    Parse the JSON value embedded in model output.

    Args:
        content: Raw model output (str or LangChain list-of-parts content)

    Returns:
        The parsed JSON value, or ParseFailure with a diagnostic cause
    """
    text = coerce_text(content)
    if not text.strip():
        return ParseFailure(ParseCause.NO_JSON_SPAN, "empty response")

    # Bare JSON is the common case with response_mime_type=application/json
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    tried = 0
    last_error = ""
    for candidate in _candidates(text):
        if not candidate:
            continue
        tried += 1
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = f"{exc.msg} at line {exc.lineno} column {exc.colno}"

    if tried == 0:
        return ParseFailure(ParseCause.NO_JSON_SPAN, f"no JSON in: {text[:80]!r}")
    return ParseFailure(ParseCause.INVALID_JSON, last_error)

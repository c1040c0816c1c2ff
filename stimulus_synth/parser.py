#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Response Parser (strategy waterfall)
===============================================================================

Purpose
-------
Turn an arbitrary completion into *some* interpretable value. `parse()` is a
total function: it never raises, and the same text always yields the same
ParsedValue.

Waterfall (first success wins)
------------------------------
 0) clean        – drop Markdown fence markers (contents kept), trim.
 1) direct_json  – decode the whole text; also the text with one layer of
                   wrapping quotes removed. Double‑encoded JSON is decoded
                   again; arrays of stringified objects are decoded per item.
 2) array_span   – first balanced ``[...]`` that decodes (JSON, then Python
                   literal syntax such as single quotes / trailing commas).
 3) object_stream– consecutive ``{...}`` objects (JSON lines, comma‑joined
                   objects, or an array cut off mid‑item).
 4) object_span  – first balanced ``{...}`` that decodes.
 5) numbered     – a single line carrying ``1. X, 2. Y, 3. Z`` (lead‑in prose dropped).
 6) labelled     – every line is ``Label: …``.
 7) array_line   – some line is itself an array literal.
 8) lines        – one item per non‑empty line, bullets/numbering stripped;
                   run on the text with wrapping quotes removed.

Each strategy is a pure ``attempt(text) -> ParsedValue | None`` function, so
they can be tested one at a time.
"""
from __future__ import annotations

import ast
import json
import re
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from stimulus_synth import get_logger
from stimulus_synth.models import JsonArray, JsonObject, JsonString, LineList, ParsedValue

log = get_logger(__name__)

Strategy = Callable[[str], Optional[ParsedValue]]

_MISSING = object()
_MAX_DECODE_DEPTH = 3
_MAX_SPAN_ATTEMPTS = 64

_FENCE_RE = re.compile(r"```[\w+.-]*[ \t]*(?=\r?\n)|```")
_WRAPPING_QUOTES = ('"', "'", "`")
_ORDINAL_START_RE = re.compile(r"^\s*\d+\s*[.)]\s*")
_ORDINAL_SPLIT_RE = re.compile(r"\s*[,;]\s*(?=\d+\s*[.)])|\s+(?=\d+[.)]\s)")
_ORDINAL_MARK_RE = re.compile(r"(?<![\w.])\d+\s*[.)](?=\s)")
_LABEL_PREFIX_RE = re.compile(r"^\s*label\s*[:\-]\s*", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•·+]+|\d+\s*[.)]|[A-Za-z][.)](?=\s))\s*")


# ─────────────────────────────────────────────────────────────────────────────
# Cleaning helpers
# ─────────────────────────────────────────────────────────────────────────────
def clean_completion(raw: Optional[str]) -> str:
    """Remove Markdown fence markers (keeping what they enclose) and trim."""
    if not raw:
        return ""
    return _FENCE_RE.sub("", str(raw)).strip()


def strip_wrapping_quotes(text: str) -> Optional[str]:
    """
    If *text* is wrapped in one matching pair of quotes, return the inside with
    escaped double quotes restored; otherwise None.
    """
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _WRAPPING_QUOTES:
        return text[1:-1].replace('\\"', '"').strip()
    return None


def _unwrapped(text: str) -> str:
    """*text* without one layer of wrapping quotes, unless the quote recurs unescaped inside."""
    inner = strip_wrapping_quotes(text)
    if inner is None or re.search(r"(?<!\\)" + re.escape(text[0]), text[1:-1]):
        return text
    return inner


def _candidates(text: str) -> List[str]:
    out = [text]
    unquoted = strip_wrapping_quotes(text)
    if unquoted and unquoted != text:
        out.append(unquoted)
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Decoding helpers
# ─────────────────────────────────────────────────────────────────────────────
def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, TypeError):
        return _MISSING


def _loads_lenient(text: str) -> Any:
    """JSON first; then Python literal syntax, for containers only."""
    value = _loads(text)
    if value is not _MISSING:
        return value
    try:
        value = ast.literal_eval(text)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
        return _MISSING
    return value if isinstance(value, (list, dict)) else _MISSING


def _from_json(value: Any, depth: int = 0) -> ParsedValue:
    """Wrap a decoded JSON value, unwrapping double encoding on the way."""
    if isinstance(value, str):
        if depth < _MAX_DECODE_DEPTH:
            again = _loads(value.strip())
            if again is not _MISSING and isinstance(again, (list, dict, str)):
                return _from_json(again, depth + 1)
        return JsonString(value)
    if isinstance(value, list):
        if value and all(isinstance(item, str) for item in value):
            decoded = [_loads(item.strip()) for item in value]
            if all(isinstance(item, dict) for item in decoded):
                return JsonArray(tuple(decoded))
        return JsonArray(tuple(value))
    if isinstance(value, dict):
        return JsonObject(value)
    if value is None:
        return JsonString("")
    return JsonString(json.dumps(value))


def _match_close(text: str, start: int, open_ch: str, close_ch: str) -> Optional[int]:
    """Index of the bracket closing ``text[start]``; double‑quoted strings are skipped."""
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
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return i
    return None


def balanced_spans(text: str, open_ch: str, close_ch: str) -> Iterator[str]:
    """Yield balanced ``open_ch … close_ch`` substrings in order of their start."""
    start = text.find(open_ch)
    attempts = 0
    while start != -1 and attempts < _MAX_SPAN_ATTEMPTS:
        end = _match_close(text, start, open_ch, close_ch)
        if end is not None:
            yield text[start : end + 1]
        attempts += 1
        start = text.find(open_ch, start + 1)


# ─────────────────────────────────────────────────────────────────────────────
# Line helpers (shared with the normalisers)
# ─────────────────────────────────────────────────────────────────────────────
def _strip_item(text: str) -> str:
    item = text.strip().rstrip(",;").strip()
    unquoted = strip_wrapping_quotes(item)
    return (unquoted if unquoted is not None else item).strip()


def split_numbered(line: str) -> List[str]:
    """``"1. Cat, 2. Dog"`` → ``["Cat", "Dog"]`` (ordinal markers removed)."""
    body = line.strip()
    if body.startswith("[") and body.endswith("]"):
        body = body[1:-1].strip()
    parts = _ORDINAL_SPLIT_RE.split(body)
    items = [_strip_item(_ORDINAL_START_RE.sub("", part, count=1)).rstrip(".").strip() for part in parts]
    return [item for item in items if item]


def numbered_body(line: str) -> Optional[str]:
    """
    The ``1. X, 2. Y`` part of a single line, or None if it is not one.

    A line that opens with an ordinal is returned whole. Otherwise at least two
    ordinal markers are required and any lead‑in before the first one
    (``"Here are the planets: 1. Mercury, 2. Venus"``) is dropped.
    """
    stripped = (line or "").strip()
    if not stripped or "\n" in stripped:
        return None
    if _ORDINAL_START_RE.match(stripped.lstrip("[")):
        return stripped
    marks = list(_ORDINAL_MARK_RE.finditer(stripped))
    if len(marks) < 2:
        return None
    lead, body = stripped[: marks[0].start()], stripped[marks[0].start() :]
    if "[" in lead and body.endswith("]"):
        body = body[:-1].rstrip()
    return body


def split_lines(text: str) -> List[str]:
    """
    One item per non‑empty line with bullets/numbering stripped.

    A header line ending in ":" is dropped when other lines follow. A single
    line containing commas is split like a numbered list when it carries
    ordinals, else on the commas.
    """
    lines = [line for line in (text or "").splitlines() if line.strip()]
    if len(lines) > 1:
        lines = [line for line in lines if not line.rstrip().endswith(":")] or lines
    if len(lines) == 1 and "," in lines[0]:
        body = numbered_body(lines[0])
        if body is not None:
            return split_numbered(body)
        parts = (_strip_item(_BULLET_RE.sub("", part, count=1)) for part in lines[0].split(","))
        return [item for item in parts if item]
    items = [_strip_item(_BULLET_RE.sub("", line, count=1)) for line in lines]
    return [item for item in items if item]


# ─────────────────────────────────────────────────────────────────────────────
# Strategies
# ─────────────────────────────────────────────────────────────────────────────
def attempt_direct_json(text: str) -> Optional[ParsedValue]:
    for candidate in _candidates(text):
        value = _loads(candidate)
        if value is not _MISSING:
            return _from_json(value)
    return None


def attempt_array_span(text: str) -> Optional[ParsedValue]:
    for candidate in _candidates(text):
        for span in balanced_spans(candidate, "[", "]"):
            value = _loads_lenient(span)
            if isinstance(value, list):
                return _from_json(value)
    return None


def attempt_object_stream(text: str) -> Optional[ParsedValue]:
    decoder = json.JSONDecoder()
    objects: List[dict] = []
    idx = text.find("{")
    first = idx
    while idx != -1:
        try:
            value, end = decoder.raw_decode(text, idx)
        except ValueError:
            idx = text.find("{", idx + 1)
            continue
        if isinstance(value, dict):
            objects.append(value)
        idx = text.find("{", end)
    truncated_array = first > 0 and "[" in text[:first]
    if len(objects) >= 2 or (objects and truncated_array):
        return JsonArray(tuple(objects))
    return None


def attempt_object_span(text: str) -> Optional[ParsedValue]:
    for candidate in _candidates(text):
        for span in balanced_spans(candidate, "{", "}"):
            value = _loads_lenient(span)
            if isinstance(value, dict):
                return JsonObject(value)
    return None


def attempt_numbered_list(text: str) -> Optional[ParsedValue]:
    for candidate in _candidates(text):
        body = numbered_body(candidate)
        if body is None:
            continue
        items = split_numbered(body)
        if items:
            return LineList(tuple(items), structured=True, text=text)
    return None


def attempt_labelled_lines(text: str) -> Optional[ParsedValue]:
    lines = [line for line in _unwrapped(text).splitlines() if line.strip()]
    if not lines or not all(_LABEL_PREFIX_RE.match(line) for line in lines):
        return None
    items = [_strip_item(_LABEL_PREFIX_RE.sub("", line, count=1)) for line in lines]
    return LineList(tuple(item for item in items if item), structured=True, text=text)


def attempt_array_line(text: str) -> Optional[ParsedValue]:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            value = _loads_lenient(stripped)
            if isinstance(value, list):
                return _from_json(value)
    return None


def attempt_lines(text: str) -> Optional[ParsedValue]:
    return LineList(tuple(split_lines(_unwrapped(text))), structured=False, text=text)


STRATEGIES: Sequence[Tuple[str, Strategy]] = (
    ("direct_json", attempt_direct_json),
    ("array_span", attempt_array_span),
    ("object_stream", attempt_object_stream),
    ("object_span", attempt_object_span),
    ("numbered", attempt_numbered_list),
    ("labelled", attempt_labelled_lines),
    ("array_line", attempt_array_line),
    ("lines", attempt_lines),
)


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────
def _snippet(s: str, limit: int = 240) -> str:
    one = (s or "").strip().replace("\n", " ")
    return (one[:limit] + "…") if len(one) > limit else one


def parse(raw_text: Optional[str], _nested: bool = False) -> ParsedValue:
    """
    Interpret *raw_text* with the strategy waterfall. Never raises.

    A JSON string whose content is not JSON itself (e.g. a quoted numbered
    list) is run through the waterfall once more; the inner result replaces it
    when it is more structured than plain lines.
    """
    text = clean_completion(raw_text)
    result: ParsedValue = LineList((), structured=False, text=text)
    winner = "lines"
    for name, attempt in STRATEGIES:
        value = attempt(text)
        if value is not None:
            result, winner = value, name
            break

    if isinstance(result, JsonString) and result.value.strip() and not _nested:
        inner = parse(result.value, _nested=True)
        if not isinstance(inner, LineList) or inner.structured:
            result = inner

    if winner == "lines" and not _nested:
        log.warning("Completion was not structured; using line fallback (%d lines): %r",
                    len(result.lines) if isinstance(result, LineList) else 0, _snippet(text))
    else:
        log.debug("Parser strategy %s → %s", winner, type(result).__name__)
    return result


__all__ = [
    "STRATEGIES",
    "clean_completion",
    "strip_wrapping_quotes",
    "balanced_spans",
    "numbered_body",
    "split_numbered",
    "split_lines",
    "attempt_direct_json",
    "attempt_array_span",
    "attempt_object_stream",
    "attempt_object_span",
    "attempt_numbered_list",
    "attempt_labelled_lines",
    "attempt_array_line",
    "attempt_lines",
    "parse",
]

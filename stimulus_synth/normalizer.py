#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Program Normalisers
===============================================================================

Purpose
-------
Shape a ParsedValue into the StimulusSet of the requested program type.
Normalisers never raise on bad input; the worst case is a shorter label set
or, for VPMTS, fully synthetic groups.

Shape detection
---------------
`detect_shape()` maps every ParsedValue onto a closed set of shapes that the
normalisers switch over:

    StringArray      – list of strings (JSON array, numbered list, Label: lines)
    ObjectArray      – list of records (dicts; grouped mappings are flattened
                       into {"category", "keys"} records)
    ScalarJsonValue  – a JSON scalar that did not decode any further
    Unparseable      – nothing structured; raw text + fallback lines kept

VPMTS quota‑fill
----------------
1) Bare category names → one group each (first *c*), synthetic keys
   ``<category-slug>-<i>``.
2) ``{category, key}`` pairs are accepted in order while the category has
   fewer than *e* keys; categories beyond the first *c* are discarded.
3) Short categories are topped up from keyword tables, then generic keys
   (Identical mode repeats the category's own key).
4) Missing categories come from the matching type's fallback list.
5) ``len(groups) == c`` and ``len(keys) == e`` for every group, always.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from stimulus_synth import get_logger
from stimulus_synth.fill_tables import (
    FALLBACK_CATEGORIES,
    FALLBACK_VARIATIONS,
    GENERIC_CATEGORY_FORMAT,
    GENERIC_FILL_FORMAT,
    GENERIC_KEY_FORMATS,
    keyword_candidates,
)
from stimulus_synth.models import (
    IntraverbalItem,
    IntraverbalSet,
    JsonArray,
    JsonObject,
    JsonString,
    LabelItem,
    LabelSet,
    LineList,
    MatchingType,
    ParsedValue,
    ProgramType,
    StimulusSet,
    VPMTSGroup,
    VPMTSSet,
    category_count,
    exemplar_count,
    matching_type,
    normalize_label,
)
from stimulus_synth.parser import numbered_body, split_lines, split_numbered

log = get_logger(__name__)

_CONTAINER_KEYS = (
    "items", "stimuli", "labels", "data", "results", "pairs",
    "questions", "categories", "groups", "list", "array", "output",
)
_LABEL_KEYS = ("label", "name", "value", "key", "item", "text", "word")
_PROMPT_KEYS = ("prompt", "q", "question")
_ANSWER_KEYS = ("answer", "a")
_CATEGORY_KEYS = ("category", "group", "class", "label", "name")
_KEY_KEYS = ("key", "item", "name", "value")
_KEY_LIST_KEYS = ("keys", "items", "exemplars", "examples", "members")

_LABEL_FRAGMENT_RE = re.compile(r'\{\s*"label"\s*:\s*"((?:[^"\\]|\\.)*)"\s*\}')


# ─────────────────────────────────────────────────────────────────────────────
# Shapes
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class StringArray:
    items: Tuple[str, ...]


@dataclass(frozen=True)
class ObjectArray:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class ScalarJsonValue:
    value: str


@dataclass(frozen=True)
class Unparseable:
    lines: Tuple[str, ...]
    text: str = ""


Shape = Union[StringArray, ObjectArray, ScalarJsonValue, Unparseable]


@dataclass(frozen=True)
class QuotaShortfall:
    """A VPMTS category holding fewer keys than requested."""

    category: str
    missing: int


def _lookup(record: Mapping[str, Any], names: Iterable[str]) -> Any:
    """Case‑insensitive lookup of the first present alias."""
    lowered = {str(k).lower(): v for k, v in record.items()}
    for name in names:
        if name in lowered and lowered[name] is not None:
            return lowered[name]
    return None


def _shape_of_list(items: Iterable[Any]) -> Shape:
    kept = tuple(item for item in items if item is not None)
    if kept and all(isinstance(item, str) for item in kept):
        return StringArray(kept)
    return ObjectArray(kept)


def _shape_of_object(data: Mapping[str, Any]) -> Shape:
    container = _lookup(data, _CONTAINER_KEYS)
    if isinstance(container, list) and _lookup(data, _CATEGORY_KEYS) is None:
        return _shape_of_list(container)
    if data and all(isinstance(v, list) for v in data.values()) and _lookup(data, _CATEGORY_KEYS) is None:
        # {"Fruits": ["apple", "pear"], "Pets": [...]}
        return ObjectArray(tuple({"category": k, "keys": v} for k, v in data.items()))
    return ObjectArray((dict(data),))


def detect_shape(parsed: ParsedValue) -> Shape:
    """Map a ParsedValue onto the closed set of shapes."""
    if isinstance(parsed, JsonArray):
        return _shape_of_list(parsed.items)
    if isinstance(parsed, JsonObject):
        return _shape_of_object(parsed.data)
    if isinstance(parsed, JsonString):
        return ScalarJsonValue(parsed.value)
    if isinstance(parsed, LineList):
        if parsed.structured:
            return StringArray(parsed.lines)
        return Unparseable(parsed.lines, parsed.text)
    raise TypeError(f"Unsupported parsed value: {type(parsed).__name__}")


# ─────────────────────────────────────────────────────────────────────────────
# Label‑only programs
# ─────────────────────────────────────────────────────────────────────────────
def _decode_fragment(fragment: str) -> str:
    try:
        return json.loads(f'"{fragment}"')
    except ValueError:
        return fragment


def extract_label_fragments(text: str) -> List[str]:
    """``{"label": "..."}`` fragments anywhere in *text* (escaped quotes tolerated)."""
    unescaped = (text or "").replace('\\"', '"')
    return [_decode_fragment(m.group(1)) for m in _LABEL_FRAGMENT_RE.finditer(unescaped)]


def _text_labels(text: str, lines: Optional[Iterable[str]] = None) -> List[str]:
    fragments = extract_label_fragments(text)
    if fragments:
        log.info("Recovered %d labels from {\"label\": …} fragments.", len(fragments))
        return fragments
    return list(lines) if lines is not None else split_lines(text)


def _record_labels(item: Any) -> List[str]:
    if isinstance(item, str):
        return [item]
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        return [str(item)]
    if not isinstance(item, Mapping):
        return []
    value = _lookup(item, _LABEL_KEYS)
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return [str(value)]
    keys = _lookup(item, _KEY_LIST_KEYS)
    if isinstance(keys, list):
        return [str(k) for k in keys if isinstance(k, (str, int, float))]
    return []


def normalize_labels(parsed: ParsedValue, fields: Mapping[str, Any]) -> LabelSet:
    """Tacting, listener responding, seriation and sorting."""
    shape = detect_shape(parsed)
    raw: List[str]
    if isinstance(shape, StringArray):
        raw = list(shape.items)
        body = numbered_body(raw[0]) if len(raw) == 1 else None
        if body is not None:
            raw = split_numbered(body)
    elif isinstance(shape, ObjectArray):
        raw = [label for item in shape.items for label in _record_labels(item)]
    elif isinstance(shape, ScalarJsonValue):
        raw = _text_labels(shape.value)
    else:
        raw = _text_labels(shape.text, shape.lines)

    items = tuple(LabelItem(label) for label in (normalize_label(r) for r in raw) if label)
    log.info("Label set normalised: %d items (shape=%s).", len(items), type(shape).__name__)
    return LabelSet(items=items, fields=dict(fields))


# ─────────────────────────────────────────────────────────────────────────────
# Intraverbal
# ─────────────────────────────────────────────────────────────────────────────
def _scalar_text(value: Any) -> str:
    if value is None or isinstance(value, (list, dict)):
        return ""
    return normalize_label(value)


def normalize_intraverbal(parsed: ParsedValue, fields: Mapping[str, Any]) -> IntraverbalSet:
    """Prompt/answer pairs; pairs missing either side are dropped. No quota‑fill."""
    shape = detect_shape(parsed)
    items: List[IntraverbalItem] = []
    dropped = 0
    if isinstance(shape, ObjectArray):
        for record in shape.items:
            if not isinstance(record, Mapping):
                dropped += 1
                continue
            prompt = _scalar_text(_lookup(record, _PROMPT_KEYS))
            answer = _scalar_text(_lookup(record, _ANSWER_KEYS))
            if prompt and answer:
                items.append(IntraverbalItem(prompt=prompt, answer=answer))
            else:
                dropped += 1
    else:
        log.warning("Intraverbal completion held no prompt/answer records (shape=%s).", type(shape).__name__)

    if dropped:
        log.info("Dropped %d incomplete intraverbal records.", dropped)
    return IntraverbalSet(items=tuple(items), fields=dict(fields))


# ─────────────────────────────────────────────────────────────────────────────
# VPMTS
# ─────────────────────────────────────────────────────────────────────────────
class _Groups:
    """Insertion‑ordered category → keys with case‑insensitive category identity."""

    def __init__(self) -> None:
        self.keys: Dict[str, List[str]] = {}
        self._index: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self.keys)

    def find(self, category: str) -> Optional[str]:
        return self._index.get(category.casefold())

    def add(self, category: str, keys: Optional[List[str]] = None) -> str:
        self._index[category.casefold()] = category
        self.keys[category] = list(keys or [])
        return category


def _slug(text: str) -> str:
    return re.sub(r"\s+", "-", text.strip().lower())


def _pairs(records: Iterable[Any]) -> Iterator[Tuple[Any, Any]]:
    """Flatten records into (category, key) pairs; key may be None."""
    for record in records:
        if not isinstance(record, Mapping):
            continue
        category = _lookup(record, _CATEGORY_KEYS)
        if category is None and len(record) == 1:
            # [{"Fruits": ["apple", "pear"]}]
            (name, value), = record.items()
            if isinstance(value, list):
                for key in value:
                    yield name, key
                continue
        key_list = _lookup(record, _KEY_LIST_KEYS)
        if isinstance(key_list, list):
            if not key_list:
                yield category, None
            for key in key_list:
                yield category, key
            continue
        yield category, _lookup(record, _KEY_KEYS)


def _accept_category_names(groups: _Groups, names: Iterable[str], c: int, e: int) -> None:
    for name in names:
        category = normalize_label(name)
        if not category or groups.find(category):
            continue
        if len(groups) >= c:
            break
        slug = _slug(category)
        groups.add(category, [normalize_label(f"{slug}-{i}") for i in range(1, e + 1)])


def _accept_pairs(groups: _Groups, pairs: Iterable[Tuple[Any, Any]], c: int, e: int) -> None:
    dropped_categories: List[str] = []
    dropped_items = 0
    for raw_category, raw_key in pairs:
        category = _scalar_text(raw_category)
        if not category:
            continue
        name = groups.find(category)
        if name is None:
            if len(groups) >= c:
                dropped_categories.append(category)
                continue
            name = groups.add(category)
        key = _scalar_text(raw_key)
        if not key:
            continue
        if len(groups.keys[name]) < e:
            groups.keys[name].append(key)
        else:
            dropped_items += 1
    if dropped_categories or dropped_items:
        log.info(
            "VPMTS overflow discarded | extra categories=%s | extra items=%d",
            sorted(set(dropped_categories)),
            dropped_items,
        )


def quota_shortfalls(groups: Mapping[str, List[str]], e: int) -> List[QuotaShortfall]:
    return [QuotaShortfall(category, e - len(keys)) for category, keys in groups.items() if len(keys) < e]


def _unique_generic(category: str, used: set, start: int) -> str:
    n = start
    while True:
        candidate = normalize_label(GENERIC_FILL_FORMAT.format(category=category.lower(), n=n))
        if candidate.casefold() not in used:
            return candidate
        n += 1


def _fill_category(category: str, keys: List[str], e: int, mode: MatchingType) -> None:
    """Top up *keys* in place to *e* entries."""
    if mode is MatchingType.IDENTICAL:
        seed = keys[0] if keys else normalize_label(
            next(iter(keyword_candidates(category)), GENERIC_KEY_FORMATS[mode].format(category=category.lower()))
        )
        keys.extend([seed] * (e - len(keys)))
        return

    used = {k.casefold() for k in keys}
    for name in keyword_candidates(category):
        if len(keys) >= e:
            return
        candidate = normalize_label(name)
        if candidate.casefold() not in used:
            keys.append(candidate)
            used.add(candidate.casefold())
    while len(keys) < e:
        candidate = _unique_generic(category, used, len(keys) + 1)
        keys.append(candidate)
        used.add(candidate.casefold())


def _fallback_keys(category: str, e: int, mode: MatchingType) -> List[str]:
    variations = FALLBACK_VARIATIONS[mode].get(category, ())
    generic = GENERIC_KEY_FORMATS[mode]
    if mode is MatchingType.IDENTICAL:
        key = variations[0] if variations else generic.format(category=category.lower())
        return [normalize_label(key)] * e
    return [
        normalize_label(variations[i] if i < len(variations) else generic.format(category=category.lower(), n=i + 1))
        for i in range(e)
    ]


def _fallback_names(groups: _Groups, mode: MatchingType) -> Iterator[str]:
    for name in FALLBACK_CATEGORIES[mode]:
        if not groups.find(name):
            yield name
    n = len(groups) + 1
    while True:
        name = GENERIC_CATEGORY_FORMAT.format(n=n)
        if not groups.find(name):
            yield name
        n += 1


def _assert_quota(result: VPMTSSet, c: int, e: int) -> None:
    if len(result.groups) != c or any(len(g.keys) != e for g in result.groups):
        raise AssertionError(
            f"VPMTS quota violated: expected {c}x{e}, got "
            f"{[(g.category, len(g.keys)) for g in result.groups]}"
        )


def normalize_vpmts(parsed: ParsedValue, fields: Mapping[str, Any]) -> VPMTSSet:
    """
    Grouped VPMTS stimuli with exactly ``numberOfCategories`` groups of exactly
    ``numberOfExemplars`` keys, whatever the completion contained.
    """
    c = category_count(fields)
    e = exemplar_count(fields)
    mode = matching_type(fields)
    shape = detect_shape(parsed)
    groups = _Groups()

    if isinstance(shape, StringArray):
        _accept_category_names(groups, shape.items, c, e)
    elif isinstance(shape, ObjectArray):
        _accept_pairs(groups, _pairs(shape.items), c, e)
    else:
        log.warning("VPMTS completion held no usable groups (shape=%s); synthesising all.", type(shape).__name__)

    for shortfall in quota_shortfalls(groups.keys, e):
        log.warning("Quota shortfall | category=%s | missing=%d → filling", shortfall.category, shortfall.missing)
        _fill_category(shortfall.category, groups.keys[shortfall.category], e, mode)

    if len(groups) < c:
        names = _fallback_names(groups, mode)
        added = []
        while len(groups) < c:
            name = next(names)
            groups.add(name, _fallback_keys(name, e, mode))
            added.append(name)
        log.warning("Synthesised %d fallback categories (%s): %s", len(added), mode.value, ", ".join(added))

    result = VPMTSSet(
        groups=tuple(VPMTSGroup(category, tuple(keys)) for category, keys in groups.keys.items()),
        fields=dict(fields),
    )
    _assert_quota(result, c, e)
    log.info("VPMTS set normalised: %d categories x %d keys (%s).", c, e, mode.value)
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────────────────────────────────────
Normalizer = Callable[[ParsedValue, Mapping[str, Any]], StimulusSet]

_NORMALIZERS: Dict[ProgramType, Normalizer] = {
    ProgramType.TACTING: normalize_labels,
    ProgramType.LISTENER_RESPONDING: normalize_labels,
    ProgramType.SERIATION: normalize_labels,
    ProgramType.SORTING: normalize_labels,
    ProgramType.INTRAVERBAL: normalize_intraverbal,
    ProgramType.VPMTS: normalize_vpmts,
}


def normalize(program: ProgramType, parsed: ParsedValue, fields: Mapping[str, Any]) -> StimulusSet:
    """Select the normaliser for *program* and apply it."""
    return _NORMALIZERS[ProgramType.parse(program)](parsed, fields)


__all__ = [
    "StringArray",
    "ObjectArray",
    "ScalarJsonValue",
    "Unparseable",
    "Shape",
    "QuotaShortfall",
    "detect_shape",
    "extract_label_fragments",
    "normalize_labels",
    "normalize_intraverbal",
    "normalize_vpmts",
    "quota_shortfalls",
    "normalize",
]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Data Model
===============================================================================

Contents
--------
* ProgramType / MatchingType – closed enumerations with lenient parsers.
* SynthesisRequest           – program type + untyped caller fields.
* ParsedValue variants       – JsonArray | JsonObject | JsonString | LineList,
                               produced by the response parser.
* StimulusSet variants       – LabelSet | IntraverbalSet | VPMTSSet, produced
                               by the normalisers and returned to callers.
* normalize_label()          – trim + first‑character upper‑casing.
* Field readers              – defaults & aliases for the counts the prompt
                               builder and normalisers share.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

# ─────────────────────────────────────────────────────────────────────────────
# Defaults
# ─────────────────────────────────────────────────────────────────────────────
DEFAULT_TRIALS = 12
DEFAULT_CATEGORIES = 3
DEFAULT_EXEMPLARS = 2

# Counts above this are clamped; a completion never needs more.
MAX_FIELD_COUNT = 100


# ─────────────────────────────────────────────────────────────────────────────
# Enumerations
# ─────────────────────────────────────────────────────────────────────────────
def _squash(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


class ProgramType(str, Enum):
    """Program families; the value is the wire name used by the web app."""

    TACTING = "tacting"
    INTRAVERBAL = "intraverbal"
    LISTENER_RESPONDING = "lr"
    VPMTS = "vpmts"
    SERIATION = "seriation"
    SORTING = "sorting"

    @classmethod
    def parse(cls, value: Union[str, "ProgramType"]) -> "ProgramType":
        """
        Accept wire names ("lr") and long names ("ListenerResponding",
        "Listener Responding"), case‑insensitively.
        """
        if isinstance(value, ProgramType):
            return value
        key = _squash(str(value))
        for member in cls:
            if key in (member.value, _squash(member.name)):
                return member
        raise ValueError(f"Unknown program type: {value!r}")

    @property
    def is_label_only(self) -> bool:
        return self in _LABEL_ONLY


_LABEL_ONLY = frozenset(
    {
        ProgramType.TACTING,
        ProgramType.LISTENER_RESPONDING,
        ProgramType.SERIATION,
        ProgramType.SORTING,
    }
)


class MatchingType(str, Enum):
    """VPMTS sub‑mode."""

    IDENTICAL = "Identical"
    NON_IDENTICAL = "Non-Identical"
    CLASS = "Class"

    @classmethod
    def parse(cls, value: Any, default: Optional["MatchingType"] = None) -> "MatchingType":
        """Lenient parse ("non identical", "NON_IDENTICAL", …); unknown → *default* (Class)."""
        fallback = default or cls.CLASS
        if isinstance(value, MatchingType):
            return value
        if not isinstance(value, str) or not value.strip():
            return fallback
        key = _squash(value)
        for member in cls:
            if key == _squash(member.value):
                return member
        return fallback


# ─────────────────────────────────────────────────────────────────────────────
# Label normalisation
# ─────────────────────────────────────────────────────────────────────────────
def normalize_label(value: Any) -> str:
    """
    Trim whitespace and upper‑case the first character.

    Idempotent: ``normalize_label(normalize_label(x)) == normalize_label(x)``.
    ``None`` yields an empty string.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if not text:
        return ""
    return text[0].upper() + text[1:]


# ─────────────────────────────────────────────────────────────────────────────
# Field readers (fields are untyped at the boundary)
# ─────────────────────────────────────────────────────────────────────────────
def coerce_positive_int(value: Any) -> Optional[int]:
    """
    Return *value* as a positive int clamped to MAX_FIELD_COUNT, or None if it
    is not a positive finite number ("inf", 1e400 and "nan" are rejected).
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return None
    if number <= 0:
        return None
    return min(number, MAX_FIELD_COUNT)


def read_positive_int(fields: Mapping[str, Any], names: Iterable[str], default: int) -> int:
    """First alias in *names* holding a positive integer wins; else *default*."""
    for name in names:
        number = coerce_positive_int(fields.get(name))
        if number is not None:
            return number
    return default


def trial_count(fields: Mapping[str, Any]) -> int:
    return read_positive_int(fields, ("numTrials", "count"), DEFAULT_TRIALS)


def category_count(fields: Mapping[str, Any]) -> int:
    return read_positive_int(fields, ("numberOfCategories", "numberOfDifferentGroups"), DEFAULT_CATEGORIES)


def exemplar_count(fields: Mapping[str, Any]) -> int:
    return read_positive_int(fields, ("numberOfExemplars", "stimuliPerGroup"), DEFAULT_EXEMPLARS)


def matching_type(fields: Mapping[str, Any]) -> MatchingType:
    return MatchingType.parse(fields.get("matchingType"))


def text_field(fields: Mapping[str, Any], *names: str) -> str:
    """First non‑blank string among *names* (stripped), else ""."""
    for name in names:
        value = fields.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if value is not None and not isinstance(value, (str, list, dict)):
            return str(value)
    return ""


# ─────────────────────────────────────────────────────────────────────────────
# Request
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SynthesisRequest:
    """A program type plus the caller's free‑form fields."""

    program_type: ProgramType
    fields: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "program_type", ProgramType.parse(self.program_type))
        object.__setattr__(self, "fields", dict(self.fields or {}))

    @classmethod
    def from_payload(cls, payload: Union[str, bytes, Mapping[str, Any]]) -> "SynthesisRequest":
        """
        Validate a wire payload (``{"programType": ..., "fields": {...}}``) and
        build the request. Raises InvalidRequest on schema violations.
        """
        from stimulus_synth.request_validator import validate_request

        data = validate_request(payload)
        return cls(program_type=ProgramType.parse(data["programType"]), fields=data.get("fields") or {})


# ─────────────────────────────────────────────────────────────────────────────
# Parsed values (response parser output)
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class JsonArray:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class JsonObject:
    data: Dict[str, Any]


@dataclass(frozen=True)
class JsonString:
    value: str


@dataclass(frozen=True)
class LineList:
    """
    Lines recovered heuristically. ``structured`` is True when the lines came
    from a recognised list format (numbered list, "Label:" lines) rather than
    the bare line‑per‑item fallback.
    """

    lines: Tuple[str, ...]
    structured: bool = False
    text: str = ""


ParsedValue = Union[JsonArray, JsonObject, JsonString, LineList]


# ─────────────────────────────────────────────────────────────────────────────
# Stimulus sets (normaliser output)
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class LabelItem:
    label: str


@dataclass(frozen=True)
class IntraverbalItem:
    prompt: str
    answer: str


@dataclass(frozen=True)
class VPMTSGroup:
    category: str
    keys: Tuple[str, ...]


@dataclass(frozen=True)
class LabelSet:
    items: Tuple[LabelItem, ...]
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    type_name = "label"

    def __len__(self) -> int:
        return len(self.items)

    def labels(self) -> List[str]:
        return [item.label for item in self.items]

    def emitted_labels(self) -> List[str]:
        return self.labels()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "items": [{"label": item.label} for item in self.items],
            "fields": dict(self.fields),
        }


@dataclass(frozen=True)
class IntraverbalSet:
    items: Tuple[IntraverbalItem, ...]
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    type_name = "intraverbal"

    def __len__(self) -> int:
        return len(self.items)

    def emitted_labels(self) -> List[str]:
        return [f"{item.prompt}: {item.answer}" for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "items": [{"prompt": item.prompt, "answer": item.answer} for item in self.items],
            "fields": dict(self.fields),
        }


@dataclass(frozen=True)
class VPMTSSet:
    groups: Tuple[VPMTSGroup, ...]
    fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    type_name = "vpmts"

    def __len__(self) -> int:
        return len(self.groups)

    def emitted_labels(self) -> List[str]:
        return [key for group in self.groups for key in group.keys]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "items": [{"category": g.category, "keys": list(g.keys)} for g in self.groups],
            "fields": dict(self.fields),
        }


StimulusSet = Union[LabelSet, IntraverbalSet, VPMTSSet]


__all__ = [
    "DEFAULT_TRIALS",
    "MAX_FIELD_COUNT",
    "DEFAULT_CATEGORIES",
    "DEFAULT_EXEMPLARS",
    "ProgramType",
    "MatchingType",
    "normalize_label",
    "coerce_positive_int",
    "read_positive_int",
    "trial_count",
    "category_count",
    "exemplar_count",
    "matching_type",
    "text_field",
    "SynthesisRequest",
    "JsonArray",
    "JsonObject",
    "JsonString",
    "LineList",
    "ParsedValue",
    "LabelItem",
    "IntraverbalItem",
    "VPMTSGroup",
    "LabelSet",
    "IntraverbalSet",
    "VPMTSSet",
    "StimulusSet",
]

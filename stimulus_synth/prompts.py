#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Prompt Builders
===============================================================================

Purpose
-------
Pure, deterministic prompt text for every program type:
  • Label‑only programs (tacting, listener responding, seriation, sorting)
  • Intraverbal prompt/answer pairs
  • VPMTS category groups, one template per matching type
    (Identical / Non‑Identical / Class)
  • Teaching instructions (plain prose, no structured output)

Design choices
--------------
• Every system prompt ends with the same **output contract**: a raw JSON
  array, no prose, no fences, no string‑wrapped array. The parser tolerates
  violations; the contract just makes them rarer.
• Previously emitted stimuli (the history window plus any caller‑supplied
  exclusions) are listed **verbatim** with an explicit "do not reuse"
  instruction, so repetition avoidance works through the prompt alone.
• No I/O. Prompt lengths are trace‑logged at DEBUG.
"""
from __future__ import annotations

import textwrap
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from stimulus_synth import get_logger
from stimulus_synth.models import (
    MatchingType,
    ProgramType,
    category_count,
    exemplar_count,
    matching_type,
    text_field,
    trial_count,
)

log = get_logger(__name__)


# =============================================================================
# Shared text fragments
# =============================================================================
OUTPUT_RULES = (
    "OUTPUT RULES: Return ONLY a valid raw JSON array (not a stringified array), "
    "no prose, no code fences, no extra text. Do NOT wrap the array in quotes. "
    "Do NOT escape the array. Output must be a valid JSON array, not a string."
)

# Field names callers may use to pass their own exclusions.
EXCLUSION_FIELDS = ("exclude", "usedLabels", "recentStimuli")

_LABEL_EXAMPLES = textwrap.dedent(
    """
    For example:
    - If category is "Planets": Mercury, Venus, Earth, Mars, Jupiter, Saturn, Uranus, Neptune
    - If category is "Emotions": Happy, Sad, Angry, Excited, Scared, Surprised, Confused, Proud
    - If category is "MLB teams": Yankees, Red Sox, Dodgers, Giants, Cubs, Cardinals, Phillies, Braves
    - If category is "US States": California, Texas, Florida, New York, Pennsylvania, Illinois, Ohio, Georgia
    - If category is "Animals": Dog, Cat, Lion, Elephant, Giraffe, Zebra, Tiger, Bear
    """
).strip()


@dataclass(frozen=True)
class PromptPair:
    """System + user prompt for one completion call."""

    system: str
    user: str

    def combined(self) -> str:
        """Single prompt string for providers that take one text input."""
        return f"{self.system}\n\n{self.user}"


# =============================================================================
# Exclusions
# =============================================================================
def merge_exclusions(fields: Mapping[str, Any], extra: Optional[Iterable[str]] = None) -> List[str]:
    """
    Combine *extra* (normally the history window) with caller‑supplied
    exclusion fields. Order‑preserving, de‑duplicated, blanks dropped.
    """
    merged: List[str] = []
    seen = set()
    sources: List[Iterable[Any]] = [extra or ()]
    for name in EXCLUSION_FIELDS:
        value = fields.get(name)
        if isinstance(value, (list, tuple)):
            sources.append(value)
    for source in sources:
        for item in source:
            text = str(item).strip() if item is not None else ""
            if text and text not in seen:
                seen.add(text)
                merged.append(text)
    return merged


def exclusion_instruction(exclusions: Sequence[str]) -> str:
    """The "do not reuse" sentence, or "" when there is nothing to exclude."""
    if not exclusions:
        return ""
    return (
        "IMPORTANT: Do NOT include any of the following previously used items: "
        f"{', '.join(exclusions)}. Generate completely different, distinct items."
    )


def _context(fields: Mapping[str, Any], *names: str) -> str:
    parts = [text_field(fields, name) for name in names]
    return ". ".join(p for p in parts if p)


# =============================================================================
# Per‑program templates
# =============================================================================
def _label_prompt(program: ProgramType, fields: Mapping[str, Any], exclude: str) -> str:
    total = trial_count(fields)
    if program in (ProgramType.SERIATION, ProgramType.SORTING):
        return f'You generate JSON only. {exclude} Produce an array of {total} objects with key: "label".'

    context = _context(fields, "title", "description")
    if context:
        return textwrap.dedent(
            f"""
            Category: {context}. {exclude}
            Generate EXACTLY {total} specific items that belong to the category "{context}".
            Be accurate and factual.
            """
        ).strip() + "\n" + _LABEL_EXAMPLES + "\n" + (
            'OUTPUT FORMAT: a JSON array of objects with key "label", e.g. '
            '[{"label": "Mercury"}, {"label": "Venus"}]. Items must be factually accurate '
            "and belong to the specified category."
        )

    return (
        f"{exclude} List {total} concrete everyday nouns (e.g. \"apple\", \"bus\"). "
        'OUTPUT FORMAT: a JSON array of objects with key "label", e.g. '
        '[{"label": "Cat"}, {"label": "Dog"}].'
    ).strip()


def _intraverbal_prompt(fields: Mapping[str, Any], exclude: str) -> str:
    total = trial_count(fields)
    context = _context(fields, "title", "description")
    topic = f' Topic: "{context}".' if context else ""
    return (
        f"You generate JSON only.{topic} {exclude} Produce an array of {total} objects with keys: "
        '"prompt", "answer". Keep them short, kid-friendly.'
    )


def _vpmts_identical(categories: int, per: int, context: str, exclude: str) -> str:
    total = categories * per
    hint = f'Topic: "{context}". ' if context else ""
    guidance = (
        f'Generate categories related to "{context}". For example, if the topic is "Animals", '
        'use categories like "Farm Animals", "Wild Animals", "Pets", etc.'
        if context
        else 'Use concrete, kid-friendly categories like "Farm Animals", "Vehicles", "Foods", etc.'
    )
    return textwrap.dedent(
        f"""
        You generate JSON only. {hint}{exclude}
        Create EXACTLY {categories} different categories. For "Identical" matching, every item
        in a category uses the SAME exact picture, so all keys in a category are identical.

        CONTEXT INSTRUCTIONS: {guidance}

        CRITICAL REQUIREMENTS:
        - EXACTLY {categories} categories total
        - EXACTLY {per} items per category, all with the same key
        - EXACTLY {total} total items
        - Each item: {{"category": "Category Name", "key": "identical_item"}}

        EXAMPLE (for 2 categories, 2 identical items each):
        [
          {{"category": "Farm Animals", "key": "cow"}},
          {{"category": "Farm Animals", "key": "cow"}},
          {{"category": "Vehicles", "key": "car"}},
          {{"category": "Vehicles", "key": "car"}}
        ]

        VERIFICATION: Count your items - you must have {categories} categories with {per} identical items each = {total} total items.
        """
    ).strip()


def _vpmts_non_identical(categories: int, per: int, context: str, exclude: str) -> str:
    total = categories * per
    hint = f'Topic: "{context}". ' if context else ""
    guidance = (
        f'Generate specific item types related to "{context}". For example, if the topic is "Animals", '
        'use specific types like "Dogs", "Cats", "Birds", etc. with different breeds/varieties within each.'
        if context
        else 'Use specific item types like "Dogs", "Cars", "Apples", etc. with different variations within each category.'
    )
    return textwrap.dedent(
        f"""
        You generate JSON only. {hint}{exclude}
        For "Non-Identical" matching, each category must be ONE SPECIFIC TYPE OF ITEM with different
        variations of that same item (breeds, models, varieties).

        CONTEXT INSTRUCTIONS: {guidance}

        CRITICAL REQUIREMENTS:
        - EXACTLY {categories} categories total
        - EXACTLY {per} items per category (no more, no less)
        - EXACTLY {total} total items
        - Within each category, all items must be different variations of that same type
        - Each item: {{"category": "Specific Item Type", "key": "variation_name"}}

        CORRECT EXAMPLE (for 3 categories, 2 variations each):
        [
          {{"category": "Dogs", "key": "golden_retriever"}},
          {{"category": "Dogs", "key": "beagle"}},
          {{"category": "Cars", "key": "sedan"}},
          {{"category": "Cars", "key": "convertible"}},
          {{"category": "Apples", "key": "red_apple"}},
          {{"category": "Apples", "key": "green_apple"}}
        ]

        WRONG EXAMPLE (this would be "Class" matching, not "Non-Identical"):
        [
          {{"category": "Animals", "key": "dog"}},
          {{"category": "Animals", "key": "cat"}}
        ]

        VERIFICATION: Count your items - you must have {categories} categories with {per} items each = {total} total items.
        """
    ).strip()


def _vpmts_class(categories: int, per: int, context: str, exclude: str) -> str:
    total = categories * per
    hint = f'Topic: "{context}". ' if context else ""
    guidance = (
        f'Generate broad classification categories related to "{context}". For example, if the topic is '
        '"Animals", use broad classes like "Mammals", "Reptiles", "Birds", etc.'
        if context
        else 'Use broad classification categories like "Mammals", "Vehicles", "Foods", etc.'
    )
    return textwrap.dedent(
        f"""
        You generate JSON only. {hint}{exclude}
        For "Class" matching, each category must be a BROAD CLASSIFICATION that contains different
        types of items within that class.

        CONTEXT INSTRUCTIONS: {guidance}

        CRITICAL REQUIREMENTS:
        - EXACTLY {categories} categories total
        - EXACTLY {per} items per category (no more, no less)
        - EXACTLY {total} total items
        - Within each category, items must be different types belonging to that class
        - Each item: {{"category": "Broad Class Name", "key": "specific_item_name"}}

        CORRECT EXAMPLE (for 3 categories, 2 items each):
        [
          {{"category": "Mammals", "key": "dog"}},
          {{"category": "Mammals", "key": "elephant"}},
          {{"category": "Reptiles", "key": "snake"}},
          {{"category": "Reptiles", "key": "lizard"}},
          {{"category": "Birds", "key": "eagle"}},
          {{"category": "Birds", "key": "parrot"}}
        ]

        WRONG EXAMPLE (this would be "Non-Identical" matching, not "Class"):
        [
          {{"category": "Dogs", "key": "golden_retriever"}},
          {{"category": "Dogs", "key": "beagle"}}
        ]

        VERIFICATION: Count your items - you must have {categories} categories with {per} items each = {total} total items.
        """
    ).strip()


_VPMTS_TEMPLATES = {
    MatchingType.IDENTICAL: _vpmts_identical,
    MatchingType.NON_IDENTICAL: _vpmts_non_identical,
    MatchingType.CLASS: _vpmts_class,
}


def _vpmts_prompt(fields: Mapping[str, Any], exclude: str) -> str:
    template = _VPMTS_TEMPLATES[matching_type(fields)]
    context = text_field(fields, "programDescription", "description", "title")
    return template(category_count(fields), exemplar_count(fields), context, exclude)


# =============================================================================
# Public builders
# =============================================================================
def build_system_prompt(
    program: ProgramType,
    fields: Mapping[str, Any],
    exclusions: Sequence[str] = (),
) -> str:
    """
    Build the system prompt for *program*.

    The template is a pure switch over the program type (and, for VPMTS, over
    the matching type). Every prompt ends with OUTPUT_RULES.
    """
    program = ProgramType.parse(program)
    exclude = exclusion_instruction(exclusions)

    if program is ProgramType.INTRAVERBAL:
        body = _intraverbal_prompt(fields, exclude)
    elif program is ProgramType.VPMTS:
        body = _vpmts_prompt(fields, exclude)
    else:
        body = _label_prompt(program, fields, exclude)

    prompt = f"{body}\n{OUTPUT_RULES}"
    log.debug("System prompt for %s built (%d chars, %d exclusions).", program.value, len(prompt), len(exclusions))
    return prompt


def build_user_prompt(program: ProgramType, fields: Mapping[str, Any]) -> str:
    """Short user turn: title, mode and description (the title doubles as description)."""
    title = text_field(fields, "title")
    mode = text_field(fields, "mode")
    description = text_field(fields, "description") or title
    parts = [
        f"Title: {title}." if title else "",
        f"Mode: {mode}." if mode else "",
        f"Spec: {description}." if description else "",
        "JSON ONLY. NO prose.",
    ]
    return " ".join(p for p in parts if p)


def build_prompts(
    program: ProgramType,
    fields: Mapping[str, Any],
    exclusions: Optional[Iterable[str]] = None,
) -> PromptPair:
    """
    Build ``(system, user)`` prompts.

    Parameters
    ----------
    program : ProgramType
        Selects the template.
    fields : Mapping[str, Any]
        Caller fields (title, description, counts, matchingType, …).
    exclusions : Iterable[str] | None
        Previously emitted stimuli; merged with ``fields["exclude"]``,
        ``fields["usedLabels"]`` and ``fields["recentStimuli"]``.
    """
    merged = merge_exclusions(fields, exclusions)
    return PromptPair(
        system=build_system_prompt(program, fields, merged),
        user=build_user_prompt(program, fields),
    )


def build_teaching_instructions_prompt(program: ProgramType, fields: Mapping[str, Any]) -> str:
    """Single prose prompt for step‑by‑step teaching instructions."""
    program = ProgramType.parse(program)
    context = _context(fields, "title", "programDescription", "description")
    ctx = f" Program context: {context}." if context else ""
    prompt = (
        "You are an expert special education teacher. Write clear, step-by-step teaching "
        f"instructions for a 1:1 session for the following program type: {program.value}.{ctx} "
        "The instructions should be concise, actionable, and easy for a paraprofessional to follow. "
        "Do not include any JSON or code, just the instructions."
    )
    log.debug("Teaching‑instructions prompt for %s built (%d chars).", program.value, len(prompt))
    return prompt


__all__ = [
    "OUTPUT_RULES",
    "EXCLUSION_FIELDS",
    "PromptPair",
    "merge_exclusions",
    "exclusion_instruction",
    "build_system_prompt",
    "build_user_prompt",
    "build_prompts",
    "build_teaching_instructions_prompt",
]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Quota‑Fill Lookup Tables
===============================================================================

Static data consulted when a VPMTS completion under‑produces:

* KEYWORD_FILLERS    – category‑name keyword → ordered candidate keys, used to
                       top up categories the model did produce.
* FALLBACK_CATEGORIES – matching type → ordered category names, used when the
                       model produced too few categories.
* FALLBACK_VARIATIONS – matching type → {fallback category → candidate keys}.
                       Identical entries hold the single key that is repeated.
* GENERIC_KEY_FORMATS – matching type → format of the last‑resort key.

Extend the tables here; the normaliser's control flow does not change.
"""
from __future__ import annotations

from typing import Dict, Mapping, Sequence, Tuple

from stimulus_synth.models import MatchingType

# Keywords are matched as substrings of the lower‑cased category name, first
# entry wins.
KEYWORD_FILLERS: Sequence[Tuple[Tuple[str, ...], Tuple[str, ...]]] = (
    (("animal", "pet"), ("dog", "cat", "bird", "fish", "rabbit", "hamster", "turtle")),
    (("vehicle", "car", "transport"), ("car", "truck", "bus", "bike", "train", "plane", "boat")),
    (("food", "fruit", "snack"), ("apple", "banana", "bread", "milk", "pizza", "cookie", "orange")),
)

FALLBACK_CATEGORIES: Mapping[MatchingType, Tuple[str, ...]] = {
    MatchingType.NON_IDENTICAL: ("Dogs", "Cats", "Cars", "Trucks", "Apples", "Roses", "Chairs", "Balls"),
    MatchingType.CLASS: ("Mammals", "Reptiles", "Birds", "Vehicles", "Foods", "Toys", "Colors", "Shapes"),
    MatchingType.IDENTICAL: ("Animals", "Vehicles", "Foods", "Toys", "Colors", "Shapes", "Sports", "Clothing"),
}

FALLBACK_VARIATIONS: Mapping[MatchingType, Dict[str, Tuple[str, ...]]] = {
    # Named sub‑variants of the single item type the category denotes.
    MatchingType.NON_IDENTICAL: {
        "Dogs": ("golden_retriever", "beagle", "bulldog", "poodle", "labrador"),
        "Cats": ("persian", "siamese", "tabby", "maine_coon", "bengal"),
        "Cars": ("sedan", "convertible", "hatchback", "coupe", "wagon"),
        "Trucks": ("pickup", "semi", "dump", "fire", "delivery"),
        "Apples": ("red_apple", "green_apple", "yellow_apple", "pink_apple", "gala_apple"),
        "Roses": ("red_rose", "white_rose", "pink_rose", "yellow_rose", "climbing_rose"),
        "Chairs": ("armchair", "rocking_chair", "office_chair", "folding_chair", "high_chair"),
        "Balls": ("soccer_ball", "basketball", "tennis_ball", "beach_ball", "baseball"),
    },
    # Different members of the broader class.
    MatchingType.CLASS: {
        "Mammals": ("dog", "cat", "elephant", "whale", "rabbit"),
        "Reptiles": ("snake", "lizard", "turtle", "crocodile", "iguana"),
        "Birds": ("eagle", "parrot", "owl", "robin", "penguin"),
        "Vehicles": ("car", "truck", "bus", "bike", "train"),
        "Foods": ("apple", "banana", "bread", "milk", "pizza"),
        "Toys": ("ball", "doll", "blocks", "kite", "puzzle"),
        "Colors": ("red", "blue", "green", "yellow", "purple"),
        "Shapes": ("circle", "square", "triangle", "star", "heart"),
    },
    # One concrete key per category, repeated.
    MatchingType.IDENTICAL: {
        "Animals": ("dog",),
        "Vehicles": ("car",),
        "Foods": ("apple",),
        "Toys": ("ball",),
        "Colors": ("red",),
        "Shapes": ("circle",),
        "Sports": ("soccer_ball",),
        "Clothing": ("shirt",),
    },
}

# Placeholders: {category} is the lower‑cased category name, {n} is 1‑based.
GENERIC_KEY_FORMATS: Mapping[MatchingType, str] = {
    MatchingType.NON_IDENTICAL: "{category}_variation_{n}",
    MatchingType.CLASS: "{category}_item_{n}",
    MatchingType.IDENTICAL: "{category} item",
}

# Used to top up a category the model produced when no keyword matches.
GENERIC_FILL_FORMAT = "{category} item {n}"

# Used once a matching type's fallback category list is exhausted.
GENERIC_CATEGORY_FORMAT = "Group {n}"


def keyword_candidates(category: str) -> Tuple[str, ...]:
    """Candidate keys for a model‑produced category, by keyword; () if none match."""
    lowered = category.lower()
    for keywords, names in KEYWORD_FILLERS:
        if any(word in lowered for word in keywords):
            return names
    return ()


__all__ = [
    "KEYWORD_FILLERS",
    "FALLBACK_CATEGORIES",
    "FALLBACK_VARIATIONS",
    "GENERIC_KEY_FORMATS",
    "GENERIC_FILL_FORMAT",
    "GENERIC_CATEGORY_FORMAT",
    "keyword_candidates",
]

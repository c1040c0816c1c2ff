#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Request Validator (JSON‑Schema boundary)
===============================================================================

Purpose
-------
Validate a synthesis request payload against the schema bundled with the
package at `stimulus_synth/schema.json` before any other step runs.

Public API
----------
* `validate_request(payload: str | bytes | dict) -> dict`
    - Returns the parsed payload with a canonical ``programType`` wire name
      and a ``fields`` object (``{}`` when absent)
    - Raises `InvalidRequest` on malformed JSON or schema violations
* `request_schema() -> dict`
    - The active schema (used by ``stimulus-synth schema``).

Design notes
------------
* The schema is loaded **once** at import time via `importlib.resources` and
  compiled into a `Draft7Validator`.
* Long program names ("Tacting", "ListenerResponding", "VPMTS") are mapped to
  their wire names before validation.
* Advisory checks go beyond the schema but only **warn**: counts that are not
  positive integers and unknown matching types fall back to defaults in the
  normalisers, so they do not justify rejecting the request.
"""
from __future__ import annotations

import json
import re
from importlib import resources
from typing import Any, Dict, Union

from jsonschema import Draft7Validator, ValidationError

from stimulus_synth import get_logger
from stimulus_synth.errors import InvalidRequest
from stimulus_synth.models import MAX_FIELD_COUNT, MatchingType, ProgramType, coerce_positive_int

log = get_logger(__name__)


# -----------------------------------------------------------------------------
# Load schema at import‑time
# -----------------------------------------------------------------------------
def _load_schema() -> Dict[str, Any]:
    """Load the bundled schema from the installed package."""
    try:
        with resources.files("stimulus_synth").joinpath("schema.json").open(encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as exc:  # pragma: no cover
        log.critical("schema.json not found inside package: %s", exc)
        raise
    except json.JSONDecodeError as exc:  # pragma: no cover
        log.critical("schema.json is invalid JSON: %s", exc)
        raise


_SCHEMA: Dict[str, Any] = _load_schema()
Draft7Validator.check_schema(_SCHEMA)
_VALIDATOR: Draft7Validator = Draft7Validator(_SCHEMA)

_COUNT_FIELDS = (
    "numTrials",
    "count",
    "numberOfCategories",
    "numberOfDifferentGroups",
    "numberOfExemplars",
    "stimuliPerGroup",
)
_MATCHING_KEYS = {re.sub(r"[^a-z]", "", m.value.lower()) for m in MatchingType}


def _pretty_pointer(exc: ValidationError) -> str:
    """Human‑friendly location of the failing field (JSON Pointer‑ish)."""
    if not exc.path:
        return "$"
    return ".".join(["$"] + [str(p) for p in exc.path])


def request_schema() -> Dict[str, Any]:
    return json.loads(json.dumps(_SCHEMA))


def _advisory_checks(fields: Dict[str, Any]) -> None:
    for name in _COUNT_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        number = coerce_positive_int(value)
        if number is None:
            log.warning("fields.%s=%r is not a positive integer; the default will be used.", name, value)
        elif float(str(value).strip()) > MAX_FIELD_COUNT:
            log.warning("fields.%s=%r exceeds %d; it will be clamped.", name, value, MAX_FIELD_COUNT)
    matching = fields.get("matchingType")
    if isinstance(matching, str) and matching.strip() and re.sub(r"[^a-z]", "", matching.lower()) not in _MATCHING_KEYS:
        log.warning("fields.matchingType=%r is unknown; falling back to Class.", matching)


# =============================================================================
# Public API
# =============================================================================
def validate_request(payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate *payload* (dict/str/bytes) against the bundled schema.

    Returns
    -------
    dict
        A copy of the payload with a canonical ``programType`` and a
        ``fields`` object.

    Raises
    ------
    InvalidRequest
        If the payload is not valid JSON, not an object, or violates the schema.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise InvalidRequest(f"Request is not valid JSON: {exc}") from exc
    else:
        data = payload

    if not isinstance(data, dict):
        raise InvalidRequest(f"Request must be a JSON object, got {type(data).__name__}.")

    data = dict(data)
    program = data.get("programType")
    if isinstance(program, str):
        try:
            data["programType"] = ProgramType.parse(program).value
        except ValueError:
            pass  # the schema enum reports it
    if data.get("fields") is None:
        data["fields"] = {}

    try:
        _VALIDATOR.validate(data)
    except ValidationError as exc:
        raise InvalidRequest(f"Request invalid at {_pretty_pointer(exc)}: {exc.message}") from exc

    _advisory_checks(data["fields"])
    log.debug("Request validated (programType=%s, fields=%s)", data["programType"], sorted(data["fields"]))
    return data


__all__ = ["validate_request", "request_schema"]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Request validator tests
===============================================================================

Goals
-----
* Well‑formed payloads (str/bytes/dict) validate and are canonicalised.
* Malformed JSON, non‑objects and schema violations raise InvalidRequest.
* Advisory problems (bad counts, unknown matching type) do **not** reject.
"""
from __future__ import annotations

import json

import pytest
from jsonschema import Draft7Validator

from stimulus_synth.errors import InvalidRequest, SynthesisError
from stimulus_synth.models import ProgramType, SynthesisRequest
from stimulus_synth.request_validator import request_schema, validate_request


def test_bundled_schema_is_valid_draft7() -> None:
    schema = request_schema()
    Draft7Validator.check_schema(schema)
    assert schema["properties"]["programType"]["enum"] == [p.value for p in ProgramType]


@pytest.mark.parametrize(
    "payload",
    [
        '{"programType": "tacting", "fields": {"title": "Fruit"}}',
        b'{"programType": "lr"}',
        {"programType": "vpmts", "fields": {"numberOfCategories": 3, "matchingType": "Identical"}},
    ],
)
def test_valid_payloads(payload) -> None:
    data = validate_request(payload)
    assert data["programType"] in {p.value for p in ProgramType}
    assert isinstance(data["fields"], dict)


def test_long_program_names_are_canonicalised() -> None:
    assert validate_request({"programType": "ListenerResponding"})["programType"] == "lr"
    assert validate_request({"programType": "VPMTS"})["programType"] == "vpmts"


def test_missing_fields_default_to_empty_object() -> None:
    assert validate_request({"programType": "sorting", "fields": None})["fields"] == {}


def test_input_dict_is_not_mutated() -> None:
    payload = {"programType": "Tacting"}
    validate_request(payload)
    assert payload == {"programType": "Tacting"}


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[1, 2]",
        {},
        {"programType": "painting"},
        {"programType": 3},
        {"programType": "tacting", "fields": ["title"]},
        {"programType": "tacting", "fields": {"exclude": "Dog"}},
    ],
)
def test_invalid_payloads(payload) -> None:
    with pytest.raises(InvalidRequest) as excinfo:
        validate_request(payload)
    assert isinstance(excinfo.value, SynthesisError)
    assert excinfo.value.user_message.startswith("Configuration problem")


def test_advisory_problems_do_not_reject() -> None:
    data = validate_request(
        {"programType": "vpmts", "fields": {"numberOfCategories": "lots", "numberOfExemplars": -1, "matchingType": "Fuzzy"}}
    )
    assert data["fields"]["matchingType"] == "Fuzzy"


@pytest.mark.parametrize("count", [float("inf"), "inf", "1e400", 10**9])
def test_out_of_range_counts_are_advisory(count) -> None:
    data = validate_request({"programType": "vpmts", "fields": {"numberOfExemplars": count}})
    assert data["fields"]["numberOfExemplars"] == count


def test_request_from_payload() -> None:
    request = SynthesisRequest.from_payload(json.dumps({"programType": "Intraverbal", "fields": {"title": "Math"}}))
    assert request.program_type is ProgramType.INTRAVERBAL
    assert request.fields == {"title": "Math"}

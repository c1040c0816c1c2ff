#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Synthesis orchestrator tests (offline)
===============================================================================

Goals
-----
* Drive `SynthesisOrchestrator.synthesize` end to end with a scripted fake
  completion client (no network).
* Check the acceptance scenarios, history feedback into the next prompt, and
  that provider errors propagate untouched without writing history.
* `build_teaching_instructions` strips fences only.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Union

import pytest

from stimulus_synth.engine import SynthesisOrchestrator, build_teaching_instructions
from stimulus_synth.errors import (
    InvalidRequest,
    MissingCredential,
    UpstreamNetworkFailure,
    UpstreamStatusError,
    UpstreamTimeout,
)
from stimulus_synth.history import InMemoryHistoryStore
from stimulus_synth.models import (
    IntraverbalSet,
    LabelSet,
    ProgramType,
    SynthesisRequest,
    VPMTSSet,
)

log = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")


# ───────────────────────────── helper fakes ──────────────────────────────────
class _FakeClient:
    """Returns scripted completions (or raises scripted errors) in order."""

    def __init__(self, responses: List[Union[str, Exception]]):
        self._responses = list(responses)
        self.calls: List[dict] = []

    def complete(self, prompt: str, *, timeout: Optional[float] = None) -> str:
        self.calls.append({"prompt": prompt, "timeout": timeout})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _engine(*responses: Union[str, Exception], timeout: Optional[float] = None):
    client = _FakeClient(list(responses))
    return SynthesisOrchestrator(client=client, history=InMemoryHistoryStore(), timeout=timeout), client


# ───────────────────────────── scenarios ─────────────────────────────────────
def test_scenario_a() -> None:
    engine, _ = _engine('[{"label":"cat"}, {"label":"dog"}]')
    result = engine.synthesize(SynthesisRequest(ProgramType.TACTING, {"title": "Pets"}))
    assert isinstance(result, LabelSet)
    assert result.labels() == ["Cat", "Dog"]


def test_scenario_b() -> None:
    engine, _ = _engine("1. Mercury, 2. Venus, 3. Earth")
    result = engine.synthesize(SynthesisRequest(ProgramType.TACTING, {"title": "Planets", "numTrials": 3}))
    assert result.labels() == ["Mercury", "Venus", "Earth"]


def test_scenario_c() -> None:
    engine, _ = _engine("not valid json at all")
    request = SynthesisRequest(
        ProgramType.VPMTS,
        {"numberOfCategories": 2, "numberOfExemplars": 2, "matchingType": "Class"},
    )
    result = engine.synthesize(request)
    assert isinstance(result, VPMTSSet)
    assert [g.category for g in result.groups] == ["Mammals", "Reptiles"]
    assert all(len(g.keys) == 2 for g in result.groups)


def test_scenario_d() -> None:
    engine, _ = _engine('[{"prompt":"2+2","answer":"4"},{"prompt":"","answer":"x"}]')
    result = engine.synthesize(SynthesisRequest(ProgramType.INTRAVERBAL, {}))
    assert isinstance(result, IntraverbalSet)
    assert result.to_dict()["items"] == [{"prompt": "2+2", "answer": "4"}]


# ───────────────────────────── history feedback ──────────────────────────────
def test_history_feeds_the_next_prompt_for_the_same_key() -> None:
    engine, client = _engine('["Okapi", "Quokka"]', '["Tapir"]', '["Cow"]')
    request = SynthesisRequest(ProgramType.TACTING, {"title": "Zoo Animals"})

    engine.synthesize(request)
    assert "previously used" not in client.calls[0]["prompt"]

    engine.synthesize(request)
    second = client.calls[1]["prompt"]
    assert "Okapi" in second and "Quokka" in second

    engine.synthesize(SynthesisRequest(ProgramType.TACTING, {"title": "Farm"}))
    assert "previously used" not in client.calls[2]["prompt"]

    assert engine.history.get("tacting-zoo-animals") == ["Tapir", "Okapi", "Quokka"]
    assert engine.history.get("tacting-farm") == ["Cow"]


def test_caller_exclusions_are_merged_with_history() -> None:
    engine, client = _engine('["Kiwi"]')
    engine.synthesize(SynthesisRequest(ProgramType.TACTING, {"title": "Fruit", "exclude": ["Mango"]}))
    assert "Mango" in client.calls[0]["prompt"]


def test_vpmts_keys_and_intraverbal_pairs_enter_history() -> None:
    engine, _ = _engine(
        '[{"category":"Pets","key":"dog"},{"category":"Pets","key":"cat"}]',
        '[{"prompt":"Hi","answer":"Hello"}]',
    )
    engine.synthesize(SynthesisRequest(ProgramType.VPMTS, {"title": "Pets", "numberOfCategories": 1}))
    engine.synthesize(SynthesisRequest(ProgramType.INTRAVERBAL, {"title": "Greetings"}))
    assert engine.history.get("vpmts-pets") == ["Dog", "Cat"]
    assert engine.history.get("intraverbal-greetings") == ["Hi: Hello"]


# ───────────────────────────── errors ────────────────────────────────────────
@pytest.mark.parametrize(
    "error",
    [
        MissingCredential("OPENAI_API_KEY"),
        UpstreamNetworkFailure("connection refused"),
        UpstreamTimeout(5.0),
        UpstreamStatusError(503, "overloaded"),
    ],
)
def test_provider_errors_propagate_and_leave_history_untouched(error: Exception) -> None:
    engine, client = _engine(error)
    request = SynthesisRequest(ProgramType.TACTING, {"title": "Pets"})
    with pytest.raises(type(error)):
        engine.synthesize(request)
    assert len(client.calls) == 1
    assert engine.history.get("tacting-pets") == []


def test_user_messages_distinguish_configuration_from_upstream() -> None:
    assert MissingCredential("REPLICATE_API_TOKEN").user_message.startswith("Configuration problem")
    assert UpstreamStatusError(500, "boom").user_message.startswith("Upstream text service unavailable")
    assert isinstance(UpstreamTimeout(1.0), UpstreamNetworkFailure)


@pytest.mark.parametrize("count", ["inf", float("inf"), "nan"])
def test_non_finite_counts_never_escape_synthesize(count) -> None:
    engine, _ = _engine("[]")
    result = engine.synthesize(SynthesisRequest(ProgramType.VPMTS, {"numberOfCategories": count, "numTrials": count}))
    assert len(result.groups) == 3


def test_timeout_is_passed_to_the_client() -> None:
    engine, client = _engine('["a"]', '["b"]', timeout=30.0)
    request = SynthesisRequest(ProgramType.SORTING, {})
    engine.synthesize(request)
    engine.synthesize(request, timeout=2.5)
    assert [c["timeout"] for c in client.calls] == [30.0, 2.5]


def test_synthesize_payload_validates_first() -> None:
    engine, client = _engine('["Apple"]')
    result = engine.synthesize_payload('{"programType": "Tacting", "fields": {"title": "Fruit"}}')
    assert result.labels() == ["Apple"]
    with pytest.raises(InvalidRequest):
        engine.synthesize_payload({"programType": "painting"})
    assert len(client.calls) == 1


# ───────────────────────────── teaching instructions ─────────────────────────
def test_teaching_instructions_strip_fences_only() -> None:
    client = _FakeClient(["```markdown\n1. Sit with the learner.\n2. Present the card.\n```"])
    text = build_teaching_instructions(client, "lr", {"title": "Colors"})
    assert text == "1. Sit with the learner.\n2. Present the card."
    assert "lr" in client.calls[0]["prompt"]


def test_teaching_instructions_via_orchestrator() -> None:
    engine, client = _engine("Step one.")
    assert engine.build_teaching_instructions(ProgramType.TACTING) == "Step one."
    assert len(client.calls) == 1

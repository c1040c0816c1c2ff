#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Synthesis Orchestrator
===============================================================================

Overview
--------
One `synthesize(request)` call runs seven steps, each a clear failure
boundary:

  1) Derive the HistoryKey and fetch its exclusion window.
  2) Build prompts with the window (plus caller exclusions) folded in.
  3) Call the CompletionClient once. Credential, network, timeout and
     upstream‑status errors propagate unchanged; nothing is retried.
  4) Parse the raw text (never fails).
  5) Normalise for the program type (never fails; synthetic if necessary).
  6) Append the emitted labels to the history window.
  7) Return the StimulusSet.

Nothing after step 3 can abort the request. History is only written after a
successful completion, so failed calls leave it untouched.

`build_teaching_instructions` is the lighter sibling: one prose prompt, one
completion, fence markers stripped, no structured parsing.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from stimulus_synth import get_logger
from stimulus_synth.completion_client import CompletionClient
from stimulus_synth.errors import SynthesisError
from stimulus_synth.history import HistoryStore, InMemoryHistoryStore, request_history_key
from stimulus_synth.models import ProgramType, StimulusSet, SynthesisRequest
from stimulus_synth.normalizer import normalize
from stimulus_synth.parser import clean_completion, parse
from stimulus_synth.prompts import build_prompts, build_teaching_instructions_prompt

log = get_logger(__name__)


@dataclass
class SynthesisOrchestrator:
    """
    Wires prompt building, the completion provider, parsing, normalisation
    and the anti‑repetition history together.

    Attributes
    ----------
    client : CompletionClient
        Provider used for every completion call.
    history : HistoryStore
        Exclusion windows; a fresh in‑memory store when omitted.
    timeout : float | None
        Default per‑call timeout; ``synthesize(timeout=...)`` overrides it.
    """

    client: CompletionClient
    history: HistoryStore = field(default_factory=InMemoryHistoryStore)
    timeout: Optional[float] = None

    def _complete(self, prompt: str, timeout: Optional[float]) -> str:
        effective = timeout if timeout is not None else self.timeout
        try:
            return self.client.complete(prompt, timeout=effective)
        except SynthesisError as exc:
            log.error("Completion failed (%s): %s", exc.kind, exc)
            raise

    def synthesize(self, request: SynthesisRequest, timeout: Optional[float] = None) -> StimulusSet:
        """Produce a StimulusSet for *request*; see the module docstring for the steps."""
        program = request.program_type
        fields = request.fields

        key = request_history_key(request)
        window = self.history.get(key)
        log.info("Synthesis start | program=%s | key=%s | exclusions=%d", program.value, key, len(window))

        prompts = build_prompts(program, fields, window)
        prompt = prompts.combined()
        log.debug("Combined prompt is %d chars.", len(prompt))

        raw = self._complete(prompt, timeout)

        parsed = parse(raw)
        result = normalize(program, parsed, fields)

        labels = result.emitted_labels()
        self.history.append(key, labels)
        log.info("Synthesis done | program=%s | type=%s | items=%d", program.value, result.type_name, len(result))
        return result

    def synthesize_payload(self, payload: Any, timeout: Optional[float] = None) -> StimulusSet:
        """Validate a raw request payload, then synthesise."""
        return self.synthesize(SynthesisRequest.from_payload(payload), timeout=timeout)

    def build_teaching_instructions(
        self,
        program: ProgramType,
        fields: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        return build_teaching_instructions(self.client, program, fields, timeout=timeout or self.timeout)


def build_teaching_instructions(
    client: CompletionClient,
    program: ProgramType,
    fields: Optional[Mapping[str, Any]] = None,
    timeout: Optional[float] = None,
) -> str:
    """Plain‑text teaching instructions for *program*; only fence markers are stripped."""
    program = ProgramType.parse(program)
    prompt = build_teaching_instructions_prompt(program, dict(fields or {}))
    try:
        raw = client.complete(prompt, timeout=timeout)
    except SynthesisError as exc:
        log.error("Teaching‑instructions completion failed (%s): %s", exc.kind, exc)
        raise
    text = clean_completion(raw)
    log.info("Teaching instructions for %s: %d chars.", program.value, len(text))
    return text


__all__ = ["SynthesisOrchestrator", "build_teaching_instructions"]

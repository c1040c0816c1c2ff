#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Anti‑Repetition History
===============================================================================

A bounded, newest‑first window of previously emitted stimulus labels per
HistoryKey. The window feeds the prompt's exclusion list and is updated after
every successful synthesis.

Semantics
---------
* ``get(key)``            → copy of the window (empty list for unknown keys).
* ``append(key, labels)`` → prepend *labels* (emission order kept), then keep
                            the first ``max_size`` entries (oldest dropped).
* No expiry other than capacity; keys are created lazily and never deleted.

Concurrency
-----------
`InMemoryHistoryStore` serialises read‑modify‑write per key with one
`threading.Lock` per key; a registry lock guards lock creation only.

Environment
-----------
STIMULUS_SYNTH_HISTORY_SIZE – window capacity (default 40)
"""
from __future__ import annotations

import os
import re
import threading
from typing import Any, Dict, Iterable, List, Mapping, Protocol

from stimulus_synth import get_logger
from stimulus_synth.models import ProgramType, SynthesisRequest, text_field

log = get_logger(__name__)

DEFAULT_HISTORY_SIZE = int(os.getenv("STIMULUS_SYNTH_HISTORY_SIZE", "40"))


def history_key(program: ProgramType, fields: Mapping[str, Any]) -> str:
    """
    Stable key for "the same program": ``<program>-<slug(title or description)>``.

    The slug is lower‑cased with whitespace runs collapsed to "-"; requests with
    neither title nor description share the ``default`` slug.
    """
    program = ProgramType.parse(program)
    source = text_field(fields, "title") or text_field(fields, "description") or "default"
    slug = re.sub(r"\s+", "-", source.strip().lower())
    return f"{program.value}-{slug}"


def request_history_key(request: SynthesisRequest) -> str:
    return history_key(request.program_type, request.fields)


class HistoryStore(Protocol):
    """What the orchestrator needs from a history backend."""

    def get(self, key: str) -> List[str]:
        ...

    def append(self, key: str, labels: Iterable[str]) -> None:
        ...


class InMemoryHistoryStore:
    """Process‑lifetime history windows with per‑key locking."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be a positive integer")
        self.max_size = max_size
        self._windows: Dict[str, List[str]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, key: str) -> List[str]:
        with self._lock_for(key):
            return list(self._windows.get(key, ()))

    def append(self, key: str, labels: Iterable[str]) -> None:
        new = [str(label) for label in labels]
        with self._lock_for(key):
            current = self._windows.get(key, [])
            before = len(current)
            window = (new + current)[: self.max_size]
            with self._registry_lock:
                self._windows[key] = window
        log.info(
            "History update | key=%s | added=%d | size %d → %d | tracked keys=%d",
            key,
            len(new),
            before,
            len(window),
            len(self),
        )
        log.debug("History additions for %s: %s", key, ", ".join(new))

    def snapshot(self) -> Dict[str, List[str]]:
        """Copy of every window, for diagnostics."""
        with self._registry_lock:
            keys = list(self._windows)
        return {key: self.get(key) for key in keys}

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, key: object) -> bool:
        return key in self._windows


__all__ = [
    "DEFAULT_HISTORY_SIZE",
    "history_key",
    "request_history_key",
    "HistoryStore",
    "InMemoryHistoryStore",
]

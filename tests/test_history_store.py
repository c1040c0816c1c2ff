#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
History store tests
===============================================================================

Goals
-----
* Newest‑first window, bounded, oldest entries evicted first.
* Unknown keys read as empty; reads return copies.
* Concurrent appends to one key never lose an update.
* HistoryKey derivation is stable for "the same program".
"""
from __future__ import annotations

import threading

import pytest

from stimulus_synth.history import InMemoryHistoryStore, history_key, request_history_key
from stimulus_synth.models import ProgramType, SynthesisRequest


def test_unknown_key_is_empty() -> None:
    store = InMemoryHistoryStore()
    assert store.get("nope") == []
    assert "nope" not in store


def test_append_prepends_in_emission_order() -> None:
    store = InMemoryHistoryStore(max_size=10)
    store.append("k", ["a", "b"])
    store.append("k", ["c", "d"])
    assert store.get("k") == ["c", "d", "a", "b"]


def test_window_is_bounded_and_keeps_most_recent() -> None:
    store = InMemoryHistoryStore(max_size=40)
    for i in range(25):
        store.append("k", [f"{i}-a", f"{i}-b"])
    window = store.get("k")
    assert len(window) == 40
    assert window[0] == "24-a"
    assert window[-1] == "5-b"


def test_single_oversized_append_is_truncated() -> None:
    store = InMemoryHistoryStore(max_size=3)
    store.append("k", ["1", "2", "3", "4", "5"])
    assert store.get("k") == ["1", "2", "3"]


def test_get_returns_a_copy() -> None:
    store = InMemoryHistoryStore()
    store.append("k", ["a"])
    store.get("k").append("mutated")
    assert store.get("k") == ["a"]


def test_snapshot_and_len() -> None:
    store = InMemoryHistoryStore()
    store.append("x", ["1"])
    store.append("y", ["2"])
    snap = store.snapshot()
    assert snap == {"x": ["1"], "y": ["2"]}
    snap["x"].append("mutated")
    assert store.get("x") == ["1"]
    assert len(store) == 2


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        InMemoryHistoryStore(max_size=0)


def test_concurrent_appends_do_not_lose_updates() -> None:
    store = InMemoryHistoryStore(max_size=1000)
    barrier = threading.Barrier(8)

    def worker(n: int) -> None:
        barrier.wait()
        for i in range(50):
            store.append("shared", [f"{n}-{i}"])

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    window = store.get("shared")
    assert len(window) == 400
    assert len(set(window)) == 400


@pytest.mark.parametrize(
    "program,fields,expected",
    [
        (ProgramType.TACTING, {"title": "Farm Animals"}, "tacting-farm-animals"),
        (ProgramType.VPMTS, {"description": "  Big   Cats "}, "vpmts-big-cats"),
        (ProgramType.LISTENER_RESPONDING, {}, "lr-default"),
        ("intraverbal", {"title": "", "description": "Math"}, "intraverbal-math"),
    ],
)
def test_history_key(program, fields, expected: str) -> None:
    assert history_key(program, fields) == expected


def test_request_history_key_matches_fields() -> None:
    request = SynthesisRequest(program_type="Tacting", fields={"title": "Planets"})
    assert request_history_key(request) == "tacting-planets"

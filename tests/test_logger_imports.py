#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Logger import compatibility tests
===============================================================================

Goals
-----
* The **module** accessor (`from stimulus_synth.logger import get_logger`)
  and the **package** accessor (`from stimulus_synth import get_logger`) must
  return the *same* underlying logger object for a given name.
* Handlers live on the project root only; repeated calls must **not**
  duplicate them (idempotent configuration).
"""
from __future__ import annotations

import logging

import pytest

from stimulus_synth import get_logger as pkg_root_get_logger
from stimulus_synth.logger import get_logger as pkg_get_logger
from stimulus_synth.logger import parse_level


def test_same_logger_instance_for_same_name() -> None:
    """
    Both access paths should return the same Logger object for a given name.
    """
    name = "stimulus_synth.test.logger"
    a = pkg_get_logger(name)
    b = pkg_root_get_logger(name)

    assert isinstance(a, logging.Logger)
    assert a is b


def test_idempotent_root_handlers() -> None:
    """
    Calling get_logger repeatedly must not add duplicate handlers to the root.
    """
    root = pkg_get_logger()
    before = len(root.handlers)

    for _ in range(3):
        _ = pkg_get_logger("stimulus_synth.test.idempotent")
        _ = pkg_root_get_logger("stimulus_synth.test.idempotent")
        _ = pkg_root_get_logger()

    assert len(root.handlers) == before >= 1
    assert root.propagate is False


def test_child_loggers_propagate_without_handlers() -> None:
    child = pkg_get_logger("stimulus_synth.test.child")
    assert child.handlers == []
    assert child.propagate is True


@pytest.mark.parametrize(
    "value,expected",
    [("debug", logging.DEBUG), (" WARNING ", logging.WARNING), ("15", 15), ("", logging.INFO), (None, logging.INFO), ("loud", logging.INFO)],
)
def test_parse_level(value, expected: int) -> None:
    assert parse_level(value) == expected

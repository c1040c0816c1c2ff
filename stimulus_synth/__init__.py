#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth – Package Initialisation
===============================================================================

Turns free‑form LLM completions into validated, program‑specific teaching
stimuli (labels, intraverbal prompt/answer pairs, VPMTS category groups).

Exports
-------
* __version__     – Resolved from installed package metadata
* get_version()   – Helper returning the version string
* get_logger()    – Re‑export of stimulus_synth.logger.get_logger

Side‑effects
------------
* Configures the root "stimulus_synth" logger on first import so every
  sub‑module shares the same rotating file + console handlers.

The engine itself lives in `stimulus_synth.engine`; it is not imported here so
that `import stimulus_synth` (and `--version`) stays cheap.
"""
from __future__ import annotations

import logging
from importlib.metadata import PackageNotFoundError, version as _pkg_version

from stimulus_synth.logger import get_logger as _delegate_get_logger

_ROOT_LOGGER = _delegate_get_logger(None)
_ROOT_LOGGER.debug("Logger initialised in %s", __name__)

# -----------------------------------------------------------------------------
# Version helpers
# -----------------------------------------------------------------------------
try:
    __version__: str = _pkg_version("stimulus-synth")
except PackageNotFoundError:
    # Keep this fallback in sync with pyproject.toml
    __version__ = "0.1.0"
    _ROOT_LOGGER.debug("Package metadata not found – using fallback version %s", __version__)


def get_version() -> str:
    """Return the package version string."""
    return __version__


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Return a logger configured with Stimulus‑Synth's handlers & formatting.

    Parameters
    ----------
    name : str | None
        • Explicit module logger name (e.g., __name__) or None for the root
          project logger "stimulus_synth".
    """
    return _delegate_get_logger(name)


__all__ = ["__version__", "get_version", "get_logger"]

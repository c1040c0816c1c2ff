#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Unified Logging Facility
===============================================================================

Purpose
-------
One **centralised**, **idempotent** logger configuration shared by every
module of the engine. Modules obtain their logger via:

    from stimulus_synth import get_logger
    log = get_logger(__name__)

Handlers
--------
* Console (stderr) at INFO, so JSON printed by the CLI on stdout stays clean.
* Daily rotating file ``stimulus_synth.log`` at DEBUG. Raw completions and
  prompt sizes only land here.

Only the root "stimulus_synth" logger owns handlers; child loggers propagate.
When no log directory is writable (./logs, then the temp dir) the package
logs to the console only.

Environment
-----------
STIMULUS_SYNTH_LOG_DIR   – log directory (default: ./logs)
STIMULUS_SYNTH_LOG_LVL   – console level (DEBUG / INFO / WARNING / … or numeric)
STIMULUS_SYNTH_LOG_ROT   – rotation schedule ("midnight", "H", …)
STIMULUS_SYNTH_LOG_BACK  – number of rotated files kept (default 7)
"""
from __future__ import annotations

import logging
import os
import sys
import tempfile
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import List, Optional

_ROOT_LOGGER_NAME = "stimulus_synth"
_LOG_FILE = "stimulus_synth.log"

FORMAT = "%(asctime)s | %(name)s | %(levelname)-8s | %(message)s"
DTFMT = "%Y-%m-%d %H:%M:%S"


def parse_level(val: Optional[str], default: int = logging.INFO) -> int:
    """``"debug"``, ``"WARNING"`` or ``"20"`` → logging level; junk → *default*."""
    text = (val or "").strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else default


CONSOLE_LEVEL = parse_level(os.getenv("STIMULUS_SYNTH_LOG_LVL"))
ROTATE_WHEN = os.getenv("STIMULUS_SYNTH_LOG_ROT", "midnight")
BACKUP_COUNT = int(os.getenv("STIMULUS_SYNTH_LOG_BACK", "7"))


def _candidate_dirs() -> List[Path]:
    return [
        Path(os.getenv("STIMULUS_SYNTH_LOG_DIR", "logs")).expanduser(),
        Path(tempfile.gettempdir()) / "stimulus-synth-logs",
    ]


def _file_handler() -> Optional[logging.Handler]:
    """Rotating file in the first usable directory, or None (console only)."""
    for directory in _candidate_dirs():
        try:
            directory.mkdir(parents=True, exist_ok=True)
            handler = TimedRotatingFileHandler(
                filename=directory / _LOG_FILE,
                when=ROTATE_WHEN,
                backupCount=BACKUP_COUNT,
                encoding="utf-8",
            )
        except (OSError, ValueError):
            continue
        handler.setLevel(logging.DEBUG)
        return handler
    return None


def _configure(root: logging.Logger) -> None:
    formatter = logging.Formatter(fmt=FORMAT, datefmt=DTFMT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(CONSOLE_LEVEL)
    handlers: List[logging.Handler] = [console]

    file_handler = _file_handler()
    if file_handler is not None:
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    root.debug(
        "Logging ready | console=%s | file=%s | rotate=%s x%d",
        logging.getLevelName(CONSOLE_LEVEL),
        getattr(file_handler, "baseFilename", "<none>"),
        ROTATE_WHEN,
        BACKUP_COUNT,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the project root logger (``name`` None) or a child of it.

    The root is configured on the first call only; children carry no handlers
    of their own and propagate, so nothing is printed twice.
    """
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    if not root.handlers:
        _configure(root)

    if name is None or name == _ROOT_LOGGER_NAME:
        return root

    logger = logging.getLogger(name)
    logger.propagate = True
    return logger


__all__ = ["get_logger", "parse_level"]

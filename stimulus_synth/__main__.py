#!/usr/bin/env python3
"""
===============================================================================
Stimulus‑Synth ▸ Module CLI Entrypoint
===============================================================================

This file allows the package to be executed with:

    python -m stimulus_synth  [args …]

It acts as a thin wrapper around **stimulus_synth.cli.main()**, adding:

* `--version`   – print package version and exit (before the heavier imports)
* A banner with the Python runtime and package version, helpful when users
  paste logs.
"""
from __future__ import annotations

import argparse
import platform
import sys

from stimulus_synth import get_logger, get_version

logger = get_logger(__name__)


def _parse_cli(argv: list) -> tuple:
    """Extract global flags (`--version`) and leave the rest for cli.main()."""
    parser = argparse.ArgumentParser(prog="python -m stimulus_synth", add_help=False)
    parser.add_argument("--version", action="store_true")
    args, remainder = parser.parse_known_args(argv)
    return args, remainder


def _print_banner() -> None:
    logger.debug(
        "Stimulus‑Synth %s – Python %s – %s",
        get_version(),
        platform.python_version(),
        platform.platform(),
    )


def main(argv: list = None) -> int:
    """Top‑level dispatcher; returns the process exit code."""
    args, remaining = _parse_cli(sys.argv[1:] if argv is None else argv)
    if args.version:
        print(get_version())
        return 0

    _print_banner()

    # Lazy import keeps startup lightweight when --version is used.
    from stimulus_synth.cli import main as cli_main

    return cli_main(remaining)


if __name__ == "__main__":
    sys.exit(main())

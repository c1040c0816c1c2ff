#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Command Line Interface
===============================================================================

Subcommands
-----------
• generate      – synthesise a stimulus set via the completion provider
• parse         – run parser + normaliser offline on a saved raw completion
• instructions  – print teaching instructions for a program type
• validate      – validate a request payload against the bundled schema
• schema        – print the active JSON schema
• version       – print package version

Global flags
------------
• --version     – print package version (equivalent to the `version` subcommand)

Examples
--------
  # 1) Three VPMTS sets in a row (history excludes earlier keys)
  stimulus-synth generate vpmts --field title=Animals --field matchingType=Class \
      --field numberOfCategories=3 --field numberOfExemplars=2 --repeat 3

  # 2) Re‑normalise a completion captured from the logs
  stimulus-synth parse tacting --file raw.txt --field numTrials=5
  echo '1. Mercury, 2. Venus' | stimulus-synth parse tacting -

  # 3) Validate a request / print schema
  stimulus-synth validate --payload '{"programType":"lr","fields":{"title":"Fruit"}}'
  stimulus-synth schema

Exit codes
----------
0 ok · 1 failure · 2 usage error · 130 interrupted
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from stimulus_synth import get_logger, get_version
from stimulus_synth.completion_client import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_PROVIDER,
    PROVIDERS,
    create_completion_client,
)
from stimulus_synth.engine import SynthesisOrchestrator, build_teaching_instructions
from stimulus_synth.errors import SynthesisError
from stimulus_synth.history import InMemoryHistoryStore
from stimulus_synth.models import ProgramType, SynthesisRequest
from stimulus_synth.normalizer import normalize
from stimulus_synth.parser import parse
from stimulus_synth.request_validator import request_schema, validate_request

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
def _program_type(value: str) -> ProgramType:
    try:
        return ProgramType.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _field_value(raw: str) -> Any:
    """JSON scalars/arrays when they decode (``3``, ``["a"]``), else the string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _collect_fields(args: argparse.Namespace) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if getattr(args, "fields_json", None):
        try:
            loaded = json.loads(args.fields_json)
        except ValueError as exc:
            raise SystemExit(f"--fields-json is not valid JSON: {exc}") from exc
        if not isinstance(loaded, dict):
            raise SystemExit("--fields-json must be a JSON object.")
        fields.update(loaded)
    for item in getattr(args, "field", None) or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise SystemExit(f"--field expects KEY=VALUE, got {item!r}")
        fields[key.strip()] = _field_value(value)
    return fields


def _read_source(args: argparse.Namespace) -> Optional[str]:
    if getattr(args, "text", None) is not None:
        return args.text
    if getattr(args, "file", None):
        try:
            return Path(args.file).read_text(encoding="utf-8")
        except OSError as exc:
            log.error("Failed to read %s: %s", args.file, exc)
            return None
    if getattr(args, "source", None) == "-" or getattr(args, "payload", None) == "-":
        return sys.stdin.read()
    return getattr(args, "payload", None)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


# ─────────────────────────────────────────────────────────────────────────────
# Subcommand handlers
# ─────────────────────────────────────────────────────────────────────────────
def cmd_generate(args: argparse.Namespace) -> int:
    """Run `synthesize` N times against one in‑process history store."""
    request = SynthesisRequest(program_type=args.program_type, fields=_collect_fields(args))
    client = create_completion_client(args.provider, args.model, args.api_timeout)
    engine = SynthesisOrchestrator(client=client, history=InMemoryHistoryStore(), timeout=args.api_timeout)

    results: List[Dict[str, Any]] = []
    for i in range(args.repeat):
        log.info("Generate round %d/%d", i + 1, args.repeat)
        results.append(engine.synthesize(request).to_dict())
    _print_json(results[0] if args.repeat == 1 else results)
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse and normalise a saved raw completion without any network call."""
    raw = _read_source(args)
    if raw is None:
        log.error("Missing completion text. Provide --text, --file or '-' (stdin).")
        return 2
    fields = _collect_fields(args)
    result = normalize(args.program_type, parse(raw), fields)
    _print_json(result.to_dict())
    return 0


def cmd_instructions(args: argparse.Namespace) -> int:
    client = create_completion_client(args.provider, args.model, args.api_timeout)
    print(build_teaching_instructions(client, args.program_type, _collect_fields(args), timeout=args.api_timeout))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a request payload."""
    payload = _read_source(args)
    if not payload:
        log.error("Missing payload. Provide --payload <json> or --payload - (stdin) or --file <path>.")
        return 1
    data = validate_request(payload)
    print(f"✓ Request is valid (programType={data['programType']}).")
    return 0


def cmd_schema(_args: argparse.Namespace) -> int:
    _print_json(request_schema())
    return 0


def cmd_version(_args: argparse.Namespace) -> int:
    print(get_version())
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────
def _add_field_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("program_type", type=_program_type, help="tacting | intraverbal | lr | vpmts | seriation | sorting")
    p.add_argument("--field", action="append", metavar="KEY=VALUE", help="Request field (repeatable; JSON values decoded).")
    p.add_argument("--fields-json", help="Request fields as one JSON object (merged before --field).")


def _add_provider_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--provider", choices=PROVIDERS, default=DEFAULT_PROVIDER, help=f"Completion provider (default: {DEFAULT_PROVIDER})")
    p.add_argument("--model", help="Model id (default: provider specific or STIMULUS_SYNTH_MODEL).")
    p.add_argument("--api-timeout", type=float, default=DEFAULT_API_TIMEOUT, help="HTTP timeout (seconds).")


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="stimulus-synth",
        description="Stimulus‑Synth – teaching stimulus generation CLI",
    )
    p.add_argument("--version", action="store_true", help="Print package version and exit.")

    sub = p.add_subparsers(dest="cmd", metavar="command")

    # generate
    pg = sub.add_parser("generate", help="Synthesise a stimulus set via the completion provider")
    _add_field_args(pg)
    _add_provider_args(pg)
    pg.add_argument("--repeat", type=int, default=1, help="Number of consecutive requests (default: 1).")
    pg.set_defaults(func=cmd_generate)

    # parse
    pp = sub.add_parser("parse", help="Parse + normalise a saved raw completion (offline)")
    _add_field_args(pp)
    src = pp.add_mutually_exclusive_group()
    src.add_argument("--text", help="Raw completion text.")
    src.add_argument("--file", help="Read raw completion from a file path.")
    pp.add_argument("source", nargs="?", choices=("-",), help="'-' reads the raw completion from stdin.")
    pp.set_defaults(func=cmd_parse)

    # instructions
    pi = sub.add_parser("instructions", help="Print teaching instructions for a program type")
    _add_field_args(pi)
    _add_provider_args(pi)
    pi.set_defaults(func=cmd_instructions)

    # validate
    pv = sub.add_parser("validate", help="Validate a request payload against the bundled schema")
    vsrc = pv.add_mutually_exclusive_group(required=True)
    vsrc.add_argument("--payload", help="JSON string payload, or '-' to read from stdin.")
    vsrc.add_argument("--file", help="Read JSON payload from a file path.")
    pv.set_defaults(func=cmd_validate)

    # schema
    ps = sub.add_parser("schema", help="Print the active JSON schema")
    ps.set_defaults(func=cmd_schema)

    # version
    pvrs = sub.add_parser("version", help="Print package version")
    pvrs.set_defaults(func=cmd_version)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    try:
        parser = _parser()
        args = parser.parse_args(argv)

        if getattr(args, "version", False):
            print(get_version())
            return 0

        if not hasattr(args, "func"):
            parser.print_help()
            return 2

        if getattr(args, "repeat", 1) < 1:
            parser.error("--repeat must be >= 1")

        return int(args.func(args))
    except KeyboardInterrupt:
        log.info("Interrupted by user (Ctrl‑C).")
        return 130
    except SynthesisError as exc:
        print(exc.user_message, file=sys.stderr)
        return 1
    except SystemExit as exc:
        if isinstance(exc.code, int):
            return exc.code
        if exc.code:
            print(exc.code, file=sys.stderr)
        return 2
    except Exception as exc:
        log.exception("Fatal error in CLI: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

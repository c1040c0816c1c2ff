#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Error Taxonomy
===============================================================================

Only a handful of failures ever leave `synthesize`:

    SynthesisError
    ├── MissingCredential        (configuration)
    ├── InvalidRequest           (configuration, request boundary only)
    ├── UpstreamNetworkFailure   (upstream)
    │   └── UpstreamTimeout      (upstream, caller‑supplied timeout elapsed)
    └── UpstreamStatusError      (upstream, non‑2xx from the provider)

Malformed completions are never errors: the parser waterfall and the
normalisers' synthetic fill absorb them.
"""
from __future__ import annotations

from typing import Optional

CONFIGURATION = "configuration"
UPSTREAM = "upstream"


def _snippet(s: Optional[str], limit: int = 500) -> str:
    one = (s or "").strip().replace("\n", " ")
    return (one[:limit] + "…") if len(one) > limit else one


class SynthesisError(RuntimeError):
    """Base class for every error surfaced to callers of the engine."""

    kind: str = UPSTREAM

    @property
    def user_message(self) -> str:
        """Short, user‑facing explanation (configuration vs. upstream)."""
        if self.kind == CONFIGURATION:
            return f"Configuration problem: {self}"
        return f"Upstream text service unavailable: {self}"


class MissingCredential(SynthesisError):
    """A required secret (API key/token) is absent."""

    kind = CONFIGURATION

    def __init__(self, variable: str) -> None:
        self.variable = variable
        super().__init__(f"{variable} is not set in the environment.")


class InvalidRequest(SynthesisError):
    """The request payload failed boundary validation."""

    kind = CONFIGURATION


class UpstreamNetworkFailure(SynthesisError):
    """Transport‑level failure while reaching the completion provider."""

    kind = UPSTREAM


class UpstreamTimeout(UpstreamNetworkFailure):
    """The completion call exceeded the caller‑supplied timeout."""

    def __init__(self, timeout: Optional[float], detail: str = "") -> None:
        self.timeout = timeout
        msg = f"Completion request timed out after {timeout}s" if timeout else "Completion request timed out"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class UpstreamStatusError(SynthesisError):
    """Non‑2xx response from the completion provider."""

    kind = UPSTREAM

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body or ""
        super().__init__(f"Completion provider returned HTTP {status_code}: {_snippet(self.body)}")


__all__ = [
    "CONFIGURATION",
    "UPSTREAM",
    "SynthesisError",
    "MissingCredential",
    "InvalidRequest",
    "UpstreamNetworkFailure",
    "UpstreamTimeout",
    "UpstreamStatusError",
]

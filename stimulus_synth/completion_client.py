#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Stimulus‑Synth ▸ Completion Providers
===============================================================================

Purpose
-------
The engine needs exactly one thing from a text model: ``complete(prompt) ->
raw text``. This module defines that seam as a Protocol and ships two
providers:

  • OpenAICompletionClient     – official ``openai`` SDK (chat completions)
  • ReplicateCompletionClient  – Replicate predictions endpoint over
                                 ``requests`` (synchronous ``Prefer: wait``)

Both translate their library's failures into the engine's error taxonomy
(`stimulus_synth.errors`) and never retry.

Environment
-----------
STIMULUS_SYNTH_PROVIDER     – "openai" (default) | "replicate"
STIMULUS_SYNTH_MODEL        – model name (provider default when unset)
STIMULUS_SYNTH_API_TIMEOUT  – per‑request timeout in seconds (default 120)
STIMULUS_SYNTH_API_KEY      – OpenAI key (falls back to OPENAI_API_KEY)
OPENAI_BASE_URL|API_BASE    – optional OpenAI‑compatible base URL
REPLICATE_API_TOKEN         – Replicate token

Credentials are resolved lazily: a missing key raises MissingCredential on the
first ``complete`` call, not at construction.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Protocol, Sequence

import requests

from stimulus_synth import get_logger
from stimulus_synth.errors import (
    MissingCredential,
    UpstreamNetworkFailure,
    UpstreamStatusError,
    UpstreamTimeout,
)

log = get_logger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Tunables
# ─────────────────────────────────────────────────────────────────────────────
PROVIDER_OPENAI = "openai"
PROVIDER_REPLICATE = "replicate"
PROVIDERS = (PROVIDER_OPENAI, PROVIDER_REPLICATE)

DEFAULT_PROVIDER = (os.getenv("STIMULUS_SYNTH_PROVIDER") or PROVIDER_OPENAI).strip().lower()
DEFAULT_MODEL = os.getenv("STIMULUS_SYNTH_MODEL") or None
DEFAULT_API_TIMEOUT = float(os.getenv("STIMULUS_SYNTH_API_TIMEOUT", "120"))

DEFAULT_MODELS = {
    PROVIDER_OPENAI: "gpt-4o-mini",
    PROVIDER_REPLICATE: "meta/meta-llama-3-8b-instruct",
}

REPLICATE_API_URL = "https://api.replicate.com/v1"

_OPENAI_KEY_VARS: Sequence[str] = ("STIMULUS_SYNTH_API_KEY", "OPENAI_API_KEY")
_OPENAI_BASE_VARS: Sequence[str] = ("OPENAI_BASE_URL", "OPENAI_API_BASE")
_REPLICATE_TOKEN_VARS: Sequence[str] = ("REPLICATE_API_TOKEN",)


def _first_env(names: Iterable[str]) -> Optional[str]:
    for name in names:
        val = os.getenv(name)
        if val:
            return val
    return None


def resolve_openai_key() -> Optional[str]:
    return _first_env(_OPENAI_KEY_VARS)


def resolve_openai_base_url() -> Optional[str]:
    return _first_env(_OPENAI_BASE_VARS)


def resolve_replicate_token() -> Optional[str]:
    return _first_env(_REPLICATE_TOKEN_VARS)


def _snippet(s: str, limit: int = 240) -> str:
    one = (s or "").strip().replace("\n", " ")
    return (one[:limit] + "…") if len(one) > limit else one


# ─────────────────────────────────────────────────────────────────────────────
# Protocol
# ─────────────────────────────────────────────────────────────────────────────
class CompletionClient(Protocol):
    """Anything that turns a prompt into raw completion text."""

    def complete(self, prompt: str, *, timeout: Optional[float] = None) -> str:
        ...


# ─────────────────────────────────────────────────────────────────────────────
# OpenAI
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class OpenAICompletionClient:
    """
    Chat‑completions provider backed by the official ``openai`` SDK.

    Attributes
    ----------
    model : str
        Model name (e.g. "gpt-4o-mini").
    timeout_s : float
        Default per‑request timeout; ``complete(timeout=...)`` overrides it.
    temperature : float
        Sampling temperature. Non‑zero so repeated requests vary.
    sdk : Any
        Optional pre‑built SDK object exposing ``chat.completions.create``.
    """

    model: str = DEFAULT_MODELS[PROVIDER_OPENAI]
    timeout_s: float = DEFAULT_API_TIMEOUT
    temperature: float = 0.7
    sdk: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        log.info(
            "OpenAI completion client initialised | model=%s | timeout=%ss | base=%s",
            self.model,
            self.timeout_s,
            resolve_openai_base_url() or "<default>",
        )

    # --- SDK bootstrap ----------------------------------------------------- #
    def _ensure_sdk(self) -> Any:
        """Import and instantiate the official OpenAI client on first use."""
        if self.sdk is not None:
            return self.sdk
        api_key = resolve_openai_key()
        if not api_key:
            raise MissingCredential(_OPENAI_KEY_VARS[-1])

        from openai import OpenAI

        self.sdk = OpenAI(base_url=resolve_openai_base_url(), api_key=api_key)
        return self.sdk

    def complete(self, prompt: str, *, timeout: Optional[float] = None) -> str:
        import openai

        sdk = self._ensure_sdk()
        effective_timeout = timeout if timeout is not None else self.timeout_s
        log.debug("OpenAI request | model=%s | prompt=%d chars", self.model, len(prompt or ""))
        try:
            resp = sdk.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                timeout=effective_timeout,
            )
        except openai.APITimeoutError as exc:
            log.error("OpenAI request timed out after %ss.", effective_timeout)
            raise UpstreamTimeout(effective_timeout, str(exc)) from exc
        except openai.APIConnectionError as exc:
            log.error("OpenAI connection failed: %s", exc)
            raise UpstreamNetworkFailure(f"Could not reach the OpenAI API: {exc}") from exc
        except openai.APIStatusError as exc:
            body = exc.response.text if exc.response is not None else str(exc)
            log.error("OpenAI returned HTTP %s: %s", exc.status_code, _snippet(body))
            raise UpstreamStatusError(exc.status_code, body) from exc

        try:
            content = resp.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as exc:
            raise UpstreamStatusError(200, f"Malformed completion envelope: {exc}") from exc

        log.debug("OpenAI response (%d chars): %r", len(content), _snippet(content))
        return content


# ─────────────────────────────────────────────────────────────────────────────
# Replicate
# ─────────────────────────────────────────────────────────────────────────────
def _replicate_text(envelope: Any) -> str:
    """Text of a prediction envelope: joined ``output`` tokens, else ``output_text``."""
    if not isinstance(envelope, dict):
        raise ValueError("prediction envelope is not an object")
    output = envelope.get("output")
    if isinstance(output, list):
        return "".join(str(token) for token in output if token is not None)
    if isinstance(output, str):
        return output
    text = envelope.get("output_text")
    if isinstance(text, str):
        return text
    raise ValueError(f"prediction has no output (status={envelope.get('status')!r})")


@dataclass
class ReplicateCompletionClient:
    """Replicate predictions provider using a synchronous ``Prefer: wait`` POST."""

    model: str = DEFAULT_MODELS[PROVIDER_REPLICATE]
    timeout_s: float = DEFAULT_API_TIMEOUT
    base_url: str = REPLICATE_API_URL
    session: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        log.info("Replicate completion client initialised | model=%s | timeout=%ss", self.model, self.timeout_s)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}/predictions"

    def complete(self, prompt: str, *, timeout: Optional[float] = None) -> str:
        token = resolve_replicate_token()
        if not token:
            raise MissingCredential(_REPLICATE_TOKEN_VARS[0])

        effective_timeout = timeout if timeout is not None else self.timeout_s
        poster = self.session.post if self.session is not None else requests.post
        log.debug("Replicate request | model=%s | prompt=%d chars", self.model, len(prompt or ""))
        try:
            resp = poster(
                self.endpoint,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Prefer": "wait",
                },
                json={"input": {"prompt": prompt}},
                timeout=effective_timeout,
            )
        except requests.Timeout as exc:
            log.error("Replicate request timed out after %ss.", effective_timeout)
            raise UpstreamTimeout(effective_timeout, str(exc)) from exc
        except requests.RequestException as exc:
            log.error("Replicate connection failed: %s", exc)
            raise UpstreamNetworkFailure(f"Could not reach the Replicate API: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            log.error("Replicate returned HTTP %s: %s", resp.status_code, _snippet(resp.text))
            raise UpstreamStatusError(resp.status_code, resp.text)

        try:
            content = _replicate_text(resp.json())
        except ValueError as exc:
            log.error("Unreadable Replicate envelope: %s", exc)
            raise UpstreamStatusError(resp.status_code, f"{exc}: {_snippet(resp.text)}") from exc

        log.debug("Replicate response (%d chars): %r", len(content), _snippet(content))
        return content


# ─────────────────────────────────────────────────────────────────────────────
# Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_completion_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CompletionClient:
    """Instantiate the configured provider (env defaults for anything omitted)."""
    name = (provider or DEFAULT_PROVIDER).strip().lower()
    if name not in PROVIDERS:
        raise ValueError(f"Unknown completion provider {name!r}; expected one of {', '.join(PROVIDERS)}")
    chosen_model = model or DEFAULT_MODEL or DEFAULT_MODELS[name]
    chosen_timeout = timeout if timeout is not None else DEFAULT_API_TIMEOUT
    if name == PROVIDER_REPLICATE:
        return ReplicateCompletionClient(model=chosen_model, timeout_s=chosen_timeout)
    return OpenAICompletionClient(model=chosen_model, timeout_s=chosen_timeout)


__all__ = [
    "CompletionClient",
    "OpenAICompletionClient",
    "ReplicateCompletionClient",
    "create_completion_client",
    "resolve_openai_key",
    "resolve_openai_base_url",
    "resolve_replicate_token",
    "PROVIDERS",
    "DEFAULT_MODELS",
]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
===============================================================================
Completion provider tests (offline)
===============================================================================

Goals
-----
* OpenAI provider: inject a fake SDK exposing `chat.completions.create` and
  check the request shape, the returned text, and the translation of the
  real `openai` exception classes into the engine's error taxonomy.
* Replicate provider: stub the HTTP layer and check URL, headers, body,
  token joining, and status/transport error mapping.
* Credentials are resolved lazily, at the first `complete` call.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx
import openai
import pytest
import requests

from stimulus_synth import completion_client as cc
from stimulus_synth.errors import (
    MissingCredential,
    UpstreamNetworkFailure,
    UpstreamStatusError,
    UpstreamTimeout,
)

log = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

_OPENAI_URL = "https://api.openai.com/v1/chat/completions"


# ───────────────────────────── helper fakes ──────────────────────────────────
class _Obj:
    """Simple attribute container to mimic SDK objects (choices/message)."""

    def __init__(self, **kw):
        for k, v in kw.items():
            setattr(self, k, v)


class _FakeCompletions:
    def __init__(self, outcome: Any):
        self._outcome = outcome
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return _Obj(choices=[_Obj(message=_Obj(role="assistant", content=self._outcome))])


class FakeOpenAIClient:
    def __init__(self, outcome: Any):
        self.chat = _Obj(completions=_FakeCompletions(outcome))


class _FakeResponse:
    def __init__(self, status_code: int = 201, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (str(payload) if payload is not None else "")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class _FakeSession:
    def __init__(self, outcome: Any):
        self._outcome = outcome
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome


def _request() -> httpx.Request:
    return httpx.Request("POST", _OPENAI_URL)


# ───────────────────────────── OpenAI ────────────────────────────────────────
def test_openai_complete_sends_single_user_message() -> None:
    sdk = FakeOpenAIClient('["cat"]')
    client = cc.OpenAICompletionClient(model="gpt-test", timeout_s=9, sdk=sdk)
    assert client.complete("PROMPT") == '["cat"]'

    call = sdk.chat.completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"] == [{"role": "user", "content": "PROMPT"}]
    assert call["timeout"] == 9


def test_openai_call_timeout_overrides_default() -> None:
    sdk = FakeOpenAIClient("x")
    cc.OpenAICompletionClient(timeout_s=9, sdk=sdk).complete("p", timeout=1.5)
    assert sdk.chat.completions.calls[0]["timeout"] == 1.5


def test_openai_none_content_is_empty_text() -> None:
    assert cc.OpenAICompletionClient(sdk=FakeOpenAIClient(None)).complete("p") == ""


def test_openai_missing_key_raises_on_first_call(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STIMULUS_SYNTH_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = cc.OpenAICompletionClient()
    with pytest.raises(MissingCredential) as excinfo:
        client.complete("p")
    assert "OPENAI_API_KEY" in str(excinfo.value)
    assert excinfo.value.kind == "configuration"


def test_openai_key_resolution_prefers_project_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "generic")
    monkeypatch.setenv("STIMULUS_SYNTH_API_KEY", "specific")
    assert cc.resolve_openai_key() == "specific"


@pytest.mark.parametrize(
    "exc,expected",
    [
        (openai.APITimeoutError(request=_request()), UpstreamTimeout),
        (openai.APIConnectionError(message="Connection error.", request=_request()), UpstreamNetworkFailure),
        (
            openai.APIStatusError(
                "Service Unavailable",
                response=httpx.Response(503, request=_request(), text="overloaded"),
                body=None,
            ),
            UpstreamStatusError,
        ),
    ],
)
def test_openai_errors_are_translated(exc: Exception, expected: type) -> None:
    client = cc.OpenAICompletionClient(timeout_s=3, sdk=FakeOpenAIClient(exc))
    with pytest.raises(expected) as excinfo:
        client.complete("p")
    assert excinfo.value.__cause__ is exc


def test_openai_status_error_carries_code_and_body() -> None:
    exc = openai.APIStatusError(
        "Unauthorized",
        response=httpx.Response(401, request=_request(), text='{"error": "bad key"}'),
        body=None,
    )
    client = cc.OpenAICompletionClient(sdk=FakeOpenAIClient(exc))
    with pytest.raises(UpstreamStatusError) as excinfo:
        client.complete("p")
    assert excinfo.value.status_code == 401
    assert "bad key" in excinfo.value.body
    assert "401" in str(excinfo.value)


def test_openai_connection_error_is_not_a_timeout() -> None:
    exc = openai.APIConnectionError(message="refused", request=_request())
    with pytest.raises(UpstreamNetworkFailure) as excinfo:
        cc.OpenAICompletionClient(sdk=FakeOpenAIClient(exc)).complete("p")
    assert not isinstance(excinfo.value, UpstreamTimeout)


# ───────────────────────────── Replicate ─────────────────────────────────────
@pytest.fixture
def replicate_token(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setenv("REPLICATE_API_TOKEN", "r8_test")
    return "r8_test"


def test_replicate_request_shape_and_token_join(replicate_token: str) -> None:
    session = _FakeSession(_FakeResponse(201, {"status": "succeeded", "output": ['[{"la', 'bel": "cat"}]']}))
    client = cc.ReplicateCompletionClient(model="meta/meta-llama-3-8b-instruct", timeout_s=12, session=session)

    assert client.complete("PROMPT") == '[{"label": "cat"}]'

    call = session.calls[0]
    assert call["url"] == "https://api.replicate.com/v1/models/meta/meta-llama-3-8b-instruct/predictions"
    assert call["headers"]["Authorization"] == f"Bearer {replicate_token}"
    assert call["headers"]["Prefer"] == "wait"
    assert call["json"] == {"input": {"prompt": "PROMPT"}}
    assert call["timeout"] == 12


def test_replicate_string_output_and_output_text(replicate_token: str) -> None:
    as_string = cc.ReplicateCompletionClient(session=_FakeSession(_FakeResponse(200, {"output": "hello"})))
    assert as_string.complete("p") == "hello"
    as_text = cc.ReplicateCompletionClient(session=_FakeSession(_FakeResponse(200, {"output_text": "hi"})))
    assert as_text.complete("p") == "hi"


def test_replicate_uses_requests_post_by_default(monkeypatch: pytest.MonkeyPatch, replicate_token: str) -> None:
    seen: Dict[str, Any] = {}

    def fake_post(url, **kwargs):
        seen["url"] = url
        return _FakeResponse(201, {"output": ["ok"]})

    monkeypatch.setattr(cc.requests, "post", fake_post)
    assert cc.ReplicateCompletionClient(model="acme/tiny").complete("p") == "ok"
    assert seen["url"].endswith("/models/acme/tiny/predictions")


def test_replicate_missing_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
    session = _FakeSession(_FakeResponse(201, {"output": ["x"]}))
    with pytest.raises(MissingCredential) as excinfo:
        cc.ReplicateCompletionClient(session=session).complete("p")
    assert excinfo.value.variable == "REPLICATE_API_TOKEN"
    assert session.calls == []


def test_replicate_non_2xx_is_status_error(replicate_token: str) -> None:
    session = _FakeSession(_FakeResponse(422, {"detail": "invalid input"}, text='{"detail": "invalid input"}'))
    with pytest.raises(UpstreamStatusError) as excinfo:
        cc.ReplicateCompletionClient(session=session).complete("p")
    assert excinfo.value.status_code == 422
    assert "invalid input" in excinfo.value.body


@pytest.mark.parametrize(
    "response",
    [
        _FakeResponse(201, None, text="<html>gateway</html>"),
        _FakeResponse(201, {"status": "failed", "error": "oom"}),
        _FakeResponse(201, ["not", "an", "object"]),
    ],
)
def test_replicate_unreadable_envelope_is_status_error(replicate_token: str, response: _FakeResponse) -> None:
    with pytest.raises(UpstreamStatusError):
        cc.ReplicateCompletionClient(session=_FakeSession(response)).complete("p")


@pytest.mark.parametrize(
    "exc,expected",
    [
        (requests.Timeout("read timed out"), UpstreamTimeout),
        (requests.ConnectionError("refused"), UpstreamNetworkFailure),
    ],
)
def test_replicate_transport_errors(replicate_token: str, exc: Exception, expected: type) -> None:
    with pytest.raises(expected) as excinfo:
        cc.ReplicateCompletionClient(timeout_s=4, session=_FakeSession(exc)).complete("p")
    assert excinfo.value.__cause__ is exc


# ───────────────────────────── factory ───────────────────────────────────────
def test_factory_builds_requested_provider() -> None:
    replicate = cc.create_completion_client("Replicate", "acme/model", 10)
    assert isinstance(replicate, cc.ReplicateCompletionClient)
    assert replicate.model == "acme/model"
    assert replicate.timeout_s == 10

    openai_client = cc.create_completion_client("openai", "gpt-x", 5)
    assert isinstance(openai_client, cc.OpenAICompletionClient)
    assert openai_client.model == "gpt-x"


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError):
        cc.create_completion_client("carrier-pigeon")

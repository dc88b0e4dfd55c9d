"""Tests for the chat completion client."""

from __future__ import annotations

import http.client
import json
from urllib.error import URLError

import pytest

from kubeprompt.errors import LLMError
from kubeprompt.llm.runner import LLMRunner


class FakeResponse:
    def __init__(self, payload, status: int = 200):
        self._payload = payload
        self.status = status

    def read(self):
        if isinstance(self._payload, bytes):
            return self._payload
        return json.dumps(self._payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch) -> None:
    for key in (*LLMRunner.ENV_MODEL_KEYS, *LLMRunner.ENV_BASE_URL_KEYS, *LLMRunner.ENV_API_KEY_KEYS):
        monkeypatch.delenv(key, raising=False)


def test_llm_runner_constructs_request() -> None:
    captured = {}

    def fake_runner(request):
        captured["prompt"] = request.prompt
        captured["system"] = request.system
        captured["model"] = request.model
        captured["temperature"] = request.temperature
        captured["max_tokens"] = request.max_tokens
        captured["base_url"] = request.base_url
        captured["api_key"] = request.api_key
        captured["request_timeout"] = request.request_timeout
        return "response"

    runner = LLMRunner(
        model="custom-model",
        base_url="http://llm.internal:8000/v1/",
        temperature=0.15,
        max_tokens=256,
        api_key=None,
        request_timeout=42.0,
        runner=fake_runner,
    )
    result = runner.run("Hello world", system="system message", max_tokens=64)

    assert result == "response"
    assert captured == {
        "prompt": "Hello world",
        "system": "system message",
        "model": "custom-model",
        "temperature": 0.15,
        "max_tokens": 64,
        "base_url": "http://llm.internal:8000/v1",
        "api_key": None,
        "request_timeout": 42.0,
    }


def test_llm_runner_http_posts_payload(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(request, timeout=None):
        captured["url"] = request.full_url
        captured["headers"] = {k.lower(): v for k, v in request.header_items()}
        captured["payload"] = json.loads(request.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse({"choices": [{"message": {"content": "service/web"}}]})

    monkeypatch.setattr("kubeprompt.llm.runner.urlopen", fake_urlopen)

    runner = LLMRunner(
        model="deepseek-coder-v2:16b",
        base_url="http://localhost:11434/v1/",
        api_key="local-key",
        temperature=0.05,
        max_tokens=128,
        request_timeout=25.0,
    )
    result = runner.run("delete the web service", system="Return identifiers only.")

    assert result == "service/web"
    assert captured["url"] == "http://localhost:11434/v1/chat/completions"
    headers = captured["headers"]
    assert headers["content-type"] == "application/json"
    assert headers["authorization"] == "Bearer local-key"
    payload = captured["payload"]
    assert payload["model"] == "deepseek-coder-v2:16b"
    assert payload["messages"][0] == {"role": "system", "content": "Return identifiers only."}
    assert payload["messages"][1] == {"role": "user", "content": "delete the web service"}
    assert payload["temperature"] == 0.05
    assert payload["max_tokens"] == 128
    assert payload["stream"] is False
    assert captured["timeout"] == 25.0


def test_environment_supplies_defaults(monkeypatch) -> None:
    monkeypatch.setenv("DEEPSEEK_URL", "http://ollama:11434")
    monkeypatch.setenv("KUBEPROMPT_LLM_MODEL", "llama3")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    runner = LLMRunner()

    assert runner.base_url == "http://ollama:11434/v1"
    assert runner.model == "llama3"
    assert runner.api_key == "sk-test"


def test_defaults_without_environment() -> None:
    runner = LLMRunner()
    assert runner.base_url == LLMRunner.DEFAULT_BASE_URL
    assert runner.model == LLMRunner.DEFAULT_MODEL
    assert runner.api_key is None


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": []},
        {"choices": [{"message": {"content": ""}}]},
        b"<html>not json</html>",
        ["unexpected"],
    ],
)
def test_bad_responses_raise_llm_error(monkeypatch, payload) -> None:
    monkeypatch.setattr(
        "kubeprompt.llm.runner.urlopen", lambda request, timeout=None: FakeResponse(payload)
    )

    with pytest.raises(LLMError):
        LLMRunner(base_url="http://localhost:11434/v1").run("hi")


def test_unreachable_backend_raises_llm_error(monkeypatch) -> None:
    def refuse(request, timeout=None):
        raise URLError("connection refused")

    monkeypatch.setattr("kubeprompt.llm.runner.urlopen", refuse)

    with pytest.raises(LLMError, match="unreachable"):
        LLMRunner(base_url="http://localhost:11434/v1").run("hi")
    assert LLMRunner(base_url="http://localhost:11434/v1").check_health() is False


def test_check_health(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(request, timeout=None):
        captured["url"] = request.full_url
        captured["method"] = request.get_method()
        return FakeResponse({"data": []})

    monkeypatch.setattr("kubeprompt.llm.runner.urlopen", fake_urlopen)

    assert LLMRunner(base_url="http://localhost:11434/v1").check_health() is True
    assert captured == {"url": "http://localhost:11434/v1/models", "method": "GET"}


class _DroppedResponse(FakeResponse):
    def read(self):
        raise http.client.IncompleteRead(b'{"choices": [', 64)


def _remote_disconnected(request, timeout=None):
    raise http.client.RemoteDisconnected("Remote end closed connection without response")


def _connection_reset(request, timeout=None):
    raise ConnectionResetError(104, "Connection reset by peer")


def _incomplete_read(request, timeout=None):
    return _DroppedResponse({})


@pytest.mark.parametrize("urlopen", [_remote_disconnected, _connection_reset, _incomplete_read])
def test_dropped_connections_raise_llm_error(monkeypatch, urlopen) -> None:
    monkeypatch.setattr("kubeprompt.llm.runner.urlopen", urlopen)

    with pytest.raises(LLMError, match="connection failed"):
        LLMRunner(base_url="http://localhost:11434/v1").run("hi")


def test_check_health_treats_dropped_connection_as_down(monkeypatch) -> None:
    monkeypatch.setattr("kubeprompt.llm.runner.urlopen", _remote_disconnected)

    assert LLMRunner(base_url="http://localhost:11434/v1").check_health() is False

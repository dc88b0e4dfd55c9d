"""Client for OpenAI-compatible chat completion endpoints (Ollama, DeepSeek)."""

from __future__ import annotations

import http.client
import json
import os
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import LLMError
from ..logging import get_logger

_AUTO_BASE_URL = object()
_AUTO_API_KEY = object()


@dataclass
class LLMRequest:
    """Represents a single chat completion request."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    base_url: str
    api_key: Optional[str]
    request_timeout: Optional[float]


class LLMRunner:
    """Sends prompts to the configured text-generation backend."""

    DEFAULT_MODEL = "deepseek-coder-v2:16b"
    DEFAULT_BASE_URL = "http://localhost:11434/v1"
    ENV_MODEL_KEYS = ("KUBEPROMPT_LLM_MODEL", "DEEPSEEK_MODEL")
    ENV_BASE_URL_KEYS = ("KUBEPROMPT_LLM_BASE_URL", "DEEPSEEK_URL")
    ENV_API_KEY_KEYS = ("KUBEPROMPT_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None | object = _AUTO_BASE_URL,
        temperature: Optional[float] = 0.1,
        max_tokens: Optional[int] = 512,
        api_key: str | None | object = _AUTO_API_KEY,
        request_timeout: Optional[float] = 120.0,
        runner: Callable[[LLMRequest], str] | None = None,
    ) -> None:
        self.model = self._resolve_model(model)
        self.base_url = self._resolve_base_url(base_url)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = self._resolve_api_key(api_key)
        self.request_timeout = request_timeout
        self._runner = runner or self._http_runner
        self.logger = get_logger("llm")

    def run(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send the prompt and return the raw response text."""
        request = LLMRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=temperature if temperature is not None else self.temperature,
            max_tokens=max_tokens if max_tokens is not None else self.max_tokens,
            base_url=self.base_url,
            api_key=self.api_key,
            request_timeout=self.request_timeout,
        )
        self.logger.debug("Calling %s with model %s", self.base_url, self.model)
        content = self._runner(request)
        self.logger.debug("Backend answered %d characters", len(content))
        return content

    def check_health(self) -> bool:
        """Return True when the backend lists its models successfully."""
        http_request = Request(
            f"{self.base_url}/models",
            headers=self._headers(self.api_key),
            method="GET",
        )
        try:
            with urlopen(http_request, timeout=self.request_timeout or 10.0) as response:  # type: ignore[arg-type]
                return 200 <= getattr(response, "status", 200) < 300
        except (http.client.HTTPException, OSError) as exc:
            self.logger.warning("Backend health check failed: %s", exc)
            return False

    @staticmethod
    def _normalize_base_url(url: str) -> str:
        return url.rstrip("/")

    @staticmethod
    def _http_runner(request: LLMRequest) -> str:
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "model": request.model,
            "messages": LLMRunner._build_messages(request.system, request.prompt),
            "stream": False,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        data = json.dumps(payload).encode("utf-8")
        http_request = Request(
            endpoint,
            data=data,
            headers=LLMRunner._headers(request.api_key),
            method="POST",
        )
        timeout = request.request_timeout or 120.0

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:  # pragma: no cover - depends on runtime
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            message = detail.strip() or exc.reason
            raise LLMError(f"LLM backend failed with status {exc.code}: {message}") from exc
        except URLError as exc:
            raise LLMError(f"LLM backend unreachable: {exc.reason}") from exc
        except TimeoutError as exc:
            raise LLMError(f"LLM backend timed out after {timeout}s") from exc
        except (http.client.HTTPException, OSError) as exc:
            # Dropped connections surface while the response is read, after urlopen returns.
            raise LLMError(f"LLM backend connection failed: {exc!r}") from exc

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise LLMError("LLM backend returned invalid JSON") from exc
        if not isinstance(response_payload, dict):
            raise LLMError("LLM backend returned an unexpected payload")

        content = LLMRunner._extract_content(response_payload)
        if not content:
            raise LLMError("LLM backend returned an empty response")
        return content

    @staticmethod
    def _headers(api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(payload: dict[str, object]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        return ""

    def _resolve_model(self, model: str | None) -> str:
        if model:
            return model
        return self._first_env_value(self.ENV_MODEL_KEYS) or self.DEFAULT_MODEL

    def _resolve_base_url(self, base_url: str | None | object) -> str:
        if base_url is not _AUTO_BASE_URL and base_url:
            return self._normalize_base_url(str(base_url))
        env_value = self._first_env_value(self.ENV_BASE_URL_KEYS)
        if env_value:
            return self._with_api_prefix(self._normalize_base_url(env_value))
        return self.DEFAULT_BASE_URL

    @staticmethod
    def _with_api_prefix(url: str) -> str:
        # DEEPSEEK_URL conventionally points at the Ollama root, not its /v1 API.
        if url.endswith("/v1") or "/v1/" in url:
            return url
        return f"{url}/v1"

    def _resolve_api_key(self, api_key: str | None | object) -> str | None:
        if api_key is _AUTO_API_KEY:
            return self._first_env_value(self.ENV_API_KEY_KEYS)
        return api_key  # type: ignore[return-value]

    @staticmethod
    def _first_env_value(keys: Sequence[str]) -> str | None:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None


__all__ = ["LLMRequest", "LLMRunner"]

"""Completion clients for the narrator: Ollama (/api/generate) and OpenAI-compatible (/v1/chat/completions).

Both expose ``complete(prompt, system_prompt, json_mode)`` and ``probe()``.
Every transport, HTTP or decoding problem is raised as LLMProviderError.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 120.0
_PROBE_TIMEOUT = 5.0


class LLMProviderError(Exception):
    """Raised when a completion request fails."""


@runtime_checkable
class LLMProviderProtocol(Protocol):
    def complete(self, prompt: str, system_prompt: str | None = None, json_mode: bool = False) -> str:
        """Return the raw completion text."""
        ...

    def probe(self) -> dict[str, Any]:
        """Cheap reachability check; never generates."""
        ...


class _HttpCompletionClient:
    provider = ""
    probe_path = ""

    def __init__(self, base_url: str, model: str, timeout: float | None = None, api_key: str = ""):
        self.base_url = base_url.strip().rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout or _DEFAULT_TIMEOUT
        self.client = httpx.Client(timeout=self.timeout)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _headers(self) -> dict[str, str]:
        return {}

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.post(f"{self.base_url}{path}", json=payload, headers=self._headers())
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as exc:
            logger.error("%s request timed out (model=%s)", self.provider, self.model)
            raise LLMProviderError(f"{self.provider} request timed out after {self.timeout:.0f}s") from exc
        except httpx.HTTPStatusError as exc:
            logger.error("%s returned HTTP %d: %s", self.provider, exc.response.status_code, exc.response.text[:500])
            raise LLMProviderError(f"{self.provider} HTTP error {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Cannot reach %s at %s: %s", self.provider, self.base_url, exc)
            raise LLMProviderError(f"Cannot reach {self.provider} at {self.base_url}") from exc
        except ValueError as exc:
            raise LLMProviderError(f"{self.provider} returned a non-JSON body") from exc

    def probe(self) -> dict[str, Any]:
        info: dict[str, Any] = {"provider": self.provider, "url": self.base_url, "model": self.model}
        try:
            response = httpx.get(f"{self.base_url}{self.probe_path}", headers=self._headers(), timeout=_PROBE_TIMEOUT)
        except httpx.HTTPError as exc:
            return {**info, "ok": False, "error": str(exc)}
        return {**info, "ok": response.status_code < 500, "status_code": response.status_code}


class OllamaClient(_HttpCompletionClient):
    provider = "ollama"
    probe_path = "/api/tags"

    def __init__(self, model: str, base_url: str | None = None, timeout: float | None = None):
        super().__init__(
            base_url or os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            model,
            timeout=timeout,
        )

    def complete(self, prompt: str, system_prompt: str | None = None, json_mode: bool = False) -> str:
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        if system_prompt:
            payload["system"] = system_prompt
        if json_mode:
            # Ollama constrains decoding to valid JSON
            payload["format"] = "json"
        return self._post("/api/generate", payload).get("response", "") or ""


class OpenAICompatClient(_HttpCompletionClient):
    """OpenAI, vLLM, LM Studio, OpenRouter and anything else speaking chat completions."""

    provider = "openai"
    probe_path = "/v1/models"

    def __init__(
        self,
        model: str,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_tokens: int = 2048,
    ):
        super().__init__(
            base_url or "https://api.openai.com",
            model,
            timeout=timeout,
            api_key=api_key or os.environ.get("OPENAI_API_KEY", ""),
        )
        self.max_tokens = max_tokens

    def _headers(self) -> dict[str, str]:
        return {"authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def complete(self, prompt: str, system_prompt: str | None = None, json_mode: bool = False) -> str:
        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        payload: dict[str, Any] = {"model": self.model, "messages": messages, "max_tokens": self.max_tokens}
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        choices = self._post("/v1/chat/completions", payload).get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content", "") or ""


def create_provider(
    provider: str,
    model: str,
    base_url: str = "",
    api_key: str = "",
    timeout: float | None = None,
) -> _HttpCompletionClient:
    """Build a completion client by provider name: 'ollama', 'openai' or 'openai_compat'."""
    if provider == "ollama":
        return OllamaClient(model, base_url=base_url or None, timeout=timeout)
    if provider in ("openai", "openai_compat"):
        return OpenAICompatClient(model, base_url=base_url or None, api_key=api_key or None, timeout=timeout)
    raise ValueError(f"Unsupported narrator provider {provider!r} (expected ollama, openai or openai_compat)")

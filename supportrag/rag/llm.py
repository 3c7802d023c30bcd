from __future__ import annotations

"""Chat completion clients used for answers and judges."""

from dataclasses import dataclass
import logging
from typing import Any, Protocol

import httpx

from supportrag.rag.errors import ConfigurationError


class LLMError(RuntimeError):
    """Raised when LLM requests fail or responses are invalid."""
    pass


class LLMConfigError(ConfigurationError):
    """Raised when a completion backend is misconfigured."""
    pass


logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    """Protocol for prompt-in, text-out completion backends."""
    model: str

    async def complete(self, prompt: str) -> str:
        """Return the model's reply to a single user prompt."""
        raise NotImplementedError


async def _post_json(
    url: str,
    payload: dict[str, Any],
    timeout: float,
    headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """POST a JSON payload and decode the JSON reply."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=timeout)
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        logger.warning(
            "llm_request_failed",
            extra={"url": url, "model": payload.get("model"), "detail": type(exc).__name__},
        )
        raise LLMError(str(exc)) from exc
    except ValueError as exc:
        raise LLMError("LLM response is not valid JSON") from exc
    finally:
        if owns_client and client is not None:
            await client.aclose()
    if not isinstance(data, dict):
        raise LLMError("Invalid LLM response")
    return data


@dataclass(frozen=True)
class OpenAICompletion:
    """Completion backed by OpenAI chat completions."""
    api_key: str
    model: str
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.0
    max_tokens: int | None = None
    timeout: float = 60.0
    client: httpx.AsyncClient | None = None

    async def complete(self, prompt: str) -> str:
        """Send the prompt as a single user message."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await _post_json(
            f"{self.base_url.rstrip('/')}/chat/completions",
            payload,
            timeout=self.timeout,
            headers=headers,
            client=self.client,
        )
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("Invalid OpenAI response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("Invalid OpenAI response content")
        return content.strip()


@dataclass(frozen=True)
class OllamaCompletion:
    """Completion backed by the Ollama chat API."""
    base_url: str
    model: str
    temperature: float = 0.0
    max_tokens: int | None = None
    timeout: float = 60.0
    client: httpx.AsyncClient | None = None

    async def complete(self, prompt: str) -> str:
        options: dict[str, Any] = {"temperature": self.temperature}
        if self.max_tokens:
            options["num_predict"] = self.max_tokens
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "options": options,
        }
        data = await _post_json(
            f"{self.base_url.rstrip('/')}/api/chat",
            payload,
            timeout=self.timeout,
            client=self.client,
        )
        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("Invalid LLM response")
        return content.strip()


def build_completion(
    provider: str,
    *,
    model: str,
    api_key_openai: str | None,
    openai_base_url: str,
    ollama_base_url: str,
    temperature: float,
    timeout: float,
    max_tokens: int | None = None,
) -> OpenAICompletion | OllamaCompletion:
    """Factory for completion backends based on provider."""
    normalized = provider.strip().lower()
    if normalized == "openai":
        if not api_key_openai:
            raise LLMConfigError("OPENAI_API_KEY is required for OpenAI provider")
        if not model:
            raise LLMConfigError("A chat model is required for OpenAI provider")
        return OpenAICompletion(
            api_key=api_key_openai,
            model=model,
            base_url=openai_base_url.rstrip("/"),
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    if normalized == "ollama":
        return OllamaCompletion(
            base_url=ollama_base_url.rstrip("/"),
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    raise LLMConfigError(f"Unsupported LLM provider: {provider}")

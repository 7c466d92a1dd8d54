"""LLM provider clients used by the AI tools.

Each provider turns a single prompt into a completion over HTTP with
``httpx``. Providers are synchronous; the calling tool runs on its own
worker thread.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from mcp_ai_server.config import DEFAULT_PROVIDER_URLS, AISettings, ProviderSettings

logger = logging.getLogger(__name__)

ANTHROPIC_API_VERSION = "2023-06-01"


class AIProviderError(Exception):
    """Raised when a provider call fails or returns an unusable response."""

    pass


class AIProvider(ABC):
    """Base class for LLM providers.

    Subclasses build the request body for their API and pick the completion
    text out of the response; transport errors are handled here.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            settings: Endpoint, credentials and default model.
            timeout: Request timeout in seconds.
            client: HTTP client to use instead of a private one.
        """
        self._settings = settings
        self._base_url = (settings.base_url or DEFAULT_PROVIDER_URLS.get(self.name, "")).rstrip(
            "/"
        )
        self._client = client or httpx.Client(timeout=timeout)

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider identifier."""
        pass

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    @property
    def default_model(self) -> str:
        return self._settings.model

    @abstractmethod
    def complete(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        """Return the model's completion of ``prompt``.

        Raises:
            AIProviderError: If the call fails.
        """
        pass

    def _post(self, path: str, payload: dict[str, Any], headers: dict[str, str]) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise AIProviderError(f"{self.name} request timed out") from e
        except httpx.HTTPError as e:
            raise AIProviderError(f"{self.name} request failed: {e}") from e

        if response.status_code != 200:
            raise AIProviderError(
                f"{self.name} API returned status {response.status_code}: {response.text[:500]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise AIProviderError(f"{self.name} returned invalid JSON") from e

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()


class OllamaProvider(AIProvider):
    """Local Ollama server, ``/api/generate`` endpoint."""

    @property
    def name(self) -> str:
        return "ollama"

    def complete(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        data = self._post(
            "/api/generate",
            {
                "model": model,
                "prompt": prompt,
                "stream": False,
                "options": {"num_predict": max_tokens, "temperature": temperature},
            },
            {"Content-Type": "application/json"},
        )
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise AIProviderError("ollama response has no 'response' field")
        return text


class OpenAIProvider(AIProvider):
    """OpenAI-compatible ``/chat/completions`` endpoint."""

    @property
    def name(self) -> str:
        return "openai"

    def complete(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        data = self._post(
            "/chat/completions",
            {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._settings.api_key}",
            },
        )
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderError("openai response has no choices") from e
        if not isinstance(text, str):
            raise AIProviderError("openai response content is not text")
        return text


class AnthropicProvider(AIProvider):
    """Anthropic ``/v1/messages`` endpoint."""

    @property
    def name(self) -> str:
        return "anthropic"

    def complete(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str:
        data = self._post(
            "/v1/messages",
            {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
            {
                "Content-Type": "application/json",
                "x-api-key": self._settings.api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
            },
        )
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderError("anthropic response has no content") from e
        if not isinstance(text, str):
            raise AIProviderError("anthropic response content is not text")
        return text


PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "ollama": OllamaProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


def create_providers(settings: AISettings) -> dict[str, AIProvider]:
    """Instantiate every enabled provider named in the settings.

    Unknown provider names are logged and skipped.
    """
    providers: dict[str, AIProvider] = {}
    for name, provider_settings in settings.providers.items():
        if not provider_settings.enabled:
            continue
        provider_class = PROVIDER_CLASSES.get(name)
        if provider_class is None:
            logger.warning("Ignoring unknown AI provider '%s'", name)
            continue
        providers[name] = provider_class(provider_settings, timeout=settings.timeout)
        logger.debug("Enabled AI provider %s", name)
    return providers

"""OpenRouter chat-completions client for the advisory recommender.

One prompt in, one completion string out. The client never retries: a
failed call is reported to the caller, which decides what to do with it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import SecretStr

from whale_copytrade.config import AdvisorySettings

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TIMEOUT_SECONDS = 30.0


class AdvisoryClientError(Exception):
    """Base exception for advisory client errors."""


class AdvisoryConfigurationError(AdvisoryClientError):
    """Raised when no credential is configured. Never retried."""


class AdvisoryTransportError(AdvisoryClientError):
    """Raised when the request could not be sent or the connection failed."""


class AdvisoryHTTPStatusError(AdvisoryClientError):
    """Raised on a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class AdvisoryResponseError(AdvisoryClientError):
    """Raised when the response body does not carry a completion."""


class OpenRouterClient:
    """Minimal async client for an OpenAI-compatible completions endpoint.

    Example:
        ```python
        client = OpenRouterClient(api_key=SecretStr("sk-or-..."))
        text = await client.complete("Say hi", model="qwen/qwen3-4b:free")
        await client.close()
        ```
    """

    def __init__(
        self,
        *,
        api_key: SecretStr | None,
        api_url: str = DEFAULT_API_URL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        referer: str | None = None,
        app_title: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._referer = referer
        self._app_title = app_title
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

        if not self.has_credential:
            logger.warning("OPENROUTER_API_KEY not set - advisory analysis will fall back")

    @classmethod
    def from_settings(
        cls,
        settings: AdvisorySettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> OpenRouterClient:
        return cls(
            api_key=settings.api_key,
            api_url=settings.api_url,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.timeout_seconds,
            referer=settings.referer,
            app_title=settings.app_title,
            http_client=http_client,
        )

    @property
    def has_credential(self) -> bool:
        return self._api_key is not None and bool(self._api_key.get_secret_value())

    def _headers(self, api_key: SecretStr) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key.get_secret_value()}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._app_title:
            headers["X-Title"] = self._app_title
        return headers

    async def complete(self, prompt: str, *, model: str) -> str:
        """Send one prompt and return the completion text.

        Raises:
            AdvisoryConfigurationError: No credential configured (no I/O attempted).
            AdvisoryTransportError: Network failure.
            AdvisoryHTTPStatusError: Non-2xx response.
            AdvisoryResponseError: Body is not a chat completion.
        """
        if self._api_key is None or not self.has_credential:
            raise AdvisoryConfigurationError("OpenRouter API key not configured")

        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

        try:
            response = await self._client.post(
                self._api_url,
                headers=self._headers(self._api_key),
                json=payload,
            )
        except httpx.HTTPError as e:
            raise AdvisoryTransportError(f"Advisory request failed: {e}") from e

        if not response.is_success:
            raise AdvisoryHTTPStatusError(
                response.status_code,
                f"Advisory endpoint returned HTTP {response.status_code}",
            )

        try:
            data: Any = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AdvisoryResponseError(f"Malformed completion body: {e}") from e

        if not isinstance(content, str):
            raise AdvisoryResponseError("Completion content is not a string")
        return content

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

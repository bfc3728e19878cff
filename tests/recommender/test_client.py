"""Tests for the OpenRouter completion client."""

import json

import httpx
import pytest
from pydantic import SecretStr

from whale_copytrade.config import AdvisorySettings
from whale_copytrade.recommender.client import (
    AdvisoryConfigurationError,
    AdvisoryHTTPStatusError,
    AdvisoryResponseError,
    AdvisoryTransportError,
    OpenRouterClient,
)

API_URL = "https://openrouter.test/api/v1/chat/completions"


def _client(handler, *, api_key: str | None = "sk-or-test") -> OpenRouterClient:  # type: ignore[no-untyped-def]
    return OpenRouterClient(
        api_key=SecretStr(api_key) if api_key is not None else None,
        api_url=API_URL,
        referer="https://example.test",
        app_title="Test App",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _completion(content: object) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestComplete:
    """Tests for OpenRouterClient.complete."""

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_completion('{"shouldCopy": false}'))

        client = _client(handler)
        text = await client.complete("analyze this", model="test/model")

        assert text == '{"shouldCopy": false}'
        request = seen[0]
        assert str(request.url) == API_URL
        assert request.headers["Authorization"] == "Bearer sk-or-test"
        assert request.headers["HTTP-Referer"] == "https://example.test"
        assert request.headers["X-Title"] == "Test App"
        body = json.loads(request.content)
        assert body["model"] == "test/model"
        assert body["messages"] == [{"role": "user", "content": "analyze this"}]
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_io(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=_completion("{}"))

        client = _client(handler, api_key=None)

        assert client.has_credential is False
        with pytest.raises(AdvisoryConfigurationError):
            await client.complete("x", model="m")
        assert calls == 0

    @pytest.mark.asyncio
    async def test_empty_key_is_missing(self) -> None:
        client = _client(lambda request: httpx.Response(200), api_key="")
        with pytest.raises(AdvisoryConfigurationError):
            await client.complete("x", model="m")

    @pytest.mark.asyncio
    async def test_non_success_status(self) -> None:
        client = _client(lambda request: httpx.Response(429, json={"error": "rate limited"}))

        with pytest.raises(AdvisoryHTTPStatusError) as exc_info:
            await client.complete("x", model="m")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(AdvisoryTransportError):
            await client.complete("x", model="m")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"choices": []}),
            httpx.Response(200, json={"id": "x"}),
            httpx.Response(200, json=_completion(None)),
        ],
    )
    async def test_malformed_body(self, response: httpx.Response) -> None:
        client = _client(lambda request: response)
        with pytest.raises(AdvisoryResponseError):
            await client.complete("x", model="m")


    @pytest.mark.asyncio
    async def test_headers_use_given_key(self) -> None:
        client = _client(lambda request: httpx.Response(200), api_key="sk-or-test")

        headers = client._headers(SecretStr("sk-or-other"))

        assert headers["Authorization"] == "Bearer sk-or-other"
        assert headers["Content-Type"] == "application/json"


class TestLifecycle:
    def test_from_settings(self) -> None:
        settings = AdvisorySettings(OPENROUTER_API_KEY="sk-or-abc", ADVISORY_MAX_TOKENS=500)
        client = OpenRouterClient.from_settings(settings)

        assert client.has_credential is True
        assert client._max_tokens == 500
        assert client._temperature == 0.3

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        client = OpenRouterClient(api_key=SecretStr("k"), http_client=http_client)

        await client.close()

        assert http_client.is_closed is False
        await http_client.aclose()

    @pytest.mark.asyncio
    async def test_close_owned_client(self) -> None:
        client = OpenRouterClient(api_key=SecretStr("k"))
        await client.close()
        assert client._client.is_closed is True

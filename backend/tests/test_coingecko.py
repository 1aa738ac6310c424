"""Tests for the CoinGecko HTTP client."""

import httpx
import pytest

from errors import UpstreamError
from services.coingecko import CoinGeckoClient

BASE_URL = "https://api.coingecko.test/api/v3"


def _client(handler, **kwargs) -> CoinGeckoClient:
    return CoinGeckoClient(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_fetch_json_builds_url_and_drops_none_params():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"id": "bitcoin"}])

    client = _client(handler)
    data = await client.fetch_json("/coins/markets", {"page": 2, "per_page": 50, "category": None})
    await client.aclose()

    assert data == [{"id": "bitcoin"}]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.host == "api.coingecko.test"
    assert request.url.path == "/api/v3/coins/markets"
    assert request.url.params["page"] == "2"
    assert request.url.params["per_page"] == "50"
    assert "category" not in request.url.params
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_api_key_header_sent_when_configured():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"})

    client = _client(handler, api_key="  demo-key  ")
    await client.fetch_json("/ping")
    await client.aclose()

    assert seen[0].headers["x-cg-demo-api-key"] == "demo-key"


@pytest.mark.asyncio
async def test_blank_api_key_is_not_sent():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = _client(handler, api_key="   ", api_key_header="x-cg-pro-api-key")
    await client.fetch_json("/ping")
    await client.aclose()

    assert "x-cg-pro-api-key" not in seen[0].headers
    assert "x-cg-demo-api-key" not in seen[0].headers


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_error_with_excerpt():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="x" * 500)

    client = _client(handler)
    with pytest.raises(UpstreamError) as exc_info:
        await client.fetch_json("/coins/bitcoin")
    await client.aclose()

    err = exc_info.value
    assert err.upstream_status == 429
    assert err.body_excerpt == "x" * 200
    assert str(err).startswith("CoinGecko error 429: ")


@pytest.mark.asyncio
async def test_transport_failure_raises_upstream_error_without_status():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(UpstreamError) as exc_info:
        await client.fetch_json("/coins/bitcoin")
    await client.aclose()

    assert exc_info.value.upstream_status is None
    assert "connection refused" in str(exc_info.value)


@pytest.mark.asyncio
async def test_non_json_success_body_raises_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>rate limited</html>")

    client = _client(handler)
    with pytest.raises(UpstreamError) as exc_info:
        await client.fetch_json("/coins/bitcoin")
    await client.aclose()

    assert exc_info.value.upstream_status == 200
    assert "invalid JSON body" in exc_info.value.body_excerpt
    assert "<html>" in exc_info.value.body_excerpt


@pytest.mark.asyncio
async def test_every_call_hits_the_network():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"id": "bitcoin"})

    client = _client(handler)
    await client.fetch_json("/coins/bitcoin")
    await client.fetch_json("/coins/bitcoin")
    await client.aclose()

    assert calls == 2


@pytest.mark.asyncio
async def test_client_reopens_after_aclose():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    client = _client(handler)
    await client.fetch_json("/ping")
    await client.aclose()

    assert await client.fetch_json("/ping") == {"ok": True}
    await client.aclose()

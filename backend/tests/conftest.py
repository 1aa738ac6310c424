"""Shared fixtures: a controllable clock and a fake CoinGecko upstream."""

import httpx
import pytest

from services.cache import TTLCache
from services.coingecko import CoinGeckoClient
from services.market_data import CachedFetcher, MarketDataService

BASE_URL = "https://api.coingecko.test/api/v3"


class FakeClock:
    def __init__(self, now: float = 1_767_225_600.0):  # 2026-01-01T00:00:00Z
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_market_rows(page: int, per_page: int) -> list[dict]:
    """One upstream markets page, deliberately in reverse rank order."""
    rows = []
    for i in range(per_page):
        rank = (page - 1) * per_page + (per_page - i)
        rows.append(
            {
                "id": f"coin-{rank}",
                "symbol": f"c{rank}",
                "name": f"Coin {rank}",
                "market_cap_rank": rank,
                "current_price": 1000.0 / rank,
                "price_change_percentage_24h_in_currency": (rank % 41) - 20.0,
            }
        )
    return rows


class FakeCoinGecko:
    """httpx.MockTransport handler standing in for the CoinGecko API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.bodies: dict[str, object] = {}
        self.fail_with: int | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="upstream down")

        path = request.url.path.removeprefix("/api/v3")
        if path == "/coins/markets":
            page = int(request.url.params["page"])
            per_page = int(request.url.params["per_page"])
            return httpx.Response(200, json=make_market_rows(page, per_page))
        if path in self.bodies:
            return httpx.Response(200, json=self.bodies[path])
        return httpx.Response(404, json={"error": "coin not found"})

    def paths(self) -> list[str]:
        return [r.url.path.removeprefix("/api/v3") for r in self.requests]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TTLCache:
    return TTLCache(clock=clock)


@pytest.fixture
def upstream() -> FakeCoinGecko:
    return FakeCoinGecko()


@pytest.fixture
def market_data(store: TTLCache, clock: FakeClock, upstream: FakeCoinGecko) -> MarketDataService:
    """Service wired to the fake upstream through a real CoinGeckoClient."""
    client = CoinGeckoClient(base_url=BASE_URL, transport=httpx.MockTransport(upstream))
    return MarketDataService(client, CachedFetcher(store, clock=clock))

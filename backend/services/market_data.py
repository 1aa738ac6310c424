"""Cached access to CoinGecko market data.

Every resource goes through the same policy (CachedFetcher.fetch):

    fresh entry      -> served as-is                          (X-Cache: HIT)
    expired/missing  -> fetch upstream, store, serve           (X-Cache: MISS)
    upstream failed  -> serve last good payload, stale=true    (X-Cache: STALE)
    ...and no entry  -> NoCachedFallbackError (503)

TTLs are policy constants per resource kind. A failed fetch never touches
the store, so an entry always holds the last successful payload.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from itertools import chain
from typing import Any, Awaitable, Callable
from urllib.parse import quote

from errors import InvalidParameterError, NoCachedFallbackError
from services.cache import CacheStore
from services.coingecko import CoinGeckoClient

logger = logging.getLogger(__name__)

COIN_TTL_SECONDS = 30
CHART_TTL_SECONDS = 60
STATUS_UPDATES_TTL_SECONDS = 10 * 60
MARKETS_PAGE_TTL_SECONDS = 20
TOP_MARKETS_TTL_SECONDS = 30

TOP_MARKETS_KEY = "markets:top1000"
TOP_MARKETS_PAGES = [1, 2, 3, 4]
TOP_MARKETS_PER_PAGE = 250

# Rows without a market cap rank sort after every ranked row
MISSING_RANK = 1e9

DAYS_DEFAULT, DAYS_MIN, DAYS_MAX = 7, 1, 30
PER_PAGE_DEFAULT, PER_PAGE_MIN, PER_PAGE_MAX = 50, 10, 250
MOVERS_LIMIT_DEFAULT, MOVERS_LIMIT_MIN, MOVERS_LIMIT_MAX = 50, 1, 250
MOVER_DIRECTIONS = {"gainers", "losers"}

PRICE_CHANGE_WINDOWS = "1h,24h,7d"


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    STALE = "STALE"


@dataclass
class CachedResult:
    payload: dict[str, Any]
    cache_status: CacheStatus


def isoformat_utc(ts: float) -> str:
    """Epoch seconds -> '2026-01-01T00:00:00.000Z'."""
    stamp = datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class CachedFetcher:
    """Stale-tolerant TTL policy in front of an upstream fetch.

    With ``coalesce`` on, concurrent refreshes of one key share a single
    upstream call and all callers get the same outcome.
    """

    def __init__(
        self,
        store: CacheStore,
        clock: Callable[[], float] = time.time,
        coalesce: bool = True,
    ):
        self._store = store
        self._clock = clock
        self._coalesce = coalesce
        self._in_flight: dict[str, asyncio.Future] = {}

    async def fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch_fn: Callable[[], Awaitable[Any]],
        unavailable_message: str,
        extras: dict[str, Any] | None = None,
    ) -> CachedResult:
        entry = self._store.get(key)
        if entry is not None and self._clock() - entry.timestamp < ttl_seconds:
            return CachedResult(entry.value, CacheStatus.HIT)

        if not self._coalesce:
            return await self._refresh(key, fetch_fn, unavailable_message, extras)

        pending = self._in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(key, fetch_fn, unavailable_message, extras))
            self._in_flight[key] = pending
            pending.add_done_callback(lambda fut: self._forget(key, fut))
        else:
            logger.debug("Joining in-flight refresh for %s", key)
        # A cancelled caller leaves the shared refresh running
        return await asyncio.shield(pending)

    def _forget(self, key: str, fut: asyncio.Future) -> None:
        if self._in_flight.get(key) is fut:
            del self._in_flight[key]

    async def _refresh(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        unavailable_message: str,
        extras: dict[str, Any] | None,
    ) -> CachedResult:
        try:
            data = await fetch_fn()
        except Exception as e:
            # Re-read: another caller may have stored a payload while this fetch ran
            prior = self._store.get(key)
            if prior is not None:
                logger.warning("Upstream failed for %s, serving stale copy: %s", key, e)
                payload = {**prior.value, "stale": True, "fetchedAt": isoformat_utc(self._clock())}
                return CachedResult(payload, CacheStatus.STALE)
            logger.error("Upstream failed for %s with nothing cached: %s", key, e)
            raise NoCachedFallbackError(unavailable_message) from e

        payload = {"data": data, **(extras or {}), "fetchedAt": isoformat_utc(self._clock()), "stale": False}
        self._store.set(key, payload)
        logger.info("Refreshed %s", key)
        return CachedResult(payload, CacheStatus.MISS)


# ---------------------------------------------------------------------------
# Parameter clamping
# ---------------------------------------------------------------------------

def _to_int(raw: str | int | None, default: int) -> int:
    """Lenient query parsing: blank or non-numeric -> default, '2.9' -> 2."""
    if raw is None:
        return default
    if isinstance(raw, int):
        return raw
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if not math.isfinite(value):
        return default
    return int(value)


def _clamp(value: int, low: int, high: int) -> int:
    return min(high, max(low, value))


def clamp_days(raw: str | int | None) -> int:
    return _clamp(_to_int(raw, DAYS_DEFAULT), DAYS_MIN, DAYS_MAX)


def clamp_page(raw: str | int | None) -> int:
    return max(1, _to_int(raw, 1))


def clamp_per_page(raw: str | int | None) -> int:
    return _clamp(_to_int(raw, PER_PAGE_DEFAULT), PER_PAGE_MIN, PER_PAGE_MAX)


def clamp_movers_limit(raw: str | int | None) -> int:
    return _clamp(_to_int(raw, MOVERS_LIMIT_DEFAULT), MOVERS_LIMIT_MIN, MOVERS_LIMIT_MAX)


def normalize_category(raw: str | None) -> str | None:
    category = (raw or "").strip()
    return category or None


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def sort_by_rank(rows: list[dict]) -> list[dict]:
    """Ascending market_cap_rank; unranked rows last, original order kept on ties."""

    def rank(row: dict) -> float:
        value = row.get("market_cap_rank")
        return MISSING_RANK if value is None else value

    return sorted(rows, key=rank)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def rank_movers(rows: list[dict], direction: str, limit: int) -> list[dict]:
    """Top gainers or losers by 24h price change."""
    field = "price_change_percentage_24h_in_currency"
    changed = [row for row in rows if _is_number(row.get(field))]
    changed.sort(key=lambda row: row[field], reverse=True)
    if direction == "gainers":
        return changed[:limit]
    return changed[-limit:][::-1]


async def _gather_fail_fast(*aws: Awaitable[Any]) -> list[Any]:
    """Run concurrently; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class MarketDataService:
    """One method per resource kind, each a cached upstream read."""

    def __init__(self, client: CoinGeckoClient, fetcher: CachedFetcher):
        self.client = client
        self.fetcher = fetcher

    async def get_coin(self, coin_id: str) -> CachedResult:
        return await self.fetcher.fetch(
            f"coin:{coin_id}",
            COIN_TTL_SECONDS,
            lambda: self.client.fetch_json(
                f"/coins/{quote(coin_id, safe='')}",
                {
                    "localization": "false",
                    "tickers": "false",
                    "market_data": "true",
                    "community_data": "false",
                    "developer_data": "false",
                    "sparkline": "false",
                },
            ),
            "Coin data temporarily unavailable.",
        )

    async def get_chart(self, coin_id: str, days: int) -> CachedResult:
        return await self.fetcher.fetch(
            f"chart:{coin_id}:{days}",
            CHART_TTL_SECONDS,
            lambda: self.client.fetch_json(
                f"/coins/{quote(coin_id, safe='')}/market_chart",
                {"vs_currency": "usd", "days": days},
            ),
            "Chart data temporarily unavailable.",
        )

    async def get_status_updates(self, coin_id: str) -> CachedResult:
        async def _fetch() -> list[dict]:
            res = await self.client.fetch_json(
                f"/coins/{quote(coin_id, safe='')}/status_updates",
                {"per_page": 10, "page": 1},
            )
            return res.get("status_updates") or []

        return await self.fetcher.fetch(
            f"status:{coin_id}",
            STATUS_UPDATES_TTL_SECONDS,
            _fetch,
            "Status updates unavailable.",
        )

    def _fetch_markets(self, page: int, per_page: int, category: str | None = None) -> Awaitable[list[dict]]:
        return self.client.fetch_json(
            "/coins/markets",
            {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": per_page,
                "page": page,
                "category": category,
                "sparkline": "false",
                "price_change_percentage": PRICE_CHANGE_WINDOWS,
            },
        )

    async def get_markets_page(self, page: int, per_page: int, category: str | None = None) -> CachedResult:
        extras: dict[str, Any] = {"page": page, "per_page": per_page}
        if category:
            extras["category"] = category
        return await self.fetcher.fetch(
            f"markets:{category or 'all'}:{page}:{per_page}",
            MARKETS_PAGE_TTL_SECONDS,
            lambda: self._fetch_markets(page, per_page, category),
            "Market data temporarily unavailable.",
            extras=extras,
        )

    async def get_top_markets(self) -> CachedResult:
        async def _fan_out() -> list[dict]:
            pages = await _gather_fail_fast(
                *[self._fetch_markets(page, TOP_MARKETS_PER_PAGE) for page in TOP_MARKETS_PAGES]
            )
            return sort_by_rank(list(chain.from_iterable(pages)))

        return await self.fetcher.fetch(
            TOP_MARKETS_KEY,
            TOP_MARKETS_TTL_SECONDS,
            _fan_out,
            "Market data temporarily unavailable.",
            extras={"sourcePages": list(TOP_MARKETS_PAGES)},
        )

    async def get_movers(self, direction: str, limit: int) -> CachedResult:
        """24h gainers/losers, derived from the cached top-1000 list."""
        if direction not in MOVER_DIRECTIONS:
            raise InvalidParameterError("direction", direction, MOVER_DIRECTIONS)

        top = await self.get_top_markets()
        payload = {
            "data": rank_movers(top.payload["data"], direction, limit),
            "direction": direction,
            "limit": limit,
            "fetchedAt": top.payload["fetchedAt"],
            "stale": top.payload["stale"],
        }
        return CachedResult(payload, top.cache_status)

    async def ping(self) -> Any:
        return await self.client.fetch_json("/ping")

"""Shared route plumbing: service injection and cached JSON responses."""

from fastapi import Request
from fastapi.responses import JSONResponse

from services.market_data import CachedResult, MarketDataService


def get_market_data(request: Request) -> MarketDataService:
    return request.app.state.market_data


def cached_response(result: CachedResult) -> JSONResponse:
    """Payload as JSON with X-Cache telling HIT / MISS / STALE apart."""
    return JSONResponse(result.payload, headers={"X-Cache": result.cache_status.value})

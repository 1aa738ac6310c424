"""Market list routes.

GET /api/markets      → one page of the market-cap ordered list, optional category
GET /api/markets-all  → top 1000 coins, merged from 4 upstream pages
GET /api/movers       → 24h gainers / losers out of the top 1000
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from routes.deps import cached_response, get_market_data
from services.market_data import (
    MarketDataService,
    clamp_movers_limit,
    clamp_page,
    clamp_per_page,
    normalize_category,
)

router = APIRouter(prefix="/api")


@router.get("/markets")
async def markets_page(
    page: str | None = Query(None),
    per_page: str | None = Query(None),
    category: str | None = Query(None),
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """Paged market list. per_page is clamped to 10-250 (default 50)."""
    result = await market_data.get_markets_page(
        clamp_page(page),
        clamp_per_page(per_page),
        normalize_category(category),
    )
    return cached_response(result)


@router.get("/markets-all")
async def markets_all(
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """Top 1000 coins by market cap, merged from 4 pages (30s cache)."""
    return cached_response(await market_data.get_top_markets())


@router.get("/movers")
async def movers(
    direction: str = Query("gainers"),
    limit: str | None = Query(None),
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """Biggest 24h movers among the top 1000 (shares the markets-all cache)."""
    result = await market_data.get_movers(direction.lower(), clamp_movers_limit(limit))
    return cached_response(result)

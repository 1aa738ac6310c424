"""Single-coin routes: detail, price chart, project status updates."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from routes.deps import cached_response, get_market_data
from services.market_data import MarketDataService, clamp_days

router = APIRouter(prefix="/api/coin")


@router.get("/{coin_id}")
async def coin_detail(
    coin_id: str,
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """Coin detail with USD market data (30s cache)."""
    return cached_response(await market_data.get_coin(coin_id))


@router.get("/{coin_id}/chart")
async def coin_chart(
    coin_id: str,
    days: str | None = Query(None),
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """USD price series over `days` (1-30, default 7; 60s cache)."""
    return cached_response(await market_data.get_chart(coin_id, clamp_days(days)))


@router.get("/{coin_id}/status-updates")
async def coin_status_updates(
    coin_id: str,
    market_data: MarketDataService = Depends(get_market_data),
) -> JSONResponse:
    """Latest 10 project status updates (10 min cache)."""
    return cached_response(await market_data.get_status_updates(coin_id))

"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Depends

from config import settings
from errors import UpstreamError
from routes.deps import get_market_data
from services.market_data import MarketDataService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "market-data-api", "commit": settings.git_sha}


@router.get("/health")
async def health(market_data: MarketDataService = Depends(get_market_data)) -> dict:
    """Deep health check that verifies CoinGecko connectivity."""
    result = {"status": "ok", "service": "market-data-api", "commit": settings.git_sha, "upstream": "not_tested"}

    try:
        await market_data.ping()
        result["upstream"] = "connected"
    except UpstreamError as e:
        logger.warning("CoinGecko health check failed: %s", e)
        result["upstream"] = "error"
        result["upstream_error"] = str(e)

    return result

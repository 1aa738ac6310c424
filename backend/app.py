"""FastAPI application entry point for the market data API."""

import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.cache import cache
from services.coingecko import CoinGeckoClient
from services.market_data import CachedFetcher, MarketDataService

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def build_market_data() -> MarketDataService:
    """Wire the CoinGecko client and the process-wide cache from settings."""
    client = CoinGeckoClient(
        base_url=settings.coingecko_base_url,
        api_key=settings.coingecko_api_key,
        api_key_header=settings.coingecko_api_key_header,
        timeout=settings.upstream_timeout_seconds,
    )
    fetcher = CachedFetcher(cache, coalesce=settings.coalesce_requests)
    return MarketDataService(client, fetcher)


def create_app(market_data: MarketDataService | None = None) -> FastAPI:
    app = FastAPI(title="Market Data API", version="1.0.0")
    app.state.market_data = market_data or build_market_data()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.health import router as health_router
    from routes.coins import router as coins_router
    from routes.market import router as market_router

    app.include_router(health_router)
    app.include_router(coins_router)
    app.include_router(market_router)

    @app.on_event("startup")
    async def _validate_config() -> None:
        for warning in settings.validate():
            logger.warning("Config: %s", warning)

    @app.on_event("shutdown")
    async def _close_upstream() -> None:
        await app.state.market_data.client.aclose()

    return app


app = create_app()

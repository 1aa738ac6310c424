"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BODY_EXCERPT_LENGTH = 200


class MarketDataError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(MarketDataError):
    """CoinGecko answered with a non-2xx status or could not be reached.

    ``upstream_status`` is None for transport failures (DNS, connect, timeout).
    """

    def __init__(self, upstream_status: int | None, body_excerpt: str = ""):
        self.upstream_status = upstream_status
        self.body_excerpt = body_excerpt[:BODY_EXCERPT_LENGTH]
        if upstream_status is None:
            message = f"CoinGecko unreachable: {self.body_excerpt}"
        else:
            message = f"CoinGecko error {upstream_status}: {self.body_excerpt}"
        super().__init__(message, status_code=502)


class NoCachedFallbackError(MarketDataError):
    """Upstream failed and there is no cached payload to fall back on."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


class InvalidParameterError(MarketDataError):
    def __init__(self, name: str, value: str, allowed: set[str]):
        super().__init__(
            f"Invalid {name}: {value}. Allowed: {sorted(allowed)}",
            status_code=400,
        )


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(MarketDataError)
    async def handle_market_data_error(_request: Request, exc: MarketDataError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )

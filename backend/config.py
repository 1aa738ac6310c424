"""Centralized configuration — all env vars in one place."""

import os

DEFAULT_COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
        self.git_sha: str = os.getenv("GIT_SHA", "unknown")
        self.environment: str = os.getenv("ENVIRONMENT", "local")

        # CoinGecko upstream
        self.coingecko_base_url: str = os.getenv("COINGECKO_BASE_URL", DEFAULT_COINGECKO_BASE_URL).rstrip("/")
        self.coingecko_api_key: str | None = (os.getenv("COINGECKO_API_KEY") or "").strip() or None
        self.coingecko_api_key_header: str = os.getenv("COINGECKO_API_KEY_HEADER", "x-cg-demo-api-key")
        self.upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

        # Share one upstream call between concurrent misses on the same key
        self.coalesce_requests: bool = _env_bool("COALESCE_REQUESTS", True)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> list[str]:
        """Return warnings about optional settings that are missing."""
        warnings = []
        if not self.coingecko_api_key:
            warnings.append("COINGECKO_API_KEY not set; using the keyless public rate limit")
        return warnings


settings = Settings()

"""CoinGecko REST client — thin JSON GET wrapper over httpx.

Every call goes to the network. No retries, no conditional requests;
caching and stale fallback are the caller's job (see services/market_data.py).
"""

import logging
from typing import Any

import httpx

from errors import UpstreamError

logger = logging.getLogger(__name__)


class CoinGeckoClient:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        api_key_header: str = "x-cg-demo-api-key",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = (api_key or "").strip() or None
        self._api_key_header = api_key_header
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._api_key:
            headers[self._api_key_header] = self._api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
            )
        return self._client

    async def fetch_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET base_url + path and return the decoded JSON body.

        Params whose value is None are dropped; everything else is sent as a string.

        Raises:
            UpstreamError: non-2xx response or transport failure.
        """
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        url = self.base_url + path

        logger.debug("CoinGecko GET %s %s", path, query)
        try:
            resp = await self._get_client().get(url, params=query)
        except httpx.HTTPError as e:
            logger.warning("CoinGecko request failed for %s: %s", path, e)
            raise UpstreamError(None, str(e) or type(e).__name__) from e

        if not resp.is_success:
            logger.warning("CoinGecko returned %d for %s", resp.status_code, path)
            raise UpstreamError(resp.status_code, resp.text)

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(resp.status_code, f"invalid JSON body: {resp.text}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

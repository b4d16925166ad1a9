"""Binance REST API client for fetching kline history."""

import asyncio
import logging
from typing import Any

import httpx

from app.models import Bar, PairKey
from core.errors import UpstreamError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 1200):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            now = asyncio.get_event_loop().time()
            wait_time = self.last_call + self.interval - now
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = asyncio.get_event_loop().time()


class BinanceRestClient:
    """Binance spot REST client (public market data only)."""

    # Binance caps /api/v3/klines at 1000 rows per request
    MAX_LIMIT = 1000

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 15.0,
        rate_limiter: RateLimiter | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make an API request with rate limiting."""
        await self.rate_limiter.acquire()
        client = await self._get_client()
        response = await client.request(method, endpoint, params=params)
        response.raise_for_status()
        return response.json()

    async def get_klines(
        self,
        pair: PairKey,
        limit: int = 500,
        end_time_ms: int | None = None,
    ) -> list[Bar]:
        """
        Fetch the most recent klines for a pair.

        Args:
            pair: Symbol and interval
            limit: Number of klines (capped at 1000)
            end_time_ms: Only klines opening at or before this time (ms)

        Returns:
            Bars oldest first

        Raises:
            UpstreamError: If the exchange response is not a kline list
            httpx.HTTPError: On transport or HTTP status failures
        """
        params: dict[str, Any] = {
            "symbol": pair.symbol,
            "interval": pair.interval,
            "limit": max(1, min(limit, self.MAX_LIMIT)),
        }
        if end_time_ms is not None:
            params["endTime"] = end_time_ms

        data = await self._request("GET", "/api/v3/klines", params)
        if not isinstance(data, list):
            raise UpstreamError(f"Invalid klines response for {pair}")

        return [Bar.from_rest_row(row) for row in data]

    async def get_recent_klines(self, pair: PairKey, limit: int) -> list[Bar]:
        """
        Fetch up to ``limit`` most recent klines, paging backwards past 1000.

        Returns:
            Bars oldest first, without duplicates
        """
        bars: list[Bar] = []
        end_time_ms: int | None = None

        while len(bars) < limit:
            batch = await self.get_klines(
                pair,
                limit=min(self.MAX_LIMIT, limit - len(bars)),
                end_time_ms=end_time_ms,
            )
            if not batch:
                break

            if bars:
                batch = [b for b in batch if b.time < bars[0].time]
            bars = batch + bars

            # Avoid infinite loop
            if len(batch) < 2:
                break
            end_time_ms = batch[0].time * 1000 - 1

        logger.debug(f"Fetched {len(bars)} klines for {pair}")
        return bars[-limit:] if limit > 0 else []

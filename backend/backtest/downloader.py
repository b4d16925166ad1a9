"""Historical bar loader for the backtest CLI, independent of app/.

Bars come either from the Binance REST klines endpoint (with retries) or
from a local JSON file holding a list of bars, or an object with a
``data`` list as returned by ``GET /history``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from core.errors import InvalidBarError, UpstreamError
from core.models import Bar, PairKey

logger = logging.getLogger(__name__)

KLINES_ENDPOINT = "/api/v3/klines"
MAX_LIMIT = 1000


class BarDownloader:
    """Fetch recent bars for one pair over REST."""

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 15.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._retries = max(1, retries)
        self._retry_delay = retry_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Release all resources."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch(self, pair: PairKey, limit: int) -> list[Bar]:
        """Most recent ``limit`` bars, oldest first.

        Requests above 1000 bars are paged backwards from the newest bar.

        Raises:
            UpstreamError: Every attempt for a page failed.
        """
        bars: list[Bar] = []
        end_time_ms: int | None = None

        while len(bars) < limit:
            batch = await self._fetch_page(pair, min(MAX_LIMIT, limit - len(bars)), end_time_ms)
            if bars:
                batch = [b for b in batch if b.time < bars[0].time]
            if not batch:
                break
            bars = batch + bars
            end_time_ms = bars[0].time * 1000 - 1

        logger.info(f"Fetched {len(bars)} bars for {pair}")
        return bars

    async def _fetch_page(self, pair: PairKey, limit: int, end_time_ms: int | None) -> list[Bar]:
        params: dict[str, Any] = {
            "symbol": pair.symbol,
            "interval": pair.interval,
            "limit": max(1, min(limit, MAX_LIMIT)),
        }
        if end_time_ms is not None:
            params["endTime"] = end_time_ms
        delay = self._retry_delay
        last_error: Exception | None = None

        for attempt in range(1, self._retries + 1):
            try:
                client = await self._get_client()
                resp = await client.get(KLINES_ENDPOINT, params=params)
                resp.raise_for_status()
                rows = resp.json()
                if not isinstance(rows, list):
                    raise UpstreamError(f"Invalid klines response for {pair}")
                return [Bar.from_rest_row(row) for row in rows]
            except (httpx.HTTPError, UpstreamError, InvalidBarError) as e:
                last_error = e
                logger.warning(f"Fetch {pair} attempt {attempt}/{self._retries} failed: {e}")
                if attempt < self._retries:
                    await asyncio.sleep(delay)
                    delay *= 2

        raise UpstreamError(f"Failed to fetch bars for {pair}: {last_error}")


def load_bars_file(path: str | Path) -> list[Bar]:
    """Read bars from a JSON file, sorted oldest first.

    Raises:
        InvalidBarError: The file does not hold a list of bars.
    """
    with open(path) as f:
        data: Any = json.load(f)
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, list):
        raise InvalidBarError(f"{path}: expected a list of bars")

    bars = [Bar.parse(item) for item in data]
    bars.sort(key=lambda b: b.time)
    logger.info(f"Loaded {len(bars)} bars from {path}")
    return bars

"""Market data service: the live pipeline for every streamed pair.

Pipeline for each inbound bar (run by the pair's feed worker, one bar at
a time):

1. Merge the bar into the candle cache and publish a cache event
2. If the bar is final, run it through the indicator engine
3. On success, publish one indicator event per warmed-up indicator family
   and a signal event when a signal fired; on failure, log and continue

Seeding: whenever a pair's connector enters the connecting state, its
worker replays the cached bars into the indicator engine before handling
any bar from the new connection.
"""

import logging
import time
from typing import Any

from app.clients import BinanceRestClient, kline_stream_url, open_kline_stream
from app.config import Settings, get_settings
from app.models import Bar, IndicatorSnapshot, PairKey
from app.services.entitlements import EntitlementProvider, InMemoryEntitlements
from app.services.feed_connector import ConnectFn, FeedConnector, ReconnectBackoff
from app.services.subscriptions import SubscriptionHub
from backtest import BacktestConfig, BacktestResult, BacktestSimulator, MIN_BARS
from core.candle_cache import CandleCache, MergeResult
from core.errors import InsufficientDataError
from core.indicators import IndicatorEngine

logger = logging.getLogger(__name__)


class MarketDataService:
    """Owns the per-pair stores and feed connectors.

    Collaborators can be injected for tests; defaults are built from
    settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        cache: CandleCache | None = None,
        engine: IndicatorEngine | None = None,
        entitlements: EntitlementProvider | None = None,
        hub: SubscriptionHub | None = None,
        rest_client: BinanceRestClient | None = None,
        connect: ConnectFn | None = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache or CandleCache(self.settings.max_candles_cache)
        self.engine = engine or IndicatorEngine(self.settings.indicators)
        self.entitlements = entitlements or InMemoryEntitlements(self.settings.premium_sessions)
        self.hub = hub or SubscriptionHub(self.entitlements)
        self.rest_client = rest_client or BinanceRestClient(self.settings.binance_rest_url)
        self._connect = connect or open_kline_stream
        self._connectors: dict[PairKey, FeedConnector] = {}
        self.started_at = time.time()

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    def connector(self, pair: PairKey) -> FeedConnector | None:
        return self._connectors.get(pair)

    def _create_connector(self, pair: PairKey) -> FeedConnector:
        return FeedConnector(
            pair,
            kline_stream_url(self.settings.binance_ws_url, pair),
            on_bar=self.handle_bar,
            on_seed=self.seed_indicators,
            backoff=ReconnectBackoff(
                self.settings.feed_base_retry_ms,
                self.settings.feed_max_retry_ms,
            ),
            connect=self._connect,
        )

    async def start_feed(self, pair: PairKey) -> FeedConnector:
        """Start streaming a pair (no-op when already connecting or connected)."""
        connector = self._connectors.get(pair)
        if connector is None:
            connector = self._create_connector(pair)
            self._connectors[pair] = connector
        await connector.start()
        return connector

    async def stop_feed(self, pair: PairKey) -> bool:
        connector = self._connectors.pop(pair, None)
        if connector is None:
            return False
        await connector.stop()
        return True

    async def shutdown(self) -> None:
        """Stop every feed and close the REST client."""
        for pair in list(self._connectors):
            await self.stop_feed(pair)
        await self.rest_client.close()
        logger.info("Market data service stopped")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def seed_indicators(self, pair: PairKey, reset: bool = False) -> int:
        """Replay cached bars into the indicator engine.

        Only final bars are replayed. Individual replay failures (e.g. bars
        the engine has already moved past) are ignored. With ``reset`` the
        pair's indicator state is dropped first so older history can be
        replayed.

        Returns:
            Number of bars the engine accepted.
        """
        if reset:
            self.engine.reset(pair)

        applied = 0
        for bar in self.cache.snapshot(pair, self.settings.max_seed_candles):
            if bar.is_final and self.engine.on_bar(pair, bar).ok:
                applied += 1
        logger.info(f"Seeded indicators for {pair}: {applied} bars applied")
        return applied

    async def handle_bar(self, pair: PairKey, bar: Bar) -> None:
        """Run one inbound bar through cache, indicators and fan-out."""
        if self.cache.merge(pair, bar) is MergeResult.REJECTED:
            logger.debug(f"{pair}: ignored out-of-order bar {bar.time}")
            return
        await self.hub.on_cache_event(pair, bar)

        if not bar.is_final:
            return

        result = self.engine.on_bar(pair, bar)
        if not result.ok:
            logger.warning(f"{pair}: indicator update failed for bar {bar.time}: {result.error} ({result.message})")
            return

        snapshot = result.snapshot
        for name, payload in snapshot.indicator_payloads().items():
            await self.hub.on_indicator_event(pair, name, payload)
        if snapshot.signal is not None:
            logger.info(
                f"{pair}: {snapshot.signal.side.value} signal "
                f"({snapshot.signal.reason.value}) at {snapshot.signal.price}"
            )
            await self.hub.on_signal_event(pair, snapshot.signal)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def load_history(self, pair: PairKey, limit: int) -> list[Bar]:
        """Recent bars for a pair, from cache when warm, otherwise from REST.

        A REST fetch seeds the cache and starts the pair's feed.

        Raises:
            InsufficientDataError: The exchange returned no bars.
            UpstreamError / httpx.HTTPError: The fetch failed.
        """
        limit = max(1, min(limit, self.settings.max_history_fetch))
        if self.cache.size(pair) > self.settings.history_cache_min_bars:
            return self.cache.snapshot(pair, limit)

        bars = await self.rest_client.get_klines(pair, limit)
        if not bars:
            raise InsufficientDataError(f"No history available for {pair}")

        appended = self.cache.seed(pair, bars)
        logger.info(f"Loaded {len(bars)} history bars for {pair} ({appended} new)")

        connector = self._connectors.get(pair)
        if connector is not None and connector.is_running and appended:
            # Feed already running with a shorter history: rebuild indicators
            connector.request_seed(reset=True)
        await self.start_feed(pair)
        return self.cache.snapshot(pair, limit)

    def snapshot(self, pair: PairKey, limit: int | None = None) -> list[Bar]:
        return self.cache.snapshot(pair, limit or self.settings.snapshot_limit)

    def latest_indicators(self, pair: PairKey) -> IndicatorSnapshot | None:
        return self.engine.latest(pair)

    async def run_backtest(self, config: BacktestConfig) -> BacktestResult:
        """Backtest on cached bars, fetching from REST when the cache is too short.

        Raises:
            InsufficientDataError: Fewer than ``MIN_BARS`` bars are available.
        """
        pair = config.pair
        bars = [b for b in self.cache.snapshot(pair, config.limit) if b.is_final]
        if len(bars) < MIN_BARS:
            bars = await self.rest_client.get_recent_klines(pair, config.limit)
        return BacktestSimulator().run(config, bars)

    def status(self) -> dict[str, Any]:
        return {
            "uptime": time.time() - self.started_at,
            "connections": self.hub.subscriber_count,
            "feeds": {str(pair): c.status() for pair, c in self._connectors.items()},
        }

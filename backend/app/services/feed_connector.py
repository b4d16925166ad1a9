"""Per-pair upstream feed connector.

State machine::

    disconnected -> connecting -> connected -> disconnected -> (backoff) -> connecting

Each connector owns at most one upstream kline stream, at most one pending
reconnect timer, and one worker task. The worker drains a queue holding
inbound bars and seeding requests, so everything that touches a pair's
cache and indicator state happens one item at a time, in arrival order.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from app.clients.binance_ws_kline import BinanceKlineListener, ListenerFactory, open_kline_stream
from app.models import Bar, PairKey

logger = logging.getLogger(__name__)

BarHandler = Callable[[PairKey, Bar], Awaitable[None]]
SeedHandler = Callable[[PairKey, bool], Any]
ConnectFn = Callable[[str, ListenerFactory], Awaitable[Any]]


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class SeedRequest:
    """Queue item asking the worker to replay cached bars into the indicators."""

    reset: bool = False


class ReconnectBackoff:
    """Exponential reconnect delay with jitter.

    The first delay after a reset is ``base_ms``. Each later delay is
    ``min(previous * 1.8, max_ms)``. Every delay is then multiplied by
    ``1 + rng() * 0.3`` and clamped to ``[base_ms, max_ms]``.
    """

    GROWTH = 1.8
    JITTER = 0.3

    def __init__(
        self,
        base_ms: float = 5000,
        max_ms: float = 60000,
        rng: Callable[[], float] = random.random,
    ):
        if base_ms <= 0 or max_ms < base_ms:
            raise ValueError("backoff requires 0 < base_ms <= max_ms")
        self.base_ms = float(base_ms)
        self.max_ms = float(max_ms)
        self._rng = rng
        self._last_ms: float | None = None
        self.attempts = 0

    @property
    def last_ms(self) -> float | None:
        return self._last_ms

    def next_delay(self) -> float:
        """Delay in milliseconds for the next reconnect attempt."""
        if self._last_ms is None:
            ms = self.base_ms
        else:
            ms = min(self._last_ms * self.GROWTH, self.max_ms)
        ms *= 1 + self._rng() * self.JITTER
        ms = min(max(ms, self.base_ms), self.max_ms)

        self._last_ms = ms
        self.attempts += 1
        return ms

    def reset(self) -> None:
        """Start over from ``base_ms`` (after a successful connect)."""
        self._last_ms = None
        self.attempts = 0


class FeedConnector:
    """Owns the upstream kline stream for one pair.

    Args:
        pair: Pair this connector streams.
        url: Full stream URL.
        on_bar: Awaited for every inbound bar, one at a time.
        on_seed: Called with ``(pair, reset)`` when a seeding request is
            reached in the queue (on every connect, and on demand).
        backoff: Reconnect delay policy.
        connect: Opens the stream with a listener factory. Defaults to picows.
    """

    def __init__(
        self,
        pair: PairKey,
        url: str,
        on_bar: BarHandler,
        on_seed: SeedHandler | None = None,
        backoff: ReconnectBackoff | None = None,
        connect: ConnectFn = open_kline_stream,
    ):
        self.pair = pair
        self.url = url
        self._on_bar = on_bar
        self._on_seed = on_seed
        self.backoff = backoff or ReconnectBackoff()
        self._connect = connect

        self._state = FeedState.DISCONNECTED
        self._running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._connect_task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._listener: BinanceKlineListener | None = None

        self.bars_received = 0
        self.reconnects = 0
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True between ``start()`` and ``stop()``, including while in backoff."""
        return self._running

    @property
    def pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "running": self._running,
            "pendingReconnect": self.pending_reconnect,
            "reconnects": self.reconnects,
            "barsReceived": self.bars_received,
            "lastError": self.last_error,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect unless already connecting or connected.

        Cancels any pending reconnect timer first, so a manual start never
        leaves a second timer behind.
        """
        if self._state in (FeedState.CONNECTING, FeedState.CONNECTED):
            return

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._cancel_reconnect()

        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

        self._state = FeedState.CONNECTING
        # Seeding is queued ahead of any bar from the new connection
        self._queue.put_nowait(SeedRequest())
        self._connect_task = asyncio.create_task(self._open())

    async def stop(self) -> None:
        """Close the stream and cancel the reconnect timer.

        Cache and indicator state are left as they are.
        """
        self._running = False
        self._cancel_reconnect()

        listener, self._listener = self._listener, None
        if listener:
            listener.disconnect()

        for task in (self._restart_task, self._connect_task, self._worker):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._restart_task = None
        self._connect_task = None
        self._worker = None
        self._queue = asyncio.Queue()
        self._state = FeedState.DISCONNECTED
        logger.info(f"Feed {self.pair} stopped")

    def push(self, bar: Bar) -> None:
        """Queue an inbound bar for the worker."""
        self.bars_received += 1
        self._queue.put_nowait(bar)

    def request_seed(self, reset: bool = False) -> None:
        """Queue a replay of cached bars into the indicator engine."""
        self._queue.put_nowait(SeedRequest(reset=reset))

    async def join(self) -> None:
        """Wait until every queued item has been handled."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()

        def listener_factory() -> BinanceKlineListener:
            listener = BinanceKlineListener(
                self.pair,
                on_bar=lambda bar: loop.call_soon_threadsafe(self.push, bar),
                on_connected=lambda: loop.call_soon_threadsafe(
                    self._handle_connected, listener
                ),
                on_disconnected=lambda: loop.call_soon_threadsafe(
                    self._handle_disconnected, "connection closed", listener
                ),
            )
            self._listener = listener
            return listener

        logger.info(f"Connecting feed {self.pair} to {self.url}")
        try:
            await self._connect(self.url, listener_factory)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._handle_disconnected(f"connect failed: {e}")

    def _handle_connected(self, listener: BinanceKlineListener) -> None:
        if listener is not self._listener or not self._running:
            return
        self._state = FeedState.CONNECTED
        self.last_error = None
        self.backoff.reset()
        logger.info(f"Feed {self.pair} connected")

    def _handle_disconnected(
        self, reason: str, listener: BinanceKlineListener | None = None
    ) -> None:
        # Late events from a listener that has already been replaced
        if listener is not None and listener is not self._listener:
            return
        if self._state == FeedState.DISCONNECTED:
            return

        self._listener = None
        self._state = FeedState.DISCONNECTED
        self.last_error = reason
        if not self._running:
            return

        logger.warning(f"Feed {self.pair} disconnected: {reason}")
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay_ms = self.backoff.next_delay()
        logger.info(
            f"Reconnecting feed {self.pair} in {delay_ms:.0f} ms "
            f"(attempt {self.backoff.attempts})"
        )
        loop = self._loop or asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay_ms / 1000, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if not self._running or self._loop is None:
            return
        self.reconnects += 1
        self._restart_task = self._loop.create_task(self.start())

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _drain(self) -> None:
        """Handle queued items strictly one at a time."""
        while True:
            item = await self._queue.get()
            try:
                if isinstance(item, SeedRequest):
                    if self._on_seed:
                        self._on_seed(self.pair, item.reset)
                else:
                    await self._on_bar(self.pair, item)
            except Exception as e:
                logger.error(f"Feed {self.pair}: handler error: {e}", exc_info=True)
            finally:
                self._queue.task_done()

"""Shared fixtures for relay tests."""

import asyncio

import orjson
import pytest

from core.models import Bar, PairKey


def _bar(time: int, close: float, *, open: float | None = None, is_final: bool = True) -> Bar:
    o = close if open is None else open
    return Bar(
        time=time,
        open=o,
        high=max(o, close),
        low=min(o, close),
        close=close,
        volume=1.0,
        is_final=is_final,
    )


def kline_frame(bar: Bar) -> bytes:
    """Binance kline stream frame for ``bar``."""
    return orjson.dumps({
        "e": "kline",
        "k": {
            "t": bar.time * 1000,
            "o": str(bar.open),
            "h": str(bar.high),
            "l": str(bar.low),
            "c": str(bar.close),
            "v": str(bar.volume),
            "x": bar.is_final,
        },
    })


class FakeStream:
    """Stands in for the picows connect call.

    Records every connect and keeps the listeners so tests can drive
    connect, disconnect and frames by hand. The first ``fail_times``
    connects raise.
    """

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.calls = 0
        self.urls: list[str] = []
        self.listeners = []

    async def __call__(self, url, listener_factory):
        self.calls += 1
        self.urls.append(url)
        if self.calls <= self.fail_times:
            raise ConnectionError("connection refused")
        listener = listener_factory()
        self.listeners.append(listener)
        return object()

    @property
    def listener(self):
        return self.listeners[-1]


async def _settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def pair():
    return PairKey.of("BTCUSDT", "1m")


@pytest.fixture
def make_bar():
    return _bar


@pytest.fixture
def make_bars():
    def factory(closes, start: int = 60, step: int = 60, opens=None):
        return [
            _bar(start + i * step, c, open=None if opens is None else opens[i])
            for i, c in enumerate(closes)
        ]

    return factory


@pytest.fixture
def fake_stream():
    return FakeStream()


@pytest.fixture
def stream_factory():
    return FakeStream


@pytest.fixture
def settle():
    return _settle


@pytest.fixture
def frame():
    return kline_frame

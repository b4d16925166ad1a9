"""Incremental indicator engine.

Keeps one rolling close buffer per pair and turns every final bar into an
``IndicatorSnapshot`` with an optional signal attached.

EMA is recomputed from the start of the rolling buffer on every bar
(seeded with the simple average of the first ``period`` closes). This is
O(buffer) per bar but reproduces the seeding rule exactly, including the
first ``period`` bars after a cold start.

Prior-bar values for edge detection are re-derived from the buffer
without the newest close, so an in-place revision of the newest bar
compares against the same prior window as the original bar did.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Sequence

from core.errors import RelayError, StaleBarError
from core.indicators.indicators import Bands, bollinger, ema, rsi, sma
from core.models import Bar, BollingerBands, IndicatorConfig, IndicatorSnapshot, PairKey
from core.strategy.detector import SignalDetector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndicatorValues:
    """Indicator values for one close window (``None`` while warming up)."""

    sma_short: float | None = None
    sma_long: float | None = None
    ema_short: float | None = None
    ema_long: float | None = None
    rsi: float | None = None
    bollinger: Bands | None = None


def compute_values(closes: Sequence[float], config: IndicatorConfig) -> IndicatorValues:
    """Compute every indicator over ``closes`` (oldest first)."""
    return IndicatorValues(
        sma_short=sma(closes, config.sma_short),
        sma_long=sma(closes, config.sma_long),
        ema_short=ema(closes, config.ema_short),
        ema_long=ema(closes, config.ema_long),
        rsi=rsi(closes, config.rsi_period),
        bollinger=bollinger(closes, config.bollinger_period, config.bollinger_std),
    )


@dataclass
class IndicatorState:
    """Rolling state for one pair."""

    closes: deque[float]
    last_time: int | None = None
    last_snapshot: IndicatorSnapshot | None = None
    bars_processed: int = 0


@dataclass
class BarResult:
    """Result of processing one bar: a snapshot, or a typed failure.

    Attributes:
        snapshot: Snapshot for the bar when processing succeeded.
        error: Error code when processing failed (e.g. ``stale_bar``).
        message: Human readable failure detail.
    """

    snapshot: IndicatorSnapshot | None = None
    error: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IndicatorEngine:
    """Per-pair indicator state with one ``on_bar`` call per final bar.

    Calls for the same pair must come from a single sequential caller.
    State is created on first use and kept until ``reset``.
    """

    def __init__(
        self,
        config: IndicatorConfig | None = None,
        detector: SignalDetector | None = None,
    ):
        self.config = config or IndicatorConfig()
        self.detector = detector or SignalDetector(
            rsi_oversold=self.config.rsi_oversold,
            rsi_overbought=self.config.rsi_overbought,
        )
        self._states: dict[PairKey, IndicatorState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def on_bar(self, pair: PairKey, bar: Bar) -> BarResult:
        """Feed one bar and return its snapshot or a typed failure.

        Never raises for per-bar faults; the caller decides whether to log
        and continue.
        """
        try:
            snapshot = self._process(pair, bar)
        except RelayError as e:
            return BarResult(error=e.code, message=e.message)
        except (ArithmeticError, ValueError) as e:
            return BarResult(error="indicator_failed", message=str(e))
        return BarResult(snapshot=snapshot)

    def latest(self, pair: PairKey) -> IndicatorSnapshot | None:
        """Snapshot of the last processed bar, if any."""
        state = self._states.get(pair)
        return state.last_snapshot if state else None

    def closes(self, pair: PairKey) -> list[float]:
        state = self._states.get(pair)
        return list(state.closes) if state else []

    def reset(self, pair: PairKey) -> None:
        self._states.pop(pair, None)

    def pairs(self) -> list[PairKey]:
        return list(self._states)

    def __contains__(self, pair: object) -> bool:
        return pair in self._states

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _state(self, pair: PairKey) -> IndicatorState:
        state = self._states.get(pair)
        if state is None:
            state = IndicatorState(closes=deque(maxlen=self.config.max_closes))
            self._states[pair] = state
        return state

    def _process(self, pair: PairKey, bar: Bar) -> IndicatorSnapshot:
        state = self._state(pair)

        if state.last_time is not None and bar.time < state.last_time:
            raise StaleBarError(
                f"{pair}: bar {bar.time} is older than last processed {state.last_time}"
            )

        # Work on a copy so a failure leaves the pair's state untouched
        window = list(state.closes)
        revision = state.last_time == bar.time
        if revision:
            window[-1] = bar.close
        else:
            window.append(bar.close)
            if len(window) > self.config.max_closes:
                del window[0]

        current = compute_values(window, self.config)
        previous = compute_values(window[:-1], self.config)
        signal = self.detector.detect(previous, current, close=bar.close, time=bar.time)

        snapshot = IndicatorSnapshot(
            time=bar.time,
            close=bar.close,
            sma_short=current.sma_short,
            sma_long=current.sma_long,
            ema_short=current.ema_short,
            ema_long=current.ema_long,
            rsi=current.rsi,
            bollinger=(
                BollingerBands(**current.bollinger._asdict())
                if current.bollinger is not None
                else None
            ),
            signal=signal,
        )

        if revision:
            state.closes[-1] = bar.close
            logger.debug(f"{pair}: revised bar {bar.time} in place")
        else:
            state.closes.append(bar.close)
        state.last_time = bar.time
        state.last_snapshot = snapshot
        state.bars_processed += 1
        return snapshot

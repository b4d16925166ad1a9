"""Live signal detector.

Rule families are evaluated in a fixed order: SMA cross, EMA cross,
RSI edge, Bollinger touch. When several qualify on the same bar, the
last one in that order is the signal surfaced for the bar; the full
list stays available through ``evaluate``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.models import Side, Signal, SignalReason
from core.strategy.rules import band_side, cross_side, rsi_side

if TYPE_CHECKING:
    from core.indicators.engine import IndicatorValues


class SignalDetector:
    """Derive edge-triggered signals from prior vs current indicator values."""

    def __init__(self, rsi_oversold: float = 30.0, rsi_overbought: float = 70.0):
        self.rsi_oversold = rsi_oversold
        self.rsi_overbought = rsi_overbought

    def evaluate(
        self,
        prev: IndicatorValues,
        cur: IndicatorValues,
        close: float,
        time: int,
    ) -> list[Signal]:
        """Return every qualifying signal, in rule order."""
        found: list[Signal] = []

        def add(side: Side | None, buy: SignalReason, sell: SignalReason) -> None:
            if side is not None:
                reason = buy if side is Side.BUY else sell
                found.append(Signal(side=side, reason=reason, time=time, price=close))

        add(
            cross_side(prev.sma_short, prev.sma_long, cur.sma_short, cur.sma_long),
            SignalReason.SMA_CROSS,
            SignalReason.SMA_CROSS,
        )
        add(
            cross_side(prev.ema_short, prev.ema_long, cur.ema_short, cur.ema_long),
            SignalReason.EMA_CROSS,
            SignalReason.EMA_CROSS,
        )
        add(
            rsi_side(prev.rsi, cur.rsi, self.rsi_oversold, self.rsi_overbought),
            SignalReason.RSI_OVERSOLD,
            SignalReason.RSI_OVERBOUGHT,
        )
        bands = cur.bollinger
        add(
            band_side(close, bands.lower if bands else None, bands.upper if bands else None),
            SignalReason.BOLL_LOWER,
            SignalReason.BOLL_UPPER,
        )
        return found

    def detect(
        self,
        prev: IndicatorValues,
        cur: IndicatorValues,
        close: float,
        time: int,
    ) -> Signal | None:
        """Signal for the bar: the last qualifying rule wins."""
        found = self.evaluate(prev, cur, close, time)
        return found[-1] if found else None

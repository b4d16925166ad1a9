"""Backtest strategies.

Both rescan full windows at ``index`` and ``index - 1`` on every call,
using the same indicator math and edge rules as the live detector.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from core.indicators import rsi, sma
from core.models import Side
from core.strategy import cross_side, register_strategy, rsi_side

if TYPE_CHECKING:
    from backtest.models import BacktestConfig


@register_strategy("sma")
class SmaCrossStrategy:
    """Long on a short/long SMA golden cross, flat on a death cross."""

    name = "sma"

    def __init__(self, config: BacktestConfig):
        self.short = config.sma_short
        self.long = config.sma_long

    def signal_at(self, closes: Sequence[float], index: int) -> Side | None:
        current = closes[: index + 1]
        previous = closes[:index]
        return cross_side(
            sma(previous, self.short),
            sma(previous, self.long),
            sma(current, self.short),
            sma(current, self.long),
        )


@register_strategy("rsi")
class RsiReversalStrategy:
    """Long when RSI climbs out of the lower zone, flat when it falls out of the upper one."""

    name = "rsi"

    def __init__(self, config: BacktestConfig):
        self.period = config.rsi_period
        self.lower = config.rsi_lower
        self.upper = config.rsi_upper

    def signal_at(self, closes: Sequence[float], index: int) -> Side | None:
        return rsi_side(
            rsi(closes[:index], self.period),
            rsi(closes[: index + 1], self.period),
            self.lower,
            self.upper,
        )

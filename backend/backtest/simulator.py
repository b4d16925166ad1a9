"""Deterministic bar-replay simulator.

Walks bars ``1 .. n-2``. A signal on bar ``i`` fills at the open of bar
``i + 1``, adjusted for slippage and commission:

    buy fill  = open * (1 + bps / 10000) * (1 + commission)
    sell fill = open * (1 - bps / 10000) * (1 - commission)

At most one long position is open at a time. Sizing takes ``size_pct`` of
current cash. A position still open after the walk is closed at the last
close (same adjustment) with note ``exit_on_finish``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from backtest.models import BacktestConfig, BacktestMetrics, BacktestResult, EquityPoint, Trade
from core.errors import InsufficientDataError, InvalidBarError
from core.models import Bar, Side
from core.strategy import create_strategy

logger = logging.getLogger(__name__)

MIN_BARS = 30


@dataclass(slots=True)
class _Position:
    qty: float
    entry_price: float
    entry_time: int


class BacktestSimulator:
    """Replays bars through a registered strategy with a simple fill model."""

    def run(self, config: BacktestConfig, bars: Sequence[Bar]) -> BacktestResult:
        """Run one backtest.

        Raises:
            InsufficientDataError: Fewer than ``MIN_BARS`` bars.
            InvalidBarError: Bars are not strictly ascending by time.
        """
        if len(bars) < MIN_BARS:
            raise InsufficientDataError(f"Need at least {MIN_BARS} bars, got {len(bars)}")
        for prev, cur in zip(bars, bars[1:]):
            if cur.time <= prev.time:
                raise InvalidBarError(
                    f"Bars must be strictly ascending by time ({cur.time} after {prev.time})"
                )

        strategy = create_strategy(config.strategy, config=config)
        closes = [bar.close for bar in bars]
        slip = config.slippage_bps / 10_000
        comm = config.commission_pct

        cash = config.initial_capital
        position: _Position | None = None
        trades: list[Trade] = []
        equity: list[EquityPoint] = []

        for i in range(1, len(bars) - 1):
            side = strategy.signal_at(closes, i)
            fill_bar = bars[i + 1]

            if side is Side.BUY and position is None:
                fill = fill_bar.open * (1 + slip) * (1 + comm)
                qty = cash * config.size_pct / fill
                cash -= qty * fill
                position = _Position(qty=qty, entry_price=fill, entry_time=fill_bar.time)
                trades.append(Trade(
                    time=fill_bar.time,
                    side=Side.BUY,
                    qty=qty,
                    entry_price=fill,
                    note=f"{config.strategy}_buy",
                ))
            elif side is Side.SELL and position is not None:
                fill = fill_bar.open * (1 - slip) * (1 - comm)
                cash += position.qty * fill
                trades.append(self._exit(position, fill, fill_bar.time, f"{config.strategy}_sell"))
                position = None

            held = position.qty * bars[i].close if position else 0.0
            equity.append(EquityPoint(time=bars[i].time, equity=cash + held))

        last = bars[-1]
        if position is not None:
            fill = last.close * (1 - slip) * (1 - comm)
            cash += position.qty * fill
            trades.append(self._exit(position, fill, last.time, "exit_on_finish"))
            position = None
        equity.append(EquityPoint(time=last.time, equity=cash))

        metrics = BacktestMetrics(
            final_equity=cash,
            total_return_pct=(cash / config.initial_capital - 1) * 100,
            trade_count=len(trades),
            start_time=bars[0].time,
            end_time=last.time,
        )
        logger.info(
            f"Backtest {config.symbol} {config.interval} [{config.strategy}]: "
            f"{len(bars)} bars, {metrics.trade_count} trades, "
            f"return {metrics.total_return_pct:+.2f}%"
        )
        return BacktestResult(config=config, metrics=metrics, trades=trades, equity=equity)

    @staticmethod
    def _exit(position: _Position, fill: float, time: int, note: str) -> Trade:
        return Trade(
            time=time,
            side=Side.SELL,
            qty=position.qty,
            entry_price=position.entry_price,
            exit_price=fill,
            pnl=position.qty * (fill - position.entry_price),
            note=note,
        )


def run_backtest(config: BacktestConfig, bars: Sequence[Bar]) -> BacktestResult:
    """Convenience wrapper around ``BacktestSimulator().run``."""
    return BacktestSimulator().run(config, bars)

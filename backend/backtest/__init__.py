"""Deterministic backtesting of SMA-cross and RSI-reversal strategies.

Fully independent of app/: only depends on core/ for indicator math and
signal rules, so backtest signals match the live detector's edge rules.

Usage:
    python -m backtest --symbol BTCUSDT --interval 1m --limit 1000
    python -m backtest --bars history.json --strategy rsi
"""

from backtest.models import BacktestConfig, BacktestMetrics, BacktestResult, EquityPoint, Trade
from backtest import strategies  # noqa: F401  (registers "sma" and "rsi")
from backtest.simulator import MIN_BARS, BacktestSimulator, run_backtest

__all__ = [
    "BacktestConfig",
    "BacktestMetrics",
    "BacktestResult",
    "BacktestSimulator",
    "EquityPoint",
    "MIN_BARS",
    "Trade",
    "run_backtest",
]

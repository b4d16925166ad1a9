"""Edge-trigger rules shared by the live detector and the backtester.

Each rule gets the prior and current indicator values and returns the
side to signal, or ``None``. Missing values (warm-up) never signal.
"""

from __future__ import annotations

from core.models import Side


def cross_side(
    prev_fast: float | None,
    prev_slow: float | None,
    fast: float | None,
    slow: float | None,
) -> Side | None:
    """Fast line crossing the slow line between two consecutive bars.

    BUY when ``prev_fast <= prev_slow`` and ``fast > slow``;
    SELL when ``prev_fast >= prev_slow`` and ``fast < slow``.
    """
    if None in (prev_fast, prev_slow, fast, slow):
        return None
    if prev_fast <= prev_slow and fast > slow:
        return Side.BUY
    if prev_fast >= prev_slow and fast < slow:
        return Side.SELL
    return None


def rsi_side(
    prev_rsi: float | None,
    rsi: float | None,
    oversold: float = 30.0,
    overbought: float = 70.0,
) -> Side | None:
    """RSI leaving an extreme zone.

    BUY when RSI rises from below ``oversold`` to at or above it;
    SELL when RSI falls from above ``overbought`` to at or below it.
    """
    if prev_rsi is None or rsi is None:
        return None
    if prev_rsi < oversold and rsi >= oversold:
        return Side.BUY
    if prev_rsi > overbought and rsi <= overbought:
        return Side.SELL
    return None


def band_side(close: float, lower: float | None, upper: float | None) -> Side | None:
    """Mean reversion on the Bollinger envelope (level trigger)."""
    if lower is None or upper is None:
        return None
    if close <= lower:
        return Side.BUY
    if close >= upper:
        return Side.SELL
    return None

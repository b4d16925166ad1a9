"""Technical indicators for signal generation (pure math, no I/O).

Each function takes the close series oldest-first and returns the value
for the newest close, or ``None`` when the series is too short. Nothing
here raises for short input: warm-up is signalled by ``None``.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np

# Loss floor used by RSI so an all-gain window does not divide by zero
RSI_LOSS_FLOOR = 1e-9


class Bands(NamedTuple):
    upper: float
    middle: float
    lower: float


def _tail(values: Sequence[float], period: int) -> np.ndarray:
    return np.asarray(values[-period:], dtype=np.float64)


def sma(values: Sequence[float], period: int) -> float | None:
    """Arithmetic mean of the last ``period`` values."""
    if period <= 0 or len(values) < period:
        return None
    return float(np.mean(_tail(values, period)))


def ema_series(values: Sequence[float], period: int) -> np.ndarray:
    """EMA over the whole series.

    Seeded with the simple average of the first ``period`` values, then
    ``ema = v * k + ema * (1 - k)`` with ``k = 2 / (period + 1)``.
    Entries before the seed are NaN.
    """
    arr = np.asarray(values, dtype=np.float64)
    result = np.full_like(arr, np.nan)
    if period <= 0 or len(arr) < period:
        return result

    multiplier = 2.0 / (period + 1)
    result[period - 1] = np.mean(arr[:period])

    for i in range(period, len(arr)):
        result[i] = arr[i] * multiplier + result[i - 1] * (1 - multiplier)

    return result


def ema(values: Sequence[float], period: int) -> float | None:
    """EMA of the newest value, recomputed from the start of ``values``."""
    if period <= 0 or len(values) < period:
        return None
    return float(ema_series(values, period)[-1])


def rsi(values: Sequence[float], period: int = 14) -> float | None:
    """RSI over the last ``period`` close-to-close deltas.

    ``rs = sum(gains) / (sum(losses) or 1e-9)``, ``RSI = 100 - 100 / (1 + rs)``.
    Needs at least ``period + 1`` values.
    """
    if period <= 0 or len(values) <= period:
        return None

    deltas = np.diff(_tail(values, period + 1))
    gains = float(deltas[deltas > 0].sum())
    losses = float(-deltas[deltas < 0].sum())

    rs = gains / (losses or RSI_LOSS_FLOOR)
    return 100.0 - 100.0 / (1.0 + rs)


def bollinger(
    values: Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> Bands | None:
    """SMA(period) +/- num_std * population standard deviation."""
    if period <= 0 or len(values) < period:
        return None

    window = _tail(values, period)
    middle = float(np.mean(window))
    std = float(np.std(window))  # ddof=0: population std-dev
    return Bands(
        upper=middle + num_std * std,
        middle=middle,
        lower=middle - num_std * std,
    )

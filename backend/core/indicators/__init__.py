"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    Bands,
    bollinger,
    ema,
    ema_series,
    rsi,
    sma,
)
from core.indicators.engine import (
    BarResult,
    IndicatorEngine,
    IndicatorState,
    IndicatorValues,
    compute_values,
)

__all__ = [
    "Bands",
    "bollinger",
    "ema",
    "ema_series",
    "rsi",
    "sma",
    "BarResult",
    "IndicatorEngine",
    "IndicatorState",
    "IndicatorValues",
    "compute_values",
]

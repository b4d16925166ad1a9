"""Data models (pure, no I/O)."""

from core.models.bar import Bar, PairKey, SYMBOL_PATTERN, VALID_INTERVALS
from core.models.config import IndicatorConfig
from core.models.signal import Side, Signal, SignalReason
from core.models.snapshot import (
    BollingerBands,
    IndicatorSnapshot,
    INDICATOR_FIELDS,
    INDICATOR_NAMES,
)

__all__ = [
    "Bar",
    "PairKey",
    "SYMBOL_PATTERN",
    "VALID_INTERVALS",
    "IndicatorConfig",
    "Side",
    "Signal",
    "SignalReason",
    "BollingerBands",
    "IndicatorSnapshot",
    "INDICATOR_FIELDS",
    "INDICATOR_NAMES",
]

"""Data models used by the app layer (re-exported from core)."""

from core.models import (
    Bar,
    BollingerBands,
    IndicatorConfig,
    IndicatorSnapshot,
    INDICATOR_NAMES,
    PairKey,
    Side,
    Signal,
    SignalReason,
)

__all__ = [
    "Bar",
    "BollingerBands",
    "IndicatorConfig",
    "IndicatorSnapshot",
    "INDICATOR_NAMES",
    "PairKey",
    "Side",
    "Signal",
    "SignalReason",
]

"""Indicator snapshot produced for every processed final bar."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from core.models.signal import Signal

# Indicator name -> snapshot wire fields it covers.
# These names are what clients pass as ``indicator`` when subscribing.
INDICATOR_FIELDS: dict[str, tuple[str, ...]] = {
    "sma": ("smaShort", "smaLong"),
    "ema": ("emaShort", "emaLong"),
    "rsi": ("rsi",),
    "bollinger": ("bollinger",),
}
INDICATOR_NAMES = tuple(INDICATOR_FIELDS)


class BollingerBands(BaseModel):
    model_config = ConfigDict(frozen=True)

    upper: float
    middle: float
    lower: float


class IndicatorSnapshot(BaseModel):
    """Indicator values after one bar.

    Fields stay ``None`` during warm-up until enough closes exist;
    they are omitted from the wire form rather than sent as null.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    time: int
    close: float
    sma_short: float | None = None
    sma_long: float | None = None
    ema_short: float | None = None
    ema_long: float | None = None
    rsi: float | None = None
    bollinger: BollingerBands | None = None
    signal: Signal | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def indicator_payloads(self) -> dict[str, dict[str, Any]]:
        """Split into per-indicator payloads, skipping indicators still warming up."""
        wire = self.to_wire()
        payloads: dict[str, dict[str, Any]] = {}
        for name, fields in INDICATOR_FIELDS.items():
            values = {f: wire[f] for f in fields if f in wire}
            if values:
                payloads[name] = {"time": self.time, "close": self.close, **values}
        return payloads

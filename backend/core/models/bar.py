"""Bar (candlestick) and pair identity models."""

from __future__ import annotations

import math
import re
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import InvalidBarError, InvalidSymbolError

SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]{3,12}$")

# Kline intervals accepted by Binance
VALID_INTERVALS = frozenset({
    "1s", "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
})


class PairKey(NamedTuple):
    """Identity of a (symbol, interval) stream.

    Always build through ``PairKey.of`` so the symbol is upper-cased and
    both parts are validated.
    """

    symbol: str
    interval: str

    @classmethod
    def of(cls, symbol: Any, interval: Any) -> PairKey:
        sym = str(symbol or "").strip().upper()
        if not SYMBOL_PATTERN.match(sym):
            raise InvalidSymbolError(f"Invalid symbol: {symbol!r}")
        ivl = str(interval or "").strip()
        if ivl not in VALID_INTERVALS:
            raise InvalidSymbolError(f"Invalid interval: {interval!r}")
        return cls(sym, ivl)

    @property
    def stream_name(self) -> str:
        """Binance stream name, e.g. ``btcusdt@kline_1m``."""
        return f"{self.symbol.lower()}@kline_{self.interval}"

    def __str__(self) -> str:
        return f"{self.symbol}::{self.interval}"


class Bar(BaseModel):
    """OHLCV bar for one period.

    ``time`` is the period start in Unix seconds. ``is_final`` marks a bar
    whose period has closed; it is internal and not part of the wire shape.
    """

    model_config = ConfigDict(frozen=True)

    time: int = Field(ge=0)
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    is_final: bool = True

    @field_validator("open", "high", "low", "close", "volume")
    @classmethod
    def _check_finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return value

    @classmethod
    def parse(cls, data: Any, *, is_final: bool = True) -> Bar:
        """Validate a wire bar ``{time, open, high, low, close, volume}``.

        Raises:
            InvalidBarError: If a required field is missing or not numeric.
        """
        if not isinstance(data, dict):
            raise InvalidBarError("Candle must be an object")
        try:
            return cls(
                time=data.get("time"),
                open=data.get("open"),
                high=data.get("high"),
                low=data.get("low"),
                close=data.get("close"),
                volume=data.get("volume") or 0.0,
                is_final=is_final,
            )
        except ValidationError as e:
            raise InvalidBarError(f"Invalid candle: {e.error_count()} invalid field(s)") from e

    @classmethod
    def from_exchange(cls, kline: dict) -> Bar:
        """Build a bar from a Binance stream kline ``{t, o, h, l, c, v, x}``.

        ``t`` is in milliseconds; ``x`` is the period-closed flag.
        """
        try:
            return cls(
                time=int(kline["t"]) // 1000,
                open=float(kline["o"]),
                high=float(kline["h"]),
                low=float(kline["l"]),
                close=float(kline["c"]),
                volume=float(kline["v"]),
                is_final=bool(kline.get("x", False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidBarError(f"Invalid exchange kline: {e}") from e

    @classmethod
    def from_rest_row(cls, row: list) -> Bar:
        """Build a bar from a REST kline row ``[openTime, o, h, l, c, v, ...]``."""
        try:
            return cls(
                time=int(row[0]) // 1000,
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
                is_final=True,  # Historical klines are treated as closed
            )
        except (IndexError, TypeError, ValueError) as e:
            raise InvalidBarError(f"Invalid kline row: {e}") from e

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the bar wire shape (no ``is_final``)."""
        return self.model_dump(exclude={"is_final"})

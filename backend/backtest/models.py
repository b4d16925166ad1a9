"""Backtest configuration and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.errors import InvalidSymbolError
from core.models import PairKey, Side
from core.strategy import list_strategies


class BacktestConfig(BaseModel):
    """Parameters for one deterministic backtest run."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    symbol: str = "BTCUSDT"
    interval: str = "1m"
    strategy: str = "sma"

    # Strategy parameters
    sma_short: int = Field(default=10, ge=1)
    sma_long: int = Field(default=30, ge=2)
    rsi_period: int = Field(default=14, ge=1)
    rsi_lower: float = Field(default=30.0, ge=0, le=100)
    rsi_upper: float = Field(default=70.0, ge=0, le=100)

    # Execution model
    initial_capital: float = Field(default=10000.0, gt=0)
    size_pct: float = Field(default=0.1, gt=0, le=1)
    slippage_bps: float = Field(default=5.0, ge=0)
    commission_pct: float = Field(default=0.0005, ge=0, lt=1)

    limit: int = Field(default=1000, ge=1, le=5000)

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("strategy")
    @classmethod
    def _known_strategy(cls, v: str) -> str:
        available = list_strategies()
        if v not in available:
            raise ValueError(f"unknown strategy {v!r}, expected one of {available}")
        return v

    @model_validator(mode="after")
    def _check_values(self):
        try:
            PairKey.of(self.symbol, self.interval)
        except InvalidSymbolError as e:
            raise ValueError(e.message) from e
        if self.sma_short >= self.sma_long:
            raise ValueError("sma_short must be less than sma_long")
        if self.rsi_lower >= self.rsi_upper:
            raise ValueError("rsi_lower must be less than rsi_upper")
        return self

    @property
    def pair(self) -> PairKey:
        return PairKey.of(self.symbol, self.interval)


@dataclass(frozen=True, slots=True)
class Trade:
    """One fill. Entries have no exit price or pnl; exits carry both."""

    time: int
    side: Side
    qty: float
    entry_price: float
    exit_price: float | None = None
    pnl: float | None = None
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time,
            "side": self.side.value,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "qty": self.qty,
            "pnl": self.pnl,
            "note": self.note,
        }


@dataclass(frozen=True, slots=True)
class EquityPoint:
    time: int
    equity: float


@dataclass(frozen=True, slots=True)
class BacktestMetrics:
    final_equity: float
    total_return_pct: float
    trade_count: int
    start_time: int
    end_time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "finalEquity": self.final_equity,
            "totalReturnPct": self.total_return_pct,
            "tradeCount": self.trade_count,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


@dataclass
class BacktestResult:
    config: BacktestConfig
    metrics: BacktestMetrics
    trades: list[Trade] = field(default_factory=list)
    equity: list[EquityPoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metrics": self.metrics.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "equity": [{"time": p.time, "equity": p.equity} for p in self.equity],
        }

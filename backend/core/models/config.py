"""Indicator and signal configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class IndicatorConfig(BaseModel):
    """Periods and thresholds for the live indicator engine."""

    # Moving averages
    sma_short: int = Field(10, ge=1)
    sma_long: int = Field(30, ge=1)
    ema_short: int = Field(10, ge=1)
    ema_long: int = Field(30, ge=1)

    # RSI
    rsi_period: int = Field(14, ge=1)
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0

    # Bollinger bands
    bollinger_period: int = Field(20, ge=2)
    bollinger_std: float = 2.0

    # Rolling close buffer per pair
    max_closes: int = Field(5000, ge=2)

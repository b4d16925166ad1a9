"""Settings for the backtest CLI.

Kept apart from app/config.py so ``python -m backtest`` runs without the
relay's server settings. Only the bar source is configured here; strategy
and execution parameters come from the command line.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestSettings(BaseSettings):
    """Bar source for backtests, read from ``BACKTEST_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rest_url: str = "https://api.binance.com"
    request_timeout: float = 15.0

    # Pair used when --symbol / --interval are omitted
    default_symbol: str = "BTCUSDT"
    default_interval: str = "1m"

    # Delay doubles after each failed fetch
    fetch_retries: int = 3
    fetch_retry_delay: float = 1.0


@lru_cache
def get_backtest_settings() -> BacktestSettings:
    return BacktestSettings()

"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models import IndicatorConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Binance endpoints
    binance_rest_url: str = "https://api.binance.com"
    binance_ws_url: str = "wss://stream.binance.com:9443/ws"

    # Cache sizes
    max_candles_cache: int = 2000
    max_seed_candles: int = 1000
    max_history_fetch: int = 1000
    snapshot_limit: int = 500
    # History requests are served from cache once it holds more bars than this
    history_cache_min_bars: int = 100

    # Feed reconnect backoff (milliseconds)
    feed_base_retry_ms: int = 5000
    feed_max_retry_ms: int = 60000

    # Client WebSocket idle ping (seconds)
    heartbeat_interval: float = 30.0

    # Premium entitlements, session id -> premium-until (Unix seconds).
    # From the environment as JSON: PREMIUM_SESSIONS='{"alice": 1893456000}'
    premium_sessions: dict[str, float] = {}

    # Pairs streamed from startup, "SYMBOL:interval"
    autostart_pairs: list[str] = ["BTCUSDT:1m"]

    # Indicator periods and thresholds
    indicators: IndicatorConfig = IndicatorConfig()

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

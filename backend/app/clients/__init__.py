"""Exchange clients."""

from app.clients.binance_rest import BinanceRestClient, RateLimiter
from app.clients.binance_ws_kline import (
    BinanceKlineListener,
    kline_stream_url,
    open_kline_stream,
    parse_kline_message,
)

__all__ = [
    "BinanceRestClient",
    "RateLimiter",
    "BinanceKlineListener",
    "kline_stream_url",
    "open_kline_stream",
    "parse_kline_message",
]

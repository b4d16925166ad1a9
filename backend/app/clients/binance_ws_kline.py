"""Binance WebSocket client for a single pair's kline stream using picows."""

import logging
from typing import Any, Callable

import orjson
from picows import WSCloseCode, WSFrame, WSListener, WSMsgType, WSTransport, ws_connect

from app.models import Bar, PairKey
from core.errors import InvalidInputError

logger = logging.getLogger(__name__)

BarCallback = Callable[[Bar], None]
ListenerFactory = Callable[[], WSListener]


def kline_stream_url(ws_base_url: str, pair: PairKey) -> str:
    """Raw stream URL, e.g. ``wss://stream.binance.com:9443/ws/btcusdt@kline_1m``."""
    return f"{ws_base_url.rstrip('/')}/{pair.stream_name}"


def parse_kline_message(payload: str | bytes) -> Bar | None:
    """Parse a kline stream frame into a bar.

    Returns ``None`` for frames that carry no kline (acks, other events).

    Raises:
        InvalidInputError: If the frame is not JSON or the kline is malformed.
    """
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise InvalidInputError(f"Failed to parse kline message: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("k"), dict):
        return None
    return Bar.from_exchange(data["k"])


class BinanceKlineListener(WSListener):
    """picows listener for one Binance kline stream.

    Callbacks run on the event loop thread; they must not block.
    """

    def __init__(
        self,
        pair: PairKey,
        on_bar: BarCallback,
        on_connected: Callable[[], None],
        on_disconnected: Callable[[], None],
    ):
        self.pair = pair
        self._on_bar = on_bar
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._transport: WSTransport | None = None

    def on_ws_connected(self, transport: WSTransport):
        """Called when WebSocket connection is established."""
        self._transport = transport
        logger.info(f"picows: kline stream connected for {self.pair}")
        self._on_connected()

    def on_ws_disconnected(self, transport: WSTransport):
        """Called when WebSocket is disconnected."""
        logger.info(f"picows: kline stream disconnected for {self.pair}")
        self._transport = None
        self._on_disconnected()

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        """Called when a new frame is received."""
        if frame.msg_type == WSMsgType.TEXT:
            self.handle_message(frame.get_payload_as_bytes())
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())

    def handle_message(self, payload: str | bytes) -> None:
        """Parse a frame and hand the bar on. Bad frames are logged and dropped."""
        try:
            bar = parse_kline_message(payload)
        except InvalidInputError as e:
            logger.warning(f"{self.pair}: dropped kline frame ({e.message})")
            return
        if bar is not None:
            self._on_bar(bar)

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def disconnect(self) -> None:
        """Disconnect the WebSocket."""
        if self._transport:
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()


async def open_kline_stream(url: str, listener_factory: ListenerFactory) -> Any:
    """Connect to a kline stream; returns the picows transport."""
    transport, _ = await ws_connect(
        listener_factory,
        url,
        enable_auto_ping=True,
        auto_ping_idle_timeout=30,
        auto_ping_reply_timeout=10,
    )
    return transport

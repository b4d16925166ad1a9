"""Client WebSocket protocol.

Inbound messages are validated with pydantic; outbound messages are plain
dicts built here and serialized with orjson.

Inbound::

    {"type": "subscribe", "symbol": "BTCUSDT", "interval": "1m", "indicator": "rsi"}
    {"type": "unsubscribe", "symbol": "BTCUSDT", "interval": "1m"}
    {"type": "get_snapshot", "symbol": "BTCUSDT", "interval": "1m", "limit": 200}
    {"type": "auth", "sessionId": "abc"}
    {"type": "ping"}
"""

from typing import Annotated, Any, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from app.models import Bar, INDICATOR_NAMES, PairKey, Signal
from core.errors import InvalidInputError, InvalidSymbolError, UnknownMessageTypeError


def dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


# ----------------------------------------------------------------------
# Inbound
# ----------------------------------------------------------------------


class _PairMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    symbol: str
    interval: str

    @model_validator(mode="after")
    def _check_pair(self):
        try:
            PairKey.of(self.symbol, self.interval)
        except InvalidSymbolError as e:
            raise ValueError(e.message) from e
        return self

    @property
    def pair(self) -> PairKey:
        return PairKey.of(self.symbol, self.interval)


class SubscribeMessage(_PairMessage):
    type: Literal["subscribe"]
    indicator: str | None = None

    @field_validator("indicator")
    @classmethod
    def _known_indicator(cls, v: str | None) -> str | None:
        if v is not None and v not in INDICATOR_NAMES:
            raise ValueError(f"unknown indicator {v!r}")
        return v


class UnsubscribeMessage(_PairMessage):
    type: Literal["unsubscribe"]
    indicator: str | None = None


class SnapshotRequest(_PairMessage):
    type: Literal["get_snapshot"]
    limit: int | None = Field(default=None, ge=1)


class PingMessage(BaseModel):
    type: Literal["ping"]


class AuthMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["auth"]
    session_id: str = Field(alias="sessionId", min_length=1, max_length=128)


ClientMessage = Annotated[
    Union[SubscribeMessage, UnsubscribeMessage, SnapshotRequest, PingMessage, AuthMessage],
    Field(discriminator="type"),
]
_client_message = TypeAdapter(ClientMessage)

MESSAGE_TYPES = frozenset({"subscribe", "unsubscribe", "get_snapshot", "ping", "auth"})


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Parse and validate one inbound frame.

    Raises:
        UnknownMessageTypeError: ``type`` is a string but not a known message.
        InvalidInputError: Anything else malformed.
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise InvalidInputError("Invalid JSON") from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise InvalidInputError("Message must be an object with a string type")
    if data["type"] not in MESSAGE_TYPES:
        raise UnknownMessageTypeError(f"Unknown message type: {data['type']}")

    try:
        return _client_message.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise InvalidInputError(f"{data['type']}: {first['msg']}") from e


# ----------------------------------------------------------------------
# Outbound
# ----------------------------------------------------------------------


def _pair_fields(pair: PairKey) -> dict[str, str]:
    return {"symbol": pair.symbol, "interval": pair.interval}


def candles_update(pair: PairKey, bar: Bar) -> dict[str, Any]:
    return {
        "type": "candles_update",
        **_pair_fields(pair),
        "candle": {**bar.to_wire(), "isFinal": bar.is_final},
        "isFinal": bar.is_final,
    }


def indicator_update(pair: PairKey, indicator: str, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "indicator_update",
        **_pair_fields(pair),
        "indicator": indicator,
        "data": data,
    }


def signal_message(pair: PairKey, signal: Signal) -> dict[str, Any]:
    return {"type": "signal", **_pair_fields(pair), "signal": signal.to_wire()}


def snapshot_message(pair: PairKey, bars: list[Bar]) -> dict[str, Any]:
    return {
        "type": "snapshot",
        **_pair_fields(pair),
        "data": [bar.to_wire() for bar in bars],
    }


def error_message(reason: str, message: str | None = None) -> dict[str, Any]:
    payload = {"type": "error", "reason": reason}
    if message and message != reason:
        payload["message"] = message
    return payload


def welcome_message(session_id: str) -> dict[str, Any]:
    return {"type": "welcome", "sessionId": session_id, "msg": "connected"}


def auth_ok_message(session_id: str, premium: bool) -> dict[str, Any]:
    return {"type": "auth_ok", "sessionId": session_id, "premium": premium}


def subscribed_message(pair: PairKey, indicator: str | None) -> dict[str, Any]:
    return {"type": "subscribed", **_pair_fields(pair), "indicator": indicator}


def unsubscribed_message(pair: PairKey, indicator: str | None) -> dict[str, Any]:
    return {"type": "unsubscribed", **_pair_fields(pair), "indicator": indicator}


def pong_message() -> dict[str, Any]:
    return {"type": "pong"}


def ping_message() -> dict[str, Any]:
    return {"type": "ping"}

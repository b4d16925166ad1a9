"""WebSocket endpoint for real-time updates."""

import asyncio
import logging
import secrets
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect

from app.protocol import (
    AuthMessage,
    PingMessage,
    SnapshotRequest,
    SubscribeMessage,
    UnsubscribeMessage,
    auth_ok_message,
    dumps,
    error_message,
    parse_client_message,
    ping_message,
    pong_message,
    snapshot_message,
    subscribed_message,
    unsubscribed_message,
    welcome_message,
)
from app.services import MarketDataService
from core.errors import EntitlementError, InvalidInputError, UnknownMessageTypeError

logger = logging.getLogger(__name__)


class Session(Protocol):
    session_id: str

    async def send(self, message: dict[str, Any]) -> None:
        ...


class ClientSession:
    """One client WebSocket connection."""

    def __init__(self, websocket: WebSocket, session_id: str):
        self.websocket = websocket
        self.session_id = session_id

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_text(dumps(message))


def new_session_id() -> str:
    return f"guest-{secrets.token_hex(3)}"


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Messages sent to clients:
    - welcome: Session id assigned on connect
    - candles_update: Every bar update for subscribed pairs
    - indicator_update: Indicator values after each final bar (premium)
    - signal: Edge-triggered buy/sell signal
    - snapshot: Cached bars, sent on subscribe and on request
    - error: {"type": "error", "reason": ...}

    The session id comes from the ``sessionId`` query parameter, or a guest
    id is assigned; an ``auth`` message can replace it later.
    """
    service: MarketDataService = websocket.app.state.market_data
    session = ClientSession(websocket, websocket.query_params.get("sessionId") or new_session_id())

    await websocket.accept()
    subscriber = service.hub.register(session.session_id, session.send)

    try:
        await session.send(welcome_message(session.session_id))

        # Keep connection alive and handle incoming messages
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=service.settings.heartbeat_interval,
                )
                await handle_client_message(service, session, data)
            except asyncio.TimeoutError:
                # Send ping to keep connection alive
                await session.send(ping_message())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for {session.session_id}: {e}")
    finally:
        service.hub.unregister(session.session_id, subscriber)


async def handle_client_message(service: MarketDataService, session: Session, raw: str | bytes) -> None:
    """Handle incoming message from client."""
    try:
        message = parse_client_message(raw)
    except UnknownMessageTypeError as e:
        await session.send(error_message(e.code, e.message))
        return
    except InvalidInputError as e:
        await session.send(error_message(InvalidInputError.code, e.message))
        return

    if isinstance(message, PingMessage):
        await session.send(pong_message())

    elif isinstance(message, AuthMessage):
        service.hub.rebind(session.session_id, message.session_id)
        session.session_id = message.session_id
        premium = await service.entitlements.is_premium(message.session_id)
        await session.send(auth_ok_message(message.session_id, premium))

    elif isinstance(message, SubscribeMessage):
        pair = message.pair
        try:
            await service.hub.subscribe(session.session_id, pair, message.indicator)
        except EntitlementError as e:
            await session.send(error_message(e.code, e.message))
            return

        await session.send(subscribed_message(pair, message.indicator))
        bars = service.snapshot(pair)
        if bars:
            await session.send(snapshot_message(pair, bars))
        await service.start_feed(pair)

    elif isinstance(message, UnsubscribeMessage):
        service.hub.unsubscribe(session.session_id, message.pair, message.indicator)
        await session.send(unsubscribed_message(message.pair, message.indicator))

    elif isinstance(message, SnapshotRequest):
        await session.send(snapshot_message(message.pair, service.snapshot(message.pair, message.limit)))

"""API endpoints."""

from app.api.routes import router
from app.api.websocket import ClientSession, handle_client_message, websocket_endpoint

__all__ = [
    "router",
    "ClientSession",
    "handle_client_message",
    "websocket_endpoint",
]

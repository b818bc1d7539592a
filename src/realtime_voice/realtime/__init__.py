"""Realtime protocol: wire schemas and the WebSocket client."""

from .client import ConnectionState, RealtimeClient, ResponseSession
from .schemas import ServerEvent, ServerEventType

__all__ = [
    "ConnectionState",
    "RealtimeClient",
    "ResponseSession",
    "ServerEvent",
    "ServerEventType",
]

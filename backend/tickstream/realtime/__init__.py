"""Real-time fan-out: WebSocket broadcast server and reconnecting client."""

from .client import ClientConnector, ConnectionStatus, backoff_delay
from .server import BroadcastServer, ClientConnection, ConnectionState, create_stream_router

__all__ = [
    "BroadcastServer",
    "ClientConnection",
    "ConnectionState",
    "create_stream_router",
    "ClientConnector",
    "ConnectionStatus",
    "backoff_delay",
]

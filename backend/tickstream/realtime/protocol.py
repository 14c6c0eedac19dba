"""JSON message protocol shared by the broadcast server and client connector.

Client -> server:
    {"type": "subscribe", "symbols": ["AAPL", ...]}
    {"type": "unsubscribe", "symbols": ["AAPL", ...]}
    {"type": "ping"}

Server -> client:
    {"type": "connected", "message": "..."}
    {"type": "subscribed" | "unsubscribed", "symbols": [...]}   full resulting set
    {"type": "pong", "timestamp": <unix seconds>}
    {"type": "price_update", "data": {"symbol", "price", "timestamp"}}
    {"type": "error", "error": "..."}
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from ..market.models import PriceUpdate

SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
PING = "ping"

CONNECTED = "connected"
SUBSCRIBED = "subscribed"
UNSUBSCRIBED = "unsubscribed"
PONG = "pong"
PRICE_UPDATE = "price_update"
ERROR = "error"

CLIENT_TYPES = frozenset({SUBSCRIBE, UNSUBSCRIBE, PING})

INVALID_FORMAT = "Invalid message format"
UNKNOWN_TYPE = "Unknown message type"
INVALID_SYMBOLS = "Invalid symbols"


class ProtocolError(ValueError):
    """A client message that can't be acted on. ``str(exc)`` is the reply text."""


@dataclass(frozen=True, slots=True)
class ClientMessage:
    type: str
    symbols: tuple[str, ...] = field(default_factory=tuple)


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Decode and validate one inbound frame.

    Symbols are upper-cased and stripped. Raises ProtocolError.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(INVALID_FORMAT) from exc
    if not isinstance(payload, dict):
        raise ProtocolError(INVALID_FORMAT)

    msg_type = payload.get("type")
    if not isinstance(msg_type, str) or msg_type not in CLIENT_TYPES:
        raise ProtocolError(UNKNOWN_TYPE)
    if msg_type == PING:
        return ClientMessage(type=PING)

    symbols = payload.get("symbols")
    if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
        raise ProtocolError(INVALID_SYMBOLS)
    return ClientMessage(type=msg_type, symbols=tuple(s.strip().upper() for s in symbols))


def connected_message(text: str = "Connected to tickstream") -> dict[str, Any]:
    return {"type": CONNECTED, "message": text}


def subscription_message(msg_type: str, symbols: list[str]) -> dict[str, Any]:
    return {"type": msg_type, "symbols": symbols}


def pong_message(timestamp: float | None = None) -> dict[str, Any]:
    return {"type": PONG, "timestamp": time.time() if timestamp is None else timestamp}


def price_update_message(update: PriceUpdate) -> dict[str, Any]:
    return {"type": PRICE_UPDATE, "data": update.to_dict()}


def error_message(error: str) -> dict[str, Any]:
    return {"type": ERROR, "error": error}


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message)

"""WebSocket broadcast server: per-connection subscriptions over the update bus."""

from __future__ import annotations

import asyncio
import enum
import itertools
import logging
from collections.abc import Iterable
from threading import Lock
from typing import Any

from fastapi import APIRouter, WebSocket

from ..market.bus import UpdateBus
from ..market.models import PriceUpdate
from . import protocol

logger = logging.getLogger(__name__)

# RFC 6455 close codes
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001  # Server shutting down
CLOSE_POLICY_VIOLATION = 1008  # Client too slow to keep up
CLOSE_INTERNAL_ERROR = 1011  # Send to the client failed

DEFAULT_QUEUE_SIZE = 256  # Outbound frames buffered per connection


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ClientConnection:
    """One live WebSocket client and the symbols it asked for.

    The subscription set is only mutated by this connection's own messages;
    the bus callback (``deliver``) only reads it, under the lock.

    Outbound messages go through a bounded queue drained by a single sender
    task, so the socket has exactly one writer and a bus publish never waits
    on the network. ``send`` is safe to call from any thread. A failed send or
    a full queue closes the connection; ``wait_closed`` lets the owner react.
    """

    def __init__(
        self,
        websocket: WebSocket,
        conn_id: int,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.id = conn_id
        self.state = ConnectionState.CONNECTING
        self.close_code = CLOSE_NORMAL
        self._websocket = websocket
        self._symbols: set[str] = set()
        self._lock = Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._sender: asyncio.Task | None = None
        self._socket_open = False
        self._closed = asyncio.Event()

    async def open(self) -> None:
        """Accept the handshake and start the sender. CONNECTING -> OPEN."""
        await self._websocket.accept()
        self._socket_open = True
        self._loop = asyncio.get_running_loop()
        self.state = ConnectionState.OPEN
        self._sender = asyncio.create_task(self._send_loop(), name=f"ws-sender-{self.id}")
        self.send(protocol.connected_message())

    @property
    def symbols(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._symbols)

    @property
    def pending(self) -> int:
        """Frames queued but not yet written to the socket."""
        return self._queue.qsize()

    def subscribe(self, symbols: Iterable[str]) -> list[str]:
        """Add symbols. Returns the full resulting set, sorted."""
        with self._lock:
            self._symbols.update(symbols)
            return sorted(self._symbols)

    def unsubscribe(self, symbols: Iterable[str]) -> list[str]:
        """Remove symbols. Returns the full resulting set, sorted."""
        with self._lock:
            self._symbols.difference_update(symbols)
            return sorted(self._symbols)

    def is_subscribed(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._symbols

    def deliver(self, update: PriceUpdate) -> None:
        """UpdateBus handler: forward the update only if this client wants it."""
        if self.state is ConnectionState.OPEN and self.is_subscribed(update.symbol):
            self.send(protocol.price_update_message(update))

    def send(self, message: dict[str, Any]) -> None:
        """Queue a message for the sender task. Dropped unless OPEN."""
        if self.state is not ConnectionState.OPEN or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, protocol.encode(message))
        except RuntimeError:
            # Event loop already closed
            self._mark_closed()

    async def wait_closed(self) -> None:
        """Block until the connection reaches CLOSED, for whatever reason."""
        await self._closed.wait()

    async def close(self, code: int | None = None, close_transport: bool = True) -> None:
        """Transition to CLOSED, stop the sender and close the socket. Idempotent.

        ``close_transport=False`` when the peer already disconnected.
        """
        self._mark_closed()
        if code is not None:
            self.close_code = code

        if self._sender is not None:
            self._sender.cancel()
            await asyncio.gather(self._sender, return_exceptions=True)
            self._sender = None

        if self._socket_open:
            self._socket_open = False
            if not close_transport:
                return
            try:
                await self._websocket.close(code=self.close_code)
            except Exception as exc:
                # Transport already gone; nothing left to tell the client
                logger.debug("Connection %d close failed: %s", self.id, exc)

    def _enqueue(self, text: str) -> None:
        if self.state is not ConnectionState.OPEN:
            return
        try:
            self._queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning(
                "Connection %d fell %d frames behind, closing",
                self.id,
                self._queue.maxsize,
            )
            self._fail(CLOSE_POLICY_VIOLATION)

    def _fail(self, code: int) -> None:
        if self.state is ConnectionState.OPEN:
            self.close_code = code
        self._mark_closed()

    def _mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED
        with self._lock:
            self._symbols.clear()
        self._closed.set()

    async def _send_loop(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self._websocket.send_text(text)
            except Exception as exc:
                logger.info("Connection %d send failed, closing: %s", self.id, exc)
                self._fail(CLOSE_INTERNAL_ERROR)
                return


class BroadcastServer:
    """Owns every live connection and routes bus events to the ones that asked.

    Lifecycle per connection:
        CONNECTING --accept--> OPEN --disconnect/error/close()--> CLOSED

    On OPEN the connection gets an empty subscription set, a ``connected``
    message and a bus registration. On CLOSED it is deregistered from the bus
    and nothing more is sent to it. A failure on one connection never touches
    the others or the publisher.
    """

    def __init__(self, bus: UpdateBus, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._bus = bus
        self._queue_size = queue_size
        self._connections: dict[int, ClientConnection] = {}
        self._lock = Lock()
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def connections(self) -> list[ClientConnection]:
        with self._lock:
            return list(self._connections.values())

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one WebSocket until it disconnects, fails or the server closes.

        Reading runs alongside a wait on the connection's own close, so a
        failed or overrun send releases the connection even when the peer
        never sends another frame.
        """
        if self._closed:
            await websocket.close(code=CLOSE_GOING_AWAY)
            return

        conn = ClientConnection(websocket, next(self._ids), self._queue_size)
        await conn.open()
        with self._lock:
            self._connections[conn.id] = conn
        self._bus.subscribe(conn.deliver)
        client = websocket.client.host if websocket.client else "unknown"
        logger.info("WebSocket client %d connected: %s", conn.id, client)

        reader = asyncio.create_task(self._read_loop(websocket, conn), name=f"ws-reader-{conn.id}")
        closed = asyncio.create_task(conn.wait_closed(), name=f"ws-closed-{conn.id}")
        peer_gone = False
        try:
            done, _ = await asyncio.wait({reader, closed}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                exc = reader.exception()
                if exc is not None:
                    peer_gone = True
                    if conn.state is ConnectionState.OPEN:
                        logger.warning("WebSocket client %d failed: %s", conn.id, exc)
                else:
                    peer_gone = reader.result()
        finally:
            for task in (reader, closed):
                task.cancel()
            await asyncio.gather(reader, closed, return_exceptions=True)
            await self._release(conn, close_transport=not peer_gone)

    async def _read_loop(self, websocket: WebSocket, conn: ClientConnection) -> bool:
        """Apply inbound frames until the peer leaves. Returns True on disconnect."""
        while conn.state is ConnectionState.OPEN:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("WebSocket client %d disconnected", conn.id)
                return True
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes", b"")
            conn.send(self.handle_message(conn, raw))
        return False

    def handle_message(self, conn: ClientConnection, raw: str | bytes) -> dict[str, Any]:
        """Apply one inbound frame to a connection and build the reply."""
        try:
            msg = protocol.parse_client_message(raw)
        except protocol.ProtocolError as exc:
            logger.debug("Client %d sent bad message: %s", conn.id, exc)
            return protocol.error_message(str(exc))

        if msg.type == protocol.SUBSCRIBE:
            return protocol.subscription_message(protocol.SUBSCRIBED, conn.subscribe(msg.symbols))
        if msg.type == protocol.UNSUBSCRIBE:
            return protocol.subscription_message(
                protocol.UNSUBSCRIBED, conn.unsubscribe(msg.symbols)
            )
        return protocol.pong_message()

    async def close(self) -> None:
        """Close every live connection and stop bus delivery."""
        self._closed = True
        for conn in self.connections():
            await self._release(conn, code=CLOSE_GOING_AWAY)
        logger.info("Broadcast server closed")

    async def _release(
        self,
        conn: ClientConnection,
        code: int | None = None,
        close_transport: bool = True,
    ) -> None:
        self._bus.unsubscribe(conn.deliver)
        with self._lock:
            self._connections.pop(conn.id, None)
        await conn.close(code=code, close_transport=close_transport)


def create_stream_router(server: BroadcastServer) -> APIRouter:
    """Create the WebSocket router bound to a broadcast server.

    Factory so the server is injected rather than held in a module global.
    """
    router = APIRouter(tags=["streaming"])

    @router.websocket("/ws")
    async def stream_prices(websocket: WebSocket) -> None:
        await server.handle(websocket)

    return router

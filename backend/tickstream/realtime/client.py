"""Reconnecting WebSocket client for the broadcast server."""

from __future__ import annotations

import asyncio
import enum
import functools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ..market.models import PriceUpdate
from . import protocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_HEARTBEAT_INTERVAL = 30.0  # seconds between pings
DEFAULT_HEARTBEAT_TIMEOUT = 5.0  # seconds to wait for the pong
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0


class ConnectionStatus(enum.Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    EXHAUSTED = "exhausted"  # Reconnect attempts used up; terminal


PriceCallback = Callable[[PriceUpdate], None]
StatusCallback = Callable[[ConnectionStatus], None]
Connect = Callable[[str], Awaitable[Any]]


def backoff_delay(
    attempt: int,
    base: float = DEFAULT_BASE_DELAY,
    cap: float = DEFAULT_MAX_DELAY,
) -> float:
    """Exponential backoff: base * 2^attempt, capped. attempt counts from 0."""
    return min(base * 2**attempt, cap)


class ClientConnector:
    """Keeps one logical connection to the broadcast server alive.

    - Unexpected close -> retry after backoff_delay(attempt); after
      ``max_reconnect_attempts`` consecutive failures it stops and reports
      ConnectionStatus.EXHAUSTED.
    - Successful (re)connect -> attempt counter reset, CONNECTED reported and
      every symbol passed to subscribe() re-sent (the server forgets
      subscriptions when a connection drops).
    - Heartbeat: every ``heartbeat_interval`` a ping is sent; no pong within
      ``heartbeat_timeout`` closes the socket, which enters the reconnect path.

    Usage:
        client = ClientConnector("ws://localhost:3001/ws")
        client.on_price_update(print)
        await client.connect()
        await client.subscribe(["AAPL"])
        ...
        await client.disconnect()
    """

    def __init__(
        self,
        url: str,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        connect: Connect | None = None,
    ) -> None:
        self._url = url
        self._max_attempts = max_reconnect_attempts
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_timeout = heartbeat_timeout
        self._base_delay = base_delay
        self._max_delay = max_delay
        # Library keepalive off: liveness is the application-level ping/pong
        self._connect = connect or functools.partial(ws_connect, ping_interval=None)

        self._price_callbacks: dict[PriceCallback, None] = {}
        self._status_callbacks: dict[StatusCallback, None] = {}
        self._symbols: set[str] = set()

        self._ws: Any = None
        self._pong = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._first_attempt: asyncio.Future | None = None
        self._closing = False
        self._exhausted = False

    # --- Public API ---

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def symbols(self) -> frozenset[str]:
        return frozenset(self._symbols)

    async def connect(self) -> bool:
        """Start the connection loop. Returns whether the first attempt opened.

        A failed first attempt still falls through to the reconnect path.
        """
        if self._task is None or self._task.done():
            self._closing = False
            self._exhausted = False
            self._first_attempt = asyncio.get_running_loop().create_future()
            self._task = asyncio.create_task(self._run(), name="ws-connector")
        return await asyncio.shield(self._first_attempt)

    async def disconnect(self) -> None:
        """Close for good: no reconnects, callbacks cleared."""
        self._closing = True
        if self._ws is not None:
            await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self._resolve_first_attempt(False)
        self._price_callbacks.clear()
        self._status_callbacks.clear()

    async def wait_closed(self) -> None:
        """Wait until the connector gives up or is disconnected."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def subscribe(self, symbols: Iterable[str]) -> bool:
        """Follow symbols, now and after every reconnect. Returns whether it was sent."""
        symbols = [s.strip().upper() for s in symbols]
        self._symbols.update(symbols)
        return await self._send({"type": protocol.SUBSCRIBE, "symbols": symbols})

    async def unsubscribe(self, symbols: Iterable[str]) -> bool:
        symbols = [s.strip().upper() for s in symbols]
        self._symbols.difference_update(symbols)
        return await self._send({"type": protocol.UNSUBSCRIBE, "symbols": symbols})

    def on_price_update(self, callback: PriceCallback) -> None:
        self._price_callbacks.setdefault(callback, None)

    def off_price_update(self, callback: PriceCallback) -> None:
        self._price_callbacks.pop(callback, None)

    def on_connection_status(self, callback: StatusCallback) -> None:
        self._status_callbacks.setdefault(callback, None)

    def off_connection_status(self, callback: StatusCallback) -> None:
        self._status_callbacks.pop(callback, None)

    # --- Internals ---

    async def _run(self) -> None:
        attempt = 0
        while not self._closing:
            try:
                ws = await self._connect(self._url)
            except Exception as exc:
                logger.warning("Connect to %s failed: %s", self._url, exc)
                self._resolve_first_attempt(False)
            else:
                attempt = 0
                self._resolve_first_attempt(True)
                await self._session(ws)

            if self._closing:
                break
            if attempt >= self._max_attempts:
                logger.error("Max reconnection attempts reached (%d)", self._max_attempts)
                self._exhausted = True
                self._notify_status(ConnectionStatus.EXHAUSTED)
                return

            delay = backoff_delay(attempt, self._base_delay, self._max_delay)
            attempt += 1
            logger.info("Reconnecting in %.2fs (attempt %d/%d)", delay, attempt, self._max_attempts)
            await asyncio.sleep(delay)

    async def _session(self, ws: Any) -> None:
        """Serve one open socket until it closes."""
        self._ws = ws
        self._pong = asyncio.Event()
        logger.info("WebSocket connected: %s", self._url)
        self._notify_status(ConnectionStatus.CONNECTED)
        heartbeat = asyncio.create_task(self._heartbeat(ws), name="ws-heartbeat")
        try:
            if self._symbols:
                await self._send({"type": protocol.SUBSCRIBE, "symbols": sorted(self._symbols)})
            async for raw in ws:
                self._handle_message(raw)
        except ConnectionClosed as exc:
            logger.info("WebSocket closed: %s", exc)
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)
            self._ws = None
            logger.info("WebSocket disconnected")
            self._notify_status(ConnectionStatus.DISCONNECTED)

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            self._pong.clear()
            await ws.send(protocol.encode({"type": protocol.PING}))
            try:
                await asyncio.wait_for(self._pong.wait(), self._heartbeat_timeout)
            except asyncio.TimeoutError:
                logger.error("Heartbeat timeout - no pong received, closing connection")
                await ws.close()
                return

    async def _send(self, message: dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(protocol.encode(message))
        except ConnectionClosed as exc:
            logger.warning("Send failed, connection closed: %s", exc)
            return False
        return True

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
            msg_type = message.get("type")
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Unparseable server message: %s", exc)
            return

        if msg_type == protocol.PRICE_UPDATE:
            self._dispatch_price(message.get("data"))
        elif msg_type == protocol.PONG:
            self._pong.set()
        elif msg_type == protocol.CONNECTED:
            logger.info("Connection confirmed: %s", message.get("message"))
        elif msg_type in (protocol.SUBSCRIBED, protocol.UNSUBSCRIBED):
            logger.debug("%s: %s", msg_type, message.get("symbols"))
        elif msg_type == protocol.ERROR:
            logger.warning("Server error message: %s", message.get("error"))
        else:
            logger.debug("Ignoring message type %r", msg_type)

    def _dispatch_price(self, data: Any) -> None:
        try:
            update = PriceUpdate(
                symbol=data["symbol"],
                price=float(data["price"]),
                timestamp=float(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed price update %r: %s", data, exc)
            return
        for callback in list(self._price_callbacks):
            try:
                callback(update)
            except Exception:
                logger.exception("Price callback %r failed", callback)

    def _notify_status(self, status: ConnectionStatus) -> None:
        for callback in list(self._status_callbacks):
            try:
                callback(status)
            except Exception:
                logger.exception("Status callback %r failed", callback)

    def _resolve_first_attempt(self, opened: bool) -> None:
        if self._first_attempt is not None and not self._first_attempt.done():
            self._first_attempt.set_result(opened)

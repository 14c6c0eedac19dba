"""Fake transports for the broadcast server and client connector."""

import asyncio
import json

from websockets.exceptions import ConnectionClosed


class FakeWebSocket:
    """Server-side socket with the subset of the Starlette WebSocket API we use."""

    def __init__(self) -> None:
        self.client = None
        self.accepted = False
        self.close_code = None
        self.fail_sends = False
        self.stall_sends = False  # send_text hangs, like a peer that stopped reading
        self.sent: list[dict] = []
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._outbox: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, text: str) -> None:
        if self.stall_sends:
            await asyncio.Event().wait()
        if self.fail_sends:
            raise RuntimeError("socket broken")
        message = json.loads(text)
        self.sent.append(message)
        self._outbox.put_nowait(message)

    async def receive(self) -> dict:
        return await self._inbox.get()

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    # --- test helpers ---

    def push(self, message) -> None:
        text = message if isinstance(message, str) else json.dumps(message)
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def next_message(self, timeout: float = 1.0) -> dict:
        return await asyncio.wait_for(self._outbox.get(), timeout)

    async def assert_silent(self, wait: float = 0.05) -> None:
        await asyncio.sleep(wait)
        assert self._outbox.empty(), f"unexpected message: {self._outbox.get_nowait()}"


class FakeServerSocket:
    """Client-side socket with the subset of the websockets API we use."""

    def __init__(self, auto_pong: bool = True) -> None:
        self.auto_pong = auto_pong
        self.sent: list[dict] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosed(None, None)
        message = json.loads(text)
        self.sent.append(message)
        if message["type"] == "ping" and self.auto_pong:
            self.feed({"type": "pong", "timestamp": 1.0})

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(None)

    def feed(self, message) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def sent_types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeDialer:
    """Connect factory that hands out scripted sockets or failures."""

    def __init__(self, *outcomes) -> None:
        self._outcomes = list(outcomes)
        self.calls = 0
        self.sockets: list[FakeServerSocket] = []

    async def __call__(self, url: str):
        self.calls += 1
        if not self._outcomes:
            raise OSError("connection refused")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        self.sockets.append(outcome)
        return outcome


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)

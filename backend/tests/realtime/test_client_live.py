"""ClientConnector against the real app served by uvicorn on a free port."""

import asyncio
import socket

import pytest
import pytest_asyncio
import uvicorn

from fakes import wait_until
from tickstream.config import Settings
from tickstream.main import create_app
from tickstream.realtime.client import ClientConnector, ConnectionStatus


@pytest_asyncio.fixture
async def live_app():
    """Yield (app, ws_url) with the app listening on 127.0.0.1."""
    app = create_app(Settings(tick_min_interval=0.01, tick_max_interval=0.02))
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]

    server = uvicorn.Server(uvicorn.Config(app, lifespan="on", log_config=None))
    task = asyncio.create_task(server.serve(sockets=[sock]))
    await wait_until(lambda: server.started or task.done(), timeout=5.0)
    assert server.started, "uvicorn did not start"

    yield app, f"ws://127.0.0.1:{port}/ws"

    server.should_exit = True
    await asyncio.wait_for(task, 5.0)
    sock.close()


@pytest.mark.asyncio
class TestClientConnectorLive:
    """The default websockets transport end to end."""

    async def test_streams_subscribed_updates(self, live_app):
        _, url = live_app
        client = ClientConnector(url, heartbeat_interval=0.05, heartbeat_timeout=1.0)
        received = []
        client.on_price_update(received.append)

        assert await client.connect() is True
        assert await client.subscribe(["aapl"]) is True
        await wait_until(lambda: len(received) >= 3, timeout=5.0)

        assert {update.symbol for update in received} == {"AAPL"}
        # Several heartbeat rounds answered by the server's pong
        await asyncio.sleep(0.3)
        assert client.is_connected

        await client.disconnect()
        assert not client.is_connected

    async def test_server_shutdown_leads_to_exhaustion(self, live_app):
        """A server close is noticed; rejected reconnects end in EXHAUSTED."""
        app, url = live_app
        client = ClientConnector(url, max_reconnect_attempts=2, base_delay=0.01, max_delay=0.05)
        statuses = []
        client.on_connection_status(statuses.append)
        assert await client.connect() is True

        await app.state.broadcaster.close()
        await asyncio.wait_for(client.wait_closed(), 5.0)

        assert statuses == [
            ConnectionStatus.CONNECTED,
            ConnectionStatus.DISCONNECTED,
            ConnectionStatus.EXHAUSTED,
        ]
        assert client.exhausted
        assert not client.is_connected

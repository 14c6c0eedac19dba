"""FastAPI application wiring and process entry point.

Run locally:
    tickstream                     (console script)
    uvicorn tickstream.main:create_app --factory --port 3001
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import logging_config
from .config import Settings
from .market import HistoryCache, PriceEngine, TickerStore, UpdateBus
from .realtime import BroadcastServer, create_stream_router
from .routes import create_api_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app. Components are created here and shared via ``app.state``.

    The price engine runs for the lifetime of the app; on shutdown every live
    WebSocket is closed before the engine stops.
    """
    settings = settings or Settings.from_env()

    store = TickerStore()
    bus = UpdateBus()
    engine = PriceEngine(
        store,
        bus,
        min_interval=settings.tick_min_interval,
        max_interval=settings.tick_max_interval,
    )
    history = HistoryCache(store, ttl=settings.history_ttl)
    broadcaster = BroadcastServer(bus)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await engine.start()
        try:
            yield
        finally:
            await broadcaster.close()
            await engine.stop()

    app = FastAPI(title="tickstream", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(create_api_router(store, history))
    app.include_router(create_stream_router(broadcaster))

    app.state.settings = settings
    app.state.store = store
    app.state.bus = bus
    app.state.engine = engine
    app.state.history = history
    app.state.broadcaster = broadcaster
    return app


def run() -> None:
    settings = Settings.from_env()
    logging_config.setup(settings.log_level)
    logger.info("Starting tickstream on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()

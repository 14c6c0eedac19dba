"""REST endpoints for tickers, history and cache observability."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .market.cache import HistoryCache
from .market.history import DEFAULT_HISTORY_DAYS
from .market.store import TickerStore

logger = logging.getLogger(__name__)

MAX_HISTORY_DAYS = 3650

NOT_FOUND = {"error": "Ticker not found"}


def parse_days(raw: str | None) -> int:
    """Query-string day count. Invalid or < 1 falls back to the default; large values clamp."""
    try:
        days = int(raw) if raw is not None else DEFAULT_HISTORY_DAYS
    except ValueError:
        return DEFAULT_HISTORY_DAYS
    if days < 1:
        return DEFAULT_HISTORY_DAYS
    return min(days, MAX_HISTORY_DAYS)


def create_api_router(store: TickerStore, history: HistoryCache) -> APIRouter:
    """Create the REST router bound to a ticker store and history cache."""
    router = APIRouter()

    @router.get("/health")
    async def health() -> dict:
        return {"status": "ok", "timestamp": time.time(), "ticks": store.version}

    @router.get("/api/tickers")
    async def list_tickers() -> list[dict]:
        return [ticker.to_dict() for ticker in store.list()]

    @router.get("/api/tickers/{symbol}")
    async def get_ticker(symbol: str):
        ticker = store.get(symbol)
        if ticker is None:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return ticker.to_dict()

    @router.get("/api/history/{symbol}")
    async def get_history(symbol: str, days: str | None = None):
        if symbol not in store:
            return JSONResponse(status_code=404, content=NOT_FOUND)
        series = history.get(symbol, parse_days(days))
        return [point.to_dict() for point in series]

    @router.get("/api/cache/stats")
    async def cache_stats() -> dict:
        return history.stats().to_dict()

    @router.delete("/api/cache")
    async def clear_cache(symbol: str | None = None, days: int | None = None) -> dict:
        removed = history.invalidate(symbol, days)
        return {"removed": removed}

    return router

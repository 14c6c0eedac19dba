"""Market data subsystem for tickstream.

Public API:
    Ticker, PriceUpdate, HistoricalPoint - Immutable value types
    TickerStore           - Thread-safe current-state table
    UpdateBus             - In-process publish/subscribe for PriceUpdate
    PriceEngine           - Random-timer price simulation
    HistoryCache          - TTL cache of generated historical series
    generate_historical_data - Synthetic OHLCV random walk
"""

from .bus import UpdateBus
from .cache import CacheStats, HistoryCache
from .history import generate_historical_data
from .models import HistoricalPoint, PriceUpdate, Ticker
from .simulator import PriceEngine, perturb
from .store import TickerStore

__all__ = [
    "Ticker",
    "PriceUpdate",
    "HistoricalPoint",
    "TickerStore",
    "UpdateBus",
    "PriceEngine",
    "perturb",
    "HistoryCache",
    "CacheStats",
    "generate_historical_data",
]

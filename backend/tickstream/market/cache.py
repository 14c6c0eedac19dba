"""TTL cache of generated historical series."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import NamedTuple

from .history import generate_historical_data
from .models import HistoricalPoint
from .store import TickerStore, normalize_symbol

logger = logging.getLogger(__name__)

DEFAULT_TTL = 15 * 60  # seconds

SeriesGenerator = Callable[[TickerStore, str, int], list[HistoricalPoint]]


class CacheKey(NamedTuple):
    symbol: str
    days: int


@dataclass(frozen=True, slots=True)
class CacheEntry:
    series: tuple[HistoricalPoint, ...]
    created_at: float


@dataclass(frozen=True, slots=True)
class CacheStats:
    size: int
    keys: list[CacheKey]

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "keys": [f"{key.symbol}:{key.days}" for key in self.keys],
        }


class HistoryCache:
    """Memoizes historical series per exact (symbol, days) key for ``ttl`` seconds.

    An entry is valid while ``now - created_at <= ttl``; an expired entry is
    treated exactly like a missing one and regenerated from scratch. Every
    miss also drops whatever else has expired, so memory is bounded by the
    keys requested within one TTL window.

    Concurrent misses on one key are coalesced: each key has its own lock held
    across check-generate-store, so the first caller generates and the others
    get its result. Different keys never block each other's generation.
    """

    def __init__(
        self,
        store: TickerStore,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        generator: SeriesGenerator = generate_historical_data,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._generator = generator
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._key_locks: dict[CacheKey, Lock] = {}
        self._lock = Lock()  # Guards _entries and _key_locks

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, symbol: str, days: int) -> list[HistoricalPoint]:
        """Cached series for (symbol, days), generating it on a miss.

        Unknown symbols yield [] and are not cached.
        """
        key = CacheKey(normalize_symbol(symbol), days)
        with self._lock:
            key_lock = self._key_locks.setdefault(key, Lock())

        with key_lock:
            entry = self._lookup(key)
            if entry is not None:
                return list(entry.series)

            # Sweep on every miss so keys nobody asks for again still age out
            purged = self.purge_expired()
            if purged:
                logger.debug("History cache purged %d expired entries", purged)

            series = self._generator(self._store, key.symbol, key.days)
            if series:
                with self._lock:
                    # Re-insert so stats() reflects (re)generation order
                    self._entries.pop(key, None)
                    self._entries[key] = CacheEntry(series=tuple(series), created_at=self._clock())
                logger.debug("History cache miss: %s/%d generated", key.symbol, key.days)
                return list(series)

        # Nothing to cache for an unknown symbol; don't keep its lock around
        with self._lock:
            if key not in self._entries:
                self._discard_key_lock(key)
        return []

    def invalidate(self, symbol: str | None = None, days: int | None = None) -> int:
        """Drop matching entries. Returns how many were removed.

        No arguments clears everything; ``symbol`` alone clears every day
        count for it; ``symbol`` and ``days`` clear exactly one key.
        """
        wanted = normalize_symbol(symbol) if symbol is not None else None
        with self._lock:
            doomed = [
                key
                for key in self._entries
                if (wanted is None or key.symbol == wanted) and (days is None or key.days == days)
            ]
            for key in doomed:
                del self._entries[key]
                self._discard_key_lock(key)
        if doomed:
            logger.info("History cache invalidated %d entries", len(doomed))
        return len(doomed)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            doomed = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for key in doomed:
                del self._entries[key]
                self._discard_key_lock(key)
        return len(doomed)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._entries), keys=list(self._entries))

    # --- Internals ---

    def _lookup(self, key: CacheKey) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at <= self._ttl

    def _discard_key_lock(self, key: CacheKey) -> None:
        """Forget a key's lock unless a generation is holding it. Caller holds _lock."""
        key_lock = self._key_locks.get(key)
        if key_lock is not None and not key_lock.locked():
            del self._key_locks[key]

"""Thread-safe in-memory ticker store."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from threading import Lock

from .models import Ticker
from .seed_tickers import SEED_TICKERS


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


class TickerStore:
    """Authoritative current state for every known instrument.

    Writer: PriceEngine (the only one).
    Readers: REST routes, HistoryCache, tests.

    Records are frozen dataclasses and are swapped whole under the lock, so
    readers get a consistent snapshot they cannot use to corrupt the store.
    The symbol set is fixed at construction.
    """

    def __init__(self, instruments: Iterable[tuple[str, str, float, int]] = SEED_TICKERS) -> None:
        self._tickers: dict[str, Ticker] = {}
        self._lock = Lock()
        self._version: int = 0  # Bumped on every mutation; reported by /health

        now = time.time()
        for symbol, name, price, volume in instruments:
            self._tickers[symbol] = Ticker(
                symbol=symbol,
                name=name,
                price=price,
                volume=volume,
                timestamp=now,
            )

    def list(self) -> list[Ticker]:
        """Snapshot of all tickers, in seed order."""
        with self._lock:
            return list(self._tickers.values())

    def get(self, symbol: str) -> Ticker | None:
        """Current ticker for a symbol (case-insensitive), or None if unknown."""
        with self._lock:
            return self._tickers.get(normalize_symbol(symbol))

    def get_price(self, symbol: str) -> float | None:
        """Convenience: get just the price float, or None."""
        ticker = self.get(symbol)
        return ticker.price if ticker else None

    def symbols(self) -> list[str]:
        with self._lock:
            return list(self._tickers)

    def update(self, symbol: str, mutate: Callable[[Ticker], Ticker]) -> Ticker | None:
        """Replace a ticker with ``mutate(current)`` atomically.

        Returns the new record, or None if the symbol is unknown (no add).
        """
        with self._lock:
            current = self._tickers.get(symbol)
            if current is None:
                return None
            updated = mutate(current)
            self._tickers[symbol] = updated
            self._version += 1
            return updated

    @property
    def version(self) -> int:
        """Current version counter."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickers)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return normalize_symbol(symbol) in self._tickers

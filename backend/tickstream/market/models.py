"""Data models for market data."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Ticker:
    """Current state of a single instrument.

    Frozen: the TickerStore replaces the whole record on every mutation, so a
    reader can never see a price that disagrees with its change fields.
    """

    symbol: str
    name: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    timestamp: float = field(default_factory=time.time)  # Unix seconds

    def to_dict(self) -> dict:
        """Serialize for JSON transmission."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change": self.change,
            "change_percent": self.change_percent,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    """Immutable event describing one price change."""

    symbol: str
    price: float
    timestamp: float = field(default_factory=time.time)  # Unix seconds

    @classmethod
    def from_ticker(cls, ticker: Ticker) -> PriceUpdate:
        return cls(symbol=ticker.symbol, price=ticker.price, timestamp=ticker.timestamp)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class HistoricalPoint:
    """One synthetic daily OHLCV record."""

    timestamp: float
    open: float
    high: float
    low: float
    close: float
    volume: int

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

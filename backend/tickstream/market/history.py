"""Synthetic daily OHLCV series ending near a ticker's current price."""

from __future__ import annotations

import logging
import time

import numpy as np

from .models import HistoricalPoint
from .store import TickerStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_HISTORY_DAYS = 30

# The walk starts this fraction below the current price
BASELINE_FACTOR = 0.9
MAX_DAILY_CHANGE = 0.025
MAX_WICK = 0.02
VOLUME_RANGE = (5_000_000, 15_000_000)


def generate_historical_data(
    store: TickerStore,
    symbol: str,
    days: int = DEFAULT_HISTORY_DAYS,
    rng: np.random.Generator | None = None,
    now: float | None = None,
) -> list[HistoricalPoint]:
    """Random-walk OHLCV series of ``days + 1`` points, oldest first.

    Math (per day i, oldest to newest):
        open_i  = close_{i-1}          (open_0 = 0.9 * current price)
        close_i = open_i * (1 + U[-0.025, 0.025])
        high_i  = max(open_i, close_i) * (1 + U[0, 0.02))
        low_i   = min(open_i, close_i) * (1 - U[0, 0.02))

    Prices are rounded to cents only on output. Rounding is monotone, so
    high >= max(open, close) and low <= min(open, close) survive it.

    Returns [] for an unknown symbol or a negative day count.
    """
    current_price = store.get_price(symbol)
    if current_price is None or days < 0:
        return []

    rng = rng or np.random.default_rng()
    now = time.time() if now is None else now
    n = days + 1
    baseline = current_price * BASELINE_FACTOR

    daily_change = rng.uniform(-MAX_DAILY_CHANGE, MAX_DAILY_CHANGE, n)
    closes = baseline * np.cumprod(1 + daily_change)
    opens = np.concatenate(([baseline], closes[:-1]))
    highs = np.maximum(opens, closes) * (1 + rng.uniform(0, MAX_WICK, n))
    lows = np.minimum(opens, closes) * (1 - rng.uniform(0, MAX_WICK, n))
    volumes = rng.integers(*VOLUME_RANGE, size=n)

    points = [
        HistoricalPoint(
            timestamp=now - (days - i) * SECONDS_PER_DAY,
            open=round(float(opens[i]), 2),
            high=round(float(highs[i]), 2),
            low=round(float(lows[i]), 2),
            close=round(float(closes[i]), 2),
            volume=int(volumes[i]),
        )
        for i in range(n)
    ]
    logger.debug("Generated %d-day history for %s", days, symbol)
    return points

"""Random-walk price engine driving the ticker store."""

from __future__ import annotations

import asyncio
import logging
import random
import time

from .bus import UpdateBus
from .models import PriceUpdate, Ticker
from .seed_tickers import (
    CRYPTO_SYMBOL,
    CRYPTO_VOLATILITY,
    DEFAULT_VOLATILITY,
    VOLUME_STEP_MAX,
)
from .store import TickerStore

logger = logging.getLogger(__name__)

# Smallest representable price after rounding to cents
MIN_PRICE = 0.01


def volatility_for(symbol: str) -> float:
    return CRYPTO_VOLATILITY if symbol == CRYPTO_SYMBOL else DEFAULT_VOLATILITY


def perturb(
    ticker: Ticker,
    rng: random.Random | None = None,
    now: float | None = None,
) -> Ticker:
    """Return the ticker after one random price move.

    Math:
        delta      ~ U[-v, +v]       (v = 0.002 for crypto, 0.001 otherwise)
        new_price  = round(price * (1 + delta), 2)
        change     = round(new_price - price, 2)
        change_pct = round(100 * change / price, 2)

    Volume grows by a uniform integer step in [0, VOLUME_STEP_MAX).
    """
    rng = rng or random
    old_price = ticker.price
    vol = volatility_for(ticker.symbol)

    delta = rng.uniform(-vol, vol)
    new_price = max(round(old_price * (1 + delta), 2), MIN_PRICE)
    change = round(new_price - old_price, 2)

    return Ticker(
        symbol=ticker.symbol,
        name=ticker.name,
        price=new_price,
        change=change,
        change_percent=round(100 * change / old_price, 2),
        volume=ticker.volume + rng.randrange(VOLUME_STEP_MAX),
        timestamp=time.time() if now is None else now,
    )


class PriceEngine:
    """Mutates the TickerStore on independent random timers and publishes updates.

    One asyncio task per symbol. Each task sleeps a freshly drawn delay in
    [min_interval, max_interval), applies one perturbation and publishes the
    resulting PriceUpdate before sleeping again. Mutation and publish happen
    without an await in between, so every subscriber sees updates for a
    symbol in the order they were committed.

    Lifecycle:
        engine = PriceEngine(store, bus)
        await engine.start()
        # ... app runs ...
        await engine.stop()

    Calling start() twice without stop() runs two overlapping schedules.
    """

    def __init__(
        self,
        store: TickerStore,
        bus: UpdateBus,
        min_interval: float = 1.0,
        max_interval: float = 3.0,
        rng: random.Random | None = None,
    ) -> None:
        if min_interval <= 0 or max_interval < min_interval:
            raise ValueError(f"Invalid tick interval range [{min_interval}, {max_interval})")
        self._store = store
        self._bus = bus
        self._min_interval = min_interval
        self._max_interval = max_interval
        self._rng = rng or random.Random()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        for symbol in self._store.symbols():
            task = asyncio.create_task(self._run_loop(symbol), name=f"price-engine-{symbol}")
            self._tasks.append(task)
        logger.info("Price engine started with %d symbols", len(self._store))

    async def stop(self) -> None:
        """Cancel every schedule. Safe to call when already stopped."""
        if not self._tasks:
            return
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Price engine stopped")

    def tick(self, symbol: str) -> PriceUpdate | None:
        """Apply one perturbation to a symbol and publish it.

        Returns the published update, or None for an unknown symbol.
        """
        ticker = self._store.update(symbol, lambda current: perturb(current, self._rng))
        if ticker is None:
            return None
        update = PriceUpdate.from_ticker(ticker)
        self._bus.publish(update)
        logger.debug("%s -> %.2f (%+.2f%%)", symbol, ticker.price, ticker.change_percent)
        return update

    def next_delay(self) -> float:
        return self._rng.uniform(self._min_interval, self._max_interval)

    async def _run_loop(self, symbol: str) -> None:
        """Core loop for one symbol: sleep a random delay, tick, repeat."""
        while True:
            await asyncio.sleep(self.next_delay())
            try:
                self.tick(symbol)
            except Exception:
                logger.exception("Price tick failed for %s", symbol)

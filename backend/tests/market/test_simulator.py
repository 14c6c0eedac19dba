"""Tests for the price perturbation and PriceEngine.tick."""

import random

import pytest

from tickstream.market.models import Ticker
from tickstream.market.seed_tickers import VOLUME_STEP_MAX
from tickstream.market.simulator import PriceEngine, perturb, volatility_for


def _ticker(symbol: str = "AAPL", price: float = 185.50, volume: int = 1000) -> Ticker:
    return Ticker(symbol=symbol, name=symbol, price=price, volume=volume, timestamp=0.0)


class TestPerturb:
    """Unit tests for a single random price move."""

    def test_prices_are_positive(self):
        """Prices never reach zero, however many moves."""
        rng = random.Random(7)
        ticker = _ticker(price=0.05)
        for _ in range(10_000):
            ticker = perturb(ticker, rng)
            assert ticker.price > 0

    def test_change_percent_matches_change(self):
        """change_percent is exactly round(100 * change / old_price, 2)."""
        rng = random.Random(1)
        ticker = _ticker()
        for _ in range(1000):
            old_price = ticker.price
            ticker = perturb(ticker, rng)
            assert ticker.change == round(ticker.price - old_price, 2)
            assert ticker.change_percent == round(100 * ticker.change / old_price, 2)

    def test_move_bounded_by_volatility(self):
        rng = random.Random(2)
        for symbol in ("AAPL", "BTC-USD"):
            ticker = _ticker(symbol=symbol, price=1000.0)
            for _ in range(1000):
                moved = perturb(ticker, rng)
                assert abs(moved.price - 1000.0) <= 1000.0 * volatility_for(symbol) + 0.01

    def test_crypto_is_more_volatile(self):
        assert volatility_for("BTC-USD") == 0.002
        assert volatility_for("AAPL") == 0.001

    def test_volume_never_decreases(self):
        rng = random.Random(3)
        ticker = _ticker(volume=1000)
        for _ in range(1000):
            moved = perturb(ticker, rng)
            assert ticker.volume <= moved.volume < ticker.volume + VOLUME_STEP_MAX
            ticker = moved

    def test_prices_rounded_to_two_decimals(self):
        rng = random.Random(4)
        moved = perturb(_ticker(price=123.456), rng)
        assert moved.price == round(moved.price, 2)

    def test_keeps_identity_fields(self):
        moved = perturb(Ticker(symbol="MSFT", name="Microsoft Corp.", price=378.90), now=99.0)
        assert moved.symbol == "MSFT"
        assert moved.name == "Microsoft Corp."
        assert moved.timestamp == 99.0


class TestPriceEngineTick:
    """Synchronous tests for one engine tick."""

    def test_tick_mutates_store_and_publishes(self, store, bus):
        received = []
        bus.subscribe(received.append)
        engine = PriceEngine(store, bus, rng=random.Random(5))

        update = engine.tick("AAPL")

        assert received == [update]
        ticker = store.get("AAPL")
        assert update.price == ticker.price
        assert update.timestamp == ticker.timestamp
        assert store.version == 1

    def test_tick_unknown_symbol(self, store, bus):
        received = []
        bus.subscribe(received.append)
        engine = PriceEngine(store, bus)

        assert engine.tick("NOPE") is None
        assert received == []

    def test_subscriber_sees_committed_state(self, store, bus):
        """At delivery time the store already holds the published price."""
        engine = PriceEngine(store, bus, rng=random.Random(6))
        mismatches = []

        def check(update):
            if store.get_price(update.symbol) != update.price:
                mismatches.append(update)

        bus.subscribe(check)
        for _ in range(200):
            engine.tick("TSLA")
        assert mismatches == []

    def test_next_delay_in_range(self, store, bus):
        engine = PriceEngine(store, bus, min_interval=1.0, max_interval=3.0, rng=random.Random(8))
        delays = [engine.next_delay() for _ in range(1000)]
        assert all(1.0 <= d <= 3.0 for d in delays)
        # Re-drawn every cycle, not a fixed period
        assert len(set(delays)) > 1

    @pytest.mark.parametrize("low,high", [(0.0, 1.0), (2.0, 1.0), (-1.0, 1.0)])
    def test_invalid_interval_range(self, store, bus, low, high):
        with pytest.raises(ValueError):
            PriceEngine(store, bus, min_interval=low, max_interval=high)

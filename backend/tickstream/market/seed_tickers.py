"""Seed instruments and per-symbol parameters for the price engine."""

# The one cryptocurrency in the instrument list; it moves twice as fast.
CRYPTO_SYMBOL = "BTC-USD"

# (symbol, display name, starting price, starting volume)
SEED_TICKERS: list[tuple[str, str, float, int]] = [
    ("AAPL", "Apple Inc.", 185.50, 52_000_000),
    ("TSLA", "Tesla Inc.", 242.30, 98_000_000),
    (CRYPTO_SYMBOL, "Bitcoin USD", 42150.75, 28_000_000),
    ("GOOGL", "Alphabet Inc.", 138.25, 24_000_000),
    ("MSFT", "Microsoft Corp.", 378.90, 19_000_000),
]

# Max relative move per tick, drawn uniformly from [-v, +v]
DEFAULT_VOLATILITY = 0.001
CRYPTO_VOLATILITY = 0.002

# Volume grows by a uniform integer in [0, VOLUME_STEP_MAX) each tick
VOLUME_STEP_MAX = 100_000

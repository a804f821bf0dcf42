"""
Synthetic candle generation for tests, demos and smoke runs.

Prices follow a geometric random walk with a pattern-specific drift and
volatility:
- random:    no drift
- uptrend:   positive drift
- downtrend: negative drift
- ranging:   mean-reverting around the start price
- volatile:  no drift, 3x volatility

Generation is seeded, so the same arguments always produce the same candles.
"""

from typing import List, Optional
import logging

import numpy as np

from .exceptions import ConfigurationError
from .models import Candle

log = logging.getLogger(__name__)

PATTERNS = ('random', 'uptrend', 'downtrend', 'ranging', 'volatile')

# 2024-01-01T00:00:00Z
DEFAULT_START_TIME = 1_704_067_200_000


def generate_candles(
    count: int,
    start_price: float = 100.0,
    interval_ms: int = 60_000,
    volatility: float = 0.002,
    pattern: str = 'random',
    seed: Optional[int] = None,
    start_time: int = DEFAULT_START_TIME,
    base_volume: float = 1000.0
) -> List[Candle]:
    """
    Generate OHLCV candles.

    Args:
        count: Number of candles
        start_price: First open price
        interval_ms: Candle spacing in ms
        volatility: Per-candle return standard deviation
        pattern: One of PATTERNS
        seed: RNG seed (None = nondeterministic)
        start_time: Timestamp of the first candle (ms)
        base_volume: Mean volume per candle

    Returns:
        List of candles with ascending, evenly spaced timestamps
    """
    if pattern not in PATTERNS:
        raise ConfigurationError(f"Unknown pattern '{pattern}' (choose from {', '.join(PATTERNS)})")
    if count < 0:
        raise ConfigurationError("count must be >= 0")

    rng = np.random.RandomState(seed)

    drift = {'uptrend': volatility * 0.3, 'downtrend': -volatility * 0.3}.get(pattern, 0.0)
    sigma = volatility * 3 if pattern == 'volatile' else volatility

    candles = []
    price = start_price
    for i in range(count):
        open_price = price
        ret = drift + sigma * rng.standard_normal()
        if pattern == 'ranging':
            # Pull back towards the start price
            ret += -0.05 * np.log(open_price / start_price)
        close = open_price * float(np.exp(ret))

        wick = abs(sigma * rng.standard_normal()) * 0.5
        high = max(open_price, close) * (1 + wick)
        low = min(open_price, close) * (1 - wick)
        volume = base_volume * float(rng.lognormal(mean=0.0, sigma=0.5))

        candles.append(Candle(
            timestamp=start_time + i * interval_ms,
            open=round(open_price, 6),
            high=round(high, 6),
            low=round(low, 6),
            close=round(close, 6),
            volume=round(volume, 2)
        ))
        price = close

    log.debug(f"Generated {count} '{pattern}' candles (seed={seed})")
    return candles


def generate_flat_candles(
    count: int,
    price: float = 100.0,
    interval_ms: int = 60_000,
    start_time: int = DEFAULT_START_TIME,
    volume: float = 1000.0
) -> List[Candle]:
    """Candles with every OHLC value equal to `price`."""
    return [
        Candle(
            timestamp=start_time + i * interval_ms,
            open=price, high=price, low=price, close=price, volume=volume
        )
        for i in range(count)
    ]

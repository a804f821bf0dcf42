"""
IndicatorCache - Full-series indicator memoization for one dataset

During a backtest a strategy asks for the same indicator on candles[0..i]
for every i. Computing it from scratch each time is O(n^2) per run. The
cache computes the series once over the whole CandleSeries and serves
every narrower window as a prefix view, which is O(1).

A cache is bound to exactly one CandleSeries. The backtest engine refuses
to run with a cache bound to a different series, so a stale cache can
never leak values from another dataset. There is no module-level cache:
whoever runs a batch (engine, optimizer worker, leaderboard) owns one.

Example:
    series = engine.prepare_series(config, candles)
    with IndicatorCache(series) as cache:
        for params in grid:
            engine.run_on_series(config.with_params(params), series, cache=cache)
    # cache cleared on exit
"""

from typing import Any, Callable, Dict
import logging

import numpy as np

from ..exceptions import ConfigurationError

log = logging.getLogger(__name__)


def _freeze(value: Any) -> Any:
    """Mark cached arrays read-only so strategies cannot corrupt them."""
    if isinstance(value, np.ndarray):
        value.setflags(write=False)
    elif isinstance(value, tuple):
        for item in value:
            _freeze(item)
    return value


class IndicatorCache:
    """
    Per-dataset store of full indicator series.

    Keys encode the indicator name and every parameter that affects the
    series, e.g. 'rsi:14' or 'macd:12:26:9'.
    """

    def __init__(self, series):
        self.series = series
        self._store: Dict[str, Any] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __enter__(self) -> 'IndicatorCache':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()

    def get_or_compute(self, key: str, compute: Callable[[Any], Any]) -> Any:
        """
        Return the cached full series for `key`, computing it on first use.

        Args:
            key: Cache key ('<indicator>:<params>')
            compute: Function taking the bound CandleSeries and returning the series
        """
        try:
            value = self._store[key]
        except KeyError:
            self.misses += 1
            value = _freeze(compute(self.series))
            self._store[key] = value
            return value
        self.hits += 1
        return value

    def is_bound_to(self, series) -> bool:
        return series is self.series

    def ensure_bound_to(self, series) -> None:
        if not self.is_bound_to(series):
            raise ConfigurationError(
                "IndicatorCache is bound to a different candle series; "
                "create a new cache for this dataset"
            )

    def clear(self) -> None:
        if self._store:
            log.debug(f"Clearing indicator cache: {self.stats()}")
        self._store.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, float]:
        lookups = self.hits + self.misses
        return {
            'entries': len(self._store),
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self.hits / lookups if lookups else 0.0,
        }

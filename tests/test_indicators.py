"""
Unit Tests – Indicator Library
================================
Series values on known inputs and cached/uncached equivalence.
"""

import numpy as np
import pytest

from strategy_lab.exceptions import ConfigurationError
from strategy_lab.indicators import (
    ALL_INDICATORS, RSI, SMA, IndicatorCache,
    bollinger_series, cci_series, ema_series, rsi_series, sma_series, vwap_series,
    williams_r_series,
)
from strategy_lab.models import CandleSeries


def _assert_same(a, b):
    if isinstance(a, tuple):
        assert type(a) is type(b)
        for col_a, col_b in zip(a, b):
            np.testing.assert_allclose(col_a, col_b, rtol=1e-12, atol=1e-12)
    else:
        np.testing.assert_allclose(a, b, rtol=1e-12, atol=1e-12)


# ══════════════════════════════════════════════════════════════════
# Series functions
# ══════════════════════════════════════════════════════════════════

class TestSeries:

    def test_sma_values(self):
        np.testing.assert_allclose(sma_series([1, 2, 3, 4, 5], 3), [2.0, 3.0, 4.0])

    def test_sma_short_input_is_empty(self):
        assert len(sma_series([1, 2], 3)) == 0

    def test_ema_seeded_with_sma(self):
        out = ema_series([1, 2, 3, 4], 3)
        assert out[0] == pytest.approx(2.0)
        assert out[1] == pytest.approx(3.0)

    def test_rsi_flat_is_neutral(self):
        out = rsi_series([100.0] * 30, 14)
        assert len(out) == 16
        assert np.all(out == 50.0)

    def test_rsi_only_gains_is_100(self):
        out = rsi_series(list(range(1, 31)), 14)
        assert np.all(out == 100.0)

    def test_rsi_bounds(self, candles):
        closes = [c.close for c in candles]
        out = rsi_series(closes, 14)
        assert np.all((out >= 0) & (out <= 100))

    def test_bollinger_flat_bands_collapse(self):
        bands = bollinger_series([5.0] * 25, 20, 2.0)
        np.testing.assert_allclose(bands.upper, bands.lower)
        np.testing.assert_allclose(bands.middle, 5.0)

    def test_bollinger_matches_window_std(self, candles):
        closes = np.array([c.close for c in candles])
        bands = bollinger_series(closes, 20, 2.0)
        assert len(bands.middle) == len(closes) - 19
        windows = [closes[i:i + 20] for i in range(len(closes) - 19)]
        expected_std = np.array([w.std() for w in windows])
        np.testing.assert_allclose(bands.middle, [w.mean() for w in windows], rtol=1e-10)
        np.testing.assert_allclose(bands.upper - bands.middle, 2.0 * expected_std, rtol=1e-8, atol=1e-10)

    def test_bollinger_short_input_is_empty(self):
        assert len(bollinger_series([1.0, 2.0], 20).upper) == 0

    def test_cci_matches_window_mean_deviation(self, candles):
        typical = np.array([(c.high + c.low + c.close) / 3.0 for c in candles])
        out = cci_series([c.high for c in candles], [c.low for c in candles], [c.close for c in candles], 20)
        assert len(out) == len(typical) - 19
        for j in (0, 50, len(out) - 1):
            window = typical[j:j + 20]
            mean_dev = np.abs(window - window.mean()).mean()
            assert out[j] == pytest.approx((window[-1] - window.mean()) / (0.015 * mean_dev))

    def test_cci_flat_is_zero(self):
        flat = [0.1] * 25
        out = cci_series(flat, flat, flat, 20)
        assert len(out) == 6
        assert np.all(out == 0.0)

    def test_williams_r_flat_is_midpoint(self):
        flat = [1.0] * 20
        assert np.all(williams_r_series(flat, flat, flat, 14) == -50.0)

    def test_vwap_constant_price(self):
        out = vwap_series([2.0] * 5, [2.0] * 5, [2.0] * 5, [10.0] * 5)
        np.testing.assert_allclose(out, 2.0)

    @pytest.mark.parametrize("period", [0, -3, 2.5])
    def test_invalid_period_raises(self, period):
        with pytest.raises(ConfigurationError):
            sma_series([1, 2, 3], period)


# ══════════════════════════════════════════════════════════════════
# Cache
# ══════════════════════════════════════════════════════════════════

class TestIndicatorCache:

    @pytest.mark.parametrize("indicator", ALL_INDICATORS, ids=lambda ind: ind.name)
    def test_cached_equals_uncached(self, candles, indicator):
        series = CandleSeries.from_candles(candles)
        with IndicatorCache(series) as cache:
            for length in (1, 10, 40, 120, len(series)):
                cached = indicator.calculate(series.window(length, cache))
                uncached = indicator.calculate(series.window(length))
                _assert_same(cached, uncached)

    def test_non_default_params_have_own_key(self, candles):
        series = CandleSeries.from_candles(candles)
        cache = IndicatorCache(series)
        RSI.calculate(series.window(100, cache), 7)
        RSI.calculate(series.window(100, cache), 14)
        assert 'rsi:7' in cache and 'rsi:14' in cache

    def test_hits_counted(self, candles):
        series = CandleSeries.from_candles(candles)
        cache = IndicatorCache(series)
        for length in range(30, 40):
            SMA.calculate(series.window(length, cache), 20)
        stats = cache.stats()
        assert stats['misses'] == 1
        assert stats['hits'] == 9

    def test_cached_arrays_are_read_only(self, candles):
        series = CandleSeries.from_candles(candles)
        cache = IndicatorCache(series)
        values = SMA.calculate(series.window(len(series), cache), 5)
        with pytest.raises(ValueError):
            values[0] = 0.0

    def test_bound_to_other_series_raises(self, candles):
        series = CandleSeries.from_candles(candles)
        other = CandleSeries.from_candles(candles[:100])
        cache = IndicatorCache(series)
        with pytest.raises(ConfigurationError):
            cache.ensure_bound_to(other)

    def test_context_manager_clears(self, candles):
        series = CandleSeries.from_candles(candles)
        with IndicatorCache(series) as cache:
            SMA.calculate(series.window(50, cache), 5)
            assert len(cache) == 1
        assert len(cache) == 0

    def test_latest_none_during_warmup(self, candles):
        series = CandleSeries.from_candles(candles)
        assert RSI.latest(series.window(10), 14) is None
        assert RSI.latest(series.window(20), 14) is not None

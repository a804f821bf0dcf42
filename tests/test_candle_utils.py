"""
Unit Tests – Candle Utilities & Synthetic Data
================================================
"""

import json
from dataclasses import asdict

import numpy as np
import pandas as pd
import pytest

from strategy_lab.candle_utils import (
    CandlePreprocessor, candle_from_record, candles_to_dataframe, detect_gaps,
    detect_interval, is_tick_frame, is_valid_candle, load_candles, normalize_timestamp,
    resample_ticks,
)
from strategy_lab.data_generator import PATTERNS, generate_candles, generate_flat_candles
from strategy_lab.exceptions import ConfigurationError
from strategy_lab.models import Candle, CandleSeries


def _candle(ts, price=100.0):
    return Candle(ts, price, price + 1, price - 1, price, 10.0)


class TestTimestamps:

    def test_seconds_become_milliseconds(self):
        assert normalize_timestamp(1_700_000_000) == 1_700_000_000_000

    def test_milliseconds_unchanged(self):
        assert normalize_timestamp(1_700_000_000_000) == 1_700_000_000_000

    def test_interval_is_most_frequent_diff(self):
        assert detect_interval([0, 60_000, 120_000, 300_000, 360_000]) == 60_000

    def test_interval_default_for_single_candle(self):
        assert detect_interval([5]) == 60_000


class TestValidation:

    def test_valid(self):
        assert is_valid_candle(_candle(0))

    def test_high_below_close_invalid(self):
        assert not is_valid_candle(Candle(0, 100, 99, 98, 100, 1))

    def test_non_positive_price_invalid(self):
        assert not is_valid_candle(Candle(0, 0, 1, 0, 1, 1))

    def test_nan_invalid(self):
        assert not is_valid_candle(Candle(0, float('nan'), 1, 1, 1, 1))


class TestPreprocessor:

    def test_sorts_and_deduplicates(self):
        raw = [_candle(120_000), _candle(0), _candle(60_000), _candle(60_000, 105)]
        clean, stats = CandlePreprocessor().clean(raw)
        assert [c.timestamp for c in clean] == [0, 60_000, 120_000]
        assert clean[1].close == 105
        assert stats['duplicates_removed'] == 1

    def test_removes_invalid(self):
        raw = [_candle(0), Candle(60_000, 100, 90, 95, 100, 1), _candle(120_000)]
        clean, stats = CandlePreprocessor().clean(raw)
        assert len(clean) == 2
        assert stats['invalid_removed'] == 1

    def test_detect_gaps(self):
        candles = [_candle(0), _candle(60_000), _candle(240_000)]
        assert detect_gaps(candles, 60_000) == [(2, 2)]

    def test_fill_small_gap(self):
        candles = [_candle(0), _candle(60_000), _candle(240_000)]
        clean, stats = CandlePreprocessor({'gap_strategy': 'fill'}).clean(candles)
        assert [c.timestamp for c in clean] == [0, 60_000, 120_000, 180_000, 240_000]
        assert stats['candles_filled'] == 2

    def test_split_keeps_longest_segment(self):
        first = [_candle(i * 60_000) for i in range(3)]
        second = [_candle(3_600_000 + i * 60_000) for i in range(5)]
        clean, _ = CandlePreprocessor({'gap_strategy': 'split', 'max_gap_candles': 5}).clean(first + second)
        assert clean == second

    def test_unknown_gap_strategy(self):
        with pytest.raises(ConfigurationError):
            CandlePreprocessor({'gap_strategy': 'guess'})


class TestLoading:

    def test_record_aliases(self):
        candle = candle_from_record({'t': 1_700_000_000, 'o': 1, 'h': 2, 'l': 0.5, 'c': 1.5})
        assert candle.timestamp == 1_700_000_000_000
        assert candle.volume == 0.0

    def test_record_missing_fields(self):
        with pytest.raises(ConfigurationError):
            candle_from_record({'timestamp': 0, 'open': 1})

    def test_load_json(self, tmp_path, candles):
        path = tmp_path / 'candles.json'
        path.write_text(json.dumps({'candles': [asdict(c) for c in candles[:20]]}))
        loaded = load_candles(str(path))
        assert loaded == candles[:20]

    def test_load_csv(self, tmp_path, candles):
        path = tmp_path / 'candles.csv'
        candles_to_dataframe(candles[:20]).to_csv(path, index=False)
        loaded = load_candles(str(path))
        assert [c.timestamp for c in loaded] == [c.timestamp for c in candles[:20]]
        assert loaded[5].close == pytest.approx(candles[5].close)

    def test_unsupported_extension(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_candles(str(tmp_path / 'candles.parquet'))


# Minute-aligned epoch in ms
T0 = 1_700_000_040_000


class TestTickResampling:

    def test_bucket_boundaries(self):
        ticks = [
            {'timestamp': T0, 'price': 1.0},
            {'timestamp': T0 + 59_999, 'price': 3.0},
            {'timestamp': T0 + 30_000, 'price': 0.5},
            {'timestamp': T0 + 60_000, 'price': 2.0},
        ]
        first, second = resample_ticks(ticks, 60_000)
        assert first == Candle(T0, 1.0, 3.0, 0.5, 3.0, 3.0)
        assert second == Candle(T0 + 60_000, 2.0, 2.0, 2.0, 2.0, 1.0)

    def test_empty_buckets_omitted(self):
        ticks = [{'ts': T0, 'price': 1.0}, {'ts': T0 + 185_000, 'price': 2.0}]
        candles = resample_ticks(ticks, 60_000)
        assert [c.timestamp for c in candles] == [T0, T0 + 180_000]

    def test_single_tick(self):
        (candle,) = resample_ticks([{'time': 1_700_000_030, 'price': 1.2345}], 60_000)
        assert candle.timestamp == 1_699_999_980_000
        assert candle.open == candle.high == candle.low == candle.close == 1.2345
        assert candle.volume == 1.0

    def test_min_ticks_and_payout_filter(self):
        frame = pd.DataFrame({
            'timestamp': [T0 + d for d in (0, 1_000, 60_000, 61_000, 62_000)],
            'price': [150.0, 85.0, 151.0, 152.0, float('nan')],
        })
        assert [c.timestamp for c in resample_ticks(frame, 60_000, min_ticks_per_candle=2)] == [T0, T0 + 60_000]
        filtered = resample_ticks(frame, 60_000, min_ticks_per_candle=2, filter_payout=True)
        assert [(c.timestamp, c.volume) for c in filtered] == [(T0 + 60_000, 2.0)]

    def test_empty_input(self):
        assert resample_ticks([], 60_000) == []

    def test_invalid_interval(self):
        with pytest.raises(ConfigurationError):
            resample_ticks([{'timestamp': 0, 'price': 1.0}], 0)

    def test_missing_price_column(self):
        with pytest.raises(ConfigurationError):
            resample_ticks([{'timestamp': 0, 'volume': 1.0}], 60_000)

    def test_tick_frame_detection(self, candles):
        assert is_tick_frame(pd.DataFrame({'Timestamp': [0], 'Price': [1.0]}))
        assert not is_tick_frame(candles_to_dataframe(candles[:5]))

    def test_load_tick_csv(self, tmp_path):
        path = tmp_path / 'ticks.csv'
        pd.DataFrame({
            'timestamp': [T0 + d for d in (0, 10_000, 30_000, 40_000)],
            'price': [1.0, 1.1, 1.2, 0.9],
        }).to_csv(path, index=False)
        loaded = load_candles(str(path), tick_interval_ms=30_000)
        assert loaded == [Candle(T0, 1.0, 1.1, 1.0, 1.1, 2.0), Candle(T0 + 30_000, 1.2, 1.2, 0.9, 0.9, 2.0)]


class TestCandleSeries:

    def test_round_trip_dataframe(self, candles):
        series = CandleSeries.from_candles(candles)
        again = CandleSeries.from_dataframe(series.to_dataframe())
        assert again.candles == series.candles

    def test_slice(self, candles):
        series = CandleSeries.from_candles(candles)
        part = series.slice(10, 20)
        assert len(part) == 10
        assert part.start_time == candles[10].timestamp

    def test_source_arrays_stay_writable(self):
        closes = np.array([1.0, 2.0, 3.0])
        series = CandleSeries(
            timestamps=np.array([0, 60_000, 120_000]), opens=closes, highs=closes, lows=closes, closes=closes
        )
        closes[0] = 9.0
        assert series.closes[0] == 1.0
        assert not series.closes.flags.writeable

    def test_source_dataframe_can_be_edited(self, candles):
        frame = candles_to_dataframe(candles[:10])
        series = CandleSeries.from_dataframe(frame)
        frame.loc[0, 'close'] = -1.0
        assert frame.loc[0, 'close'] == -1.0
        assert series.closes[0] == candles[0].close


class TestDataGenerator:

    @pytest.mark.parametrize("pattern", PATTERNS)
    def test_patterns_produce_valid_candles(self, pattern):
        generated = generate_candles(200, pattern=pattern, seed=1)
        assert len(generated) == 200
        assert all(is_valid_candle(c) for c in generated)

    def test_seeded_is_deterministic(self):
        assert generate_candles(50, seed=3) == generate_candles(50, seed=3)

    def test_uptrend_drifts_up(self):
        generated = generate_candles(2000, pattern='uptrend', seed=5)
        assert generated[-1].close > generated[0].open

    def test_unknown_pattern(self):
        with pytest.raises(ConfigurationError):
            generate_candles(10, pattern='sideways')

    def test_flat(self):
        flat = generate_flat_candles(5, price=2.0)
        assert all(c.open == c.close == c.high == c.low == 2.0 for c in flat)

"""
Candle Preprocessing - Ordering, Validation and Gap Handling

Turns raw candle records into a clean, strictly ascending candle list
that the backtest engine can replay:
- Sort by timestamp
- Drop invalid candles (non-finite prices, high < low, non-positive prices)
- Remove duplicate timestamps (last record wins)
- Detect gaps and handle them ('skip', 'fill' or 'split')

Also hosts the loaders the CLI uses to read candles from JSON/CSV files.

Example:
    preprocessor = CandlePreprocessor(config={'gap_strategy': 'fill'})
    candles, stats = preprocessor.clean(raw_candles)
    print(f"Removed {stats['invalid_removed']} invalid, filled {stats['candles_filled']}")
"""

import json
import math
from collections import Counter
from typing import Dict, Any, List, Tuple, Optional, Sequence, Iterable
import logging

import pandas as pd

from .exceptions import ConfigurationError
from .models import Candle

log = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 60_000
GAP_STRATEGIES = ('skip', 'fill', 'split')

# Field aliases accepted when building candles from loose records
_FIELD_ALIASES = {
    'timestamp': ('timestamp', 'time', 'ts', 't', 'open_time'),
    'open': ('open', 'o'),
    'high': ('high', 'h'),
    'low': ('low', 'l'),
    'close': ('close', 'c'),
    'volume': ('volume', 'v', 'vol'),
}


def normalize_timestamp(value: float) -> int:
    """Convert a unix timestamp in seconds or milliseconds to milliseconds."""
    ts = float(value)
    if ts < 1e12:
        ts *= 1000
    return int(round(ts))


def detect_interval(timestamps: Sequence[int], default: int = DEFAULT_INTERVAL_MS) -> int:
    """
    Most frequent positive difference between consecutive timestamps.

    Args:
        timestamps: Ascending timestamps in ms
        default: Returned when fewer than two timestamps are available

    Returns:
        Candle interval in ms
    """
    diffs = Counter()
    for prev, curr in zip(timestamps, timestamps[1:]):
        diff = int(curr) - int(prev)
        if diff > 0:
            diffs[diff] += 1
    if not diffs:
        return default
    # Ties resolved towards the smaller interval
    best_count = max(diffs.values())
    return min(d for d, count in diffs.items() if count == best_count)


def is_valid_candle(candle: Candle) -> bool:
    values = (candle.open, candle.high, candle.low, candle.close, candle.volume)
    if not all(math.isfinite(v) for v in values):
        return False
    if candle.open <= 0 or candle.high <= 0 or candle.low <= 0 or candle.close <= 0:
        return False
    if candle.high < candle.low:
        return False
    if candle.volume < 0:
        return False
    return candle.low <= min(candle.open, candle.close) and candle.high >= max(candle.open, candle.close)


def detect_gaps(candles: Sequence[Candle], interval_ms: int) -> List[Tuple[int, int]]:
    """
    Find missing-candle gaps.

    Returns:
        List of (index_after_gap, missing_candle_count)
    """
    gaps = []
    for i in range(1, len(candles)):
        diff = candles[i].timestamp - candles[i - 1].timestamp
        if diff > interval_ms * 1.5:
            missing = int(round(diff / interval_ms)) - 1
            if missing > 0:
                gaps.append((i, missing))
    return gaps


class CandlePreprocessor:
    """
    Cleans raw candles before a backtest.

    Gap strategies:
        skip  - keep the data as-is, gaps are only reported
        fill  - insert linearly interpolated candles for gaps of at most
                max_gap_candles missing bars (larger gaps are kept)
        split - keep only the longest contiguous segment, where a gap larger
                than max_gap_candles breaks the data
    """

    DEFAULT_CONFIG = {
        'gap_strategy': 'skip',
        'max_gap_candles': 5,
        'interval_ms': None,        # None = detect from data
    }

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = {**self.DEFAULT_CONFIG, **(config or {})}
        if self.config['gap_strategy'] not in GAP_STRATEGIES:
            raise ConfigurationError(
                f"gap_strategy must be one of {GAP_STRATEGIES}, got {self.config['gap_strategy']!r}"
            )
        if self.config['max_gap_candles'] < 0:
            raise ConfigurationError("max_gap_candles must be >= 0")
        log.debug(f"CandlePreprocessor initialized: {self.config}")

    def clean(self, candles: Iterable[Candle]) -> Tuple[List[Candle], Dict[str, Any]]:
        """
        Sort, validate, deduplicate and gap-handle candles.

        Returns:
            Tuple of (clean_candles, statistics_dict)
        """
        raw = list(candles)
        original_count = len(raw)

        valid = [c for c in raw if is_valid_candle(c)]
        invalid_removed = original_count - len(valid)

        # Stable sort keeps input order for equal timestamps, so the dict
        # assignment below keeps the last record per timestamp.
        by_time: Dict[int, Candle] = {}
        for candle in sorted(valid, key=lambda c: c.timestamp):
            by_time[candle.timestamp] = candle
        ordered = list(by_time.values())
        duplicates_removed = len(valid) - len(ordered)

        interval_ms = self.config['interval_ms'] or detect_interval([c.timestamp for c in ordered])
        gaps = detect_gaps(ordered, interval_ms)

        candles_filled = 0
        candles_dropped_by_split = 0
        strategy = self.config['gap_strategy']
        if gaps and strategy == 'fill':
            ordered, candles_filled = self._fill_gaps(ordered, gaps, interval_ms)
        elif gaps and strategy == 'split':
            before = len(ordered)
            ordered = self._largest_segment(ordered, gaps)
            candles_dropped_by_split = before - len(ordered)

        stats = {
            'original_count': original_count,
            'final_count': len(ordered),
            'invalid_removed': invalid_removed,
            'duplicates_removed': duplicates_removed,
            'gaps_detected': len(gaps),
            'missing_candles': sum(missing for _, missing in gaps),
            'candles_filled': candles_filled,
            'candles_dropped_by_split': candles_dropped_by_split,
            'gap_strategy': strategy,
            'interval_ms': interval_ms,
            'quality_score': self._quality_score(original_count, invalid_removed, duplicates_removed, gaps),
        }

        if invalid_removed or duplicates_removed or gaps:
            log.info(
                f"Preprocessed {original_count} candles: "
                f"{invalid_removed} invalid, {duplicates_removed} duplicates, "
                f"{len(gaps)} gaps ({strategy})"
            )

        return ordered, stats

    def _fill_gaps(
        self,
        candles: List[Candle],
        gaps: List[Tuple[int, int]],
        interval_ms: int
    ) -> Tuple[List[Candle], int]:
        """Insert flat, zero-volume candles interpolated from prev close to next open."""
        max_gap = self.config['max_gap_candles']
        gap_at = dict(gaps)
        filled = []
        inserted = 0
        for i, candle in enumerate(candles):
            missing = gap_at.get(i)
            if missing and missing <= max_gap:
                prev = candles[i - 1]
                for k in range(1, missing + 1):
                    frac = k / (missing + 1)
                    price = prev.close + (candle.open - prev.close) * frac
                    filled.append(Candle(
                        timestamp=prev.timestamp + k * interval_ms,
                        open=price, high=price, low=price, close=price, volume=0.0
                    ))
                    inserted += 1
            filled.append(candle)
        return filled, inserted

    def _largest_segment(self, candles: List[Candle], gaps: List[Tuple[int, int]]) -> List[Candle]:
        max_gap = self.config['max_gap_candles']
        breaks = [i for i, missing in gaps if missing > max_gap]
        if not breaks:
            return candles
        bounds = [0] + breaks + [len(candles)]
        segments = [(bounds[k], bounds[k + 1]) for k in range(len(bounds) - 1)]
        start, end = max(segments, key=lambda seg: seg[1] - seg[0])
        log.info(
            f"Split on {len(breaks)} large gaps: keeping candles [{start}, {end}) "
            f"of {len(candles)}"
        )
        return candles[start:end]

    @staticmethod
    def _quality_score(total: int, invalid: int, duplicates: int, gaps: List[Tuple[int, int]]) -> float:
        """0-100 heuristic: penalize removed records and missing bars."""
        if total == 0:
            return 0.0
        missing = sum(m for _, m in gaps)
        penalty = (invalid + duplicates + missing) / (total + missing) * 100
        return round(max(0.0, 100.0 - penalty), 2)


def candle_from_record(record: Dict[str, Any]) -> Candle:
    """Build a Candle from a loose dict record (accepts common field aliases)."""
    values = {}
    for name, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            if alias in record and record[alias] is not None:
                values[name] = record[alias]
                break
    missing = [k for k in ('timestamp', 'open', 'high', 'low', 'close') if k not in values]
    if missing:
        raise ConfigurationError(f"Candle record missing fields: {missing}")
    return Candle(
        timestamp=normalize_timestamp(values['timestamp']),
        open=float(values['open']),
        high=float(values['high']),
        low=float(values['low']),
        close=float(values['close']),
        volume=float(values.get('volume', 0.0)),
    )


def candles_from_records(records: Iterable[Dict[str, Any]]) -> List[Candle]:
    return [candle_from_record(r) for r in records]


def candles_from_dataframe(df: pd.DataFrame) -> List[Candle]:
    df = df.rename(columns=str.lower)
    return candles_from_records(df.to_dict(orient='records'))


def candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
    return pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=['timestamp', 'open', 'high', 'low', 'close', 'volume']
    )


_TICK_PRICE_FIELDS = ('price', 'close', 'last', 'bid', 'value')


def _find_column(df: pd.DataFrame, aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        if alias in df.columns:
            return alias
    return None


def is_tick_frame(df: pd.DataFrame) -> bool:
    """True for price ticks (timestamp + price) rather than OHLC candles."""
    columns = set(df.rename(columns=str.lower).columns)
    has_ohlc = all(any(a in columns for a in _FIELD_ALIASES[k]) for k in ('open', 'high', 'low'))
    return not has_ohlc and any(p in columns for p in _TICK_PRICE_FIELDS)


def resample_ticks(
    ticks,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    min_ticks_per_candle: int = 1,
    filter_payout: bool = False
) -> List[Candle]:
    """
    Aggregate price ticks into OHLCV candles.

    Ticks are bucketed by `timestamp // interval_ms`; each candle opens at
    its bucket start with open = first tick, high/low = extremes,
    close = last tick and volume = tick count. Buckets without ticks
    produce no candle.

    Args:
        ticks: DataFrame or dict records with a timestamp (s or ms) and a
            price column ('price', 'close', 'last', 'bid' or 'value')
        interval_ms: Candle interval
        min_ticks_per_candle: Buckets with fewer ticks are dropped
        filter_payout: Drop ticks priced within [0, 100], which some
            broker feeds interleave as payout percentages

    Returns:
        Candles in ascending timestamp order

    Raises:
        ConfigurationError: Non-positive interval or no usable columns
    """
    if interval_ms <= 0:
        raise ConfigurationError(f"interval_ms must be > 0, got {interval_ms}")
    df = ticks if isinstance(ticks, pd.DataFrame) else pd.DataFrame(list(ticks))
    if df.empty:
        return []

    df = df.rename(columns=str.lower)
    ts_col = _find_column(df, _FIELD_ALIASES['timestamp'])
    price_col = _find_column(df, _TICK_PRICE_FIELDS)
    if ts_col is None or price_col is None:
        raise ConfigurationError(f"Tick data needs timestamp and price columns, got {list(df.columns)}")

    frame = pd.DataFrame({
        'timestamp': pd.to_numeric(df[ts_col], errors='coerce'),
        'price': pd.to_numeric(df[price_col], errors='coerce'),
    })
    valid = frame['timestamp'].notna() & frame['price'].map(math.isfinite)
    if filter_payout:
        valid &= ~frame['price'].between(0, 100)
    dropped = int((~valid).sum())
    frame = frame[valid].copy()
    if frame.empty:
        return []
    frame['timestamp'] = frame['timestamp'].map(normalize_timestamp)
    frame = frame.sort_values('timestamp', kind='stable')

    bucket = frame['timestamp'] // interval_ms * interval_ms
    bars = frame.groupby(bucket)['price'].agg(
        open='first', high='max', low='min', close='last', volume='size'
    )
    bars = bars[bars['volume'] >= min_ticks_per_candle]

    candles = [
        Candle(int(ts), float(row.open), float(row.high), float(row.low), float(row.close), float(row.volume))
        for ts, row in bars.iterrows()
    ]
    log.debug(
        f"Resampled {len(frame)} ticks into {len(candles)} candles "
        f"({interval_ms}ms, {dropped} ticks dropped)"
    )
    return candles


def load_candles(path: str, tick_interval_ms: int = DEFAULT_INTERVAL_MS) -> List[Candle]:
    """
    Load candles from a JSON (list of records, or {'candles' | 'ticks': [...]}) or CSV file.

    Files holding raw price ticks (timestamp + price, no OHLC columns) are
    resampled into candles of `tick_interval_ms`.

    Raises:
        ConfigurationError: Unsupported file type or missing columns
    """
    lower = str(path).lower()
    if lower.endswith('.csv'):
        df = pd.read_csv(path)
    elif lower.endswith('.json'):
        with open(path, 'r') as f:
            raw = json.load(f)
        records = (raw['candles'] if 'candles' in raw else raw['ticks']) if isinstance(raw, dict) else raw
        df = pd.DataFrame(records)
    else:
        raise ConfigurationError(f"Unsupported candle file type: {path}")

    if is_tick_frame(df):
        candles = resample_ticks(df, tick_interval_ms)
        log.info(f"📈 Resampled {len(df)} ticks from {path} into {len(candles)} candles")
        return candles

    candles = candles_from_dataframe(df)
    log.info(f"Loaded {len(candles)} candles from {path}")
    return candles


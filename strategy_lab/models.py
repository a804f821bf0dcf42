"""
Core data model for the backtesting engine.

Candles come in as plain records and are turned into a CandleSeries: an
immutable, columnar (numpy) view that every backtest, indicator cache and
optimizer batch works against. Strategies only ever see a CandleWindow,
which is a zero-copy prefix of a series (candles[0..i]) plus the cache
handle for the current run.
"""

import math
from dataclasses import dataclass, field, asdict, replace
from typing import Dict, List, Optional, Any, Sequence, Iterator

import numpy as np
import pandas as pd

from .exceptions import ConfigurationError

CALL = 'CALL'
PUT = 'PUT'
DIRECTIONS = (CALL, PUT)

WIN = 'WIN'
LOSS = 'LOSS'
TIE = 'TIE'

BET_FIXED = 'fixed'
BET_PERCENTAGE = 'percentage'
BET_TYPES = (BET_FIXED, BET_PERCENTAGE)


@dataclass(frozen=True)
class Candle:
    """Single OHLCV bar."""
    timestamp: int           # Unix timestamp ms (candle open)
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3


@dataclass(frozen=True)
class StrategyParamSpec:
    """
    Search lattice for one strategy parameter.

    Values are min, min + step, ..., up to max (inclusive when the range
    is a whole number of steps).
    """
    default: float
    min: float
    max: float
    step: float

    def __post_init__(self):
        for name in ('default', 'min', 'max', 'step'):
            value = getattr(self, name)
            if value is None or not math.isfinite(value):
                raise ConfigurationError(f"Parameter spec {name} must be finite, got {value!r}")
        if self.step <= 0:
            raise ConfigurationError(f"Parameter step must be > 0, got {self.step}")
        if self.min > self.max:
            raise ConfigurationError(f"Parameter min ({self.min}) exceeds max ({self.max})")
        if not self.min <= self.default <= self.max:
            raise ConfigurationError(
                f"Parameter default {self.default} outside [{self.min}, {self.max}]"
            )

    @classmethod
    def from_mapping(cls, spec: Dict[str, float]) -> 'StrategyParamSpec':
        """Build from a {'min', 'max', 'step'[, 'default']} mapping."""
        try:
            low = spec['min']
            high = spec['max']
            step = spec['step']
        except KeyError as e:
            raise ConfigurationError(f"Parameter range missing key {e}") from e
        return cls(default=spec.get('default', low), min=low, max=high, step=step)

    @property
    def count(self) -> int:
        """Number of lattice points."""
        return int(math.floor((self.max - self.min) / self.step + 1e-9)) + 1

    def value_at(self, index: int) -> float:
        return round(self.min + index * self.step, 10)

    def values(self) -> List[float]:
        return [self.value_at(k) for k in range(self.count)]

    def normalize(self, value: float) -> float:
        """Map a value onto [0, 1]; a single-point range maps to 0."""
        span = self.max - self.min
        if span == 0:
            return 0.0
        return (value - self.min) / span


@dataclass
class Signal:
    """Strategy output for one window."""
    direction: Optional[str] = None     # 'CALL', 'PUT' or None (no trade)
    confidence: float = 0.0
    indicators: Dict[str, float] = field(default_factory=dict)
    reason: Optional[str] = None

    def __post_init__(self):
        if self.direction is not None and self.direction not in DIRECTIONS:
            raise ValueError(f"Invalid signal direction: {self.direction!r}")
        if math.isnan(self.confidence):
            if self.direction is not None:
                raise ValueError("Signal confidence is NaN")
            self.confidence = 0.0
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    @property
    def is_actionable(self) -> bool:
        return self.direction is not None


@dataclass(frozen=True)
class Trade:
    """Finalized binary-option trade."""
    entry_time: int
    entry_price: float
    exit_time: int
    exit_price: float
    direction: str           # 'CALL' or 'PUT'
    result: str              # 'WIN', 'LOSS' or 'TIE'
    profit: float
    bet_amount: float
    payout: float            # Payout percent at entry
    entry_index: int
    exit_index: int
    confidence: float = 0.0
    reason: Optional[str] = None
    indicators: Dict[str, float] = field(default_factory=dict, hash=False)  # Signal values at entry

    @property
    def holding_ms(self) -> int:
        return self.exit_time - self.entry_time

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestConfig:
    """
    Fully determines one deterministic backtest run.

    Example:
        config = BacktestConfig(
            symbol='EURUSD',
            strategy_id='rsi-ob-os',
            strategy_params={'period': 14, 'oversold': 30, 'overbought': 70},
            payout=92,
            expiry_seconds=60
        )
    """
    symbol: str
    strategy_id: str
    strategy_params: Dict[str, float] = field(default_factory=dict)
    initial_balance: float = 1000.0
    bet_amount: float = 10.0
    bet_type: str = BET_FIXED        # 'fixed' or 'percentage' (of balance)
    payout: float = 92.0             # Percent of bet returned as profit on WIN
    expiry_seconds: int = 60
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    latency_ms: int = 0              # Entry delay after the signal candle
    slippage: float = 0.0            # Price units added against the trade direction
    max_exit_gap: Optional[float] = None  # Seconds an exit may land past expiry; None = off

    def validate(self) -> None:
        """Raise ConfigurationError if the config cannot be run."""
        if self.initial_balance <= 0:
            raise ConfigurationError(f"initial_balance must be > 0, got {self.initial_balance}")
        if self.bet_amount <= 0:
            raise ConfigurationError(f"bet_amount must be > 0, got {self.bet_amount}")
        if self.bet_type not in BET_TYPES:
            raise ConfigurationError(f"bet_type must be one of {BET_TYPES}, got {self.bet_type!r}")
        if self.bet_type == BET_PERCENTAGE and self.bet_amount > 100:
            raise ConfigurationError("Percentage bet_amount cannot exceed 100")
        if self.payout <= 0:
            raise ConfigurationError(f"payout must be > 0, got {self.payout}")
        if self.expiry_seconds <= 0:
            raise ConfigurationError(f"expiry_seconds must be > 0, got {self.expiry_seconds}")
        if (
            self.start_time is not None
            and self.end_time is not None
            and self.start_time > self.end_time
        ):
            raise ConfigurationError("start_time must not be after end_time")
        if self.latency_ms < 0:
            raise ConfigurationError(f"latency_ms must be >= 0, got {self.latency_ms}")
        if self.slippage < 0:
            raise ConfigurationError(f"slippage must be >= 0, got {self.slippage}")
        if self.max_exit_gap is not None and self.max_exit_gap < 0:
            raise ConfigurationError(f"max_exit_gap must be >= 0, got {self.max_exit_gap}")

    def with_params(self, params: Dict[str, float], strategy_id: Optional[str] = None) -> 'BacktestConfig':
        """Copy of this config with different strategy parameters."""
        return replace(
            self,
            strategy_params=dict(params),
            strategy_id=strategy_id or self.strategy_id
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EquityPoint:
    timestamp: int
    balance: float


@dataclass
class BacktestResult:
    """Aggregate counters plus the full trade ledger for one run."""
    config: BacktestConfig
    trades: List[Trade]
    initial_balance: float
    final_balance: float
    total_trades: int
    wins: int
    losses: int
    ties: int
    win_rate: float                 # Percent of all trades
    gross_profit: float
    gross_loss: float
    net_profit: float
    net_profit_percent: float
    profit_factor: float            # May be inf (no losing trades)
    expectancy: float               # Net profit per trade
    max_drawdown: float
    max_drawdown_percent: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    equity_curve: List[EquityPoint]
    start_time: int
    end_time: int
    candle_count: int
    interval_ms: int
    execution_time_ms: float = 0.0
    data_quality: Optional[Dict[str, Any]] = None

    @property
    def metrics(self) -> Dict[str, float]:
        """Scalar metrics, flat, for tables and search statistics."""
        return {
            'total_trades': self.total_trades,
            'wins': self.wins,
            'losses': self.losses,
            'ties': self.ties,
            'win_rate': self.win_rate,
            'net_profit': self.net_profit,
            'net_profit_percent': self.net_profit_percent,
            'gross_profit': self.gross_profit,
            'gross_loss': self.gross_loss,
            'profit_factor': self.profit_factor,
            'expectancy': self.expectancy,
            'max_drawdown': self.max_drawdown,
            'max_drawdown_percent': self.max_drawdown_percent,
            'max_consecutive_wins': self.max_consecutive_wins,
            'max_consecutive_losses': self.max_consecutive_losses,
            'final_balance': self.final_balance,
        }

    def equity_curve_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(p.timestamp, p.balance) for p in self.equity_curve],
            columns=['timestamp', 'equity']
        )

    def to_dict(self, include_trades: bool = True) -> Dict[str, Any]:
        data = {
            'config': self.config.to_dict(),
            **self.metrics,
            'initial_balance': self.initial_balance,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'candle_count': self.candle_count,
            'interval_ms': self.interval_ms,
            'execution_time_ms': self.execution_time_ms,
            'data_quality': self.data_quality,
            'equity_curve': [asdict(p) for p in self.equity_curve],
        }
        if include_trades:
            data['trades'] = [t.to_dict() for t in self.trades]
        return data


class CandleSeries:
    """
    Immutable columnar candle data.

    A series is the identity an IndicatorCache is bound to: build it once
    per dataset, then run as many backtests against it as needed.

    Example:
        series = CandleSeries.from_candles(candles)
        window = series.window(100)     # candles[0..99]
        window.closes                   # numpy view, no copy
    """

    __slots__ = ('timestamps', 'opens', 'highs', 'lows', 'closes', 'volumes', '_candles')

    def __init__(
        self,
        timestamps: Sequence[int],
        opens: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        volumes: Optional[Sequence[float]] = None
    ):
        self.timestamps = self._freeze(timestamps, np.int64)
        self.opens = self._freeze(opens, float)
        self.highs = self._freeze(highs, float)
        self.lows = self._freeze(lows, float)
        self.closes = self._freeze(closes, float)
        if volumes is None:
            volumes = np.zeros(len(self.timestamps))
        self.volumes = self._freeze(volumes, float)
        self._candles = None

        n = len(self.timestamps)
        for name in ('opens', 'highs', 'lows', 'closes', 'volumes'):
            if len(getattr(self, name)) != n:
                raise ConfigurationError(f"CandleSeries column '{name}' length mismatch")

    @staticmethod
    def _freeze(values: Sequence, dtype) -> np.ndarray:
        # Private copy; the caller keeps a writable array
        array = np.array(values, dtype=dtype, copy=True)
        array.setflags(write=False)
        return array

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> 'CandleSeries':
        return cls(
            timestamps=[c.timestamp for c in candles],
            opens=[c.open for c in candles],
            highs=[c.high for c in candles],
            lows=[c.low for c in candles],
            closes=[c.close for c in candles],
            volumes=[c.volume for c in candles],
        )

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> 'CandleSeries':
        """Build from a DataFrame with timestamp/open/high/low/close[/volume] columns."""
        required_cols = ['timestamp', 'open', 'high', 'low', 'close']
        missing = [col for col in required_cols if col not in df.columns]
        if missing:
            raise ConfigurationError(f"Missing required columns: {missing}")
        volumes = df['volume'].to_numpy() if 'volume' in df.columns else None
        return cls(
            timestamps=df['timestamp'].to_numpy(),
            opens=df['open'].to_numpy(),
            highs=df['high'].to_numpy(),
            lows=df['low'].to_numpy(),
            closes=df['close'].to_numpy(),
            volumes=volumes,
        )

    def __len__(self) -> int:
        return len(self.timestamps)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self.candles)

    def __getitem__(self, index):
        if isinstance(index, slice):
            start, stop, step = index.indices(len(self))
            if step != 1:
                raise ValueError("CandleSeries slices must be contiguous")
            return self.slice(start, stop)
        return self.candles[index]

    def __repr__(self) -> str:
        if not len(self):
            return "CandleSeries(empty)"
        return f"CandleSeries({len(self)} candles, {self.start_time} -> {self.end_time})"

    @property
    def candles(self) -> List[Candle]:
        if self._candles is None:
            self._candles = [
                Candle(int(t), float(o), float(h), float(l), float(c), float(v))
                for t, o, h, l, c, v in zip(
                    self.timestamps, self.opens, self.highs,
                    self.lows, self.closes, self.volumes
                )
            ]
        return self._candles

    @property
    def start_time(self) -> Optional[int]:
        return int(self.timestamps[0]) if len(self) else None

    @property
    def end_time(self) -> Optional[int]:
        return int(self.timestamps[-1]) if len(self) else None

    def slice(self, start: int, end: int) -> 'CandleSeries':
        """New series over [start, end); a new dataset identity."""
        return CandleSeries(
            self.timestamps[start:end], self.opens[start:end], self.highs[start:end],
            self.lows[start:end], self.closes[start:end], self.volumes[start:end]
        )

    def window(self, length: int, cache=None) -> 'CandleWindow':
        return CandleWindow(self, length, cache)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'timestamp': self.timestamps,
            'open': self.opens,
            'high': self.highs,
            'low': self.lows,
            'close': self.closes,
            'volume': self.volumes,
        })


class CandleWindow:
    """
    The first `length` candles of a series, as seen by a strategy.

    Column accessors are numpy views (O(1)). The optional cache handle is
    passed through to indicators so they can serve full-series results
    as prefixes instead of recomputing.
    """

    __slots__ = ('series', 'length', 'cache')

    def __init__(self, series: CandleSeries, length: int, cache=None):
        if not 0 <= length <= len(series):
            raise ValueError(f"Window length {length} outside series of {len(series)}")
        self.series = series
        self.length = length
        self.cache = cache

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> 'CandleWindow':
        """Uncached window over an ad-hoc candle list."""
        series = CandleSeries.from_candles(candles)
        return cls(series, len(series))

    def __len__(self) -> int:
        return self.length

    @property
    def timestamps(self) -> np.ndarray:
        return self.series.timestamps[:self.length]

    @property
    def opens(self) -> np.ndarray:
        return self.series.opens[:self.length]

    @property
    def highs(self) -> np.ndarray:
        return self.series.highs[:self.length]

    @property
    def lows(self) -> np.ndarray:
        return self.series.lows[:self.length]

    @property
    def closes(self) -> np.ndarray:
        return self.series.closes[:self.length]

    @property
    def volumes(self) -> np.ndarray:
        return self.series.volumes[:self.length]

    def candle(self, index: int) -> Candle:
        """Candle by position inside the window (negative indexes allowed)."""
        if index < 0:
            index += self.length
        if not 0 <= index < self.length:
            raise IndexError(index)
        return self.series.candles[index]

    @property
    def last(self) -> Candle:
        return self.candle(-1)

"""
Window-aware indicators used by strategies.

Each indicator exposes:
    calculate(window, *params) -> series    full aligned series for the window
    latest(window, *params)    -> value     most recent value, or None

`window` is a CandleWindow (or a whole CandleSeries). When the window
carries an IndicatorCache, the series is computed once over the full
dataset and the window gets a prefix view of it; without a cache it is
computed over the window itself. Both paths produce identical values
because every series is a causal recurrence.

Example:
    rsi = RSI.calculate(window, 14)          # np.ndarray
    macd = MACD.latest(window, 12, 26, 9)    # MACDSeries of floats, or None
"""

from typing import Any, Callable, Optional, Sequence, Tuple

from . import series as s


def _as_int(value) -> int:
    return int(round(float(value)))


def _key_part(value) -> str:
    as_float = float(value)
    if as_float.is_integer():
        return str(int(as_float))
    return repr(as_float)


class Indicator:
    """
    One indicator: a series function, the candle columns it reads, and its warm-up.

    Args:
        name: Cache key prefix
        func: Series function from `indicators.series`
        sources: CandleWindow attributes passed to `func`, in order
        defaults: Default parameters
        warmup: Function of the parameters returning the number of leading
            candles without a value
    """

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        sources: Sequence[str],
        defaults: Tuple,
        warmup: Callable[..., int]
    ):
        self.name = name
        self.func = func
        self.sources = tuple(sources)
        self.defaults = tuple(defaults)
        self._warmup = warmup

    def __repr__(self) -> str:
        return f"Indicator({self.name})"

    def _params(self, params: Tuple) -> Tuple:
        if len(params) > len(self.defaults):
            raise TypeError(f"{self.name} takes at most {len(self.defaults)} parameters")
        return tuple(params) + self.defaults[len(params):]

    def key(self, *params) -> str:
        full = self._params(params)
        return ':'.join([self.name] + [_key_part(p) for p in full])

    def warmup(self, *params) -> int:
        return self._warmup(*self._params(params))

    def _compute(self, source, params: Tuple):
        return self.func(*(getattr(source, col) for col in self.sources), *params)

    def calculate(self, window, *params):
        full_params = self._params(params)
        cache = getattr(window, 'cache', None)
        if cache is None:
            return self._compute(window, full_params)

        full = cache.get_or_compute(
            self.key(*full_params),
            lambda dataset: self._compute(dataset, full_params)
        )
        size = max(0, len(window) - self._warmup(*full_params))
        if isinstance(full, tuple):
            return type(full)(*(column[:size] for column in full))
        return full[:size]

    def latest(self, window, *params) -> Optional[Any]:
        values = self.calculate(window, *params)
        if isinstance(values, tuple):
            if len(values[0]) == 0:
                return None
            return type(values)(*(float(column[-1]) for column in values))
        if len(values) == 0:
            return None
        return float(values[-1])


CLOSE = ('closes',)
HLC = ('highs', 'lows', 'closes')

SMA = Indicator('sma', s.sma_series, CLOSE, (20,), lambda p: _as_int(p) - 1)
EMA = Indicator('ema', s.ema_series, CLOSE, (20,), lambda p: _as_int(p) - 1)
SMMA = Indicator('smma', s.smma_series, CLOSE, (14,), lambda p: _as_int(p) - 1)
RSI = Indicator('rsi', s.rsi_series, CLOSE, (14,), lambda p: _as_int(p))
BollingerBands = Indicator(
    'bb', s.bollinger_series, CLOSE, (20, 2.0),
    lambda p, k: _as_int(p) - 1
)
MACD = Indicator(
    'macd', s.macd_series, CLOSE, (12, 26, 9),
    lambda f, sl, sig: max(_as_int(f), _as_int(sl)) - 1 + _as_int(sig) - 1
)
Stochastic = Indicator(
    'stoch', s.stochastic_series, HLC, (14, 3, 3),
    lambda k, d, smooth: (_as_int(k) - 1) + (_as_int(smooth) - 1) + (_as_int(d) - 1)
)
ATR = Indicator('atr', s.atr_series, HLC, (14,), lambda p: _as_int(p))
CCI = Indicator('cci', s.cci_series, HLC, (20,), lambda p: _as_int(p) - 1)
WilliamsR = Indicator('wr', s.williams_r_series, HLC, (14,), lambda p: _as_int(p) - 1)
StochRSI = Indicator(
    'stochrsi', s.stoch_rsi_series, CLOSE, (14, 14, 3, 3),
    lambda r, st, k, d: _as_int(r) + (_as_int(st) - 1) + (_as_int(k) - 1) + (_as_int(d) - 1)
)
ADX = Indicator('adx', s.adx_series, HLC, (14,), lambda p: 2 * _as_int(p) - 1)
VWAP = Indicator('vwap', s.vwap_series, HLC + ('volumes',), (), lambda: 0)

ALL_INDICATORS = (
    SMA, EMA, SMMA, RSI, BollingerBands, MACD, Stochastic,
    ATR, CCI, WilliamsR, StochRSI, ADX, VWAP,
)

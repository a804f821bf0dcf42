"""
Incremental indicator series over plain price arrays.

Every function walks its input once, carrying recurrence state forward
(sliding sums, Wilder smoothing, monotonic-deque extrema) instead of
re-summing each window. Bollinger Bands use pandas rolling windows and
CCI's mean deviation is vectorized over strided window views. Outputs
contain only defined values: the last element lines up with the last
input element, and the number of leading inputs without a value is the
indicator's warm-up.

Insufficient data yields empty arrays. Degenerate windows resolve to
neutral values instead of NaN/inf:
    RSI            100 when average loss is 0 (50 if there is no movement at all)
    Stochastic %K  50 on a zero high-low range
    Williams %R    -50 on a zero high-low range
    CCI            0 on zero mean deviation
    StochRSI       50 on a zero RSI range
    ADX / DI       0 on zero true range
    VWAP           typical price while cumulative volume is 0
"""

from collections import deque
from typing import List, NamedTuple, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from ..exceptions import ConfigurationError

EMPTY = np.empty(0)


class BollingerSeries(NamedTuple):
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


class MACDSeries(NamedTuple):
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


class StochasticSeries(NamedTuple):
    k: np.ndarray
    d: np.ndarray


class ADXSeries(NamedTuple):
    adx: np.ndarray
    plus_di: np.ndarray
    minus_di: np.ndarray


def check_period(period, name: str = 'period') -> int:
    """Validate an indicator period and return it as int."""
    as_int = int(round(float(period)))
    if as_int < 1 or abs(float(period) - as_int) > 1e-9:
        raise ConfigurationError(f"Indicator {name} must be a positive integer, got {period!r}")
    return as_int


def _to_list(values: Sequence[float]) -> List[float]:
    if isinstance(values, np.ndarray):
        return values.tolist()
    return [float(v) for v in values]


def _array(values: List[float]) -> np.ndarray:
    return np.asarray(values, dtype=float) if values else EMPTY.copy()


def _sma_list(values: List[float], period: int) -> List[float]:
    n = len(values)
    if n < period:
        return []
    window_sum = sum(values[:period])
    out = [window_sum / period]
    for i in range(period, n):
        window_sum += values[i] - values[i - period]
        out.append(window_sum / period)
    return out


def _ema_list(values: List[float], period: int) -> List[float]:
    n = len(values)
    if n < period:
        return []
    k = 2.0 / (period + 1)
    ema = sum(values[:period]) / period
    out = [ema]
    for i in range(period, n):
        ema = (values[i] - ema) * k + ema
        out.append(ema)
    return out


def _smma_list(values: List[float], period: int) -> List[float]:
    n = len(values)
    if n < period:
        return []
    smma = sum(values[:period]) / period
    out = [smma]
    for i in range(period, n):
        smma = (smma * (period - 1) + values[i]) / period
        out.append(smma)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def _rsi_list(values: List[float], period: int) -> List[float]:
    n = len(values)
    if n < period + 1:
        return []
    gain_sum = 0.0
    loss_sum = 0.0
    for i in range(1, period + 1):
        change = values[i] - values[i - 1]
        if change > 0:
            gain_sum += change
        else:
            loss_sum -= change
    avg_gain = gain_sum / period
    avg_loss = loss_sum / period
    out = [_rsi_value(avg_gain, avg_loss)]
    for i in range(period + 1, n):
        change = values[i] - values[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out.append(_rsi_value(avg_gain, avg_loss))
    return out


def _sliding_extrema(highs: List[float], lows: List[float], period: int) -> List[Tuple[float, float]]:
    """(highest high, lowest low) for every full window, via monotonic deques."""
    max_q = deque()
    min_q = deque()
    out = []
    for i in range(len(highs)):
        while max_q and highs[max_q[-1]] <= highs[i]:
            max_q.pop()
        max_q.append(i)
        while min_q and lows[min_q[-1]] >= lows[i]:
            min_q.pop()
        min_q.append(i)
        if max_q[0] <= i - period:
            max_q.popleft()
        if min_q[0] <= i - period:
            min_q.popleft()
        if i >= period - 1:
            out.append((highs[max_q[0]], lows[min_q[0]]))
    return out


def _stoch_raw(highs: List[float], lows: List[float], closes: List[float], period: int,
               neutral: float = 50.0) -> List[float]:
    out = []
    offset = period - 1
    for j, (highest, lowest) in enumerate(_sliding_extrema(highs, lows, period)):
        price_range = highest - lowest
        if price_range == 0:
            out.append(neutral)
        else:
            out.append((closes[j + offset] - lowest) / price_range * 100.0)
    return out


def _true_ranges(highs: List[float], lows: List[float], closes: List[float]) -> List[float]:
    """True range for candles 1..n-1."""
    return [
        max(highs[i] - lows[i], abs(highs[i] - closes[i - 1]), abs(lows[i] - closes[i - 1]))
        for i in range(1, len(closes))
    ]


def sma_series(values: Sequence[float], period: int) -> np.ndarray:
    period = check_period(period)
    return _array(_sma_list(_to_list(values), period))


def ema_series(values: Sequence[float], period: int) -> np.ndarray:
    """EMA seeded with the SMA of the first `period` values."""
    period = check_period(period)
    return _array(_ema_list(_to_list(values), period))


def smma_series(values: Sequence[float], period: int) -> np.ndarray:
    """Smoothed (Wilder) moving average."""
    period = check_period(period)
    return _array(_smma_list(_to_list(values), period))


def rsi_series(values: Sequence[float], period: int = 14) -> np.ndarray:
    """Wilder RSI; first value at index `period`."""
    period = check_period(period)
    return _array(_rsi_list(_to_list(values), period))


def bollinger_series(values: Sequence[float], period: int = 20, std_dev: float = 2.0) -> BollingerSeries:
    """Bollinger Bands with population standard deviation."""
    period = check_period(period)
    window = pd.Series(_to_list(values), dtype=float).rolling(period)
    middle = window.mean().to_numpy(copy=True)[period - 1:]
    std = window.std(ddof=0).to_numpy(copy=True)[period - 1:]
    return BollingerSeries(middle + std_dev * std, middle, middle - std_dev * std)


def macd_series(values: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> MACDSeries:
    """MACD line from two EMA series, signal EMA of the line, and histogram."""
    fast = check_period(fast, 'fast period')
    slow = check_period(slow, 'slow period')
    signal = check_period(signal, 'signal period')
    data = _to_list(values)
    fast_ema = _ema_list(data, fast)
    slow_ema = _ema_list(data, slow)
    start = max(fast, slow) - 1
    macd_line = [
        fast_ema[i - (fast - 1)] - slow_ema[i - (slow - 1)]
        for i in range(start, len(data))
    ]
    signal_line = _ema_list(macd_line, signal)
    if not signal_line:
        return MACDSeries(EMPTY.copy(), EMPTY.copy(), EMPTY.copy())
    macd_aligned = macd_line[signal - 1:]
    histogram = [m - s for m, s in zip(macd_aligned, signal_line)]
    return MACDSeries(_array(macd_aligned), _array(signal_line), _array(histogram))


def stochastic_series(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    k_period: int = 14,
    d_period: int = 3,
    smooth: int = 3
) -> StochasticSeries:
    """Slow stochastic: raw %K smoothed by `smooth`, %D = SMA(`d_period`) of %K."""
    k_period = check_period(k_period, 'k period')
    d_period = check_period(d_period, 'd period')
    smooth = check_period(smooth, 'smoothing')
    raw = _stoch_raw(_to_list(highs), _to_list(lows), _to_list(closes), k_period)
    k_line = _sma_list(raw, smooth)
    d_line = _sma_list(k_line, d_period)
    if not d_line:
        return StochasticSeries(EMPTY.copy(), EMPTY.copy())
    return StochasticSeries(_array(k_line[d_period - 1:]), _array(d_line))


def atr_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> np.ndarray:
    """Wilder ATR; first value at index `period`."""
    period = check_period(period)
    trs = _true_ranges(_to_list(highs), _to_list(lows), _to_list(closes))
    return _array(_smma_list(trs, period))


def cci_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 20) -> np.ndarray:
    period = check_period(period)
    typical = (np.asarray(highs, dtype=float) + np.asarray(lows, dtype=float) + np.asarray(closes, dtype=float)) / 3.0
    if len(typical) < period:
        return EMPTY.copy()
    windows = sliding_window_view(typical, period)
    means = windows.mean(axis=1)
    mean_dev = np.abs(windows - means[:, None]).mean(axis=1)
    # Flat window: mean deviation is 0 up to rounding
    flat = np.ptp(windows, axis=1) == 0
    out = np.zeros(len(means))
    np.divide(typical[period - 1:] - means, 0.015 * mean_dev, out=out, where=~flat)
    return out


def williams_r_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> np.ndarray:
    """Williams %R in [-100, 0]."""
    period = check_period(period)
    c = _to_list(closes)
    out = []
    offset = period - 1
    for j, (highest, lowest) in enumerate(_sliding_extrema(_to_list(highs), _to_list(lows), period)):
        price_range = highest - lowest
        if price_range == 0:
            out.append(-50.0)
        else:
            out.append((highest - c[j + offset]) / price_range * -100.0)
    return _array(out)


def stoch_rsi_series(
    closes: Sequence[float],
    rsi_period: int = 14,
    stoch_period: int = 14,
    k_smooth: int = 3,
    d_smooth: int = 3
) -> StochasticSeries:
    """Stochastic oscillator applied to the RSI series (0-100 scale)."""
    rsi_period = check_period(rsi_period, 'rsi period')
    stoch_period = check_period(stoch_period, 'stoch period')
    k_smooth = check_period(k_smooth, 'k smoothing')
    d_smooth = check_period(d_smooth, 'd smoothing')
    rsi = _rsi_list(_to_list(closes), rsi_period)
    raw = _stoch_raw(rsi, rsi, rsi, stoch_period)
    k_line = _sma_list(raw, k_smooth)
    d_line = _sma_list(k_line, d_smooth)
    if not d_line:
        return StochasticSeries(EMPTY.copy(), EMPTY.copy())
    return StochasticSeries(_array(k_line[d_smooth - 1:]), _array(d_line))


def adx_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> ADXSeries:
    """
    Average Directional Index with +DI/-DI.

    Directional movement and true range are Wilder-smoothed from candle 1;
    DX starts at candle `period` and ADX (Wilder average of DX) at
    candle 2*period - 1. DI values are returned aligned with ADX.
    """
    period = check_period(period)
    h = _to_list(highs)
    l = _to_list(lows)
    c = _to_list(closes)
    n = len(c)
    if n < 2 * period:
        return ADXSeries(EMPTY.copy(), EMPTY.copy(), EMPTY.copy())

    plus_dm = []
    minus_dm = []
    for i in range(1, n):
        up_move = h[i] - h[i - 1]
        down_move = l[i - 1] - l[i]
        plus_dm.append(up_move if up_move > down_move and up_move > 0 else 0.0)
        minus_dm.append(down_move if down_move > up_move and down_move > 0 else 0.0)
    trs = _true_ranges(h, l, c)

    smooth_plus = sum(plus_dm[:period])
    smooth_minus = sum(minus_dm[:period])
    smooth_tr = sum(trs[:period])

    dis = []
    dxs = []
    for j in range(period - 1, len(trs)):
        if j >= period:
            smooth_plus = smooth_plus - smooth_plus / period + plus_dm[j]
            smooth_minus = smooth_minus - smooth_minus / period + minus_dm[j]
            smooth_tr = smooth_tr - smooth_tr / period + trs[j]
        plus_di = smooth_plus / smooth_tr * 100.0 if smooth_tr > 0 else 0.0
        minus_di = smooth_minus / smooth_tr * 100.0 if smooth_tr > 0 else 0.0
        di_sum = plus_di + minus_di
        dis.append((plus_di, minus_di))
        dxs.append(abs(plus_di - minus_di) / di_sum * 100.0 if di_sum > 0 else 0.0)

    adx_values = _smma_list(dxs, period)
    aligned = dis[period - 1:]
    return ADXSeries(
        _array(adx_values),
        _array([d[0] for d in aligned]),
        _array([d[1] for d in aligned])
    )


def vwap_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], volumes: Sequence[float]) -> np.ndarray:
    """Cumulative VWAP from the start of the input."""
    h = _to_list(highs)
    l = _to_list(lows)
    c = _to_list(closes)
    v = _to_list(volumes)
    cum_pv = 0.0
    cum_vol = 0.0
    out = []
    for i in range(len(c)):
        typical = (h[i] + l[i] + c[i]) / 3.0
        cum_pv += typical * v[i]
        cum_vol += v[i]
        out.append(cum_pv / cum_vol if cum_vol > 0 else typical)
    return _array(out)

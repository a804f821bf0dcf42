"""
Stochastic family

- stochrsi-crossover: StochRSI %K/%D cross near an extreme
- smma-stoch: SMMA ribbon trend filter with a Stochastic cross entry

The SMMA ribbon compares six short smoothed averages against five long
ones. A trend counts when at least `trend_strength` short averages sit
entirely above (or below) the long ribbon and the ribbons overlap by no
more than `overlap_tolerance` percent of price.
"""

from dataclasses import dataclass

from ..indicators import SMMA, Stochastic, StochRSI
from ..models import CALL, PUT, Signal
from .base import Strategy, param

SHORT_SMMA_PERIODS = (3, 5, 7, 9, 11, 13)
LONG_SMMA_PERIODS = (30, 35, 40, 45, 50)


class StochRSICrossover(Strategy):
    id = 'stochrsi-crossover'
    name = 'Stochastic RSI Crossover'
    description = 'Trade K/D crossovers in extreme zones'

    @dataclass(frozen=True)
    class Params:
        rsi_period: int = param(14, 7, 21, 1)
        stoch_period: int = param(14, 7, 21, 1)
        k_smooth: int = param(3, 1, 5, 1)
        d_smooth: int = param(3, 1, 5, 1)
        oversold: float = param(20, 10, 30, 5)
        overbought: float = param(80, 70, 90, 5)

    def evaluate(self, window, p):
        if len(window) < p.rsi_period + p.stoch_period + p.k_smooth + p.d_smooth + 1:
            return None
        series = StochRSI.calculate(window, p.rsi_period, p.stoch_period, p.k_smooth, p.d_smooth)
        if len(series.k) < 2:
            return None

        k, d = float(series.k[-1]), float(series.d[-1])
        prev_k, prev_d = float(series.k[-2]), float(series.d[-2])
        indicators = {'stoch_rsi_k': k, 'stoch_rsi_d': d, 'prev_k': prev_k, 'prev_d': prev_d}

        if prev_k <= prev_d and k > d and k < p.oversold + 10:
            return Signal(CALL, min(1.0, (p.oversold + 10 - k) / 20), indicators, 'StochRSI bullish crossover')
        if prev_k >= prev_d and k < d and k > p.overbought - 10:
            return Signal(PUT, min(1.0, (k - p.overbought + 10) / 20), indicators, 'StochRSI bearish crossover')
        return Signal(None, 0.0, indicators)


class SMMAStochastic(Strategy):
    id = 'smma-stoch'
    name = 'SMMA + Stochastic'
    description = 'SMMA ribbon trend filter with Stochastic cross entries'

    @dataclass(frozen=True)
    class Params:
        stoch_k: int = param(14, 5, 21, 1)
        stoch_d: int = param(3, 2, 5, 1)
        stoch_smooth: int = param(3, 1, 5, 1)
        oversold: float = param(20, 10, 30, 5)
        overbought: float = param(80, 70, 90, 5)
        trend_strength: int = param(6, 3, 6, 1)
        overlap_tolerance: float = param(0, 0, 2, 1)

    def evaluate(self, window, p):
        if len(window) < max(LONG_SMMA_PERIODS) + 5:
            return None
        short = [SMMA.latest(window, period) for period in SHORT_SMMA_PERIODS]
        long = [SMMA.latest(window, period) for period in LONG_SMMA_PERIODS]
        if None in short or None in long:
            return None
        stoch = Stochastic.calculate(window, p.stoch_k, p.stoch_d, p.stoch_smooth)
        if len(stoch.k) < 2:
            return None

        k, d = float(stoch.k[-1]), float(stoch.d[-1])
        prev_k, prev_d = float(stoch.k[-2]), float(stoch.d[-2])

        short_min, short_max = min(short), max(short)
        long_min, long_max = min(long), max(long)
        above = sum(1 for v in short if v > long_max)
        below = sum(1 for v in short if v < long_min)

        overlap = 0.0
        if short_min < long_max and short_max > long_min:
            overlap = min(short_max, long_max) - max(short_min, long_min)
        price = float(window.closes[-1])
        overlap_pct = overlap / price * 100 if price > 0 else 0.0

        uptrend = above >= p.trend_strength and overlap_pct <= p.overlap_tolerance
        downtrend = below >= p.trend_strength and overlap_pct <= p.overlap_tolerance
        golden_cross = prev_k < prev_d and k >= d
        dead_cross = prev_k > prev_d and k <= d
        from_oversold = prev_k < p.oversold or k < p.oversold + 10
        from_overbought = prev_k > p.overbought or k > p.overbought - 10

        indicators = {
            'stoch_k': k, 'stoch_d': d, 'prev_stoch_k': prev_k, 'prev_stoch_d': prev_d,
            'short_above_long': float(above), 'short_below_long': float(below),
            'overlap_percent': overlap_pct,
            'short_ma_avg': sum(short) / len(short), 'long_ma_avg': sum(long) / len(long),
        }

        ribbon = len(SHORT_SMMA_PERIODS)
        if uptrend and golden_cross and from_oversold:
            confidence = above / ribbon * 0.5 + (p.oversold - min(prev_k, k)) / 40 * 0.5
            return Signal(
                CALL, min(1.0, confidence), indicators,
                f"Uptrend ({above}/{ribbon} MAs above) + Stoch golden cross from {prev_k:.1f}"
            )
        if downtrend and dead_cross and from_overbought:
            confidence = below / ribbon * 0.5 + (max(prev_k, k) - p.overbought) / 40 * 0.5
            return Signal(
                PUT, min(1.0, confidence), indicators,
                f"Downtrend ({below}/{ribbon} MAs below) + Stoch dead cross from {prev_k:.1f}"
            )
        return Signal(None, 0.0, indicators)


STOCHASTIC_STRATEGIES = [StochRSICrossover, SMMAStochastic]

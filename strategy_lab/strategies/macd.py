"""
MACD family

- macd-crossover: MACD line crossing its signal line
- macd-histogram-reversal: histogram turning after a run in one direction
- macd-zero-cross: MACD line crossing zero
"""

from dataclasses import dataclass

from ..indicators import MACD
from ..models import CALL, PUT, Signal
from .base import Strategy, param


@dataclass(frozen=True)
class _MACDParams:
    fast_period: int = param(12, 8, 16, 1)
    slow_period: int = param(26, 20, 32, 1)
    signal_period: int = param(9, 6, 12, 1)


def _last(series, count: int):
    """Last `count` MACD rows as (macd, signal, histogram) float tuples, oldest first."""
    return [
        (float(series.macd[i]), float(series.signal[i]), float(series.histogram[i]))
        for i in range(-count, 0)
    ]


class MACDCrossover(Strategy):
    id = 'macd-crossover'
    name = 'MACD Crossover'
    description = 'Trade MACD and Signal line crossovers'
    Params = _MACDParams

    def evaluate(self, window, p):
        if len(window) < p.slow_period + p.signal_period + 2:
            return None
        series = MACD.calculate(window, p.fast_period, p.slow_period, p.signal_period)
        if len(series.macd) < 2:
            return None

        (prev_macd, prev_signal, _), (macd, signal, hist) = _last(series, 2)
        indicators = {
            'macd': macd, 'signal': signal, 'histogram': hist,
            'prev_macd': prev_macd, 'prev_signal': prev_signal,
        }
        confidence = min(1.0, abs(hist) / 0.5)
        if prev_macd <= prev_signal and macd > signal:
            return Signal(CALL, confidence, indicators, 'MACD bullish crossover')
        if prev_macd >= prev_signal and macd < signal:
            return Signal(PUT, confidence, indicators, 'MACD bearish crossover')
        return Signal(None, 0.0, indicators)


class MACDHistogramReversal(Strategy):
    id = 'macd-histogram-reversal'
    name = 'MACD Histogram Reversal'
    description = 'Trade when MACD histogram changes direction'

    @dataclass(frozen=True)
    class Params(_MACDParams):
        min_histogram: float = param(0.1, 0.05, 0.5, 0.05)

    def evaluate(self, window, p):
        if len(window) < p.slow_period + p.signal_period + 3:
            return None
        series = MACD.calculate(window, p.fast_period, p.slow_period, p.signal_period)
        if len(series.macd) < 3:
            return None

        (_, _, hist2), (_, _, prev_hist), (macd, signal, hist) = _last(series, 3)
        indicators = {'macd': macd, 'signal': signal, 'histogram': hist, 'prev_histogram': prev_hist}
        large_enough = abs(hist) >= p.min_histogram

        if hist2 < prev_hist < 0 and hist > prev_hist and large_enough:
            confidence = (hist - prev_hist) / p.min_histogram
            return Signal(CALL, min(1.0, confidence), indicators, 'MACD histogram bullish reversal')
        if hist2 > prev_hist > 0 and hist < prev_hist and large_enough:
            confidence = (prev_hist - hist) / p.min_histogram
            return Signal(PUT, min(1.0, confidence), indicators, 'MACD histogram bearish reversal')
        return Signal(None, 0.0, indicators)


class MACDZeroCross(Strategy):
    id = 'macd-zero-cross'
    name = 'MACD Zero Line Cross'
    description = 'Trade when MACD crosses the zero line'
    Params = _MACDParams

    def evaluate(self, window, p):
        if len(window) < p.slow_period + p.signal_period + 2:
            return None
        series = MACD.calculate(window, p.fast_period, p.slow_period, p.signal_period)
        if len(series.macd) < 2:
            return None

        (prev_macd, _, _), (macd, signal, hist) = _last(series, 2)
        indicators = {'macd': macd, 'signal': signal, 'histogram': hist, 'prev_macd': prev_macd}
        confidence = min(1.0, abs(macd) / 0.5)
        if prev_macd <= 0 < macd:
            return Signal(CALL, confidence, indicators, 'MACD zero line bullish cross')
        if prev_macd >= 0 > macd:
            return Signal(PUT, confidence, indicators, 'MACD zero line bearish cross')
        return Signal(None, 0.0, indicators)


MACD_STRATEGIES = [MACDCrossover, MACDHistogramReversal, MACDZeroCross]

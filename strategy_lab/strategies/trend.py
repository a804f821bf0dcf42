"""
Trend family

- adx-di-crossover: +DI/-DI cross while ADX confirms a trending market

Best for: markets with ADX above ~25. Below the threshold no signal is
produced regardless of the DI lines.
"""

from dataclasses import dataclass

from ..indicators import ADX
from ..models import CALL, PUT, Signal
from .base import Strategy, param

MIN_CANDLES = 50


class ADXDICrossover(Strategy):
    id = 'adx-di-crossover'
    name = 'ADX + DI Crossover'
    description = 'Enter on DI crossovers when ADX confirms trend strength'

    @dataclass(frozen=True)
    class Params:
        adx_period: int = param(14, 7, 21, 1)
        adx_threshold: float = param(25, 15, 40, 5)

    def evaluate(self, window, p):
        if len(window) < max(MIN_CANDLES, 2 * p.adx_period + 1):
            return None
        series = ADX.calculate(window, p.adx_period)
        if len(series.adx) < 2:
            return None

        adx = float(series.adx[-1])
        plus_di, minus_di = float(series.plus_di[-1]), float(series.minus_di[-1])
        prev_plus_di, prev_minus_di = float(series.plus_di[-2]), float(series.minus_di[-2])
        indicators = {
            'adx': adx, 'plus_di': plus_di, 'minus_di': minus_di,
            'prev_plus_di': prev_plus_di, 'prev_minus_di': prev_minus_di,
        }

        if adx < p.adx_threshold:
            return Signal(None, 0.0, indicators, f"ADX too low ({adx:.1f})")

        prev_plus_higher = prev_plus_di > prev_minus_di
        plus_higher = plus_di > minus_di
        confidence = min(0.5 + adx / 100, 0.85)
        if not prev_plus_higher and plus_higher:
            return Signal(CALL, confidence, indicators, f"+DI crossed above -DI (ADX: {adx:.1f})")
        if prev_plus_higher and not plus_higher:
            return Signal(PUT, confidence, indicators, f"-DI crossed above +DI (ADX: {adx:.1f})")
        return Signal(None, 0.0, indicators)


TREND_STRATEGIES = [ADXDICrossover]

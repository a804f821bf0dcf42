"""
ATR family

- atr-channel-breakout: close crossing the prior range widened by ATR
- atr-volatility-expansion: ATR spike, traded in the candle's direction
"""

from dataclasses import dataclass

from ..indicators import ATR
from ..models import CALL, PUT, Signal
from .base import Strategy, param


class ATRChannelBreakout(Strategy):
    id = 'atr-channel-breakout'
    name = 'ATR Channel Breakout'
    description = 'Trade breakouts when price exceeds ATR-based channels'

    @dataclass(frozen=True)
    class Params:
        atr_period: int = param(14, 7, 21, 1)
        multiplier: float = param(1.5, 0.5, 3.0, 0.25)
        lookback: int = param(20, 10, 50, 5)

    def evaluate(self, window, p):
        if len(window) < max(p.atr_period + 1, p.lookback) + 1:
            return None
        atr = ATR.latest(window, p.atr_period)
        if atr is None:
            return None

        prev_high = float(window.highs[-p.lookback - 1:-1].max())
        prev_low = float(window.lows[-p.lookback - 1:-1].min())
        close, prev_close = float(window.closes[-1]), float(window.closes[-2])
        upper = prev_high + atr * p.multiplier
        lower = prev_low - atr * p.multiplier

        indicators = {
            'atr': atr, 'prev_high': prev_high, 'prev_low': prev_low,
            'upper_breakout': upper, 'lower_breakout': lower, 'price': close,
        }
        if atr <= 0:
            return Signal(None, 0.0, indicators)

        if prev_close < upper <= close:
            return Signal(CALL, min(1.0, (close - upper) / atr), indicators, 'ATR breakout above channel')
        if prev_close > lower >= close:
            return Signal(PUT, min(1.0, (lower - close) / atr), indicators, 'ATR breakout below channel')
        return Signal(None, 0.0, indicators)


class ATRVolatilityExpansion(Strategy):
    id = 'atr-volatility-expansion'
    name = 'ATR Volatility Expansion'
    description = 'Trade in direction of move when volatility expands'

    @dataclass(frozen=True)
    class Params:
        atr_period: int = param(14, 7, 21, 1)
        expansion_multiplier: float = param(1.5, 1.2, 2.5, 0.1)
        avg_period: int = param(20, 10, 30, 5)

    def evaluate(self, window, p):
        if len(window) < p.atr_period + p.avg_period + 1:
            return None
        atr = ATR.calculate(window, p.atr_period)
        if len(atr) < p.avg_period + 1:
            return None

        current = float(atr[-1])
        average = float(atr[-p.avg_period - 1:-1].mean())
        ratio = current / average if average > 0 else 0.0
        indicators = {'atr': current, 'avg_atr': average, 'ratio': ratio}

        if average <= 0 or current <= average * p.expansion_multiplier:
            return Signal(None, 0.0, indicators)

        move = float(window.closes[-1] - window.opens[-1])
        indicators['price_move'] = move
        confidence = min(1.0, (ratio - 1) / 0.5)
        if move > 0:
            return Signal(CALL, confidence, indicators, 'ATR expansion bullish')
        if move < 0:
            return Signal(PUT, confidence, indicators, 'ATR expansion bearish')
        return Signal(None, 0.0, indicators)


ATR_STRATEGIES = [ATRChannelBreakout, ATRVolatilityExpansion]

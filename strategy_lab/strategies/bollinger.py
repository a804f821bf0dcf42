"""
Bollinger Band family

- bollinger-bounce: reversal after a band touch
- bollinger-breakout: consecutive closes outside a band
- bollinger-squeeze: first expansion after a low-bandwidth stretch
"""

from dataclasses import dataclass

import numpy as np

from ..indicators import BollingerBands
from ..models import CALL, PUT, Signal
from .base import Strategy, param


def _band_indicators(upper: float, middle: float, lower: float, price: float) -> dict:
    return {'bb_upper': upper, 'bb_middle': middle, 'bb_lower': lower, 'price': price}


class BollingerBounce(Strategy):
    id = 'bollinger-bounce'
    name = 'Bollinger Band Bounce'
    description = 'Trade reversals when price bounces off Bollinger Bands'

    @dataclass(frozen=True)
    class Params:
        period: int = param(20, 10, 30, 2)
        std_dev: float = param(2, 1.5, 3, 0.25)
        touch_threshold: float = param(0.001, 0.0005, 0.005, 0.0005)

    def evaluate(self, window, p):
        if len(window) < p.period + 2:
            return None
        bands = BollingerBands.calculate(window, p.period, p.std_dev)
        if len(bands.middle) < 2:
            return None

        upper, middle, lower = float(bands.upper[-1]), float(bands.middle[-1]), float(bands.lower[-1])
        prev_upper, prev_lower = float(bands.upper[-2]), float(bands.lower[-2])
        close, prev_close = float(window.closes[-1]), float(window.closes[-2])

        indicators = _band_indicators(upper, middle, lower, close)
        indicators['bandwidth'] = (upper - lower) / middle if middle else 0.0

        if prev_close <= prev_lower * (1 + p.touch_threshold) and close > prev_close:
            half_width = middle - lower
            confidence = (close - prev_close) / half_width * 2 if half_width > 0 else 1.0
            return Signal(CALL, min(1.0, confidence), indicators, 'Bollinger lower band bounce')
        if prev_close >= prev_upper * (1 - p.touch_threshold) and close < prev_close:
            half_width = upper - middle
            confidence = (prev_close - close) / half_width * 2 if half_width > 0 else 1.0
            return Signal(PUT, min(1.0, confidence), indicators, 'Bollinger upper band bounce')
        return Signal(None, 0.0, indicators)


class BollingerBreakout(Strategy):
    id = 'bollinger-breakout'
    name = 'Bollinger Band Breakout'
    description = 'Trade momentum when price breaks outside Bollinger Bands'

    @dataclass(frozen=True)
    class Params:
        period: int = param(20, 10, 30, 2)
        std_dev: float = param(2, 1.5, 3, 0.25)
        confirm_bars: int = param(2, 1, 3, 1)

    def evaluate(self, window, p):
        span = p.confirm_bars + 1
        if len(window) < p.period + span:
            return None
        bands = BollingerBands.calculate(window, p.period, p.std_dev)
        if len(bands.middle) < span:
            return None

        uppers, lowers = bands.upper[-span:], bands.lower[-span:]
        closes = window.closes[-span:]
        upper, middle, lower = float(uppers[-1]), float(bands.middle[-1]), float(lowers[-1])
        close = float(closes[-1])
        indicators = _band_indicators(upper, middle, lower, close)

        # The breakout must start from inside the bands
        if not lowers[0] < closes[0] < uppers[0]:
            return Signal(None, 0.0, indicators)

        if bool(np.all(closes[1:] > uppers[1:])):
            half_width = upper - middle
            confidence = (close - upper) / half_width if half_width > 0 else 1.0
            return Signal(CALL, min(1.0, confidence), indicators, 'Bollinger bullish breakout')
        if bool(np.all(closes[1:] < lowers[1:])):
            half_width = middle - lower
            confidence = (lower - close) / half_width if half_width > 0 else 1.0
            return Signal(PUT, min(1.0, confidence), indicators, 'Bollinger bearish breakout')
        return Signal(None, 0.0, indicators)


class BollingerSqueeze(Strategy):
    id = 'bollinger-squeeze'
    name = 'Bollinger Band Squeeze'
    description = 'Trade after volatility contraction (squeeze) ends'

    @dataclass(frozen=True)
    class Params:
        period: int = param(20, 10, 30, 2)
        std_dev: float = param(2, 1.5, 3, 0.25)
        squeeze_lookback: int = param(20, 10, 30, 5)
        squeeze_threshold: float = param(0.5, 0.3, 0.8, 0.1)

    def evaluate(self, window, p):
        span = p.squeeze_lookback + 1
        if len(window) < p.period + span:
            return None
        bands = BollingerBands.calculate(window, p.period, p.std_dev)
        if len(bands.middle) < span:
            return None

        middles = bands.middle[-span:]
        if np.any(middles <= 0):
            return Signal(None, 0.0, {})
        widths = (bands.upper[-span:] - bands.lower[-span:]) / middles
        avg_width = float(widths[:-1].mean())
        width, prev_width = float(widths[-1]), float(widths[-2])

        was_squeeze = prev_width < avg_width * p.squeeze_threshold
        expanding = prev_width > 0 and width > prev_width * 1.1
        indicators = {'bandwidth': width, 'avg_bandwidth': avg_width, 'squeeze': float(was_squeeze)}
        if not (was_squeeze and expanding):
            return Signal(None, 0.0, indicators)

        close, prev_close = float(window.closes[-1]), float(window.closes[-2])
        middle = float(middles[-1])
        indicators.update(_band_indicators(float(bands.upper[-1]), middle, float(bands.lower[-1]), close))
        confidence = min(1.0, (width - prev_width) / prev_width)

        if close > prev_close and close > middle:
            return Signal(CALL, confidence, indicators, 'Bollinger squeeze bullish breakout')
        if close < prev_close and close < middle:
            return Signal(PUT, confidence, indicators, 'Bollinger squeeze bearish breakout')
        return Signal(None, 0.0, indicators)


BOLLINGER_STRATEGIES = [BollingerBounce, BollingerBreakout, BollingerSqueeze]

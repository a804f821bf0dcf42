"""
CCI and Williams %R families

- cci-ob-os: CCI leaving the +/-100 zone
- cci-zero-cross: CCI crossing zero and holding for `confirm_bars`
- williams-r-ob-os: %R leaving the -80/-20 zone
- williams-r-middle-cross: %R crossing the middle line and holding
"""

from dataclasses import dataclass

import numpy as np

from ..indicators import CCI, WilliamsR
from ..models import CALL, PUT, Signal
from .base import Strategy, param


def _held_cross(values: np.ndarray, level: float):
    """
    Direction of a cross of `level` at values[0] that held for every later value.

    Returns CALL, PUT or None.
    """
    first, rest = float(values[0]), values[1:]
    if first < level and bool(np.all(rest >= level)):
        return CALL
    if first > level and bool(np.all(rest <= level)):
        return PUT
    return None


class CCIOverboughtOversold(Strategy):
    id = 'cci-ob-os'
    name = 'CCI Overbought/Oversold'
    description = 'Trade reversals when CCI reaches extreme levels'

    @dataclass(frozen=True)
    class Params:
        period: int = param(20, 10, 40, 2)
        overbought: float = param(100, 80, 200, 10)
        oversold: float = param(-100, -200, -80, 10)

    def evaluate(self, window, p):
        if len(window) < p.period + 1:
            return None
        cci = CCI.calculate(window, p.period)
        if len(cci) < 2:
            return None

        current, prev = float(cci[-1]), float(cci[-2])
        indicators = {'cci': current, 'prev_cci': prev}
        if prev < p.oversold <= current:
            return Signal(CALL, min(1.0, abs(prev - p.oversold) / 50), indicators, 'CCI oversold reversal')
        if prev > p.overbought >= current:
            return Signal(PUT, min(1.0, abs(prev - p.overbought) / 50), indicators, 'CCI overbought reversal')
        return Signal(None, 0.0, indicators)


class CCIZeroCross(Strategy):
    id = 'cci-zero-cross'
    name = 'CCI Zero Line Cross'
    description = 'Trade momentum when CCI crosses the zero line'

    @dataclass(frozen=True)
    class Params:
        period: int = param(20, 10, 40, 2)
        confirm_bars: int = param(2, 1, 5, 1)

    def evaluate(self, window, p):
        if len(window) < p.period + p.confirm_bars:
            return None
        cci = CCI.calculate(window, p.period)
        if len(cci) < p.confirm_bars + 1:
            return None

        recent = cci[-(p.confirm_bars + 1):]
        current = float(recent[-1])
        indicators = {'cci': current, 'prev_cci': float(recent[0])}
        direction = _held_cross(recent, 0.0)
        if direction == CALL:
            return Signal(CALL, min(1.0, current / 100), indicators, 'CCI bullish zero cross')
        if direction == PUT:
            return Signal(PUT, min(1.0, abs(current) / 100), indicators, 'CCI bearish zero cross')
        return Signal(None, 0.0, indicators)


class WilliamsROverboughtOversold(Strategy):
    id = 'williams-r-ob-os'
    name = 'Williams %R Overbought/Oversold'
    description = 'Trade reversals when Williams %R reaches extreme levels'

    @dataclass(frozen=True)
    class Params:
        period: int = param(14, 7, 28, 1)
        overbought: float = param(-20, -30, -10, 5)
        oversold: float = param(-80, -90, -70, 5)

    def evaluate(self, window, p):
        if len(window) < p.period + 1:
            return None
        wr = WilliamsR.calculate(window, p.period)
        if len(wr) < 2:
            return None

        current, prev = float(wr[-1]), float(wr[-2])
        indicators = {'williams_r': current, 'prev_williams_r': prev}
        if prev < p.oversold <= current:
            return Signal(
                CALL, min(1.0, abs(prev - p.oversold) / 20), indicators, 'Williams %R oversold reversal'
            )
        if prev > p.overbought >= current:
            return Signal(
                PUT, min(1.0, abs(prev - p.overbought) / 20), indicators, 'Williams %R overbought reversal'
            )
        return Signal(None, 0.0, indicators)


class WilliamsRMiddleCross(Strategy):
    id = 'williams-r-middle-cross'
    name = 'Williams %R Middle Cross'
    description = 'Trade momentum when Williams %R crosses the -50 line'

    @dataclass(frozen=True)
    class Params:
        period: int = param(14, 7, 28, 1)
        middle_line: float = param(-50, -60, -40, 5)
        confirm_bars: int = param(2, 1, 5, 1)

    def evaluate(self, window, p):
        if len(window) < p.period + p.confirm_bars:
            return None
        wr = WilliamsR.calculate(window, p.period)
        if len(wr) < p.confirm_bars + 1:
            return None

        recent = wr[-(p.confirm_bars + 1):]
        current = float(recent[-1])
        indicators = {'williams_r': current, 'prev_williams_r': float(recent[0])}
        direction = _held_cross(recent, p.middle_line)
        confidence = min(1.0, abs(current - p.middle_line) / 30)
        if direction == CALL:
            return Signal(CALL, confidence, indicators, 'Williams %R bullish middle cross')
        if direction == PUT:
            return Signal(PUT, confidence, indicators, 'Williams %R bearish middle cross')
        return Signal(None, 0.0, indicators)


CCI_STRATEGIES = [CCIOverboughtOversold, CCIZeroCross]
WILLIAMS_R_STRATEGIES = [WilliamsROverboughtOversold, WilliamsRMiddleCross]

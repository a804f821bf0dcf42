"""
RSI family

Strategies:
- rsi-ob-os: RSI leaving the oversold/overbought zone
- rsi-divergence: price at a recent extreme while RSI is not
- rsi-bb: RSI extreme confirmed by a Bollinger Band touch
- rsi-stoch: RSI and Stochastic both at an extreme
- rsi-trend: RSI held above/below 50 with momentum

Best for: ranging markets (reversal variants), steady trends (rsi-trend)
"""

from dataclasses import dataclass

from ..indicators import RSI, BollingerBands, Stochastic
from ..models import CALL, PUT, Signal
from .base import Strategy, param


class RSIOverboughtOversold(Strategy):
    id = 'rsi-ob-os'
    name = 'RSI Overbought/Oversold'
    description = 'Trade reversals when RSI reaches extreme levels'

    @dataclass(frozen=True)
    class Params:
        period: int = param(14, 5, 30, 1)
        oversold: float = param(30, 20, 40, 5)
        overbought: float = param(70, 60, 80, 5)

    def evaluate(self, window, p):
        if len(window) < p.period + 1:
            return None
        rsi = RSI.calculate(window, p.period)
        if len(rsi) < 2:
            return None

        current, prev = float(rsi[-1]), float(rsi[-2])
        indicators = {'rsi': current, 'prev_rsi': prev}

        if prev < p.oversold <= current:
            return Signal(CALL, min(1.0, (p.oversold - prev) / 10), indicators, 'RSI oversold reversal')
        if prev > p.overbought >= current:
            return Signal(PUT, min(1.0, (prev - p.overbought) / 10), indicators, 'RSI overbought reversal')
        return Signal(None, 0.0, indicators)


class RSIDivergence(Strategy):
    id = 'rsi-divergence'
    name = 'RSI Divergence'
    description = 'Trade divergences between price and RSI'

    @dataclass(frozen=True)
    class Params:
        period: int = param(14, 7, 21, 1)
        lookback: int = param(10, 5, 20, 1)
        min_divergence: float = param(5, 2, 15, 1)

    def evaluate(self, window, p):
        if len(window) < p.period + p.lookback:
            return None
        rsi = RSI.calculate(window, p.period)
        if len(rsi) < p.lookback:
            return None

        closes = window.closes[-p.lookback:]
        recent_rsi = rsi[-p.lookback:]
        price_ll, price_hh = float(closes.min()), float(closes.max())
        rsi_ll, rsi_hh = float(recent_rsi.min()), float(recent_rsi.max())
        price = float(closes[-1])
        current = float(rsi[-1])

        indicators = {
            'rsi': current, 'price_ll': price_ll, 'price_hh': price_hh,
            'rsi_ll': rsi_ll, 'rsi_hh': rsi_hh,
        }

        # Price at its low while RSI holds above its own low
        if price <= price_ll * 1.01 and current > rsi_ll + p.min_divergence:
            return Signal(CALL, min(1.0, (current - rsi_ll) / 20), indicators, 'RSI bullish divergence')
        if price >= price_hh * 0.99 and current < rsi_hh - p.min_divergence:
            return Signal(PUT, min(1.0, (rsi_hh - current) / 20), indicators, 'RSI bearish divergence')
        return Signal(None, 0.0, indicators)


class RSIBollingerBands(Strategy):
    id = 'rsi-bb'
    name = 'RSI + Bollinger Bands'
    description = 'Combine RSI extremes with Bollinger Band touches'

    @dataclass(frozen=True)
    class Params:
        rsi_period: int = param(14, 7, 21, 1)
        bb_period: int = param(20, 10, 30, 2)
        bb_std_dev: float = param(2, 1, 3, 0.5)
        oversold: float = param(30, 20, 40, 5)
        overbought: float = param(70, 60, 80, 5)

    def evaluate(self, window, p):
        if len(window) < max(p.rsi_period, p.bb_period) + 1:
            return None
        rsi = RSI.latest(window, p.rsi_period)
        bb = BollingerBands.latest(window, p.bb_period, p.bb_std_dev)
        if rsi is None or bb is None:
            return None

        price = float(window.closes[-1])
        indicators = {
            'rsi': rsi, 'bb_upper': bb.upper, 'bb_middle': bb.middle,
            'bb_lower': bb.lower, 'price': price,
        }
        # A zero-width band means no volatility to revert from
        if bb.upper <= bb.lower or price <= 0:
            return Signal(None, 0.0, indicators)

        if rsi < p.oversold and price <= bb.lower * 1.001:
            confidence = (p.oversold - rsi) / 20 + (bb.lower - price) / price
            return Signal(CALL, min(1.0, confidence), indicators, 'RSI oversold + BB lower touch')
        if rsi > p.overbought and price >= bb.upper * 0.999:
            confidence = (rsi - p.overbought) / 20 + (price - bb.upper) / price
            return Signal(PUT, min(1.0, confidence), indicators, 'RSI overbought + BB upper touch')
        return Signal(None, 0.0, indicators)


class RSIStochastic(Strategy):
    id = 'rsi-stoch'
    name = 'RSI + Stochastic'
    description = 'Double confirmation with RSI and Stochastic oscillators'

    @dataclass(frozen=True)
    class Params:
        rsi_period: int = param(14, 7, 21, 1)
        stoch_k: int = param(14, 5, 21, 1)
        stoch_d: int = param(3, 2, 5, 1)
        stoch_smooth: int = param(3, 1, 5, 1)
        oversold: float = param(20, 10, 30, 5)
        overbought: float = param(80, 70, 90, 5)

    def evaluate(self, window, p):
        if len(window) < max(p.rsi_period, p.stoch_k + p.stoch_d) + 1:
            return None
        rsi = RSI.latest(window, p.rsi_period)
        stoch = Stochastic.latest(window, p.stoch_k, p.stoch_d, p.stoch_smooth)
        if rsi is None or stoch is None:
            return None

        indicators = {'rsi': rsi, 'stoch_k': stoch.k, 'stoch_d': stoch.d}

        if rsi < p.oversold + 10 and stoch.k < p.oversold and stoch.d < p.oversold:
            confidence = ((p.oversold - stoch.k) + (p.oversold + 10 - rsi)) / 40
            return Signal(CALL, min(1.0, confidence), indicators, 'RSI + Stoch both oversold')
        if rsi > p.overbought - 10 and stoch.k > p.overbought and stoch.d > p.overbought:
            confidence = ((stoch.k - p.overbought) + (rsi - p.overbought + 10)) / 40
            return Signal(PUT, min(1.0, confidence), indicators, 'RSI + Stoch both overbought')
        return Signal(None, 0.0, indicators)


class RSITrend(Strategy):
    id = 'rsi-trend'
    name = 'RSI Trend Following'
    description = 'Follow momentum using RSI above/below 50'

    @dataclass(frozen=True)
    class Params:
        period: int = param(14, 7, 21, 1)
        threshold: float = param(5, 2, 15, 1)
        confirm_bars: int = param(3, 2, 5, 1)

    def evaluate(self, window, p):
        if len(window) < p.period + p.confirm_bars:
            return None
        rsi = RSI.calculate(window, p.period)
        if len(rsi) < p.confirm_bars:
            return None

        recent = [float(v) for v in rsi[-p.confirm_bars:]]
        current = recent[-1]
        all_above = all(v > 50 + p.threshold for v in recent)
        all_below = all(v < 50 - p.threshold for v in recent)
        # One point of slack per bar
        rising = all(b >= a - 1 for a, b in zip(recent, recent[1:]))
        falling = all(b <= a + 1 for a, b in zip(recent, recent[1:]))

        indicators = {'rsi': current, 'rising': float(rising), 'falling': float(falling)}
        if all_above and rising:
            return Signal(CALL, min(1.0, (current - 50) / 30), indicators, 'RSI trend bullish')
        if all_below and falling:
            return Signal(PUT, min(1.0, (50 - current) / 30), indicators, 'RSI trend bearish')
        return Signal(None, 0.0, indicators)


RSI_STRATEGIES = [RSIOverboughtOversold, RSIDivergence, RSIBollingerBands, RSIStochastic, RSITrend]

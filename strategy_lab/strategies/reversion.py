"""
Mean-reversion family

- vwap-reversion: close stretched away from the cumulative VWAP with an
  RSI extreme in the same direction
- zmr-60: z-score of the last log return against the previous
  `lookback_returns` returns, confirmed by at least `confirm_min` of
  RSI, Bollinger position and wick rejection

Example:
    strategy = ZScoreReversion()
    signal = strategy.generate_signal(window, {'z_threshold': 2.0})
"""

from dataclasses import dataclass

import numpy as np

from ..indicators import RSI, BollingerBands, VWAP
from ..models import CALL, PUT, Signal
from .base import Strategy, param


class VWAPReversion(Strategy):
    id = 'vwap-reversion'
    name = 'VWAP Reversion'
    description = 'Fade stretches away from VWAP when RSI agrees'

    @dataclass(frozen=True)
    class Params:
        deviation_pct: float = param(0.3, 0.1, 1.0, 0.1)
        rsi_period: int = param(14, 7, 21, 1)
        oversold: float = param(35, 25, 45, 5)
        overbought: float = param(65, 55, 75, 5)

    def evaluate(self, window, p):
        if len(window) < p.rsi_period + 1:
            return None
        vwap = VWAP.latest(window)
        rsi = RSI.latest(window, p.rsi_period)
        if vwap is None or rsi is None or vwap <= 0:
            return None

        price = float(window.closes[-1])
        deviation = (price - vwap) / vwap * 100
        indicators = {'vwap': vwap, 'rsi': rsi, 'deviation_pct': deviation, 'price': price}
        confidence = min(1.0, abs(deviation) / (2 * p.deviation_pct))

        if deviation <= -p.deviation_pct and rsi < p.oversold:
            return Signal(CALL, confidence, indicators, 'Price stretched below VWAP')
        if deviation >= p.deviation_pct and rsi > p.overbought:
            return Signal(PUT, confidence, indicators, 'Price stretched above VWAP')
        return Signal(None, 0.0, indicators)


class ZScoreReversion(Strategy):
    id = 'zmr-60'
    name = 'Z-Score Mean Reversion'
    description = 'Fade extreme single-candle returns with multi-factor confirmation'

    @dataclass(frozen=True)
    class Params:
        lookback_returns: int = param(60, 30, 120, 10)
        z_threshold: float = param(2.5, 1.5, 4.0, 0.25)
        rsi_period: int = param(7, 5, 14, 1)
        rsi_oversold: float = param(25, 15, 35, 5)
        rsi_overbought: float = param(75, 65, 85, 5)
        bb_period: int = param(20, 10, 30, 2)
        bb_std_dev: float = param(2, 1.5, 3, 0.25)
        wick_threshold: float = param(0.45, 0.3, 0.7, 0.05)
        confirm_min: int = param(2, 1, 3, 1)

    def evaluate(self, window, p):
        if len(window) < max(80, p.lookback_returns + 2):
            return None

        closes = window.closes
        positive = (closes[:-1] > 0) & (closes[1:] > 0)
        returns = np.log(closes[1:][positive] / closes[:-1][positive])
        if len(returns) < p.lookback_returns + 1:
            return None

        history = returns[-(p.lookback_returns + 1):-1]
        mu = float(history.mean())
        sigma = float(history.std())
        if sigma == 0:
            return Signal(None, 0.0, {}, 'Zero volatility')

        r_last = float(returns[-1])
        z = (r_last - mu) / sigma
        indicators = {'z': z, 'sigma': sigma, 'r_last': r_last, 'mu': mu}
        is_call = z <= -p.z_threshold
        is_put = z >= p.z_threshold
        if not (is_call or is_put):
            return Signal(None, 0.0, indicators)

        rsi = RSI.calculate(window, p.rsi_period)
        current_rsi = float(rsi[-1]) if len(rsi) > 0 else 50.0
        prev_rsi = float(rsi[-2]) if len(rsi) > 1 else 50.0
        if is_call:
            rsi_ok = current_rsi < p.rsi_oversold or prev_rsi < p.rsi_oversold <= current_rsi
        else:
            rsi_ok = current_rsi > p.rsi_overbought or prev_rsi > p.rsi_overbought >= current_rsi

        bb = BollingerBands.latest(window, p.bb_period, p.bb_std_dev)
        bb_position = 0.5
        if bb is not None and bb.upper > bb.lower:
            bb_position = (float(closes[-1]) - bb.lower) / (bb.upper - bb.lower)
        bb_ok = bb_position < 0.10 if is_call else bb_position > 0.90

        candle = window.last
        candle_range = candle.high - candle.low
        wick_ratio = 0.0
        if candle_range > 0:
            if is_call:
                wick_ratio = (min(candle.open, candle.close) - candle.low) / candle_range
            else:
                wick_ratio = (candle.high - max(candle.open, candle.close)) / candle_range
        wick_ok = wick_ratio >= p.wick_threshold

        confirms = int(rsi_ok) + int(bb_ok) + int(wick_ok)
        indicators.update({
            'rsi': current_rsi, 'bb_position': bb_position,
            'wick_ratio': wick_ratio, 'confirm_count': float(confirms),
        })
        if confirms < p.confirm_min:
            return Signal(None, 0.0, indicators, f"z={z:.2f}, confirms={confirms}/{p.confirm_min}")

        confidence = 0.60 + min((abs(z) - p.z_threshold) * 0.5, 0.20)
        if confirms == 2:
            confidence += 0.05
        elif confirms == 3:
            confidence += 0.10
        direction = CALL if is_call else PUT
        return Signal(
            direction, min(confidence, 0.90), indicators,
            f"z={z:.1f}, RSI={current_rsi:.1f}, BBpos={bb_position:.2f}, wick={wick_ratio:.2f}"
        )


REVERSION_STRATEGIES = [VWAPReversion, ZScoreReversion]

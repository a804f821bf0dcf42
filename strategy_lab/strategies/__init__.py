"""
Signal strategies for binary-options backtesting.

Each strategy declares a typed parameter schema (searchable by the
optimizers) and maps a candle window to a CALL/PUT signal or nothing.

Available families:
- RSI: rsi-ob-os, rsi-divergence, rsi-bb, rsi-stoch, rsi-trend
- Bollinger: bollinger-bounce, bollinger-breakout, bollinger-squeeze
- MACD: macd-crossover, macd-histogram-reversal, macd-zero-cross
- Stochastic: stochrsi-crossover, smma-stoch
- ATR: atr-channel-breakout, atr-volatility-expansion
- CCI: cci-ob-os, cci-zero-cross
- Williams %R: williams-r-ob-os, williams-r-middle-cross
- Trend: adx-di-crossover
- Mean reversion: vwap-reversion, zmr-60
"""

from .base import Strategy, param
from .registry import StrategyRegistry
from .rsi import (
    RSIOverboughtOversold, RSIDivergence, RSIBollingerBands, RSIStochastic, RSITrend,
    RSI_STRATEGIES,
)
from .bollinger import BollingerBounce, BollingerBreakout, BollingerSqueeze, BOLLINGER_STRATEGIES
from .macd import MACDCrossover, MACDHistogramReversal, MACDZeroCross, MACD_STRATEGIES
from .stochastic import StochRSICrossover, SMMAStochastic, STOCHASTIC_STRATEGIES
from .atr import ATRChannelBreakout, ATRVolatilityExpansion, ATR_STRATEGIES
from .oscillators import (
    CCIOverboughtOversold, CCIZeroCross, WilliamsROverboughtOversold, WilliamsRMiddleCross,
    CCI_STRATEGIES, WILLIAMS_R_STRATEGIES,
)
from .trend import ADXDICrossover, TREND_STRATEGIES
from .reversion import VWAPReversion, ZScoreReversion, REVERSION_STRATEGIES

BUILTIN_STRATEGIES = (
    RSI_STRATEGIES
    + BOLLINGER_STRATEGIES
    + MACD_STRATEGIES
    + STOCHASTIC_STRATEGIES
    + ATR_STRATEGIES
    + CCI_STRATEGIES
    + WILLIAMS_R_STRATEGIES
    + TREND_STRATEGIES
    + REVERSION_STRATEGIES
)


def build_default_registry() -> StrategyRegistry:
    """Fresh registry holding one instance of every built-in strategy."""
    return StrategyRegistry(cls() for cls in BUILTIN_STRATEGIES)


__all__ = [
    'Strategy',
    'param',
    'StrategyRegistry',
    'build_default_registry',
    'BUILTIN_STRATEGIES',
    'RSIOverboughtOversold', 'RSIDivergence', 'RSIBollingerBands', 'RSIStochastic', 'RSITrend',
    'BollingerBounce', 'BollingerBreakout', 'BollingerSqueeze',
    'MACDCrossover', 'MACDHistogramReversal', 'MACDZeroCross',
    'StochRSICrossover', 'SMMAStochastic',
    'ATRChannelBreakout', 'ATRVolatilityExpansion',
    'CCIOverboughtOversold', 'CCIZeroCross',
    'WilliamsROverboughtOversold', 'WilliamsRMiddleCross',
    'ADXDICrossover',
    'VWAPReversion', 'ZScoreReversion',
]

"""
Technical indicators for strategy signal generation.

- series: incremental array functions (sma_series, rsi_series, ...)
- library: window-aware indicators with calculate()/latest()
- cache: IndicatorCache, full-series memoization bound to one dataset
"""

from .cache import IndicatorCache
from .library import (
    Indicator,
    SMA, EMA, SMMA, RSI, BollingerBands, MACD, Stochastic,
    ATR, CCI, WilliamsR, StochRSI, ADX, VWAP,
    ALL_INDICATORS,
)
from .series import (
    BollingerSeries, MACDSeries, StochasticSeries, ADXSeries,
    sma_series, ema_series, smma_series, rsi_series, bollinger_series,
    macd_series, stochastic_series, atr_series, cci_series,
    williams_r_series, stoch_rsi_series, adx_series, vwap_series,
)

__all__ = [
    'IndicatorCache',
    'Indicator',
    'SMA', 'EMA', 'SMMA', 'RSI', 'BollingerBands', 'MACD', 'Stochastic',
    'ATR', 'CCI', 'WilliamsR', 'StochRSI', 'ADX', 'VWAP',
    'ALL_INDICATORS',
    'BollingerSeries', 'MACDSeries', 'StochasticSeries', 'ADXSeries',
    'sma_series', 'ema_series', 'smma_series', 'rsi_series', 'bollinger_series',
    'macd_series', 'stochastic_series', 'atr_series', 'cci_series',
    'williams_r_series', 'stoch_rsi_series', 'adx_series', 'vwap_series',
]

"""
Strategy Lab - Binary-Options Backtesting and Parameter Optimization

Replays OHLCV candles through signal strategies, simulates fixed-payout
digital-option trades, and searches parameter space for configurations
that beat the payout's breakeven win rate.

Components:
- indicators/: Indicator library with an explicit per-dataset cache
- strategies/: Strategy contract, parameter schema and registry
- backtest_engine: Trade simulation and result metrics
- statistics / scoring: Detailed statistics and composite scores
- optimizers/: GridSearch, Genetic, Bayesian (Gaussian Process)
- validator: Train/validation split and overfitting check
- leaderboard: Every registered strategy ranked on one dataset
- report / cli: Console reports, JSON export, command line

Pure in-process computation: no live trading, no persistence.
"""

from .backtest_engine import BacktestEngine
from .exceptions import ConfigurationError, EvaluationError, StrategyLabError, StrategyNotFoundError
from .models import BacktestConfig, BacktestResult, Candle, CandleSeries, Signal, Trade

__version__ = "1.0.0"

__all__ = [
    'BacktestEngine',
    'BacktestConfig',
    'BacktestResult',
    'Candle',
    'CandleSeries',
    'Signal',
    'Trade',
    'StrategyLabError',
    'ConfigurationError',
    'StrategyNotFoundError',
    'EvaluationError',
]

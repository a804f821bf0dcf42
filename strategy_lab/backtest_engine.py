"""
BacktestEngine - Binary-Option Trade Simulation

Replays a candle series through a strategy and simulates fixed-payout
digital options: each trade opens at a candle close, expires a fixed
number of candles later, and pays `bet * payout%` on WIN, loses the bet
on LOSS, and returns the bet on TIE.

Key Features:
- One pending trade at a time
- Fixed or percentage-of-balance bet sizing
- Optional execution realism: entry latency, adverse slippage and
  skipping trades whose exit candle lands too far past expiry (data gaps)
- Explicit indicator cache per dataset (shared across runs by optimizers)
- Deterministic: identical (config, candles) give identical ledgers

Example:
    engine = BacktestEngine()
    config = BacktestConfig(symbol='EURUSD', strategy_id='rsi-ob-os')
    result = engine.run_backtest(config, candles)
    print(f"Win rate: {result.win_rate:.1f}% over {result.total_trades} trades")
"""

import math
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd

from .candle_utils import CandlePreprocessor, candles_from_dataframe, candles_from_records, detect_interval
from .exceptions import ConfigurationError, EvaluationError
from .indicators import IndicatorCache
from .models import (
    CALL, WIN, LOSS, TIE, BET_PERCENTAGE,
    BacktestConfig, BacktestResult, Candle, CandleSeries, EquityPoint, Trade,
)
from .statistics import calculate_drawdown, calculate_profit_factor, max_streaks
from .strategies import Strategy, StrategyRegistry, build_default_registry

log = logging.getLogger(__name__)

CandleInput = Union[CandleSeries, pd.DataFrame, Sequence[Candle], Sequence[Dict[str, Any]]]


def to_candle_list(candles: CandleInput) -> List[Candle]:
    if isinstance(candles, CandleSeries):
        return list(candles.candles)
    if isinstance(candles, pd.DataFrame):
        return candles_from_dataframe(candles)
    candles = list(candles)
    if candles and isinstance(candles[0], dict):
        return candles_from_records(candles)
    return candles


def settle(direction: str, entry_price: float, exit_price: float, bet: float, payout: float) -> Tuple[str, float]:
    """Result and profit of one expired option."""
    if exit_price == entry_price:
        return TIE, 0.0
    won = exit_price > entry_price if direction == CALL else exit_price < entry_price
    if won:
        return WIN, bet * payout / 100
    return LOSS, -bet


class BacktestEngine:
    """
    Binary-options backtesting engine.

    Args:
        registry: Strategy registry used to resolve `config.strategy_id`
            (defaults to a fresh registry of the built-ins)
        min_candles: Minimum candles left after preprocessing and time filtering
        gap_strategy: 'skip', 'fill' or 'split' (see CandlePreprocessor)
        max_gap_candles: Largest gap the 'fill' strategy bridges
    """

    def __init__(
        self,
        registry: Optional[StrategyRegistry] = None,
        min_candles: int = 50,
        gap_strategy: str = 'skip',
        max_gap_candles: int = 5
    ):
        if min_candles < 2:
            raise ConfigurationError("min_candles must be >= 2")
        self.registry = registry if registry is not None else build_default_registry()
        self.min_candles = min_candles
        self.preprocessor = CandlePreprocessor({
            'gap_strategy': gap_strategy,
            'max_gap_candles': max_gap_candles,
        })

        log.debug(
            f"BacktestEngine initialized: {len(self.registry)} strategies, "
            f"min_candles={min_candles}, gap_strategy={gap_strategy}"
        )

    # ------------------------------------------------------------------
    # Data preparation
    # ------------------------------------------------------------------

    def _prepare(self, config: BacktestConfig, candles: CandleInput) -> Tuple[CandleSeries, Dict[str, Any]]:
        clean, stats = self.preprocessor.clean(to_candle_list(candles))
        if config.start_time is not None:
            clean = [c for c in clean if c.timestamp >= config.start_time]
        if config.end_time is not None:
            clean = [c for c in clean if c.timestamp <= config.end_time]
        if len(clean) < self.min_candles:
            raise ConfigurationError(
                f"Insufficient candles: {len(clean)} after preprocessing, "
                f"need at least {self.min_candles}"
            )
        return CandleSeries.from_candles(clean), stats

    def prepare_series(self, config: BacktestConfig, candles: CandleInput) -> CandleSeries:
        """
        Preprocess candles and apply the config's time range.

        Raises:
            ConfigurationError: Fewer than `min_candles` remain
        """
        return self._prepare(config, candles)[0]

    def resolve_strategy(self, config: BacktestConfig, strategy: Optional[Strategy] = None) -> Strategy:
        if strategy is not None:
            return strategy
        return self.registry.get(config.strategy_id)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_backtest(
        self,
        config: BacktestConfig,
        candles: CandleInput,
        strategy: Optional[Strategy] = None
    ) -> BacktestResult:
        """
        Preprocess candles and simulate with a private indicator cache.

        Args:
            config: Backtest configuration
            candles: Candle list, dict records, DataFrame or CandleSeries
            strategy: Strategy instance overriding `config.strategy_id`

        Returns:
            BacktestResult with ledger, counters and equity curve
        """
        config.validate()
        strategy = self.resolve_strategy(config, strategy)
        series, quality = self._prepare(config, candles)
        with IndicatorCache(series) as cache:
            result = self.run_on_series(config, series, cache=cache, strategy=strategy)
        result.data_quality = quality
        return result

    def run_on_series(
        self,
        config: BacktestConfig,
        series: CandleSeries,
        cache: Optional[IndicatorCache] = None,
        strategy: Optional[Strategy] = None
    ) -> BacktestResult:
        """
        Simulate on an already prepared series.

        Args:
            config: Backtest configuration (time range is not re-applied)
            series: Series from `prepare_series`
            cache: Caller-owned cache bound to `series`, or None to compute uncached
            strategy: Strategy instance overriding `config.strategy_id`

        Raises:
            ConfigurationError: Invalid config, unknown parameters, or a cache
                bound to another series
            EvaluationError: The strategy raised while generating a signal
        """
        started = time.perf_counter()
        config.validate()
        strategy = self.resolve_strategy(config, strategy)
        if cache is not None:
            cache.ensure_bound_to(series)
        params = strategy.resolve_params(config.strategy_params)

        trades = self._simulate(config, series, cache, strategy, params)
        result = self._build_result(config, series, trades)
        result.execution_time_ms = (time.perf_counter() - started) * 1000

        log.debug(
            f"Backtest {strategy.id} on {len(series)} candles: {result.total_trades} trades, "
            f"win rate {result.win_rate:.1f}%, net ${result.net_profit:.2f} "
            f"({result.execution_time_ms:.1f}ms)"
        )
        return result

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def _simulate(
        self,
        config: BacktestConfig,
        series: CandleSeries,
        cache: Optional[IndicatorCache],
        strategy: Strategy,
        params
    ) -> List[Trade]:
        n = len(series)
        interval_ms = detect_interval(series.timestamps)
        expiry_ms = config.expiry_seconds * 1000
        expiry_candles = max(1, math.ceil(expiry_ms / interval_ms))
        max_exit_gap_ms = None if config.max_exit_gap is None else config.max_exit_gap * 1000
        timestamps = series.timestamps
        closes = series.closes

        trades: List[Trade] = []
        balance = config.initial_balance
        pending: Optional[Dict[str, Any]] = None
        skipped_gaps = 0

        for i in range(n):
            if pending is not None:
                if i < pending['exit_index']:
                    continue
                exit_price = float(closes[i])
                result, profit = settle(
                    pending['direction'], pending['entry_price'], exit_price,
                    pending['bet_amount'], config.payout
                )
                trades.append(Trade(
                    entry_time=pending['entry_time'],
                    entry_price=pending['entry_price'],
                    exit_time=int(timestamps[i]),
                    exit_price=exit_price,
                    direction=pending['direction'],
                    result=result,
                    profit=profit,
                    bet_amount=pending['bet_amount'],
                    payout=config.payout,
                    entry_index=pending['entry_index'],
                    exit_index=i,
                    confidence=pending['confidence'],
                    reason=pending['reason'],
                    indicators=pending['indicators'],
                ))
                balance += profit
                pending = None
                continue

            # No candle left to expire on
            if i == n - 1:
                break

            window = series.window(i + 1, cache)
            try:
                signal = strategy.evaluate(window, params)
            except Exception as e:
                raise EvaluationError(strategy.id, config.strategy_params, e) from e

            if signal is None or signal.direction is None:
                continue

            if config.bet_type == BET_PERCENTAGE:
                bet = balance * config.bet_amount / 100
            else:
                bet = config.bet_amount
            if bet <= 0 or bet > balance:
                continue

            entry_index = i
            if config.latency_ms > 0:
                # First candle at or after signal time + latency; the signal
                # candle itself when latency runs past the data
                delayed = int(np.searchsorted(timestamps, timestamps[i] + config.latency_ms, side='left'))
                if delayed < n:
                    entry_index = delayed
            if entry_index >= n - 1:
                continue
            exit_index = min(entry_index + expiry_candles, n - 1)

            if max_exit_gap_ms is not None:
                expected_exit = int(timestamps[entry_index]) + expiry_ms
                if int(timestamps[exit_index]) - expected_exit > max_exit_gap_ms:
                    skipped_gaps += 1
                    continue

            entry_price = float(closes[entry_index])
            entry_price += config.slippage if signal.direction == CALL else -config.slippage
            pending = {
                'direction': signal.direction,
                'entry_index': entry_index,
                'entry_time': int(timestamps[entry_index]),
                'entry_price': entry_price,
                'exit_index': exit_index,
                'bet_amount': bet,
                'confidence': signal.confidence,
                'reason': signal.reason,
                'indicators': {k: float(v) for k, v in signal.indicators.items()},
            }

        if skipped_gaps:
            log.debug(f"Skipped {skipped_gaps} signals whose exit candle fell past the allowed gap")
        return trades

    def _build_result(self, config: BacktestConfig, series: CandleSeries, trades: List[Trade]) -> BacktestResult:
        total = len(trades)
        wins = sum(1 for t in trades if t.result == WIN)
        losses = sum(1 for t in trades if t.result == LOSS)
        gross_profit = sum(t.profit for t in trades if t.result == WIN)
        gross_loss = abs(sum(t.profit for t in trades if t.result == LOSS))
        net_profit = gross_profit - gross_loss

        profits = [t.profit for t in trades]
        max_dd, max_dd_pct = calculate_drawdown(profits, config.initial_balance)
        max_wins, max_losses = max_streaks(trades)

        equity = [EquityPoint(series.start_time, config.initial_balance)]
        balance = config.initial_balance
        for trade in trades:
            balance += trade.profit
            equity.append(EquityPoint(trade.exit_time, balance))

        return BacktestResult(
            config=config,
            trades=trades,
            initial_balance=config.initial_balance,
            final_balance=balance,
            total_trades=total,
            wins=wins,
            losses=losses,
            ties=total - wins - losses,
            win_rate=wins / total * 100 if total else 0.0,
            gross_profit=gross_profit,
            gross_loss=gross_loss,
            net_profit=net_profit,
            net_profit_percent=net_profit / config.initial_balance * 100,
            profit_factor=calculate_profit_factor(gross_profit, gross_loss),
            expectancy=net_profit / total if total else 0.0,
            max_drawdown=max_dd,
            max_drawdown_percent=max_dd_pct,
            max_consecutive_wins=max_wins,
            max_consecutive_losses=max_losses,
            equity_curve=equity,
            start_time=series.start_time,
            end_time=series.end_time,
            candle_count=len(series),
            interval_ms=detect_interval(series.timestamps),
        )

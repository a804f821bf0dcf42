"""
TrainValidationValidator - Out-of-Sample Check for Optimized Parameters

Splits candles chronologically (no shuffling, time dependence preserved),
optimizes on the earlier part, then replays the top candidates on the
later, unseen part and compares the two.

- split_train_validation: the chronological split
- summarize_performance: one BacktestResult as a comparable summary
- TrainValidationValidator: optimize on train, validate on the rest, and
  flag overfitting with reasons

Example:
    validator = TrainValidationValidator(engine, optimizer=GridSearchOptimizer(engine))
    report = validator.validate('rsi-ob-os', config, candles)

    if report.overfitting_detected:
        print(f"Overfitting! Reasons: {report.best.reasons}")
    else:
        print(f"Validated! Validation win rate: {report.best.validation.win_rate:.1f}%")
"""

import math
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Union
import logging

from .backtest_engine import BacktestEngine, CandleInput, to_candle_list
from .exceptions import ConfigurationError
from .indicators import IndicatorCache
from .models import BacktestConfig, BacktestResult, Candle, CandleSeries
from .optimizers import GridSearchOptimizer, OptimizerOptions
from .optimizers.base import BaseOptimizer, ParamRanges
from .scoring import breakeven_win_rate, calculate_overfit_score, score
from .statistics import calculate_sharpe_ratio
from .strategies import Strategy

log = logging.getLogger(__name__)

MIN_SET_SIZE = 50


@dataclass
class Period:
    start: int
    end: int
    candles: int


@dataclass
class TrainValidationSplit:
    """Chronological split; `train_ratio` is the ratio actually achieved."""
    train: Union[List[Candle], CandleSeries]
    validation: Union[List[Candle], CandleSeries]
    train_ratio: float
    requested_ratio: float
    split_timestamp: int
    train_period: Period
    validation_period: Period

    def to_dict(self) -> Dict[str, Any]:
        return {
            'train_ratio': self.train_ratio,
            'requested_ratio': self.requested_ratio,
            'split_timestamp': self.split_timestamp,
            'train_period': asdict(self.train_period),
            'validation_period': asdict(self.validation_period),
        }


def split_train_validation(
    candles: Union[Sequence[Candle], CandleSeries],
    ratio: float = 0.7,
    min_size: int = MIN_SET_SIZE
) -> TrainValidationSplit:
    """
    Split candles into an earlier train set and a later validation set.

    The split index is floor(n * ratio), clamped so both sets hold at least
    `min_size` candles.

    Args:
        candles: Candle list or CandleSeries (sorted here if needed)
        ratio: Train fraction, strictly between 0 and 1
        min_size: Minimum candles per set

    Returns:
        TrainValidationSplit; train/validation have the input's kind

    Raises:
        ConfigurationError: ratio outside (0, 1) or fewer than 2 * min_size candles
    """
    if not 0 < ratio < 1:
        raise ConfigurationError(f"ratio must be between 0 and 1 (exclusive), got {ratio}")
    if min_size < 1:
        raise ConfigurationError(f"min_size must be >= 1, got {min_size}")

    n = len(candles)
    if n < 2 * min_size:
        raise ConfigurationError(
            f"Not enough candles: {n} (need at least {2 * min_size} for train/validation split)"
        )

    split_index = max(min_size, min(int(math.floor(n * ratio)), n - min_size))

    if isinstance(candles, CandleSeries):
        ordered = candles
        if (candles.timestamps[1:] < candles.timestamps[:-1]).any():
            ordered = CandleSeries.from_candles(sorted(candles.candles, key=lambda c: c.timestamp))
        train = ordered.slice(0, split_index)
        validation = ordered.slice(split_index, n)
        train_times = (int(train.timestamps[0]), int(train.timestamps[-1]))
        validation_times = (int(validation.timestamps[0]), int(validation.timestamps[-1]))
    else:
        ordered = sorted(candles, key=lambda c: c.timestamp)
        train = ordered[:split_index]
        validation = ordered[split_index:]
        train_times = (train[0].timestamp, train[-1].timestamp)
        validation_times = (validation[0].timestamp, validation[-1].timestamp)

    return TrainValidationSplit(
        train=train,
        validation=validation,
        train_ratio=split_index / n,
        requested_ratio=ratio,
        split_timestamp=train_times[1],
        train_period=Period(train_times[0], train_times[1], split_index),
        validation_period=Period(validation_times[0], validation_times[1], n - split_index),
    )


@dataclass
class PerformanceSummary:
    """Comparable metrics of one run (train or validation side)."""
    total_trades: int
    wins: int
    losses: int
    ties: int
    win_rate: float
    net_profit: float
    net_profit_percent: float
    profit_factor: float
    expectancy: float
    max_drawdown: float
    max_drawdown_percent: float
    max_consecutive_losses: int
    sharpe_ratio: float
    composite_score: float
    grade: str


def summarize_performance(result: BacktestResult) -> PerformanceSummary:
    scored = score(result.metrics, payout=result.config.payout)
    return PerformanceSummary(
        total_trades=result.total_trades,
        wins=result.wins,
        losses=result.losses,
        ties=result.ties,
        win_rate=result.win_rate,
        net_profit=result.net_profit,
        net_profit_percent=result.net_profit_percent,
        profit_factor=result.profit_factor,
        expectancy=result.expectancy,
        max_drawdown=result.max_drawdown,
        max_drawdown_percent=result.max_drawdown_percent,
        max_consecutive_losses=result.max_consecutive_losses,
        sharpe_ratio=calculate_sharpe_ratio(result.trades, result.initial_balance),
        composite_score=scored.score,
        grade=scored.grade,
    )


@dataclass
class ValidatedCandidate:
    params: Dict[str, float]
    train: PerformanceSummary
    validation: PerformanceSummary
    overfit_score: float
    overfitting_detected: bool
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrainValidationReport:
    strategy_id: str
    strategy_name: str
    split: TrainValidationSplit
    candidates: List[ValidatedCandidate]
    execution_time_ms: float = 0.0

    @property
    def best(self) -> Optional[ValidatedCandidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def overfitting_detected(self) -> bool:
        return self.best is None or self.best.overfitting_detected

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy_id': self.strategy_id,
            'strategy_name': self.strategy_name,
            'split': self.split.to_dict(),
            'overfitting_detected': self.overfitting_detected,
            'execution_time_ms': self.execution_time_ms,
            'candidates': [c.to_dict() for c in self.candidates],
        }


class TrainValidationValidator:
    """
    Optimize on the train split and re-run the top candidates on validation.

    A candidate is flagged as overfit when:
    1. Its overfit score exceeds `max_overfit_score`
    2. Validation win rate falls below the payout's breakeven
    3. Validation is unprofitable
    4. Validation produced fewer than `min_validation_trades` trades

    Candidates are ranked by validation composite score.
    """

    def __init__(
        self,
        engine: Optional[BacktestEngine] = None,
        optimizer: Optional[BaseOptimizer] = None,
        ratio: float = 0.7,
        min_size: int = MIN_SET_SIZE,
        top_n: int = 5,
        max_overfit_score: float = 0.5,
        min_validation_trades: int = 10
    ):
        """
        Initialize TrainValidationValidator.

        Args:
            engine: Engine shared with the optimizer
            optimizer: Optimizer run on the train split (defaults to grid search)
            ratio: Train fraction of the candles
            min_size: Minimum candles per split
            top_n: Train candidates re-run on validation
            max_overfit_score: Overfit score above which a candidate is flagged
            min_validation_trades: Fewer validation trades than this is flagged
        """
        self.engine = engine or (optimizer.engine if optimizer is not None else BacktestEngine())
        self.optimizer = optimizer or GridSearchOptimizer(self.engine)
        self.ratio = ratio
        self.min_size = min_size
        self.top_n = top_n
        self.max_overfit_score = max_overfit_score
        self.min_validation_trades = min_validation_trades

        log.info(
            f"TrainValidationValidator initialized: ratio={ratio}, top_n={top_n}, "
            f"optimizer={self.optimizer.name}"
        )

    def validate(
        self,
        strategy: Union[Strategy, str],
        base_config: BacktestConfig,
        candles: CandleInput,
        param_ranges: Optional[ParamRanges] = None,
        options: Optional[OptimizerOptions] = None
    ) -> TrainValidationReport:
        """
        Run the train/validation check.

        Args:
            strategy: Strategy instance or registered id
            base_config: Shared backtest settings
            candles: Full candle history
            param_ranges: Optional search ranges (defaults to the parameter table)
            options: Optimizer options

        Returns:
            TrainValidationReport with candidates ranked by validation score
        """
        started = time.perf_counter()
        if isinstance(strategy, str):
            strategy = self.engine.registry.get(strategy)
        config = base_config.with_params({}, strategy_id=strategy.id)

        if isinstance(candles, CandleSeries):
            split = split_train_validation(candles, self.ratio, self.min_size)
        else:
            split = split_train_validation(to_candle_list(candles), self.ratio, self.min_size)
        log.info(
            f"Train/validation split for {strategy.id}: "
            f"{split.train_period.candles}/{split.validation_period.candles} candles"
        )

        entries = self.optimizer.optimize(strategy, config, split.train, param_ranges, options)
        candidates: List[ValidatedCandidate] = []

        if entries:
            validation_series = self.engine.prepare_series(config, split.validation)
            with IndicatorCache(validation_series) as cache:
                for entry in entries[:self.top_n]:
                    result = self.engine.run_on_series(
                        config.with_params(entry.params), validation_series, cache=cache, strategy=strategy
                    )
                    candidates.append(self._compare(entry.params, entry.result, result))

        candidates.sort(key=lambda c: c.validation.composite_score, reverse=True)
        report = TrainValidationReport(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            split=split,
            candidates=candidates,
            execution_time_ms=(time.perf_counter() - started) * 1000,
        )

        best = report.best
        if best is None:
            log.warning(f"No train candidates for {strategy.id}; nothing to validate")
        else:
            log.info(
                f"✅ Validation complete: {strategy.id} "
                f"train WR {best.train.win_rate:.1f}% vs validation WR {best.validation.win_rate:.1f}%, "
                f"overfit score {best.overfit_score:.2f}, Overfit: {best.overfitting_detected}"
            )
        return report

    def _compare(
        self,
        params: Dict[str, float],
        train_result: BacktestResult,
        validation_result: BacktestResult
    ) -> ValidatedCandidate:
        train = summarize_performance(train_result)
        validation = summarize_performance(validation_result)
        overfit = calculate_overfit_score(
            train.win_rate, validation.win_rate,
            train.profit_factor, validation.profit_factor,
            train.max_drawdown_percent, validation.max_drawdown_percent,
        )
        reasons = self._detect_overfitting(train, validation, overfit, validation_result.config.payout)
        return ValidatedCandidate(
            params=dict(params),
            train=train,
            validation=validation,
            overfit_score=overfit,
            overfitting_detected=bool(reasons),
            reasons=reasons,
        )

    def _detect_overfitting(
        self,
        train: PerformanceSummary,
        validation: PerformanceSummary,
        overfit_score: float,
        payout: float
    ) -> List[str]:
        reasons = []

        # Check 1: Train/validation divergence
        if overfit_score > self.max_overfit_score:
            reasons.append(
                f"Overfit score {overfit_score:.2f} > {self.max_overfit_score:.2f} "
                f"(WR {train.win_rate:.1f}% -> {validation.win_rate:.1f}%)"
            )

        # Check 2: Below breakeven out of sample
        breakeven = breakeven_win_rate(payout)
        if validation.win_rate < breakeven:
            reasons.append(
                f"Validation win rate {validation.win_rate:.1f}% below breakeven {breakeven:.1f}%"
            )

        # Check 3: Unprofitable out of sample
        if validation.net_profit < 0:
            reasons.append(f"Validation net profit negative (${validation.net_profit:.2f})")

        # Check 4: Too few trades to judge
        if validation.total_trades < self.min_validation_trades:
            reasons.append(
                f"Only {validation.total_trades} validation trades "
                f"(need {self.min_validation_trades})"
            )

        return reasons

    def get_validation_summary(self, report: TrainValidationReport) -> str:
        """
        Get human-readable validation summary.

        Returns:
            Formatted string with validation results
        """
        summary = []
        summary.append("=" * 60)
        summary.append("TRAIN/VALIDATION SUMMARY")
        summary.append("=" * 60)
        summary.append(f"\nStrategy: {report.strategy_name} ({report.strategy_id})")
        summary.append(
            f"Split: {report.split.train_period.candles} train / "
            f"{report.split.validation_period.candles} validation candles "
            f"(ratio {report.split.train_ratio:.2f})"
        )

        best = report.best
        if best is None:
            summary.append("\nNo candidate met the minimum trade count on the train split.")
            summary.append("=" * 60)
            return "\n".join(summary)

        summary.append(f"Best params: {best.params}")
        for label, perf in (("TRAIN", best.train), ("VALIDATION (Out-of-Sample)", best.validation)):
            summary.append(f"\n--- {label} ---")
            summary.append(f"Trades: {perf.total_trades}")
            summary.append(f"Win Rate: {perf.win_rate:.1f}%")
            summary.append(f"Net Profit: ${perf.net_profit:.2f} ({perf.net_profit_percent:.2f}%)")
            pf = 'inf' if math.isinf(perf.profit_factor) else f"{perf.profit_factor:.2f}"
            summary.append(f"Profit Factor: {pf}")
            summary.append(f"Max Drawdown: {perf.max_drawdown_percent:.1f}%")
            summary.append(f"Score: {perf.composite_score:.1f} [{perf.grade}]")

        summary.append("\n--- VALIDATION RESULT ---")
        summary.append(f"Overfit Score: {best.overfit_score:.2f}")
        summary.append(f"Overfitting Detected: {'YES ⚠️' if best.overfitting_detected else 'NO ✓'}")
        if best.overfitting_detected:
            summary.append("\nReasons:")
            for reason in best.reasons:
                summary.append(f"  - {reason}")
            summary.append("\n❌ REJECT: Parameters do not hold up out of sample")
        else:
            summary.append("\n✅ ACCEPT: Parameters hold up out of sample")
        summary.append("=" * 60)
        return "\n".join(summary)

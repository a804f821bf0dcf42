"""
Shared optimizer contract

Every optimizer exposes

    optimize(strategy, base_config, candles, param_ranges=None, options=None)
        -> List[OptimizationEntry]

ranked by objective score, best first. Candidates with fewer than
`options.min_trades` trades, a NaN score, or a strategy error are
ineligible and never appear in the output.

Candidate evaluation runs either in-process against one shared
IndicatorCache, or fanned out with joblib where every worker batch builds
its own cache for its copy of the candle series.

Example:
    optimizer = GridSearchOptimizer(engine)
    entries = optimizer.optimize(
        strategy='rsi-ob-os',
        base_config=BacktestConfig(symbol='EURUSD', strategy_id='rsi-ob-os'),
        candles=candles,
        options=GridOptions(objective='win_rate', min_trades=30)
    )
    print(entries[0].params, entries[0].score)
    print(optimizer.last_search_stats)
"""

import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union
import logging

import numpy as np
import pandas as pd
from joblib import delayed

from .. import config as settings
from ..backtest_engine import BacktestEngine, CandleInput
from ..exceptions import ConfigurationError, StrategyLabError
from ..indicators import IndicatorCache
from ..models import BacktestConfig, BacktestResult, CandleSeries, StrategyParamSpec
from ..scoring import PROFIT_FACTOR_SENTINEL
from ..strategies import Strategy
from ..utils.cpu_config import resolve_n_jobs
from .progress_parallel import ProgressParallel

log = logging.getLogger(__name__)

OBJECTIVES = ('net_profit', 'win_rate', 'profit_factor', 'expectancy')

ParamRanges = Mapping[str, Union[StrategyParamSpec, Mapping[str, float]]]
ParamSpace = Dict[str, StrategyParamSpec]


# =========================================================================
# Options
# =========================================================================

@dataclass
class OptimizerOptions:
    objective: str = 'net_profit'
    min_trades: int = settings.DEFAULT_MIN_TRADES
    n_jobs: int = 1                  # 0 or negative = auto-detect
    seed: Optional[int] = None       # None = RANDOM_SEED
    should_stop: Optional[Callable[[], bool]] = None
    progress_callback: Optional[Callable[[int, int, float], None]] = None
    verbose: bool = False

    def validate(self) -> None:
        if self.objective not in OBJECTIVES:
            raise ConfigurationError(
                f"Unknown objective '{self.objective}' (expected one of {OBJECTIVES})"
            )
        if self.min_trades < 0:
            raise ConfigurationError(f"min_trades must be >= 0, got {self.min_trades}")

    def stop_requested(self) -> bool:
        return bool(self.should_stop and self.should_stop())


@dataclass
class GridOptions(OptimizerOptions):
    max_combinations: Optional[int] = None


@dataclass
class GeneticOptions(OptimizerOptions):
    population_size: int = 50
    generations: int = 20
    mutation_rate: float = 0.1
    tournament_size: int = 3
    elitism_count: int = 2

    def validate(self) -> None:
        super().validate()
        if self.population_size < 2:
            raise ConfigurationError("population_size must be >= 2")
        if self.generations < 0:
            raise ConfigurationError("generations must be >= 0")
        if not 0 <= self.mutation_rate <= 1:
            raise ConfigurationError("mutation_rate must be within [0, 1]")
        if self.tournament_size < 1:
            raise ConfigurationError("tournament_size must be >= 1")
        if not 0 <= self.elitism_count <= self.population_size:
            raise ConfigurationError("elitism_count must be within [0, population_size]")


@dataclass
class BayesianOptions(OptimizerOptions):
    max_iterations: int = 50
    initial_samples: int = 10
    xi: float = 0.1                  # Exploration bonus in Expected Improvement
    num_candidates: int = 100

    def validate(self) -> None:
        super().validate()
        if self.initial_samples < 1:
            raise ConfigurationError("initial_samples must be >= 1")
        if self.max_iterations < self.initial_samples:
            raise ConfigurationError("max_iterations must be >= initial_samples")
        if self.num_candidates < 1:
            raise ConfigurationError("num_candidates must be >= 1")


# =========================================================================
# Results
# =========================================================================

@dataclass
class OptimizationEntry:
    params: Dict[str, float]
    score: float
    result: BacktestResult
    iteration: Optional[int] = None
    generation: Optional[int] = None

    def to_dict(self, include_trades: bool = False) -> Dict[str, Any]:
        return {
            'params': dict(self.params),
            'score': self.score,
            'iteration': self.iteration,
            'generation': self.generation,
            'metrics': self.result.metrics,
            'result': self.result.to_dict(include_trades=include_trades),
        }


class Evaluation(NamedTuple):
    params: Dict[str, float]
    score: float
    result: BacktestResult


def objective_score(result: BacktestResult, objective: str) -> float:
    """Objective value of one run; an infinite profit factor maps to the sentinel."""
    if objective == 'win_rate':
        return result.win_rate
    if objective == 'profit_factor':
        pf = result.profit_factor
        return PROFIT_FACTOR_SENTINEL if math.isinf(pf) else pf
    if objective == 'expectancy':
        return result.expectancy
    return result.net_profit


def _hash_params(params: Mapping[str, float]) -> Tuple[Tuple[str, float], ...]:
    return tuple(sorted(params.items()))


def build_param_space(strategy: Strategy, param_ranges: Optional[ParamRanges] = None) -> ParamSpace:
    """
    Search lattice per parameter.

    Args:
        strategy: Strategy whose parameter table is the default space
        param_ranges: Optional overrides ({name: StrategyParamSpec or
            {'min', 'max', 'step'}}); only these names are searched

    Raises:
        ConfigurationError: Unknown names, step <= 0 or min > max
    """
    if not param_ranges:
        space = dict(strategy.param_specs)
    else:
        unknown = set(param_ranges) - set(strategy.param_specs)
        if unknown:
            raise ConfigurationError(
                f"Unknown parameters for strategy '{strategy.id}': {sorted(unknown)}"
            )
        space = {}
        for name, spec in param_ranges.items():
            if not isinstance(spec, StrategyParamSpec):
                spec = StrategyParamSpec.from_mapping(spec)
            space[name] = spec
    if not space:
        raise ConfigurationError(f"Strategy '{strategy.id}' has no parameters to search")
    return space


def search_space_size(space: ParamSpace) -> int:
    return int(np.prod([spec.count for spec in space.values()], dtype=object))


def random_params(space: ParamSpace, rng: np.random.Generator) -> Dict[str, float]:
    """Random lattice-aligned parameter vector."""
    return {name: spec.value_at(int(rng.integers(0, spec.count))) for name, spec in space.items()}


def rank_entries(entries: Sequence[OptimizationEntry]) -> List[OptimizationEntry]:
    """Drop duplicate parameter sets (first evaluation wins) and sort best first."""
    seen = set()
    unique = []
    for entry in entries:
        key = _hash_params(entry.params)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    return sorted(unique, key=lambda e: e.score, reverse=True)


def results_to_dataframe(entries: Sequence[OptimizationEntry]) -> pd.DataFrame:
    """One row per entry: parameters, metric_* columns and score."""
    rows = []
    for rank, entry in enumerate(entries, 1):
        row = {'rank': rank, **entry.params}
        row.update({f"metric_{k}": v for k, v in entry.result.metrics.items()})
        row['score'] = entry.score
        if entry.iteration is not None:
            row['iteration'] = entry.iteration
        if entry.generation is not None:
            row['generation'] = entry.generation
        rows.append(row)
    return pd.DataFrame(rows)


# =========================================================================
# Evaluation
# =========================================================================

class CandidateEvaluator:
    """
    Runs one parameter vector through the engine.

    Picklable so joblib workers can receive it along with their copy of
    the candle series.
    """

    def __init__(
        self,
        engine: BacktestEngine,
        strategy: Strategy,
        base_config: BacktestConfig,
        series: CandleSeries,
        objective: str,
        min_trades: int
    ):
        self.engine = engine
        self.strategy = strategy
        self.base_config = base_config
        self.series = series
        self.objective = objective
        self.min_trades = min_trades

    def resolve(self, params: Mapping[str, float]) -> Dict[str, float]:
        return self.strategy.params_to_dict(params)

    def evaluate(self, params: Mapping[str, float], cache: Optional[IndicatorCache]) -> Optional[Evaluation]:
        try:
            result = self.engine.run_on_series(
                self.base_config.with_params(params),
                self.series,
                cache=cache,
                strategy=self.strategy
            )
        except StrategyLabError as e:
            log.debug(f"Backtest failed for params {params}: {e}")
            return None

        if result.total_trades < self.min_trades:
            return None
        score = objective_score(result, self.objective)
        if math.isnan(score):
            log.debug(f"NaN {self.objective} for params {params}")
            return None
        return Evaluation(dict(params), float(score), result)


def _evaluate_batch(evaluator: CandidateEvaluator, batch: List[Dict[str, float]]) -> List[Optional[Evaluation]]:
    """Worker entry point: one cache per batch, bound to this worker's series copy."""
    with IndicatorCache(evaluator.series) as cache:
        return [evaluator.evaluate(params, cache) for params in batch]


# =========================================================================
# Base optimizer
# =========================================================================

class BaseOptimizer:
    """
    Common driver for the search algorithms.

    Subclasses implement `_search(run)` and return the eligible entries in
    evaluation order; ranking, statistics and logging happen here.
    """

    name = 'base'
    options_class = OptimizerOptions

    def __init__(self, engine: Optional[BacktestEngine] = None, verbose: bool = False):
        self.engine = engine or BacktestEngine()
        self.verbose = verbose
        self.last_search_stats: Dict[str, Any] = {}
        log.info(f"{type(self).__name__} initialized")

    def optimize(
        self,
        strategy: Union[Strategy, str],
        base_config: BacktestConfig,
        candles: CandleInput,
        param_ranges: Optional[ParamRanges] = None,
        options: Optional[OptimizerOptions] = None
    ) -> List[OptimizationEntry]:
        """
        Search the strategy's parameter space.

        Args:
            strategy: Strategy instance or registered id
            base_config: Config every candidate derives from (params replaced)
            candles: Candle list, dict records, DataFrame or CandleSeries
            param_ranges: Optional per-parameter ranges (defaults to the parameter table)
            options: Algorithm options (defaults to this optimizer's options class)

        Returns:
            Eligible entries sorted by score, best first

        Raises:
            ConfigurationError: Invalid options, ranges, config or data
        """
        options = options if options is not None else self.options_class()
        options.validate()
        if isinstance(strategy, str):
            strategy = self.engine.registry.get(strategy)
        config = base_config.with_params({}, strategy_id=strategy.id)
        config.validate()
        space = build_param_space(strategy, param_ranges)
        series = self.engine.prepare_series(config, candles)

        run = SearchRun(
            optimizer=self,
            evaluator=CandidateEvaluator(
                self.engine, strategy, config, series, options.objective, options.min_trades
            ),
            space=space,
            options=options,
        )
        log.info(
            f"Starting {self.name} optimization of {strategy.id}: "
            f"{len(space)} parameters, {search_space_size(space)} lattice points, "
            f"objective={options.objective}"
        )

        started = time.perf_counter()
        with IndicatorCache(series) as cache:
            run.cache = cache
            entries = rank_entries(self._search(run))
            cache_stats = cache.stats()
        elapsed_ms = (time.perf_counter() - started) * 1000

        self.last_search_stats = self._calculate_search_stats(entries, run, elapsed_ms, cache_stats)
        if entries:
            log.info(
                f"✅ {self.name} complete: best {options.objective} = {entries[0].score:.3f} "
                f"({len(entries)}/{run.evaluations} valid configs, {elapsed_ms:.0f}ms)"
            )
        else:
            log.warning(
                f"{self.name} found no valid configurations for {strategy.id} "
                f"(min_trades={options.min_trades})"
            )
        return entries

    def _search(self, run: 'SearchRun') -> List[OptimizationEntry]:
        raise NotImplementedError

    def _calculate_search_stats(
        self,
        entries: List[OptimizationEntry],
        run: 'SearchRun',
        elapsed_ms: float,
        cache_stats: Dict[str, float]
    ) -> Dict[str, Any]:
        """Calculate statistics about search process."""
        stats: Dict[str, Any] = {
            'optimizer': self.name,
            'objective': run.options.objective,
            'search_space_size': search_space_size(run.space),
            'total_evaluations': run.evaluations,
            'valid_configurations': len(entries),
            'stopped_early': run.stopped,
            'execution_time_ms': elapsed_ms,
            'cache_hit_rate': cache_stats.get('hit_rate', 0.0),
        }
        if entries:
            scores = pd.Series([e.score for e in entries])
            stats.update({
                'best_objective': scores.max(),
                'worst_objective': scores.min(),
                'mean_objective': scores.mean(),
                'median_objective': scores.median(),
                'std_objective': scores.std() if len(scores) > 1 else 0.0,
                'top_10_pct_threshold': scores.quantile(0.9),
            })
        return stats


class SearchRun:
    """
    State of one optimize() call.

    Memoizes evaluations by resolved parameter set, so repeated genetic
    offspring or Bayesian proposals are never re-simulated, and keeps the
    progress counters.
    """

    def __init__(
        self,
        optimizer: BaseOptimizer,
        evaluator: CandidateEvaluator,
        space: ParamSpace,
        options: OptimizerOptions
    ):
        self.optimizer = optimizer
        self.evaluator = evaluator
        self.space = space
        self.options = options
        self.cache: Optional[IndicatorCache] = None
        self.n_jobs = resolve_n_jobs(options.n_jobs)
        self.seed = settings.RANDOM_SEED if options.seed is None else options.seed
        self.rng = np.random.default_rng(self.seed)
        self.total = 0
        self.evaluations = 0
        self.best_score = float('-inf')
        self.stopped = False
        self._memo: Dict[Tuple[Tuple[str, float], ...], Optional[Evaluation]] = {}

    def stop_requested(self) -> bool:
        if self.options.stop_requested():
            if not self.stopped:
                log.info(f"{self.optimizer.name}: stop requested after {self.evaluations} evaluations")
            self.stopped = True
        return self.stopped

    def report(self) -> None:
        callback = self.options.progress_callback
        if callback is None:
            return
        try:
            callback(self.evaluations, self.total, self.best_score)
        except Exception as e:
            log.warning(f"Progress callback failed: {e}")

    def evaluate_candidates(self, candidates: Sequence[Mapping[str, float]]) -> List[Optional[Evaluation]]:
        """
        Evaluate parameter vectors, reusing memoized results.

        Returns one Evaluation (or None when ineligible) per candidate, in
        input order.
        """
        resolved = [self.evaluator.resolve(params) for params in candidates]
        pending: List[Dict[str, float]] = []
        pending_keys = set()
        for params in resolved:
            key = _hash_params(params)
            if key not in self._memo and key not in pending_keys:
                pending_keys.add(key)
                pending.append(params)

        if pending:
            if self.n_jobs > 1 and len(pending) > 1:
                fresh = self._evaluate_parallel(pending)
            else:
                fresh = self._evaluate_sequential(pending)
            for params, evaluation in zip(pending, fresh):
                self._memo[_hash_params(params)] = evaluation

        return [self._memo[_hash_params(params)] for params in resolved]

    def evaluate_one(self, params: Mapping[str, float]) -> Optional[Evaluation]:
        return self.evaluate_candidates([params])[0]

    def _record(self, evaluation: Optional[Evaluation]) -> None:
        self.evaluations += 1
        if evaluation is not None and evaluation.score > self.best_score:
            self.best_score = evaluation.score

    def _evaluate_sequential(self, pending: List[Dict[str, float]]) -> List[Optional[Evaluation]]:
        results = []
        for params in pending:
            evaluation = self.evaluator.evaluate(params, self.cache)
            self._record(evaluation)
            self.report()
            results.append(evaluation)
        return results

    def _evaluate_parallel(self, pending: List[Dict[str, float]]) -> List[Optional[Evaluation]]:
        n_batches = min(self.n_jobs, len(pending))
        batches = [list(batch) for batch in np.array_split(np.arange(len(pending)), n_batches)]
        runner = ProgressParallel(
            n_jobs=self.n_jobs,
            progress_callback=self.options.progress_callback,
            total=self.total,
            completed=self.evaluations,
            best_score=self.best_score,
        )
        batch_results = runner(
            delayed(_evaluate_batch)(self.evaluator, [pending[i] for i in batch])
            for batch in batches
        )
        results = [evaluation for batch in batch_results for evaluation in batch]
        self.evaluations = runner.completed
        self.best_score = runner.best_score
        return results

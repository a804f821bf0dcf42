"""
GridSearchOptimizer - Exhaustive Parameter Search

Tests every point of the parameter lattice (min, min + step, ..., max for
each parameter). Guaranteed to find the best configuration on the grid,
but the cost is the product of the per-parameter point counts.

Best for:
- Small parameter spaces (< 1000 combinations)
- Sensitivity analysis over one or two parameters
- Reproducible baselines for the stochastic optimizers
"""

import itertools
from typing import Dict, Iterator, List
import logging

from tqdm import tqdm

from ..exceptions import ConfigurationError
from .base import BaseOptimizer, GridOptions, OptimizationEntry, ParamSpace, SearchRun, search_space_size

log = logging.getLogger(__name__)

LARGE_GRID_WARNING = 10_000


def iter_parameter_grid(space: ParamSpace) -> Iterator[Dict[str, float]]:
    """All lattice combinations, last parameter varying fastest."""
    names = list(space)
    for combination in itertools.product(*(space[name].values() for name in names)):
        yield dict(zip(names, combination))


class GridSearchOptimizer(BaseOptimizer):
    """
    Exhaustive grid search through parameter space.

    Example:
        optimizer = GridSearchOptimizer(engine)

        entries = optimizer.optimize(
            strategy='rsi-ob-os',
            base_config=config,
            candles=candles,
            param_ranges={
                'period': {'min': 10, 'max': 20, 'step': 2},      # 6 values
                'oversold': {'min': 20, 'max': 30, 'step': 5},    # 3 values
            },
            options=GridOptions(objective='win_rate')
        )

        # 6 × 3 = 18 combinations tested
    """

    name = 'grid_search'
    options_class = GridOptions

    def _search(self, run: SearchRun) -> List[OptimizationEntry]:
        options = run.options
        total = search_space_size(run.space)
        run.total = total

        log.info(
            f"Grid size: {total} combinations "
            f"({', '.join(f'{k}={s.count}' for k, s in run.space.items())})"
        )
        if options.max_combinations is not None and total > options.max_combinations:
            raise ConfigurationError(
                f"Grid has {total} combinations, above max_combinations={options.max_combinations}. "
                f"Narrow the ranges or use the genetic or Bayesian optimizer."
            )
        if total > LARGE_GRID_WARNING:
            log.warning(
                f"Large grid ({total} combinations). "
                f"Consider using genetic or Bayesian optimization."
            )
        log.info(
            f"Testing configurations {'in parallel' if run.n_jobs > 1 else 'sequentially'} "
            f"({run.n_jobs} workers)"
        )

        chunk_size = max(1, run.n_jobs * 16) if run.n_jobs > 1 else 1
        grid = iter_parameter_grid(run.space)
        progress = tqdm(total=total, desc="Grid Search", disable=not (self.verbose or options.verbose))

        entries: List[OptimizationEntry] = []
        index = 0
        try:
            while True:
                if run.stop_requested():
                    break
                chunk = list(itertools.islice(grid, chunk_size))
                if not chunk:
                    break
                for evaluation in run.evaluate_candidates(chunk):
                    if evaluation is not None:
                        entries.append(OptimizationEntry(
                            params=evaluation.params,
                            score=evaluation.score,
                            result=evaluation.result,
                            iteration=index,
                        ))
                    index += 1
                progress.update(len(chunk))
        finally:
            progress.close()
        return entries

"""
Parameter optimization algorithms for strategy research.

Available optimizers:
- GridSearchOptimizer: Exhaustive search through the parameter lattice
- GeneticOptimizer: Tournament selection, crossover and mutation
- BayesianOptimizer: Gaussian Process surrogate with Expected Improvement
"""

from ..exceptions import ConfigurationError
from .base import (
    OBJECTIVES,
    BaseOptimizer,
    OptimizerOptions,
    GridOptions,
    GeneticOptions,
    BayesianOptions,
    OptimizationEntry,
    build_param_space,
    objective_score,
    results_to_dataframe,
    search_space_size,
)
from .grid_search import GridSearchOptimizer
from .genetic import GeneticOptimizer
from .bayesian import BayesianOptimizer, GaussianProcess, expected_improvement

OPTIMIZERS = {
    'grid': GridSearchOptimizer,
    'genetic': GeneticOptimizer,
    'bayesian': BayesianOptimizer,
}


def create_optimizer(kind: str, engine=None, verbose: bool = False) -> BaseOptimizer:
    """Optimizer instance by name ('grid', 'genetic' or 'bayesian')."""
    try:
        optimizer_class = OPTIMIZERS[kind]
    except KeyError:
        raise ConfigurationError(
            f"Unknown optimizer '{kind}' (expected one of {sorted(OPTIMIZERS)})"
        ) from None
    return optimizer_class(engine, verbose=verbose)


__all__ = [
    'OBJECTIVES',
    'OPTIMIZERS',
    'BaseOptimizer',
    'OptimizerOptions',
    'GridOptions',
    'GeneticOptions',
    'BayesianOptions',
    'OptimizationEntry',
    'GridSearchOptimizer',
    'GeneticOptimizer',
    'BayesianOptimizer',
    'GaussianProcess',
    'expected_improvement',
    'create_optimizer',
    'build_param_space',
    'objective_score',
    'results_to_dataframe',
    'search_space_size',
]

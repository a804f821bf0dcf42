"""
BayesianOptimizer - Gaussian-Process Guided Search

Fits a Gaussian Process (RBF kernel, length-scale 0.5, noise 0.01) to the
scores observed so far, over parameter vectors normalized to [0, 1]. Each
iteration scores `num_candidates` random lattice points by Expected
Improvement and backtests only the most promising one.

Each lattice point is backtested at most once. Points that fail the
eligibility filters (too few trades, errors) stay in the GP training set
with the worst eligible score, so the surrogate learns to avoid them.

Best for:
- Expensive objectives where every backtest counts
- Low-dimensional spaces (a handful of parameters)

Note: the search is inherently SEQUENTIAL. Each iteration depends on the
previous results, so `n_jobs` is ignored here.
"""

from typing import Dict, List, Optional, Tuple
import logging

import numpy as np
from scipy.linalg import LinAlgError, cho_factor, cho_solve
from scipy.spatial.distance import cdist
from scipy.stats import norm

from .base import BaseOptimizer, BayesianOptions, OptimizationEntry, ParamSpace, SearchRun, random_params

log = logging.getLogger(__name__)

JITTER_LEVELS = (0.0, 1e-10, 1e-8, 1e-6, 1e-4)
MIN_VARIANCE = 1e-4
MIN_STD = 1e-10


class GaussianProcess:
    """
    Zero-mean GP on standardized targets with fixed hyperparameters.

    Targets are standardized before fitting so the prior variance of 1
    matches the scale of any objective (dollars, percent, ratios).
    If the kernel matrix stays singular after every jitter level the
    model falls back to the prior (mean of y, unit variance).
    """

    def __init__(self, length_scale: float = 0.5, noise: float = 0.01):
        self.length_scale = length_scale
        self.noise = noise
        self._x: Optional[np.ndarray] = None
        self._factor = None
        self._alpha: Optional[np.ndarray] = None
        self.y_mean = 0.0
        self.y_std = 1.0

    def kernel(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        sq_dist = cdist(a, b, 'sqeuclidean')
        return np.exp(-sq_dist / (2 * self.length_scale ** 2))

    @property
    def is_fitted(self) -> bool:
        return self._x is not None

    def fit(self, x: np.ndarray, y: np.ndarray) -> 'GaussianProcess':
        x = np.atleast_2d(np.asarray(x, dtype=float))
        y = np.asarray(y, dtype=float)
        self._x = x
        self.y_mean = float(y.mean())
        std = float(y.std())
        self.y_std = std if std > 0 else 1.0
        y_norm = (y - self.y_mean) / self.y_std

        k = self.kernel(x, x) + self.noise * np.eye(len(x))
        self._factor = None
        self._alpha = None
        for jitter in JITTER_LEVELS:
            try:
                factor = cho_factor(k + jitter * np.eye(len(x)), lower=True)
            except LinAlgError:
                continue
            self._factor = factor
            self._alpha = cho_solve(factor, y_norm)
            if jitter > 0:
                log.debug(f"GP kernel needed jitter {jitter:g}")
            break
        else:
            log.warning(f"GP kernel matrix singular for {len(x)} points; using prior")
        return self

    def predict_standardized(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Posterior mean and std in standardized target units."""
        x = np.atleast_2d(np.asarray(x, dtype=float))
        if self._factor is None:
            return np.zeros(len(x)), np.ones(len(x))
        k_star = self.kernel(x, self._x)
        mean = k_star @ self._alpha
        v = cho_solve(self._factor, k_star.T)
        variance = 1.0 + self.noise - np.sum(k_star * v.T, axis=1)
        return mean, np.sqrt(np.maximum(variance, MIN_VARIANCE))

    def predict(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Posterior mean and std in objective units."""
        mean, std = self.predict_standardized(x)
        return mean * self.y_std + self.y_mean, std * self.y_std

    def standardize(self, y: float) -> float:
        return (y - self.y_mean) / self.y_std


def expected_improvement(mean: np.ndarray, std: np.ndarray, best: float, xi: float = 0.1) -> np.ndarray:
    """EI for maximization; zero wherever std < 1e-10."""
    mean = np.asarray(mean, dtype=float)
    std = np.asarray(std, dtype=float)
    ei = np.zeros_like(mean)
    mask = std >= MIN_STD
    improvement = mean[mask] - best - xi
    z = improvement / std[mask]
    ei[mask] = improvement * norm.cdf(z) + std[mask] * norm.pdf(z)
    return ei


def normalize_params(params: Dict[str, float], space: ParamSpace) -> List[float]:
    return [space[name].normalize(params[name]) for name in space]


class BayesianOptimizer(BaseOptimizer):
    """
    Bayesian optimization with a Gaussian Process surrogate.

    Example:
        optimizer = BayesianOptimizer(engine)
        entries = optimizer.optimize(
            'bollinger-bounce', config, candles,
            options=BayesianOptions(max_iterations=40, initial_samples=8, seed=1)
        )
    """

    name = 'bayesian'
    options_class = BayesianOptions

    def _search(self, run: SearchRun) -> List[OptimizationEntry]:
        options = run.options
        rng = run.rng
        run.total = options.max_iterations
        gp = GaussianProcess()
        xs: List[List[float]] = []
        ys: List[float] = []
        entries: List[OptimizationEntry] = []

        if run.n_jobs > 1:
            log.debug("Bayesian search is sequential; ignoring n_jobs")
        log.info(
            f"Bayesian search: {options.max_iterations} evaluations "
            f"({options.initial_samples} random + "
            f"{options.max_iterations - options.initial_samples} GP-guided)"
        )

        seen = set()
        penalized: List[List[float]] = []

        def observe(params: Dict[str, float], iteration: int) -> None:
            point = normalize_params(params, run.space)
            key = tuple(point)
            if key in seen:
                # Already observed
                return
            seen.add(key)
            evaluation = run.evaluate_one(params)
            if evaluation is None:
                penalized.append(point)
                return
            xs.append(point)
            ys.append(evaluation.score)
            entries.append(OptimizationEntry(
                params=evaluation.params,
                score=evaluation.score,
                result=evaluation.result,
                iteration=iteration,
            ))

        def training_set() -> Tuple[np.ndarray, np.ndarray]:
            # Ineligible points score as the worst eligible one so EI steers away
            penalty = min(ys)
            return np.array(xs + penalized), np.array(ys + [penalty] * len(penalized))

        # Phase 1: random exploration
        for iteration in range(options.initial_samples):
            if run.stop_requested():
                return entries
            observe(random_params(run.space, rng), iteration)

        if ys:
            log.info(f"Initial sampling complete. Best score: {max(ys):.3f}")

        # Phase 2: EI-guided exploitation
        for iteration in range(options.initial_samples, options.max_iterations):
            if run.stop_requested():
                break
            candidates = [random_params(run.space, rng) for _ in range(options.num_candidates)]
            candidates = [c for c in candidates if tuple(normalize_params(c, run.space)) not in seen] or candidates
            if ys:
                gp.fit(*training_set())
                x_cand = np.array([normalize_params(c, run.space) for c in candidates])
                mean, std = gp.predict_standardized(x_cand)
                ei = expected_improvement(mean, std, gp.standardize(max(ys)), options.xi)
                chosen = candidates[int(np.argmax(ei))]
            else:
                chosen = candidates[0]

            before = max(ys) if ys else float('-inf')
            observe(chosen, iteration)
            if ys and max(ys) > before:
                log.debug(f"Iteration {iteration}: new best score {max(ys):.3f}")

        return entries

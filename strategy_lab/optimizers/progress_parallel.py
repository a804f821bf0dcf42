"""
ProgressParallel - joblib.Parallel with progress callback support.

Each dispatched task evaluates a batch of candidates and returns a list of
evaluations. As batch results are consumed the callback fires with the
running candidate count and the best score seen so far.

Usage:
    from strategy_lab.optimizers.progress_parallel import ProgressParallel

    results = ProgressParallel(
        n_jobs=4,
        progress_callback=my_callback,
        total=100
    )(
        delayed(evaluate_batch)(evaluator, batch) for batch in batches
    )

    # Callback receives: (completed_count, total_count, best_score)
"""

from joblib import Parallel
from typing import Callable, Iterable, Optional
import logging

log = logging.getLogger(__name__)


class ProgressParallel(Parallel):
    """
    Parallel runner that reports candidate-level progress.

    Attributes:
        progress_callback: Function(completed, total, best_score) called after each batch
        total: Total number of candidates in the run
        completed: Candidates finished so far (may start above 0)
        best_score: Best objective value seen so far
    """

    def __init__(
        self,
        progress_callback: Optional[Callable[[int, int, float], None]] = None,
        total: int = 0,
        completed: int = 0,
        best_score: float = float('-inf'),
        **kwargs
    ):
        """
        Initialize ProgressParallel.

        Args:
            progress_callback: Function to call with (completed, total, best_score)
            total: Total number of candidates expected
            completed: Candidates already finished before this call
            best_score: Best score already seen before this call
            **kwargs: Additional arguments passed to joblib.Parallel (n_jobs, backend, etc.)
        """
        super().__init__(**kwargs)
        self.progress_callback = progress_callback
        self.total = total
        self.completed = completed
        self.best_score = best_score

    def _report(self) -> None:
        if self.progress_callback is None:
            return
        try:
            self.progress_callback(self.completed, self.total, self.best_score)
        except Exception as e:
            log.warning(f"Progress callback failed: {e}")

    def __call__(self, iterable: Iterable) -> list:
        """
        Execute batch tasks and track progress.

        Returns:
            List of batch results in dispatch order
        """
        results = []
        for batch in super().__call__(iterable):
            self.completed += len(batch)
            for evaluation in batch:
                if evaluation is not None and evaluation.score > self.best_score:
                    self.best_score = evaluation.score
            self._report()
            results.append(batch)
        return results

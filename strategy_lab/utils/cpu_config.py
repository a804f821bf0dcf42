"""
CPU configuration for optimizer fan-out

Sizes joblib worker pools from the detected core count, reserving cores
so the machine stays responsive during long grid or genetic searches.
"""

import logging
import multiprocessing

from .. import config

log = logging.getLogger(__name__)


def get_available_cores() -> int:
    """
    Get the number of CPU cores available on the system.

    Returns:
        int: Number of CPU cores detected
    """
    try:
        return multiprocessing.cpu_count()
    except NotImplementedError as e:
        log.warning(f"Could not detect CPU cores: {e}, defaulting to 1")
        return 1


def get_optimizer_workers(total_cores: int = None) -> int:
    """
    Worker processes to use for parallel candidate evaluation.

    Examples:
        2 cores total  -> 1 worker  (reserve 1)
        8 cores total  -> 7 workers (reserve 1)
        16 cores total -> 14 workers (reserve 2)
    """
    if total_cores is None:
        total_cores = get_available_cores()
    reserve_cores = 2 if total_cores >= 16 else 1
    workers = max(1, total_cores - reserve_cores)

    log.debug(f"CPU Config: {total_cores} cores detected, using {workers} optimizer workers")
    return workers


def resolve_n_jobs(n_jobs: int = None) -> int:
    """
    Turn an n_jobs setting into a concrete worker count.

    None falls back to OPTIMIZER_N_JOBS; 0 or a negative value means
    auto-detect with cores reserved for the system.
    """
    if n_jobs is None:
        n_jobs = config.OPTIMIZER_N_JOBS
    if n_jobs <= 0:
        return get_optimizer_workers()
    return n_jobs

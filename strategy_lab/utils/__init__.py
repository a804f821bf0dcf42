from .logger import JsonFormatter, setup_logger
from .cpu_config import get_available_cores, get_optimizer_workers, resolve_n_jobs

__all__ = [
    'JsonFormatter',
    'setup_logger',
    'get_available_cores',
    'get_optimizer_workers',
    'resolve_n_jobs',
]

"""
Exception types raised by the backtesting and optimization core.

Configuration problems (bad split ratio, too few candles, invalid parameter
ranges, unknown strategy ids) raise ConfigurationError, which is also a
ValueError so callers that only know about ValueError keep working.

Failures inside a single strategy evaluation are wrapped in EvaluationError.
Optimizers and the leaderboard catch it per candidate and keep going.
"""


class StrategyLabError(Exception):
    """Base class for all strategy_lab errors."""


class ConfigurationError(StrategyLabError, ValueError):
    """Invalid configuration or input data; aborts only the affected operation."""


class StrategyNotFoundError(ConfigurationError):
    """Requested strategy id is not registered."""

    def __init__(self, strategy_id: str, available=None):
        self.strategy_id = strategy_id
        self.available = sorted(available or [])
        message = f"Unknown strategy '{strategy_id}'"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class EvaluationError(StrategyLabError):
    """A strategy raised while evaluating one configuration."""

    def __init__(self, strategy_id: str, params, cause: Exception):
        self.strategy_id = strategy_id
        self.params = dict(params or {})
        self.cause = cause
        super().__init__(
            f"Strategy '{strategy_id}' failed with params {self.params}: "
            f"{type(cause).__name__}: {cause}"
        )

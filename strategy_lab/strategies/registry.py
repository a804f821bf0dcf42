"""Id-keyed strategy registry."""

from typing import Dict, Iterable, Iterator, List
import logging

from ..exceptions import ConfigurationError, StrategyNotFoundError
from .base import Strategy

log = logging.getLogger(__name__)


class StrategyRegistry:
    """
    Maps strategy ids to strategy instances.

    Example:
        registry = StrategyRegistry([RSIOverboughtOversold()])
        strategy = registry.get('rsi-ob-os')
    """

    def __init__(self, strategies: Iterable[Strategy] = ()):
        self._strategies: Dict[str, Strategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: Strategy, replace: bool = False) -> Strategy:
        if not strategy.id:
            raise ConfigurationError(f"{type(strategy).__name__} has no id")
        if strategy.id in self._strategies and not replace:
            raise ConfigurationError(f"Strategy id '{strategy.id}' already registered")
        self._strategies[strategy.id] = strategy
        log.debug(f"Registered strategy '{strategy.id}'")
        return strategy

    def unregister(self, strategy_id: str) -> None:
        self.get(strategy_id)
        del self._strategies[strategy_id]

    def get(self, strategy_id: str) -> Strategy:
        try:
            return self._strategies[strategy_id]
        except KeyError:
            raise StrategyNotFoundError(strategy_id, self._strategies) from None

    def ids(self) -> List[str]:
        return list(self._strategies)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)

"""
Strategy contract and parameter schema.

A strategy is a pure function of (candle window, parameters) that returns
a Signal or None. Each strategy declares its parameters as a frozen
dataclass whose fields carry a StrategyParamSpec (default/min/max/step).
The optimizers read that reflection table to build search spaces, and
the engine resolves loose {name: number} maps into the typed dataclass
once per run.

Example:
    class MyStrategy(Strategy):
        id = 'my-strategy'
        name = 'My Strategy'

        @dataclass(frozen=True)
        class Params:
            period: int = param(14, 5, 30, 1)
            threshold: float = param(1.5, 0.5, 3.0, 0.25)

        def evaluate(self, window, p):
            ...
"""

import math
from dataclasses import field, fields, asdict
from typing import Any, Dict, Mapping, Optional
import logging

from ..exceptions import ConfigurationError
from ..models import StrategyParamSpec, Signal, CandleWindow

log = logging.getLogger(__name__)


def param(default: float, low: float, high: float, step: float):
    """Dataclass field with an attached search lattice."""
    return field(
        default=default,
        metadata={'spec': StrategyParamSpec(default=default, min=low, max=high, step=step)}
    )


def crossed_above(previous: float, current: float, level: float) -> bool:
    return previous < level <= current


def crossed_below(previous: float, current: float, level: float) -> bool:
    return previous > level >= current


class Strategy:
    """
    Base class for signal strategies.

    Subclasses set `id`, `name`, `description`, a nested `Params` dataclass
    built with `param(...)` fields, and implement `evaluate(window, params)`.
    `evaluate` must return None while its slowest indicator lacks data.
    """

    id: str = ''
    name: str = ''
    description: str = ''
    Params: Any = None
    param_specs: Dict[str, StrategyParamSpec] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.Params is not None:
            cls.param_specs = {f.name: f.metadata['spec'] for f in fields(cls.Params)}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id='{self.id}')"

    def default_params(self) -> Dict[str, float]:
        return {name: spec.default for name, spec in self.param_specs.items()}

    def resolve_params(self, params: Optional[Mapping[str, float]] = None):
        """
        Build the typed Params instance from a loose mapping.

        Missing names take their defaults; int fields are rounded.

        Raises:
            ConfigurationError: Unknown parameter names or non-finite values
        """
        if isinstance(params, self.Params):
            return params
        params = dict(params or {})
        unknown = set(params) - set(self.param_specs)
        if unknown:
            raise ConfigurationError(
                f"Unknown parameters for strategy '{self.id}': {sorted(unknown)}"
            )

        values = {}
        for f in fields(self.Params):
            raw = params.get(f.name, f.default)
            try:
                value = float(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Parameter '{f.name}' is not numeric: {raw!r}") from e
            if not math.isfinite(value):
                raise ConfigurationError(f"Parameter '{f.name}' must be finite, got {raw!r}")
            values[f.name] = int(round(value)) if f.type is int else value
        return self.Params(**values)

    def params_to_dict(self, params) -> Dict[str, float]:
        return asdict(self.resolve_params(params))

    def generate_signal(self, window: CandleWindow, params=None) -> Optional[Signal]:
        """Signal for the last candle of `window`, or None when data is insufficient."""
        return self.evaluate(window, self.resolve_params(params))

    def evaluate(self, window: CandleWindow, params) -> Optional[Signal]:
        raise NotImplementedError

"""
Shared Test Fixtures
======================
Synthetic candle sets, scripted strategies and engines reused across the suite.
"""

from dataclasses import dataclass
from typing import List

import pytest

from strategy_lab.backtest_engine import BacktestEngine
from strategy_lab.data_generator import DEFAULT_START_TIME, generate_candles, generate_flat_candles
from strategy_lab.models import CALL, PUT, BacktestConfig, Candle, Signal
from strategy_lab.strategies import Strategy, StrategyRegistry, build_default_registry, param


# ══════════════════════════════════════════════════════════════════
# Scripted strategies
# ══════════════════════════════════════════════════════════════════

class ScriptedCall(Strategy):
    """CALL on every candle whose index is a multiple of `every`."""
    id = 'test-call'
    name = 'Scripted CALL'

    @dataclass(frozen=True)
    class Params:
        every: int = param(1, 1, 5, 1)

    def evaluate(self, window, p):
        if (len(window) - 1) % p.every:
            return None
        return Signal(CALL, 1.0, {'index': float(len(window) - 1)}, 'scripted')


class ScriptedPut(Strategy):
    """PUT on every candle."""
    id = 'test-put'
    name = 'Scripted PUT'

    @dataclass(frozen=True)
    class Params:
        every: int = param(1, 1, 5, 1)

    def evaluate(self, window, p):
        if (len(window) - 1) % p.every:
            return None
        return Signal(PUT, 1.0, reason='scripted')


class ExplodingStrategy(Strategy):
    """Raises once the window reaches `fuse` candles."""
    id = 'test-explode'
    name = 'Exploding'

    @dataclass(frozen=True)
    class Params:
        fuse: int = param(10, 5, 20, 5)

    def evaluate(self, window, p):
        if len(window) >= p.fuse:
            raise RuntimeError('boom')
        return None


class SilentStrategy(Strategy):
    """Never trades."""
    id = 'test-silent'
    name = 'Silent'

    @dataclass(frozen=True)
    class Params:
        level: float = param(1.0, 0.0, 2.0, 1.0)

    def evaluate(self, window, p):
        return Signal(None)


def make_rising_candles(count: int = 200, step: float = 0.1, interval_ms: int = 60_000) -> List[Candle]:
    candles = []
    for i in range(count):
        close = 100.0 + i * step
        open_price = close - step / 2
        candles.append(Candle(
            timestamp=DEFAULT_START_TIME + i * interval_ms,
            open=open_price,
            high=close + step / 2,
            low=open_price - step / 2,
            close=close,
            volume=1000.0,
        ))
    return candles


# ══════════════════════════════════════════════════════════════════
# Candle fixtures
# ══════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def candles() -> List[Candle]:
    """600 seeded random-walk candles."""
    return generate_candles(600, seed=7)


@pytest.fixture(scope="session")
def long_candles() -> List[Candle]:
    return generate_candles(1000, pattern='volatile', seed=11)


@pytest.fixture(scope="session")
def flat_candles() -> List[Candle]:
    return generate_flat_candles(200)


@pytest.fixture(scope="session")
def rising_candles() -> List[Candle]:
    return make_rising_candles(200)


# ══════════════════════════════════════════════════════════════════
# Engines and configs
# ══════════════════════════════════════════════════════════════════

@pytest.fixture()
def scripted_registry() -> StrategyRegistry:
    return StrategyRegistry([ScriptedCall(), ScriptedPut(), ExplodingStrategy(), SilentStrategy()])


@pytest.fixture()
def scripted_engine(scripted_registry) -> BacktestEngine:
    return BacktestEngine(registry=scripted_registry)


@pytest.fixture(scope="session")
def engine() -> BacktestEngine:
    return BacktestEngine(registry=build_default_registry())


@pytest.fixture()
def base_config() -> BacktestConfig:
    return BacktestConfig(symbol='EURUSD', strategy_id='test-call', payout=92.0, expiry_seconds=60)

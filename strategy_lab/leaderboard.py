"""
StrategyLeaderboard - Rank Every Registered Strategy on One Dataset

Runs each registered strategy with its default parameters over a single
prepared candle series and one shared indicator cache, filters out thin
results, and ranks the survivors.

Two scores per entry:
- composite_score: relative, each metric min-max normalized across the
  ranked entries then weighted (a leaderboard-only comparison)
- absolute_score / grade: the 0-100 composite from `scoring`, comparable
  across runs

Example:
    leaderboard = StrategyLeaderboard(engine, min_trades=30)
    result = leaderboard.run(candles, config)
    print(format_leaderboard_report(result))
"""

import math
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional
import logging

from . import config as settings
from .backtest_engine import BacktestEngine, CandleInput
from .exceptions import StrategyLabError
from .indicators import IndicatorCache
from .models import BET_FIXED, BacktestConfig, BacktestResult
from .scoring import breakeven_win_rate, kelly_fraction, score
from .statistics import (
    calculate_detailed_statistics, calculate_weekly_win_rate_std, count_trading_days,
)
from .strategies import Strategy

log = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_WEIGHTS = {
    'win_rate': 0.30,
    'profit_factor': 0.20,
    'max_drawdown': 0.15,
    'max_consecutive_losses': 0.10,
    'trades_per_day': 0.10,
    'recovery_factor': 0.15,
}

PROFIT_FACTOR_CAP = 10.0
RECOVERY_FACTOR_CAP = 50.0
MIN_BALANCE_DRAWDOWN_MULTIPLE = 3


@dataclass
class LeaderboardEntry:
    strategy_id: str
    strategy_name: str
    params: Dict[str, float]

    total_trades: int
    wins: int
    losses: int
    ties: int
    win_rate: float
    net_profit: float
    net_profit_percent: float
    profit_factor: float
    expectancy: float

    max_drawdown: float
    max_drawdown_percent: float
    max_consecutive_losses: int
    max_consecutive_wins: int
    recovery_factor: float
    sharpe_ratio: float
    sortino_ratio: float

    trading_days: int
    trades_per_day: float
    daily_volume: float
    total_volume: float
    days_to_volume_target: Optional[int]

    win_rate_std_dev: float
    kelly_fraction: float          # Percent of balance
    min_required_balance: float

    absolute_score: float
    grade: str
    composite_score: float = 0.0
    rank: int = 0

    start_time: int = 0
    end_time: int = 0
    candle_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LeaderboardResult:
    entries: List[LeaderboardEntry]
    config: BacktestConfig
    total_strategies: int
    filtered_out: int
    execution_time_ms: float
    errors: Dict[str, str] = field(default_factory=dict)
    volume_multiplier: float = 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'config': self.config.to_dict(),
            'total_strategies': self.total_strategies,
            'filtered_out': self.filtered_out,
            'execution_time_ms': self.execution_time_ms,
            'volume_multiplier': self.volume_multiplier,
            'errors': dict(self.errors),
            'entries': [e.to_dict() for e in self.entries],
        }


def _clamp_profit_factor(pf: float) -> float:
    if not math.isfinite(pf):
        return PROFIT_FACTOR_CAP
    return min(pf, PROFIT_FACTOR_CAP)


def _clamp_recovery_factor(rf: float) -> float:
    if not math.isfinite(rf):
        return RECOVERY_FACTOR_CAP
    return min(rf, RECOVERY_FACTOR_CAP)


def _normalize(value: float, low: float, high: float) -> float:
    """0-100 within [low, high]; 50 when every entry has the same value."""
    if high == low:
        return 50.0
    return (value - low) / (high - low) * 100


def score_and_rank_entries(
    entries: List[LeaderboardEntry],
    weights: Optional[Dict[str, float]] = None
) -> List[LeaderboardEntry]:
    """
    Set relative composite scores, sort best first and assign ranks 1..k.

    Higher is better for win rate, profit factor, trades/day and recovery
    factor; lower is better for drawdown % and losing streak.
    """
    if not entries:
        return entries
    weights = weights or DEFAULT_LEADERBOARD_WEIGHTS

    getters = {
        'win_rate': lambda e: e.win_rate,
        'profit_factor': lambda e: _clamp_profit_factor(e.profit_factor),
        'max_drawdown': lambda e: e.max_drawdown_percent,
        'max_consecutive_losses': lambda e: e.max_consecutive_losses,
        'trades_per_day': lambda e: e.trades_per_day,
        'recovery_factor': lambda e: _clamp_recovery_factor(e.recovery_factor),
    }
    inverted = ('max_drawdown', 'max_consecutive_losses')
    ranges = {}
    for key, getter in getters.items():
        values = [getter(e) for e in entries]
        ranges[key] = (min(values), max(values))

    for entry in entries:
        total = 0.0
        for key, getter in getters.items():
            normalized = _normalize(getter(entry), *ranges[key])
            if key in inverted:
                normalized = 100 - normalized
            total += normalized * weights.get(key, 0.0)
        entry.composite_score = total

    entries.sort(key=lambda e: e.composite_score, reverse=True)
    for rank, entry in enumerate(entries, 1):
        entry.rank = rank
    return entries


class StrategyLeaderboard:
    """
    Batch backtest of all registered strategies.

    Args:
        engine: Engine whose registry supplies the strategies
        min_trades: Entries with fewer trades are filtered out
        min_win_rate: Optional win-rate floor (percent)
        volume_multiplier: Volume target as a multiple of the initial balance
        weights: Relative composite weights (defaults to DEFAULT_LEADERBOARD_WEIGHTS)
    """

    def __init__(
        self,
        engine: Optional[BacktestEngine] = None,
        min_trades: int = settings.LEADERBOARD_MIN_TRADES,
        min_win_rate: Optional[float] = None,
        volume_multiplier: float = 100.0,
        weights: Optional[Dict[str, float]] = None
    ):
        self.engine = engine or BacktestEngine()
        self.min_trades = min_trades
        self.min_win_rate = min_win_rate
        self.volume_multiplier = volume_multiplier
        self.weights = dict(weights or DEFAULT_LEADERBOARD_WEIGHTS)

        log.info(
            f"StrategyLeaderboard initialized: {len(self.engine.registry)} strategies, "
            f"min_trades={min_trades}"
        )

    def run(
        self,
        candles: CandleInput,
        config: BacktestConfig,
        progress_callback: Optional[Callable[[int, int, str], None]] = None
    ) -> LeaderboardResult:
        """
        Backtest every registered strategy with default parameters.

        Args:
            candles: Candle data shared by all strategies
            config: Shared backtest settings (strategy id/params are replaced)
            progress_callback: Called with (completed, total, strategy_id)
                after each strategy

        Returns:
            LeaderboardResult with ranked entries; a strategy that raises is
            skipped, logged, and counted in `filtered_out`
        """
        started = time.perf_counter()
        strategies = list(self.engine.registry)
        total = len(strategies)
        series = self.engine.prepare_series(config, candles)

        entries: List[LeaderboardEntry] = []
        errors: Dict[str, str] = {}
        filtered_out = 0

        log.info(f"Running leaderboard: {total} strategies on {len(series)} candles")

        with IndicatorCache(series) as cache:
            for completed, strategy in enumerate(strategies, 1):
                run_config = config.with_params(strategy.default_params(), strategy_id=strategy.id)
                try:
                    result = self.engine.run_on_series(run_config, series, cache=cache, strategy=strategy)
                except StrategyLabError as e:
                    log.warning(f"Skipping {strategy.id}: {e}")
                    errors[strategy.id] = str(e)
                    filtered_out += 1
                    result = None

                if result is not None:
                    if result.total_trades < self.min_trades:
                        log.debug(f"{strategy.id}: {result.total_trades} trades < {self.min_trades}, filtered")
                        filtered_out += 1
                    elif self.min_win_rate is not None and result.win_rate < self.min_win_rate:
                        log.debug(f"{strategy.id}: win rate {result.win_rate:.1f}% < {self.min_win_rate}, filtered")
                        filtered_out += 1
                    else:
                        entries.append(self._build_entry(strategy, result))

                if progress_callback is not None:
                    try:
                        progress_callback(completed, total, strategy.id)
                    except Exception as e:
                        log.warning(f"Progress callback failed: {e}")

        score_and_rank_entries(entries, self.weights)
        elapsed_ms = (time.perf_counter() - started) * 1000
        log.info(
            f"✅ Leaderboard complete: {len(entries)} ranked, {filtered_out} filtered "
            f"({elapsed_ms:.0f}ms)"
        )
        return LeaderboardResult(
            entries=entries,
            config=config,
            total_strategies=total,
            filtered_out=filtered_out,
            execution_time_ms=elapsed_ms,
            errors=errors,
            volume_multiplier=self.volume_multiplier,
        )

    def _build_entry(self, strategy: Strategy, result: BacktestResult) -> LeaderboardEntry:
        config = result.config
        stats = calculate_detailed_statistics(result.trades, result.initial_balance)

        trading_days = max(count_trading_days(result.trades), 1)
        bet = config.bet_amount if config.bet_type == BET_FIXED else config.initial_balance * config.bet_amount / 100
        total_volume = result.total_trades * bet
        daily_volume = total_volume / trading_days
        volume_target = config.initial_balance * self.volume_multiplier
        days_to_target = math.ceil(volume_target / daily_volume) if daily_volume > 0 else None

        win_rate_std = calculate_weekly_win_rate_std(result.trades)
        scored = score(
            {**result.metrics, 'win_rate_std_dev': win_rate_std},
            payout=config.payout
        )

        return LeaderboardEntry(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            params=dict(config.strategy_params),
            total_trades=result.total_trades,
            wins=result.wins,
            losses=result.losses,
            ties=result.ties,
            win_rate=result.win_rate,
            net_profit=result.net_profit,
            net_profit_percent=result.net_profit_percent,
            profit_factor=result.profit_factor,
            expectancy=result.expectancy,
            max_drawdown=result.max_drawdown,
            max_drawdown_percent=result.max_drawdown_percent,
            max_consecutive_losses=result.max_consecutive_losses,
            max_consecutive_wins=result.max_consecutive_wins,
            recovery_factor=stats.recovery_factor,
            sharpe_ratio=stats.sharpe_ratio,
            sortino_ratio=stats.sortino_ratio,
            trading_days=trading_days,
            trades_per_day=result.total_trades / trading_days,
            daily_volume=daily_volume,
            total_volume=total_volume,
            days_to_volume_target=days_to_target,
            win_rate_std_dev=win_rate_std,
            kelly_fraction=kelly_fraction(result.win_rate, config.payout) * 100,
            min_required_balance=result.max_drawdown * MIN_BALANCE_DRAWDOWN_MULTIPLE,
            absolute_score=scored.score,
            grade=scored.grade,
            start_time=result.start_time,
            end_time=result.end_time,
            candle_count=result.candle_count,
        )


def format_leaderboard_report(result: LeaderboardResult) -> str:
    """Plain-text leaderboard, one block per ranked entry."""
    cfg = result.config
    breakeven = breakeven_win_rate(cfg.payout)
    bar = '═' * 64
    lines = [
        bar,
        '                    BACKTEST LEADERBOARD',
        bar,
        f"  Strategies: {result.total_strategies} total, {len(result.entries)} ranked, "
        f"{result.filtered_out} filtered",
        f"  Symbol: {cfg.symbol} | Payout: {cfg.payout:g}% | Bet: ${cfg.bet_amount:g} "
        f"({cfg.bet_type}) | Expiry: {cfg.expiry_seconds}s",
        f"  Volume Target: {result.volume_multiplier:g}x deposit",
        f"  Execution: {result.execution_time_ms:.0f}ms",
        bar,
        '',
    ]

    for entry in result.entries:
        profitable = '+' if entry.win_rate >= breakeven else '-'
        volume_days = f"{entry.days_to_volume_target}d" if entry.days_to_volume_target is not None else 'N/A'
        pf = 'inf' if math.isinf(entry.profit_factor) else f"{entry.profit_factor:.2f}"
        lines.extend([
            f"#{entry.rank} [{profitable}] {entry.strategy_name} [{entry.grade}]",
            f"   Score: {entry.composite_score:.1f} (abs: {entry.absolute_score:.1f}) | "
            f"WR: {entry.win_rate:.1f}% | PF: {pf} | Net: ${entry.net_profit:.2f}",
            f"   MDD: {entry.max_drawdown_percent:.1f}% | MaxLoss: {entry.max_consecutive_losses}x | "
            f"Trades/Day: {entry.trades_per_day:.1f}",
            f"   Daily Vol: ${entry.daily_volume:.0f} | Vol Target: {volume_days} | "
            f"Kelly: {entry.kelly_fraction:.1f}%",
            f"   Min Balance: ${entry.min_required_balance:.0f} | Stability: ±{entry.win_rate_std_dev:.1f}%",
            '─' * 64,
        ])

    if result.errors:
        lines.append('  Errors:')
        for strategy_id, message in result.errors.items():
            lines.append(f"    {strategy_id}: {message}")

    return '\n'.join(lines)

"""
strategy-lab command line

Commands:
- list-strategies: registered strategies and their parameter tables
- generate: write synthetic candles to JSON or CSV
- backtest: one strategy, one parameter set, console report
- optimize: grid / genetic / bayesian search, optionally with a
  train/validation overfitting check
- leaderboard: every strategy with default parameters, ranked

Candles come from --data (JSON or CSV file) or --synthetic N.

Example:
    strategy-lab backtest rsi-ob-os --synthetic 2000 --param period=10
    strategy-lab optimize rsi-ob-os --data candles.json --method genetic --validate
    strategy-lab leaderboard --data candles.csv --output results/leaderboard.json
"""

import argparse
import logging
import sys
from typing import Dict, List, Optional, Sequence

from . import config as settings
from .backtest_engine import BacktestEngine
from .candle_utils import candles_to_dataframe, load_candles
from .data_generator import PATTERNS, generate_candles
from .exceptions import StrategyLabError
from .leaderboard import StrategyLeaderboard, format_leaderboard_report
from .models import BET_FIXED, BET_PERCENTAGE, BacktestConfig, Candle
from .optimizers import OBJECTIVES, OPTIMIZERS, create_optimizer
from .optimizers.base import BayesianOptions, GeneticOptions, GridOptions, OptimizerOptions
from .report import export_json, format_optimization_report, generate_console_report
from .statistics import calculate_detailed_statistics
from .utils.logger import setup_logger
from .validator import TrainValidationValidator

log = logging.getLogger(__name__)


# =========================================================================
# Argument helpers
# =========================================================================

def _parse_assignment(text: str) -> List[str]:
    name, sep, value = text.partition('=')
    if not sep or not name or not value:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got '{text}'")
    return [name.strip(), value.strip()]


def parse_param(text: str) -> List:
    """'period=14' -> ['period', 14.0]"""
    name, value = _parse_assignment(text)
    try:
        return [name, float(value)]
    except ValueError:
        raise argparse.ArgumentTypeError(f"parameter '{name}' is not a number: '{value}'") from None


def parse_range(text: str) -> List:
    """'period=5:30:1' -> ['period', {'min': 5, 'max': 30, 'step': 1}]"""
    name, value = _parse_assignment(text)
    parts = value.split(':')
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"range for '{name}' must be MIN:MAX:STEP, got '{value}'")
    try:
        low, high, step = (float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"range for '{name}' is not numeric: '{value}'") from None
    return [name, {'min': low, 'max': high, 'step': step}]


def _add_data_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--data', help='Candle file (.json or .csv)')
    source.add_argument('--synthetic', type=int, metavar='N', help='Generate N synthetic candles')
    parser.add_argument('--pattern', choices=PATTERNS, default='random', help='Synthetic price pattern')
    parser.add_argument('--seed', type=int, default=None, help='Random seed (defaults to RANDOM_SEED)')
    parser.add_argument('--tick-interval', type=int, default=60, metavar='SECONDS',
                        help='Candle interval when --data holds raw price ticks')


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--symbol', default=settings.DEFAULT_SYMBOL)
    parser.add_argument('--payout', type=float, default=settings.DEFAULT_PAYOUT, help='Payout percent')
    parser.add_argument('--expiry', type=int, default=settings.DEFAULT_EXPIRY_SECONDS, help='Expiry seconds')
    parser.add_argument('--balance', type=float, default=settings.DEFAULT_INITIAL_BALANCE)
    parser.add_argument('--bet', type=float, default=settings.DEFAULT_BET_AMOUNT)
    parser.add_argument('--bet-type', choices=(BET_FIXED, BET_PERCENTAGE), default=settings.DEFAULT_BET_TYPE)
    parser.add_argument('--latency-ms', type=int, default=0, help='Entry delay after the signal candle')
    parser.add_argument('--slippage', type=float, default=0.0, help='Adverse entry price offset')
    parser.add_argument('--max-exit-gap', type=float, default=None,
                        help='Skip trades whose exit lands this many seconds past expiry')
    parser.add_argument('--output', help='Write JSON results to this path')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='strategy-lab',
        description='Backtest and optimize binary-options signal strategies'
    )
    parser.add_argument('--log-level', default=None, help='Log level (defaults to LOG_LEVEL)')
    parser.add_argument('--json-logs', action='store_true', help='Emit JSON log lines')
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('list-strategies', help='List registered strategies')

    generate = commands.add_parser('generate', help='Write synthetic candles to a file')
    generate.add_argument('output', help='Destination (.json or .csv)')
    generate.add_argument('--count', type=int, default=1000)
    generate.add_argument('--pattern', choices=PATTERNS, default='random')
    generate.add_argument('--start-price', type=float, default=100.0)
    generate.add_argument('--interval-ms', type=int, default=60_000)
    generate.add_argument('--volatility', type=float, default=0.002)
    generate.add_argument('--seed', type=int, default=None)

    backtest = commands.add_parser('backtest', help='Backtest one strategy')
    backtest.add_argument('strategy', help='Strategy id')
    backtest.add_argument('--param', type=parse_param, action='append', default=[],
                          metavar='NAME=VALUE', help='Strategy parameter (repeatable)')
    _add_data_args(backtest)
    _add_config_args(backtest)

    optimize = commands.add_parser('optimize', help='Search a strategy parameter space')
    optimize.add_argument('strategy', help='Strategy id')
    optimize.add_argument('--method', choices=sorted(OPTIMIZERS), default='grid')
    optimize.add_argument('--objective', choices=OBJECTIVES, default='net_profit')
    optimize.add_argument('--range', type=parse_range, action='append', default=[],
                          metavar='NAME=MIN:MAX:STEP', help='Search range (repeatable)')
    optimize.add_argument('--min-trades', type=int, default=settings.DEFAULT_MIN_TRADES)
    optimize.add_argument('--n-jobs', type=int, default=settings.OPTIMIZER_N_JOBS,
                          help='Parallel workers (0 = auto-detect)')
    optimize.add_argument('--max-combinations', type=int, default=None, help='Grid size guard')
    optimize.add_argument('--population', type=int, default=50, help='Genetic population size')
    optimize.add_argument('--generations', type=int, default=20, help='Genetic generations')
    optimize.add_argument('--iterations', type=int, default=50, help='Bayesian iterations')
    optimize.add_argument('--initial-samples', type=int, default=10, help='Bayesian random samples')
    optimize.add_argument('--top', type=int, default=10, help='Rows in the results table')
    optimize.add_argument('--validate', action='store_true', help='Run a train/validation overfitting check')
    optimize.add_argument('--train-ratio', type=float, default=0.7)
    _add_data_args(optimize)
    _add_config_args(optimize)

    leaderboard = commands.add_parser('leaderboard', help='Rank every strategy')
    leaderboard.add_argument('--min-trades', type=int, default=settings.LEADERBOARD_MIN_TRADES)
    leaderboard.add_argument('--min-win-rate', type=float, default=None)
    _add_data_args(leaderboard)
    _add_config_args(leaderboard)

    return parser


# =========================================================================
# Command handlers
# =========================================================================

def _load_candles(args) -> List[Candle]:
    if args.data:
        return load_candles(args.data, tick_interval_ms=args.tick_interval * 1000)
    seed = args.seed if args.seed is not None else settings.RANDOM_SEED
    return generate_candles(args.synthetic, pattern=args.pattern, seed=seed)


def _base_config(args, strategy_id: str, params: Optional[Dict[str, float]] = None) -> BacktestConfig:
    return BacktestConfig(
        symbol=args.symbol,
        strategy_id=strategy_id,
        strategy_params=params or {},
        initial_balance=args.balance,
        bet_amount=args.bet,
        bet_type=args.bet_type,
        payout=args.payout,
        expiry_seconds=args.expiry,
        latency_ms=args.latency_ms,
        slippage=args.slippage,
        max_exit_gap=args.max_exit_gap,
    )


def _optimizer_options(args) -> OptimizerOptions:
    common = {
        'objective': args.objective,
        'min_trades': args.min_trades,
        'n_jobs': args.n_jobs,
        'seed': args.seed,
    }
    if args.method == 'genetic':
        return GeneticOptions(population_size=args.population, generations=args.generations, **common)
    if args.method == 'bayesian':
        return BayesianOptions(
            max_iterations=args.iterations, initial_samples=args.initial_samples, **common
        )
    return GridOptions(max_combinations=args.max_combinations, **common)


def cmd_list_strategies(args, engine: BacktestEngine) -> int:
    for strategy in engine.registry:
        print(f"{strategy.id:28s} {strategy.name}")
        for name, spec in strategy.param_specs.items():
            print(f"    {name:24s} default={spec.default:g} range=[{spec.min:g}, {spec.max:g}] step={spec.step:g}")
    return 0


def cmd_generate(args, engine: BacktestEngine) -> int:
    candles = generate_candles(
        args.count,
        start_price=args.start_price,
        interval_ms=args.interval_ms,
        volatility=args.volatility,
        pattern=args.pattern,
        seed=args.seed,
    )
    df = candles_to_dataframe(candles)
    if args.output.lower().endswith('.csv'):
        df.to_csv(args.output, index=False)
    else:
        export_json(df, args.output)
    log.info(f"✅ Wrote {len(candles)} {args.pattern} candles to {args.output}")
    return 0


def cmd_backtest(args, engine: BacktestEngine) -> int:
    candles = _load_candles(args)
    config = _base_config(args, args.strategy, dict(args.param))
    result = engine.run_backtest(config, candles)
    stats = calculate_detailed_statistics(result.trades, result.initial_balance)
    print(generate_console_report(result, stats))
    if args.output:
        export_json({'result': result.to_dict(), 'statistics': stats.to_dict()}, args.output)
        log.info(f"Results written to {args.output}")
    return 0


def cmd_optimize(args, engine: BacktestEngine) -> int:
    candles = _load_candles(args)
    config = _base_config(args, args.strategy)
    param_ranges = dict(args.range) or None
    optimizer = create_optimizer(args.method, engine, verbose=True)
    options = _optimizer_options(args)

    if args.validate:
        validator = TrainValidationValidator(engine, optimizer, ratio=args.train_ratio)
        report = validator.validate(args.strategy, config, candles, param_ranges, options)
        print(validator.get_validation_summary(report))
        payload = report.to_dict()
    else:
        entries = optimizer.optimize(args.strategy, config, candles, param_ranges, options)
        print(format_optimization_report(entries, top=args.top, title=f"{args.method.upper()} OPTIMIZATION: {args.strategy}"))
        payload = {
            'search_stats': optimizer.last_search_stats,
            'entries': [entry.to_dict() for entry in entries],
        }

    if args.output:
        export_json(payload, args.output)
        log.info(f"Results written to {args.output}")
    return 0


def cmd_leaderboard(args, engine: BacktestEngine) -> int:
    candles = _load_candles(args)
    config = _base_config(args, engine.registry.ids()[0])
    leaderboard = StrategyLeaderboard(engine, min_trades=args.min_trades, min_win_rate=args.min_win_rate)

    def on_progress(completed: int, total: int, strategy_id: str) -> None:
        log.debug(f"Leaderboard progress {completed}/{total}: {strategy_id}")

    result = leaderboard.run(candles, config, progress_callback=on_progress)
    print(format_leaderboard_report(result))
    if args.output:
        export_json(result.to_dict(), args.output)
        log.info(f"Results written to {args.output}")
    return 0


COMMANDS = {
    'list-strategies': cmd_list_strategies,
    'generate': cmd_generate,
    'backtest': cmd_backtest,
    'optimize': cmd_optimize,
    'leaderboard': cmd_leaderboard,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Entry point.

    Returns:
        0 on success, 1 on a library or file error, 2 on invalid arguments
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logger(args.log_level, json_format=True if args.json_logs else None)

    try:
        engine = BacktestEngine()
        return COMMANDS[args.command](args, engine)
    except StrategyLabError as e:
        log.error(f"❌ {args.command} failed: {e}")
        return 1
    except OSError as e:
        log.error(f"❌ {args.command} failed: cannot access {e.filename or 'file'}: {e.strerror}")
        return 1


if __name__ == '__main__':
    sys.exit(main())

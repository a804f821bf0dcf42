"""
Backtest reports

- generate_console_report: text summary of one backtest with direction
  and hourly breakdowns
- format_optimization_report: ranked optimizer entries as a table
- to_json / export_json: JSON export; non-finite floats (an infinite
  profit factor) become null, numpy and pandas values become plain Python

Example:
    print(generate_console_report(result))
    export_json(result.to_dict(), 'results/backtest.json')
"""

import json
import math
import os
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence

import numpy as np
import pandas as pd

from .models import BacktestResult
from .optimizers.base import OptimizationEntry, results_to_dataframe
from .scoring import breakeven_win_rate, score
from .statistics import DetailedStatistics, calculate_detailed_statistics

WIDTH = 58


def _format_time(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return '-'
    return datetime.fromtimestamp(timestamp_ms / 1000, timezone.utc).strftime('%Y-%m-%d %H:%M UTC')


def _format_pf(pf: float) -> str:
    return 'inf' if math.isinf(pf) else f"{pf:.2f}"


def generate_console_report(
    result: BacktestResult,
    stats: Optional[DetailedStatistics] = None,
    title: Optional[str] = None
) -> str:
    """Boxed text report of one backtest run."""
    config = result.config
    stats = stats or calculate_detailed_statistics(result.trades, result.initial_balance)
    scored = score(result.metrics, payout=config.payout)
    breakeven = breakeven_win_rate(config.payout)
    title = title or f"Backtest: {config.strategy_id}"

    lines: List[str] = []
    lines.append('')
    lines.append('╔' + '═' * WIDTH + '╗')
    lines.append(f"║  {title[:WIDTH - 4].ljust(WIDTH - 4)}  ║")
    lines.append('╚' + '═' * WIDTH + '╝')
    lines.append('')
    lines.append(f"📊 {config.symbol} | {result.interval_ms // 1000}s candles | {config.strategy_id}")
    lines.append(f"📅 {_format_time(result.start_time)} ~ {_format_time(result.end_time)} ({result.candle_count} candles)")
    lines.append(f"⚙️  Params: {config.strategy_params or 'defaults'}")
    lines.append('')
    lines.append('─' * WIDTH)
    lines.append('')

    win_status = '✅' if result.win_rate >= breakeven else '❌'
    profit_status = '📈' if result.net_profit >= 0 else '📉'
    lines.append(f"  Total Trades:   {result.total_trades} ({result.wins}W / {result.losses}L / {result.ties}T)")
    lines.append(f"  Win Rate:       {result.win_rate:.1f}% {win_status} (breakeven {breakeven:.1f}%)")
    lines.append(f"  Net Profit:     ${result.net_profit:.2f} ({result.net_profit_percent:.2f}%) {profit_status}")
    lines.append(f"  Profit Factor:  {_format_pf(result.profit_factor)}")
    lines.append(f"  Expectancy:     ${result.expectancy:.2f}")
    lines.append(f"  Max Drawdown:   ${result.max_drawdown:.2f} ({result.max_drawdown_percent:.1f}%)")
    lines.append(f"  Streaks:        {result.max_consecutive_wins}W / {result.max_consecutive_losses}L max")
    lines.append(f"  Sharpe:         {stats.sharpe_ratio:.2f} | Sortino: {stats.sortino_ratio:.2f} | Calmar: {stats.calmar_ratio:.2f}")
    lines.append(f"  Score:          {scored.score:.1f}/100 [{scored.grade}]")
    lines.append('')
    lines.append('─' * WIDTH)
    lines.append('')

    lines.append('  Direction Breakdown:')
    lines.append(f"    CALL: {stats.call_trades} trades ({stats.call_win_rate:.1f}% win, ${stats.call_profit:.2f})")
    lines.append(f"    PUT:  {stats.put_trades} trades ({stats.put_win_rate:.1f}% win, ${stats.put_profit:.2f})")
    lines.append('')

    active_hours = [h for h in stats.hourly_stats if h['trades'] > 0]
    if active_hours:
        lines.append('  Hourly (UTC, hours with trades):')
        for h in active_hours:
            lines.append(
                f"    {int(h['hour']):02d}:00  {int(h['trades']):4d} trades  "
                f"{h['win_rate']:5.1f}% win  ${h['profit']:9.2f}"
            )
        lines.append('')

    return '\n'.join(lines)


def format_optimization_report(
    entries: Sequence[OptimizationEntry],
    top: int = 10,
    title: str = 'OPTIMIZATION RESULTS'
) -> str:
    """Top-N table of optimizer entries."""
    lines = ['=' * 60, title, '=' * 60]
    if not entries:
        lines.append('No valid configurations found.')
        return '\n'.join(lines)

    df = results_to_dataframe(list(entries)[:top])
    param_columns = list(entries[0].params)
    columns = ['rank'] + param_columns + [
        'metric_total_trades', 'metric_win_rate', 'metric_net_profit', 'metric_profit_factor', 'score'
    ]
    table = df[columns].rename(columns=lambda c: c.replace('metric_', ''))
    lines.append(table.to_string(index=False, float_format=lambda v: f"{v:.2f}"))
    return '\n'.join(lines)


def _sanitize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    if isinstance(value, pd.DataFrame):
        return _sanitize(value.to_dict('records'))
    if isinstance(value, np.ndarray):
        return _sanitize(value.tolist())
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def to_json(data: Any, indent: Optional[int] = 2) -> str:
    """Strict JSON (no Infinity/NaN tokens)."""
    return json.dumps(_sanitize(data), indent=indent, allow_nan=False)


def export_json(data: Any, path: str) -> str:
    """Write `data` as JSON to `path`, creating parent directories."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        f.write(to_json(data))
    return path

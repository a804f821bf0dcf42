"""
Trade-ledger statistics

Turns a list of finalized trades into the full metric set used by
reports, scoring and the leaderboard.

Metrics:
- Counts and rates (win/loss/tie), gross and net profit, profit factor
- Expectancy, average and largest win/loss
- Max drawdown ($ and %), streaks, recovery factor
- CALL/PUT breakdown, trade frequency, 24-bucket UTC hourly table
- Sharpe, Sortino and Calmar ratios

Per-trade returns are profit / initial_balance. Ratios annualize with
250 trading days x 24 trades per day.

Example:
    stats = calculate_detailed_statistics(result.trades, result.initial_balance)
    print(f"Sharpe {stats.sharpe_ratio:.2f}, PF {stats.profit_factor:.2f}")
"""

import math
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .models import CALL, PUT, WIN, LOSS, TIE, Trade, EquityPoint

PERIODS_PER_YEAR = 250 * 24
DEFAULT_RISK_FREE_RATE = 0.02
DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

HOLDING_TIME_BUCKETS = [
    ('< 1 min', 60_000),
    ('1-5 min', 300_000),
    ('5-15 min', 900_000),
    ('15-30 min', 1_800_000),
    ('30-60 min', 3_600_000),
    ('> 60 min', math.inf),
]


@dataclass
class Streak:
    kind: str           # 'win' or 'loss'
    count: int
    start_index: int
    end_index: int
    profit: float


@dataclass
class DetailedStatistics:
    """Everything derivable from one trade ledger."""
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    ties: int = 0
    win_rate: float = 0.0
    loss_rate: float = 0.0

    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0
    net_profit_percent: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0

    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    recovery_factor: float = 0.0

    call_trades: int = 0
    put_trades: int = 0
    call_win_rate: float = 0.0
    put_win_rate: float = 0.0
    call_profit: float = 0.0
    put_profit: float = 0.0

    trades_per_hour: float = 0.0
    average_trade_gap_ms: float = 0.0
    trading_duration_ms: int = 0
    busiest_hour: int = 0
    quietest_hour: int = 0
    hourly_stats: List[Dict[str, float]] = field(default_factory=lambda: _empty_hourly())

    current_streak: Tuple[str, int] = ('none', 0)
    streaks: List[Streak] = field(default_factory=list)

    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =========================================================================
# Building blocks (also used by the backtest engine)
# =========================================================================

def calculate_profit_factor(gross_profit: float, gross_loss: float) -> float:
    """gross_profit / gross_loss; inf with no losses and some profit, 0 with neither."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    return math.inf if gross_profit > 0 else 0.0


def calculate_drawdown(profits: Sequence[float], initial_balance: float) -> Tuple[float, float]:
    """
    Single pass over the balance path.

    Returns:
        (max_drawdown, max_drawdown_percent), where the percent is measured
        against the peak at the time of the largest absolute drawdown
    """
    balance = peak = initial_balance
    max_dd = 0.0
    max_dd_pct = 0.0
    for profit in profits:
        balance += profit
        if balance > peak:
            peak = balance
        drawdown = peak - balance
        if drawdown > max_dd:
            max_dd = drawdown
            max_dd_pct = drawdown / peak * 100 if peak > 0 else 0.0
    return max_dd, max_dd_pct


def calculate_streaks(trades: Sequence[Trade]) -> List[Streak]:
    """Runs of consecutive WIN or LOSS results. A TIE ends the current run."""
    streaks: List[Streak] = []
    current: Optional[Streak] = None
    for i, trade in enumerate(trades):
        kind = {WIN: 'win', LOSS: 'loss'}.get(trade.result)
        if kind is None:
            if current is not None:
                streaks.append(current)
                current = None
            continue
        if current is not None and current.kind == kind:
            current.count += 1
            current.end_index = i
            current.profit += trade.profit
        else:
            if current is not None:
                streaks.append(current)
            current = Streak(kind, 1, i, i, trade.profit)
    if current is not None:
        streaks.append(current)
    return streaks


def max_streaks(trades: Sequence[Trade]) -> Tuple[int, int]:
    """(max consecutive wins, max consecutive losses)."""
    streaks = calculate_streaks(trades)
    wins = [s.count for s in streaks if s.kind == 'win']
    losses = [s.count for s in streaks if s.kind == 'loss']
    return max(wins, default=0), max(losses, default=0)


def current_streak(trades: Sequence[Trade]) -> Tuple[str, int]:
    if not trades or trades[-1].result == TIE:
        return ('none', 0)
    last = calculate_streaks(trades)[-1]
    return (last.kind, last.count)


def _returns(trades: Sequence[Trade], initial_balance: float) -> np.ndarray:
    return np.array([t.profit for t in trades], dtype=float) / initial_balance


def calculate_sharpe_ratio(
    trades: Sequence[Trade],
    initial_balance: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
) -> float:
    """Annualized Sharpe over per-trade returns; 0 with fewer than 2 trades or zero std."""
    if len(trades) < 2:
        return 0.0
    returns = _returns(trades, initial_balance)
    std = float(returns.std())
    if std == 0:
        return 0.0
    excess = float(returns.mean()) - risk_free_rate / PERIODS_PER_YEAR
    return excess / std * math.sqrt(PERIODS_PER_YEAR)


def calculate_sortino_ratio(
    trades: Sequence[Trade],
    initial_balance: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
) -> float:
    """Like Sharpe but over the std of negative returns only (needs at least 2)."""
    if len(trades) < 2:
        return 0.0
    returns = _returns(trades, initial_balance)
    negative = returns[returns < 0]
    if len(negative) < 2:
        return 0.0
    downside = float(negative.std())
    if downside == 0:
        return 0.0
    excess = float(returns.mean()) - risk_free_rate / PERIODS_PER_YEAR
    return excess / downside * math.sqrt(PERIODS_PER_YEAR)


def calculate_calmar_ratio(net_profit_percent: float, max_drawdown_percent: float) -> float:
    if max_drawdown_percent == 0:
        return 0.0
    return net_profit_percent / abs(max_drawdown_percent)


def calculate_ulcer_index(equity_curve: Sequence[EquityPoint]) -> float:
    """RMS of percentage drawdowns from the running peak."""
    if len(equity_curve) < 2:
        return 0.0
    balances = np.array([p.balance for p in equity_curve], dtype=float)
    peaks = np.maximum.accumulate(balances)
    drawdowns = np.where(peaks > 0, (peaks - balances) / peaks * 100, 0.0)
    return float(np.sqrt(np.mean(drawdowns ** 2)))


# =========================================================================
# Tables
# =========================================================================

def trades_to_dataframe(trades: Sequence[Trade]) -> pd.DataFrame:
    """Ledger as a DataFrame with a UTC `entry_dt` column."""
    columns = [f.name for f in fields(Trade)]
    df = pd.DataFrame([t.to_dict() for t in trades], columns=columns)
    df['entry_dt'] = pd.to_datetime(df['entry_time'], unit='ms', utc=True)
    return df


def _group_table(df: pd.DataFrame, keys) -> pd.DataFrame:
    grouped = df.groupby(keys)
    table = pd.DataFrame({
        'trades': grouped.size(),
        'wins': grouped['result'].apply(lambda r: int((r == WIN).sum())),
        'losses': grouped['result'].apply(lambda r: int((r == LOSS).sum())),
        'profit': grouped['profit'].sum(),
    })
    table['win_rate'] = table['wins'] / table['trades'] * 100
    table['avg_profit'] = table['profit'] / table['trades']
    return table


def _empty_hourly() -> List[Dict[str, float]]:
    return [
        {'hour': h, 'trades': 0, 'wins': 0, 'losses': 0, 'win_rate': 0.0, 'profit': 0.0, 'avg_profit': 0.0}
        for h in range(24)
    ]


def analyze_by_hour(trades: Sequence[Trade]) -> pd.DataFrame:
    """24 rows (UTC hour of entry), empty hours included with zeros."""
    index = pd.Index(range(24), name='hour')
    if not trades:
        table = pd.DataFrame(0, index=index, columns=['trades', 'wins', 'losses', 'profit'])
    else:
        df = trades_to_dataframe(trades)
        table = _group_table(df, df['entry_dt'].dt.hour.rename('hour'))
        table = table[['trades', 'wins', 'losses', 'profit']].reindex(index, fill_value=0)
    table['profit'] = table['profit'].astype(float)
    table['win_rate'] = np.where(table['trades'] > 0, table['wins'] / table['trades'].clip(lower=1) * 100, 0.0)
    table['avg_profit'] = np.where(table['trades'] > 0, table['profit'] / table['trades'].clip(lower=1), 0.0)
    return table.reset_index()


def analyze_by_day_of_week(trades: Sequence[Trade]) -> pd.DataFrame:
    """Seven rows, Monday first (UTC), empty days included with zeros."""
    index = pd.Index(range(7), name='day')
    if not trades:
        table = pd.DataFrame(0, index=index, columns=['trades', 'wins', 'losses', 'profit'])
    else:
        df = trades_to_dataframe(trades)
        table = _group_table(df, df['entry_dt'].dt.dayofweek.rename('day'))
        table = table[['trades', 'wins', 'losses', 'profit']].reindex(index, fill_value=0)
    table['profit'] = table['profit'].astype(float)
    table['win_rate'] = np.where(table['trades'] > 0, table['wins'] / table['trades'].clip(lower=1) * 100, 0.0)
    table['avg_profit'] = np.where(table['trades'] > 0, table['profit'] / table['trades'].clip(lower=1), 0.0)
    table.insert(0, 'day_name', DAY_NAMES)
    return table.reset_index()


def analyze_by_month(trades: Sequence[Trade]) -> pd.DataFrame:
    """One row per (year, month) that has trades, chronological."""
    if not trades:
        return pd.DataFrame(columns=['year', 'month', 'trades', 'wins', 'losses', 'profit', 'win_rate', 'avg_profit'])
    df = trades_to_dataframe(trades)
    table = _group_table(df, [df['entry_dt'].dt.year.rename('year'), df['entry_dt'].dt.month.rename('month')])
    return table.sort_index().reset_index()


def analyze_streaks(trades: Sequence[Trade]) -> Dict[str, Any]:
    streaks = calculate_streaks(trades)
    wins = [s.count for s in streaks if s.kind == 'win']
    losses = [s.count for s in streaks if s.kind == 'loss']
    kind, count = current_streak(trades)
    return {
        'max_win_streak': max(wins, default=0),
        'max_loss_streak': max(losses, default=0),
        'avg_win_streak': float(np.mean(wins)) if wins else 0.0,
        'avg_loss_streak': float(np.mean(losses)) if losses else 0.0,
        'current_streak': {'type': kind, 'count': count},
    }


def count_trading_days(trades: Sequence[Trade]) -> int:
    """Distinct UTC calendar days with at least one entry."""
    if not trades:
        return 0
    df = trades_to_dataframe(trades)
    return int(df['entry_dt'].dt.normalize().nunique())


def calculate_weekly_win_rate_std(trades: Sequence[Trade], min_trades_per_week: int = 5) -> float:
    """
    Population std of weekly win rates (weeks start Monday, UTC).

    Weeks with fewer than `min_trades_per_week` trades are ignored; fewer
    than two qualifying weeks gives 0.
    """
    if not trades:
        return 0.0
    df = trades_to_dataframe(trades)
    week = (df['entry_dt'] - pd.to_timedelta(df['entry_dt'].dt.dayofweek, unit='D')).dt.normalize()
    grouped = df.groupby(week)['result']
    weekly = pd.DataFrame({'trades': grouped.size(), 'wins': grouped.apply(lambda r: int((r == WIN).sum()))})
    weekly = weekly[weekly['trades'] >= min_trades_per_week]
    if len(weekly) < 2:
        return 0.0
    rates = weekly['wins'] / weekly['trades'] * 100
    return float(rates.std(ddof=0))


def _ranges(values: np.ndarray, buckets: int = 5) -> List[Dict[str, float]]:
    if len(values) == 0:
        return []
    low, high = float(values.min()), float(values.max())
    width = (high - low) / buckets or 1.0
    out = []
    for i in range(buckets):
        start = low + i * width
        end = high + 0.01 if i == buckets - 1 else low + (i + 1) * width
        count = int(((values >= start) & (values < end)).sum())
        out.append({'min': start, 'max': end, 'count': count, 'percentage': count / len(values) * 100})
    return out


def calculate_trade_distribution(trades: Sequence[Trade]) -> Dict[str, Any]:
    """Profit/loss size ranges, profit percentiles and holding-time buckets."""
    if not trades:
        return {
            'profit_ranges': [],
            'loss_ranges': [],
            'profit_percentile': {f"p{p}": 0.0 for p in (10, 25, 50, 75, 90)},
            'holding_time_distribution': [],
        }

    profits = np.array([t.profit for t in trades], dtype=float)
    ordered = np.sort(profits)
    percentiles = {}
    for p in (10, 25, 50, 75, 90):
        # Nearest-rank percentile
        index = min(max(math.ceil(p / 100 * len(ordered)) - 1, 0), len(ordered) - 1)
        percentiles[f"p{p}"] = float(ordered[index])

    holding = np.array([t.holding_ms for t in trades], dtype=float)
    holding_buckets = []
    lower = 0.0
    for label, upper in HOLDING_TIME_BUCKETS:
        count = int(((holding >= lower) & (holding < upper)).sum())
        holding_buckets.append({'range': label, 'count': count, 'percentage': count / len(trades) * 100})
        lower = upper

    return {
        'profit_ranges': _ranges(profits[profits > 0]),
        'loss_ranges': _ranges(np.abs(profits[profits < 0])),
        'profit_percentile': percentiles,
        'holding_time_distribution': holding_buckets,
    }


# =========================================================================
# Aggregate
# =========================================================================

def calculate_detailed_statistics(
    trades: Sequence[Trade],
    initial_balance: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
) -> DetailedStatistics:
    """
    Compute every ledger metric.

    Args:
        trades: Finalized trades in chronological order
        initial_balance: Starting balance (denominator for returns)
        risk_free_rate: Annual risk-free rate

    Returns:
        DetailedStatistics; all zeros for an empty ledger
    """
    if not trades:
        return DetailedStatistics()

    profits = np.array([t.profit for t in trades], dtype=float)
    results = np.array([t.result for t in trades])
    directions = np.array([t.direction for t in trades])
    win_mask = results == WIN
    loss_mask = results == LOSS

    total = len(trades)
    wins, losses = int(win_mask.sum()), int(loss_mask.sum())
    gross_profit = float(profits[win_mask].sum())
    gross_loss = float(abs(profits[loss_mask].sum()))
    net_profit = gross_profit - gross_loss
    net_profit_percent = net_profit / initial_balance * 100

    max_dd, max_dd_pct = calculate_drawdown(profits, initial_balance)
    max_wins, max_losses = max_streaks(trades)

    call_mask, put_mask = directions == CALL, directions == PUT
    call_count, put_count = int(call_mask.sum()), int(put_mask.sum())

    entry_times = [t.entry_time for t in trades]
    duration = entry_times[-1] - entry_times[0] if total > 1 else 0

    hourly = analyze_by_hour(trades)
    counts = hourly['trades'].to_numpy()

    if max_dd > 0:
        recovery = net_profit / max_dd
    else:
        recovery = math.inf if net_profit > 0 else 0.0

    return DetailedStatistics(
        total_trades=total,
        wins=wins,
        losses=losses,
        ties=total - wins - losses,
        win_rate=wins / total * 100,
        loss_rate=losses / total * 100,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        net_profit=net_profit,
        net_profit_percent=net_profit_percent,
        profit_factor=calculate_profit_factor(gross_profit, gross_loss),
        expectancy=net_profit / total,
        average_win=gross_profit / wins if wins else 0.0,
        average_loss=gross_loss / losses if losses else 0.0,
        largest_win=float(profits[win_mask].max()) if wins else 0.0,
        largest_loss=float(abs(profits[loss_mask].min())) if losses else 0.0,
        max_drawdown=max_dd,
        max_drawdown_percent=max_dd_pct,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        recovery_factor=recovery,
        call_trades=call_count,
        put_trades=put_count,
        call_win_rate=float((win_mask & call_mask).sum()) / call_count * 100 if call_count else 0.0,
        put_win_rate=float((win_mask & put_mask).sum()) / put_count * 100 if put_count else 0.0,
        call_profit=float(profits[call_mask].sum()),
        put_profit=float(profits[put_mask].sum()),
        trades_per_hour=total / (duration / 3_600_000) if duration > 0 else 0.0,
        average_trade_gap_ms=duration / (total - 1) if total > 1 else 0.0,
        trading_duration_ms=duration,
        busiest_hour=int(np.argmax(counts)),
        quietest_hour=int(np.argmin(counts)),
        hourly_stats=hourly.to_dict('records'),
        current_streak=current_streak(trades),
        streaks=calculate_streaks(trades),
        sharpe_ratio=calculate_sharpe_ratio(trades, initial_balance, risk_free_rate),
        sortino_ratio=calculate_sortino_ratio(trades, initial_balance, risk_free_rate),
        calmar_ratio=calculate_calmar_ratio(net_profit_percent, max_dd_pct),
    )

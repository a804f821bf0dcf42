"""
Unit Tests – Statistics Module
================================
"""

import math

import pytest

from strategy_lab.data_generator import DEFAULT_START_TIME
from strategy_lab.models import CALL, LOSS, PUT, TIE, WIN, EquityPoint, Trade
from strategy_lab.statistics import (
    analyze_by_day_of_week, analyze_by_hour, analyze_streaks, calculate_calmar_ratio,
    calculate_detailed_statistics, calculate_drawdown, calculate_profit_factor,
    calculate_sharpe_ratio, calculate_trade_distribution, calculate_ulcer_index,
    calculate_weekly_win_rate_std, count_trading_days, max_streaks,
)

HOUR = 3_600_000
DAY = 24 * HOUR


def make_trade(result, entry_time=DEFAULT_START_TIME, direction=CALL, bet=10.0, payout=92.0):
    profit = {WIN: bet * payout / 100, LOSS: -bet, TIE: 0.0}[result]
    return Trade(
        entry_time=entry_time,
        entry_price=1.0,
        exit_time=entry_time + 60_000,
        exit_price=1.0,
        direction=direction,
        result=result,
        profit=profit,
        bet_amount=bet,
        payout=payout,
        entry_index=0,
        exit_index=1,
    )


def ledger(results, spacing=HOUR):
    return [make_trade(r, DEFAULT_START_TIME + i * spacing) for i, r in enumerate(results)]


class TestBuildingBlocks:

    def test_profit_factor(self):
        assert calculate_profit_factor(20, 10) == 2.0
        assert math.isinf(calculate_profit_factor(5, 0))
        assert calculate_profit_factor(0, 0) == 0.0

    def test_drawdown_single_pass(self):
        max_dd, max_dd_pct = calculate_drawdown([100, -50, -50, 200, -30], 1000)
        assert max_dd == 100
        assert max_dd_pct == pytest.approx(100 / 1100 * 100)

    def test_tie_breaks_streak(self):
        trades = ledger([WIN, WIN, TIE, WIN, LOSS, LOSS, LOSS])
        assert max_streaks(trades) == (2, 3)

    def test_current_streak_after_tie(self):
        assert analyze_streaks(ledger([WIN, TIE]))['current_streak'] == {'type': 'none', 'count': 0}

    def test_current_streak(self):
        info = analyze_streaks(ledger([LOSS, WIN, WIN]))
        assert info['current_streak'] == {'type': 'win', 'count': 2}
        assert info['avg_win_streak'] == 2.0

    def test_calmar_zero_without_drawdown(self):
        assert calculate_calmar_ratio(15.0, 0.0) == 0.0
        assert calculate_calmar_ratio(15.0, 5.0) == 3.0

    def test_sharpe_needs_variance(self):
        assert calculate_sharpe_ratio(ledger([WIN, WIN, WIN]), 1000) == 0.0
        assert calculate_sharpe_ratio(ledger([WIN]), 1000) == 0.0
        assert calculate_sharpe_ratio(ledger([WIN, WIN, LOSS, WIN]), 1000) > 0

    def test_ulcer_index(self):
        flat = [EquityPoint(0, 100.0), EquityPoint(1, 100.0)]
        assert calculate_ulcer_index(flat) == 0.0
        dipped = [EquityPoint(0, 100.0), EquityPoint(1, 90.0)]
        assert calculate_ulcer_index(dipped) == pytest.approx(math.sqrt(50))


class TestDetailedStatistics:

    def test_empty(self):
        stats = calculate_detailed_statistics([], 1000)
        assert stats.total_trades == 0
        assert stats.win_rate == 0.0
        assert len(stats.hourly_stats) == 24

    def test_counts_and_rates(self):
        trades = ledger([WIN, WIN, LOSS, TIE])
        stats = calculate_detailed_statistics(trades, 1000)
        assert (stats.wins, stats.losses, stats.ties) == (2, 1, 1)
        assert stats.win_rate == 50.0
        assert stats.net_profit == pytest.approx(8.4)
        assert stats.profit_factor == pytest.approx(18.4 / 10)
        assert stats.expectancy == pytest.approx(8.4 / 4)
        assert stats.largest_loss == 10.0

    def test_recovery_factor_infinite_without_drawdown(self):
        stats = calculate_detailed_statistics(ledger([WIN, WIN]), 1000)
        assert math.isinf(stats.recovery_factor)

    def test_direction_breakdown(self):
        trades = [make_trade(WIN, direction=CALL), make_trade(LOSS, direction=PUT), make_trade(WIN, direction=PUT)]
        stats = calculate_detailed_statistics(trades, 1000)
        assert stats.call_trades == 1
        assert stats.put_trades == 2
        assert stats.put_win_rate == 50.0

    def test_hourly_buckets_utc(self):
        trades = ledger([WIN, LOSS, WIN], spacing=HOUR)
        table = analyze_by_hour(trades)
        assert len(table) == 24
        assert table.loc[table['hour'] == 1, 'trades'].item() == 1
        assert table['trades'].sum() == 3

    def test_day_of_week(self):
        # 2024-01-01 is a Monday
        table = analyze_by_day_of_week(ledger([WIN, WIN], spacing=DAY))
        assert list(table.loc[table['trades'] > 0, 'day_name']) == ['Monday', 'Tuesday']


class TestVolumeStatistics:

    def test_trading_days(self):
        assert count_trading_days(ledger([WIN] * 30, spacing=HOUR)) == 2
        assert count_trading_days([]) == 0

    def test_weekly_win_rate_std(self):
        week1 = [make_trade(WIN, DEFAULT_START_TIME + i * HOUR) for i in range(5)]
        week2 = [make_trade(LOSS, DEFAULT_START_TIME + 7 * DAY + i * HOUR) for i in range(5)]
        sparse = [make_trade(WIN, DEFAULT_START_TIME + 14 * DAY)]
        assert calculate_weekly_win_rate_std(week1 + week2 + sparse) == pytest.approx(50.0)

    def test_weekly_std_single_week(self):
        assert calculate_weekly_win_rate_std(ledger([WIN, LOSS] * 5)) == 0.0

    def test_trade_distribution(self):
        dist = calculate_trade_distribution(ledger([WIN, LOSS, WIN, WIN]))
        assert dist['profit_percentile']['p10'] == -10.0
        assert dist['holding_time_distribution'][1]['count'] == 4

"""
Unit Tests – Scoring Module
=============================
Composite score bounds and monotonicity, Kelly, overfit score.
"""

import math

import pytest

from strategy_lab.scoring import (
    DEFAULT_SCORE_WEIGHTS, SCORING_PROFILES, ScoreInput, breakeven_win_rate,
    calculate_composite_score, calculate_overfit_score, kelly_fraction, score,
    score_consistency, score_profit_factor, score_win_rate, to_grade,
)


def make_input(**overrides):
    data = dict(
        wins=60, losses=40, ties=0, payout_percent=92.0, total_trades=100,
        max_drawdown_percent=10.0, max_losing_streak=4, profit_factor=1.4,
        win_rate_std_dev=5.0,
    )
    data.update(overrides)
    return ScoreInput(**data)


class TestHelpers:

    def test_breakeven(self):
        assert breakeven_win_rate(92) == pytest.approx(52.083, abs=1e-3)
        assert breakeven_win_rate(100) == pytest.approx(50.0)

    @pytest.mark.parametrize("win_rate", [0, 30, 52, 60, 100])
    def test_kelly_never_negative(self, win_rate):
        assert kelly_fraction(win_rate, 92) >= 0

    def test_kelly_value(self):
        # p = 0.6, b = 0.92: (0.552 - 0.4) / 0.92
        assert kelly_fraction(60, 92) == pytest.approx(0.152 / 0.92)

    def test_kelly_zero_payout(self):
        assert kelly_fraction(90, 0) == 0.0

    @pytest.mark.parametrize("value,grade", [(85, 'A'), (80, 'A'), (65, 'B'), (45, 'C'), (25, 'D'), (5, 'F')])
    def test_grades(self, value, grade):
        assert to_grade(value) == grade

    def test_profiles_sum_to_one(self):
        for weights in SCORING_PROFILES.values():
            assert sum(weights.values()) == pytest.approx(1.0)

    def test_consistency_unknown_is_neutral(self):
        assert score_consistency(None) == 50.0
        assert score_consistency(0.0) == 100.0

    def test_infinite_profit_factor_scores_max(self):
        assert score_profit_factor(math.inf) == 100.0
        assert score_profit_factor(float('nan')) == 0.0


class TestCompositeScore:

    def test_bounds(self):
        best = calculate_composite_score(make_input(
            wins=100, losses=0, profit_factor=math.inf, max_drawdown_percent=0,
            max_losing_streak=0, total_trades=500, win_rate_std_dev=0,
        ))
        worst = calculate_composite_score(make_input(
            wins=0, losses=100, profit_factor=0.0, max_drawdown_percent=90,
            max_losing_streak=50, total_trades=0, win_rate_std_dev=90,
        ))
        assert best.score == pytest.approx(100.0)
        assert best.grade == 'A'
        assert worst.score == pytest.approx(0.0)
        assert worst.grade == 'F'

    def test_breakdown_has_every_dimension(self):
        result = calculate_composite_score(make_input())
        assert set(result.breakdown) == set(DEFAULT_SCORE_WEIGHTS)
        assert all(0 <= v <= 100 for v in result.breakdown.values())

    @pytest.mark.parametrize("field,low,high", [
        ('profit_factor', 0.8, 1.8),
        ('total_trades', 20, 150),
    ])
    def test_monotone_increasing(self, field, low, high):
        a = calculate_composite_score(make_input(**{field: low})).score
        b = calculate_composite_score(make_input(**{field: high})).score
        assert b >= a

    @pytest.mark.parametrize("field,low,high", [
        ('max_drawdown_percent', 5, 40),
        ('max_losing_streak', 2, 9),
        ('win_rate_std_dev', 2, 18),
    ])
    def test_monotone_decreasing(self, field, low, high):
        a = calculate_composite_score(make_input(**{field: low})).score
        b = calculate_composite_score(make_input(**{field: high})).score
        assert b <= a

    def test_higher_win_rate_never_lowers_score(self):
        scores = [calculate_composite_score(make_input(wins=w, losses=100 - w)).score for w in range(40, 80, 5)]
        assert scores == sorted(scores)

    def test_ties_excluded_from_win_rate(self):
        with_ties = calculate_composite_score(make_input(wins=60, losses=40, ties=50, total_trades=150))
        assert 'WR: 60.0%' in with_ties.summary

    def test_win_rate_subscore_breakeven(self):
        assert score_win_rate(breakeven_win_rate(92), 92) == pytest.approx(50.0)

    def test_score_from_metrics(self):
        metrics = {
            'wins': 55, 'losses': 45, 'total_trades': 100, 'max_drawdown_percent': 8.0,
            'max_consecutive_losses': 3, 'profit_factor': 1.2,
        }
        result = score(metrics, payout=92)
        assert 0 <= result.score <= 100
        assert result.to_dict()['grade'] == result.grade

    def test_profile_changes_weights(self):
        data = make_input(max_drawdown_percent=35, max_losing_streak=8)
        stability = calculate_composite_score(data, SCORING_PROFILES['stability']).score
        growth = calculate_composite_score(data, SCORING_PROFILES['growth']).score
        assert stability != growth


class TestOverfitScore:

    def test_identical_is_zero(self):
        assert calculate_overfit_score(60, 60, 1.5, 1.5, 10, 10) == 0.0

    def test_bounded(self):
        assert calculate_overfit_score(90, 10, 5.0, 0.1, 0, 90) == 1.0

    def test_formula(self):
        # 0.4 * 5/10 + 0.3 * (2 - 1.5)/2 + 0.3 * (16 - 10)/30
        value = calculate_overfit_score(60, 55, 2.0, 1.5, 10, 16)
        assert value == pytest.approx(0.2 + 0.075 + 0.06)

    def test_validation_better_is_not_penalized(self):
        assert calculate_overfit_score(55, 55, 1.2, 2.0, 20, 5) == 0.0

    def test_zero_train_pf_skips_pf_term(self):
        assert calculate_overfit_score(50, 50, 0.0, 0.0, 10, 10) == 0.0

    def test_infinite_pf_uses_sentinel(self):
        value = calculate_overfit_score(60, 60, math.inf, 1.0, 10, 10)
        assert value == pytest.approx(0.3 * (1000 - 1) / 1000)

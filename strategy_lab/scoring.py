"""
Composite strategy scoring

Combines seven performance dimensions into one 0-100 score with an A-F
grade. Each dimension is first mapped to a 0-100 sub-score by a
piecewise-linear curve, then weighted.

Dimensions (default weight):
- win_rate (0.30): 50 at the payout's breakeven win rate
- expected_value (0.20): per-trade EV as a fraction of the bet
- max_drawdown (0.15): 100 at 0%, 0 at 30%+
- max_losing_streak (0.10): 100 at 0, 0 at 10+
- profit_factor (0.10): 30 at 1.0, 60 at 1.5, 100 at 3.0+
- trade_count (0.10): 30 at 30 trades, 100 at 200+
- consistency (0.05): weekly win-rate std, 100 at 0, 0 at 15+

Only boundedness and monotonicity are guaranteed; the coefficients may
be tuned without changing callers of `score(metrics)`.

Example:
    result = score(backtest_result.metrics | {'payout': 92})
    print(result.grade, result.score)
"""

import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional

PROFIT_FACTOR_SENTINEL = 1000.0

DEFAULT_SCORE_WEIGHTS = {
    'win_rate': 0.30,
    'expected_value': 0.20,
    'max_drawdown': 0.15,
    'max_losing_streak': 0.10,
    'profit_factor': 0.10,
    'trade_count': 0.10,
    'consistency': 0.05,
}

# Drawdown, losing streak and consistency weighted up
STABILITY_WEIGHTS = {
    'win_rate': 0.20,
    'expected_value': 0.15,
    'max_drawdown': 0.25,
    'max_losing_streak': 0.15,
    'profit_factor': 0.10,
    'trade_count': 0.05,
    'consistency': 0.10,
}

# EV, profit factor and trade count weighted up
GROWTH_WEIGHTS = {
    'win_rate': 0.25,
    'expected_value': 0.25,
    'max_drawdown': 0.10,
    'max_losing_streak': 0.05,
    'profit_factor': 0.15,
    'trade_count': 0.15,
    'consistency': 0.05,
}

SCORING_PROFILES = {
    'default': DEFAULT_SCORE_WEIGHTS,
    'stability': STABILITY_WEIGHTS,
    'growth': GROWTH_WEIGHTS,
}

SCORING_THRESHOLDS = {
    'min_trades_for_significance': 30,
    'excellent_trade_count': 200,
    'max_acceptable_drawdown': 30.0,
    'max_acceptable_losing_streak': 10,
    'excellent_profit_factor': 3.0,
    'max_acceptable_win_rate_std': 15.0,
}


@dataclass
class ScoreInput:
    wins: int
    losses: int
    ties: int
    payout_percent: float
    total_trades: int
    max_drawdown_percent: float
    max_losing_streak: int
    profit_factor: float
    win_rate_std_dev: Optional[float] = None    # Weekly win-rate std; None = unknown


@dataclass
class ScoreResult:
    score: float
    grade: str
    breakdown: Dict[str, float] = field(default_factory=dict)
    expected_value: float = 0.0
    summary: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def get_weights_by_profile(profile: str) -> Dict[str, float]:
    return SCORING_PROFILES.get(profile, DEFAULT_SCORE_WEIGHTS)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def linear_map(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    if in_max == in_min:
        return out_min
    return out_min + (value - in_min) / (in_max - in_min) * (out_max - out_min)


def finite_profit_factor(pf: float) -> float:
    """Map inf/NaN profit factors to comparable finite values."""
    if math.isnan(pf):
        return 0.0
    if math.isinf(pf):
        return PROFIT_FACTOR_SENTINEL
    return pf


def breakeven_win_rate(payout: float) -> float:
    """Win rate (%) at which EV is zero for a given payout (%). 92% -> ~52.08%."""
    return 100.0 / (100.0 + payout) * 100.0


def kelly_fraction(win_rate: float, payout: float) -> float:
    """
    Kelly bet fraction of balance, never negative.

    Args:
        win_rate: Win rate in percent
        payout: Payout in percent
    """
    b = payout / 100.0
    if b <= 0:
        return 0.0
    p = win_rate / 100.0
    q = 1.0 - p
    return max(0.0, (p * b - q) / b)


# =========================================================================
# Sub-scores (each 0-100, monotone in its input)
# =========================================================================

def score_win_rate(win_rate: float, payout: float) -> float:
    breakeven = breakeven_win_rate(payout)
    if win_rate <= breakeven - 5:
        return 0.0
    if win_rate <= breakeven:
        return (win_rate - (breakeven - 5)) / 5 * 50
    return min(50 + (win_rate - breakeven) * 5, 100.0)


def score_expected_value(ev: float) -> float:
    if ev <= -0.05:
        return 0.0
    if ev <= 0:
        return linear_map(ev, -0.05, 0, 0, 20)
    if ev <= 0.02:
        return linear_map(ev, 0, 0.02, 20, 50)
    if ev <= 0.10:
        return linear_map(ev, 0.02, 0.10, 50, 100)
    return 100.0


def score_max_drawdown(mdd_percent: float) -> float:
    limit = SCORING_THRESHOLDS['max_acceptable_drawdown']
    if mdd_percent <= 0:
        return 100.0
    if mdd_percent >= limit:
        return 0.0
    return linear_map(mdd_percent, 0, limit, 100, 0)


def score_max_losing_streak(streak: float) -> float:
    limit = SCORING_THRESHOLDS['max_acceptable_losing_streak']
    if streak <= 0:
        return 100.0
    if streak >= limit:
        return 0.0
    return linear_map(streak, 0, limit, 100, 0)


def score_profit_factor(pf: float) -> float:
    excellent = SCORING_THRESHOLDS['excellent_profit_factor']
    pf = finite_profit_factor(pf)
    if pf <= 0:
        return 0.0
    if pf < 1.0:
        return linear_map(pf, 0, 1.0, 0, 30)
    if pf < 1.5:
        return linear_map(pf, 1.0, 1.5, 30, 60)
    if pf < excellent:
        return linear_map(pf, 1.5, excellent, 60, 100)
    return 100.0


def score_trade_count(count: int) -> float:
    minimum = SCORING_THRESHOLDS['min_trades_for_significance']
    excellent = SCORING_THRESHOLDS['excellent_trade_count']
    if count <= 0:
        return 0.0
    if count < minimum:
        return linear_map(count, 0, minimum, 0, 30)
    if count < excellent:
        return linear_map(count, minimum, excellent, 30, 100)
    return 100.0


def score_consistency(win_rate_std: Optional[float]) -> float:
    """Neutral 50 when the weekly spread is unknown."""
    limit = SCORING_THRESHOLDS['max_acceptable_win_rate_std']
    if win_rate_std is None or math.isnan(win_rate_std):
        return 50.0
    if win_rate_std <= 0:
        return 100.0
    if win_rate_std >= limit:
        return 0.0
    return linear_map(win_rate_std, 0, limit, 100, 0)


def to_grade(score_value: float) -> str:
    if score_value >= 80:
        return 'A'
    if score_value >= 60:
        return 'B'
    if score_value >= 40:
        return 'C'
    if score_value >= 20:
        return 'D'
    return 'F'


# =========================================================================
# Composite
# =========================================================================

def calculate_composite_score(
    data: ScoreInput,
    weights: Optional[Mapping[str, float]] = None
) -> ScoreResult:
    """
    Weighted composite of the seven sub-scores.

    Win rate and EV use decided trades only (ties excluded).

    Args:
        data: Strategy statistics
        weights: Per-dimension weights (defaults to DEFAULT_SCORE_WEIGHTS)

    Returns:
        ScoreResult with score in [0, 100], grade and per-dimension breakdown
    """
    weights = dict(weights or DEFAULT_SCORE_WEIGHTS)
    decided = data.wins + data.losses
    win_rate = data.wins / decided * 100 if decided else 0.0
    p = win_rate / 100
    ev = p * data.payout_percent / 100 - (1 - p) if decided else 0.0

    breakdown = {
        'win_rate': score_win_rate(win_rate, data.payout_percent),
        'expected_value': score_expected_value(ev),
        'max_drawdown': score_max_drawdown(data.max_drawdown_percent),
        'max_losing_streak': score_max_losing_streak(data.max_losing_streak),
        'profit_factor': score_profit_factor(data.profit_factor),
        'trade_count': score_trade_count(data.total_trades),
        'consistency': score_consistency(data.win_rate_std_dev),
    }
    total = clamp(sum(breakdown[k] * weights.get(k, 0.0) for k in breakdown), 0.0, 100.0)
    grade = to_grade(total)

    pf_text = 'inf' if math.isinf(data.profit_factor) else f"{data.profit_factor:.2f}"
    summary = ' | '.join([
        f"Grade {grade} ({total:.1f}/100)",
        f"WR: {win_rate:.1f}%",
        f"EV: {ev * 100:.2f}%/trade",
        f"PF: {pf_text}",
        f"MDD: {data.max_drawdown_percent:.1f}%",
        f"MaxLoss: {data.max_losing_streak}x",
        f"Trades: {data.total_trades}",
    ])
    return ScoreResult(score=total, grade=grade, breakdown=breakdown, expected_value=ev, summary=summary)


def score(metrics: Mapping[str, Any], payout: Optional[float] = None, profile: str = 'default') -> ScoreResult:
    """
    Score a flat metrics mapping (e.g. `BacktestResult.metrics`).

    Args:
        metrics: Needs wins, losses, total_trades, max_drawdown_percent,
            max_consecutive_losses and profit_factor; ties,
            win_rate_std_dev and payout are optional
        payout: Payout percent (falls back to metrics['payout'], then 92)
        profile: 'default', 'stability' or 'growth'
    """
    if payout is None:
        payout = metrics.get('payout', 92.0)
    data = ScoreInput(
        wins=int(metrics.get('wins', 0)),
        losses=int(metrics.get('losses', 0)),
        ties=int(metrics.get('ties', 0)),
        payout_percent=float(payout),
        total_trades=int(metrics.get('total_trades', 0)),
        max_drawdown_percent=float(metrics.get('max_drawdown_percent', 0.0)),
        max_losing_streak=int(metrics.get('max_consecutive_losses', 0)),
        profit_factor=float(metrics.get('profit_factor', 0.0)),
        win_rate_std_dev=metrics.get('win_rate_std_dev'),
    )
    return calculate_composite_score(data, get_weights_by_profile(profile))


def score_result(result, profile: str = 'default') -> ScoreResult:
    """Score a BacktestResult using its config's payout."""
    return score(result.metrics, payout=result.config.payout, profile=profile)


# =========================================================================
# Overfitting
# =========================================================================

def calculate_overfit_score(
    train_win_rate: float,
    validation_win_rate: float,
    train_profit_factor: float,
    validation_profit_factor: float,
    train_max_drawdown_percent: float,
    validation_max_drawdown_percent: float
) -> float:
    """
    Train-vs-validation divergence in [0, 1] (0 = no sign of overfitting).

        0.4 * |dWR| / 10
      + 0.3 * max(0, (trainPF - valPF) / trainPF)     (only when trainPF > 0)
      + 0.3 * max(0, (valMDD - trainMDD) / 30)
    """
    train_pf = finite_profit_factor(train_profit_factor)
    val_pf = finite_profit_factor(validation_profit_factor)

    value = 0.4 * abs(train_win_rate - validation_win_rate) / 10
    if train_pf > 0:
        value += 0.3 * max(0.0, (train_pf - val_pf) / train_pf)
    value += 0.3 * max(0.0, (validation_max_drawdown_percent - train_max_drawdown_percent) / 30)
    return clamp(value, 0.0, 1.0)

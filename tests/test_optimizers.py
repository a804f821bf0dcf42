"""
Unit Tests – Parameter Optimizers
===================================
Grid, genetic and Bayesian search over a scripted strategy whose outcome
per parameter value is known exactly.
"""

import numpy as np
import pytest

from strategy_lab.exceptions import ConfigurationError
from strategy_lab.models import BacktestConfig
from strategy_lab.optimizers import (
    BayesianOptimizer, BayesianOptions, GaussianProcess, GeneticOptimizer, GeneticOptions,
    GridOptions, GridSearchOptimizer, build_param_space, create_optimizer,
    expected_improvement, results_to_dataframe, search_space_size,
)
from strategy_lab.optimizers.grid_search import iter_parameter_grid

from conftest import ScriptedCall

# Trades per `every` value on 200 rising candles with one-candle expiry
EXPECTED_TRADES = {1: 100, 2: 100, 3: 67, 4: 50, 5: 40}


def summary(entries):
    return [(tuple(sorted(e.params.items())), e.score) for e in entries]


# ══════════════════════════════════════════════════════════════════
# Parameter space
# ══════════════════════════════════════════════════════════════════

class TestParamSpace:

    def test_defaults_to_spec_table(self):
        space = build_param_space(ScriptedCall())
        assert list(space) == ['every']
        assert search_space_size(space) == 5

    def test_range_overrides(self):
        space = build_param_space(ScriptedCall(), {'every': {'min': 2, 'max': 4, 'step': 1}})
        assert space['every'].values() == [2, 3, 4]

    def test_unknown_range_name(self):
        with pytest.raises(ConfigurationError):
            build_param_space(ScriptedCall(), {'period': {'min': 1, 'max': 2, 'step': 1}})

    def test_grid_enumeration(self):
        space = build_param_space(ScriptedCall())
        assert [p['every'] for p in iter_parameter_grid(space)] == [1, 2, 3, 4, 5]


# ══════════════════════════════════════════════════════════════════
# Grid search
# ══════════════════════════════════════════════════════════════════

class TestGridSearch:

    def test_every_combination_evaluated(self, scripted_engine, base_config, rising_candles):
        optimizer = GridSearchOptimizer(scripted_engine)
        entries = optimizer.optimize('test-call', base_config, rising_candles)

        trades = {int(e.params['every']): e.result.total_trades for e in entries}
        assert trades == EXPECTED_TRADES
        assert optimizer.last_search_stats['total_evaluations'] == 5
        assert optimizer.last_search_stats['valid_configurations'] == 5

    def test_sorted_best_first(self, scripted_engine, base_config, rising_candles):
        entries = GridSearchOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles)
        scores = [e.score for e in entries]
        assert scores == sorted(scores, reverse=True)
        assert entries[0].score == pytest.approx(920.0)

    def test_min_trades_filters(self, scripted_engine, base_config, rising_candles):
        entries = GridSearchOptimizer(scripted_engine).optimize(
            'test-call', base_config, rising_candles, options=GridOptions(min_trades=80)
        )
        assert len(entries) == 2
        assert all(e.result.total_trades >= 80 for e in entries)

    def test_profit_factor_objective_uses_sentinel(self, scripted_engine, base_config, rising_candles):
        entries = GridSearchOptimizer(scripted_engine).optimize(
            'test-call', base_config, rising_candles, options=GridOptions(objective='profit_factor')
        )
        assert all(e.score == 1000.0 for e in entries)

    def test_stop_before_start(self, scripted_engine, base_config, rising_candles):
        optimizer = GridSearchOptimizer(scripted_engine)
        entries = optimizer.optimize(
            'test-call', base_config, rising_candles, options=GridOptions(should_stop=lambda: True)
        )
        assert entries == []
        assert optimizer.last_search_stats['stopped_early']

    def test_max_combinations(self, scripted_engine, base_config, rising_candles):
        with pytest.raises(ConfigurationError):
            GridSearchOptimizer(scripted_engine).optimize(
                'test-call', base_config, rising_candles, options=GridOptions(max_combinations=3)
            )

    def test_unknown_objective(self, scripted_engine, base_config, rising_candles):
        with pytest.raises(ConfigurationError):
            GridSearchOptimizer(scripted_engine).optimize(
                'test-call', base_config, rising_candles, options=GridOptions(objective='luck')
            )

    def test_progress_callback(self, scripted_engine, base_config, rising_candles):
        calls = []
        GridSearchOptimizer(scripted_engine).optimize(
            'test-call', base_config, rising_candles,
            options=GridOptions(progress_callback=lambda done, total, best: calls.append((done, total)))
        )
        assert calls[-1] == (5, 5)

    def test_failing_strategy_has_no_entries(self, scripted_engine, rising_candles):
        config = BacktestConfig(symbol='X', strategy_id='test-explode')
        entries = GridSearchOptimizer(scripted_engine).optimize('test-explode', config, rising_candles)
        assert entries == []

    def test_parallel_matches_sequential(self, engine, candles):
        config = BacktestConfig(symbol='X', strategy_id='rsi-ob-os')
        ranges = {
            'period': {'min': 7, 'max': 14, 'step': 7},
            'oversold': {'min': 20, 'max': 30, 'step': 10},
        }
        sequential = GridSearchOptimizer(engine).optimize(
            'rsi-ob-os', config, candles, ranges, GridOptions(min_trades=0, n_jobs=1)
        )
        parallel = GridSearchOptimizer(engine).optimize(
            'rsi-ob-os', config, candles, ranges, GridOptions(min_trades=0, n_jobs=2)
        )
        assert summary(parallel) == summary(sequential)

    def test_results_to_dataframe(self, scripted_engine, base_config, rising_candles):
        entries = GridSearchOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles)
        frame = results_to_dataframe(entries)
        assert list(frame['rank']) == [1, 2, 3, 4, 5]
        assert {'every', 'score', 'metric_total_trades', 'metric_win_rate'} <= set(frame.columns)


# ══════════════════════════════════════════════════════════════════
# Genetic
# ══════════════════════════════════════════════════════════════════

class TestGenetic:

    def options(self, **overrides):
        data = dict(population_size=6, generations=3, seed=5)
        data.update(overrides)
        return GeneticOptions(**data)

    def test_seeded_runs_identical(self, scripted_engine, base_config, rising_candles):
        first = GeneticOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles, options=self.options())
        second = GeneticOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles, options=self.options())
        assert summary(first) == summary(second)

    def test_finds_best_on_small_lattice(self, scripted_engine, base_config, rising_candles):
        entries = GeneticOptimizer(scripted_engine).optimize(
            'test-call', base_config, rising_candles, options=self.options(generations=5)
        )
        assert entries[0].score == pytest.approx(920.0)
        assert len({tuple(e.params.items()) for e in entries}) == len(entries)

    def test_memoization_bounds_evaluations(self, scripted_engine, base_config, rising_candles):
        optimizer = GeneticOptimizer(scripted_engine)
        optimizer.optimize('test-call', base_config, rising_candles, options=self.options())
        stats = optimizer.last_search_stats
        assert stats['total_evaluations'] <= 5
        assert stats['total_evaluations'] <= 6 * (3 + 1)

    def test_invalid_options(self, scripted_engine, base_config, rising_candles):
        with pytest.raises(ConfigurationError):
            GeneticOptimizer(scripted_engine).optimize(
                'test-call', base_config, rising_candles, options=self.options(population_size=1)
            )


# ══════════════════════════════════════════════════════════════════
# Bayesian
# ══════════════════════════════════════════════════════════════════

class TestGaussianProcess:

    def test_interpolates_observations(self):
        x = np.array([[0.0], [0.5], [1.0]])
        y = np.array([1.0, 3.0, 2.0])
        gp = GaussianProcess(noise=1e-6).fit(x, y)
        mean, std = gp.predict(x)
        assert mean == pytest.approx(y, abs=1e-2)
        assert np.all(std < 0.1 * y.std())

    def test_far_points_revert_to_prior(self):
        gp = GaussianProcess().fit(np.array([[0.0]]), np.array([5.0]))
        mean, std = gp.predict_standardized(np.array([[50.0]]))
        assert mean[0] == pytest.approx(0.0, abs=1e-9)
        assert std[0] == pytest.approx(np.sqrt(1.01), abs=1e-6)

    def test_constant_targets(self):
        gp = GaussianProcess().fit(np.array([[0.1], [0.9]]), np.array([2.0, 2.0]))
        assert gp.y_std == 1.0
        assert gp.standardize(2.0) == 0.0

    def test_expected_improvement(self):
        ei = expected_improvement(np.array([1.0, 0.0, 1.0]), np.array([1.0, 1.0, 1e-12]), best=0.0, xi=0.0)
        assert ei[0] > ei[1] > 0
        assert ei[2] == 0.0


class TestBayesian:

    def options(self, **overrides):
        data = dict(max_iterations=8, initial_samples=3, num_candidates=10, seed=9)
        data.update(overrides)
        return BayesianOptions(**data)

    def test_seeded_runs_identical(self, scripted_engine, base_config, rising_candles):
        first = BayesianOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles, options=self.options())
        second = BayesianOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles, options=self.options())
        assert summary(first) == summary(second)
        assert first

    def test_results_sorted(self, scripted_engine, base_config, rising_candles):
        entries = BayesianOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles, options=self.options())
        scores = [e.score for e in entries]
        assert scores == sorted(scores, reverse=True)

    def test_iterations_must_cover_initial_samples(self, scripted_engine, base_config, rising_candles):
        with pytest.raises(ConfigurationError):
            BayesianOptimizer(scripted_engine).optimize(
                'test-call', base_config, rising_candles, options=self.options(max_iterations=2)
            )

    def record_fits(self, monkeypatch):
        fits = []
        original = GaussianProcess.fit

        def recording_fit(gp, x, y):
            fits.append((np.array(x), np.array(y)))
            return original(gp, x, y)

        monkeypatch.setattr(GaussianProcess, 'fit', recording_fit)
        return fits

    def test_each_point_observed_once(self, monkeypatch, scripted_engine, base_config, rising_candles):
        fits = self.record_fits(monkeypatch)
        optimizer = BayesianOptimizer(scripted_engine)
        entries = optimizer.optimize(
            'test-call', base_config, rising_candles,
            options=self.options(max_iterations=20, initial_samples=10, min_trades=0)
        )
        assert fits
        for x, _ in fits:
            assert len({tuple(row) for row in x}) == len(x)
        assert len({e.params['every'] for e in entries}) == len(entries)
        assert optimizer.last_search_stats['total_evaluations'] <= 5

    def test_ineligible_points_get_worst_score(self, monkeypatch, scripted_engine, base_config, rising_candles):
        fits = self.record_fits(monkeypatch)
        entries = BayesianOptimizer(scripted_engine).optimize(
            'test-call', base_config, rising_candles,
            options=self.options(max_iterations=20, initial_samples=10, min_trades=60)
        )
        # every=4 and every=5 trade fewer than 60 times
        assert all(e.params['every'] <= 3 for e in entries)
        x, y = fits[-1]
        eligible = x[:, 0] < 0.7
        assert eligible.any() and (~eligible).any()
        assert np.all(y[~eligible] == y[eligible].min())

    def test_nothing_eligible(self, scripted_engine, rising_candles):
        config = BacktestConfig(symbol='X', strategy_id='test-silent')
        entries = BayesianOptimizer(scripted_engine).optimize(
            'test-silent', config, rising_candles, options=self.options()
        )
        assert entries == []


class TestFactory:

    @pytest.mark.parametrize("kind,cls", [
        ('grid', GridSearchOptimizer),
        ('genetic', GeneticOptimizer),
        ('bayesian', BayesianOptimizer),
    ])
    def test_known(self, kind, cls):
        assert isinstance(create_optimizer(kind), cls)

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            create_optimizer('annealing')

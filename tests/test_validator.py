"""
Unit Tests – Train/Validation Splitter & Validator
====================================================
"""

import pytest

from strategy_lab.data_generator import generate_candles
from strategy_lab.exceptions import ConfigurationError
from strategy_lab.models import BacktestConfig, CandleSeries
from strategy_lab.optimizers import GeneticOptimizer, GeneticOptions, GridOptions
from strategy_lab.validator import TrainValidationValidator, split_train_validation


# ══════════════════════════════════════════════════════════════════
# Split
# ══════════════════════════════════════════════════════════════════

class TestSplit:

    def test_thousand_candles(self):
        candles = generate_candles(1000, seed=1)
        split = split_train_validation(candles, 0.7)
        assert len(split.train) == 700
        assert len(split.validation) == 300
        assert split.train[-1].timestamp < split.validation[0].timestamp
        assert split.split_timestamp == split.train[-1].timestamp
        assert split.train_ratio == pytest.approx(0.7)

    def test_partition(self):
        candles = generate_candles(321, seed=2)
        split = split_train_validation(candles, 0.65)
        assert list(split.train) + list(split.validation) == candles

    def test_sorts_unordered_input(self):
        candles = generate_candles(200, seed=3)
        split = split_train_validation(list(reversed(candles)), 0.5)
        assert split.train[0] == candles[0]
        assert split.validation[-1] == candles[-1]

    def test_clamped_to_min_size(self):
        candles = generate_candles(120, seed=4)
        split = split_train_validation(candles, 0.95, min_size=50)
        assert len(split.validation) == 50
        assert len(split.train) == 70
        assert split.requested_ratio == 0.95
        assert split.train_ratio == pytest.approx(70 / 120)

    def test_series_in_series_out(self):
        series = CandleSeries.from_candles(generate_candles(400, seed=5))
        split = split_train_validation(series, 0.75)
        assert isinstance(split.train, CandleSeries)
        assert len(split.train) == 300
        assert split.train_period.end < split.validation_period.start

    @pytest.mark.parametrize("ratio", [0, 1, -0.2, 1.5])
    def test_invalid_ratio(self, ratio):
        with pytest.raises(ConfigurationError):
            split_train_validation(generate_candles(200, seed=6), ratio)

    def test_too_few_candles(self):
        with pytest.raises(ConfigurationError):
            split_train_validation(generate_candles(99, seed=7), 0.7, min_size=50)

    def test_to_dict(self):
        split = split_train_validation(generate_candles(200, seed=8), 0.7)
        data = split.to_dict()
        assert data['train_period']['candles'] == 140
        assert data['validation_period']['candles'] == 60


# ══════════════════════════════════════════════════════════════════
# Validator
# ══════════════════════════════════════════════════════════════════

class TestValidator:

    def test_consistent_strategy_passes(self, scripted_engine, rising_candles):
        validator = TrainValidationValidator(scripted_engine, top_n=3)
        config = BacktestConfig(symbol='X', strategy_id='test-call')
        report = validator.validate('test-call', config, rising_candles)

        assert report.best is not None
        assert len(report.candidates) == 3
        assert report.best.overfit_score == 0.0
        assert not report.overfitting_detected
        assert report.best.validation.win_rate == 100.0

    def test_losing_strategy_flagged(self, scripted_engine, rising_candles):
        validator = TrainValidationValidator(scripted_engine)
        config = BacktestConfig(symbol='X', strategy_id='test-put')
        report = validator.validate('test-put', config, rising_candles, options=GridOptions(min_trades=5))

        assert report.overfitting_detected
        assert any('breakeven' in reason for reason in report.best.reasons)
        assert any('net profit negative' in reason for reason in report.best.reasons)

    def test_candidates_ranked_by_validation_score(self, scripted_engine, rising_candles):
        validator = TrainValidationValidator(scripted_engine, top_n=5)
        config = BacktestConfig(symbol='X', strategy_id='test-call')
        report = validator.validate('test-call', config, rising_candles)
        scores = [c.validation.composite_score for c in report.candidates]
        assert scores == sorted(scores, reverse=True)

    def test_no_candidates(self, scripted_engine, rising_candles):
        validator = TrainValidationValidator(scripted_engine)
        config = BacktestConfig(symbol='X', strategy_id='test-silent')
        report = validator.validate('test-silent', config, rising_candles)
        assert report.best is None
        assert report.overfitting_detected
        assert 'No candidate' in validator.get_validation_summary(report)

    def test_custom_optimizer(self, scripted_engine, rising_candles):
        optimizer = GeneticOptimizer(scripted_engine)
        validator = TrainValidationValidator(optimizer=optimizer)
        config = BacktestConfig(symbol='X', strategy_id='test-call')
        options = GeneticOptions(population_size=6, generations=2, seed=3)
        report = validator.validate('test-call', config, rising_candles, options=options)
        assert validator.engine is scripted_engine
        assert report.best is not None

    def test_summary_and_dict(self, scripted_engine, rising_candles):
        validator = TrainValidationValidator(scripted_engine)
        config = BacktestConfig(symbol='X', strategy_id='test-call')
        report = validator.validate('test-call', config, rising_candles)
        text = validator.get_validation_summary(report)
        assert 'TRAIN/VALIDATION SUMMARY' in text
        assert 'Overfitting Detected: NO' in text
        data = report.to_dict()
        assert data['strategy_id'] == 'test-call'
        assert data['split']['train_period']['candles'] == 140

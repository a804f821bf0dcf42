"""
Unit Tests – Reports, JSON Export & Command Line
==================================================
"""

import json
import math

import numpy as np
import pandas as pd
import pytest

from strategy_lab.candle_utils import load_candles
from strategy_lab.cli import build_parser, main, parse_param, parse_range
from strategy_lab.optimizers import GridSearchOptimizer
from strategy_lab.report import (
    export_json, format_optimization_report, generate_console_report, to_json,
)


# ══════════════════════════════════════════════════════════════════
# Reports
# ══════════════════════════════════════════════════════════════════

class TestJson:

    def test_non_finite_becomes_null(self):
        data = json.loads(to_json({'pf': math.inf, 'nan': float('nan'), 'ok': 1.5}))
        assert data == {'pf': None, 'nan': None, 'ok': 1.5}

    def test_numpy_and_pandas_values(self):
        frame = pd.DataFrame({'a': [1, 2]})
        data = json.loads(to_json({'n': np.int64(3), 'arr': np.array([0.5, np.inf]), 'df': frame}))
        assert data == {'n': 3, 'arr': [0.5, None], 'df': [{'a': 1}, {'a': 2}]}

    def test_backtest_result_serializes(self, scripted_engine, base_config, rising_candles):
        result = scripted_engine.run_backtest(base_config, rising_candles)
        data = json.loads(to_json(result.to_dict()))
        assert data['profit_factor'] is None
        assert len(data['trades']) == 100

    def test_export_creates_directories(self, tmp_path):
        path = export_json({'x': 1}, str(tmp_path / 'nested' / 'out.json'))
        with open(path) as f:
            assert json.load(f) == {'x': 1}


class TestConsoleReport:

    def test_content(self, scripted_engine, base_config, rising_candles):
        result = scripted_engine.run_backtest(base_config, rising_candles)
        text = generate_console_report(result)
        assert 'Backtest: test-call' in text
        assert 'Total Trades:   100 (100W / 0L / 0T)' in text
        assert 'Profit Factor:  inf' in text
        assert '✅' in text
        assert 'CALL: 100 trades' in text
        assert 'Hourly (UTC' in text

    def test_losing_run_marked(self, scripted_engine, base_config, rising_candles):
        result = scripted_engine.run_backtest(base_config.with_params({}, strategy_id='test-put'), rising_candles)
        text = generate_console_report(result, title='Losing')
        assert 'Losing' in text
        assert '❌' in text

    def test_optimization_table(self, scripted_engine, base_config, rising_candles):
        entries = GridSearchOptimizer(scripted_engine).optimize('test-call', base_config, rising_candles)
        text = format_optimization_report(entries, top=3)
        assert 'OPTIMIZATION RESULTS' in text
        assert 'every' in text
        assert 'win_rate' in text
        assert len(text.splitlines()) == 3 + 1 + 3

    def test_empty_optimization_table(self):
        assert 'No valid configurations' in format_optimization_report([])


# ══════════════════════════════════════════════════════════════════
# Argument parsing
# ══════════════════════════════════════════════════════════════════

class TestArguments:

    def test_parse_param(self):
        assert parse_param('period=14') == ['period', 14.0]

    def test_parse_range(self):
        assert parse_range('period=5:30:1') == ['period', {'min': 5.0, 'max': 30.0, 'step': 1.0}]

    @pytest.mark.parametrize("text", ['period', 'period=', 'period=abc'])
    def test_bad_param(self, text):
        with pytest.raises(Exception):
            parse_param(text)

    def test_bad_range(self):
        with pytest.raises(Exception):
            parse_range('period=5:30')

    def test_data_source_required(self):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(['backtest', 'rsi-ob-os'])
        assert exc.value.code == 2

    def test_sources_mutually_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['backtest', 'rsi-ob-os', '--data', 'x.json', '--synthetic', '10'])

    def test_execution_and_tick_flags(self):
        args = build_parser().parse_args([
            'backtest', 'rsi-ob-os', '--data', 'ticks.csv', '--tick-interval', '30',
            '--latency-ms', '500', '--slippage', '0.0002', '--max-exit-gap', '120',
        ])
        assert args.tick_interval == 30
        assert (args.latency_ms, args.slippage, args.max_exit_gap) == (500, 0.0002, 120.0)


# ══════════════════════════════════════════════════════════════════
# Commands
# ══════════════════════════════════════════════════════════════════

class TestCommands:

    def test_list_strategies(self, capsys):
        assert main(['list-strategies']) == 0
        out = capsys.readouterr().out
        assert 'rsi-ob-os' in out
        assert 'default=' in out

    @pytest.mark.parametrize("suffix", ['.csv', '.json'])
    def test_generate_round_trips_through_loader(self, tmp_path, suffix):
        path = str(tmp_path / f"candles{suffix}")
        assert main(['generate', path, '--count', '120', '--seed', '3']) == 0
        candles = load_candles(path)
        assert len(candles) == 120
        assert candles[0].timestamp < candles[-1].timestamp

    def test_backtest_with_output(self, tmp_path, capsys):
        out_path = str(tmp_path / 'results' / 'backtest.json')
        code = main([
            'backtest', 'rsi-ob-os', '--synthetic', '400', '--seed', '5',
            '--param', 'period=10', '--output', out_path,
        ])
        assert code == 0
        assert 'Backtest: rsi-ob-os' in capsys.readouterr().out
        with open(out_path) as f:
            data = json.load(f)
        assert data['result']['config']['strategy_params'] == {'period': 10.0}
        assert 'statistics' in data

    def test_backtest_from_file(self, tmp_path):
        path = str(tmp_path / 'candles.json')
        main(['generate', path, '--count', '200', '--seed', '1'])
        assert main(['backtest', 'macd-crossover', '--data', path]) == 0

    def test_optimize(self, tmp_path, capsys):
        out_path = str(tmp_path / 'opt.json')
        code = main([
            'optimize', 'rsi-ob-os', '--synthetic', '400', '--seed', '2',
            '--range', 'period=7:14:7', '--min-trades', '0', '--output', out_path,
        ])
        assert code == 0
        assert 'GRID OPTIMIZATION: rsi-ob-os' in capsys.readouterr().out
        with open(out_path) as f:
            data = json.load(f)
        assert data['search_stats']['total_evaluations'] == 2

    def test_optimize_with_validation(self, capsys):
        code = main([
            'optimize', 'rsi-ob-os', '--synthetic', '400', '--method', 'genetic',
            '--population', '4', '--generations', '1', '--min-trades', '0', '--validate',
        ])
        assert code == 0
        assert 'TRAIN/VALIDATION SUMMARY' in capsys.readouterr().out

    def test_leaderboard(self, tmp_path, capsys):
        out_path = str(tmp_path / 'board.json')
        assert main(['leaderboard', '--synthetic', '300', '--min-trades', '0', '--output', out_path]) == 0
        assert 'BACKTEST LEADERBOARD' in capsys.readouterr().out
        with open(out_path) as f:
            assert json.load(f)['total_strategies'] >= 1

    def test_unknown_strategy_exit_code(self):
        assert main(['backtest', 'no-such-strategy', '--synthetic', '200']) == 1

    def test_missing_file_exit_code(self, tmp_path):
        assert main(['backtest', 'rsi-ob-os', '--data', str(tmp_path / 'missing.json')]) == 1

    def test_grid_guard_exit_code(self):
        code = main([
            'optimize', 'rsi-ob-os', '--synthetic', '200',
            '--range', 'period=5:30:1', '--max-combinations', '3',
        ])
        assert code == 1

"""Tests for the command line entry point."""

import pytest

from datalab.cli import main
from datalab.data import generate_sample, to_frame


class TestMain:
    """main() returns a process exit code and prints tables."""

    def test_backtest_all(self, capsys):
        assert main(["--demo", "-n", "300", "backtest"]) == 0
        out = capsys.readouterr().out
        assert "BACKTEST RESULTS" in out
        for name in ("buy_and_hold", "sma_cross", "rsi_oversold", "macd_cross", "bollinger_bounce"):
            assert name in out

    def test_backtest_single_with_trades(self, capsys):
        assert main(["-n", "300", "backtest", "--strategy", "buy_and_hold", "--trades"]) == 0
        out = capsys.readouterr().out
        assert "EntryPx" in out

    def test_unknown_strategy(self, capsys):
        assert main(["-n", "100", "backtest", "--strategy", "martingale"]) == 2
        assert "martingale" in capsys.readouterr().err

    def test_signals(self, capsys):
        assert main(["-n", "400", "signals"]) == 0
        out = capsys.readouterr().out
        assert "SIGNAL RELIABILITY" in out
        assert "Golden Cross" in out

    def test_formula(self, capsys):
        assert main(["-n", "300", "formula", "price / sma(50)", "--tail", "3"]) == 0
        out = capsys.readouterr().out
        assert "defined: 251/300 bars" in out

    def test_invalid_formula(self, capsys):
        assert main(["-n", "50", "formula", "price / prce"]) == 2
        assert 'Unknown identifier "prce" at column 9' in capsys.readouterr().err

    def test_layers(self, capsys):
        assert main(["-n", "300", "layers", "--preset", "mean-reversion"]) == 0
        out = capsys.readouterr().out
        assert "PRESET mean-reversion: 6 layers" in out
        assert "bb_mult" in out

    def test_unknown_preset(self, capsys):
        assert main(["-n", "50", "layers", "--preset", "nope"]) == 2

    def test_csv(self, tmp_path, capsys):
        path = tmp_path / "bars.csv"
        to_frame(generate_sample(n=120, seed=1)).write_csv(path)
        assert main(["--csv", str(path), "backtest", "--strategy", "sma_cross"]) == 0
        assert "120 bars loaded" in capsys.readouterr().out

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])

    def test_scan(self, tmp_path, capsys):
        close = [100.0] * 30 + [130.0] * 30
        path = tmp_path / "gap.csv"
        path.write_text(
            "timestamp,close\n"
            + "".join(f"{i * 86_400_000},{c}\n" for i, c in enumerate(close)),
            encoding="utf-8",
        )
        assert main(["--csv", str(path), "scan"]) == 0
        out = capsys.readouterr().out
        assert "DIVERGENCES (0, most recent first)" in out
        assert "30.0% price gap from $100.00 to $130.00" in out
        assert "volatility_spike" in out

    def test_scan_demo_limit(self, capsys):
        assert main(["-n", "400", "scan", "--limit", "1"]) == 0
        out = capsys.readouterr().out
        assert "ANOMALIES (" in out

    def test_scan_bad_period(self, capsys):
        assert main(["-n", "100", "scan", "--rsi-period", "0"]) == 2
        assert "period" in capsys.readouterr().err

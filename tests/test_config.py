"""Tests for settings and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from datalab.config import Settings, get_settings
from datalab.log import setup_logging


class TestSettings:
    """Settings come from defaults, then DATALAB_* variables."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATALAB_DEBOUNCE_MS", raising=False)
        settings = Settings(_env_file=None)
        assert settings.debounce_ms == 150
        assert settings.min_backtest_bars == 30
        assert settings.signal_horizons == (1, 3, 7, 14, 30)
        assert settings.volatility_periods_per_year == 365

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DATALAB_DEBOUNCE_MS", "40")
        monkeypatch.setenv("DATALAB_SIGNAL_HORIZONS", "[1, 5]")
        settings = get_settings()
        assert settings.debounce_ms == 40
        assert settings.signal_horizons == (1, 5)

    def test_negative_debounce_rejected(self, monkeypatch):
        monkeypatch.setenv("DATALAB_DEBOUNCE_MS", "-5")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_zero_annualization_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, volatility_periods_per_year=0)

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATALAB_MIN_BACKTEST_BARS", raising=False)
        env = tmp_path / ".env"
        env.write_text("DATALAB_MIN_BACKTEST_BARS=5\nUNRELATED=1\n", encoding="utf-8")
        assert Settings(_env_file=env).min_backtest_bars == 5


class TestLogging:
    """setup_logging accepts names or numeric levels."""

    def test_string_level(self):
        setup_logging("debug")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("numba").level == logging.WARNING
        setup_logging(logging.INFO)
        assert logging.getLogger().level == logging.INFO

"""Tests for price/oscillator divergence detection."""

import numpy as np
import pytest

from datalab.divergence import _swing_points, classify_strength, detect_divergences
from datalab.indicators import InvalidParameter

N = 82
IDX = np.arange(N, dtype=np.float64)
# period-20 wave: troughs at 15, 35, 55, 75 and peaks at 5, 25, 45, 65
WAVE = 5.0 * np.sin(2 * np.pi * IDX / 20)


@pytest.fixture
def falling_lows():
    """Price drifts down while the oscillator drifts up on the same wave."""
    close = 100.0 - 0.1 * IDX + WAVE
    osc = 50.0 + 0.1 * IDX + WAVE
    return close, osc


@pytest.fixture
def rising_highs():
    close = 100.0 + 0.1 * IDX + WAVE
    osc = 50.0 - 0.1 * IDX + WAVE
    return close, osc


class TestSwingPoints:
    """Local extrema over ±lookback."""

    def test_troughs_and_peaks(self, falling_lows):
        close, _ = falling_lows
        assert list(_swing_points(close, 5, False)) == [15, 35, 55, 75]
        assert list(_swing_points(close, 5, True)) == [5, 25, 45, 65]

    def test_nan_skipped(self):
        values = np.array([np.nan, 3.0, 1.0, 2.0, np.nan, 5.0, 4.0])
        # index 4 is NaN itself and never disqualifies its neighbours 3 and 5
        assert list(_swing_points(values, 1, False)) == [2]
        assert list(_swing_points(values, 1, True)) == [1, 3, 5]

    def test_edges_excluded(self):
        values = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
        assert list(_swing_points(values, 2, True)) == []


class TestDetectDivergences:
    """Bullish and bearish pairs, matched within 2 * lookback bars."""

    def test_bullish(self, falling_lows):
        close, osc = falling_lows
        found = detect_divergences(close, osc, np.full(N, np.nan))

        assert [d.kind for d in found] == ["bullish"] * 3
        assert [(d.start_index, d.end_index) for d in found] == [(55, 75), (35, 55), (15, 35)]
        last = found[-1]
        assert last.indicator == "rsi"
        # price 100 - 1.5 - 5 -> 100 - 3.5 - 5; oscillator 50 + 1.5 - 5 -> 50 + 3.5 - 5
        assert last.price_start == pytest.approx(93.5)
        assert last.price_end == pytest.approx(91.5)
        assert last.indicator_start == pytest.approx(46.5)
        assert last.indicator_end == pytest.approx(48.5)
        # |-2.14% - 4.30%| = 6.4 -> weak
        assert last.strength == "weak"

    def test_bearish(self, rising_highs):
        close, osc = rising_highs
        found = detect_divergences(close, np.full(N, np.nan), osc)

        assert [d.kind for d in found] == ["bearish"] * 3
        assert {d.indicator for d in found} == {"macd"}
        assert [(d.start_index, d.end_index) for d in found] == [(45, 65), (25, 45), (5, 25)]

    def test_rsi_before_macd_on_same_bar(self, falling_lows):
        close, osc = falling_lows
        found = detect_divergences(close, osc, osc)
        assert [(d.end_index, d.indicator) for d in found] == [
            (75, "rsi"), (75, "macd"), (55, "rsi"), (55, "macd"), (35, "rsi"), (35, "macd"),
        ]

    def test_confirmed_moves_are_not_divergences(self, falling_lows):
        close, _ = falling_lows
        # oscillator tracks price exactly: lower lows on both
        assert detect_divergences(close, close, close) == []

    def test_warm_up_nan_drops_unmatched_pair(self, falling_lows):
        close, osc = falling_lows
        osc = osc.copy()
        osc[:26] = np.nan
        found = detect_divergences(close, osc, np.full(N, np.nan))
        # the price trough at 15 has no oscillator trough within 10 bars
        assert [(d.start_index, d.end_index) for d in found] == [(55, 75), (35, 55)]

    def test_short_series(self):
        x = np.linspace(1.0, 2.0, 19)
        assert detect_divergences(x, x, x) == []

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="rsi"):
            detect_divergences(np.ones(30), np.ones(29), np.ones(30))

    def test_bad_lookback(self, falling_lows):
        close, osc = falling_lows
        with pytest.raises(InvalidParameter):
            detect_divergences(close, osc, osc, lookback=0)


class TestStrength:
    """Graded on |price change % - indicator change %|."""

    @pytest.mark.parametrize("price, indicator, expected", [
        (-2.0, 14.0, "strong"),     # gap 16
        (-2.0, 6.0, "moderate"),    # gap 8
        (-2.0, 4.3, "weak"),        # gap 6.3
    ])
    def test_grades(self, price, indicator, expected):
        assert classify_strength(price, indicator) == expected

    def test_boundaries(self):
        assert classify_strength(0.0, 15.0) == "moderate"
        assert classify_strength(0.0, 15.01) == "strong"
        assert classify_strength(0.0, 7.0) == "weak"
        assert classify_strength(0.0, -7.01) == "moderate"

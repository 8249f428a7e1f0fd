"""Tests for statistical anomaly detection."""

import numpy as np
import pytest

from datalab.anomalies import detect_anomalies, z_scores
from datalab.data import RawSeries


def _kinds(found):
    return [(a.kind, a.index, a.severity) for a in found]


class TestZScores:
    """Population z-scores."""

    def test_flat(self):
        np.testing.assert_array_equal(z_scores([3.0, 3.0, 3.0]), [0.0, 0.0, 0.0])

    def test_single_outlier(self):
        # one outlier among n values sits sqrt(n - 1) deviations out
        z = z_scores([1.0] * 29 + [10.0])
        assert z[-1] == pytest.approx(np.sqrt(29))

    def test_empty(self):
        assert len(z_scores([])) == 0


class TestVolumeSpikes:
    """Volume z-score beyond 2.5."""

    def test_single_spike(self):
        volume = np.full(30, 1000.0)
        volume[12] = 10_000.0
        raw = RawSeries.from_arrays(np.full(30, 100.0), volume=volume)

        found = detect_anomalies(raw)
        # z = sqrt(29) = 5.39 -> high
        assert _kinds(found) == [("volume_spike", 12, "high")]
        assert found[0].z_score == pytest.approx(np.sqrt(29))
        assert found[0].description == "Volume is 5.4 std devs from mean (10.0K)"
        assert found[0].timestamp == 12 * 86_400_000

    def test_medium(self):
        volume = np.full(11, 50.0)
        volume[4] = 5_000_000.0
        raw = RawSeries.from_arrays(np.full(11, 100.0), volume=volume)
        # z = sqrt(10) = 3.16 -> medium
        found = detect_anomalies(raw)
        assert _kinds(found) == [("volume_spike", 4, "medium")]
        assert found[0].description.endswith("(5.0M)")

    def test_nan_volume_reads_zero(self):
        volume = np.full(20, np.nan)
        volume[7] = 500.0
        raw = RawSeries.from_arrays(np.full(20, 100.0), volume=volume)
        assert _kinds(detect_anomalies(raw)) == [("volume_spike", 7, "high")]

    def test_no_volume(self):
        raw = RawSeries.from_arrays(np.full(20, 100.0), volume=np.zeros(20))
        assert detect_anomalies(raw) == []


class TestPriceMoves:
    """Return z-score spikes and close-to-close gaps."""

    def test_jump(self):
        close = np.full(30, 100.0)
        close[15:] = 120.0
        found = detect_anomalies(RawSeries.from_arrays(close))

        # 29 returns, one of them 20%: z = sqrt(28) = 5.29 -> high, ahead of the gap's z of 4
        assert _kinds(found) == [("volatility_spike", 15, "high"), ("price_gap", 15, "high")]
        spike, gap = found
        assert spike.z_score == pytest.approx(np.sqrt(28))
        assert spike.description == "Daily return of 20.00% is 5.3 std devs from mean"
        assert gap.z_score == pytest.approx(4.0)
        assert gap.description == "20.0% price gap from $100.00 to $120.00"

    @pytest.mark.parametrize("move, severity", [
        (1.06, "low"),      # 6%
        (1.10, "medium"),   # 10%
        (0.80, "high"),     # 20% drop
    ])
    def test_gap_severity(self, move, severity):
        close = np.full(12, 100.0)
        close[6:] = 100.0 * move
        gaps = [a for a in detect_anomalies(RawSeries.from_arrays(close)) if a.kind == "price_gap"]
        assert [(a.index, a.severity) for a in gaps] == [(6, severity)]

    def test_small_prices(self):
        close = np.full(12, 0.5)
        close[6:] = 0.6
        gap = next(a for a in detect_anomalies(RawSeries.from_arrays(close)) if a.kind == "price_gap")
        assert gap.description == "20.0% price gap from $0.500000 to $0.600000"

    def test_short_series(self):
        close = np.array([100.0] * 5 + [200.0] * 4)
        assert detect_anomalies(RawSeries.from_arrays(close)) == []


class TestUnusualCandles:
    """Doji, hammer and shooting star over a 3% range."""

    @pytest.fixture
    def raw(self):
        n = 12
        o = np.full(n, 100.0)
        c = np.full(n, 101.0)
        h = np.full(n, 101.5)
        l = np.full(n, 99.5)
        # doji: body 0.05 of a 4.0 range
        o[3], c[3], h[3], l[3] = 100.0, 100.05, 102.0, 98.0
        # hammer: long lower wick
        o[6], c[6], h[6], l[6] = 100.0, 100.5, 100.6, 96.0
        # shooting star: long upper wick
        o[9], c[9], h[9], l[9] = 100.5, 100.0, 104.6, 99.9
        return RawSeries.from_arrays(c, open=o, high=h, low=l)

    def test_candles(self, raw):
        found = detect_anomalies(raw)
        assert _kinds(found) == [
            ("unusual_candle", 9, "medium"),    # wick 4.1 / 4.7 = 0.872
            ("unusual_candle", 6, "medium"),    # wick 4.0 / 4.6 = 0.870
            ("unusual_candle", 3, "low"),
        ]
        star, hammer, doji = found
        assert star.description == "Shooting star: 87% wick"
        assert hammer.description == "Hammer: 87% wick"
        assert doji.description.startswith("Doji candle: body is 1.2% of range")
        assert doji.z_score == pytest.approx((1 - 0.05 / 4.0) * 2)

    def test_narrow_range_ignored(self):
        n = 12
        c = np.full(n, 100.0)
        # a doji shape, but only a 1% range
        raw = RawSeries.from_arrays(c, open=c, high=c + 0.5, low=c - 0.5)
        assert detect_anomalies(raw) == []

    def test_zero_open_skipped(self):
        n = 12
        c = np.full(n, 100.0)
        o = c.copy()
        o[4] = 0.0
        raw = RawSeries.from_arrays(c, open=o, high=c + 5.0, low=c - 5.0)
        # every bar is a wide doji except the one with no open
        assert 4 not in [a.index for a in detect_anomalies(raw)]
        assert len(detect_anomalies(raw)) == n - 1

    def test_close_only(self):
        raw = RawSeries.from_arrays(np.linspace(100.0, 101.0, 12))
        assert detect_anomalies(raw) == []

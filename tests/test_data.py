"""Tests for the raw series model and loaders."""

import numpy as np
import polars as pl
import pytest

from datalab.data import RawSeries, _regime_path, generate_sample, load_csv, to_frame


class TestRawSeries:
    """Construction and accessors."""

    def test_arrays_are_read_only(self):
        series = RawSeries.from_arrays([1.0, 2.0, 3.0], volume=[5.0, 6.0, 7.0])
        with pytest.raises(ValueError):
            series.close[0] = 99.0
        with pytest.raises(ValueError):
            series.volume[0] = 99.0

    def test_input_is_copied(self):
        close = np.array([1.0, 2.0, 3.0])
        series = RawSeries.from_arrays(close)
        close[0] = 42.0
        assert series.close[0] == 1.0

    def test_default_timestamps_daily(self):
        series = RawSeries.from_arrays([1.0, 2.0, 3.0])
        np.testing.assert_array_equal(np.diff(series.timestamp), 86_400_000)

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="expected 3"):
            RawSeries.from_arrays([1.0, 2.0, 3.0], volume=[1.0, 2.0])

    def test_timestamps_must_increase(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            RawSeries.from_arrays([1.0, 2.0, 3.0], timestamp=[0, 2, 1])

    def test_optional_fallbacks(self):
        series = RawSeries.from_arrays([1.0, 2.0])
        assert not series.has_ohlc
        assert series.high_or_close() is series.close
        assert series.low_or_close() is series.close
        assert np.all(np.isnan(series.volume_or_nan()))
        assert series.price is series.close
        assert len(series) == 2

    def test_from_frame_sorts(self):
        df = pl.DataFrame({"timestamp": [2, 1, 3], "close": [20.0, 10.0, 30.0]})
        series = RawSeries.from_frame(df)
        np.testing.assert_array_equal(series.close, [10.0, 20.0, 30.0])
        assert series.volume is None

    def test_from_frame_requires_close(self):
        with pytest.raises(ValueError, match="close"):
            RawSeries.from_frame(pl.DataFrame({"timestamp": [1, 2]}))


class TestGenerateSample:
    """Synthetic OHLCV generator."""

    def test_deterministic(self):
        a = generate_sample(n=200, seed=7)
        b = generate_sample(n=200, seed=7)
        np.testing.assert_array_equal(a.close, b.close)
        np.testing.assert_array_equal(a.volume, b.volume)

    def test_seed_changes_path(self):
        assert not np.array_equal(generate_sample(n=50, seed=1).close,
                                  generate_sample(n=50, seed=2).close)

    def test_ohlc_sane(self):
        s = generate_sample(n=500)
        assert s.has_ohlc
        assert np.all(s.high >= s.low)
        assert np.all(s.high >= s.close)
        assert np.all(s.low <= s.close)
        assert np.all(s.volume > 0)

    def test_empty(self):
        assert len(generate_sample(n=0)) == 0

    def test_regimes_alternate(self):
        regime = _regime_path(np.random.default_rng(0), 2000)
        assert regime[0] == 0
        assert set(np.unique(regime)) == {0, 1}
        # calm runs last ~33 bars, stressed ~10: both switch many times
        assert np.count_nonzero(np.diff(regime)) > 10

    def test_volatility_clusters(self):
        s = generate_sample(n=3000, seed=5)
        abs_ret = np.abs(np.diff(np.log(s.close)))
        ranks = np.argsort(np.argsort(abs_ret))
        # big moves follow big moves: lag-1 rank correlation of |return| is positive
        lag1 = np.corrcoef(ranks[:-1], ranks[1:])[0, 1]
        assert lag1 > 0.03


class TestLoadCSV:
    """CSV ingestion."""

    def test_roundtrip_through_csv(self, tmp_path):
        src = generate_sample(n=40, seed=3)
        path = tmp_path / "bars.csv"
        to_frame(src).write_csv(path)

        loaded = load_csv(str(path))
        assert len(loaded) == 40
        np.testing.assert_allclose(loaded.close, src.close)
        np.testing.assert_allclose(loaded.volume, src.volume)

    def test_date_filter(self, tmp_path):
        day = 86_400_000
        # 2024-01-01 .. 2024-01-10
        start = 1_704_067_200_000
        df = pl.DataFrame({
            "timestamp": [start + i * day for i in range(10)],
            "close": [float(i) for i in range(10)],
        })
        path = tmp_path / "bars.csv"
        df.write_csv(path)

        loaded = load_csv(str(path), start="2024-01-03", end="2024-01-05")
        np.testing.assert_array_equal(loaded.close, [2.0, 3.0, 4.0])

    def test_gap_warning(self, tmp_path):
        day = 86_400_000
        stamps = [0, day, 2 * day, 3 * day, 10 * day, 11 * day]
        df = pl.DataFrame({"timestamp": stamps, "close": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0]})
        path = tmp_path / "gappy.csv"
        df.write_csv(path)

        with pytest.warns(UserWarning, match="temporal gap"):
            load_csv(str(path))

    def test_sanity_warning(self, tmp_path):
        day = 86_400_000
        df = pl.DataFrame({
            "timestamp": [0, day, 2 * day],
            "close": [10.0, 11.0, 12.0],
            "high": [11.0, 10.0, 13.0],
            "low": [9.0, 10.5, 11.0],
        })
        path = tmp_path / "bad.csv"
        df.write_csv(path)

        with pytest.warns(UserWarning, match="sanity check failed"):
            load_csv(str(path))

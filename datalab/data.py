"""Raw series model and local ingestion — CSV, Polars frames, or synthetic generator."""

import math
import warnings
from dataclasses import dataclass

import numpy as np
import polars as pl

_OPTIONAL = ("open", "high", "low", "volume")


def _parse_date_ms(date_str: str) -> int:
    """Parse a date string (YYYY-MM-DD) to epoch milliseconds."""
    from datetime import datetime, timezone

    dt = datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def _column(values, n, name):
    if values is None:
        return None
    arr = np.array(values, dtype=np.float64)
    if arr.ndim != 1 or len(arr) != n:
        raise ValueError(f"'{name}' has length {len(arr)}, expected {n}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class RawSeries:
    """Aligned bar arrays for one loaded window.

    ``timestamp`` (epoch ms, strictly increasing) and ``close`` are required;
    ``open/high/low/volume`` are optional. All arrays are read-only float64.
    """

    timestamp: np.ndarray
    close: np.ndarray
    open: np.ndarray | None = None
    high: np.ndarray | None = None
    low: np.ndarray | None = None
    volume: np.ndarray | None = None

    @classmethod
    def from_arrays(cls, close, timestamp=None, open=None, high=None, low=None, volume=None):
        close_arr = np.asarray(close, dtype=np.float64)
        n = len(close_arr)
        if timestamp is None:
            timestamp = np.arange(n, dtype=np.float64) * 86_400_000
        ts = _column(timestamp, n, "timestamp")
        if n > 1 and not np.all(np.diff(ts) > 0):
            raise ValueError("timestamps must be strictly increasing")
        return cls(
            timestamp=ts,
            close=_column(close_arr, n, "close"),
            open=_column(open, n, "open"),
            high=_column(high, n, "high"),
            low=_column(low, n, "low"),
            volume=_column(volume, n, "volume"),
        )

    @classmethod
    def from_frame(cls, df: pl.DataFrame) -> "RawSeries":
        """Build from a Polars frame with ``timestamp, close`` and any OHLCV extras."""
        if "close" not in df.columns:
            raise ValueError("frame has no 'close' column")
        df = df.sort("timestamp") if "timestamp" in df.columns else df
        cols = {c: df[c].to_numpy().astype(np.float64) for c in _OPTIONAL if c in df.columns}
        ts = df["timestamp"].to_numpy().astype(np.float64) if "timestamp" in df.columns else None
        return cls.from_arrays(df["close"].to_numpy().astype(np.float64), timestamp=ts, **cols)

    def __len__(self) -> int:
        return len(self.close)

    @property
    def price(self) -> np.ndarray:
        return self.close

    @property
    def has_ohlc(self) -> bool:
        return self.high is not None and self.low is not None

    def high_or_close(self) -> np.ndarray:
        return self.high if self.high is not None else self.close

    def low_or_close(self) -> np.ndarray:
        return self.low if self.low is not None else self.close

    def volume_or_nan(self) -> np.ndarray:
        if self.volume is None:
            return np.full(len(self), np.nan)
        return self.volume


def _check_gaps(series: RawSeries, max_gap_factor: float = 2.5) -> None:
    """Warn on temporal gaps and invalid OHLCV values."""
    ts = series.timestamp
    if len(ts) < 3:
        return
    diffs = np.diff(ts)
    bar = float(np.median(diffs))
    gaps = np.where(diffs > bar * max_gap_factor)[0]
    if len(gaps):
        warnings.warn(
            f"{len(gaps)} temporal gap(s) detected "
            f"(worst: {diffs[gaps].max() / bar:.1f}× bar size at index {gaps[0]}). "
            f"Results may be inaccurate.",
            stacklevel=3,
        )
    if series.has_ohlc:
        bad_hl = np.any(series.high < series.low)
        bad_ch = np.any(series.close > series.high)
        bad_cl = np.any(series.close < series.low)
    else:
        bad_hl = bad_ch = bad_cl = False
    bad_vol = series.volume is not None and np.any(series.volume < 0)
    if bad_hl or bad_ch or bad_cl or bad_vol:
        warnings.warn(
            "OHLCV sanity check failed: high<low, close out of range, or negative volume.",
            stacklevel=3,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_csv(path: str, start: str | None = None, end: str | None = None) -> RawSeries:
    """Load bars from CSV. Expects ``timestamp,close`` and optionally ``open,high,low,volume``."""
    df = pl.read_csv(path).sort("timestamp")
    if start:
        df = df.filter(pl.col("timestamp") >= _parse_date_ms(start))
    if end:
        df = df.filter(pl.col("timestamp") < _parse_date_ms(end) + 86_400_000)
    series = RawSeries.from_frame(df)
    _check_gaps(series)
    return series


# Calm and stressed volatility regimes: per-bar return scale, chance of staying put
_REGIME_SCALE = np.array([0.018, 0.045])
_REGIME_STAY = np.array([0.97, 0.90])


def _regime_path(rng, n: int) -> np.ndarray:
    """Two-state Markov chain; 0 = calm, 1 = stressed."""
    regime = np.zeros(n, dtype=np.int64)
    flips = rng.random(n)
    for i in range(1, n):
        prev = regime[i - 1]
        regime[i] = prev if flips[i] < _REGIME_STAY[prev] else 1 - prev
    return regime


def generate_sample(n: int = 1000, seed: int = 42) -> RawSeries:
    """Generate synthetic daily OHLCV from a regime-switching random walk.

    Returns are Student-t shocks scaled by a calm/stressed Markov regime, so
    volatility comes in bursts. Volume rises with the size of the move and in
    the stressed regime.
    """
    if n == 0:
        return RawSeries.from_arrays([], timestamp=[], open=[], high=[], low=[], volume=[])

    rng = np.random.default_rng(seed)
    regime = _regime_path(rng, n)
    scale = _REGIME_SCALE[regime]

    # t(4) has variance 2; divide by sqrt(2) for unit-variance shocks
    shocks = rng.standard_t(df=4, size=n) / math.sqrt(2.0)
    log_ret = 0.0003 + scale * shocks
    log_ret[0] = 0.0
    close = 30_000.0 * np.exp(np.cumsum(log_ret))

    open_ = np.empty(n)
    open_[0] = close[0]
    open_[1:] = close[:-1] * np.exp(rng.normal(0.0, 0.1, n - 1) * scale[1:])

    # wicks extend past the body by a half-normal fraction of the regime scale
    high = np.maximum(open_, close) * np.exp(np.abs(rng.normal(0.0, 0.4, n)) * scale)
    low = np.minimum(open_, close) * np.exp(-np.abs(rng.normal(0.0, 0.4, n)) * scale)

    volume = rng.lognormal(10.0, 0.4, n) * (1.0 + 25.0 * np.abs(log_ret))
    volume[regime == 1] *= 1.5

    timestamps = np.arange(n, dtype=np.int64) * 86_400_000

    return RawSeries.from_arrays(
        close, timestamp=timestamps, open=open_, high=high, low=low, volume=volume
    )


def to_frame(series: RawSeries) -> pl.DataFrame:
    """Inverse of :meth:`RawSeries.from_frame`; absent columns are omitted."""
    cols = {"timestamp": series.timestamp.astype(np.int64), "close": series.close}
    for name in _OPTIONAL:
        arr = getattr(series, name)
        if arr is not None:
            cols[name] = arr
    return pl.DataFrame(cols)

"""Anomaly scan — bars that stand out statistically from the rest of the window.

Kinds:
    volume_spike      — volume z-score beyond 2.5
    volatility_spike  — bar-over-bar return z-score beyond 3.0
    price_gap         — close-to-close move beyond 5%
    unusual_candle    — doji, hammer or shooting star with a range over 3% (needs OHLC)

Z-scores use the population standard deviation over the whole window. Results
are ordered high → medium → low severity, then by ``|z_score|`` descending.
"""

import logging
from dataclasses import dataclass

import numpy as np

from datalab.data import RawSeries

logger = logging.getLogger(__name__)

MIN_BARS = 10

VOLUME_Z = 2.5
RETURN_Z = 3.0
GAP_PCT = 5.0
CANDLE_RANGE_PCT = 3.0

_SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}


@dataclass(frozen=True)
class Anomaly:
    index: int
    timestamp: int
    kind: str
    severity: str
    description: str
    z_score: float


def z_scores(values) -> np.ndarray:
    """Population z-scores; all zeros when the series is flat."""
    arr = np.asarray(values, dtype=np.float64)
    if len(arr) == 0:
        return arr
    std = arr.std()
    if std == 0:
        return np.zeros(len(arr))
    return (arr - arr.mean()) / std


def _compact(value: float) -> str:
    for scale, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if value >= scale:
            return f"{value / scale:.1f}{suffix}"
    return f"{value:.0f}"


def _price(value: float) -> str:
    return f"${value:,.2f}" if value >= 1 else f"${value:.6f}"


def _grade(magnitude: float, high: float, medium: float) -> str:
    if magnitude > high:
        return "high"
    if magnitude > medium:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------

def _volume_spikes(raw: RawSeries, ts) -> list[Anomaly]:
    if raw.volume is None:
        return []
    volume = np.nan_to_num(raw.volume, nan=0.0)
    if not np.any(volume > 0):
        return []
    z = z_scores(volume)
    return [
        Anomaly(int(i), ts(i), "volume_spike", _grade(abs(z[i]), 4.0, 3.0),
                f"Volume is {z[i]:.1f} std devs from mean ({_compact(volume[i])})",
                float(z[i]))
        for i in np.flatnonzero(np.abs(z) > VOLUME_Z)
    ]


def _volatility_spikes(returns, ts) -> list[Anomaly]:
    if len(returns) <= 5:
        return []
    z = z_scores(returns)
    # returns[k] belongs to bar k + 1
    return [
        Anomaly(int(k) + 1, ts(k + 1), "volatility_spike", _grade(abs(z[k]), 5.0, 4.0),
                f"Daily return of {returns[k]:.2f}% is {z[k]:.1f} std devs from mean",
                float(z[k]))
        for k in np.flatnonzero(np.abs(z) > RETURN_Z)
    ]


def _price_gaps(close, returns, ts) -> list[Anomaly]:
    gaps = np.abs(returns)
    return [
        Anomaly(int(k) + 1, ts(k + 1), "price_gap", _grade(gaps[k], 15.0, 8.0),
                f"{gaps[k]:.1f}% price gap from {_price(close[k])} to {_price(close[k + 1])}",
                float(gaps[k] / GAP_PCT))
        for k in np.flatnonzero(gaps > GAP_PCT)
    ]


def _unusual_candles(raw: RawSeries, ts) -> list[Anomaly]:
    if not raw.has_ohlc or raw.open is None:
        return []
    o, h, l, c = raw.open, raw.high, raw.low, raw.close
    span = h - l
    usable = span > 0
    for arr in (o, h, l, c):
        usable &= np.isfinite(arr) & (arr != 0)

    with np.errstate(divide="ignore", invalid="ignore"):
        body_ratio = np.abs(c - o) / span
        range_pct = span / l * 100.0
        upper = h - np.maximum(o, c)
        lower = np.minimum(o, c) - l
        wick_ratio = np.maximum(upper, lower) / span
    wide = usable & (range_pct > CANDLE_RANGE_PCT)

    found = []
    for i in np.flatnonzero(wide & (body_ratio < 0.05)):
        found.append(Anomaly(
            int(i), ts(i), "unusual_candle", "low",
            f"Doji candle: body is {body_ratio[i] * 100:.1f}% of range ({range_pct[i]:.1f}% range)",
            float((1.0 - body_ratio[i]) * 2.0)))
    for i in np.flatnonzero(wide & (body_ratio < 0.3) & (wick_ratio > 0.6)):
        name = "Hammer" if lower[i] > upper[i] else "Shooting star"
        found.append(Anomaly(
            int(i), ts(i), "unusual_candle", "medium",
            f"{name}: {wick_ratio[i] * 100:.0f}% wick",
            float(wick_ratio[i] * 2.0)))
    return found


def detect_anomalies(raw: RawSeries) -> list[Anomaly]:
    """Scan one window for volume, volatility, gap and candle outliers.

    Returns ``[]`` for fewer than 10 bars. Volume checks need a volume column
    with some positive value; candle checks need open/high/low.
    """
    n = len(raw)
    if n < MIN_BARS:
        return []

    def ts(i):
        return int(raw.timestamp[i])

    close = raw.close
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(close) / close[:-1] * 100.0

    found = (
        _volume_spikes(raw, ts)
        + _volatility_spikes(returns, ts)
        + _price_gaps(close, returns, ts)
        + _unusual_candles(raw, ts)
    )
    found.sort(key=lambda a: (_SEVERITY_RANK[a.severity], -abs(a.z_score)))
    logger.debug("found %d anomalies over %d bar(s)", len(found), n)
    return found

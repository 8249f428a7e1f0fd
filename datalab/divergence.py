"""Divergence scan — price swings that an oscillator fails to confirm.

Bullish: price prints a lower low while the oscillator prints a higher low.
Bearish: price prints a higher high while the oscillator prints a lower high.

Swing points are local extrema over ``±lookback`` bars. Each consecutive pair
of price swings is matched to the first oscillator swing of the same kind
within ``2 * lookback`` bars of each end.
"""

import logging
from dataclasses import dataclass

import numba as nb
import numpy as np

from datalab.indicators import InvalidParameter

logger = logging.getLogger(__name__)

MIN_BARS = 20
DEFAULT_LOOKBACK = 5


@dataclass(frozen=True)
class Divergence:
    kind: str               # "bullish" | "bearish"
    indicator: str          # "rsi" | "macd"
    start_index: int
    end_index: int
    price_start: float
    price_end: float
    indicator_start: float
    indicator_end: float
    strength: str           # "strong" | "moderate" | "weak"


# ---------------------------------------------------------------------------
# Numba kernels
# ---------------------------------------------------------------------------

@nb.njit(cache=True)
def _swing_points(values, lookback, peaks):
    """Indices whose value no defined neighbour within ±lookback beats.

    NaN points are skipped; NaN neighbours compare false and never disqualify.
    """
    n = len(values)
    out = np.empty(n, dtype=np.int64)
    count = 0
    for i in range(lookback, n - lookback):
        v = values[i]
        if np.isnan(v):
            continue
        ok = True
        for j in range(i - lookback, i + lookback + 1):
            if j == i:
                continue
            if peaks:
                if values[j] > v:
                    ok = False
                    break
            elif values[j] < v:
                ok = False
                break
        if ok:
            out[count] = i
            count += 1
    return out[:count]


# ---------------------------------------------------------------------------
# Scan
# ---------------------------------------------------------------------------

def classify_strength(price_change_pct: float, indicator_change_pct: float) -> str:
    gap = abs(price_change_pct - indicator_change_pct)
    if gap > 15:
        return "strong"
    if gap > 7:
        return "moderate"
    return "weak"


def _first_within(swings: np.ndarray, target: int, window: int):
    hits = swings[np.abs(swings - target) <= window]
    return int(hits[0]) if len(hits) else None


def _scan(close, indicator, name, lookback, bullish) -> list[Divergence]:
    price_swings = _swing_points(close, lookback, not bullish)
    ind_swings = _swing_points(indicator, lookback, not bullish)
    window = 2 * lookback

    found = []
    for prev, curr in zip(price_swings[:-1], price_swings[1:]):
        p0, p1 = close[prev], close[curr]
        # lower low for bullish, higher high for bearish
        if (p1 >= p0) if bullish else (p1 <= p0):
            continue
        i0 = _first_within(ind_swings, prev, window)
        i1 = _first_within(ind_swings, curr, window)
        if i0 is None or i1 is None:
            continue
        v0, v1 = indicator[i0], indicator[i1]
        if not ((v1 > v0) if bullish else (v1 < v0)):
            continue

        price_change = (p1 - p0) / p0 * 100.0
        ind_change = (v1 - v0) / (abs(v0) if v0 != 0 else 1.0) * 100.0
        found.append(Divergence(
            kind="bullish" if bullish else "bearish",
            indicator=name,
            start_index=int(prev),
            end_index=int(curr),
            price_start=float(p0),
            price_end=float(p1),
            indicator_start=float(v0),
            indicator_end=float(v1),
            strength=classify_strength(price_change, ind_change),
        ))
    return found


def detect_divergences(close, rsi, macd_line, lookback: int = DEFAULT_LOOKBACK) -> list[Divergence]:
    """Scan price against RSI and the MACD line, most recent first.

    Returns ``[]`` for fewer than 20 bars. Signals ending on the same bar keep
    RSI before MACD and bullish before bearish.
    """
    if isinstance(lookback, bool) or not isinstance(lookback, (int, np.integer)) or lookback < 1:
        raise InvalidParameter(f"lookback must be a positive int, got {lookback!r}")
    close = np.ascontiguousarray(close, dtype=np.float64)
    rsi = np.ascontiguousarray(rsi, dtype=np.float64)
    macd_line = np.ascontiguousarray(macd_line, dtype=np.float64)
    n = len(close)
    for name, arr in (("rsi", rsi), ("macd_line", macd_line)):
        if len(arr) != n:
            raise ValueError(f"'{name}' has length {len(arr)}, expected {n}")
    if n < MIN_BARS:
        return []

    signals = []
    for name, arr in (("rsi", rsi), ("macd", macd_line)):
        signals += _scan(close, arr, name, lookback, bullish=True)
        signals += _scan(close, arr, name, lookback, bullish=False)
    signals.sort(key=lambda d: -d.end_index)
    logger.debug("found %d divergence(s) over %d bar(s)", len(signals), n)
    return signals


# Warmup JIT at import time
_swing_points(np.zeros(3), 1, True)

"""Signal reliability — how often canonical signals were followed by the
expected move.

For every bar where a signal's condition holds, look ``h`` bars ahead: a
bullish signal hits when the close is strictly higher, a bearish one when it
is strictly lower. Occurrences too close to the end to look ``h`` bars ahead
are not samples for that horizon.

Signal inputs are named arrays (see ``INPUT_NAMES``); a signal whose inputs
are absent is skipped rather than reported with zero occurrences.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping

import numpy as np

from datalab.indicators import (
    compute_bollinger_bands,
    compute_crosses,
    compute_macd,
    compute_rsi,
    compute_sma,
)

logger = logging.getLogger(__name__)

HORIZONS = (1, 3, 7, 14, 30)

INPUT_NAMES = (
    "rsi", "macd", "macd_signal", "bb_upper", "bb_lower",
    "sma50", "sma200", "volume", "volume_sma",
)


@dataclass(frozen=True)
class SignalResult:
    name: str
    description: str
    direction: str
    occurrences: int
    hit_rates: dict[int, float]
    samples: dict[int, int]


@dataclass(frozen=True)
class Signal:
    name: str
    description: str
    direction: str                    # bullish | bearish
    requires: tuple[str, ...]
    condition: Callable[[np.ndarray, Mapping[str, np.ndarray]], np.ndarray]


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

def _below(a, level):
    with np.errstate(invalid="ignore"):
        return ~np.isnan(a) & (a < level)


def _above(a, level):
    with np.errstate(invalid="ignore"):
        return ~np.isnan(a) & (a > level)


def _touch_lower(closes, x):
    band = x["bb_lower"]
    with np.errstate(invalid="ignore"):
        return ~np.isnan(band) & (closes <= band)


def _touch_upper(closes, x):
    band = x["bb_upper"]
    with np.errstate(invalid="ignore"):
        return ~np.isnan(band) & (closes >= band)


def _vol_spike(closes, x):
    vol, avg = x["volume"], x["volume_sma"]
    with np.errstate(invalid="ignore"):
        return ~(np.isnan(vol) | np.isnan(avg)) & (vol > 2.0 * avg)


SIGNALS = [
    Signal("RSI < 30", "RSI enters oversold territory", "bullish",
           ("rsi",), lambda c, x: _below(x["rsi"], 30.0)),
    Signal("RSI > 70", "RSI overbought (expecting reversal)", "bearish",
           ("rsi",), lambda c, x: _above(x["rsi"], 70.0)),
    Signal("MACD Bull Cross", "MACD crosses above signal line", "bullish",
           ("macd", "macd_signal"), lambda c, x: compute_crosses(x["macd"], x["macd_signal"])[0]),
    Signal("MACD Bear Cross", "MACD crosses below signal (expecting down)", "bearish",
           ("macd", "macd_signal"), lambda c, x: compute_crosses(x["macd"], x["macd_signal"])[1]),
    Signal("BB Lower Touch", "Price at/below lower Bollinger Band", "bullish",
           ("bb_lower",), _touch_lower),
    Signal("BB Upper Touch", "Price at/above upper Bollinger Band", "bearish",
           ("bb_upper",), _touch_upper),
    Signal("Golden Cross", "SMA 50 crosses above SMA 200", "bullish",
           ("sma50", "sma200"), lambda c, x: compute_crosses(x["sma50"], x["sma200"])[0]),
    Signal("Death Cross", "SMA 50 crosses below SMA 200", "bearish",
           ("sma50", "sma200"), lambda c, x: compute_crosses(x["sma50"], x["sma200"])[1]),
    Signal("Vol Spike (2x)", "Volume exceeds 2x its moving average", "bullish",
           ("volume", "volume_sma"), _vol_spike),
]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_signal_inputs(raw) -> dict[str, np.ndarray]:
    """Default inputs for SIGNALS from a :class:`~datalab.data.RawSeries`.

    RSI 14, MACD 12/26/9, Bollinger 20/2, SMA 50/200 and a 20-bar volume SMA.
    Volume inputs are omitted when the series has no volume.
    """
    close = raw.close
    macd = compute_macd(close, 12, 26, 9)
    bands = compute_bollinger_bands(close, 20, 2.0)
    inputs = {
        "rsi": compute_rsi(close, 14),
        "macd": macd.macd,
        "macd_signal": macd.signal,
        "bb_upper": bands.upper,
        "bb_lower": bands.lower,
        "sma50": compute_sma(close, 50),
        "sma200": compute_sma(close, 200),
    }
    if raw.volume is not None:
        inputs["volume"] = np.asarray(raw.volume, dtype=np.float64)
        inputs["volume_sma"] = compute_sma(raw.volume, 20)
    return inputs


def hit_rates(closes, mask, direction: str, horizons=HORIZONS):
    """Return ``(hit_rates, samples)`` for the bars flagged in ``mask``."""
    closes = np.asarray(closes, dtype=np.float64)
    n = len(closes)
    idx = np.flatnonzero(mask)
    rates, samples = {}, {}
    for h in horizons:
        usable = idx[idx + h < n]
        samples[h] = int(len(usable))
        if len(usable) == 0:
            rates[h] = 0.0
            continue
        now, later = closes[usable], closes[usable + h]
        hits = later > now if direction == "bullish" else later < now
        rates[h] = float(np.count_nonzero(hits)) / len(usable)
    return rates, samples


def compute_signal_reliability(closes, inputs: Mapping[str, np.ndarray],
                               horizons=HORIZONS) -> list[SignalResult]:
    closes = np.asarray(closes, dtype=np.float64)
    n = len(closes)
    arrays = {}
    for name, arr in inputs.items():
        if arr is None:
            continue
        arr = np.asarray(arr, dtype=np.float64)
        if len(arr) != n:
            raise ValueError(f"input '{name}' has length {len(arr)}, expected {n}")
        arrays[name] = arr

    results = []
    for sig in SIGNALS:
        missing = [r for r in sig.requires if r not in arrays]
        if missing:
            logger.debug("skipping %s: missing %s", sig.name, ", ".join(missing))
            continue
        mask = sig.condition(closes, arrays)
        rates, samples = hit_rates(closes, mask, sig.direction, horizons)
        results.append(SignalResult(
            name=sig.name,
            description=sig.description,
            direction=sig.direction,
            occurrences=int(np.count_nonzero(mask)),
            hit_rates=rates,
            samples=samples,
        ))
    return results

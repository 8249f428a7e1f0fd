"""Indicator library — pure numeric functions over price/volume arrays.

Every function takes float64-compatible sequences and returns numpy arrays of
the same length. Indices before a full window are NaN; insufficient history
never raises. Only malformed parameters (``window <= 0``, non-numeric, NaN)
raise :class:`InvalidParameter`.

Window statistics delegate to TA-Lib where its semantics match; RSI, the raw
stochastic %K and the drawdown walk run as Numba kernels.

Provided:
    compute_sma             — simple moving average
    compute_ema             — exponential MA seeded with the first SMA
    compute_rsi             — Wilder RSI, 50 on a flat window
    compute_macd            — MACD line, signal line, histogram
    compute_bollinger_bands — SMA ± mult·σ (population σ)
    compute_stochastic      — %K / %D with %K smoothing
    compute_atr             — Wilder average true range
    compute_rolling_volatility, compute_drawdown, compute_volume_ratio
    compute_bb_width, compute_daily_return, compute_rsi_sma,
    compute_obv, compute_vwap, compute_williams_r, compute_cci, compute_adx
    compute_crosses         — cross-up / cross-down events between two series
"""

import math
from typing import NamedTuple

import numba as nb
import numpy as np
import talib
from numpy.lib.stride_tricks import sliding_window_view


class InvalidParameter(ValueError):
    """Raised for a non-positive, non-numeric or non-finite indicator argument."""


class MACD(NamedTuple):
    macd: np.ndarray
    signal: np.ndarray
    histogram: np.ndarray


class Bands(NamedTuple):
    upper: np.ndarray
    middle: np.ndarray
    lower: np.ndarray


class Stochastic(NamedTuple):
    k: np.ndarray
    d: np.ndarray


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------

def _as_array(series) -> np.ndarray:
    return np.ascontiguousarray(series, dtype=np.float64)


def _window(value, name="window", minimum=1) -> int:
    """Validate a window-like argument and return it as an int."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidParameter(f"{name} must be numeric, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidParameter(f"{name} must be a positive finite number, got {value!r}")
    w = int(round(value))
    if w < minimum:
        raise InvalidParameter(f"{name} must be >= {minimum}, got {value!r}")
    return w


def _nan(n: int) -> np.ndarray:
    return np.full(n, np.nan)


def _call_ta(fn, *arrays, outputs=1, **kwargs):
    """TA-Lib call that degrades to NaN on empty or all-NaN input.

    TA-Lib itself skips leading NaNs but raises when nothing is left.
    """
    n = len(arrays[0])
    if n == 0 or any(np.isnan(a).all() for a in arrays):
        if outputs == 1:
            return _nan(n)
        return tuple(_nan(n) for _ in range(outputs))
    return fn(*arrays, **kwargs)


# ---------------------------------------------------------------------------
# Numba kernels
# ---------------------------------------------------------------------------

@nb.njit(cache=True)
def _wilder_rsi(close, period):
    n = len(close)
    out = np.full(n, np.nan)
    if n <= period:
        return out

    gain_sum = 0.0
    loss_sum = 0.0
    for i in range(1, period + 1):
        change = close[i] - close[i - 1]
        if change > 0.0:
            gain_sum += change
        else:
            loss_sum -= change
    avg_gain = gain_sum / period
    avg_loss = loss_sum / period

    for i in range(period, n):
        if i > period:
            change = close[i] - close[i - 1]
            gain = change if change > 0.0 else 0.0
            loss = -change if change < 0.0 else 0.0
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period
        if avg_gain + avg_loss == 0.0:
            out[i] = 50.0
        elif avg_loss == 0.0:
            out[i] = 100.0
        else:
            rs = avg_gain / avg_loss
            out[i] = 100.0 - 100.0 / (1.0 + rs)
    return out


@nb.njit(cache=True)
def _raw_stoch_k(high, low, close, k_period):
    n = len(close)
    out = np.full(n, np.nan)
    for i in range(k_period - 1, n):
        hh = high[i]
        ll = low[i]
        for j in range(i - k_period + 1, i):
            if high[j] > hh:
                hh = high[j]
            if low[j] < ll:
                ll = low[j]
        if hh == ll:
            out[i] = 50.0
        else:
            out[i] = (close[i] - ll) / (hh - ll) * 100.0
    return out


@nb.njit(cache=True)
def _drawdown_pct(close):
    n = len(close)
    out = np.full(n, np.nan)
    peak = np.nan
    for i in range(n):
        c = close[i]
        if np.isnan(c):
            continue
        if np.isnan(peak) or c > peak:
            peak = c
        if peak != 0.0:
            out[i] = (c - peak) / peak * 100.0
    return out


# ---------------------------------------------------------------------------
# Moving averages and oscillators
# ---------------------------------------------------------------------------

def compute_sma(series, window) -> np.ndarray:
    """Simple moving average; first defined index is ``window - 1``."""
    w = _window(window)
    arr = _as_array(series)
    if w == 1:
        return arr.copy()
    return _call_ta(talib.SMA, arr, timeperiod=w)


def compute_ema(series, window) -> np.ndarray:
    """Exponential MA seeded with the first SMA, smoothing ``2 / (window + 1)``."""
    w = _window(window)
    arr = _as_array(series)
    if w == 1:
        return arr.copy()
    return _call_ta(talib.EMA, arr, timeperiod=w)


def compute_rsi(series, period=14) -> np.ndarray:
    """Wilder RSI in [0, 100]. A window with no movement at all reads 50."""
    p = _window(period, "period")
    return _wilder_rsi(_as_array(series), p)


def compute_macd(series, fast=12, slow=26, signal_period=9) -> MACD:
    """MACD line (EMA fast − EMA slow), its EMA signal, and the histogram.

    The signal EMA starts at the first defined MACD value, and
    ``histogram == macd - signal`` element for element.
    """
    arr = _as_array(series)
    ema_fast = compute_ema(arr, fast)
    ema_slow = compute_ema(arr, slow)
    macd_line = ema_fast - ema_slow
    signal_line = compute_ema(macd_line, signal_period)
    return MACD(macd_line, signal_line, macd_line - signal_line)


def compute_bollinger_bands(series, period=20, mult=2.0) -> Bands:
    """SMA middle band with ``mult`` population standard deviations either side."""
    p = _window(period, "period")
    if isinstance(mult, bool) or not isinstance(mult, (int, float, np.integer, np.floating)) \
            or not math.isfinite(mult) or mult < 0:
        raise InvalidParameter(f"mult must be a non-negative finite number, got {mult!r}")
    arr = _as_array(series)
    if p == 1:
        return Bands(arr.copy(), arr.copy(), arr.copy())
    upper, middle, lower = _call_ta(
        talib.BBANDS, arr, outputs=3,
        timeperiod=p, nbdevup=float(mult), nbdevdn=float(mult), matype=0)
    return Bands(upper, middle, lower)


def compute_stochastic(high, low, close, k_period=14, d_period=3, smooth=3) -> Stochastic:
    """Stochastic oscillator; %K is smoothed by ``smooth``, %D is SMA(%K, d_period).

    A window whose high equals its low reads 50.
    """
    kp = _window(k_period, "k_period")
    dp = _window(d_period, "d_period")
    sm = _window(smooth, "smooth")
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    raw_k = _raw_stoch_k(h, l, c, kp)
    k = compute_sma(raw_k, sm)
    d = compute_sma(k, dp)
    return Stochastic(k, d)


def compute_atr(high, low, close, period=14) -> np.ndarray:
    """Wilder average true range; first defined index is ``period``."""
    p = _window(period, "period")
    h, l, c = _as_array(high), _as_array(low), _as_array(close)
    return _call_ta(talib.ATR, h, l, c, timeperiod=p)


# ---------------------------------------------------------------------------
# Derived series
# ---------------------------------------------------------------------------

def compute_rolling_volatility(series, window=30, periods_per_year=365) -> np.ndarray:
    """Annualized sample stddev of log returns over ``window`` bars, in percent."""
    w = _window(window, minimum=2)
    arr = _as_array(series)
    n = len(arr)
    out = _nan(n)
    if n <= w:
        return out
    with np.errstate(divide="ignore", invalid="ignore"):
        rets = np.log(arr[1:] / arr[:-1])
        windows = sliding_window_view(rets, w)
        out[w:] = windows.std(axis=1, ddof=1) * math.sqrt(periods_per_year) * 100.0
    return out


def compute_drawdown(series) -> np.ndarray:
    """Percent below the running peak (0 at a new high, negative below it)."""
    return _drawdown_pct(_as_array(series))


def compute_volume_ratio(volume, window=20) -> np.ndarray:
    """Volume divided by its SMA; NaN where the average is zero or undefined."""
    vol = _as_array(volume)
    avg = compute_sma(vol, window)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(avg != 0.0, vol / avg, np.nan)


def compute_bb_width(series, period=20, mult=2.0) -> np.ndarray:
    """Bollinger band width as a percent of the middle band."""
    upper, middle, lower = compute_bollinger_bands(series, period, mult)
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(middle != 0.0, (upper - lower) / middle * 100.0, np.nan)


def compute_daily_return(series) -> np.ndarray:
    """Bar-over-bar percent change; index 0 is NaN."""
    arr = _as_array(series)
    out = _nan(len(arr))
    with np.errstate(divide="ignore", invalid="ignore"):
        out[1:] = np.where(arr[:-1] != 0.0, (arr[1:] / arr[:-1] - 1.0) * 100.0, np.nan)
    return out


def compute_rsi_sma(series, period=14, window=10) -> np.ndarray:
    """SMA of the RSI series; NaN wherever the RSI itself is undefined."""
    return compute_sma(compute_rsi(series, period), window)


def compute_obv(close, volume) -> np.ndarray:
    """On-balance volume."""
    return _call_ta(talib.OBV, _as_array(close), _as_array(volume))


def compute_vwap(high, low, close, volume) -> np.ndarray:
    """Cumulative volume-weighted typical price over the loaded window."""
    h, l, c, v = _as_array(high), _as_array(low), _as_array(close), _as_array(volume)
    typical = (h + l + c) / 3.0
    cum_pv = np.cumsum(np.nan_to_num(typical * v))
    cum_v = np.cumsum(np.nan_to_num(v))
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(cum_v > 0.0, cum_pv / cum_v, np.nan)


def compute_williams_r(high, low, close, period=14) -> np.ndarray:
    p = _window(period, "period", minimum=2)
    return _call_ta(talib.WILLR, _as_array(high), _as_array(low), _as_array(close), timeperiod=p)


def compute_cci(high, low, close, period=20) -> np.ndarray:
    p = _window(period, "period", minimum=2)
    return _call_ta(talib.CCI, _as_array(high), _as_array(low), _as_array(close), timeperiod=p)


def compute_adx(high, low, close, period=14) -> np.ndarray:
    p = _window(period, "period", minimum=2)
    return _call_ta(talib.ADX, _as_array(high), _as_array(low), _as_array(close), timeperiod=p)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def compute_crosses(a, b):
    """Bars where ``a`` crosses ``b``: ``(up, down)`` boolean arrays.

    Up at bar i means ``a[i-1] <= b[i-1]`` and ``a[i] > b[i]``; down is the
    mirror. Bars where any of the four values is NaN never cross.
    """
    a, b = _as_array(a), _as_array(b)
    n = len(a)
    up = np.zeros(n, dtype=np.bool_)
    down = np.zeros(n, dtype=np.bool_)
    if n < 2:
        return up, down
    pa, pb, ca, cb = a[:-1], b[:-1], a[1:], b[1:]
    valid = ~(np.isnan(pa) | np.isnan(pb) | np.isnan(ca) | np.isnan(cb))
    with np.errstate(invalid="ignore"):
        up[1:] = valid & (pa <= pb) & (ca > cb)
        down[1:] = valid & (pa >= pb) & (ca < cb)
    return up, down

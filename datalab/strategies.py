"""Strategy catalog — long-only rules turned into per-bar positions.

Each strategy is a pure ``(closes, params) -> positions`` function returning a
float64 array of 0.0 (flat) / 1.0 (long). Rules emit entry and exit events;
``sig_entry_exit`` turns them into positions, only looking for an entry while
flat and for an exit while long. A position still open on the last bar is
closed there.

To add a strategy, write its signal function and append a StrategyConfig to
STRATEGIES with the same ``type``.
"""

from dataclasses import dataclass, field, replace
from typing import Mapping

import numba as nb
import numpy as np

from datalab.indicators import (
    compute_bollinger_bands,
    compute_crosses,
    compute_macd,
    compute_rsi,
    compute_sma,
)


class UnknownStrategy(KeyError):
    """No strategy with the given type."""


@dataclass(frozen=True)
class StrategyConfig:
    type: str
    label: str
    description: str
    params: Mapping[str, float] = field(default_factory=dict)

    def with_params(self, **params) -> "StrategyConfig":
        return replace(self, params={**self.params, **params})


# ---------------------------------------------------------------------------
# Position state machine
# ---------------------------------------------------------------------------

@nb.njit(cache=True)
def sig_entry_exit(entry, exit_):
    """Flat/long state machine over boolean event arrays; flat on the last bar."""
    n = len(entry)
    out = np.zeros(n, dtype=np.float64)
    pos = 0.0
    for i in range(n):
        if pos == 0.0:
            if entry[i]:
                pos = 1.0
        elif exit_[i]:
            pos = 0.0
        out[i] = pos
    if n > 0:
        out[n - 1] = 0.0
    return out


_w = np.zeros(2, dtype=np.bool_)
sig_entry_exit(_w, _w)
del _w


def _defined(x):
    out = ~np.isnan(x)
    if len(out):
        out[0] = False
    return out


# ---------------------------------------------------------------------------
# Signal functions
# ---------------------------------------------------------------------------

def buy_and_hold(closes, params):
    entry = np.zeros(len(closes), dtype=np.bool_)
    if len(entry):
        entry[0] = True
    return sig_entry_exit(entry, np.zeros_like(entry))


def sma_cross(closes, params):
    fast = compute_sma(closes, params.get("fast", 20))
    slow = compute_sma(closes, params.get("slow", 50))
    up, down = compute_crosses(fast, slow)
    return sig_entry_exit(up, down)


def rsi_oversold(closes, params):
    rsi = compute_rsi(closes, params.get("period", 14))
    ok = _defined(rsi)
    with np.errstate(invalid="ignore"):
        entry = ok & (rsi < params.get("buy_level", 30.0))
        exit_ = ok & (rsi > params.get("sell_level", 70.0))
    return sig_entry_exit(entry, exit_)


def macd_cross(closes, params):
    m = compute_macd(closes, params.get("fast", 12), params.get("slow", 26), params.get("signal", 9))
    up, down = compute_crosses(m.macd, m.signal)
    return sig_entry_exit(up, down)


def bollinger_bounce(closes, params):
    closes = np.asarray(closes, dtype=np.float64)
    bands = compute_bollinger_bands(closes, params.get("period", 20), params.get("mult", 2.0))
    ok = _defined(bands.upper) & _defined(bands.lower)
    with np.errstate(invalid="ignore"):
        entry = ok & (closes <= bands.lower)
        exit_ = ok & (closes >= bands.upper)
    return sig_entry_exit(entry, exit_)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

SIGNAL_FUNCTIONS = {
    "buy_and_hold": buy_and_hold,
    "sma_cross": sma_cross,
    "rsi_oversold": rsi_oversold,
    "macd_cross": macd_cross,
    "bollinger_bounce": bollinger_bounce,
}

STRATEGIES = [
    StrategyConfig("buy_and_hold", "Buy & Hold", "Buy at start, hold until end"),
    StrategyConfig("sma_cross", "SMA Cross", "Buy when fast SMA crosses above slow SMA",
                   {"fast": 20, "slow": 50}),
    StrategyConfig("rsi_oversold", "RSI Oversold", "Buy when RSI < 30, sell when RSI > 70",
                   {"period": 14, "buy_level": 30, "sell_level": 70}),
    StrategyConfig("macd_cross", "MACD Cross", "Buy on MACD bullish cross, sell on bearish cross",
                   {"fast": 12, "slow": 26, "signal": 9}),
    StrategyConfig("bollinger_bounce", "BB Bounce", "Buy at lower band, sell at upper band",
                   {"period": 20, "mult": 2}),
]

_BY_TYPE = {s.type: s for s in STRATEGIES}


def get_strategy(strategy_type: str) -> StrategyConfig:
    try:
        return _BY_TYPE[strategy_type]
    except KeyError:
        raise UnknownStrategy(strategy_type) from None


def positions(closes, config: StrategyConfig) -> np.ndarray:
    try:
        fn = SIGNAL_FUNCTIONS[config.type]
    except KeyError:
        raise UnknownStrategy(config.type) from None
    return fn(np.asarray(closes, dtype=np.float64), config.params)

"""Parameter binding — map catalog parameters onto the layers they drive.

A preset exposes a handful of global parameters (``sma_short``, ``bb_mult``,
``macd_fast`` ...). Each one names a target source; moving it rewrites the
matching argument of every layer drawn from that source family.
"""

import math
from dataclasses import dataclass

from datalab.sources import Source, family_of


class UnknownParameter(KeyError):
    """Parameter key whose indicator family has no binding."""


@dataclass(frozen=True)
class ParameterDefinition:
    key: str
    label: str
    min: float
    max: float
    step: float
    default_value: float
    target_source: Source
    unit: str | None = None

    def clamp(self, value: float) -> float:
        """Snap ``value`` onto the ``min + k*step`` grid inside ``[min, max]``."""
        if not math.isfinite(value):
            return self.default_value
        v = min(max(value, self.min), self.max)
        if self.step > 0:
            v = self.min + round((v - self.min) / self.step) * self.step
            if v > self.max:
                v -= self.step
        # step grids like 0.5 accumulate float noise
        return round(v, 10)


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------

# Single-argument families: the prefix before the first "_" is enough.
_FAMILY_KEYS = {
    "sma": "window",
    "ema": "window",
    "vol": "window",
    "volume": "window",
    "rsi": "period",
    "atr": "period",
    "adx": "period",
    "cci": "period",
    "wr": "period",
    "williams": "period",
}

# Multi-argument families: resolved by the remainder after the prefix.
_SUFFIX_KEYS = {
    "bb": {"period": "window", "window": "window", "mult": "multiplier"},
    "macd": {"fast": "fast", "slow": "slow", "signal": "signal", "signal_period": "signal"},
    "stoch": {"k": "k_period", "d": "d_period", "smooth": "smooth"},
}

_EXACT_KEYS = {
    "rsi_sma_window": "window",
}

LAYER_PARAM_NAMES = frozenset(
    {"window", "period", "multiplier", "fast", "slow", "signal", "k_period", "d_period", "smooth"}
)


def infer_layer_param_key(parameter_key: str) -> str:
    """Resolve a catalog parameter key to the layer argument it sets.

    >>> infer_layer_param_key("rsi_period")
    'period'
    >>> infer_layer_param_key("bb_mult")
    'multiplier'
    """
    if parameter_key in _EXACT_KEYS:
        return _EXACT_KEYS[parameter_key]
    family, _, rest = parameter_key.partition("_")
    if family in _SUFFIX_KEYS:
        try:
            return _SUFFIX_KEYS[family][rest]
        except KeyError:
            raise UnknownParameter(parameter_key) from None
    try:
        return _FAMILY_KEYS[family]
    except KeyError:
        raise UnknownParameter(parameter_key) from None


def infer_target_sources(definition: ParameterDefinition) -> frozenset[Source]:
    """Sources whose layers a change to ``definition`` may rewrite."""
    return family_of(Source(definition.target_source))

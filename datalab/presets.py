"""Preset catalog — curated layer stacks with their tunable parameters.

To add a preset, append to PRESETS using ``layer(...)`` for each overlay and
``param(...)`` for each slider. Layer params use the argument names from
``datalab.params.LAYER_PARAM_NAMES``.
"""

from dataclasses import dataclass, field

from datalab.params import ParameterDefinition
from datalab.sources import Source

S = Source


class UnknownPreset(KeyError):
    """No preset with the given id."""


@dataclass(frozen=True)
class LayerSpec:
    label: str
    source: Source
    chart_type: str
    y_axis: str
    color: str
    grid_index: int
    visible: bool = True
    params: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    description: str
    layers: tuple[LayerSpec, ...]
    parameter_defs: tuple[ParameterDefinition, ...] = ()
    default_days: int = 90

    def defaults(self) -> dict[str, float]:
        return {pd.key: pd.default_value for pd in self.parameter_defs}


def layer(label, source, color=None, chart_type=None, y_axis=None, grid_index=None,
          visible=True, **params) -> LayerSpec:
    """Layer spec with display fields defaulted from the source's style."""
    style = Source(source).style
    return LayerSpec(
        label=label,
        source=Source(source),
        chart_type=chart_type or style.chart_type,
        y_axis=y_axis or style.y_axis,
        color=color or style.color,
        grid_index=style.grid_index if grid_index is None else grid_index,
        visible=visible,
        params={k: float(v) for k, v in params.items()},
    )


def param(key, label, min, max, step, default, target, unit=None) -> ParameterDefinition:
    return ParameterDefinition(key, label, float(min), float(max), float(step),
                               float(default), Source(target), unit)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

PRESETS = [

    # ---- Trend & Entry ----
    Preset(
        id="confluence-zones",
        name="Confluence Zones",
        description="RSI oversold + price at MA support + volume spike = high-probability entry",
        parameter_defs=(
            param("sma_short", "SMA Short", 5, 50, 1, 20, S.SMA),
            param("sma_mid", "SMA Mid", 20, 100, 5, 50, S.SMA),
            param("sma_long", "SMA Long", 50, 300, 10, 200, S.SMA),
            param("rsi_period", "RSI Period", 5, 30, 1, 14, S.RSI),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("SMA 20", S.SMA, "#f59e0b", window=20),
            layer("SMA 50", S.SMA, "#60a5fa", window=50),
            layer("SMA 200", S.SMA, "#ef4444", window=200),
            layer("RSI", S.RSI, period=14),
            layer("Volume", S.VOLUME),
        ),
    ),
    Preset(
        id="trend-strength",
        name="Trend Strength",
        description="EMA alignment + Stochastic crossover = strong trend confirmation",
        parameter_defs=(
            param("stoch_k", "Stoch K", 5, 30, 1, 14, S.STOCHASTIC_K),
            param("stoch_d", "Stoch D", 1, 10, 1, 3, S.STOCHASTIC_D),
            param("stoch_smooth", "Smooth", 1, 5, 1, 3, S.STOCHASTIC_K),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("EMA 12", S.EMA, "#f59e0b", window=12),
            layer("EMA 26", S.EMA, "#ef4444", window=26),
            layer("Stochastic %K", S.STOCHASTIC_K, k_period=14, d_period=3, smooth=3),
            layer("Stochastic %D", S.STOCHASTIC_D, k_period=14, d_period=3, smooth=3),
            layer("Volume", S.VOLUME),
        ),
    ),
    Preset(
        id="mean-reversion",
        name="Mean Reversion",
        description="BB touch + RSI extreme + Stochastic confirm = reversion to mean entry",
        parameter_defs=(
            param("bb_period", "BB Period", 10, 50, 1, 20, S.BOLLINGER_UPPER),
            param("bb_mult", "BB Mult", 1, 4, 0.5, 2, S.BOLLINGER_UPPER),
            param("rsi_period", "RSI Period", 5, 30, 1, 14, S.RSI),
            param("stoch_k", "Stoch K", 5, 30, 1, 14, S.STOCHASTIC_K),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("BB Upper", S.BOLLINGER_UPPER, window=20, multiplier=2),
            layer("SMA 20", S.SMA, "#60a5fa", window=20),
            layer("BB Lower", S.BOLLINGER_LOWER, window=20, multiplier=2),
            layer("RSI", S.RSI, period=14),
            layer("Stochastic %K", S.STOCHASTIC_K, k_period=14, d_period=3, smooth=3),
        ),
    ),
    Preset(
        id="multi-timeframe",
        name="Multi-Timeframe",
        description="EMA 9 + SMA 21 + SMA 50 alignment + RSI + ATR = trend confirmation",
        default_days=180,
        parameter_defs=(
            param("ema_fast", "EMA Fast", 5, 20, 1, 9, S.EMA),
            param("sma_mid", "SMA Mid", 15, 50, 1, 21, S.SMA),
            param("sma_slow", "SMA Slow", 30, 100, 5, 50, S.SMA),
            param("rsi_period", "RSI Period", 5, 30, 1, 14, S.RSI),
            param("atr_period", "ATR Period", 5, 30, 1, 14, S.ATR),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("EMA 9", S.EMA, "#f59e0b", window=9),
            layer("SMA 21", S.SMA, "#60a5fa", window=21),
            layer("SMA 50", S.SMA, "#ef4444", window=50),
            layer("RSI", S.RSI, period=14),
            layer("ATR", S.ATR, period=14),
        ),
    ),

    # ---- Momentum & Volatility ----
    Preset(
        id="momentum-divergence",
        name="Momentum Divergence",
        description="Price at high but MACD declining = reversal warning",
        parameter_defs=(
            param("macd_fast", "MACD Fast", 5, 20, 1, 12, S.MACD),
            param("macd_slow", "MACD Slow", 15, 50, 1, 26, S.MACD),
            param("macd_signal_period", "Signal", 3, 15, 1, 9, S.MACD),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("MACD", S.MACD, fast=12, slow=26, signal=9),
            layer("Signal", S.MACD_SIGNAL, fast=12, slow=26, signal=9),
            layer("Histogram", S.MACD_HISTOGRAM, fast=12, slow=26, signal=9),
        ),
    ),
    Preset(
        id="volatility-squeeze",
        name="Volatility Squeeze",
        description="Bollinger Band squeeze + low ATR = explosive move imminent",
        parameter_defs=(
            param("bb_period", "BB Period", 5, 50, 1, 20, S.BOLLINGER_UPPER),
            param("bb_mult", "BB Mult", 1, 4, 0.5, 2, S.BOLLINGER_UPPER),
            param("atr_period", "ATR Period", 5, 30, 1, 14, S.ATR),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("BB Upper", S.BOLLINGER_UPPER, window=20, multiplier=2),
            layer("SMA 20", S.SMA, "#60a5fa", window=20),
            layer("BB Lower", S.BOLLINGER_LOWER, window=20, multiplier=2),
            layer("ATR", S.ATR, period=14),
            layer("Volume", S.VOLUME),
        ),
    ),
    Preset(
        id="volume-profile",
        name="Volume Profile",
        description="Volume ratio vs average + daily returns = accumulation or exhaustion",
        parameter_defs=(
            param("vol_sma", "Vol SMA", 5, 50, 1, 20, S.VOLUME_SMA),
            param("ema_window", "EMA", 5, 50, 1, 20, S.EMA),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("EMA 20", S.EMA, "#f59e0b", window=20),
            layer("Volume", S.VOLUME),
            layer("Vol SMA 20", S.VOLUME_SMA, window=20),
            layer("Volume Ratio", S.VOLUME_RATIO, window=20),
            layer("Daily Return %", S.DAILY_RETURN),
        ),
    ),
    Preset(
        id="risk-regime",
        name="Risk Regime",
        description="Rolling volatility + drawdown depth = risk-on vs risk-off regime",
        default_days=365,
        parameter_defs=(
            param("vol_window", "Vol Window", 7, 90, 7, 30, S.ROLLING_VOLATILITY),
            param("bb_period", "BB Period", 10, 50, 5, 20, S.BB_WIDTH),
        ),
        layers=(
            layer("Price", S.PRICE),
            layer("SMA 50", S.SMA, window=50),
            layer("Drawdown %", S.DRAWDOWN, grid_index=0),
            layer("Rolling Volatility", S.ROLLING_VOLATILITY, window=30),
            layer("BB Width %", S.BB_WIDTH, "#a78bfa", window=20, multiplier=2),
        ),
    ),

    # ---- Volume & Flow ----
    Preset(
        id="smart-money",
        name="Smart Money Tracker",
        description="Volume accumulation under a flat price SMA",
        default_days=30,
        parameter_defs=(
            param("sma_window", "Price SMA", 5, 50, 1, 7, S.SMA),
        ),
        layers=(
            layer("Price", S.PRICE),
            layer("Price SMA 7", S.SMA, window=7),
            layer("Volume", S.VOLUME),
        ),
    ),
    Preset(
        id="flow-confirmation",
        name="Flow Confirmation",
        description="VWAP + OBV trend + ADX strength = volume-backed trend",
        parameter_defs=(
            param("adx_period", "ADX Period", 5, 30, 1, 14, S.ADX),
            param("rsi_sma_window", "RSI Smoothing", 3, 30, 1, 10, S.RSI_SMA),
        ),
        layers=(
            layer("Price (OHLC)", S.OHLC),
            layer("VWAP", S.VWAP),
            layer("OBV", S.OBV),
            layer("ADX", S.ADX, period=14),
            layer("RSI Smoothed", S.RSI_SMA, period=14, window=10),
        ),
    ),
]

PRESET_CATEGORIES = {
    "Trend & Entry": ("confluence-zones", "trend-strength", "mean-reversion", "multi-timeframe"),
    "Momentum & Volatility": ("momentum-divergence", "volatility-squeeze", "volume-profile", "risk-regime"),
    "Volume & Flow": ("smart-money", "flow-confirmation"),
}

_BY_ID = {p.id: p for p in PRESETS}


def get_preset(preset_id: str) -> Preset:
    try:
        return _BY_ID[preset_id]
    except KeyError:
        raise UnknownPreset(preset_id) from None

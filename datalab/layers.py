"""Layer recalculation — a lab's state as a value, rebuilt in full on demand.

Every function here takes a :class:`LabState` and returns a new one; nothing
is mutated. ``recalculate_layers`` dispatches each layer on its
:class:`~datalab.sources.Source` to the indicator library or the formula
engine and stores the outputs keyed by layer id.
Each pass also rescans the window for divergences and anomalies.

A layer's numeric arguments resolve in order: the layer's own ``params``,
then the global parameter that drives that argument, then a fixed default.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Mapping

import numpy as np

from datalab import indicators as ind
from datalab.anomalies import Anomaly, detect_anomalies
from datalab.config import get_settings
from datalab.data import RawSeries
from datalab.divergence import Divergence, detect_divergences
from datalab.formula import FormulaError, compile_formula, evaluate_formula
from datalab.indicators import InvalidParameter
from datalab.params import (
    ParameterDefinition,
    UnknownParameter,
    infer_layer_param_key,
    infer_target_sources,
)
from datalab.presets import get_preset
from datalab.sources import Source

logger = logging.getLogger(__name__)


class UnknownLayer(KeyError):
    """No layer with the given id in the current state."""


@dataclass(frozen=True)
class Layer:
    id: str
    label: str
    source: Source
    chart_type: str
    y_axis: str
    color: str
    visible: bool = True
    grid_index: int = 0
    params: Mapping[str, float] = field(default_factory=dict)
    formula: str | None = None


@dataclass(frozen=True)
class WhatIf:
    key: str
    delta_pct: float
    base_value: float


@dataclass(frozen=True, eq=False)
class LabState:
    raw: RawSeries | None = None
    layers: tuple[Layer, ...] = ()
    parameters: Mapping[str, float] = field(default_factory=dict)
    parameter_defs: tuple[ParameterDefinition, ...] = ()
    preset_id: str | None = None
    outputs: Mapping[str, np.ndarray] = field(default_factory=dict)
    what_if: WhatIf | None = None
    next_id: int = 1
    divergences: tuple[Divergence, ...] = ()
    anomalies: tuple[Anomaly, ...] = ()

    def layer(self, layer_id: str) -> Layer:
        for lyr in self.layers:
            if lyr.id == layer_id:
                return lyr
        raise UnknownLayer(layer_id)

    def definition(self, key: str) -> ParameterDefinition:
        for pd in self.parameter_defs:
            if pd.key == key:
                return pd
        raise UnknownParameter(key)

    def parameter(self, key: str) -> float:
        """Current global value, or the definition's default."""
        if key in self.parameters:
            return self.parameters[key]
        return self.definition(key).default_value


# ---------------------------------------------------------------------------
# Per-source computation
# ---------------------------------------------------------------------------

def _arg(layer: Layer, parameters: Mapping[str, float], name: str, global_key: str, default):
    if name in layer.params:
        return layer.params[name]
    return parameters.get(global_key, default)


def _compute(layer: Layer, raw: RawSeries, parameters: Mapping[str, float]) -> np.ndarray:
    def arg(name, global_key, default):
        return _arg(layer, parameters, name, global_key, default)

    close = raw.close
    match layer.source:
        case Source.PRICE | Source.OHLC:
            return np.array(close)
        case Source.VOLUME:
            return np.array(raw.volume_or_nan())
        case Source.SMA:
            return ind.compute_sma(close, arg("window", "sma_short", 20))
        case Source.EMA:
            return ind.compute_ema(close, arg("window", "ema_window", 20))
        case Source.RSI:
            return ind.compute_rsi(close, arg("period", "rsi_period", 14))
        case Source.MACD | Source.MACD_SIGNAL | Source.MACD_HISTOGRAM:
            m = ind.compute_macd(
                close,
                arg("fast", "macd_fast", 12),
                arg("slow", "macd_slow", 26),
                arg("signal", "macd_signal_period", 9),
            )
            return {Source.MACD: m.macd, Source.MACD_SIGNAL: m.signal,
                    Source.MACD_HISTOGRAM: m.histogram}[layer.source]
        case Source.BOLLINGER_UPPER | Source.BOLLINGER_MIDDLE | Source.BOLLINGER_LOWER:
            b = ind.compute_bollinger_bands(
                close, arg("window", "bb_period", 20), arg("multiplier", "bb_mult", 2.0))
            return {Source.BOLLINGER_UPPER: b.upper, Source.BOLLINGER_MIDDLE: b.middle,
                    Source.BOLLINGER_LOWER: b.lower}[layer.source]
        case Source.BB_WIDTH:
            return ind.compute_bb_width(
                close, arg("window", "bb_period", 20), arg("multiplier", "bb_mult", 2.0))
        case Source.STOCHASTIC_K | Source.STOCHASTIC_D:
            st = ind.compute_stochastic(
                raw.high_or_close(), raw.low_or_close(), close,
                arg("k_period", "stoch_k", 14),
                arg("d_period", "stoch_d", 3),
                arg("smooth", "stoch_smooth", 3),
            )
            return st.k if layer.source is Source.STOCHASTIC_K else st.d
        case Source.ATR:
            return ind.compute_atr(raw.high_or_close(), raw.low_or_close(), close,
                                   arg("period", "atr_period", 14))
        case Source.VOLUME_SMA:
            return ind.compute_sma(raw.volume_or_nan(), arg("window", "vol_sma", 20))
        case Source.VOLUME_RATIO:
            return ind.compute_volume_ratio(raw.volume_or_nan(), arg("window", "vol_sma", 20))
        case Source.DAILY_RETURN:
            return ind.compute_daily_return(close)
        case Source.DRAWDOWN:
            return ind.compute_drawdown(close)
        case Source.ROLLING_VOLATILITY:
            return ind.compute_rolling_volatility(
                close, arg("window", "vol_window", 30),
                periods_per_year=get_settings().volatility_periods_per_year)
        case Source.RSI_SMA:
            return ind.compute_rsi_sma(
                close, arg("period", "rsi_period", 14), arg("window", "rsi_sma_window", 10))
        case Source.VWAP:
            return ind.compute_vwap(raw.high_or_close(), raw.low_or_close(), close,
                                    raw.volume_or_nan())
        case Source.OBV:
            return ind.compute_obv(close, raw.volume_or_nan())
        case Source.ADX:
            return ind.compute_adx(raw.high_or_close(), raw.low_or_close(), close,
                                   arg("period", "adx_period", 14))
        case Source.WILLIAMS_R:
            return ind.compute_williams_r(raw.high_or_close(), raw.low_or_close(), close,
                                          arg("period", "wr_period", 14))
        case Source.CCI:
            return ind.compute_cci(raw.high_or_close(), raw.low_or_close(), close,
                                   arg("period", "cci_period", 20))
        case Source.FORMULA:
            if not layer.formula:
                raise FormulaError("Formula is empty")
            return evaluate_formula(layer.formula, raw)
    raise ValueError(f"unhandled layer source {layer.source!r}")


def _divergences(raw: RawSeries, parameters: Mapping[str, float]) -> tuple[Divergence, ...]:
    """Price against RSI and the MACD line, under the current global parameters."""
    close = raw.close
    try:
        rsi = ind.compute_rsi(close, parameters.get("rsi_period", 14))
        macd = ind.compute_macd(
            close,
            parameters.get("macd_fast", 12),
            parameters.get("macd_slow", 26),
            parameters.get("macd_signal_period", 9),
        )
    except InvalidParameter as exc:
        logger.warning("divergence scan skipped: %s", exc)
        return ()
    return tuple(detect_divergences(close, rsi, macd.macd))


def recalculate_layers(state: LabState) -> LabState:
    """Rebuild every layer's output from ``state.raw``.

    A layer that cannot be computed gets an all-NaN series; the others are
    unaffected. Calling this twice on the same inputs gives equal outputs.
    """
    if state.raw is None:
        return replace(state, outputs={}, divergences=(), anomalies=())

    raw = state.raw
    n = len(raw)
    outputs = {}
    for lyr in state.layers:
        try:
            outputs[lyr.id] = _compute(lyr, raw, state.parameters)
        except (InvalidParameter, FormulaError) as exc:
            logger.warning("layer %s (%s) failed, emitting NaN: %s", lyr.id, lyr.source.value, exc)
            outputs[lyr.id] = np.full(n, np.nan)
    logger.debug("recalculated %d layer(s) over %d bar(s)", len(outputs), n)
    return replace(
        state,
        outputs=outputs,
        divergences=_divergences(raw, state.parameters),
        anomalies=tuple(detect_anomalies(raw)),
    )


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

def _new_layer(state: LabState, **fields) -> tuple[LabState, Layer]:
    lyr = Layer(id=f"layer-{state.next_id}", **fields)
    return replace(state, layers=state.layers + (lyr,), next_id=state.next_id + 1), lyr


def load_preset(state: LabState, preset_id: str) -> LabState:
    """Replace layers and parameters with the preset's; keeps the raw series."""
    preset = get_preset(preset_id)
    state = replace(
        state,
        layers=(),
        parameters=preset.defaults(),
        parameter_defs=preset.parameter_defs,
        preset_id=preset.id,
        what_if=None,
    )
    for spec in preset.layers:
        state, _ = _new_layer(
            state,
            label=spec.label,
            source=spec.source,
            chart_type=spec.chart_type,
            y_axis=spec.y_axis,
            color=spec.color,
            visible=spec.visible,
            grid_index=spec.grid_index,
            params=dict(spec.params),
        )
    logger.info("loaded preset %s (%d layers)", preset.id, len(state.layers))
    return recalculate_layers(state)


def reset_parameters(state: LabState) -> LabState:
    """Rebuild the active preset from scratch, or clear parameters if none."""
    if state.preset_id is not None:
        return load_preset(state, state.preset_id)
    return recalculate_layers(replace(state, parameters={}, what_if=None))


def add_layer(state: LabState, source, label=None, params=None, **display) -> LabState:
    src = Source(source)
    if src is Source.FORMULA:
        raise ValueError("use add_formula_layer for formula layers")
    style = src.style
    state, _ = _new_layer(
        state,
        label=label or style.label,
        source=src,
        chart_type=display.get("chart_type", style.chart_type),
        y_axis=display.get("y_axis", style.y_axis),
        color=display.get("color", style.color),
        visible=display.get("visible", True),
        grid_index=display.get("grid_index", style.grid_index),
        params={k: float(v) for k, v in (params or {}).items()},
    )
    return recalculate_layers(state)


def add_formula_layer(state: LabState, formula: str, label: str | None = None) -> LabState:
    """Append a formula layer. Raises FormulaError if ``formula`` does not parse."""
    compile_formula(formula)
    style = Source.FORMULA.style
    state, _ = _new_layer(
        state,
        label=label or formula,
        source=Source.FORMULA,
        chart_type=style.chart_type,
        y_axis=style.y_axis,
        color=style.color,
        grid_index=style.grid_index,
        formula=formula,
    )
    return recalculate_layers(state)


def remove_layer(state: LabState, layer_id: str) -> LabState:
    state.layer(layer_id)
    layers = tuple(lyr for lyr in state.layers if lyr.id != layer_id)
    return recalculate_layers(replace(state, layers=layers))


def toggle_layer(state: LabState, layer_id: str) -> LabState:
    """Flip visibility. Outputs are kept as they are."""
    target = state.layer(layer_id)
    flipped = replace(target, visible=not target.visible)
    layers = tuple(flipped if lyr.id == layer_id else lyr for lyr in state.layers)
    return replace(state, layers=layers)


def set_layer_params(state: LabState, layer_id: str, **params) -> LabState:
    """Retune one layer's own arguments, detaching them from the globals."""
    target = state.layer(layer_id)
    tuned = replace(target, params={**target.params, **{k: float(v) for k, v in params.items()}})
    layers = tuple(tuned if lyr.id == layer_id else lyr for lyr in state.layers)
    return recalculate_layers(replace(state, layers=layers))


def set_raw_series(state: LabState, raw: RawSeries) -> LabState:
    return recalculate_layers(replace(state, raw=raw))


def set_parameter(state: LabState, key: str, value: float) -> LabState:
    """Move a global parameter and the layers still bound to its old value.

    Layers in the parameter's target family whose argument was retuned away
    from the global value keep their own setting. Outputs are NOT recomputed;
    callers schedule that (see :class:`datalab.session.LabSession`).
    """
    definition = state.definition(key)
    new = definition.clamp(float(value))
    previous = state.parameter(key)
    param_key = infer_layer_param_key(key)
    targets = infer_target_sources(definition)

    layers = []
    for lyr in state.layers:
        if lyr.source in targets and lyr.params.get(param_key) == previous:
            lyr = replace(lyr, params={**lyr.params, param_key: new})
        layers.append(lyr)
    return replace(state, parameters={**state.parameters, key: new}, layers=tuple(layers))


def apply_what_if(state: LabState, key: str, delta_pct: float) -> LabState:
    """Simulate moving ``key`` by ``delta_pct`` percent and recompute.

    The returned state remembers the base value so :func:`clear_what_if` can
    restore it. A what-if already in effect is cleared first.
    """
    if state.what_if is not None:
        state = clear_what_if(state)
    base = state.parameter(key)
    moved = set_parameter(state, key, base * (1.0 + delta_pct / 100.0))
    return recalculate_layers(replace(moved, what_if=WhatIf(key, float(delta_pct), base)))


def clear_what_if(state: LabState) -> LabState:
    if state.what_if is None:
        return state
    restored = set_parameter(state, state.what_if.key, state.what_if.base_value)
    return recalculate_layers(replace(restored, what_if=None))

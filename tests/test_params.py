"""Tests for parameter binding and the preset catalog."""

import pytest

from datalab.params import (
    LAYER_PARAM_NAMES,
    ParameterDefinition,
    UnknownParameter,
    infer_layer_param_key,
    infer_target_sources,
)
from datalab.presets import PRESET_CATEGORIES, PRESETS, UnknownPreset, get_preset
from datalab.sources import Source


class TestInferLayerParamKey:
    """Catalog keys resolve to the layer argument they set."""

    @pytest.mark.parametrize("key, expected", [
        ("sma_short", "window"),
        ("sma_window", "window"),
        ("ema_fast", "window"),
        ("ema_window", "window"),
        ("rsi_period", "period"),
        ("atr_period", "period"),
        ("adx_period", "period"),
        ("cci_period", "period"),
        ("wr_period", "period"),
        ("vol_sma", "window"),
        ("vol_window", "window"),
        ("bb_period", "window"),
        ("bb_mult", "multiplier"),
        ("macd_fast", "fast"),
        ("macd_slow", "slow"),
        ("macd_signal_period", "signal"),
        ("stoch_k", "k_period"),
        ("stoch_d", "d_period"),
        ("stoch_smooth", "smooth"),
        ("rsi_sma_window", "window"),
    ])
    def test_known(self, key, expected):
        assert infer_layer_param_key(key) == expected

    @pytest.mark.parametrize("key", ["foo_bar", "bb_width", "macd", "stoch_x", ""])
    def test_unknown(self, key):
        with pytest.raises(UnknownParameter):
            infer_layer_param_key(key)

    def test_unknown_is_key_error(self):
        with pytest.raises(KeyError):
            infer_layer_param_key("nope")


class TestTargetSources:
    """A parameter reaches every source of its indicator family."""

    def _definition(self, target):
        return ParameterDefinition("k", "K", 1, 10, 1, 5, target)

    def test_single_source(self):
        assert infer_target_sources(self._definition(Source.SMA)) == {Source.SMA}

    def test_bollinger_family(self):
        assert infer_target_sources(self._definition(Source.BOLLINGER_UPPER)) == {
            Source.BOLLINGER_UPPER, Source.BOLLINGER_MIDDLE,
            Source.BOLLINGER_LOWER, Source.BB_WIDTH,
        }

    def test_macd_family(self):
        assert infer_target_sources(self._definition(Source.MACD_SIGNAL)) == {
            Source.MACD, Source.MACD_SIGNAL, Source.MACD_HISTOGRAM,
        }

    def test_accepts_plain_string(self):
        assert infer_target_sources(self._definition("stochastic_d")) == {
            Source.STOCHASTIC_K, Source.STOCHASTIC_D,
        }


class TestClamp:
    """Values snap onto the step grid inside [min, max]."""

    @pytest.fixture
    def mult(self):
        return ParameterDefinition("bb_mult", "BB Mult", 1.0, 4.0, 0.5, 2.0, Source.BOLLINGER_UPPER)

    @pytest.mark.parametrize("value, expected", [
        (2.3, 2.5),
        (2.2, 2.0),
        (10.0, 4.0),
        (0.0, 1.0),
        (-5.0, 1.0),
        (3.5, 3.5),
    ])
    def test_grid(self, mult, value, expected):
        assert mult.clamp(value) == expected

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_gives_default(self, mult, value):
        assert mult.clamp(value) == 2.0

    def test_grid_anchored_at_min(self):
        # 7, 14, 21, 28, 35 ...
        d = ParameterDefinition("vol_window", "Vol", 7, 90, 7, 30, Source.ROLLING_VOLATILITY)
        assert d.clamp(30) == 28
        assert d.clamp(32) == 35
        assert d.clamp(90) == 84

    def test_zero_step_only_bounds(self):
        d = ParameterDefinition("x", "X", 0, 1, 0, 0.5, Source.SMA)
        assert d.clamp(0.1234) == pytest.approx(0.1234)


class TestPresetCatalog:
    """Every preset is internally consistent."""

    def test_ids_unique(self):
        ids = [p.id for p in PRESETS]
        assert len(ids) == len(set(ids))

    def test_categories_cover_catalog(self):
        listed = [pid for ids in PRESET_CATEGORIES.values() for pid in ids]
        assert sorted(listed) == sorted(p.id for p in PRESETS)

    def test_get_preset(self):
        assert get_preset("confluence-zones").name == "Confluence Zones"
        with pytest.raises(UnknownPreset):
            get_preset("does-not-exist")

    @pytest.mark.parametrize("preset", PRESETS, ids=lambda p: p.id)
    def test_parameter_keys_resolve(self, preset):
        for pd in preset.parameter_defs:
            assert infer_layer_param_key(pd.key) in LAYER_PARAM_NAMES
            assert pd.min <= pd.default_value <= pd.max

    @pytest.mark.parametrize("preset", PRESETS, ids=lambda p: p.id)
    def test_layer_params_are_known(self, preset):
        assert preset.layers
        for spec in preset.layers:
            assert set(spec.params) <= LAYER_PARAM_NAMES
            assert spec.source is not Source.FORMULA

    def test_defaults(self):
        assert get_preset("confluence-zones").defaults() == {
            "sma_short": 20.0, "sma_mid": 50.0, "sma_long": 200.0, "rsi_period": 14.0,
        }

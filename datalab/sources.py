"""Layer sources — the closed set of series a layer can draw.

Each member carries its display defaults (label, chart type, axis, grid row,
colour) so that ``add_layer`` can build a layer from a bare source tag.
"""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class SourceStyle:
    label: str
    chart_type: str   # line | bar | area | candlestick
    y_axis: str       # left | right
    grid_index: int   # 0 = main chart, 1 = sub-grid
    color: str


class Source(str, Enum):
    PRICE = "price"
    VOLUME = "volume"
    OHLC = "ohlc"
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    MACD_SIGNAL = "macd_signal"
    MACD_HISTOGRAM = "macd_histogram"
    BOLLINGER_UPPER = "bollinger_upper"
    BOLLINGER_MIDDLE = "bollinger_middle"
    BOLLINGER_LOWER = "bollinger_lower"
    STOCHASTIC_K = "stochastic_k"
    STOCHASTIC_D = "stochastic_d"
    ATR = "atr"
    BB_WIDTH = "bb_width"
    VOLUME_SMA = "volume_sma"
    VOLUME_RATIO = "volume_ratio"
    DAILY_RETURN = "daily_return"
    DRAWDOWN = "drawdown"
    ROLLING_VOLATILITY = "rolling_volatility"
    RSI_SMA = "rsi_sma"
    VWAP = "vwap"
    OBV = "obv"
    ADX = "adx"
    WILLIAMS_R = "williams_r"
    CCI = "cci"
    FORMULA = "formula"

    @property
    def style(self) -> SourceStyle:
        return SOURCE_STYLES[self]


_MAIN, _SUB = 0, 1

SOURCE_STYLES = {
    Source.PRICE:              SourceStyle("Price",                "line",        "left",  _MAIN, "#34d399"),
    Source.VOLUME:             SourceStyle("Volume",               "bar",         "right", _SUB,  "#60a5fa"),
    Source.OHLC:               SourceStyle("Candlestick (OHLC)",   "candlestick", "left",  _MAIN, "#34d399"),
    Source.SMA:                SourceStyle("SMA (Moving Average)", "line",        "left",  _MAIN, "#f59e0b"),
    Source.EMA:                SourceStyle("EMA (Exponential MA)", "line",        "left",  _MAIN, "#fb923c"),
    Source.RSI:                SourceStyle("RSI",                  "line",        "right", _SUB,  "#a78bfa"),
    Source.MACD:               SourceStyle("MACD Line",            "line",        "right", _SUB,  "#ec4899"),
    Source.MACD_SIGNAL:        SourceStyle("MACD Signal",          "line",        "right", _SUB,  "#f97316"),
    Source.MACD_HISTOGRAM:     SourceStyle("MACD Histogram",       "bar",         "right", _SUB,  "#6366f1"),
    Source.BOLLINGER_UPPER:    SourceStyle("Bollinger Upper",      "line",        "left",  _MAIN, "#f59e0b"),
    Source.BOLLINGER_MIDDLE:   SourceStyle("Bollinger Middle",     "line",        "left",  _MAIN, "#60a5fa"),
    Source.BOLLINGER_LOWER:    SourceStyle("Bollinger Lower",      "line",        "left",  _MAIN, "#f59e0b"),
    Source.STOCHASTIC_K:       SourceStyle("Stochastic %K",        "line",        "right", _SUB,  "#06b6d4"),
    Source.STOCHASTIC_D:       SourceStyle("Stochastic %D",        "line",        "right", _SUB,  "#f472b6"),
    Source.ATR:                SourceStyle("ATR (Avg True Range)", "line",        "right", _SUB,  "#a3e635"),
    Source.BB_WIDTH:           SourceStyle("BB Width %",           "line",        "right", _SUB,  "#f59e0b"),
    Source.VOLUME_SMA:         SourceStyle("Volume SMA",           "line",        "right", _SUB,  "#38bdf8"),
    Source.VOLUME_RATIO:       SourceStyle("Volume Ratio",         "bar",         "right", _SUB,  "#c084fc"),
    Source.DAILY_RETURN:       SourceStyle("Daily Return %",       "bar",         "right", _SUB,  "#fb7185"),
    Source.DRAWDOWN:           SourceStyle("Drawdown %",           "area",        "right", _SUB,  "#ef4444"),
    Source.ROLLING_VOLATILITY: SourceStyle("Volatility (Ann.)",    "line",        "right", _SUB,  "#f97316"),
    Source.RSI_SMA:            SourceStyle("RSI Smoothed",         "line",        "right", _SUB,  "#d946ef"),
    Source.VWAP:               SourceStyle("VWAP",                 "line",        "left",  _MAIN, "#e879f9"),
    Source.OBV:                SourceStyle("OBV (On-Balance Volume)", "line",     "right", _SUB,  "#38bdf8"),
    Source.ADX:                SourceStyle("ADX (Trend Strength)", "line",        "right", _SUB,  "#fb923c"),
    Source.WILLIAMS_R:         SourceStyle("Williams %R",          "line",        "right", _SUB,  "#c084fc"),
    Source.CCI:                SourceStyle("CCI",                  "line",        "right", _SUB,  "#fbbf24"),
    Source.FORMULA:            SourceStyle("Formula",              "line",        "right", _SUB,  "#e5e7eb"),
}

# Sources computed together from one indicator call; a parameter aimed at any
# member reaches all of them.
SOURCE_FAMILIES = (
    frozenset({Source.MACD, Source.MACD_SIGNAL, Source.MACD_HISTOGRAM}),
    frozenset({Source.BOLLINGER_UPPER, Source.BOLLINGER_MIDDLE,
               Source.BOLLINGER_LOWER, Source.BB_WIDTH}),
    frozenset({Source.STOCHASTIC_K, Source.STOCHASTIC_D}),
    frozenset({Source.VOLUME_SMA, Source.VOLUME_RATIO}),
    frozenset({Source.RSI, Source.RSI_SMA}),
)


def family_of(source: Source) -> frozenset[Source]:
    for family in SOURCE_FAMILIES:
        if source in family:
            return family
    return frozenset({source})

"""Backtest engine — walk per-bar positions, record trades, score the run.

Long-only, no fees or slippage. Equity starts at 100 and compounds once per
closed trade, stepping on the exit bar; between exits it is flat.
"""

import logging
import math
from dataclasses import dataclass

import numba as nb
import numpy as np

from datalab.config import get_settings
from datalab.strategies import StrategyConfig, positions

logger = logging.getLogger(__name__)

START_EQUITY = 100.0


@dataclass(frozen=True)
class Trade:
    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    return_pct: float
    side: str = "long"


@dataclass(frozen=True)
class BacktestResult:
    strategy: str
    trades: tuple[Trade, ...]
    equity_curve: tuple[float, ...]
    total_return: float
    max_drawdown: float
    sharpe_ratio: float
    win_rate: float
    avg_win: float
    avg_loss: float

    @property
    def num_trades(self) -> int:
        return len(self.trades)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------

@nb.njit(cache=True, error_model="numpy")
def _walk(close, pos):
    """Two-state walk. Returns (entry_idx, exit_idx, equity)."""
    n = len(close)
    entries = np.empty(n, dtype=np.int64)
    exits = np.empty(n, dtype=np.int64)
    equity = np.empty(n, dtype=np.float64)
    level = 100.0
    k = 0
    in_pos = False
    entry_i = 0
    for i in range(n):
        if not in_pos:
            if pos[i] == 1.0:
                in_pos = True
                entry_i = i
        elif pos[i] == 0.0 or i == n - 1:
            level *= close[i] / close[entry_i]
            entries[k] = entry_i
            exits[k] = i
            k += 1
            in_pos = False
        equity[i] = level
    return entries[:k], exits[:k], equity


@nb.njit(cache=True, error_model="numpy")
def _max_drawdown_pct(equity):
    peak = equity[0] if len(equity) else 0.0
    worst = 0.0
    for v in equity:
        if v > peak:
            peak = v
        if peak > 0.0:
            dd = (peak - v) / peak
            if dd > worst:
                worst = dd
    return worst * 100.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _stats(returns: np.ndarray):
    n = len(returns)
    if n == 0:
        return 0.0, 0.0, 0.0, 0.0
    wins = returns[returns > 0.0]
    losses = returns[returns <= 0.0]
    win_rate = len(wins) / n * 100.0
    avg_win = float(wins.mean()) if len(wins) else 0.0
    avg_loss = float(losses.mean()) if len(losses) else 0.0
    sharpe = 0.0
    if n >= 2:
        sd = float(np.std(returns, ddof=1))
        if sd > 0.0 and math.isfinite(sd):
            sharpe = float(returns.mean()) / sd
    return sharpe, win_rate, avg_win, avg_loss


def backtest_positions(closes, pos, strategy: str = "custom") -> BacktestResult:
    """Score an arbitrary 0/1 position array against ``closes``."""
    close = np.ascontiguousarray(closes, dtype=np.float64)
    pos = np.ascontiguousarray(pos, dtype=np.float64)
    if len(pos) != len(close):
        raise ValueError(f"positions length {len(pos)} != closes length {len(close)}")

    entries, exits, equity = _walk(close, pos)
    trades = tuple(
        Trade(
            entry_index=int(e),
            exit_index=int(x),
            entry_price=float(close[e]),
            exit_price=float(close[x]),
            return_pct=(float(close[x]) / float(close[e]) - 1.0) * 100.0,
        )
        for e, x in zip(entries, exits)
    )
    returns = np.array([t.return_pct for t in trades], dtype=np.float64)
    sharpe, win_rate, avg_win, avg_loss = _stats(returns)
    final = float(equity[-1]) if len(equity) else START_EQUITY

    return BacktestResult(
        strategy=strategy,
        trades=trades,
        equity_curve=tuple(float(v) for v in equity),
        total_return=(final / START_EQUITY - 1.0) * 100.0,
        max_drawdown=float(_max_drawdown_pct(equity)),
        sharpe_ratio=sharpe,
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
    )


def run_backtest(closes, strategy_config: StrategyConfig) -> BacktestResult:
    """Run one catalog strategy over ``closes``.

    Fewer bars than ``Settings.min_backtest_bars`` is logged, not rejected.
    """
    n = len(closes)
    min_bars = get_settings().min_backtest_bars
    if n < min_bars:
        logger.warning("backtest %s on %d bars (< %d); results are not meaningful",
                       strategy_config.type, n, min_bars)
    pos = positions(closes, strategy_config)
    result = backtest_positions(closes, pos, strategy_config.type)
    logger.debug("%s: %d trades, total return %.2f%%",
                 strategy_config.type, result.num_trades, result.total_return)
    return result


def rank_results(results: list[BacktestResult], sort_by: str = "total_return") -> list[BacktestResult]:
    """Sort results descending by a metric; max_drawdown sorts ascending."""
    reverse = sort_by != "max_drawdown"
    return sorted(results, key=lambda r: getattr(r, sort_by), reverse=reverse)

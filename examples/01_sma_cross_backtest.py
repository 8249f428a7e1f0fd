"""Example 1 — SMA Cross Backtest (Beginner)
==========================================
Backtest the catalog's SMA crossover on synthetic data, then sweep a few
fast/slow pairs and rank them.

Concepts introduced:
  - get_strategy() and StrategyConfig.with_params()
  - run_backtest() / rank_results()
  - BacktestResult fields (trades, equity curve, metrics)

Run:
    python examples/01_sma_cross_backtest.py
"""

from itertools import product

from datalab.data import generate_sample
from datalab.engine import rank_results, run_backtest
from datalab.log import setup_logging
from datalab.strategies import get_strategy

# ── Data ──────────────────────────────────────────────────────────────────────
raw = generate_sample(n=1500, seed=7)

# ── Sweep ─────────────────────────────────────────────────────────────────────
# 3 × 3 = 9 (fast, slow) pairs.
base = get_strategy("sma_cross")
configs = [
    base.with_params(fast=f, slow=s)
    for f, s in product([10, 20, 30], [50, 100, 200])
]

if __name__ == "__main__":
    setup_logging()
    results = [run_backtest(raw.close, cfg) for cfg in configs]
    ranked = rank_results(results, sort_by="sharpe_ratio")

    print(f"{'Fast':>5} {'Slow':>5} {'Return%':>9} {'Sharpe':>8} {'MaxDD%':>8} {'Trades':>7}")
    for cfg, r in sorted(zip(configs, results), key=lambda p: -p[1].sharpe_ratio):
        print(f"{cfg.params['fast']:>5} {cfg.params['slow']:>5} {r.total_return:>+8.2f}% "
              f"{r.sharpe_ratio:>8.3f} {r.max_drawdown:>8.2f} {r.num_trades:>7}")

    best = ranked[0]
    print(f"\nBest by Sharpe: {best.num_trades} trades, final equity {best.equity_curve[-1]:.2f}")

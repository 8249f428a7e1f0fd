"""CLI entry point for DataLab."""

import argparse
import sys
import time

import numpy as np

from datalab.anomalies import detect_anomalies
from datalab.config import get_settings
from datalab.data import generate_sample, load_csv
from datalab.divergence import detect_divergences
from datalab.engine import rank_results, run_backtest
from datalab.formula import FormulaError, evaluate_formula, validate_formula
from datalab.indicators import InvalidParameter, compute_macd, compute_rsi
from datalab.layers import LabState, load_preset
from datalab.log import setup_logging
from datalab.presets import PRESETS, UnknownPreset
from datalab.reliability import build_signal_inputs, compute_signal_reliability
from datalab.strategies import STRATEGIES, UnknownStrategy, get_strategy


def _load_data(args):
    """Load a RawSeries based on CLI args."""
    if args.csv:
        print(f"\n[*] Loading data from {args.csv}...")
        return load_csv(args.csv, start=args.start, end=args.end)
    print(f"\n[*] Generating synthetic data ({args.bars} daily bars)...")
    raw = generate_sample(n=args.bars, seed=args.seed)
    if len(raw):
        print(f"    Simulated price from ${raw.close[0]:.0f} to ${raw.close[-1]:.0f}")
    return raw


def _fmt(v, spec=">10.4f"):
    if v is None or (isinstance(v, float) and not np.isfinite(v)):
        return f"{'NaN':>10}"
    return format(v, spec)


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

def cmd_backtest(args, raw):
    if args.strategy == "all":
        configs = list(STRATEGIES)
    else:
        configs = [get_strategy(args.strategy)]

    results = [run_backtest(raw.close, cfg) for cfg in configs]
    ranked = rank_results(results, sort_by=args.sort)

    print(f"\n{'=' * 70}")
    print(f"  BACKTEST RESULTS (sorted by {args.sort})")
    print(f"{'=' * 70}")
    header = (f"{'#':>3} {'Strategy':<18} {'Return%':>9} {'Sharpe':>8} {'MaxDD%':>8} "
              f"{'WinRate%':>9} {'Trades':>7} {'AvgWin%':>8} {'AvgLoss%':>9}")
    print(header)
    print("-" * len(header))
    for i, r in enumerate(ranked, 1):
        print(
            f"{i:>3} {r.strategy:<18} {r.total_return:>+8.2f}% "
            f"{r.sharpe_ratio:>8.3f} {r.max_drawdown:>8.2f} "
            f"{r.win_rate:>8.2f}% {r.num_trades:>7} {r.avg_win:>+8.2f} {r.avg_loss:>+9.2f}"
        )

    if args.trades and len(ranked) == 1:
        print(f"\n  {'Entry':>6} {'Exit':>6} {'EntryPx':>12} {'ExitPx':>12} {'Return%':>9}")
        for t in ranked[0].trades:
            print(f"  {t.entry_index:>6} {t.exit_index:>6} {t.entry_price:>12.2f} "
                  f"{t.exit_price:>12.2f} {t.return_pct:>+8.2f}%")
    return 0


def cmd_signals(args, raw):
    horizons = tuple(get_settings().signal_horizons)
    results = compute_signal_reliability(raw.close, build_signal_inputs(raw), horizons)

    print(f"\n{'=' * 70}")
    print("  SIGNAL RELIABILITY (hit rate by horizon, bars)")
    print(f"{'=' * 70}")
    header = f"{'Signal':<18} {'Dir':<8} {'Count':>6} " + " ".join(f"{f'{h}b':>7}" for h in horizons)
    print(header)
    print("-" * len(header))
    for r in results:
        rates = " ".join(f"{r.hit_rates[h] * 100:>6.1f}%" for h in horizons)
        print(f"{r.name:<18} {r.direction:<8} {r.occurrences:>6} {rates}")
    return 0


def cmd_formula(args, raw):
    error = validate_formula(args.expr)
    if error is not None:
        print(f"Error: {error}", file=sys.stderr)
        return 2
    values = evaluate_formula(args.expr, raw)
    defined = values[~np.isnan(values)]
    print(f"\n  {args.expr}")
    print(f"  defined: {len(defined)}/{len(values)} bars")
    if len(defined):
        print(f"  min {defined.min():.4f} | mean {defined.mean():.4f} | max {defined.max():.4f}")
    print(f"\n  {'Bar':>6} {'Value':>10}")
    for i in range(max(0, len(values) - args.tail), len(values)):
        print(f"  {i:>6} {_fmt(values[i])}")
    return 0


def cmd_layers(args, raw):
    state = load_preset(LabState(raw=raw), args.preset)
    print(f"\n{'=' * 70}")
    print(f"  PRESET {state.preset_id}: {len(state.layers)} layers")
    print(f"{'=' * 70}")
    for pd in state.parameter_defs:
        print(f"  {pd.key:<20} {state.parameter(pd.key):>8g}  [{pd.min:g}..{pd.max:g} step {pd.step:g}]")
    print(f"\n  {'Layer':<10} {'Label':<22} {'Source':<18} {'Last':>10}")
    for lyr in state.layers:
        out = state.outputs[lyr.id]
        last = float(out[-1]) if len(out) else None
        print(f"  {lyr.id:<10} {lyr.label:<22} {lyr.source.value:<18} {_fmt(last)}")
    return 0


def cmd_scan(args, raw):
    close = raw.close
    divergences = detect_divergences(close, compute_rsi(close, args.rsi_period), compute_macd(close).macd)
    anomalies = detect_anomalies(raw)

    print(f"\n{'=' * 70}")
    print(f"  DIVERGENCES ({len(divergences)}, most recent first)")
    print(f"{'=' * 70}")
    print(f"  {'Type':<8} {'Ind':<5} {'From':>6} {'To':>6} {'PriceFrom':>12} {'PriceTo':>12} {'Strength':<9}")
    for d in divergences[:args.limit]:
        print(f"  {d.kind:<8} {d.indicator:<5} {d.start_index:>6} {d.end_index:>6} "
              f"{d.price_start:>12.2f} {d.price_end:>12.2f} {d.strength:<9}")

    print(f"\n{'=' * 70}")
    print(f"  ANOMALIES ({len(anomalies)}, most severe first)")
    print(f"{'=' * 70}")
    print(f"  {'Bar':>6} {'Kind':<17} {'Severity':<8} {'Z':>6}  Description")
    for a in anomalies[:args.limit]:
        print(f"  {a.index:>6} {a.kind:<17} {a.severity:<8} {a.z_score:>+6.2f}  {a.description}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None):
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="DataLab - indicator, formula and backtest workbench",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  datalab --demo backtest --strategy all
  datalab --csv btc.csv --start 2024-01-01 signals
  datalab --demo formula "(price - sma(50)) / sma(50) * 100"
  datalab --demo layers --preset volatility-squeeze
  datalab --csv btc.csv scan --limit 10
        """,
    )
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--demo", action="store_true", help="Use synthetic data (default)")
    src.add_argument("--csv", help="Load bars from CSV (timestamp,close[,open,high,low,volume])")
    parser.add_argument("--start", metavar="DATE", help="Start date YYYY-MM-DD (inclusive, CSV only)")
    parser.add_argument("--end", metavar="DATE", help="End date YYYY-MM-DD (inclusive, CSV only)")
    parser.add_argument("-n", "--bars", type=int, default=1000, help="Synthetic bars (default: 1000)")
    parser.add_argument("--seed", type=int, default=42, help="Synthetic data seed (default: 42)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("backtest", help="Run catalog strategies")
    p.add_argument("--strategy", default="all",
                   help=f"Strategy type or 'all' ({', '.join(s.type for s in STRATEGIES)})")
    p.add_argument("--sort", default="total_return",
                   choices=["total_return", "sharpe_ratio", "max_drawdown", "win_rate"])
    p.add_argument("--trades", action="store_true", help="List trades (single strategy only)")
    p.set_defaults(func=cmd_backtest)

    p = sub.add_parser("signals", help="Signal reliability table")
    p.set_defaults(func=cmd_signals)

    p = sub.add_parser("formula", help="Validate and evaluate a formula")
    p.add_argument("expr", help="e.g. 'price / sma(200)'")
    p.add_argument("--tail", type=int, default=10, help="Print the last N values (default: 10)")
    p.set_defaults(func=cmd_formula)

    p = sub.add_parser("layers", help="Load a preset and print its layers")
    p.add_argument("--preset", default=PRESETS[0].id,
                   help=f"Preset id ({', '.join(pr.id for pr in PRESETS)})")
    p.set_defaults(func=cmd_layers)

    p = sub.add_parser("scan", help="Divergences and anomalies")
    p.add_argument("--rsi-period", type=int, default=14, help="RSI period (default: 14)")
    p.add_argument("--limit", type=int, default=20, help="Print at most N rows per table (default: 20)")
    p.set_defaults(func=cmd_scan)

    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose else settings.log_level)

    print("=" * 70)
    print("  DATALAB - Market Analytics Workbench")
    print("=" * 70)

    t0 = time.perf_counter()
    raw = _load_data(args)
    print(f"    {len(raw)} bars loaded in {time.perf_counter() - t0:.2f}s")

    try:
        code = args.func(args, raw)
    except (UnknownStrategy, UnknownPreset) as exc:
        print(f"Error: unknown name {exc}", file=sys.stderr)
        return 2
    except (FormulaError, InvalidParameter) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    print(f"\nTotal time: {time.perf_counter() - t0:.2f}s")
    return code


if __name__ == "__main__":
    sys.exit(main())

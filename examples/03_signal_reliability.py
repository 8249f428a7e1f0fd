"""Example 3 — Signal Reliability (Intermediate)
==============================================
How often did classic signals call the next move? Loads a CSV when given,
otherwise synthetic bars, and prints hit rates per horizon.

Run:
    python examples/03_signal_reliability.py
    python examples/03_signal_reliability.py btc_daily.csv
"""

import sys

from datalab.data import generate_sample, load_csv
from datalab.reliability import HORIZONS, build_signal_inputs, compute_signal_reliability

if __name__ == "__main__":
    raw = load_csv(sys.argv[1]) if len(sys.argv) > 1 else generate_sample(n=2000, seed=11)
    results = compute_signal_reliability(raw.close, build_signal_inputs(raw))

    print(f"{'Signal':<18} {'Count':>6} " + " ".join(f"{h:>5}b" for h in HORIZONS))
    for r in sorted(results, key=lambda r: -r.hit_rates[7]):
        print(f"{r.name:<18} {r.occurrences:>6} "
              + " ".join(f"{r.hit_rates[h]:>6.0%}" for h in HORIZONS))

"""Example 2 — Preset + Formula Layers (Intermediate)
===================================================
Load a preset into a LabSession, add custom formula layers, then drag a
parameter the way a slider would: many edits, one recompute.

Concepts introduced:
  - LabSession.dispatch() with recomputing and debounced actions
  - add_formula_layer with the formula mini-language
  - apply_what_if / clear_what_if
  - LabState.divergences and LabState.anomalies

Run:
    python examples/02_formula_layers.py
"""

import numpy as np

from datalab.data import generate_sample
from datalab.log import setup_logging
from datalab.session import LabSession


def last(state, label):
    lyr = next(l for l in state.layers if l.label == label)
    return float(state.outputs[lyr.id][-1])


if __name__ == "__main__":
    setup_logging("DEBUG")
    session = LabSession(raw=generate_sample(n=500, seed=3))
    session.dispatch("load_preset", preset_id="confluence-zones")

    # Distance from the 50-bar mean, in percent
    session.dispatch("add_formula_layer", formula="(price - sma(50)) / sma(50) * 100",
                     label="Dist SMA50 %")
    session.dispatch("add_formula_layer", formula="rsi(14) - 50", label="RSI centred")

    # A held slider: bindings move at once, outputs wait for the debounce
    for value in range(15, 25):
        session.dispatch("set_parameter", key="rsi_period", value=value)
    print(f"pending recompute: {session.pending}")
    session.flush()
    print(f"RSI({session.state.parameter('rsi_period'):g}) last = {last(session.state, 'RSI'):.2f}")

    session.dispatch("apply_what_if", key="sma_short", delta_pct=50)
    print(f"what-if sma_short -> {session.state.parameter('sma_short'):g}: "
          f"SMA 20 layer last = {last(session.state, 'SMA 20'):.2f}")
    session.dispatch("clear_what_if")

    for lyr in session.state.layers:
        out = session.state.outputs[lyr.id]
        print(f"  {lyr.label:<16} defined {int(np.isfinite(out).sum()):>4}/{len(out)}")

    # Every recompute also rescans the window
    for d in session.state.divergences[:3]:
        print(f"  {d.kind} {d.indicator} divergence, bars {d.start_index}-{d.end_index} ({d.strength})")
    for a in session.state.anomalies[:3]:
        print(f"  bar {a.index}: {a.description}")

"""LabSession — the one mutable holder of a :class:`~datalab.layers.LabState`.

Actions are dispatched by name and fall in three groups:

* recomputing actions (preset load, layer add/remove/retune, data reload,
  what-if) return freshly computed outputs, so any pending debounced pass is
  dropped;
* ``set_parameter`` only updates bindings and leaves the recompute to a
  debounce window, so a held slider produces one pass instead of one per tick;
* ``toggle_layer`` changes display state only. It neither recomputes nor
  touches a pending pass.

    session = LabSession(raw=generate_sample(500))
    session.dispatch("load_preset", preset_id="confluence-zones")
    session.dispatch("set_parameter", key="rsi_period", value=21)
    session.flush()

With ``threaded=True`` the debounced pass fires from a timer thread instead of
``poll()``; dispatch and the timer callback share one lock.
"""

import logging
import threading
import time
from typing import Callable

from datalab import layers as lab
from datalab.config import get_settings
from datalab.debounce import Debouncer, ThreadedDebouncer
from datalab.layers import LabState

logger = logging.getLogger(__name__)

_RECOMPUTING = {
    "load_preset": lab.load_preset,
    "reset_parameters": lab.reset_parameters,
    "add_layer": lab.add_layer,
    "add_formula_layer": lab.add_formula_layer,
    "remove_layer": lab.remove_layer,
    "set_layer_params": lab.set_layer_params,
    "set_raw_series": lab.set_raw_series,
    "apply_what_if": lab.apply_what_if,
    "clear_what_if": lab.clear_what_if,
}

_DEBOUNCED = {
    "set_parameter": lab.set_parameter,
}

_DISPLAY = {
    "toggle_layer": lab.toggle_layer,
}

ACTIONS = frozenset(_RECOMPUTING) | frozenset(_DEBOUNCED) | frozenset(_DISPLAY)


class LabSession:
    def __init__(self, raw=None, delay: float | None = None,
                 clock: Callable[[], float] = time.monotonic, threaded: bool = False):
        if delay is None:
            delay = get_settings().debounce_ms / 1000.0
        self.lock = threading.RLock()
        self.state = lab.recalculate_layers(LabState(raw=raw))
        if threaded:
            self.debouncer = ThreadedDebouncer(self._recompute, delay=delay, lock=self.lock)
        else:
            self.debouncer = Debouncer(self._recompute, delay=delay, clock=clock)
        self._listeners: list[Callable[[LabState], None]] = []

    def subscribe(self, listener: Callable[[LabState], None]) -> Callable[[], None]:
        """Call ``listener(state)`` after every state change. Returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: str, **payload) -> LabState:
        with self.lock:
            if action in _RECOMPUTING:
                # a full recompute supersedes any pending one
                self.debouncer.cancel()
                self._commit(_RECOMPUTING[action](self.state, **payload))
            elif action in _DEBOUNCED:
                self._commit(_DEBOUNCED[action](self.state, **payload))
                self.debouncer.schedule()
            elif action in _DISPLAY:
                self._commit(_DISPLAY[action](self.state, **payload))
            else:
                raise ValueError(f"unknown action {action!r}; expected one of {sorted(ACTIONS)}")
            logger.debug("dispatched %s %s", action, payload)
            return self.state

    def poll(self) -> bool:
        """Run a due debounced recompute. Returns True if one ran."""
        return self.debouncer.poll()

    def flush(self) -> bool:
        """Run any pending recompute now."""
        return self.debouncer.flush()

    @property
    def pending(self) -> bool:
        return self.debouncer.pending

    def _recompute(self) -> None:
        with self.lock:
            self._commit(lab.recalculate_layers(self.state))

    def _commit(self, state: LabState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

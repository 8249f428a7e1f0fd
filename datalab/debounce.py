"""One-shot, cancel-and-reschedule timers for coalescing bursts of edits.

:class:`Debouncer` owns no thread: the caller polls it, and the clock is
injectable so tests can step time by hand. :class:`ThreadedDebouncer` drives
the same contract from a ``threading.Timer``.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.150


class Debouncer:
    """Fire ``callback`` once, ``delay`` seconds after the last ``schedule``."""

    def __init__(self, callback: Callable, delay: float = DEFAULT_DELAY,
                 clock: Callable[[], float] = time.monotonic):
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.callback = callback
        self.delay = delay
        self.clock = clock
        self._deadline: float | None = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def schedule(self, *args, **kwargs) -> None:
        """(Re)arm the timer; only the latest arguments are delivered."""
        self._deadline = self.clock() + self.delay
        self._args = args
        self._kwargs = kwargs

    def cancel(self) -> None:
        self._deadline = None
        self._args = ()
        self._kwargs = {}

    def poll(self) -> bool:
        """Fire if the deadline has passed. Returns True when the callback ran."""
        if self._deadline is None or self.clock() < self._deadline:
            return False
        self._fire()
        return True

    def flush(self) -> bool:
        """Fire now if anything is pending."""
        if self._deadline is None:
            return False
        self._fire()
        return True

    def _fire(self) -> None:
        args, kwargs = self._args, self._kwargs
        self.cancel()
        self.callback(*args, **kwargs)


class ThreadedDebouncer:
    """Same contract as :class:`Debouncer`, fired from a timer thread.

    The callback runs under ``lock`` so it never overlaps a ``flush``. Pass
    the owner's lock to serialize the callback with the owner's own updates.
    """

    def __init__(self, callback: Callable, delay: float = DEFAULT_DELAY, lock=None):
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.callback = callback
        self.delay = delay
        self.lock = lock if lock is not None else threading.RLock()
        self._timer: threading.Timer | None = None
        self._args: tuple = ()
        self._kwargs: dict = {}

    @property
    def pending(self) -> bool:
        with self.lock:
            return self._timer is not None

    def schedule(self, *args, **kwargs) -> None:
        with self.lock:
            if self._timer is not None:
                self._timer.cancel()
            self._args, self._kwargs = args, kwargs
            timer = threading.Timer(self.delay, self._on_timer)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self.lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None

    def poll(self) -> bool:
        """The timer thread fires on its own; polling never runs the callback."""
        return False

    def flush(self) -> bool:
        with self.lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._run()
            return True

    def _on_timer(self) -> None:
        with self.lock:
            # superseded by a later schedule/cancel while waiting on the lock
            if self._timer is None or threading.current_thread() is not self._timer:
                return
            self._run()

    def _run(self) -> None:
        args, kwargs = self._args, self._kwargs
        self._timer = None
        try:
            self.callback(*args, **kwargs)
        except Exception:
            logger.exception("debounced callback failed")
            raise

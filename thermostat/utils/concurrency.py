"""
Concurrency utilities.

Provides a `synchronized` decorator that acquires an instance `_lock` if
present, and `RepeatingTimer`, a cancellable fixed-interval worker thread
used by the control loop (ticks) and the MQTT bridge (periodic publish).
"""

from __future__ import annotations

import logging
import threading
import time
from functools import wraps
from typing import Callable

logger = logging.getLogger(__name__)


def synchronized(func: Callable) -> Callable:
    """Decorator that acquires `self._lock` if present on the instance.

    If no `_lock` attribute exists on `self`, the function is executed
    without locking.
    """

    @wraps(func)
    def _wrapped(*args, **kwargs):
        self = args[0] if args else None
        lock = getattr(self, "_lock", None)
        if lock is None:
            return func(*args, **kwargs)
        with lock:
            return func(*args, **kwargs)

    return _wrapped


class RepeatingTimer:
    """
    Calls ``function`` every ``interval`` seconds on a single daemon thread.

    Runs are strictly sequential (a new run never starts while the previous
    one is executing). ``cancel()`` is idempotent and may be called from any
    thread, including from inside ``function``.
    """

    def __init__(self, interval: float, function: Callable[[], None], *, name: str = "RepeatingTimer") -> None:
        self.interval = max(0.01, float(interval))
        self.function = function
        self.name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_elapsed = 0.0

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self, join_timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        if join_timeout is not None and thread.is_alive():
            thread.join(timeout=join_timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self._next_delay()):
            started = time.perf_counter()
            try:
                self.function()
            except Exception as exc:
                logger.exception("%s run failed: %s", self.name, exc)
            self._last_elapsed = time.perf_counter() - started

    def _next_delay(self) -> float:
        # Keep a consistent cadence without ever scheduling back-to-back runs
        return max(0.01, self.interval - self._last_elapsed)

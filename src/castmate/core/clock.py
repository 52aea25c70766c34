"""Refresh clocks driving the compositor.

A refresh clock calls each requested callback once, on the next refresh tick,
with the tick timestamp. Callbacks that want to run again must request a new
frame, which is then served on the following tick.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]


class RefreshClock(ABC):
    """Schedules one-shot callbacks on the next refresh tick."""

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> int:
        """Schedule ``callback`` for the next tick and return its handle."""

    @abstractmethod
    def cancel_frame(self, handle: int) -> None:
        """Cancel a pending callback. Unknown handles are ignored."""


class ThreadedRefreshClock(RefreshClock):
    """Refresh clock ticking at a fixed rate on a daemon thread.

    The thread starts on the first request and exits after ``close()``.
    """

    def __init__(self, rate_hz: int = 60):
        if rate_hz <= 0:
            raise ValueError(f"Refresh rate must be positive: {rate_hz}")
        self._interval = 1.0 / rate_hz
        self._handles = itertools.count(1)
        self._pending: dict[int, FrameCallback] = {}
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def request_frame(self, callback: FrameCallback) -> int:
        with self._lock:
            handle = next(self._handles)
            self._pending[handle] = callback
            if not self._running:
                self._running = True
                self._thread = threading.Thread(
                    target=self._run, name="RefreshClock", daemon=True
                )
                self._thread.start()
        return handle

    def cancel_frame(self, handle: int) -> None:
        with self._lock:
            self._pending.pop(handle, None)

    def close(self) -> None:
        """Stop ticking and drop pending callbacks."""
        with self._lock:
            self._running = False
            self._pending.clear()
            thread = self._thread
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _run(self) -> None:
        next_tick = time.monotonic()
        while True:
            with self._lock:
                if not self._running:
                    break
                due, self._pending = self._pending, {}

            timestamp = time.monotonic()
            for callback in due.values():
                try:
                    callback(timestamp)
                except Exception as e:
                    logger.error(f"Error in refresh callback: {e}", exc_info=True)

            next_tick += self._interval
            delay = next_tick - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            else:
                next_tick = time.monotonic()
        logger.debug("Refresh clock stopped")

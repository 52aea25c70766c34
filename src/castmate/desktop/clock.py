"""QTimer-driven refresh clock for the desktop UI.

Callbacks run on the GUI thread, so the compositor draws in step with the
preview without any cross-thread hand-off.
"""

import itertools
import logging
import time
from typing import Optional

from PySide6.QtCore import QObject, QTimer

from castmate.core.clock import FrameCallback, RefreshClock

logger = logging.getLogger(__name__)


class QtRefreshClock(RefreshClock):
    """Refresh clock ticking on a QTimer.

    The timer only runs while callbacks are pending.
    """

    def __init__(self, rate_hz: int = 60, parent: Optional[QObject] = None):
        if rate_hz <= 0:
            raise ValueError(f"Refresh rate must be positive: {rate_hz}")
        self._handles = itertools.count(1)
        self._pending: dict[int, FrameCallback] = {}

        self._timer = QTimer(parent)
        self._timer.setInterval(max(1, round(1000 / rate_hz)))
        self._timer.timeout.connect(self._on_tick)

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def request_frame(self, callback: FrameCallback) -> int:
        handle = next(self._handles)
        self._pending[handle] = callback
        if not self._timer.isActive():
            self._timer.start()
        return handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)
        if not self._pending:
            self._timer.stop()

    def close(self) -> None:
        self._pending.clear()
        self._timer.stop()

    def _on_tick(self) -> None:
        due, self._pending = self._pending, {}
        timestamp = time.monotonic()
        for callback in due.values():
            try:
                callback(timestamp)
            except Exception as e:
                logger.error(f"Error in refresh callback: {e}", exc_info=True)
        if not self._pending:
            self._timer.stop()

"""Logging setup for castmate.

Every handler shares one format with millisecond timestamps so capture,
compositor and encoder threads can be lined up in a single log:

    2025-01-31 14:02:11.417 [Encoder        ] DEBUG encoder.py:295 - Chunk 3 size: 41872

The desktop window receives records through ``LogConsoleHandler``, which
turns them into a Qt signal delivered on the GUI thread.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QObject, Signal

LOG_FORMAT = "%(asctime)s [%(threadName)-15s] %(levelname)-5s %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = Path("castmate.log")

# PyAV forwards FFmpeg's own log lines to loggers under "libav"
LIBAV_LOGGER = "libav"


class MillisecondFormatter(logging.Formatter):
    """Formatter that appends ``.mmm`` to every timestamp."""

    def formatTime(self, record, datefmt=None):
        stamp = time.strftime(datefmt or DATE_FORMAT, self.converter(record.created))
        return f"{stamp}.{int(record.msecs):03d}"


class _RecordRelay(QObject):
    record_formatted = Signal(str, str)


class LogConsoleHandler(logging.Handler):
    """Handler feeding formatted records to the recorder window's log console.

    Records may arrive from any capture or encoder thread; Qt queues the
    signal to receivers living on the GUI thread.
    """

    def __init__(self, level: int = logging.NOTSET):
        super().__init__(level=level)
        self._relay = _RecordRelay()

    @property
    def log_message(self):
        """Signal carrying (level name, formatted message)."""
        return self._relay.record_formatted

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._relay.record_formatted.emit(record.levelname, self.format(record))
        except Exception:
            self.handleError(record)


def _open_log_file(log_file: Path, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        # Recording still works without a log file
        print(f"Warning: Could not create log file {log_file}: {e}", file=sys.stderr)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    console_handler: Optional[LogConsoleHandler] = None,
) -> None:
    """Install castmate's handlers on the root logger.

    The log file always records DEBUG, which includes per-chunk sizes from
    the encoder. Standard output and the optional UI console follow
    ``log_level``. FFmpeg chatter from PyAV is limited to warnings.

    Args:
        log_level: Level name for stdout and the UI console
        log_file: Log file path (default: castmate.log in the working directory)
        console_handler: Handler backing the recorder window's log console
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = MillisecondFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    log_file = Path(log_file) if log_file is not None else DEFAULT_LOG_FILE

    stdout_handler = logging.StreamHandler(sys.stdout)
    handlers: list[logging.Handler] = [stdout_handler]
    if console_handler is not None:
        handlers.append(console_handler)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    file_handler = _open_log_file(log_file, formatter)
    if file_handler is not None:
        handlers.insert(0, file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)
    for handler in handlers:
        root_logger.addHandler(handler)

    logging.getLogger(LIBAV_LOGGER).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging at {log_level.upper()}, file: {log_file.absolute()}")

"""
castmate CLI entry point.

This module provides the command-line interface for the castmate recorder.
"""

import argparse
import logging
import os
import sys
import time
from importlib.metadata import metadata
from pathlib import Path
from typing import Optional

from castmate.core.errors import CaptureError, PermissionDenied, RecorderError
from castmate.core.logging import LogConsoleHandler, setup_logging
from castmate.core.models import CornerAnchor, RecorderMode, RecorderSettings
from castmate.core.settings import SettingsManager

# Load package metadata from pyproject.toml
_metadata = metadata("castmate")
APP_NAME = _metadata["Name"]
APP_VERSION = _metadata["Version"]
APP_DESCRIPTION = _metadata["Summary"]


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} - {APP_DESCRIPTION}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Launch the recorder window
  python -m castmate

  # Record the screen with the webcam in the bottom-left corner for 30 seconds
  python -m castmate --headless --duration 30 --webcam-position bottom-left

  # Record the screen and microphone only, until Ctrl+C
  python -m castmate --headless --mode screen

  # Launch with debug logging
  python -m castmate --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Record without the desktop UI and save the result to the output directory",
    )

    parser.add_argument(
        "--duration",
        type=float,
        metavar="SEC",
        help="Headless recording length in seconds (default: until interrupted)",
    )

    parser.add_argument(
        "--mode",
        type=str,
        choices=[mode.value for mode in RecorderMode],
        help="Recorder variant: 'screen-webcam' composites the webcam, 'screen' does not",
    )

    parser.add_argument(
        "--webcam-position",
        type=str,
        choices=[corner.value for corner in CornerAnchor],
        metavar="CORNER",
        help="Corner for the webcam overlay (top-left, top-right, bottom-left, bottom-right)",
    )

    parser.add_argument(
        "--no-webcam", action="store_true", help="Start with the webcam overlay hidden"
    )

    parser.add_argument(
        "--output-dir", type=str, metavar="DIR", help="Directory for saved recordings"
    )

    parser.add_argument("--config", type=str, metavar="PATH", help="Path to configuration file")

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        metavar="LEVEL",
        help="Logging level (default: INFO)",
    )

    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")

    return parser


def apply_arguments(settings: RecorderSettings, args: argparse.Namespace) -> RecorderSettings:
    """Override loaded settings with command-line arguments."""
    if args.mode:
        settings.mode = RecorderMode(args.mode)
    if args.webcam_position:
        settings.webcam_position = CornerAnchor(args.webcam_position)
    if args.no_webcam:
        settings.show_webcam = False
    if args.output_dir:
        settings.output_dir = Path(args.output_dir)
    return settings


def run_headless(settings: RecorderSettings, duration: Optional[float]) -> int:
    """Record once and save the result.

    Args:
        settings: Recorder settings
        duration: Seconds to record, or None to record until interrupted

    Returns:
        Exit code
    """
    from castmate.app import create_controller
    from castmate.core.clock import ThreadedRefreshClock

    clock = ThreadedRefreshClock(rate_hz=settings.refresh_rate)
    try:
        return _record_and_save(create_controller(settings, clock=clock), duration)
    finally:
        clock.close()


def _record_and_save(controller, duration: Optional[float]) -> int:
    logger = logging.getLogger(__name__)

    try:
        controller.start()
    except PermissionDenied as e:
        logger.error(f"{controller.last_error} ({e})")
        return os.EX_NOPERM
    except CaptureError as e:
        logger.error(f"{controller.last_error} ({e})")
        return os.EX_UNAVAILABLE

    try:
        if duration is not None:
            logger.info(f"Recording for {duration:.1f} seconds")
            time.sleep(duration)
        else:
            logger.info("Recording until interrupted (Ctrl+C)")
            while True:
                time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Recording interrupted by user")

    try:
        controller.stop()
        path = controller.download()
    except RecorderError as e:
        logger.error(f"{controller.last_error or e}")
        return os.EX_SOFTWARE
    except OSError as e:
        logger.error(f"Could not save recording: {e}")
        return os.EX_CANTCREAT
    finally:
        controller.shutdown()

    print(path)
    return os.EX_OK


def main() -> int:
    """Main entry point for the castmate recorder.

    Returns:
        Exit code using os.EX_* constants:
        - os.EX_OK (0): Success
        - os.EX_DATAERR (65): Invalid configuration file
        - os.EX_NOINPUT (66): Cannot open input file
        - os.EX_UNAVAILABLE (69): Capture device unavailable
        - os.EX_SOFTWARE (70): Internal software error
        - os.EX_CANTCREAT (73): Cannot write the recording
        - os.EX_NOPERM (77): Capture permission denied
    """
    parser = create_argument_parser()
    args = parser.parse_args()

    # The UI console handler must exist before logging is set up so the
    # log console shows startup messages too
    console_handler = None if args.headless else LogConsoleHandler()
    setup_logging(log_level=args.log_level, console_handler=console_handler)
    logger = logging.getLogger(__name__)

    logger.info(f"Starting {APP_NAME} {APP_VERSION}")
    logger.debug(f"Command-line arguments: {args}")

    try:
        if args.config:
            config_path = Path(args.config)
            if not config_path.exists():
                logger.error(f"Configuration file not found: {config_path}")
                return os.EX_NOINPUT
            logger.info(f"Loading configuration from: {config_path}")
            settings_manager = SettingsManager(settings_file=config_path)
        else:
            settings_manager = SettingsManager()

        try:
            settings = settings_manager.load_settings()
        except ValueError as e:
            logger.error(str(e))
            return os.EX_DATAERR
        settings = apply_arguments(settings, args)

        if args.headless:
            logger.info("Launching headless recording")
            return run_headless(settings, args.duration)

        logger.info("Launching desktop UI")
        # Import here to avoid loading Qt widgets when not needed
        from PySide6.QtWidgets import QApplication

        from castmate.desktop import RecorderWindow

        app = QApplication(sys.argv)
        app.setApplicationName(APP_NAME)
        app.setApplicationVersion(APP_VERSION)

        window = RecorderWindow(
            settings=settings,
            settings_manager=settings_manager,
            log_console_handler=console_handler,
        )
        window.show()

        logger.info("Desktop UI launched successfully")
        return app.exec()

    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        return os.EX_OK

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return os.EX_SOFTWARE


if __name__ == "__main__":
    sys.exit(main())

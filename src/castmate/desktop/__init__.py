"""
Desktop UI module for castmate.

This module provides the PySide6-based recorder window and the player for
finished recordings.
"""

from castmate.desktop.main import RecorderWindow
from castmate.desktop.playback import RecordingPlayer

__all__ = ["RecorderWindow", "RecordingPlayer"]

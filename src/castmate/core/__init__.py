"""Core recording pipeline and state management."""

from castmate.core.models import CornerAnchor, RecorderMode, RecorderSettings, RecorderState
from castmate.core.recorder import RecordingController

__all__ = [
    "CornerAnchor",
    "RecorderMode",
    "RecorderSettings",
    "RecorderState",
    "RecordingController",
]

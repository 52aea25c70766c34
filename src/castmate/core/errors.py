"""Error types raised by the recording pipeline.

Capture errors abort a recording start. Draw errors are absorbed by the
compositor loop. Artifact and finalization errors are raised from
``RecordingController.stop()`` after every device has been released.
"""


class RecorderError(Exception):
    """Base class for all castmate errors."""


class CaptureError(RecorderError):
    """A live media source could not be acquired."""

    def __init__(self, message: str, source: str = "unknown"):
        super().__init__(message)
        self.source = source


class PermissionDenied(CaptureError):
    """The user or the OS refused access to a capture device."""


class DeviceUnavailable(CaptureError):
    """The requested device does not exist or could not be opened."""


class UserCancelled(CaptureError):
    """The user dismissed the source picker."""


class TransientDrawError(RecorderError):
    """A single composited frame could not be drawn."""

    def __init__(self, message: str, frame_number: int = -1):
        super().__init__(message)
        self.frame_number = frame_number


class EmptyArtifactError(RecorderError):
    """The sealed recording contains zero bytes."""


class FinalizationError(RecorderError):
    """The encoder failed to produce a usable finalized recording."""

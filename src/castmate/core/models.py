"""Core data models for castmate.

This module contains the enums, value objects and settings dataclasses shared
by the capture, compositing and recording layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

# ============================================================================
# Basic Value Objects
# ============================================================================


@dataclass(frozen=True)
class Resolution:
    """Video resolution."""

    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    def to_tuple(self) -> Tuple[int, int]:
        """Convert to (width, height) tuple."""
        return (self.width, self.height)

    @classmethod
    def from_tuple(cls, resolution: Tuple[int, int]) -> Resolution:
        """Create from (width, height) tuple."""
        return cls(width=resolution[0], height=resolution[1])

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height > 0 else 0.0


DEFAULT_CANVAS_SIZE = Resolution(1920, 1080)


@dataclass(frozen=True)
class OverlayRect:
    """Webcam overlay rectangle in canvas coordinates.

    Coordinates are kept as floats so the geometry stays exact; drawing code
    rounds them through ``to_pixels()``.
    """

    x: float
    y: float
    width: float
    height: float

    def to_pixels(self) -> Tuple[int, int, int, int]:
        """Convert to an integer (x, y, width, height) tuple."""
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.width)),
            int(round(self.height)),
        )


# ============================================================================
# Basic Enums
# ============================================================================


class CornerAnchor(Enum):
    """Fixed on-canvas position for the webcam overlay."""

    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"

    @property
    def label(self) -> str:
        """Human readable label (e.g. "Top Right")."""
        return self.value.replace("-", " ").title()


class RecorderState(Enum):
    """State of the recording controller."""

    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"


class RecorderMode(Enum):
    """Recorder variant.

    SCREEN records the display video together with system and microphone
    audio. SCREEN_WEBCAM composites a webcam overlay on top of the display.
    """

    SCREEN = "screen"
    SCREEN_WEBCAM = "screen-webcam"

    @property
    def uses_webcam(self) -> bool:
        return self is RecorderMode.SCREEN_WEBCAM


class TrackKind(Enum):
    """Kind of media carried by a track."""

    VIDEO = "video"
    AUDIO = "audio"


class TrackState(Enum):
    """Lifecycle state of a track."""

    LIVE = "live"
    ENDED = "ended"


# ============================================================================
# Track Metadata
# ============================================================================


@dataclass
class TrackSettings:
    """Settings reported by a live track.

    Video tracks fill in resolution and frame rate, audio tracks fill in
    sample rate and channels. Anything the underlying device does not report
    stays None.
    """

    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[float] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    device_id: Optional[str] = None

    @property
    def resolution(self) -> Optional[Resolution]:
        if self.width and self.height:
            return Resolution(self.width, self.height)
        return None


# ============================================================================
# Compositing State
# ============================================================================


@dataclass
class CompositorState:
    """Mutable per-session state of the frame compositor.

    Changes to ``webcam_position`` and ``show_webcam`` are picked up on the
    next drawn frame. The draw loop reschedules itself only while
    ``running`` is True.
    """

    canvas_size: Resolution = DEFAULT_CANVAS_SIZE
    webcam_position: CornerAnchor = CornerAnchor.TOP_RIGHT
    show_webcam: bool = True
    running: bool = False
    frame_count: int = 0


# ============================================================================
# Recording Artifact
# ============================================================================


@dataclass(frozen=True)
class MediaBlob:
    """Immutable encoded media, tagged with its container MIME type."""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class RecordingArtifact:
    """Ordered encoder chunks of one recording session.

    Chunks are appended in the order the encoder produced them and are
    concatenated into a single ``MediaBlob`` when the artifact is sealed.
    """

    chunks: List[bytes] = field(default_factory=list)
    blob: Optional[MediaBlob] = None
    usable: bool = False

    @property
    def sealed(self) -> bool:
        return self.blob is not None

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def size(self) -> int:
        """Total size in bytes of all chunks received so far."""
        return sum(len(chunk) for chunk in self.chunks)

    def append(self, chunk: bytes) -> None:
        """Append an encoder chunk. Empty chunks are ignored.

        Raises:
            RuntimeError: If the artifact has already been sealed
        """
        if self.blob is not None:
            raise RuntimeError("Cannot append to a sealed artifact")
        if chunk:
            self.chunks.append(bytes(chunk))

    def seal(self, mime_type: str) -> MediaBlob:
        """Concatenate all chunks into the final blob.

        Sealing twice returns the existing blob.
        """
        if self.blob is None:
            self.blob = MediaBlob(data=b"".join(self.chunks), mime_type=mime_type)
            self.usable = self.blob.size > 0
        return self.blob


# ============================================================================
# Settings Models
# ============================================================================


@dataclass
class RecorderSettings:
    """Recorder configuration."""

    mode: RecorderMode = RecorderMode.SCREEN_WEBCAM
    webcam_position: CornerAnchor = CornerAnchor.TOP_RIGHT
    show_webcam: bool = True

    # Compositing and encoding
    capture_fps: int = 30
    refresh_rate: int = 60
    timeslice_ms: int = 500
    video_bitrate: int = 1_500_000

    # Devices
    monitor_index: int = 1  # mss monitor 0 is the union of all monitors
    camera_index: int = 0
    mic_device: Optional[str] = None  # None selects the default input device
    system_audio_device: Optional[str] = None  # None records no system audio
    sample_rate: int = 48000
    channels: int = 1

    output_dir: Path = field(default_factory=Path.cwd)

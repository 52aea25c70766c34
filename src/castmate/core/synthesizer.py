"""Stream synthesis for recording.

Builds the single stream handed to the encoder: one video track (sampled from
the compositor canvas, or the raw screen track for the basic recorder) plus
every audio track of the captured sources.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import numpy as np

from castmate.core.capture.tracks import MediaStream, VideoTrack
from castmate.core.compositor import FrameCompositor
from castmate.core.models import TrackSettings

logger = logging.getLogger(__name__)

CANVAS_CAPTURE_FPS = 30


class CanvasTrack(VideoTrack):
    """Video track sampling the compositor's canvas.

    The track holds the compositor, not the canvas: every read is a snapshot
    of the last completed composited frame.
    """

    def __init__(self, compositor: FrameCompositor, fps: int = CANVAS_CAPTURE_FPS):
        size = compositor.canvas_size
        super().__init__(
            label="Composited canvas",
            settings=TrackSettings(width=size.width, height=size.height, frame_rate=float(fps)),
        )
        self._compositor = compositor

    @property
    def has_frame(self) -> bool:
        return self.is_live

    def latest_frame(self) -> Optional[np.ndarray]:
        if not self.is_live:
            return None
        return self._compositor.snapshot()

    def _on_stop(self) -> None:
        self._compositor = None  # type: ignore[assignment]


class StreamSynthesizer:
    """Merges one video track with the audio of every source."""

    def __init__(self, fps: int = CANVAS_CAPTURE_FPS):
        self._fps = fps

    def capture_canvas(self, compositor: FrameCompositor) -> CanvasTrack:
        """Derive a video track from the compositor canvas."""
        return CanvasTrack(compositor, fps=self._fps)

    def synthesize(self, video: VideoTrack, audio_sources: Iterable[MediaStream]) -> MediaStream:
        """Build the output stream.

        Args:
            video: The single video track of the output
            audio_sources: Sources whose audio tracks are appended, in order

        Returns:
            MediaStream with exactly one video track and every audio track
        """
        output = MediaStream([video])
        for source in audio_sources:
            for track in source.get_audio_tracks():
                output.add_track(track)

        logger.info(
            f"Synthesized output stream: video=1, audio={len(output.get_audio_tracks())}"
        )
        return output

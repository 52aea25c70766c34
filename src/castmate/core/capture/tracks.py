"""Live media tracks and streams.

A track is one live source of video frames or audio samples. Every track owns
its underlying capture handle and releases it exactly once when stopped. A
stream is an ordered collection of tracks, mirroring how the capture
providers hand out their results.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Iterable, Optional

import numpy as np

from castmate.core.models import TrackKind, TrackSettings, TrackState

logger = logging.getLogger(__name__)

_track_ids = itertools.count(1)


class MediaTrack(ABC):
    """Base class for live tracks.

    Subclasses release their capture handle in ``_on_stop()``. ``stop()`` is
    idempotent: the handle is released on the first call only.
    """

    kind: TrackKind

    def __init__(self, label: str, settings: Optional[TrackSettings] = None):
        self.id = f"{self.kind.value}-{next(_track_ids)}"
        self.label = label
        self._settings = settings if settings is not None else TrackSettings()
        self._state = TrackState.LIVE
        self._state_lock = threading.Lock()
        self._ended_callbacks: list[Callable[[MediaTrack], None]] = []

    @property
    def ready_state(self) -> TrackState:
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state is TrackState.LIVE

    def get_settings(self) -> TrackSettings:
        """Get the settings currently reported by the track."""
        return self._settings

    def on_ended(self, callback: Callable[[MediaTrack], None]) -> None:
        """Register a callback invoked once the track has been stopped."""
        self._ended_callbacks.append(callback)

    def stop(self) -> None:
        """Stop the track and release its capture handle."""
        with self._state_lock:
            if self._state is TrackState.ENDED:
                return
            self._state = TrackState.ENDED

        try:
            self._on_stop()
        finally:
            logger.debug(f"Stopped track {self.id} ({self.label})")
            for callback in self._ended_callbacks:
                try:
                    callback(self)
                except Exception as e:
                    logger.error(f"Error in ended callback for {self.id}: {e}", exc_info=True)

    @abstractmethod
    def _on_stop(self) -> None:
        """Release the underlying capture handle."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, label={self.label!r}, state={self._state.value})"


class VideoTrack(MediaTrack):
    """Track producing RGB frames (H x W x 3, uint8)."""

    kind = TrackKind.VIDEO

    def __init__(self, label: str, settings: Optional[TrackSettings] = None):
        super().__init__(label, settings)
        self._frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._frame_number = 0

    @property
    def has_frame(self) -> bool:
        """True once at least one decodable frame has been buffered."""
        return self._frame is not None

    @property
    def frame_number(self) -> int:
        return self._frame_number

    def latest_frame(self) -> Optional[np.ndarray]:
        """Get the most recent frame, or None if no frame is available."""
        with self._frame_lock:
            return self._frame

    def _push_frame(self, frame: np.ndarray) -> None:
        with self._frame_lock:
            self._frame = frame
            self._frame_number += 1


class AudioTrack(MediaTrack):
    """Track producing float32 sample blocks shaped (frames, channels)."""

    kind = TrackKind.AUDIO

    def __init__(
        self,
        label: str,
        settings: Optional[TrackSettings] = None,
        max_blocks: int = 256,
    ):
        super().__init__(label, settings)
        self._blocks: deque[np.ndarray] = deque(maxlen=max_blocks)
        self._blocks_lock = threading.Lock()

    @property
    def sample_rate(self) -> int:
        return self._settings.sample_rate or 48000

    @property
    def channels(self) -> int:
        return self._settings.channels or 1

    def drain(self) -> list[np.ndarray]:
        """Take every buffered sample block, oldest first."""
        with self._blocks_lock:
            blocks = list(self._blocks)
            self._blocks.clear()
        return blocks

    def _push_samples(self, samples: np.ndarray) -> None:
        with self._blocks_lock:
            if len(self._blocks) == self._blocks.maxlen:
                logger.debug(f"Audio buffer full on {self.id}, dropping oldest block")
            self._blocks.append(samples)


class MediaStream:
    """Ordered collection of tracks."""

    def __init__(self, tracks: Iterable[MediaTrack] = ()):
        self._tracks: list[MediaTrack] = []
        for track in tracks:
            self.add_track(track)

    def add_track(self, track: MediaTrack) -> None:
        if track not in self._tracks:
            self._tracks.append(track)

    def get_tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> list[VideoTrack]:
        return [t for t in self._tracks if isinstance(t, VideoTrack)]

    def get_audio_tracks(self) -> list[AudioTrack]:
        return [t for t in self._tracks if isinstance(t, AudioTrack)]

    @property
    def active(self) -> bool:
        return any(t.is_live for t in self._tracks)

    def stop(self) -> None:
        """Stop every track in the stream."""
        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.error(f"Error stopping track {track.id}: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._tracks)

    def __repr__(self) -> str:
        return (
            f"MediaStream(video={len(self.get_video_tracks())}, "
            f"audio={len(self.get_audio_tracks())})"
        )

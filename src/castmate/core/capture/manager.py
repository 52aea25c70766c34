"""Capture manager for acquiring and releasing the recording sources.

This module provides the CaptureManager class, which acquires the screen,
webcam and microphone sources of one recording session in sequence, and the
CaptureSession that owns them until teardown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from castmate.core.capture.providers import DeviceCaptureProvider, DisplayCaptureProvider
from castmate.core.capture.tracks import AudioTrack, MediaStream, VideoTrack
from castmate.core.errors import CaptureError, DeviceUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CaptureSession:
    """Live sources of one recording session.

    The session exclusively owns its streams. ``release()`` stops every track
    of every acquired stream and may be called any number of times, including
    on a partially acquired session.
    """

    screen: Optional[MediaStream] = None
    webcam: Optional[MediaStream] = None
    mic: Optional[MediaStream] = None
    released: bool = False

    def streams(self) -> list[MediaStream]:
        """Acquired streams in acquisition order."""
        return [s for s in (self.screen, self.webcam, self.mic) if s is not None]

    @property
    def screen_video(self) -> Optional[VideoTrack]:
        if self.screen is None:
            return None
        tracks = self.screen.get_video_tracks()
        return tracks[0] if tracks else None

    @property
    def webcam_video(self) -> Optional[VideoTrack]:
        if self.webcam is None:
            return None
        tracks = self.webcam.get_video_tracks()
        return tracks[0] if tracks else None

    @property
    def audio_sources(self) -> list[MediaStream]:
        """Streams that may carry audio: screen first, then microphone."""
        return [s for s in (self.screen, self.mic) if s is not None]

    @property
    def audio_tracks(self) -> list[AudioTrack]:
        return [t for s in self.audio_sources for t in s.get_audio_tracks()]

    @property
    def active_track_count(self) -> int:
        return sum(1 for s in self.streams() for t in s.get_tracks() if t.is_live)

    def release(self) -> None:
        """Stop every track of every acquired source."""
        if self.released:
            logger.debug("Capture session already released")
            return

        for stream in self.streams():
            stream.stop()

        self.released = True
        logger.info("Capture session released")


class CaptureManager:
    """Acquires the live sources for a recording.

    Sources are requested one after another: display (video and audio),
    webcam video, microphone audio. If any request fails, every source that
    was already granted is released before the error propagates. There is no
    degraded mode: a refused webcam or microphone fails the whole acquisition.
    """

    def __init__(
        self,
        display_provider: DisplayCaptureProvider,
        device_provider: DeviceCaptureProvider,
    ):
        self._display_provider = display_provider
        self._device_provider = device_provider
        logger.info("CaptureManager initialized")

    def acquire(self, include_webcam: bool = True) -> CaptureSession:
        """Acquire all sources for one recording session.

        Args:
            include_webcam: Request the webcam (combined recorder). The basic
                recorder acquires only the display and the microphone.

        Returns:
            CaptureSession owning every granted source

        Raises:
            PermissionDenied: If a device permission was refused
            DeviceUnavailable: If a device is missing or failed to open
            UserCancelled: If the user dismissed the source picker
        """
        session = CaptureSession()

        try:
            logger.info("Requesting display capture")
            session.screen = self._request(
                "screen", self._display_provider.request_display_capture, video=True, audio=True
            )
            if session.screen_video is None:
                raise DeviceUnavailable("Display capture returned no video track", source="screen")

            if include_webcam:
                logger.info("Requesting webcam")
                session.webcam = self._request(
                    "webcam", self._device_provider.request_user_media, video=True, audio=False
                )
                if session.webcam_video is None:
                    raise DeviceUnavailable("Webcam returned no video track", source="webcam")

            logger.info("Requesting microphone")
            session.mic = self._request(
                "microphone", self._device_provider.request_user_media, video=False, audio=True
            )

        except CaptureError as e:
            logger.error(f"Failed to acquire {e.source}: {e}")
            session.release()
            raise

        logger.info(
            f"Acquired capture session: webcam={session.webcam is not None}, "
            f"audio_tracks={len(session.audio_tracks)}"
        )
        return session

    def release(self, session: Optional[CaptureSession]) -> None:
        """Release a session. Safe on None, partial or released sessions."""
        if session is not None:
            session.release()

    @staticmethod
    def _request(source: str, request, **kwargs) -> MediaStream:
        try:
            return request(**kwargs)
        except CaptureError:
            raise
        except Exception as e:
            raise DeviceUnavailable(f"{source} capture failed: {e}", source=source) from e

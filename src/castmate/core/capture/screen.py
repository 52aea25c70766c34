"""Display capture using the mss library.

The screen video track grabs one monitor at a fixed rate on a background
thread and keeps only the most recent frame. System audio is optional and is
read from a loopback input device through sounddevice.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import mss
import numpy as np
from mss.exception import ScreenShotError

from castmate.core.capture.devices import SoundDeviceAudioTrack
from castmate.core.capture.providers import DisplayCaptureProvider
from castmate.core.capture.tracks import MediaStream, VideoTrack
from castmate.core.errors import DeviceUnavailable, PermissionDenied
from castmate.core.models import TrackSettings

logger = logging.getLogger(__name__)


class ScreenVideoTrack(VideoTrack):
    """Video track backed by repeated mss screenshots of one monitor."""

    def __init__(self, monitor_index: int, monitor: dict, fps: int = 30):
        settings = TrackSettings(
            width=int(monitor["width"]),
            height=int(monitor["height"]),
            frame_rate=float(fps),
            device_id=f"screen_{monitor_index}",
        )
        super().__init__(label=f"Screen {monitor_index}", settings=settings)
        self._monitor_index = monitor_index
        self._monitor = monitor
        self._fps = max(1, min(fps, 60))
        self._capturing = True
        self._capture_thread = threading.Thread(
            target=self._capture_loop, name=f"Screen-{monitor_index}", daemon=True
        )
        self._capture_thread.start()
        logger.info(
            f"Started screen capture: monitor={monitor_index}, "
            f"size={monitor['width']}x{monitor['height']}, fps={self._fps}"
        )

    def _on_stop(self) -> None:
        self._capturing = False
        if self._capture_thread.is_alive() and self._capture_thread is not threading.current_thread():
            self._capture_thread.join(timeout=2.0)
        logger.info(f"Stopped screen capture: monitor={self._monitor_index}")

    def _capture_loop(self) -> None:
        """Grab frames at the configured rate until the track is stopped."""
        frame_interval = 1.0 / self._fps
        next_capture_time = time.time()

        try:
            with mss.mss() as sct:
                while self._capturing:
                    current_time = time.time()
                    if current_time < next_capture_time:
                        time.sleep(0.001)
                        continue

                    try:
                        screenshot = sct.grab(self._monitor)
                        img = np.array(screenshot)
                        # BGRA -> RGB
                        img = np.ascontiguousarray(img[:, :, 2::-1])
                        self._push_frame(img)
                    except ScreenShotError as e:
                        logger.error(f"Error grabbing screen frame: {e}")
                        time.sleep(frame_interval)
                        continue

                    next_capture_time += frame_interval
                    if next_capture_time < current_time:
                        next_capture_time = current_time + frame_interval

        except Exception as e:
            logger.error(f"Error in screen capture loop: {e}", exc_info=True)
        finally:
            self._capturing = False
            logger.debug("Screen capture loop ended")


class MSSDisplayCaptureProvider(DisplayCaptureProvider):
    """Display capture provider for a fixed, preconfigured monitor.

    There is no interactive picker: the monitor is chosen through settings.
    System audio is only captured when a loopback input device is configured,
    otherwise the returned stream has no audio track.
    """

    def __init__(
        self,
        monitor_index: int = 1,
        fps: int = 30,
        audio_device: Optional[str] = None,
        sample_rate: int = 48000,
        channels: int = 2,
    ):
        self._monitor_index = monitor_index
        self._fps = fps
        self._audio_device = audio_device
        self._sample_rate = sample_rate
        self._channels = channels

    def request_display_capture(self, video: bool = True, audio: bool = True) -> MediaStream:
        stream = MediaStream()

        if video:
            try:
                with mss.mss() as sct:
                    monitors = list(sct.monitors)
            except ScreenShotError as e:
                # mss cannot reach the display server (or lacks screen recording rights)
                raise PermissionDenied(f"Screen capture refused: {e}", source="screen") from e

            if not 0 <= self._monitor_index < len(monitors):
                raise DeviceUnavailable(
                    f"Monitor {self._monitor_index} not found "
                    f"({len(monitors) - 1} monitors available)",
                    source="screen",
                )
            stream.add_track(
                ScreenVideoTrack(self._monitor_index, monitors[self._monitor_index], self._fps)
            )

        if audio and self._audio_device is not None:
            try:
                stream.add_track(
                    SoundDeviceAudioTrack(
                        self._audio_device,
                        sample_rate=self._sample_rate,
                        channels=self._channels,
                        label="System audio",
                    )
                )
            except Exception:
                stream.stop()
                raise
        elif audio:
            logger.info("No system audio device configured, display stream has no audio")

        return stream

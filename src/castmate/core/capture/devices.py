"""Camera and microphone capture.

Camera frames are read with OpenCV on a background thread; microphone samples
arrive through a sounddevice (PortAudio) input stream callback.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional, Union

import cv2
import numpy as np
import sounddevice as sd

from castmate.core.capture.providers import DeviceCaptureProvider
from castmate.core.capture.tracks import AudioTrack, MediaStream, VideoTrack
from castmate.core.errors import DeviceUnavailable
from castmate.core.models import TrackSettings

logger = logging.getLogger(__name__)


def _parse_audio_device(device: Optional[str]) -> Union[int, str, None]:
    """Accept "3", "audio_3" or a device name substring."""
    if device is None:
        return None
    if device.startswith("audio_"):
        device = device.split("_", 1)[1]
    return int(device) if device.isdigit() else device


# ============================================================================
# Audio
# ============================================================================


class SoundDeviceAudioTrack(AudioTrack):
    """Audio track fed by a sounddevice input stream."""

    def __init__(
        self,
        device: Optional[str] = None,
        sample_rate: int = 48000,
        channels: int = 1,
        label: str = "Microphone",
        block_duration: float = 0.02,
    ):
        settings = TrackSettings(
            sample_rate=sample_rate,
            channels=channels,
            device_id=device or "default",
        )
        super().__init__(label=label, settings=settings)

        try:
            self._stream = sd.InputStream(
                device=_parse_audio_device(device),
                channels=channels,
                samplerate=sample_rate,
                blocksize=int(sample_rate * block_duration),
                dtype="float32",
                callback=self._audio_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"Failed to open audio device {device!r}: {e}", source=label) from e

        logger.info(
            "Started audio capture: device=%s, sample_rate=%d, channels=%d",
            device or "default",
            sample_rate,
            channels,
        )

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.warning("Audio stream status: %s", status)
        self._push_samples(indata.copy())

    def _on_stop(self) -> None:
        self._stream.stop()
        self._stream.close()
        logger.info("Stopped audio capture: %s", self.label)


# ============================================================================
# Camera
# ============================================================================


class CameraVideoTrack(VideoTrack):
    """Video track reading frames from an OpenCV capture device."""

    def __init__(self, camera_index: int = 0, fps: int = 30):
        cap = cv2.VideoCapture(camera_index)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailable(f"Failed to open camera {camera_index}", source="webcam")

        cap.set(cv2.CAP_PROP_FPS, fps)
        settings = TrackSettings(
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or None,
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or None,
            frame_rate=float(fps),
            device_id=f"camera_{camera_index}",
        )
        super().__init__(label=f"Camera {camera_index}", settings=settings)

        self._cap = cap
        self._camera_index = camera_index
        self._fps = max(1, min(fps, 60))
        self._capturing = True
        self._capture_thread = threading.Thread(
            target=self._capture_loop, name=f"Camera-{camera_index}", daemon=True
        )
        self._capture_thread.start()
        logger.info(f"Started camera capture: device={camera_index}, fps={self._fps}")

    def _on_stop(self) -> None:
        self._capturing = False
        if self._capture_thread.is_alive() and self._capture_thread is not threading.current_thread():
            self._capture_thread.join(timeout=2.0)
        self._cap.release()
        logger.info(f"Stopped camera capture: device={self._camera_index}")

    def _capture_loop(self) -> None:
        frame_interval = 1.0 / self._fps
        failures = 0

        while self._capturing:
            ret, frame = self._cap.read()
            if not ret:
                failures += 1
                if failures % 30 == 1:
                    logger.warning(f"Camera {self._camera_index} returned no frame ({failures})")
                time.sleep(frame_interval)
                continue

            failures = 0
            self._push_frame(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))

        logger.debug("Camera capture loop ended")


# ============================================================================
# Provider
# ============================================================================


class LocalDeviceCaptureProvider(DeviceCaptureProvider):
    """Device capture provider for the local camera and microphone."""

    def __init__(
        self,
        camera_index: int = 0,
        mic_device: Optional[str] = None,
        fps: int = 30,
        sample_rate: int = 48000,
        channels: int = 1,
    ):
        self._camera_index = camera_index
        self._mic_device = mic_device
        self._fps = fps
        self._sample_rate = sample_rate
        self._channels = channels

    def request_user_media(self, video: bool = False, audio: bool = False) -> MediaStream:
        if not video and not audio:
            raise ValueError("At least one of video or audio must be requested")

        stream = MediaStream()
        try:
            if video:
                stream.add_track(CameraVideoTrack(self._camera_index, fps=self._fps))
            if audio:
                stream.add_track(
                    SoundDeviceAudioTrack(
                        self._mic_device,
                        sample_rate=self._sample_rate,
                        channels=self._channels,
                    )
                )
        except Exception:
            stream.stop()
            raise

        return stream

"""Wiring of the recorder pipeline with the real capture devices."""

import logging
from typing import Optional

from castmate.core.capture.devices import LocalDeviceCaptureProvider
from castmate.core.capture.manager import CaptureManager
from castmate.core.capture.screen import MSSDisplayCaptureProvider
from castmate.core.clock import RefreshClock, ThreadedRefreshClock
from castmate.core.encoder import PyAVEncoderSink, get_supported_mime_type
from castmate.core.models import RecorderSettings
from castmate.core.recorder import RecordingController
from castmate.core.synthesizer import StreamSynthesizer

logger = logging.getLogger(__name__)


def create_capture_manager(settings: RecorderSettings) -> CaptureManager:
    """Build a CaptureManager backed by mss, OpenCV and sounddevice."""
    display = MSSDisplayCaptureProvider(
        monitor_index=settings.monitor_index,
        fps=settings.capture_fps,
        audio_device=settings.system_audio_device,
        sample_rate=settings.sample_rate,
    )
    devices = LocalDeviceCaptureProvider(
        camera_index=settings.camera_index,
        mic_device=settings.mic_device,
        fps=settings.capture_fps,
        sample_rate=settings.sample_rate,
        channels=settings.channels,
    )
    return CaptureManager(display_provider=display, device_provider=devices)


def create_controller(
    settings: RecorderSettings,
    clock: Optional[RefreshClock] = None,
) -> RecordingController:
    """Build a RecordingController for the local machine.

    Args:
        settings: Recorder settings
        clock: Refresh clock for the compositor; a threaded 60 Hz clock by default

    Returns:
        RecordingController ready to start
    """
    if clock is None:
        clock = ThreadedRefreshClock(rate_hz=settings.refresh_rate)
    mime_type = get_supported_mime_type()
    logger.info(f"Recording as {mime_type}")

    def encoder_factory() -> PyAVEncoderSink:
        return PyAVEncoderSink(
            mime_type=mime_type,
            video_bitrate=settings.video_bitrate,
            fps=settings.capture_fps,
        )

    return RecordingController(
        capture_manager=create_capture_manager(settings),
        encoder_factory=encoder_factory,
        clock=clock,
        settings=settings,
        synthesizer=StreamSynthesizer(fps=settings.capture_fps),
    )

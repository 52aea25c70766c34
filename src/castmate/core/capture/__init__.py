"""Capture module for screen, webcam and microphone input.

This module provides the media track and stream types, the provider
contracts and their mss / OpenCV / sounddevice implementations, and the
CaptureManager that acquires and releases the sources of one recording.
"""

from castmate.core.capture.devices import (
    CameraVideoTrack,
    LocalDeviceCaptureProvider,
    SoundDeviceAudioTrack,
)
from castmate.core.capture.manager import CaptureManager, CaptureSession
from castmate.core.capture.providers import DeviceCaptureProvider, DisplayCaptureProvider
from castmate.core.capture.screen import MSSDisplayCaptureProvider, ScreenVideoTrack
from castmate.core.capture.tracks import AudioTrack, MediaStream, MediaTrack, VideoTrack

__all__ = [
    "AudioTrack",
    "CameraVideoTrack",
    "CaptureManager",
    "CaptureSession",
    "DeviceCaptureProvider",
    "DisplayCaptureProvider",
    "LocalDeviceCaptureProvider",
    "MSSDisplayCaptureProvider",
    "MediaStream",
    "MediaTrack",
    "ScreenVideoTrack",
    "SoundDeviceAudioTrack",
    "VideoTrack",
]

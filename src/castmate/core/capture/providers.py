"""Capture provider interfaces.

Providers wrap the OS-level capture APIs. The capture manager only talks to
these interfaces, so the compositing and recording logic can run against fake
providers in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from castmate.core.capture.tracks import MediaStream


class DisplayCaptureProvider(ABC):
    """Acquires the screen (video and optional system audio)."""

    @abstractmethod
    def request_display_capture(self, video: bool = True, audio: bool = True) -> MediaStream:
        """Request a display capture stream.

        Args:
            video: Include a screen video track
            audio: Include a system audio track when the platform offers one

        Returns:
            MediaStream with the granted tracks

        Raises:
            PermissionDenied: If screen capture is refused
            UserCancelled: If the user dismissed the source picker
            DeviceUnavailable: If no display can be captured
        """


class DeviceCaptureProvider(ABC):
    """Acquires camera video and microphone audio."""

    @abstractmethod
    def request_user_media(self, video: bool = False, audio: bool = False) -> MediaStream:
        """Request a device capture stream.

        Args:
            video: Include a camera video track
            audio: Include a microphone audio track

        Returns:
            MediaStream with the granted tracks

        Raises:
            PermissionDenied: If access to the device is refused
            DeviceUnavailable: If the device does not exist or cannot be opened
        """

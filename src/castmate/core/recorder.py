"""Recording controller for the screen and webcam recorder.

This module provides the RecordingController class that drives one recording
at a time through capture, compositing, stream synthesis and encoding, and
owns the resulting artifact.

State Machine:
    IDLE → RECORDING (start)
    RECORDING → STOPPED (stop)
    STOPPED → IDLE → RECORDING (restart)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

from castmate.core.capture.manager import CaptureManager, CaptureSession
from castmate.core.clock import RefreshClock
from castmate.core.compositor import FrameCompositor
from castmate.core.encoder import EncoderSink, container_type, file_extension
from castmate.core.errors import EmptyArtifactError, FinalizationError
from castmate.core.models import (
    CompositorState,
    CornerAnchor,
    RecorderMode,
    RecorderSettings,
    RecorderState,
    RecordingArtifact,
)
from castmate.core.synthesizer import CanvasTrack, StreamSynthesizer
from castmate.core.urls import ObjectURLRegistry

logger = logging.getLogger(__name__)

START_ERROR_MESSAGES = {
    RecorderMode.SCREEN: (
        "Failed to start recording. Please make sure you have granted screen sharing "
        "and microphone permissions."
    ),
    RecorderMode.SCREEN_WEBCAM: (
        "Failed to start recording. Please make sure you have granted screen sharing "
        "and webcam permissions."
    ),
}


class RecordingController:
    """Owns the recording lifecycle and the recorded artifact.

    Only one recording can be active per controller; the state machine
    rejects overlapping starts. Out-of-state calls to ``start()``, ``stop()``,
    ``restart()`` and ``delete()`` are logged and return False.

    Events (see ``register_callback``):
        state_changed(state), recording_started(), recording_stopped(artifact),
        recording_deleted(), error(error)
    """

    def __init__(
        self,
        capture_manager: CaptureManager,
        encoder_factory: Callable[[], EncoderSink],
        clock: RefreshClock,
        settings: Optional[RecorderSettings] = None,
        url_registry: Optional[ObjectURLRegistry] = None,
        synthesizer: Optional[StreamSynthesizer] = None,
    ):
        """Initialize the RecordingController.

        Args:
            capture_manager: Acquires the live sources for each recording
            encoder_factory: Creates a fresh encoder sink per recording
            clock: Refresh clock driving the compositor draw loop
            settings: Recorder settings (defaults to the combined recorder)
            url_registry: Registry for preview and download object URLs
            synthesizer: Builds the output stream
        """
        self._settings = settings if settings is not None else RecorderSettings()
        self._capture_manager = capture_manager
        self._encoder_factory = encoder_factory
        self._clock = clock
        self._urls = url_registry if url_registry is not None else ObjectURLRegistry()
        if synthesizer is None:
            synthesizer = StreamSynthesizer(fps=self._settings.capture_fps)
        self._synthesizer = synthesizer

        self._state = RecorderState.IDLE
        self._compositor_state = CompositorState(
            webcam_position=self._settings.webcam_position,
            show_webcam=self._settings.show_webcam,
        )

        # Per-recording resources
        self._session: Optional[CaptureSession] = None
        self._compositor: Optional[FrameCompositor] = None
        self._canvas_track: Optional[CanvasTrack] = None
        self._encoder: Optional[EncoderSink] = None

        self._artifact: Optional[RecordingArtifact] = None
        self._preview_url: Optional[str] = None
        self._last_error: Optional[str] = None
        self._callbacks: dict[str, list[Callable]] = {}

        logger.info(f"RecordingController initialized: mode={self._settings.mode.value}")

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def mode(self) -> RecorderMode:
        return self._settings.mode

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def artifact(self) -> Optional[RecordingArtifact]:
        return self._artifact

    @property
    def preview_url(self) -> Optional[str]:
        """Object URL of the sealed recording, while one is displayed."""
        return self._preview_url

    @property
    def url_registry(self) -> ObjectURLRegistry:
        return self._urls

    @property
    def compositor(self) -> Optional[FrameCompositor]:
        return self._compositor

    @property
    def compositor_state(self) -> CompositorState:
        return self._compositor_state

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def last_error(self) -> Optional[str]:
        """User-facing description of the most recent failure."""
        return self._last_error

    # ========================================================================
    # Overlay Controls
    # ========================================================================

    def set_webcam_position(self, corner: CornerAnchor) -> None:
        """Move the webcam overlay; applies from the next drawn frame."""
        self._compositor_state.webcam_position = corner
        logger.info(f"Webcam position: {corner.value}")

    def set_show_webcam(self, visible: bool) -> None:
        """Show or hide the webcam overlay; applies from the next drawn frame."""
        self._compositor_state.show_webcam = visible
        logger.info(f"Webcam overlay visible: {visible}")

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self) -> bool:
        """Start recording.

        Returns:
            True if recording started, False if the controller is not idle

        Raises:
            CaptureError: If a source could not be acquired. The controller
                stays IDLE and nothing is left running.
        """
        if self._state is not RecorderState.IDLE:
            logger.warning(f"Cannot start recording in state {self._state.value}")
            return False

        self._last_error = None
        artifact = RecordingArtifact()

        try:
            self._session = self._capture_manager.acquire(
                include_webcam=self._settings.mode.uses_webcam
            )

            if self._settings.mode.uses_webcam:
                self._compositor_state.frame_count = 0
                self._compositor = FrameCompositor(
                    screen=self._session.screen_video,
                    webcam=self._session.webcam_video,
                    clock=self._clock,
                    state=self._compositor_state,
                )
                self._compositor.start()
                self._canvas_track = self._synthesizer.capture_canvas(self._compositor)
                video = self._canvas_track
                timeslice_ms: Optional[int] = self._settings.timeslice_ms
            else:
                video = self._session.screen_video
                timeslice_ms = None

            output = self._synthesizer.synthesize(video, self._session.audio_sources)

            self._encoder = self._encoder_factory()
            self._encoder.start(output, timeslice_ms, artifact.append)

        except Exception as e:
            logger.error(f"Error starting recording: {e}", exc_info=True)
            if self._encoder is not None:
                self._encoder.force_stop()
                self._encoder = None
            self._teardown()
            self._last_error = START_ERROR_MESSAGES[self._settings.mode]
            self._emit_event("error", error=e)
            raise

        self._artifact = artifact
        self._set_state(RecorderState.RECORDING)
        self._emit_event("recording_started")
        logger.info("Recording started")
        return True

    def stop(self) -> bool:
        """Stop recording and seal the artifact.

        Devices are released and the draw loop is halted even if the encoder
        fails to finalize.

        Returns:
            True if a usable recording was produced, False if not recording

        Raises:
            FinalizationError: If the encoder failed to finalize
            EmptyArtifactError: If the recording contains zero bytes
        """
        if self._state is not RecorderState.RECORDING:
            logger.warning(f"Cannot stop recording in state {self._state.value}")
            return False

        encoder = self._encoder
        error: Optional[Exception] = None
        try:
            if encoder is not None:
                encoder.stop()
        except FinalizationError as e:
            error = e
        except Exception as e:
            logger.error(f"Unexpected encoder error: {e}", exc_info=True)
            error = FinalizationError(f"Encoder failed: {e}")
        finally:
            self._encoder = None
            self._teardown()

        artifact = self._artifact if self._artifact is not None else RecordingArtifact()
        self._artifact = artifact
        mime_type = container_type(encoder.mime_type) if encoder is not None else "video/webm"
        blob = artifact.seal(mime_type)
        logger.debug(f"Number of chunks: {artifact.chunk_count}")
        logger.debug(f"Final blob size: {blob.size}")

        if error is None and blob.size == 0:
            error = EmptyArtifactError("Recording resulted in empty blob")

        if error is not None:
            artifact.usable = False
        else:
            self._preview_url = self._urls.create(blob)

        self._set_state(RecorderState.STOPPED)

        if error is not None:
            self._last_error = f"Failed to create recording: {error}"
            logger.error(self._last_error)
            self._emit_event("error", error=error)
            raise error

        self._emit_event("recording_stopped", artifact=artifact)
        logger.info(f"Recording stopped: {blob.size} bytes in {artifact.chunk_count} chunks")
        return True

    def restart(self) -> bool:
        """Discard the current recording and start a new one.

        Returns:
            True if recording started, False if the controller was not stopped

        Raises:
            CaptureError: If a source could not be acquired (controller ends IDLE)
        """
        if self._state is not RecorderState.STOPPED:
            logger.warning(f"Cannot restart recording in state {self._state.value}")
            return False

        self._discard_artifact()
        self._set_state(RecorderState.IDLE)
        return self.start()

    def delete(self) -> bool:
        """Drop the displayed recording without starting a new one."""
        if self._state is not RecorderState.STOPPED:
            logger.warning(f"Cannot delete recording in state {self._state.value}")
            return False

        self._discard_artifact()
        self._emit_event("recording_deleted")
        logger.info("Recording deleted")
        return True

    def download(self, directory: Optional[Path] = None) -> Optional[Path]:
        """Save the recording as ``screen-recording-<epoch ms>.webm``.

        Args:
            directory: Target directory (defaults to the configured output_dir)

        Returns:
            Path of the written file, or None if there is nothing to save

        Raises:
            OSError: If the file cannot be written
        """
        artifact = self._artifact
        if self._state is not RecorderState.STOPPED or artifact is None or not artifact.usable:
            logger.warning("No recording available to download")
            return None

        blob = artifact.blob
        directory = Path(directory or self._settings.output_dir)
        filename = f"screen-recording-{int(time.time() * 1000)}{file_extension(blob.mime_type)}"
        path = directory / filename

        url = self._urls.create(blob)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(self._urls.resolve(url).data)
        except OSError as e:
            self._last_error = f"Failed to download: {e}"
            logger.error(self._last_error)
            raise
        finally:
            self._urls.revoke(url)

        logger.info(f"Recording saved to {path}")
        return path

    def shutdown(self) -> None:
        """Release everything, abandoning an in-progress recording."""
        if self._encoder is not None:
            self._encoder.force_stop()
            self._encoder = None
        self._teardown()
        self._urls.revoke(self._preview_url)
        self._preview_url = None
        logger.info("RecordingController shut down")

    # ========================================================================
    # Internal
    # ========================================================================

    def _teardown(self) -> None:
        """Halt the draw loop and release every device. Never raises."""
        if self._compositor is not None:
            try:
                self._compositor.stop()
            except Exception as e:
                logger.error(f"Error stopping compositor: {e}", exc_info=True)

        if self._canvas_track is not None:
            self._canvas_track.stop()
            self._canvas_track = None

        try:
            self._capture_manager.release(self._session)
        except Exception as e:
            logger.error(f"Error releasing capture session: {e}", exc_info=True)
        self._session = None

    def _discard_artifact(self) -> None:
        self._urls.revoke(self._preview_url)
        self._preview_url = None
        self._artifact = None
        self._compositor = None

    def _set_state(self, state: RecorderState) -> None:
        if state is self._state:
            return
        logger.debug(f"State {self._state.value} → {state.value}")
        self._state = state
        self._emit_event("state_changed", state=state)

    # ========================================================================
    # Events
    # ========================================================================

    def register_callback(self, event: str, callback: Callable) -> None:
        """Register a callback for an event."""
        self._callbacks.setdefault(event, []).append(callback)
        logger.debug(f"Registered callback for event: {event}")

    def unregister_callback(self, event: str, callback: Callable) -> None:
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)
            logger.debug(f"Unregistered callback for event: {event}")

    def _emit_event(self, event: str, **kwargs) -> None:
        for callback in self._callbacks.get(event, []):
            try:
                callback(**kwargs)
            except Exception as e:
                logger.error(f"Error in callback for event {event}: {e}", exc_info=True)

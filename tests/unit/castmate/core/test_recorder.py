"""Unit tests for RecordingController."""

import re

import pytest

from castmate.core.capture.manager import CaptureManager
from castmate.core.compositor import overlay_rect
from castmate.core.errors import (
    EmptyArtifactError,
    FinalizationError,
    PermissionDenied,
    UserCancelled,
)
from castmate.core.models import CornerAnchor, RecorderMode, RecorderState
from castmate.core.recorder import RecordingController
from castmate.core.synthesizer import CanvasTrack
from fakes import (
    SCREEN_COLOR,
    WEBCAM_COLOR,
    FakeDeviceProvider,
    FakeDisplayProvider,
    all_tracks,
)


@pytest.fixture
def events(controller):
    """Every event emitted by the controller, as (name, kwargs) tuples."""
    recorded = []
    names = (
        "state_changed",
        "recording_started",
        "recording_stopped",
        "recording_deleted",
        "error",
    )
    for name in names:
        controller.register_callback(
            name, lambda _name=name, **kwargs: recorded.append((_name, kwargs))
        )
    return recorded


def overlay_pixel(controller, corner: CornerAnchor) -> tuple:
    x, y, w, h = overlay_rect(controller.compositor.canvas_size, corner).to_pixels()
    return tuple(int(v) for v in controller.compositor.snapshot()[y + h // 2, x + w // 2])


def make_controller(display, devices, encoder_factory, clock, settings):
    return RecordingController(
        capture_manager=CaptureManager(display, devices),
        encoder_factory=encoder_factory,
        clock=clock,
        settings=settings,
    )


# ============================================================================
# Start
# ============================================================================


class TestStart:
    """Test cases for RecordingController.start()."""

    def test_initial_state(self, controller):
        assert controller.state is RecorderState.IDLE
        assert controller.artifact is None
        assert controller.preview_url is None
        assert controller.last_error is None

    def test_keeps_empty_url_registry(self, controller, url_registry):
        assert len(url_registry) == 0
        assert controller.url_registry is url_registry

    def test_start_combined_recorder(self, controller, encoders, clock):
        assert controller.start()

        assert controller.state is RecorderState.RECORDING
        assert len(encoders) == 1
        encoder = encoders[0]
        assert encoder.is_encoding
        assert encoder.timeslice_ms == 500

        video = encoder.stream.get_video_tracks()
        assert len(video) == 1
        assert isinstance(video[0], CanvasTrack)
        assert [t.label for t in encoder.stream.get_audio_tracks()] == [
            "System audio",
            "Microphone",
        ]

        assert controller.compositor.is_running
        assert controller.compositor.state.frame_count == 1
        assert clock.pending_count == 1

    def test_start_basic_recorder(
        self, display_provider, device_provider, encoder_factory, encoders, clock, recorder_settings
    ):
        recorder_settings.mode = RecorderMode.SCREEN
        controller = make_controller(
            display_provider, device_provider, encoder_factory, clock, recorder_settings
        )

        controller.start()

        encoder = encoders[0]
        assert encoder.timeslice_ms is None
        assert encoder.stream.get_video_tracks() == [controller.session.screen_video]
        assert controller.compositor is None
        assert clock.pending_count == 0
        assert device_provider.calls == [(False, True)]

    def test_start_while_recording_is_rejected(self, controller, encoders):
        controller.start()
        assert not controller.start()
        assert len(encoders) == 1
        assert controller.state is RecorderState.RECORDING

    def test_start_emits_events(self, controller, events):
        controller.start()
        assert events == [
            ("state_changed", {"state": RecorderState.RECORDING}),
            ("recording_started", {}),
        ]

    def test_webcam_denied(self, display_provider, encoder_factory, encoders, clock, recorder_settings):
        devices = FakeDeviceProvider(camera_error=PermissionDenied("denied", source="webcam"))
        controller = make_controller(
            display_provider, devices, encoder_factory, clock, recorder_settings
        )
        errors = []
        controller.register_callback("error", lambda error: errors.append(error))

        with pytest.raises(PermissionDenied):
            controller.start()

        assert controller.state is RecorderState.IDLE
        assert "webcam permissions" in controller.last_error
        assert len(errors) == 1
        assert encoders == []
        assert all(not t.is_live for t in all_tracks(display_provider))
        assert clock.pending_count == 0

    def test_basic_recorder_error_mentions_microphone(
        self, display_provider, encoder_factory, clock, recorder_settings
    ):
        recorder_settings.mode = RecorderMode.SCREEN
        devices = FakeDeviceProvider(mic_error=PermissionDenied("denied", source="microphone"))
        controller = make_controller(
            display_provider, devices, encoder_factory, clock, recorder_settings
        )

        with pytest.raises(PermissionDenied):
            controller.start()
        assert "microphone permissions" in controller.last_error

    def test_picker_cancelled(self, device_provider, encoder_factory, clock, recorder_settings):
        display = FakeDisplayProvider(error=UserCancelled("cancelled", source="screen"))
        controller = make_controller(
            display, device_provider, encoder_factory, clock, recorder_settings
        )

        with pytest.raises(UserCancelled):
            controller.start()
        assert controller.state is RecorderState.IDLE

    @pytest.mark.parametrize("encoder_options", [{"start_error": RuntimeError("no codec")}])
    def test_encoder_start_failure_tears_down(
        self, controller, encoders, display_provider, device_provider, clock
    ):
        with pytest.raises(RuntimeError):
            controller.start()

        assert controller.state is RecorderState.IDLE
        assert encoders[0].forced
        assert all(not t.is_live for t in all_tracks(display_provider, device_provider))
        assert clock.pending_count == 0
        assert controller.session is None

    def test_start_after_failed_start(self, display_provider, encoder_factory, clock, recorder_settings):
        devices = FakeDeviceProvider(camera_error=PermissionDenied("denied", source="webcam"))
        controller = make_controller(
            display_provider, devices, encoder_factory, clock, recorder_settings
        )
        with pytest.raises(PermissionDenied):
            controller.start()

        devices.camera_error = None
        assert controller.start()
        assert controller.last_error is None


# ============================================================================
# Stop
# ============================================================================


class TestStop:
    """Test cases for RecordingController.stop()."""

    def test_stop_when_idle_is_rejected(self, controller):
        assert not controller.stop()
        assert controller.state is RecorderState.IDLE

    def test_stop_seals_artifact(self, controller, encoders, url_registry):
        controller.start()
        assert controller.stop()

        artifact = controller.artifact
        assert controller.state is RecorderState.STOPPED
        assert artifact.chunks == [b"chunk-1", b"chunk-2", b"chunk-3"]
        assert artifact.blob.data == b"chunk-1chunk-2chunk-3"
        assert artifact.blob.mime_type == "video/webm"
        assert artifact.usable
        assert url_registry.resolve(controller.preview_url) is artifact.blob
        assert encoders[0].stopped

    def test_stop_releases_everything(
        self, controller, display_provider, device_provider, clock
    ):
        controller.start()
        compositor = controller.compositor
        controller.stop()

        assert not compositor.is_running
        assert clock.pending_count == 0
        tracks = all_tracks(display_provider, device_provider)
        assert len(tracks) == 4
        assert all(not t.is_live for t in tracks)
        assert controller.session is None

    def test_stop_emits_events(self, controller, events):
        controller.start()
        controller.stop()

        names = [name for name, _ in events]
        assert names == ["state_changed", "recording_started", "state_changed", "recording_stopped"]
        assert events[2][1] == {"state": RecorderState.STOPPED}
        assert events[3][1] == {"artifact": controller.artifact}

    def test_canvas_track_stopped(self, controller, encoders):
        controller.start()
        canvas = encoders[0].stream.get_video_tracks()[0]
        controller.stop()
        assert not canvas.is_live

    @pytest.mark.parametrize("encoder_options", [{"chunks": ()}])
    def test_empty_recording(self, controller, display_provider, events):
        controller.start()

        with pytest.raises(EmptyArtifactError):
            controller.stop()

        assert controller.state is RecorderState.STOPPED
        assert not controller.artifact.usable
        assert controller.preview_url is None
        assert controller.last_error.startswith("Failed to create recording")
        assert all(not t.is_live for t in all_tracks(display_provider))
        assert [name for name, _ in events][-1] == "error"

    @pytest.mark.parametrize("encoder_options", [{"chunks": (b"", b"")}])
    def test_only_empty_chunks(self, controller):
        controller.start()
        with pytest.raises(EmptyArtifactError):
            controller.stop()
        assert controller.artifact.chunk_count == 0

    @pytest.mark.parametrize(
        "encoder_options", [{"stop_error": FinalizationError("muxer failed")}]
    )
    def test_finalization_failure_still_releases(
        self, controller, display_provider, device_provider, clock
    ):
        controller.start()

        with pytest.raises(FinalizationError):
            controller.stop()

        assert controller.state is RecorderState.STOPPED
        assert controller.artifact.chunk_count == 3
        assert not controller.artifact.usable
        assert controller.preview_url is None
        assert clock.pending_count == 0
        assert all(not t.is_live for t in all_tracks(display_provider, device_provider))

    @pytest.mark.parametrize("encoder_options", [{"stop_error": OSError("disk gone")}])
    def test_unexpected_encoder_error_becomes_finalization_error(self, controller):
        controller.start()
        with pytest.raises(FinalizationError):
            controller.stop()
        assert controller.state is RecorderState.STOPPED


# ============================================================================
# Overlay Controls
# ============================================================================


class TestOverlayControls:
    """Test cases for webcam overlay controls while recording."""

    def test_hide_webcam_mid_recording(self, controller, clock):
        controller.start()
        assert overlay_pixel(controller, CornerAnchor.TOP_RIGHT) == WEBCAM_COLOR

        controller.set_show_webcam(False)
        clock.advance(1)
        assert overlay_pixel(controller, CornerAnchor.TOP_RIGHT) == SCREEN_COLOR

        controller.set_show_webcam(True)
        clock.advance(1)
        assert overlay_pixel(controller, CornerAnchor.TOP_RIGHT) == WEBCAM_COLOR

    def test_move_webcam_mid_recording(self, controller, clock):
        controller.start()
        controller.set_webcam_position(CornerAnchor.BOTTOM_LEFT)
        clock.advance(1)

        assert overlay_pixel(controller, CornerAnchor.BOTTOM_LEFT) == WEBCAM_COLOR
        assert overlay_pixel(controller, CornerAnchor.TOP_RIGHT) == SCREEN_COLOR

    def test_choice_made_while_idle_applies_to_first_frame(self, controller):
        controller.set_webcam_position(CornerAnchor.TOP_LEFT)
        controller.start()
        assert overlay_pixel(controller, CornerAnchor.TOP_LEFT) == WEBCAM_COLOR

    def test_settings_seed_overlay_state(
        self, display_provider, device_provider, encoder_factory, clock, recorder_settings
    ):
        recorder_settings.webcam_position = CornerAnchor.BOTTOM_RIGHT
        recorder_settings.show_webcam = False
        controller = make_controller(
            display_provider, device_provider, encoder_factory, clock, recorder_settings
        )
        assert controller.compositor_state.webcam_position is CornerAnchor.BOTTOM_RIGHT
        assert not controller.compositor_state.show_webcam


# ============================================================================
# Restart / Delete / Download
# ============================================================================


class TestRestart:
    """Test cases for RecordingController.restart()."""

    def test_restart_goes_through_idle(self, controller, encoders, url_registry, events):
        controller.start()
        controller.stop()
        old_url = controller.preview_url
        old_artifact = controller.artifact
        events.clear()

        assert controller.restart()

        assert controller.state is RecorderState.RECORDING
        assert [kwargs.get("state") for name, kwargs in events if name == "state_changed"] == [
            RecorderState.IDLE,
            RecorderState.RECORDING,
        ]
        assert old_url not in url_registry
        assert controller.preview_url is None
        assert controller.artifact is not old_artifact
        assert controller.artifact.chunk_count == 0
        assert len(encoders) == 2

    def test_restart_records_fresh_artifact(self, controller):
        controller.start()
        controller.stop()
        controller.restart()
        controller.stop()
        assert controller.artifact.chunks == [b"chunk-1", b"chunk-2", b"chunk-3"]

    def test_restart_when_not_stopped_is_rejected(self, controller):
        assert not controller.restart()
        controller.start()
        assert not controller.restart()
        assert controller.state is RecorderState.RECORDING

    def test_restart_failure_leaves_idle(self, controller, device_provider):
        controller.start()
        controller.stop()
        device_provider.camera_error = PermissionDenied("revoked", source="webcam")

        with pytest.raises(PermissionDenied):
            controller.restart()

        assert controller.state is RecorderState.IDLE
        assert controller.artifact is None


class TestDelete:
    """Test cases for RecordingController.delete()."""

    def test_delete_drops_recording(self, controller, url_registry, events):
        controller.start()
        controller.stop()
        url = controller.preview_url

        assert controller.delete()

        assert controller.state is RecorderState.STOPPED
        assert controller.artifact is None
        assert controller.preview_url is None
        assert url not in url_registry
        assert events[-1] == ("recording_deleted", {})

    def test_delete_when_not_stopped_is_rejected(self, controller):
        assert not controller.delete()
        controller.start()
        assert not controller.delete()

    def test_record_again_after_delete(self, controller):
        controller.start()
        controller.stop()
        controller.delete()
        assert controller.restart()


class TestDownload:
    """Test cases for RecordingController.download()."""

    def test_download_writes_file(self, controller, url_registry, tmp_path):
        controller.start()
        controller.stop()

        path = controller.download(tmp_path)

        assert path.parent == tmp_path
        assert re.fullmatch(r"screen-recording-\d{13}\.webm", path.name)
        assert path.read_bytes() == b"chunk-1chunk-2chunk-3"
        # Only the preview URL remains
        assert len(url_registry) == 1

    def test_download_defaults_to_output_dir(self, controller, recorder_settings):
        controller.start()
        controller.stop()
        path = controller.download()
        assert path.parent == recorder_settings.output_dir

    def test_download_creates_directory(self, controller, tmp_path):
        controller.start()
        controller.stop()
        path = controller.download(tmp_path / "nested" / "dir")
        assert path.exists()

    def test_download_without_recording(self, controller):
        assert controller.download() is None
        controller.start()
        assert controller.download() is None

    @pytest.mark.parametrize("encoder_options", [{"chunks": ()}])
    def test_download_unusable_recording(self, controller):
        controller.start()
        with pytest.raises(EmptyArtifactError):
            controller.stop()
        assert controller.download() is None


# ============================================================================
# Shutdown / Callbacks
# ============================================================================


class TestShutdown:
    """Test cases for RecordingController.shutdown()."""

    def test_shutdown_while_recording(self, controller, encoders, display_provider, device_provider):
        controller.start()
        controller.shutdown()

        assert encoders[0].forced
        assert all(not t.is_live for t in all_tracks(display_provider, device_provider))

    def test_shutdown_revokes_preview(self, controller, url_registry):
        controller.start()
        controller.stop()
        controller.shutdown()
        assert len(url_registry) == 0


class TestCallbacks:
    """Test cases for event callbacks."""

    def test_failing_callback_does_not_break_controller(self, controller):
        controller.register_callback("recording_started", lambda: 1 / 0)
        assert controller.start()
        assert controller.state is RecorderState.RECORDING

    def test_unregister_callback(self, controller):
        calls = []

        def on_started():
            calls.append(True)

        controller.register_callback("recording_started", on_started)
        controller.unregister_callback("recording_started", on_started)
        controller.start()

        assert calls == []

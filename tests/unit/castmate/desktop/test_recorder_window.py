"""Unit tests for the recorder window."""

import pytest

from castmate.core.models import CornerAnchor, RecorderState
from castmate.core.settings import SettingsManager
from castmate.desktop.main import RecorderWindow


@pytest.fixture
def window(qtbot, controller, recorder_settings):
    window = RecorderWindow(settings=recorder_settings, controller=controller)
    qtbot.addWidget(window)
    return window


def visible_buttons(window: RecorderWindow) -> set[str]:
    buttons = (
        window._start_button,
        window._stop_button,
        window._restart_button,
        window._download_button,
        window._delete_button,
    )
    return {b.text() for b in buttons if not b.isHidden()}


class TestRecorderWindow:
    """Test cases for RecorderWindow."""

    def test_idle_shows_start(self, window):
        assert visible_buttons(window) == {"Start Recording"}

    def test_start_and_stop(self, qtbot, window, controller):
        window._start_button.click()
        assert controller.state is RecorderState.RECORDING
        assert visible_buttons(window) == {"Stop Recording"}

        window._stop_button.click()
        assert controller.state is RecorderState.STOPPED
        assert visible_buttons(window) == {"Record Again", "Download", "Delete"}
        assert "Recording ready" in window._recording_info_label.text()

    def test_stopped_recording_plays_back(self, qtbot, window, controller, url_registry):
        controller.start()
        controller.stop()

        assert not window._player.isHidden()
        assert window._preview_label.isHidden()
        assert window._player.blob is url_registry.resolve(controller.preview_url)
        assert window._player.blob is controller.artifact.blob

    def test_delete_hides_recording_actions(self, qtbot, window, controller):
        controller.start()
        controller.stop()

        window._delete_button.click()

        assert controller.artifact is None
        assert window._player.blob is None
        assert window._player.isHidden()
        assert visible_buttons(window) == {"Record Again"}

    def test_record_again(self, qtbot, window, controller):
        controller.start()
        controller.stop()

        window._restart_button.click()

        assert controller.state is RecorderState.RECORDING
        assert window._player.blob is None
        assert window._player.isHidden()

    def test_start_failure_shows_error(self, qtbot, window, device_provider):
        device_provider.camera_error = PermissionError("denied")

        window._start_button.click()

        assert not window._error_label.isHidden()
        assert "webcam permissions" in window._error_label.text()
        assert visible_buttons(window) == {"Start Recording"}

    def test_corner_selector_updates_controller(self, window, controller):
        index = window._position_combo.findData(CornerAnchor.BOTTOM_LEFT.value)
        window._position_combo.setCurrentIndex(index)
        assert controller.compositor_state.webcam_position is CornerAnchor.BOTTOM_LEFT

    def test_webcam_checkbox_updates_controller(self, window, controller):
        window._webcam_checkbox.setChecked(False)
        assert not controller.compositor_state.show_webcam

    def test_preview_shows_canvas(self, qtbot, window, controller):
        controller.start()
        window._update_preview()
        assert window._preview_label.pixmap() is not None
        assert not window._preview_label.pixmap().isNull()

    def test_close_releases_devices_and_saves(self, qtbot, controller, recorder_settings, tmp_path):
        manager = SettingsManager(config_dir=tmp_path / "config")
        window = RecorderWindow(
            settings=recorder_settings, settings_manager=manager, controller=controller
        )
        qtbot.addWidget(window)
        controller.start()
        window._webcam_checkbox.setChecked(False)

        window.close()

        assert controller.session is None
        assert not manager.load_settings().show_webcam


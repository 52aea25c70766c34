"""
Recorder window for the castmate desktop application.

This module provides the main window: a live preview of what is being
recorded, the webcam overlay controls, per-state recording buttons and an
error banner.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PySide6.QtCore import Qt, QTimer, Slot
from PySide6.QtGui import QAction, QImage, QPixmap
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QDialog,
    QFileDialog,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from castmate.core.errors import RecorderError
from castmate.core.logging import LogConsoleHandler
from castmate.core.models import CornerAnchor, RecorderSettings, RecorderState
from castmate.core.recorder import RecordingController
from castmate.core.settings import SettingsManager
from castmate.desktop.clock import QtRefreshClock
from castmate.desktop.playback import RecordingPlayer

logger = logging.getLogger(__name__)

PREVIEW_INTERVAL_MS = 33  # ~30 FPS


def frame_to_pixmap(frame: np.ndarray) -> QPixmap:
    """Convert an RGB frame to a QPixmap."""
    if not frame.flags["C_CONTIGUOUS"]:
        frame = frame.copy()
    height, width, channels = frame.shape
    q_image = QImage(frame.data, width, height, channels * width, QImage.Format.Format_RGB888)
    # QImage does not own the buffer, so copy before the frame goes away
    return QPixmap.fromImage(q_image.copy())


class LogConsoleDialog(QDialog):
    """Non-modal dialog showing log lines from a LogConsoleHandler."""

    def __init__(self, log_handler: LogConsoleHandler, parent: Optional[QWidget] = None):
        super().__init__(parent)
        self.setWindowTitle("Log Console")
        self.setMinimumSize(800, 400)

        self._text = QPlainTextEdit(self)
        self._text.setReadOnly(True)
        self._text.setMaximumBlockCount(5000)

        clear_button = QPushButton("Clear", self)
        clear_button.clicked.connect(self._text.clear)

        layout = QVBoxLayout(self)
        layout.addWidget(self._text)
        layout.addWidget(clear_button, alignment=Qt.AlignmentFlag.AlignRight)

        log_handler.log_message.connect(self._on_log_message)

    @Slot(str, str)
    def _on_log_message(self, level: str, message: str) -> None:
        self._text.appendPlainText(message)


class RecorderWindow(QMainWindow):
    """Main window of the recorder.

    Buttons shown per state:
    - IDLE: Start Recording
    - RECORDING: Stop Recording
    - STOPPED: Record Again, Download, Delete (Download only with a usable recording)
    """

    def __init__(
        self,
        settings: Optional[RecorderSettings] = None,
        settings_manager: Optional[SettingsManager] = None,
        controller: Optional[RecordingController] = None,
        log_console_handler: Optional[LogConsoleHandler] = None,
        parent: Optional[QWidget] = None,
    ):
        """Initialize the recorder window.

        Args:
            settings: Recorder settings; loaded from settings_manager when omitted
            settings_manager: Used to persist overlay choices on close
            controller: Recording controller; built for the local devices when omitted
            log_console_handler: Handler feeding the log console dialog
            parent: Optional parent widget
        """
        super().__init__(parent)
        logger.info("Initializing RecorderWindow")

        self.setWindowTitle("castmate")
        self.setMinimumSize(960, 640)

        self._settings_manager = settings_manager
        if settings is None:
            settings = (
                settings_manager.load_settings() if settings_manager else RecorderSettings()
            )
        self._settings = settings

        self._clock: Optional[QtRefreshClock] = None
        if controller is None:
            from castmate.app import create_controller

            self._clock = QtRefreshClock(rate_hz=settings.refresh_rate, parent=self)
            controller = create_controller(settings, clock=self._clock)
        self._controller = controller

        self._log_console_handler = log_console_handler
        self._log_console_dialog: Optional[LogConsoleDialog] = None

        self._setup_menu_bar()
        self._setup_central_widget()

        self._controller.register_callback("state_changed", self._on_state_changed)
        self._controller.register_callback("error", self._on_error)

        self._preview_timer = QTimer(self)
        self._preview_timer.timeout.connect(self._update_preview)
        self._preview_timer.start(PREVIEW_INTERVAL_MS)

        self._update_controls()
        logger.info("RecorderWindow initialized")

    @property
    def controller(self) -> RecordingController:
        return self._controller

    # ========================================================================
    # UI Setup
    # ========================================================================

    def _setup_menu_bar(self) -> None:
        menu_bar = self.menuBar()

        file_menu = menu_bar.addMenu("&File")
        exit_action = QAction("E&xit", self)
        exit_action.setShortcut("Ctrl+Q")
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        if self._log_console_handler is not None:
            view_menu = menu_bar.addMenu("&View")
            log_console_action = QAction("&Log Console", self)
            log_console_action.setShortcut("Ctrl+L")
            log_console_action.triggered.connect(self._show_log_console)
            view_menu.addAction(log_console_action)

    def _setup_central_widget(self) -> None:
        central = QWidget(self)
        layout = QVBoxLayout(central)

        self._preview_label = QLabel("Press Start Recording to begin", central)
        self._preview_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._preview_label.setMinimumSize(640, 360)
        self._preview_label.setStyleSheet("background-color: black; color: white;")
        layout.addWidget(self._preview_label, stretch=1)

        self._player = RecordingPlayer(central)
        self._player.hide()
        layout.addWidget(self._player, stretch=1)

        self._recording_info_label = QLabel(central)
        self._recording_info_label.hide()
        layout.addWidget(self._recording_info_label)

        self._error_label = QLabel(central)
        self._error_label.setWordWrap(True)
        self._error_label.setStyleSheet("color: #c62828;")
        self._error_label.hide()
        layout.addWidget(self._error_label)

        # Overlay controls
        self._overlay_controls = QWidget(central)
        overlay_row = QHBoxLayout(self._overlay_controls)
        overlay_row.setContentsMargins(0, 0, 0, 0)
        self._position_combo = QComboBox(central)
        for corner in CornerAnchor:
            self._position_combo.addItem(corner.label, corner.value)
        self._position_combo.setCurrentIndex(
            self._position_combo.findData(self._controller.compositor_state.webcam_position.value)
        )
        self._position_combo.currentIndexChanged.connect(self._on_position_changed)

        self._webcam_checkbox = QCheckBox("Show webcam", central)
        self._webcam_checkbox.setChecked(self._controller.compositor_state.show_webcam)
        self._webcam_checkbox.toggled.connect(self._controller.set_show_webcam)

        overlay_row.addWidget(QLabel("Webcam position:", central))
        overlay_row.addWidget(self._position_combo)
        overlay_row.addWidget(self._webcam_checkbox)
        overlay_row.addStretch()
        layout.addWidget(self._overlay_controls)
        self._overlay_controls.setVisible(self._controller.mode.uses_webcam)

        # Recording buttons
        button_row = QHBoxLayout()
        self._start_button = QPushButton("Start Recording", central)
        self._stop_button = QPushButton("Stop Recording", central)
        self._restart_button = QPushButton("Record Again", central)
        self._download_button = QPushButton("Download", central)
        self._delete_button = QPushButton("Delete", central)

        self._start_button.clicked.connect(self._on_start_requested)
        self._stop_button.clicked.connect(self._on_stop_requested)
        self._restart_button.clicked.connect(self._on_restart_requested)
        self._download_button.clicked.connect(self._on_download_requested)
        self._delete_button.clicked.connect(self._on_delete_requested)

        for button in (
            self._start_button,
            self._stop_button,
            self._restart_button,
            self._download_button,
            self._delete_button,
        ):
            button_row.addWidget(button)
        button_row.addStretch()
        layout.addLayout(button_row)

        self.setCentralWidget(central)

    def _show_log_console(self) -> None:
        if self._log_console_handler is None:
            return
        if self._log_console_dialog is None:
            self._log_console_dialog = LogConsoleDialog(self._log_console_handler, parent=self)
        self._log_console_dialog.show()
        self._log_console_dialog.raise_()
        self._log_console_dialog.activateWindow()

    # ========================================================================
    # State Display
    # ========================================================================

    def _update_controls(self) -> None:
        state = self._controller.state
        artifact = self._controller.artifact

        self._start_button.setVisible(state is RecorderState.IDLE)
        self._stop_button.setVisible(state is RecorderState.RECORDING)
        self._restart_button.setVisible(state is RecorderState.STOPPED)
        self._delete_button.setVisible(state is RecorderState.STOPPED and artifact is not None)
        self._download_button.setVisible(
            state is RecorderState.STOPPED and artifact is not None and artifact.usable
        )

        self._update_playback()
        if state is RecorderState.STOPPED and self._player.blob is not None:
            size_mb = artifact.size / 1_000_000
            self._recording_info_label.setText(
                f"Recording ready: {size_mb:.1f} MB in {artifact.chunk_count} chunks"
            )
        elif state is RecorderState.STOPPED:
            self._preview_label.setText("No recording")
        self._recording_info_label.setVisible(self._player.blob is not None)

        if self._controller.last_error:
            self._error_label.setText(self._controller.last_error)
            self._error_label.show()
        else:
            self._error_label.hide()

    def _update_playback(self) -> None:
        """Show the finished recording in the player while one is displayed."""
        url = self._controller.preview_url
        blob = self._controller.url_registry.resolve(url) if url is not None else None

        if blob is None:
            if self._player.blob is not None:
                self._player.clear()
        elif blob is not self._player.blob:
            self._player.load(blob)

        self._player.setVisible(blob is not None)
        self._preview_label.setVisible(blob is None)

    def _update_preview(self) -> None:
        if self._controller.state is not RecorderState.RECORDING:
            return

        if self._controller.compositor is not None:
            frame = self._controller.compositor.snapshot()
        elif self._controller.session is not None and self._controller.session.screen_video:
            frame = self._controller.session.screen_video.latest_frame()
        else:
            frame = None

        if frame is None:
            return

        pixmap = frame_to_pixmap(frame).scaled(
            self._preview_label.size(),
            Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.FastTransformation,
        )
        self._preview_label.setPixmap(pixmap)

    # ========================================================================
    # Controller Events
    # ========================================================================

    def _on_state_changed(self, state: RecorderState) -> None:
        logger.debug(f"Window sees state {state.value}")
        if state is not RecorderState.RECORDING:
            self._preview_label.clear()
        self._update_controls()

    def _on_error(self, error: Exception) -> None:
        logger.debug(f"Window sees error: {error}")
        self._update_controls()

    # ========================================================================
    # Button Handlers
    # ========================================================================

    def _on_position_changed(self, index: int) -> None:
        value = self._position_combo.itemData(index)
        if value:
            self._controller.set_webcam_position(CornerAnchor(value))

    def _on_start_requested(self) -> None:
        try:
            self._controller.start()
        except RecorderError as e:
            logger.error(f"Failed to start recording: {e}")
        self._update_controls()

    def _on_stop_requested(self) -> None:
        try:
            self._controller.stop()
        except RecorderError as e:
            logger.error(f"Failed to stop recording: {e}")
        self._update_controls()

    def _on_restart_requested(self) -> None:
        try:
            self._controller.restart()
        except RecorderError as e:
            logger.error(f"Failed to restart recording: {e}")
        self._update_controls()

    def _on_download_requested(self) -> None:
        directory = QFileDialog.getExistingDirectory(
            self, "Save recording to", str(self._settings.output_dir)
        )
        if not directory:
            return
        try:
            path = self._controller.download(Path(directory))
        except OSError as e:
            logger.error(f"Failed to save recording: {e}")
            self._update_controls()
            return
        if path is not None:
            self.statusBar().showMessage(f"Saved {path}", 5000)
            self._settings.output_dir = Path(directory)

    def _on_delete_requested(self) -> None:
        self._controller.delete()
        self._update_controls()

    # ========================================================================
    # Shutdown
    # ========================================================================

    def _save_settings(self) -> None:
        if self._settings_manager is None:
            return
        state = self._controller.compositor_state
        self._settings.webcam_position = state.webcam_position
        self._settings.show_webcam = state.show_webcam
        try:
            self._settings_manager.save_settings(self._settings)
        except IOError as e:
            logger.error(f"Error saving settings: {e}")

    def closeEvent(self, event) -> None:
        """Release every device and persist overlay choices before closing."""
        logger.info("Closing recorder window")
        self._preview_timer.stop()
        self._player.clear()
        self._save_settings()

        self._controller.unregister_callback("state_changed", self._on_state_changed)
        self._controller.unregister_callback("error", self._on_error)
        self._controller.shutdown()
        if self._clock is not None:
            self._clock.close()

        if self._log_console_dialog is not None:
            self._log_console_dialog.close()

        event.accept()
        logger.info("Recorder window closed")

"""
Playback of a finished recording.

The sealed recording never touches the disk before the user downloads it,
so the player reads the blob through an in-memory QBuffer.
"""

import logging
from typing import Optional

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, Qt, QUrl, Slot
from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer
from PySide6.QtMultimediaWidgets import QVideoWidget
from PySide6.QtWidgets import QHBoxLayout, QLabel, QPushButton, QSlider, QVBoxLayout, QWidget

from castmate.core.encoder import file_extension
from castmate.core.models import MediaBlob

logger = logging.getLogger(__name__)


def format_position(ms: int) -> str:
    """Format a player position as m:ss."""
    seconds = max(ms, 0) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


class RecordingPlayer(QWidget):
    """Video view with play/pause and a seek bar for one recording."""

    def __init__(self, parent: Optional[QWidget] = None):
        super().__init__(parent)

        self._blob: Optional[MediaBlob] = None
        self._buffer: Optional[QBuffer] = None

        self._video_widget = QVideoWidget(self)
        self._video_widget.setMinimumSize(640, 360)

        self._audio_output = QAudioOutput(self)
        self._player = QMediaPlayer(self)
        self._player.setAudioOutput(self._audio_output)
        self._player.setVideoOutput(self._video_widget)

        self._play_button = QPushButton("Play", self)
        self._play_button.clicked.connect(self.toggle_playback)

        self._seek_slider = QSlider(Qt.Orientation.Horizontal, self)
        self._seek_slider.setRange(0, 0)
        self._seek_slider.sliderMoved.connect(self._player.setPosition)

        self._time_label = QLabel(format_position(0), self)

        controls = QHBoxLayout()
        controls.addWidget(self._play_button)
        controls.addWidget(self._seek_slider, stretch=1)
        controls.addWidget(self._time_label)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._video_widget, stretch=1)
        layout.addLayout(controls)

        self._player.durationChanged.connect(self._on_duration_changed)
        self._player.positionChanged.connect(self._on_position_changed)
        self._player.playbackStateChanged.connect(self._on_playback_state_changed)
        self._player.errorOccurred.connect(self._on_error)

    @property
    def blob(self) -> Optional[MediaBlob]:
        """The recording currently loaded, if any."""
        return self._blob

    @property
    def player(self) -> QMediaPlayer:
        return self._player

    def load(self, blob: MediaBlob) -> None:
        """Load a recording, replacing the previous one. Playback starts paused."""
        self.clear()

        buffer = QBuffer(self)
        buffer.setData(QByteArray(blob.data))
        buffer.open(QIODevice.OpenModeFlag.ReadOnly)

        self._blob = blob
        self._buffer = buffer
        # The URL only tells the backend which demuxer to use
        self._player.setSourceDevice(buffer, QUrl(f"recording{file_extension(blob.mime_type)}"))
        logger.debug(f"Loaded recording for playback: {blob.size} bytes ({blob.mime_type})")

    def clear(self) -> None:
        """Stop playback and drop the loaded recording."""
        self._player.stop()
        self._player.setSource(QUrl())
        if self._buffer is not None:
            self._buffer.close()
            self._buffer.deleteLater()
            self._buffer = None
        self._blob = None
        self._seek_slider.setRange(0, 0)
        self._time_label.setText(format_position(0))

    @Slot()
    def toggle_playback(self) -> None:
        if self._blob is None:
            return
        if self._player.playbackState() == QMediaPlayer.PlaybackState.PlayingState:
            self._player.pause()
        else:
            self._player.play()

    def _on_duration_changed(self, duration: int) -> None:
        self._seek_slider.setRange(0, duration)

    def _on_position_changed(self, position: int) -> None:
        if not self._seek_slider.isSliderDown():
            self._seek_slider.setValue(position)
        self._time_label.setText(
            f"{format_position(position)} / {format_position(self._player.duration())}"
        )

    def _on_playback_state_changed(self, state: QMediaPlayer.PlaybackState) -> None:
        playing = state == QMediaPlayer.PlaybackState.PlayingState
        self._play_button.setText("Pause" if playing else "Play")

    def _on_error(self, error: QMediaPlayer.Error, message: str) -> None:
        if error != QMediaPlayer.Error.NoError:
            logger.warning(f"Playback error: {message}")

"""Settings manager for the castmate recorder.

This module provides the SettingsManager class for persisting and loading
recorder settings as JSON in the user config directory.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from castmate.core.models import CornerAnchor, RecorderMode, RecorderSettings

logger = logging.getLogger(__name__)

APP_DIR_NAME = "castmate"


def default_config_dir() -> Path:
    """Get the platform-specific default config directory.

    Returns:
        Path to config directory
    """
    if sys.platform == "darwin":
        # macOS: ~/Library/Application Support/castmate
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        # Windows: %APPDATA%/castmate
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        # Linux: ~/.config/castmate
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / APP_DIR_NAME


class SettingsManager:
    """Loads and saves RecorderSettings.

    Settings live in ``settings.json`` inside the config directory. Saving
    writes a temporary file first and renames it over the old one.
    """

    def __init__(self, config_dir: Optional[Path] = None, settings_file: Optional[Path] = None):
        """Initialize settings manager.

        Args:
            config_dir: Optional custom config directory. If None, uses platform default.
            settings_file: Optional explicit settings file; overrides config_dir
        """
        if settings_file is not None:
            self.settings_file = Path(settings_file)
            self.config_dir = self.settings_file.parent
        else:
            self.config_dir = Path(config_dir) if config_dir is not None else default_config_dir()
            self.settings_file = self.config_dir / "settings.json"

        self.config_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Settings manager initialized with settings file: {self.settings_file}")

    def load_settings(self) -> RecorderSettings:
        """Load settings from storage.

        Returns:
            RecorderSettings with loaded values, or defaults if the file doesn't exist

        Raises:
            ValueError: If settings file is corrupted or invalid
        """
        if not self.settings_file.exists():
            logger.info("Settings file not found, using default settings")
            return RecorderSettings()

        try:
            with open(self.settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            settings = self._deserialize_settings(data)
            logger.info("Settings loaded successfully")
            return settings

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse settings file: {e}")
            raise ValueError(f"Settings file is corrupted: {e}") from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Failed to load settings: {e}")
            raise ValueError(f"Failed to load settings: {e}") from e

    def save_settings(self, settings: RecorderSettings) -> None:
        """Save settings to storage.

        Args:
            settings: RecorderSettings instance to save

        Raises:
            IOError: If settings file cannot be written
        """
        try:
            data = self._serialize_settings(settings)

            # Write to temporary file first, then rename
            temp_file = self.settings_file.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)

            temp_file.replace(self.settings_file)
            logger.info("Settings saved successfully")

        except (OSError, TypeError) as e:
            logger.error(f"Failed to save settings: {e}")
            raise IOError(f"Failed to save settings: {e}") from e

    def _serialize_settings(self, settings: RecorderSettings) -> Dict[str, Any]:
        return {
            "mode": settings.mode.value,
            "webcam_position": settings.webcam_position.value,
            "show_webcam": settings.show_webcam,
            "capture_fps": settings.capture_fps,
            "refresh_rate": settings.refresh_rate,
            "timeslice_ms": settings.timeslice_ms,
            "video_bitrate": settings.video_bitrate,
            "monitor_index": settings.monitor_index,
            "camera_index": settings.camera_index,
            "mic_device": settings.mic_device,
            "system_audio_device": settings.system_audio_device,
            "sample_rate": settings.sample_rate,
            "channels": settings.channels,
            "output_dir": str(settings.output_dir),
        }

    def _deserialize_settings(self, data: Dict[str, Any]) -> RecorderSettings:
        """Build RecorderSettings from a JSON dictionary.

        Missing keys fall back to their defaults.

        Args:
            data: Dictionary loaded from the settings file

        Returns:
            RecorderSettings instance
        """
        defaults = RecorderSettings()
        return RecorderSettings(
            mode=RecorderMode(data.get("mode", defaults.mode.value)),
            webcam_position=CornerAnchor(
                data.get("webcam_position", defaults.webcam_position.value)
            ),
            show_webcam=bool(data.get("show_webcam", defaults.show_webcam)),
            capture_fps=int(data.get("capture_fps", defaults.capture_fps)),
            refresh_rate=int(data.get("refresh_rate", defaults.refresh_rate)),
            timeslice_ms=int(data.get("timeslice_ms", defaults.timeslice_ms)),
            video_bitrate=int(data.get("video_bitrate", defaults.video_bitrate)),
            monitor_index=int(data.get("monitor_index", defaults.monitor_index)),
            camera_index=int(data.get("camera_index", defaults.camera_index)),
            mic_device=data.get("mic_device", defaults.mic_device),
            system_audio_device=data.get("system_audio_device", defaults.system_audio_device),
            sample_rate=int(data.get("sample_rate", defaults.sample_rate)),
            channels=int(data.get("channels", defaults.channels)),
            output_dir=Path(data.get("output_dir", defaults.output_dir)),
        )

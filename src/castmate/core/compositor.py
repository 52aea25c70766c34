"""Frame compositor combining the screen and webcam into one canvas.

On every refresh tick the compositor clears the canvas, draws the latest
screen frame scaled to the whole canvas and, when enabled, draws the latest
webcam frame into a corner overlay. The loop reschedules itself for as long
as ``CompositorState.running`` is set.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import cv2
import numpy as np

from castmate.core.capture.tracks import VideoTrack
from castmate.core.clock import RefreshClock
from castmate.core.errors import TransientDrawError
from castmate.core.models import (
    DEFAULT_CANVAS_SIZE,
    CompositorState,
    CornerAnchor,
    OverlayRect,
    Resolution,
)

logger = logging.getLogger(__name__)

OVERLAY_INSET = 20
OVERLAY_WIDTH_FRACTION = 0.25
OVERLAY_ASPECT = 3 / 4  # height / width


def canvas_size_for(track: Optional[VideoTrack]) -> Resolution:
    """Canvas size for a screen track: its native resolution, else 1920x1080."""
    if track is not None:
        resolution = track.get_settings().resolution
        if resolution is not None:
            return resolution
    return DEFAULT_CANVAS_SIZE


def overlay_rect(canvas: Resolution, corner: CornerAnchor, inset: int = OVERLAY_INSET) -> OverlayRect:
    """Compute the webcam overlay rectangle.

    The overlay is a quarter of the canvas width with a 4:3 aspect ratio,
    inset from the chosen corner.

    Args:
        canvas: Canvas size
        corner: Corner the overlay is anchored to
        inset: Distance in pixels from both canvas edges of the corner

    Returns:
        OverlayRect in canvas coordinates
    """
    width = canvas.width * OVERLAY_WIDTH_FRACTION
    height = width * OVERLAY_ASPECT

    if corner in (CornerAnchor.TOP_LEFT, CornerAnchor.BOTTOM_LEFT):
        x = float(inset)
    else:
        x = canvas.width - width - inset

    if corner in (CornerAnchor.TOP_LEFT, CornerAnchor.TOP_RIGHT):
        y = float(inset)
    else:
        y = canvas.height - height - inset

    return OverlayRect(x=x, y=y, width=width, height=height)


class FrameCompositor:
    """Draws composited frames onto a canvas owned by this object.

    Other components never touch the canvas directly; ``snapshot()`` hands
    out a copy of the last completed frame.
    """

    def __init__(
        self,
        screen: VideoTrack,
        webcam: Optional[VideoTrack],
        clock: RefreshClock,
        state: Optional[CompositorState] = None,
    ):
        self._screen = screen
        self._webcam = webcam
        self._clock = clock
        self._state = state if state is not None else CompositorState()
        self._state.canvas_size = canvas_size_for(screen)

        size = self._state.canvas_size
        self._canvas = np.zeros((size.height, size.width, 3), dtype=np.uint8)
        self._front = self._canvas.copy()
        self._front_lock = threading.Lock()
        self._handle: Optional[int] = None

        logger.info(f"FrameCompositor initialized: canvas={size}, webcam={webcam is not None}")

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> CompositorState:
        return self._state

    @property
    def canvas_size(self) -> Resolution:
        return self._state.canvas_size

    @property
    def is_running(self) -> bool:
        return self._state.running

    # ========================================================================
    # Controls
    # ========================================================================

    def set_webcam_position(self, corner: CornerAnchor) -> None:
        self._state.webcam_position = corner
        logger.debug(f"Webcam position set to {corner.value}")

    def set_show_webcam(self, visible: bool) -> None:
        self._state.show_webcam = visible
        logger.debug(f"Webcam overlay {'shown' if visible else 'hidden'}")

    # ========================================================================
    # Draw Loop
    # ========================================================================

    def start(self) -> None:
        """Draw the first frame now and keep drawing on every refresh tick."""
        if self._state.running:
            logger.warning("Compositor already running")
            return
        self._state.running = True
        logger.info("Compositor draw loop started")
        self._tick(0.0)

    def stop(self) -> None:
        """Halt the draw loop. The canvas keeps its last frame."""
        if not self._state.running:
            return
        self._state.running = False
        if self._handle is not None:
            self._clock.cancel_frame(self._handle)
            self._handle = None
        logger.info(f"Compositor draw loop stopped after {self._state.frame_count} frames")

    def _tick(self, timestamp: float) -> None:
        if not self._state.running:
            return

        try:
            self.draw_frame()
        except Exception as e:
            logger.warning(f"Skipped frame {self._state.frame_count}: {e}")

        if self._state.running:
            self._handle = self._clock.request_frame(self._tick)

    def draw_frame(self) -> None:
        """Draw one composited frame.

        Raises:
            TransientDrawError: If a source frame could not be drawn
        """
        canvas = self._canvas
        size = self._state.canvas_size
        canvas.fill(0)

        try:
            screen_frame = self._screen.latest_frame()
            if screen_frame is not None:
                if screen_frame.shape[1] == size.width and screen_frame.shape[0] == size.height:
                    canvas[:] = screen_frame[:, :, :3]
                else:
                    canvas[:] = cv2.resize(
                        screen_frame[:, :, :3],
                        (size.width, size.height),
                        interpolation=cv2.INTER_LINEAR,
                    )

            if self._state.show_webcam and self._webcam is not None:
                webcam_frame = self._webcam.latest_frame()
                if webcam_frame is not None:
                    self._draw_overlay(webcam_frame)
        except (cv2.error, ValueError, IndexError) as e:
            raise TransientDrawError(str(e), frame_number=self._state.frame_count) from e

        with self._front_lock:
            np.copyto(self._front, canvas)
        self._state.frame_count += 1

    def _draw_overlay(self, frame: np.ndarray) -> None:
        size = self._state.canvas_size
        x, y, w, h = overlay_rect(size, self._state.webcam_position).to_pixels()

        # Clip to the canvas; tiny canvases leave no room for the inset
        x0, y0 = max(x, 0), max(y, 0)
        x1, y1 = min(x + w, size.width), min(y + h, size.height)
        if x1 <= x0 or y1 <= y0:
            return

        scaled = cv2.resize(frame[:, :, :3], (w, h), interpolation=cv2.INTER_AREA)
        self._canvas[y0:y1, x0:x1] = scaled[y0 - y : y1 - y, x0 - x : x1 - x]

    def snapshot(self) -> np.ndarray:
        """Copy of the last completed frame."""
        with self._front_lock:
            return self._front.copy()

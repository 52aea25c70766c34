"""Chunked media encoding.

The encoder sink samples the output stream, encodes it into a WebM container
and hands the encoded bytes to a callback in fixed time slices. Chunks are
delivered in the order they were produced, so concatenating them rebuilds the
complete file.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Callable, Iterable, Optional

import av
import numpy as np

from castmate.core.capture.tracks import AudioTrack, MediaStream, VideoTrack
from castmate.core.errors import FinalizationError

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], None]

# Probed in order; the first one the runtime can encode wins.
CANDIDATE_MIME_TYPES = (
    "video/webm;codecs=vp8,opus",
    "video/webm;codecs=vp8",
    "video/webm;codecs=vp9,opus",
    "video/webm;codecs=vp9",
    "video/webm;codecs=h264",
    "video/webm",
)
DEFAULT_MIME_TYPE = "video/webm"

CODEC_ENCODERS = {
    "vp8": "libvpx",
    "vp9": "libvpx-vp9",
    "h264": "libx264",
    "opus": "libopus",
}
VIDEO_CODECS = ("vp8", "vp9", "h264")
AUDIO_CODECS = ("opus",)

CONTAINER_FORMATS = {
    "video/webm": "webm",
}
FILE_EXTENSIONS = {
    "video/webm": ".webm",
}


# ============================================================================
# MIME Type Helpers
# ============================================================================


def parse_mime_type(mime_type: str) -> tuple[str, list[str]]:
    """Split "video/webm;codecs=vp8,opus" into ("video/webm", ["vp8", "opus"])."""
    container, _, params = mime_type.partition(";")
    codecs: list[str] = []
    for param in params.split(";"):
        key, _, value = param.strip().partition("=")
        if key.strip().lower() == "codecs":
            codecs = [c.strip().lower() for c in value.strip("\"'").split(",") if c.strip()]
    return container.strip().lower(), codecs


def container_type(mime_type: str) -> str:
    """MIME type without codec parameters."""
    return parse_mime_type(mime_type)[0]


def file_extension(mime_type: str) -> str:
    return FILE_EXTENSIONS.get(container_type(mime_type), ".webm")


def _encoder_available(name: str) -> bool:
    try:
        av.Codec(name, "w")
    except (ValueError, av.FFmpegError):
        return False
    return True


def is_type_supported(mime_type: str) -> bool:
    """Check whether PyAV can mux and encode the given MIME type."""
    container, codecs = parse_mime_type(mime_type)
    fmt = CONTAINER_FORMATS.get(container)
    if fmt is None or fmt not in av.formats_available:
        return False
    for codec in codecs:
        encoder = CODEC_ENCODERS.get(codec)
        if encoder is None or not _encoder_available(encoder):
            return False
    return True


def get_supported_mime_type(
    candidates: Iterable[str] = CANDIDATE_MIME_TYPES,
    is_supported: Callable[[str], bool] = is_type_supported,
) -> str:
    """Return the first supported candidate, falling back to video/webm."""
    for candidate in candidates:
        if is_supported(candidate):
            logger.debug(f"Selected MIME type: {candidate}")
            return candidate
    logger.warning(f"No candidate MIME type supported, falling back to {DEFAULT_MIME_TYPE}")
    return DEFAULT_MIME_TYPE


# ============================================================================
# Encoder Sink Interface
# ============================================================================


class EncoderSink(ABC):
    """Encodes a stream into ordered binary chunks."""

    @property
    @abstractmethod
    def mime_type(self) -> str:
        """MIME type of the produced media."""

    @property
    @abstractmethod
    def is_encoding(self) -> bool:
        """True between ``start()`` and the end of ``stop()``/``force_stop()``."""

    @abstractmethod
    def start(
        self,
        stream: MediaStream,
        timeslice_ms: Optional[int],
        on_chunk: ChunkCallback,
    ) -> None:
        """Begin encoding.

        Args:
            stream: Stream with one video track and any number of audio tracks
            timeslice_ms: Emit accumulated data every this many milliseconds;
                None emits everything once, on finalize
            on_chunk: Receives every non-empty chunk, in production order
        """

    @abstractmethod
    def stop(self) -> None:
        """Flush and finalize. Every remaining chunk is delivered first.

        Raises:
            FinalizationError: If the encoder failed to produce a valid file
        """

    @abstractmethod
    def force_stop(self) -> None:
        """Abandon encoding without flushing."""


# ============================================================================
# PyAV Encoder
# ============================================================================


class _ChunkWriter:
    """Write-only file object collecting muxer output between slices."""

    def __init__(self):
        self._buffer = bytearray()
        self._lock = threading.Lock()

    def write(self, data) -> int:
        with self._lock:
            self._buffer.extend(data)
        return len(data)

    def take(self) -> bytes:
        with self._lock:
            data = bytes(self._buffer)
            self._buffer.clear()
        return data


class PyAVEncoderSink(EncoderSink):
    """WebM encoder built on PyAV.

    Runs one daemon thread that samples the video track at its frame rate,
    drains the audio tracks, and writes the muxed output into memory.
    """

    def __init__(
        self,
        mime_type: Optional[str] = None,
        video_bitrate: int = 1_500_000,
        fps: Optional[int] = None,
    ):
        self._mime_type = mime_type or get_supported_mime_type()
        self._video_bitrate = video_bitrate
        self._fps = fps

        _, codecs = parse_mime_type(self._mime_type)
        video = next((c for c in codecs if c in VIDEO_CODECS), "vp8")
        audio = next((c for c in codecs if c in AUDIO_CODECS), "opus")
        self._video_encoder = CODEC_ENCODERS[video]
        self._audio_encoder = CODEC_ENCODERS[audio]

        self._writer = _ChunkWriter()
        self._on_chunk: Optional[ChunkCallback] = None
        self._timeslice: Optional[float] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._flush = True
        self._error: Optional[BaseException] = None
        self._encoding = False
        self._chunks_emitted = 0

    @property
    def mime_type(self) -> str:
        return self._mime_type

    @property
    def is_encoding(self) -> bool:
        return self._encoding

    def start(
        self,
        stream: MediaStream,
        timeslice_ms: Optional[int],
        on_chunk: ChunkCallback,
    ) -> None:
        if self._encoding:
            raise RuntimeError("Encoder already running")

        video_tracks = stream.get_video_tracks()
        if len(video_tracks) != 1:
            raise ValueError(f"Expected exactly one video track, got {len(video_tracks)}")

        video = video_tracks[0]
        audio = stream.get_audio_tracks()
        fps = self._fps or int(video.get_settings().frame_rate or 30)

        self._on_chunk = on_chunk
        self._timeslice = timeslice_ms / 1000.0 if timeslice_ms else None
        self._stop_event.clear()
        self._error = None
        self._flush = True
        self._chunks_emitted = 0
        self._encoding = True

        self._thread = threading.Thread(
            target=self._run, args=(video, audio, fps), name="Encoder", daemon=True
        )
        self._thread.start()
        logger.info(
            f"Encoder started: mime={self._mime_type}, fps={fps}, audio_tracks={len(audio)}, "
            f"timeslice={timeslice_ms}ms"
        )

    def stop(self) -> None:
        if not self._encoding:
            return
        self._finish(flush=True)
        if self._error is not None:
            raise FinalizationError(f"Encoder failed: {self._error}") from self._error

    def force_stop(self) -> None:
        if not self._encoding:
            return
        self._finish(flush=False)

    def _finish(self, flush: bool) -> None:
        self._flush = flush
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=10.0)
            if self._thread.is_alive() and self._error is None:
                self._error = TimeoutError("Encoder thread did not finish")
        self._thread = None
        self._encoding = False
        logger.info(f"Encoder stopped: chunks={self._chunks_emitted}, flushed={flush}")

    def _container_options(self) -> dict[str, str]:
        """Muxer options writing a cluster, and flushing it, once per time slice."""
        options = {"live": "1", "flush_packets": "1"}
        if self._timeslice is not None:
            options["cluster_time_limit"] = str(int(self._timeslice * 1000))
        return options

    def _emit(self) -> None:
        data = self._writer.take()
        if data and self._on_chunk is not None:
            self._chunks_emitted += 1
            logger.debug(f"Chunk {self._chunks_emitted} size: {len(data)}")
            self._on_chunk(data)

    def _run(self, video: VideoTrack, audio_tracks: list[AudioTrack], fps: int) -> None:
        container = None
        try:
            container = av.open(
                self._writer,
                mode="w",
                format="webm",
                container_options=self._container_options(),
            )

            settings = video.get_settings()
            width = (settings.width or 1920) & ~1
            height = (settings.height or 1080) & ~1
            video_stream = container.add_stream(self._video_encoder, rate=fps)
            video_stream.width = width
            video_stream.height = height
            video_stream.pix_fmt = "yuv420p"
            video_stream.bit_rate = self._video_bitrate

            audio_streams = []
            for track in audio_tracks:
                audio_stream = container.add_stream(self._audio_encoder, rate=48000)
                audio_stream.codec_context.layout = "mono" if track.channels == 1 else "stereo"
                audio_streams.append(audio_stream)
            samples_written = [0] * len(audio_tracks)

            frame_interval = 1.0 / fps
            start = time.monotonic()
            last_slice = start
            last_pts = -1

            while not self._stop_event.is_set():
                now = time.monotonic()
                pts = int((now - start) * fps)
                if pts > last_pts:
                    image = video.latest_frame()
                    if image is not None:
                        frame = av.VideoFrame.from_ndarray(np.ascontiguousarray(image), format="rgb24")
                        frame = frame.reformat(width=width, height=height, format="yuv420p")
                        frame.pts = pts
                        frame.time_base = Fraction(1, fps)
                        container.mux(video_stream.encode(frame))
                        last_pts = pts

                self._encode_audio(container, audio_tracks, audio_streams, samples_written)

                if self._timeslice is not None and now - last_slice >= self._timeslice:
                    self._emit()
                    last_slice = now

                delay = frame_interval - (time.monotonic() - now)
                if delay > 0:
                    self._stop_event.wait(delay)

            if not self._flush:
                return

            self._encode_audio(container, audio_tracks, audio_streams, samples_written)
            container.mux(video_stream.encode(None))
            for audio_stream in audio_streams:
                container.mux(audio_stream.encode(None))
            container.close()
            container = None
            self._emit()

        except Exception as e:
            logger.error(f"Encoding failed: {e}", exc_info=True)
            self._error = e
        finally:
            if container is not None:
                try:
                    container.close()
                except av.FFmpegError as e:
                    logger.debug(f"Error closing abandoned container: {e}")

    @staticmethod
    def _encode_audio(container, tracks, streams, samples_written) -> None:
        for index, (track, stream) in enumerate(zip(tracks, streams)):
            blocks = track.drain()
            if not blocks:
                continue
            samples = np.concatenate(blocks).astype(np.float32, copy=False)
            frame = av.AudioFrame.from_ndarray(
                samples.reshape(1, -1),
                format="flt",
                layout="mono" if track.channels == 1 else "stereo",
            )
            frame.sample_rate = track.sample_rate
            frame.pts = samples_written[index]
            frame.time_base = Fraction(1, track.sample_rate)
            samples_written[index] += samples.shape[0]
            container.mux(stream.encode(frame))

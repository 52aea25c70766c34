"""Unit tests for core data models."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from castmate.core.models import (
    CornerAnchor,
    OverlayRect,
    RecorderMode,
    RecordingArtifact,
    Resolution,
    TrackSettings,
)


class TestResolution:
    """Test cases for Resolution."""

    def test_str(self):
        assert str(Resolution(1920, 1080)) == "1920x1080"

    def test_tuple_conversion(self):
        resolution = Resolution.from_tuple((1280, 720))
        assert resolution == Resolution(1280, 720)
        assert resolution.to_tuple() == (1280, 720)

    def test_aspect_ratio(self):
        assert Resolution(1920, 1080).aspect_ratio == pytest.approx(16 / 9)
        assert Resolution(100, 0).aspect_ratio == 0.0


class TestOverlayRect:
    """Test cases for OverlayRect."""

    def test_to_pixels_rounds(self):
        rect = OverlayRect(x=10.4, y=10.6, width=99.5, height=74.2)
        assert rect.to_pixels() == (10, 11, 100, 74)


class TestEnums:
    """Test cases for recorder enums."""

    def test_corner_labels(self):
        assert CornerAnchor.TOP_RIGHT.label == "Top Right"
        assert CornerAnchor.BOTTOM_LEFT.label == "Bottom Left"

    def test_corner_values(self):
        assert {c.value for c in CornerAnchor} == {
            "top-left",
            "top-right",
            "bottom-left",
            "bottom-right",
        }

    def test_mode_uses_webcam(self):
        assert RecorderMode.SCREEN_WEBCAM.uses_webcam
        assert not RecorderMode.SCREEN.uses_webcam


class TestTrackSettings:
    """Test cases for TrackSettings."""

    def test_resolution_when_reported(self):
        assert TrackSettings(width=640, height=480).resolution == Resolution(640, 480)

    def test_resolution_missing(self):
        assert TrackSettings(width=640).resolution is None
        assert TrackSettings().resolution is None


class TestRecordingArtifact:
    """Test cases for RecordingArtifact."""

    def test_new_artifact_is_empty(self):
        artifact = RecordingArtifact()
        assert artifact.chunk_count == 0
        assert artifact.size == 0
        assert not artifact.sealed
        assert not artifact.usable

    def test_empty_chunks_are_ignored(self):
        artifact = RecordingArtifact()
        artifact.append(b"")
        artifact.append(b"abc")
        artifact.append(b"")
        assert artifact.chunks == [b"abc"]

    def test_seal_concatenates_in_order(self):
        artifact = RecordingArtifact()
        for chunk in (b"one", b"two", b"three"):
            artifact.append(chunk)

        blob = artifact.seal("video/webm")

        assert blob.data == b"onetwothree"
        assert blob.mime_type == "video/webm"
        assert blob.size == 11
        assert artifact.usable

    def test_seal_empty_is_unusable(self):
        artifact = RecordingArtifact()
        blob = artifact.seal("video/webm")
        assert blob.size == 0
        assert not artifact.usable

    def test_seal_twice_returns_same_blob(self):
        artifact = RecordingArtifact()
        artifact.append(b"data")
        first = artifact.seal("video/webm")
        assert artifact.seal("video/mp4") is first

    def test_append_after_seal_raises(self):
        artifact = RecordingArtifact()
        artifact.seal("video/webm")
        with pytest.raises(RuntimeError):
            artifact.append(b"late")

    @settings(max_examples=50, deadline=None)
    @given(chunks=st.lists(st.binary(max_size=64), max_size=20))
    def test_blob_is_ordered_concatenation(self, chunks):
        """The sealed blob equals the chunks joined in emission order."""
        artifact = RecordingArtifact()
        for chunk in chunks:
            artifact.append(chunk)

        blob = artifact.seal("video/webm")

        assert blob.data == b"".join(chunks)
        assert artifact.usable == (blob.size > 0)

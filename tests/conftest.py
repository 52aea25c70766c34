"""Shared fixtures for castmate tests."""

import pytest

from castmate.core.capture.manager import CaptureManager
from castmate.core.models import RecorderSettings
from castmate.core.recorder import RecordingController
from castmate.core.urls import ObjectURLRegistry
from fakes import FakeDeviceProvider, FakeDisplayProvider, FakeEncoderSink, ManualRefreshClock


@pytest.fixture
def clock():
    return ManualRefreshClock()


@pytest.fixture
def display_provider():
    return FakeDisplayProvider()


@pytest.fixture
def device_provider():
    return FakeDeviceProvider()


@pytest.fixture
def capture_manager(display_provider, device_provider):
    return CaptureManager(display_provider, device_provider)


@pytest.fixture
def encoders():
    """Encoders created by the controller, oldest first."""
    return []


@pytest.fixture
def encoder_options():
    """Keyword arguments for every FakeEncoderSink the controller creates."""
    return {}


@pytest.fixture
def encoder_factory(encoders, encoder_options):
    def factory():
        encoder = FakeEncoderSink(**encoder_options)
        encoders.append(encoder)
        return encoder

    return factory


@pytest.fixture
def recorder_settings(tmp_path):
    return RecorderSettings(output_dir=tmp_path)


@pytest.fixture
def url_registry():
    return ObjectURLRegistry()


@pytest.fixture
def controller(capture_manager, encoder_factory, clock, recorder_settings, url_registry):
    return RecordingController(
        capture_manager=capture_manager,
        encoder_factory=encoder_factory,
        clock=clock,
        settings=recorder_settings,
        url_registry=url_registry,
    )

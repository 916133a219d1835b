import pytest
from backend import RoomRegistry, registry
from relay import SignalingRelay, relay as app_relay
from fakes import FakeCapture, PeerFactory, RecordingPresentation


@pytest.fixture
def room_registry():
    return RoomRegistry()


@pytest.fixture
def signaling(room_registry):
    return SignalingRelay(room_registry)


@pytest.fixture
def clean_app_state():
    registry.clear()
    app_relay.connections.clear()
    yield
    registry.clear()
    app_relay.connections.clear()


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def peers():
    return PeerFactory()


@pytest.fixture
def presentation():
    return RecordingPresentation()

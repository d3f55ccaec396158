"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from app.config import reset_config
from app.main import app
from app.rooms.router import broadcaster
from app.rooms.registry import registry


class FakePlayer:
    """In-memory stand-in for a page's primary video element."""

    def __init__(self, current_time: float = 0.0, paused: bool = True, duration: float = 3600.0):
        self._current_time = current_time
        self._paused = paused
        self._duration = duration
        self.calls = []
        self.fail_on = set()

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def paused(self) -> bool:
        return self._paused

    async def seek(self, position: float) -> None:
        self.calls.append(("seek", position))
        if "seek" in self.fail_on:
            raise RuntimeError("seek rejected")
        self._current_time = position

    async def play(self) -> None:
        self.calls.append(("play",))
        if "play" in self.fail_on:
            raise RuntimeError("play() request was interrupted")
        self._paused = False

    async def pause(self) -> None:
        self.calls.append(("pause",))
        if "pause" in self.fail_on:
            raise RuntimeError("pause rejected")
        self._paused = True


class FakeTransport:
    """Records every envelope sent to a connection."""

    def __init__(self) -> None:
        self.sent = []

    async def send_json(self, data) -> None:
        self.sent.append(data)

    def events(self):
        return [m["event"] for m in self.sent]

    def last(self):
        return self.sent[-1]


class BrokenTransport(FakeTransport):
    """A connection that is mid-teardown: every send fails."""

    async def send_json(self, data) -> None:
        raise RuntimeError("socket is closed")


@pytest.fixture
def make_player():
    return FakePlayer


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def make_broken_transport():
    return BrokenTransport


@pytest.fixture(autouse=True)
def reset_relay_state():
    """Start and end every test with an empty process-wide registry."""
    reset_config()
    registry.clear()
    broadcaster.clear()
    yield
    registry.clear()
    broadcaster.clear()
    reset_config()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app.

    Used as a context manager so every WebSocket opened in a test shares the
    same event loop, as connections do in a running server.
    """
    with TestClient(app) as client:
        yield client

import json

import pytest

from backend import MemoryBackend
from connections import ConnectionManager
from routers.signaling import SignalingRouter
from scheduler import RoomTimer


class FakeSocket:
    """Stands in for a starlette WebSocket, keeps every frame sent to it."""

    def __init__(self):
        self.frames = []
        self.closed = False

    async def send_text(self, text: str):
        if self.closed:
            raise RuntimeError("socket closed")
        self.frames.append(json.loads(text))

    def events(self, name=None):
        return [f for f in self.frames if name is None or f["event"] == name]

    def names(self):
        return [f["event"] for f in self.frames]

    def last(self, name):
        matching = self.events(name)
        assert matching, f"no {name} frame, got {self.names()}"
        return matching[-1]["data"]

    def clear(self):
        self.frames.clear()


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
async def timer(backend, connections):
    # ticks are driven by hand in tests
    room_timer = RoomTimer(backend, connections, period=3600)
    yield room_timer
    await room_timer.stop()


@pytest.fixture
async def router(backend, connections, timer):
    signaling = SignalingRouter(backend, connections, timer, join_announce_delay=0)
    yield signaling
    await signaling.close()


@pytest.fixture
def connect(router):
    def _connect(connection_id: str) -> FakeSocket:
        socket = FakeSocket()
        router.connect(connection_id, socket)
        return socket
    return _connect


@pytest.fixture
def send(router):
    async def _send(connection_id: str, event: str, data=None):
        frame = {"event": event}
        if data is not None:
            frame["data"] = data
        await router.handle_frame(connection_id, json.dumps(frame))
    return _send

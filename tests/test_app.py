import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import app as app_module


@pytest.fixture
def client():
    application = app_module.create_app()
    application.state.timer.period = 3600
    with TestClient(application) as test_client:
        yield test_client


def test_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert "signaling server" in body["message"]
    assert body["version"] == "1.0.0"


def test_health_counts_rooms_and_users(client):
    assert client.get("/health").json()["rooms"] == 0

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "create-room", "data": {"roomId": "r1"}})
        assert ws.receive_json()["event"] == "room-created"
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["rooms"] == 1
        assert body["users"] == 1

    body = client.get("/health").json()
    assert body["rooms"] == 0
    assert body["users"] == 0


def test_two_clients_over_websocket(client):
    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        alice.send_json({"event": "create-room", "data": {"roomId": "r1", "duration": 1, "username": "Alice"}})
        assert alice.receive_json() == {"event": "room-created", "data": {"roomId": "r1", "duration": 1}}
        assert alice.receive_json() == {"event": "timer-update", "data": {"timeRemaining": 60}}
        assert alice.receive_json()["event"] == "users-list-updated"

        bob.send_json({"event": "join-room", "data": {"roomId": "r1", "username": "Bob"}})
        joined = bob.receive_json()
        assert joined["event"] == "room-joined"
        assert [u["name"] for u in joined["data"]["existingUsers"]] == ["Alice"]
        assert bob.receive_json()["event"] == "users-list-updated"

        assert alice.receive_json()["event"] == "users-list-updated"
        announced = alice.receive_json()
        assert announced["event"] == "user-joined"
        assert announced["data"]["username"] == "Bob"

        bob.send_json({"event": "chat-message", "data": {"message": "hi"}})
        to_bob = bob.receive_json()
        to_alice = alice.receive_json()
        assert to_bob == to_alice
        assert to_bob["data"]["message"] == "hi"
        assert to_bob["data"]["type"] == "text"

    assert client.get("/health").json()["rooms"] == 0


def test_malformed_frames_keep_connection_open(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("definitely not json")
        ws.send_json({"event": "join-room"})
        ws.send_json({"event": "ping", "data": {"timestamp": 7}})
        pong = ws.receive_json()
        assert pong["event"] == "pong"
        assert pong["data"]["timestamp"] == 7


def test_origin_policy(monkeypatch):
    monkeypatch.setattr(app_module, "ALLOWED_ORIGINS", ["https://rooms.example.com"])
    monkeypatch.setattr(app_module, "ALLOWED_ORIGIN_REGEX", r"https://.*\.example\.org")

    assert app_module.origin_allowed(None)
    assert app_module.origin_allowed("https://rooms.example.com")
    assert app_module.origin_allowed("https://video.example.org")
    assert not app_module.origin_allowed("https://evil.example.net")


def test_disallowed_websocket_origin_is_rejected(client, monkeypatch):
    monkeypatch.setattr(app_module, "ALLOWED_ORIGINS", ["https://rooms.example.com"])
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws", headers={"origin": "https://evil.example.net"}) as ws:
            ws.receive_json()


def test_binary_frame_is_ignored(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "create-room", "data": {"roomId": "r1"}})
        assert ws.receive_json()["event"] == "room-created"
        assert ws.receive_json()["event"] == "timer-update"
        assert ws.receive_json()["event"] == "users-list-updated"

        ws.send_bytes(b'{"event": "ping"}')
        ws.send_json({"event": "ping", "data": {"timestamp": 1}})
        pong = ws.receive_json()
        assert pong["event"] == "pong"
        assert pong["data"]["timestamp"] == 1

        body = client.get("/health").json()
        assert body["rooms"] == 1
        assert body["users"] == 1
        assert client.app.state.backend.get_room("r1").members != []

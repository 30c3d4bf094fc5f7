import pytest
from fastapi.testclient import TestClient

from main import app

SETTINGS = {
    "goodCount": 2,
    "evilCount": 1,
    "blankCount": 1,
    "goodWord": "apple",
    "evilWord": "pear",
}


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_unknown_room_is_404(client):
    resp = client.get("/api/rooms/999999")
    assert resp.status_code == 404


def test_room_created_over_websocket_is_visible_sanitized(client):
    with client.websocket_connect("/ws") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "connected"

        ws.send_json({"type": "create_room", "data": SETTINGS})
        created = ws.receive_json()
        assert created["type"] == "room_created"
        room_id = created["room"]["roomId"]
        assert created["room"]["host"] == hello["connectionId"]

        assert client.get("/api/rooms").json() == {"count": 1}
        public = client.get(f"/api/rooms/{room_id}").json()
        assert public["roomId"] == room_id
        assert public["blankCount"] == 1
        assert "goodWord" not in public and "evilWord" not in public


def test_bad_frames_get_error_replies(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json()["code"] == "PARSE_ERROR"

        ws.send_json({"type": "join_room", "data": {"roomId": "100000", "playerName": "Ann"}})
        assert ws.receive_json() == {"type": "error", "message": "Room not found", "code": "NOT_FOUND"}

        ws.send_json({"type": "heartbeat"})
        assert ws.receive_json() == {"type": "heartbeat_ack"}

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from gameon import app, auth, chat
from gameon.chat import ChatRelay, room_name
from gameon.moderation import ATTACHMENT_ERROR, message_error


def test_message_rules():
    assert message_error("Bring water, kickoff at 6") is None
    assert message_error("Map: https://maps.google.com/?q=park") is None
    assert message_error("   ") == "Message is required"
    assert message_error(None) == "Message is required"
    assert message_error("x" * 1001) == "Message too long (max 1000 characters)"
    assert message_error("look at team.JPG") == ATTACHMENT_ERROR
    assert message_error("https://cdn.example.com/clip.mp4?size=large") == ATTACHMENT_ERROR
    assert message_error("data:image/png;base64,AAAA") == ATTACHMENT_ERROR


def test_relay_rooms_are_cleaned_up():
    relay = ChatRelay()
    socket = object()
    relay.join(room_name(1), socket)
    relay.join(room_name(2), socket)
    relay.leave(room_name(1), socket)
    assert set(relay.rooms) == {"game:2"}
    relay.disconnect(socket)
    assert relay.rooms == {}


@pytest.mark.asyncio
async def test_post_and_read_history(hosted_game, login_as):
    host, host_user, game = hosted_game
    player, _ = await login_as("Pia")

    response = await host.post(f"/api/messages/{game['id']}", json={"message": "  Kickoff at 6  "})
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["message"] == "Kickoff at 6"
    assert data["userId"] == host_user["id"]
    assert data["userName"] == "Hana Tester"

    await player.post(f"/api/messages/{game['id']}", json={"message": "On my way"})

    response = await player.post(f"/api/messages/{game['id']}", json={"message": "photo.png"})
    assert response.status_code == 400
    assert response.json()["error"] == ATTACHMENT_ERROR

    response = await player.get(f"/api/messages/{game['id']}")
    assert [item["message"] for item in response.json()["data"]] == ["Kickoff at 6", "On my way"]

    response = await player.get(f"/api/messages/{game['id']}", params={"limit": 1})
    assert [item["message"] for item in response.json()["data"]] == ["On my way"]

    history = (await player.get(f"/api/messages/{game['id']}")).json()["data"]
    response = await player.get(f"/api/messages/{game['id']}", params={"before": history[1]["createdAt"]})
    assert [item["message"] for item in response.json()["data"]] == ["Kickoff at 6"]

    response = await player.get("/api/messages/9999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_history_requires_login(hosted_game, async_client):
    _, _, game = hosted_game
    response = await async_client.get(f"/api/messages/{game['id']}")
    assert response.status_code == 401


def _signup(client, first_name):
    response = client.post(
        "/api/auth/signup",
        json={"firstName": first_name, "lastName": "Tester", "email": f"{first_name.lower()}@example.com", "password": "pw-123456"},
    )
    assert response.status_code == 201, response.text
    return response.json()["user"]["id"]


def test_socket_rejects_anonymous_connections():
    with TestClient(app) as client:
        with client.websocket_connect("/api/socket") as socket:
            assert socket.receive_json() == {"event": "error", "data": {"error": "Unauthorized"}}
            with pytest.raises(WebSocketDisconnect) as excinfo:
                socket.receive_json()
    assert excinfo.value.code == 1008


def test_socket_room_flow():
    with TestClient(app) as client:
        user_id = _signup(client, "Wes")
        headers = {"cookie": f"{auth.SESSION_COOKIE_NAME}={auth.encode_session(user_id)}"}
        game = client.post(
            "/api/games",
            headers=headers,
            json={
                "title": "Court run",
                "sport": "basketball",
                "description": "Half court",
                "location": {"address": "Rucker Park", "city": "New York"},
                "date": "2030-07-01",
                "startTime": "10:00",
                "endTime": "12:00",
                "maxPlayers": 6,
            },
        ).json()["data"]
        with client.websocket_connect("/api/socket", headers=headers) as socket:
            socket.send_json({"event": "join-game", "data": game["id"]})
            assert socket.receive_json() == {"event": "joined-game", "data": game["id"]}

            socket.send_json({"event": "send-message", "data": {"gameId": game["id"], "message": "Who has a ball?"}})
            frame = socket.receive_json()
            assert frame["event"] == "new-message"
            assert frame["data"]["message"] == "Who has a ball?"
            assert frame["data"]["userId"] == user_id

            socket.send_json({"event": "send-message", "data": {"gameId": game["id"], "message": ""}})
            assert socket.receive_json() == {"event": "message-error", "data": {"error": "Message is required"}}

            for bad in (42, ["hi"], {"text": "hi"}):
                socket.send_json({"event": "send-message", "data": {"gameId": game["id"], "message": bad}})
                assert socket.receive_json() == {"event": "message-error", "data": {"error": "Message is required"}}

            socket.send_json({"event": "send-message", "data": {"gameId": 9999, "message": "hello"}})
            assert socket.receive_json() == {"event": "message-error", "data": {"error": "Game not found"}}

            # Messages posted over HTTP reach sockets in the room too.
            response = client.post(f"/api/messages/{game['id']}", headers=headers, json={"message": "Posted from the app"})
            assert response.status_code == 201
            frame = socket.receive_json()
            assert frame["event"] == "new-message"
            assert frame["data"]["message"] == "Posted from the app"

            socket.send_json({"event": "leave-game", "data": game["id"]})
            socket.send_json({"event": "shout"})
            assert socket.receive_json() == {"event": "error", "data": {"error": "Unknown event"}}

        history = client.get(f"/api/messages/{game['id']}", headers=headers).json()["data"]
        assert [item["message"] for item in history] == ["Who has a ball?", "Posted from the app"]


def test_socket_survives_storage_failure(monkeypatch):
    def _broken_post(session, game, user, text):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(chat, "post_message", _broken_post)
    with TestClient(app) as client:
        user_id = _signup(client, "Wes")
        headers = {"cookie": f"{auth.SESSION_COOKIE_NAME}={auth.encode_session(user_id)}"}
        game = client.post(
            "/api/games",
            headers=headers,
            json={
                "title": "Court run",
                "sport": "basketball",
                "description": "Half court",
                "location": {"address": "Rucker Park"},
                "date": "2030-07-01",
                "startTime": "10:00",
                "endTime": "12:00",
                "maxPlayers": 6,
            },
        ).json()["data"]
        with client.websocket_connect("/api/socket", headers=headers) as socket:
            socket.send_json({"event": "send-message", "data": {"gameId": game["id"], "message": "hello"}})
            assert socket.receive_json() == {"event": "message-error", "data": {"error": "Failed to send message"}}

            # The connection stays usable after the failure.
            socket.send_json({"event": "join-game", "data": game["id"]})
            assert socket.receive_json() == {"event": "joined-game", "data": game["id"]}

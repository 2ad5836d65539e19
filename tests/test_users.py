import pytest
from sqlmodel import Session, select

from gameon import storage
from gameon.database import Game, GamePlayer, Notification, User, engine
from gameon.sports import SPORTS, sport_display_name, sports_for_display


def test_sport_catalogue():
    assert sport_display_name("pingpong") == "Table Tennis"
    assert sport_display_name("table-tennis") == "Table Tennis"
    labels = [entry["label"] for entry in sports_for_display()]
    assert labels == sorted(labels, key=str.lower)
    assert len(labels) == len(SPORTS)


@pytest.mark.asyncio
async def test_profile_update_rules(login_as):
    client, _ = await login_as("Pia")

    response = await client.put(
        "/api/users/profile",
        json={"bio": "Weekend striker", "phoneNumber": "+15551234", "interests": ["football", " tennis "]},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["bio"] == "Weekend striker"
    assert data["phoneNumber"] == "+15551234"
    assert data["interests"] == ["football", "tennis"]

    response = await client.put("/api/users/profile", json={"interests": ["a", "b", "c", "d", "e", "f"]})
    assert response.status_code == 400
    assert response.json()["error"] == "You can select up to 5 interests"

    response = await client.put("/api/users/profile", json={"name": "   "})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_public_profile_defaults(login_as):
    viewer, _ = await login_as("Vic")
    _, other = await login_as("Oli")

    response = await viewer.get(f"/api/users/{other['id']}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Oli Tester"
    assert data["bio"] == "Passionate sports player who loves team games and staying active."
    assert data["location"] == "Not specified"
    assert data["gamesPlayed"] == 0
    assert data["recentActivity"] == []

    assert (await viewer.get("/api/users/9999")).status_code == 404


@pytest.mark.asyncio
async def test_account_deletion_cancels_hosted_games(hosted_game, login_as):
    host, host_user, game = hosted_game
    player, player_user = await login_as("Pia")
    await player.post(f"/api/games/{game['id']}/join", json={})

    response = await host.delete("/api/users/profile")
    assert response.status_code == 200
    assert (await host.get("/api/auth/me")).status_code == 401

    with Session(engine) as session:
        assert session.get(User, host_user["id"]) is None
        assert session.get(Game, game["id"]).status == "cancelled"
        notifications = session.exec(select(Notification).where(Notification.user_id == player_user["id"])).all()
        assert "game_cancelled" in {notification.type for notification in notifications}
        assert session.exec(select(Notification).where(Notification.user_id == host_user["id"])).all() == []


@pytest.mark.asyncio
async def test_account_deletion_removes_roster_rows(hosted_game, login_as):
    _, _, game = hosted_game
    player, player_user = await login_as("Pia")
    await player.post(f"/api/games/{game['id']}/join", json={"autoApprove": True})

    assert (await player.delete("/api/users/profile")).status_code == 200
    with Session(engine) as session:
        assert session.exec(select(GamePlayer).where(GamePlayer.user_id == player_user["id"])).all() == []


@pytest.mark.asyncio
async def test_admins_cannot_delete_themselves(login_as):
    admin, _ = await login_as("Ada", admin=True)
    response = await admin.delete("/api/users/profile")
    assert response.status_code == 403
    assert response.json()["error"] == "Admin accounts cannot be deleted"


@pytest.mark.asyncio
async def test_profile_image_upload(login_as, monkeypatch, tmp_path):
    monkeypatch.setattr(storage, "UPLOAD_DIR", tmp_path)
    client, _ = await login_as("Pia")

    response = await client.post(
        "/api/users/upload-image",
        files={"image": ("me.jpg", b"\xff\xd8\xff\xe0fake", "image/jpeg")},
    )
    assert response.status_code == 200
    url = response.json()["imageUrl"]
    assert url.startswith("/static/uploads/profiles/") and url.endswith(".jpg")

    response = await client.put("/api/users/profile", json={"image": url})
    assert response.json()["data"]["image"] == url

    response = await client.post(
        "/api/users/upload-image",
        files={"image": ("huge.png", b"0" * (storage.MAX_IMAGE_BYTES + 1), "image/png")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "File size must be less than 5MB"


@pytest.mark.asyncio
async def test_notifications_mark_read(hosted_game, login_as):
    host, _, game = hosted_game
    for name in ("Ivy", "Jon"):
        client, _ = await login_as(name)
        await client.post(f"/api/games/{game['id']}/join", json={})

    body = (await host.get("/api/notifications")).json()
    assert body["pagination"]["unread"] == 2
    assert body["data"][0]["relatedUserName"] == "Jon Tester"
    assert body["data"][0]["gameTitle"] == "Sunday Pickup"

    response = await host.patch("/api/notifications", json={})
    assert response.status_code == 400

    first_id = body["data"][0]["id"]
    await host.patch("/api/notifications", json={"notificationIds": [first_id]})
    unread = (await host.get("/api/notifications", params={"read": "false"})).json()
    assert [item["id"] for item in unread["data"]] == [body["data"][1]["id"]]

    await host.patch("/api/notifications", json={"markAllAsRead": True})
    body = (await host.get("/api/notifications")).json()
    assert body["pagination"]["unread"] == 0
    assert all(item["read"] for item in body["data"])


@pytest.mark.asyncio
async def test_public_catalogue_endpoints(hosted_game, async_client):
    response = await async_client.get("/api/stats")
    assert response.json() == {"success": True, "stats": {"totalPlayers": 1, "totalGames": 1}}

    sports = (await async_client.get("/api/sports")).json()["data"]
    assert {"value": "football", "label": "Football"} in sports

    policy = (await async_client.get("/api/privacy-policy")).json()["data"]
    assert policy["lastUpdated"] is not None

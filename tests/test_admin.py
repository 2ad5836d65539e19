import pytest

from gameon import reports


@pytest.fixture(autouse=True)
def _quiet_moderator_alerts(monkeypatch):
    monkeypatch.setattr(reports, "notify_moderators", lambda subject, body: None)


@pytest.mark.asyncio
async def test_console_requires_admin(login_as):
    client, _ = await login_as("Pia")
    response = await client.get("/api/admin/users")
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden: Admin access required"


@pytest.mark.asyncio
async def test_assign_admin_checks_secret(login_as):
    client, _ = await login_as("Pia")
    response = await client.post("/api/admin/assign-admin", json={"email": "pia@example.com", "secretKey": "guess"})
    assert response.status_code == 403
    assert (await client.get("/api/auth/me")).json()["data"]["role"] == "user"

    response = await client.post(
        "/api/admin/assign-admin", json={"email": "nobody@example.com", "secretKey": "test-admin-secret"}
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_user_search_and_ban_cycle(login_as):
    admin, admin_user = await login_as("Ada", admin=True)
    _, ben = await login_as("Ben")
    await login_as("Cleo")

    response = await admin.get("/api/admin/users", params={"search": "BEN"})
    body = response.json()
    assert [user["id"] for user in body["users"]] == [ben["id"]]
    assert body["pagination"]["totalPages"] == 1

    response = await admin.post(f"/api/admin/users/{admin_user['id']}/ban", json={})
    assert response.status_code == 403
    assert response.json()["error"] == "Cannot ban admin users"

    response = await admin.post(f"/api/admin/users/{ben['id']}/ban", json={})
    assert response.status_code == 200
    assert response.json()["user"]["banReason"] == "Account banned by administrator"
    assert response.json()["user"]["isBanned"] is True

    response = await admin.post(f"/api/admin/users/{ben['id']}/ban", json={})
    assert response.json()["error"] == "User is already banned"

    banned = (await admin.get("/api/admin/users", params={"showBanned": "true"})).json()["users"]
    assert [user["id"] for user in banned] == [ben["id"]]

    response = await admin.delete(f"/api/admin/users/{ben['id']}/ban")
    assert response.status_code == 200
    assert response.json()["user"]["isBanned"] is False
    response = await admin.delete(f"/api/admin/users/{ben['id']}/ban")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_role_changes_and_warnings(login_as):
    admin, admin_user = await login_as("Ada", admin=True)
    member, member_user = await login_as("Ben")

    response = await admin.put(f"/api/admin/users/{admin_user['id']}/role", json={"role": "user"})
    assert response.status_code == 400
    assert response.json()["error"] == "Cannot remove admin role from yourself"

    response = await admin.put(f"/api/admin/users/{member_user['id']}/role", json={"role": "owner"})
    assert response.status_code == 400

    response = await admin.post(f"/api/admin/users/{member_user['id']}/warn", json={"reportType": "spam"})
    assert response.status_code == 200
    notifications = (await member.get("/api/notifications")).json()["data"]
    assert notifications[0]["type"] == "admin_message"
    assert notifications[0]["title"] == "Warning: Spam Activity Detected"

    templates = (await admin.get("/api/admin/warning-templates")).json()["data"]
    assert {template["type"] for template in templates} == {
        "spam",
        "harassment",
        "inappropriate",
        "fake_scam",
        "violence",
        "other",
    }

    response = await admin.put(f"/api/admin/users/{member_user['id']}/role", json={"role": "admin"})
    assert response.json()["user"]["role"] == "admin"
    assert (await member.get("/api/admin/analytics")).status_code == 200


@pytest.mark.asyncio
async def test_admin_game_listing_and_delete_resolves_reports(hosted_game, login_as):
    _, host_user, game = hosted_game
    admin, _ = await login_as("Ada", admin=True)
    reporters = []
    for name in ("Rita", "Sol"):
        client, _ = await login_as(name)
        response = await client.post(
            "/api/reports", json={"gameId": game["id"], "reportType": "fake_scam", "description": "Asks for deposits"}
        )
        assert response.status_code == 201
        reporters.append(client)
    await reporters[0].post(f"/api/messages/{game['id']}", json={"message": "Is this legit?"})

    listing = (await admin.get("/api/admin/games", params={"priority": "yellow"})).json()
    assert [item["id"] for item in listing["games"]] == [game["id"]]
    assert listing["games"][0]["reportCount"] == 2
    assert listing["games"][0]["hostEmail"] == "hana@example.com"
    assert (await admin.get("/api/admin/games", params={"priority": "red"})).json()["games"] == []

    assert (await admin.get("/api/admin/games/sports")).json()["sports"] == ["football"]
    detail = (await admin.get(f"/api/admin/games/{game['id']}")).json()["data"]
    assert detail["priority"] == "yellow"

    game_reports = (await admin.get(f"/api/admin/games/{game['id']}/reports")).json()["reports"]
    assert {item["priority"] for item in game_reports} == {"medium"}
    messages = (await admin.get(f"/api/admin/games/{game['id']}/messages")).json()["messages"]
    assert [item["message"] for item in messages] == ["Is this legit?"]

    report_list = (await admin.get("/api/admin/reports", params={"reportType": "game", "search": "deposits"})).json()
    assert report_list["pagination"]["total"] == 2

    response = await admin.delete(f"/api/admin/games/{game['id']}")
    assert response.status_code == 200
    assert response.json()["resolvedReports"] == 2
    assert response.json()["notifiedReporters"] == 2

    for client in reporters:
        notifications = (await client.get("/api/notifications")).json()["data"]
        assert notifications[0]["title"] == "Report Resolved - Thank You"

    resolved = (await admin.get("/api/admin/reports", params={"status": "resolved"})).json()["reports"]
    assert {item["action"] for item in resolved} == {"delete"}
    assert {item["gameTitle"] for item in resolved} == {"Deleted Game"}
    assert (await admin.get(f"/api/games/{game['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_admin_cancel_notifies_players(hosted_game, login_as):
    _, _, game = hosted_game
    admin, _ = await login_as("Ada", admin=True)
    player, _ = await login_as("Pia")
    await player.post(f"/api/games/{game['id']}/join", json={"autoApprove": True})

    response = await admin.post(f"/api/admin/games/{game['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"
    notifications = (await player.get("/api/notifications")).json()["data"]
    assert notifications[0]["message"] == 'The game "Sunday Pickup" has been cancelled by an administrator.'


@pytest.mark.asyncio
async def test_send_notification_to_one_or_all(login_as):
    admin, _ = await login_as("Ada", admin=True)
    member, member_user = await login_as("Ben")
    await login_as("Cleo")

    response = await admin.post("/api/admin/notifications/send", json={"title": "Hi"})
    assert response.status_code == 400

    response = await admin.post(
        "/api/admin/notifications/send",
        json={"userId": member_user["id"], "title": "Heads up", "message": "Court closed Sunday"},
    )
    assert response.json()["notificationCount"] == 1

    response = await admin.post(
        "/api/admin/notifications/send", json={"title": "Maintenance", "message": "Back at noon"}
    )
    assert response.json()["notificationCount"] == 3

    titles = [item["title"] for item in (await member.get("/api/notifications")).json()["data"]]
    assert titles == ["Maintenance", "Heads up"]


@pytest.mark.asyncio
async def test_analytics_shape(hosted_game, login_as):
    admin, _ = await login_as("Ada", admin=True)
    data = (await admin.get("/api/admin/analytics")).json()["data"]
    assert set(data) == {"users", "games", "reports", "messages", "engagement"}
    assert data["users"]["totalUsers"] == 1
    assert len(data["users"]["userGrowth"]) == 7
    assert data["games"]["totalGames"] == 1
    assert data["games"]["gamesBySport"] == [{"sport": "football", "count": 1}]
    assert data["games"]["gamesByStatus"] == {"upcoming": 1}
    assert data["reports"]["resolutionRate"] == 0
    assert data["engagement"]["avgGamesPerUser"] == "0.0"


@pytest.mark.asyncio
async def test_privacy_policy_editing(login_as, async_client):
    admin, _ = await login_as("Ada", admin=True)

    seeded = (await async_client.get("/api/privacy-policy")).json()["data"]["sections"]
    assert len(seeded) == 10
    assert [section["order"] for section in seeded] == list(range(1, 11))

    response = await admin.put("/api/admin/privacy-policy", json={"sections": []})
    assert response.json()["error"] == "At least one section is required"
    response = await admin.put("/api/admin/privacy-policy", json={"sections": [{"title": "Only a title"}]})
    assert response.json()["error"] == "Each section must have a title and content"

    response = await admin.put(
        "/api/admin/privacy-policy",
        json={"sections": [{"title": "Data", "content": "We keep very little."}, {"title": "Contact", "icon": "Mail", "content": "Write to us."}]},
    )
    assert response.status_code == 200
    sections = (await async_client.get("/api/privacy-policy")).json()["data"]["sections"]
    assert [(section["title"], section["icon"], section["order"]) for section in sections] == [
        ("Data", "FileText", 1),
        ("Contact", "Mail", 2),
    ]

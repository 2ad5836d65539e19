import pytest

from gameon import reports, storage
from gameon.moderation import game_report_flag, report_priority, warning_template


@pytest.fixture
def moderator_alerts(monkeypatch):
    sent = []
    monkeypatch.setattr(reports, "notify_moderators", lambda subject, body: sent.append((subject, body)))
    return sent


def test_priority_thresholds():
    assert [report_priority(n) for n in (0, 1, 2, 4, 5, 9)] == ["low", "low", "medium", "medium", "high", "high"]
    assert [game_report_flag(n) for n in (0, 1, 5, 6)] == ["green", "yellow", "yellow", "red"]


def test_unknown_warning_type_falls_back_to_other():
    assert warning_template("spam")["label"] == "Spam"
    assert warning_template("nonsense")["type"] == "other"


@pytest.mark.asyncio
async def test_report_game_and_duplicate(hosted_game, login_as, moderator_alerts):
    _, _, game = hosted_game
    reporter, reporter_user = await login_as("Rita")

    body = {"gameId": game["id"], "reportType": "spam", "description": "Advertising a paid league"}
    response = await reporter.post("/api/reports", json=body)
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["type"] == "game"
    assert data["gameTitle"] == "Sunday Pickup"
    assert data["status"] == "pending"
    assert data["priority"] == "low"
    assert data["reportedBy"]["id"] == reporter_user["id"]
    assert moderator_alerts[0][0] == "New spam report"

    response = await reporter.post("/api/reports", json=body)
    assert response.status_code == 400
    assert response.json()["error"] == "You have already submitted a pending report for this game"

    second, _ = await login_as("Sol")
    response = await second.post("/api/reports", json=body)
    assert response.json()["data"]["priority"] == "medium"


@pytest.mark.asyncio
async def test_report_validation(hosted_game, login_as, moderator_alerts):
    _, host_user, game = hosted_game
    reporter, reporter_user = await login_as("Rita")

    response = await reporter.post("/api/reports", json={"reportType": "spam", "description": "?"})
    assert response.status_code == 400

    response = await reporter.post("/api/reports", json={"gameId": game["id"], "reportType": "rude", "description": "x"})
    assert response.json()["error"] == "Invalid report type"

    response = await reporter.post(
        "/api/reports",
        json={"gameId": game["id"], "reportType": "other", "description": "x", "images": ["a", "b", "c", "d"]},
    )
    assert response.json()["error"] == "Maximum 3 images allowed"

    response = await reporter.post(
        "/api/reports", json={"userId": reporter_user["id"], "reportType": "other", "description": "me"}
    )
    assert response.json()["error"] == "You cannot report yourself"

    response = await reporter.post("/api/reports", json={"gameId": 9999, "reportType": "other", "description": "x"})
    assert response.status_code == 404

    response = await reporter.post(
        "/api/reports",
        json={"gameId": game["id"], "userId": host_user["id"], "reportType": "spam", "description": "Both"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Report a game or a user, not both"

    response = await reporter.post(
        "/api/reports", json={"userId": host_user["id"], "reportType": "harassment", "description": "Rude in chat"}
    )
    assert response.status_code == 201
    assert response.json()["data"]["reportedUserName"] == "Hana Tester"
    assert moderator_alerts == [("New harassment report", moderator_alerts[0][1])]


@pytest.mark.asyncio
async def test_reporters_only_see_and_edit_their_own(hosted_game, login_as, moderator_alerts):
    _, _, game = hosted_game
    reporter, _ = await login_as("Rita")
    other, _ = await login_as("Oli")

    report = (
        await reporter.post("/api/reports", json={"gameId": game["id"], "reportType": "spam", "description": "Ads"})
    ).json()["data"]

    assert (await other.get(f"/api/reports/{report['id']}")).status_code == 403
    assert (await other.get("/api/reports")).json()["data"] == []

    response = await reporter.put(f"/api/reports/{report['id']}", json={"status": "resolved"})
    assert response.status_code == 403
    assert response.json()["error"] == "Only admins can update report status and action"

    response = await reporter.put(
        f"/api/reports/{report['id']}", json={"description": "Ads for a paid league", "images": ["/static/a.png"]}
    )
    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Ads for a paid league"
    assert response.json()["data"]["images"] == ["/static/a.png"]

    response = await reporter.get("/api/reports")
    assert [item["id"] for item in response.json()["data"]] == [report["id"]]

    assert (await other.delete(f"/api/reports/{report['id']}")).status_code == 403
    assert (await reporter.delete(f"/api/reports/{report['id']}")).status_code == 200
    assert (await reporter.get(f"/api/reports/{report['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_admin_resolution_notifies_reporter(hosted_game, login_as, moderator_alerts):
    _, _, game = hosted_game
    reporter, _ = await login_as("Rita")
    admin, admin_user = await login_as("Ada", admin=True)

    report = (
        await reporter.post("/api/reports", json={"gameId": game["id"], "reportType": "spam", "description": "Ads"})
    ).json()["data"]

    response = await admin.get("/api/reports", params={"status": "pending"})
    assert [item["id"] for item in response.json()["data"]] == [report["id"]]

    response = await admin.put(
        f"/api/reports/{report['id']}",
        json={"status": "resolved", "action": "keep", "actionReason": "No violation found"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "resolved"
    assert data["action"] == "keep"
    assert data["resolvedBy"] == {"id": admin_user["id"], "name": "Ada Tester"}
    assert data["actionDate"] is not None

    notifications = (await reporter.get("/api/notifications")).json()["data"]
    assert notifications[0]["title"] == "Report Update"
    assert notifications[0]["type"] == "admin_message"

    response = await admin.put(f"/api/reports/{report['id']}", json={"status": "archived"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_report_image_upload(login_as, monkeypatch, tmp_path):
    monkeypatch.setattr(storage, "UPLOAD_DIR", tmp_path)
    client, _ = await login_as("Rita")

    response = await client.post(
        "/api/reports/upload-image",
        files={"image": ("evidence.png", b"\x89PNG\r\n\x1a\nfake", "image/png")},
    )
    assert response.status_code == 200
    url = response.json()["imageUrl"]
    assert url.startswith("/static/uploads/reports/")
    assert (tmp_path / "reports" / url.rsplit("/", 1)[1]).exists()

    response = await client.post(
        "/api/reports/upload-image",
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Only image uploads are allowed."

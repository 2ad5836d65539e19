import os
import tempfile
from pathlib import Path

import httpx
import pytest
import pytest_asyncio


TEST_DB = Path(tempfile.gettempdir()) / "gameon_test_app.sqlite3"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_SECRET_KEY"] = "test-admin-secret"

from gameon import app  # noqa: E402
from gameon.database import engine, init_db  # noqa: E402

PASSWORD = "correct-horse"


@pytest.fixture(autouse=True)
def _cleanup_db():
    if TEST_DB.exists():
        TEST_DB.unlink()
    init_db()
    yield
    engine.dispose()
    if TEST_DB.exists():
        TEST_DB.unlink()


@pytest_asyncio.fixture
async def async_client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def login_as():
    """Return a coroutine that signs a new account up and yields its logged-in client."""
    clients: list[httpx.AsyncClient] = []

    async def _login(first_name: str, *, admin: bool = False):
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        email = f"{first_name.lower()}@example.com"
        response = await client.post(
            "/api/auth/signup",
            json={"firstName": first_name, "lastName": "Tester", "email": email, "password": PASSWORD},
        )
        assert response.status_code == 201, response.text
        if admin:
            response = await client.post(
                "/api/admin/assign-admin",
                json={"email": email, "secretKey": "test-admin-secret"},
            )
            assert response.status_code == 200, response.text
        response = await client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        return client, response.json()["data"]

    yield _login
    for client in clients:
        await client.aclose()


def _game_body(**overrides):
    body = {
        "title": "Sunday Pickup",
        "sport": "football",
        "description": "Friendly five-a-side",
        "location": {
            "address": "https://maps.google.com/?q=Central+Park",
            "city": "New York",
            "country": "USA",
            "coordinates": {"lat": 40.78, "lng": -73.97},
        },
        "date": "2030-06-01T00:00:00.000Z",
        "startTime": "18:00",
        "endTime": "20:00",
        "maxPlayers": 4,
        "skillLevel": "all",
    }
    body.update(overrides)
    return body


@pytest_asyncio.fixture
async def hosted_game(login_as):
    """A host client plus a freshly created upcoming game."""
    host, host_user = await login_as("Hana")
    response = await host.post("/api/games", json=_game_body())
    assert response.status_code == 201, response.text
    return host, host_user, response.json()["data"]


@pytest.fixture
def game_body():
    return _game_body

"""Integration test fixtures — in-memory app, async client, one account per role."""

import os
import tempfile
from types import SimpleNamespace

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Force test config BEFORE any app imports
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key-for-integration-tests"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "incident_desk_test_logs")

from incident_desk.config import IncidentDeskConfig
from incident_desk.database import Database
from incident_desk.main import bootstrap, create_app

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin-pass-1"
PASSWORD = "passw0rd-123"


@pytest_asyncio.fixture
async def test_app():
    """App wired to a fresh shared in-memory database (StaticPool)."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    database = Database(engine)
    config = IncidentDeskConfig(
        _env_file=None,
        secret_key="test-secret-key-for-integration-tests",
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
    )
    app = create_app(config, database)
    # ASGITransport does not run lifespan events
    await bootstrap(app, database)

    yield app

    await database.close()


@pytest_asyncio.fixture
async def client(test_app):
    """Async HTTP client for testing."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def login(client, username: str, password: str) -> dict:
    resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, f"Login failed: {resp.text}"
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest_asyncio.fixture
async def admin_headers(client):
    return await login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest_asyncio.fixture
async def accounts(client, admin_headers):
    """Register one account per role; returns ids and auth headers keyed by name."""
    roles = {
        "rita": "reporter",
        "rob": "reporter",
        "xavier": "responder",
        "yara": "responder",
        "mona": "manager",
    }
    result = {}
    for username, role in roles.items():
        resp = await client.post("/api/v1/auth/register", json={"username": username, "password": PASSWORD})
        assert resp.status_code == 201, resp.text
        profile_id = resp.json()["profile"]["id"]
        if role != "reporter":
            resp = await client.patch(f"/api/v1/users/{profile_id}", json={"role": role}, headers=admin_headers)
            assert resp.status_code == 200, resp.text
        result[username] = SimpleNamespace(id=profile_id, headers=await login(client, username, PASSWORD))
    return SimpleNamespace(**result)

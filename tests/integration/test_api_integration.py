"""Integration tests — full API round-trips against an in-memory database."""

from unittest.mock import AsyncMock, patch

import pytest

from incident_desk.errors import StoreUnavailable

pytestmark = pytest.mark.asyncio

INCIDENT = {
    "title": "Credential stuffing",
    "description": "Spike of failed logins on the VPN gateway",
    "category": "Security",
    "severity": "high",
}


async def _create(client, headers, **overrides):
    resp = await client.post("/api/v1/incidents/", json={**INCIDENT, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# -----------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------

async def test_login_returns_token_and_profile(client):
    resp = await client.post("/api/v1/auth/login", json={"username": "admin", "password": "admin-pass-1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["profile"]["role"] == "admin"


async def test_invalid_credentials_rejected(client):
    resp = await client.post("/api/v1/auth/login", json={"username": "admin", "password": "nope"})
    assert resp.status_code == 401


async def test_login_rate_limited(client):
    for _ in range(5):
        await client.post("/api/v1/auth/login", json={"username": "admin", "password": "nope"})
    resp = await client.post("/api/v1/auth/login", json={"username": "admin", "password": "admin-pass-1"})
    assert resp.status_code == 429


async def test_unauthenticated_returns_401_with_standard_body(client):
    resp = await client.get("/api/v1/incidents/", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"] is True
    assert body["status_code"] == 401
    assert body["request_id"] == "req-123"
    assert resp.headers["X-Request-ID"] == "req-123"


async def test_garbage_token_returns_401(client):
    resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


async def test_register_creates_reporter(client):
    resp = await client.post("/api/v1/auth/register", json={"username": "newbie", "password": "passw0rd-123"})
    assert resp.status_code == 201
    assert resp.json()["profile"]["role"] == "reporter"

    dup = await client.post("/api/v1/auth/register", json={"username": "newbie", "password": "passw0rd-123"})
    assert dup.status_code == 409


# -----------------------------------------------------------------------
# Incident lifecycle
# -----------------------------------------------------------------------

async def test_reporter_sees_only_own_incidents(client, accounts):
    mine = await _create(client, accounts.rita.headers)
    await _create(client, accounts.rob.headers, title="Lost laptop")

    resp = await client.get("/api/v1/incidents/", headers=accounts.rita.headers)
    assert [i["id"] for i in resp.json()] == [mine["id"]]
    resp = await client.get("/api/v1/incidents/", headers=accounts.xavier.headers)
    assert resp.json() == []

    hidden = await client.get(f"/api/v1/incidents/{mine['id']}", headers=accounts.rob.headers)
    assert hidden.status_code == 404


async def test_assignment_workflow(client, accounts, admin_headers):
    incident = await _create(client, accounts.rita.headers)
    url = f"/api/v1/incidents/{incident['id']}"

    resp = await client.patch(url, json={"assigned_to": accounts.xavier.id}, headers=accounts.mona.headers)
    assert resp.status_code == 200
    assert resp.json()["assigned_to"] == accounts.xavier.id

    listed = await client.get("/api/v1/incidents/", headers=accounts.xavier.headers)
    assert [i["id"] for i in listed.json()] == [incident["id"]]

    resp = await client.patch(url, json={"status": "triaged"}, headers=accounts.xavier.headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "triaged"

    resp = await client.patch(url, json={"status": "triaged"}, headers=accounts.yara.headers)
    assert resp.status_code == 403
    assert resp.json()["detail"]["reason"] == "forbidden"

    resp = await client.patch(url, json={"assigned_to": accounts.yara.id}, headers=accounts.xavier.headers)
    assert resp.status_code == 403

    resp = await client.patch(url, json={"title": "renamed"}, headers=accounts.mona.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "invalid_field"

    resp = await client.patch(url, json={"assigned_to": accounts.rob.id}, headers=accounts.mona.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "invalid_assignee"


async def test_malformed_patch_values_are_bad_requests(client, accounts, admin_headers):
    incident = await _create(client, accounts.rita.headers)
    url = f"/api/v1/incidents/{incident['id']}"

    for value in ([accounts.xavier.id], {"id": accounts.xavier.id}):
        resp = await client.patch(url, json={"assigned_to": value}, headers=accounts.mona.headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["reason"] == "invalid_assignee"

    resp = await client.patch(url, json={"status": ["closed"]}, headers=accounts.mona.headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["reason"] == "invalid_value"

    for patch in ({"username": 5}, {"team": 7}):
        resp = await client.patch(f"/api/v1/users/{accounts.rob.id}", json=patch, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["reason"] == "invalid_value"


async def test_delete_is_admin_only_and_audited(client, accounts, admin_headers):
    incident = await _create(client, accounts.rita.headers)
    url = f"/api/v1/incidents/{incident['id']}"

    assert (await client.delete(url, headers=accounts.mona.headers)).status_code == 403
    assert (await client.delete(url, headers=admin_headers)).status_code == 204
    assert (await client.get(url, headers=admin_headers)).status_code == 404
    assert (await client.delete(url, headers=admin_headers)).status_code == 404

    logs = await client.get("/api/v1/audit/logs", params={"entity_type": "Incident"}, headers=admin_headers)
    assert logs.status_code == 200
    deletes = [e for e in logs.json() if e["action"] == "DELETE"]
    assert [e["entity_id"] for e in deletes] == [incident["id"]]


async def test_stats_and_detail(client, accounts):
    incident = await _create(client, accounts.rita.headers, severity="critical")
    await client.post(
        f"/api/v1/incidents/{incident['id']}/comments/", json={"message": "Seen again today"},
        headers=accounts.rita.headers,
    )

    stats = await client.get("/api/v1/incidents/stats", headers=accounts.rita.headers)
    assert stats.json()["critical"] == 1
    assert stats.json()["total"] == 1

    detail = await client.get(f"/api/v1/incidents/{incident['id']}/detail", headers=accounts.mona.headers)
    assert detail.status_code == 200
    assert detail.json()["reporter"]["username"] == "rita"
    assert detail.json()["comments"][0]["message"] == "Seen again today"


# -----------------------------------------------------------------------
# Collaboration
# -----------------------------------------------------------------------

async def test_comments(client, accounts):
    incident = await _create(client, accounts.rita.headers)
    url = f"/api/v1/incidents/{incident['id']}/comments/"

    resp = await client.post(url, json={"message": "Any update?"}, headers=accounts.rita.headers)
    assert resp.status_code == 201
    assert resp.json()["author"] == "rita"

    assert (await client.post(url, json={"message": "   "}, headers=accounts.rita.headers)).status_code == 400
    assert (await client.post(url, json={"message": "hi"}, headers=accounts.rob.headers)).status_code == 403

    listed = await client.get(url, headers=accounts.mona.headers)
    assert [c["message"] for c in listed.json()] == ["Any update?"]


async def test_attachments(client, accounts):
    incident = await _create(client, accounts.rita.headers)
    url = f"/api/v1/incidents/{incident['id']}/attachments/"

    resp = await client.post(
        url,
        json={"filename": "capture.pcap", "storage_path": "blobs/cap-1", "file_size": 4096},
        headers=accounts.rita.headers,
    )
    assert resp.status_code == 201
    assert resp.json()["mime_type"] == "application/octet-stream"

    bad = await client.post(
        url, json={"filename": "x", "storage_path": "blobs/x", "file_size": -5}, headers=accounts.rita.headers
    )
    assert bad.status_code == 400

    listed = await client.get(url, headers=accounts.rob.headers)
    assert listed.status_code == 404


# -----------------------------------------------------------------------
# Users and audit
# -----------------------------------------------------------------------

async def test_user_admin_routes(client, accounts, admin_headers):
    assert (await client.get("/api/v1/users/", headers=accounts.mona.headers)).status_code == 403

    users = await client.get("/api/v1/users/", headers=admin_headers)
    assert {u["username"] for u in users.json()} >= {"admin", "rita", "mona"}

    assignable = await client.get("/api/v1/users/assignable", headers=accounts.mona.headers)
    assert [u["username"] for u in assignable.json()] == ["admin", "mona", "xavier", "yara"]
    assert (await client.get("/api/v1/users/assignable", headers=accounts.rita.headers)).status_code == 403

    me = await client.get("/api/v1/auth/me", headers=admin_headers)
    resp = await client.delete(f"/api/v1/users/{me.json()['id']}", headers=admin_headers)
    assert resp.status_code == 400

    resp = await client.patch(f"/api/v1/users/{accounts.rob.id}", json={"username": "rita"}, headers=admin_headers)
    assert resp.status_code == 409

    assert (await client.delete(f"/api/v1/users/{accounts.rob.id}", headers=admin_headers)).status_code == 204


async def test_audit_requires_admin(client, accounts):
    resp = await client.get("/api/v1/audit/logs", headers=accounts.mona.headers)
    assert resp.status_code == 403


# -----------------------------------------------------------------------
# Execution failures
# -----------------------------------------------------------------------

async def test_store_failure_returns_503(client, test_app, admin_headers):
    store = test_app.state.incident_manager.store
    with patch.object(store, "get", AsyncMock(side_effect=StoreUnavailable("down"))):
        resp = await client.get("/api/v1/incidents/some-id", headers=admin_headers)
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Storage temporarily unavailable"

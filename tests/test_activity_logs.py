"""Activity log written by mutations, and its admin-only read API."""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.security import create_jwt, hash_password
from crm.models.user import User, UserRole


async def _bootstrap(client: AsyncClient, slug: str) -> tuple[dict, dict]:
    resp = await client.post("/api/auth/register", json={
        "organization_name": f"{slug} Corp",
        "slug": slug,
        "contact_email": f"it@{slug}.com",
        "admin_first_name": "Anil",
        "admin_last_name": "Shah",
        "admin_email": f"admin@{slug}.com",
        "admin_password": "testpass123",
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['access_token']}"}, data


async def _create_meeting(client: AsyncClient, headers: dict, title: str) -> dict:
    resp = await client.post("/api/meetings", json={
        "title": title,
        "starts_at": "2026-11-10T10:00:00",
        "ends_at": "2026-11-10T10:30:00",
        "send_invitation": False,
    }, headers={**headers, "User-Agent": "pytest-client"})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_mutation_is_logged(client: AsyncClient):
    headers, data = await _bootstrap(client, "act-logged")
    meeting = await _create_meeting(client, headers, "Quarterly review")

    resp = await client.get("/api/activity-logs", params={"action": "meeting.created"}, headers=headers)
    assert resp.status_code == 200
    page = resp.json()["data"]
    assert page["pagination"]["total"] == 1

    entry = page["items"][0]
    assert entry["user_id"] == data["user"]["id"]
    assert entry["tenant_id"] == data["tenant"]["id"]
    assert entry["resource_type"] == "meeting"
    assert entry["resource_id"] == meeting["id"]
    assert entry["details"] == {"title": "Quarterly review"}
    assert entry["request_method"] == "POST"
    assert entry["request_path"] == "/api/meetings"


@pytest.mark.asyncio
async def test_logs_are_scoped_to_tenant(client: AsyncClient):
    headers_a, _ = await _bootstrap(client, "act-scope-a")
    headers_b, _ = await _bootstrap(client, "act-scope-b")
    await _create_meeting(client, headers_a, "Only in A")

    resp = await client.get("/api/activity-logs", params={"action": "meeting.created"}, headers=headers_b)
    assert resp.status_code == 200
    assert resp.json()["data"]["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_regular_users_cannot_read_logs(client: AsyncClient, session: AsyncSession):
    _, data = await _bootstrap(client, "act-member")
    member = User(
        tenant_id=uuid.UUID(data["tenant"]["id"]),
        email="member@act-member.com",
        password_hash=hash_password("memberpass1"),
        first_name="Sam",
        role=UserRole.TENANT_USER,
    )
    session.add(member)
    await session.commit()
    token = create_jwt(subject=str(member.id), tenant_id=str(member.tenant_id), role=member.role)

    resp = await client.get("/api/activity-logs", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403
    assert resp.json()["message"] == "Only administrators can view activity logs"


@pytest.mark.asyncio
async def test_stats(client: AsyncClient, platform_user):
    headers, data = await _bootstrap(client, "act-stats")
    first = await _create_meeting(client, headers, "One")
    await _create_meeting(client, headers, "Two")
    await client.delete(f"/api/meetings/{first['id']}", headers=headers)

    resp = await client.get("/api/activity-logs/stats", headers=headers)
    assert resp.status_code == 200
    stats = resp.json()["data"]
    assert stats["total"] == 3
    by_action = {b["key"]: b["count"] for b in stats["by_action"]}
    assert by_action == {"meeting.created": 2, "meeting.deleted": 1}
    assert stats["by_resource_type"] == [{"key": "meeting", "count": 3}]

    platform_headers, _ = await platform_user("owner@act-stats.io")
    resp = await client.get(
        "/api/activity-logs/stats", params={"tenant_id": data["tenant"]["id"]}, headers=platform_headers,
    )
    assert resp.json()["data"]["total"] == 3

"""Tenant administration by platform operators."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from crm.models.user import UserRole


async def _bootstrap(client: AsyncClient, slug: str) -> tuple[dict, dict]:
    resp = await client.post("/api/auth/register", json={
        "organization_name": f"{slug} Pvt",
        "slug": slug,
        "contact_email": f"ops@{slug}.com",
        "admin_first_name": "Priya",
        "admin_last_name": "Nair",
        "admin_email": f"admin@{slug}.com",
        "admin_password": "testpass123",
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['access_token']}"}, data


@pytest.mark.asyncio
async def test_tenant_admin_cannot_list_tenants(client: AsyncClient):
    headers, data = await _bootstrap(client, "ten-forbidden")

    resp = await client.get("/api/tenants", headers=headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Access denied. SaaS admin privileges required."

    resp = await client.get(f"/api/tenants/{data['tenant']['id']}", headers=headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_my_tenant(client: AsyncClient, platform_user):
    headers, data = await _bootstrap(client, "ten-me")
    resp = await client.get("/api/tenants/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == data["tenant"]["id"]
    assert resp.json()["data"]["subscription_status"] == "trial"

    platform_headers, _ = await platform_user("owner@ten-me.io")
    resp = await client.get("/api/tenants/me", headers=platform_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_platform_list_and_detail(client: AsyncClient, platform_user):
    _, data = await _bootstrap(client, "ten-listing")
    headers, _ = await platform_user("owner@ten-listing.io")

    resp = await client.get("/api/tenants", params={"search": "ten-listing"}, headers=headers)
    assert resp.status_code == 200
    items = resp.json()["data"]["items"]
    assert [t["slug"] for t in items] == ["ten-listing"]
    assert items[0]["user_count"] == 1

    resp = await client.get(f"/api/tenants/{data['tenant']['id']}", headers=headers)
    assert resp.status_code == 200
    detail = resp.json()["data"]
    assert detail["admin"]["email"] == "admin@ten-listing.com"
    assert detail["usage"]["users"] == 1

    resp = await client.get(f"/api/tenants/{uuid4()}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_stats_overview(client: AsyncClient, platform_user):
    await _bootstrap(client, "ten-stats")
    headers, _ = await platform_user("owner@ten-stats.io")

    resp = await client.get("/api/tenants/stats/overview", headers=headers)
    assert resp.status_code == 200
    stats = resp.json()["data"]
    assert stats["total"] >= 1
    assert stats["trial"] >= 1
    assert stats["recent"] >= 1
    assert {"free", "basic", "professional", "enterprise"} <= set(stats["by_plan"])


@pytest.mark.asyncio
async def test_update_is_allow_listed(client: AsyncClient, platform_user):
    _, data = await _bootstrap(client, "ten-update")
    headers, _ = await platform_user("owner@ten-update.io")

    resp = await client.put(f"/api/tenants/{data['tenant']['id']}", json={
        "organization_name": "Renamed Pvt",
        "industry": "Logistics",
        "slug": "hijacked",
        "organization_code": "UFS999",
    }, headers=headers)
    assert resp.status_code == 200, resp.text
    tenant = resp.json()["data"]
    assert tenant["organization_name"] == "Renamed Pvt"
    assert tenant["industry"] == "Logistics"
    assert tenant["slug"] == "ten-update"
    assert tenant["organization_code"] == data["tenant"]["organization_code"]


@pytest.mark.asyncio
async def test_suspend_and_activate(client: AsyncClient, platform_user):
    _, data = await _bootstrap(client, "ten-suspend")
    headers, _ = await platform_user("owner@ten-suspend.io")
    tenant_id = data["tenant"]["id"]

    resp = await client.post(
        f"/api/tenants/{tenant_id}/suspend", json={"reason": "Unpaid invoices"}, headers=headers,
    )
    assert resp.status_code == 200, resp.text
    tenant = resp.json()["data"]
    assert tenant["is_suspended"] is True
    assert tenant["suspension_reason"] == "Unpaid invoices"
    assert tenant["subscription_status"] == "suspended"

    resp = await client.post("/api/auth/login", json={
        "email": "admin@ten-suspend.com", "password": "testpass123",
    })
    assert resp.status_code == 403

    resp = await client.post(f"/api/tenants/{tenant_id}/activate", headers=headers)
    assert resp.status_code == 200
    tenant = resp.json()["data"]
    assert tenant["is_suspended"] is False
    assert tenant["subscription_status"] == "active"

    resp = await client.post("/api/auth/login", json={
        "email": "admin@ten-suspend.com", "password": "testpass123",
    })
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_delete_requires_owner_and_cascades(client: AsyncClient, platform_user):
    tenant_headers, data = await _bootstrap(client, "ten-delete")
    tenant_id = data["tenant"]["id"]
    await client.post("/api/meetings", json={
        "title": "Doomed",
        "starts_at": "2026-12-01T09:00:00",
        "ends_at": "2026-12-01T10:00:00",
        "send_invitation": False,
    }, headers=tenant_headers)

    admin_headers, _ = await platform_user("admin@ten-delete.io", UserRole.SAAS_ADMIN)
    resp = await client.delete(f"/api/tenants/{tenant_id}", headers=admin_headers)
    assert resp.status_code == 403

    owner_headers, _ = await platform_user("owner@ten-delete.io")
    resp = await client.delete(f"/api/tenants/{tenant_id}", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Tenant and all associated data deleted successfully"

    resp = await client.get(f"/api/tenants/{tenant_id}", headers=owner_headers)
    assert resp.status_code == 404

    resp = await client.get("/api/meetings", params={"search": "Doomed"}, headers=owner_headers)
    assert resp.json()["data"]["pagination"]["total"] == 0

    resp = await client.post("/api/auth/login", json={
        "email": "admin@ten-delete.com", "password": "testpass123",
    })
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_update_ignores_null_fields(client: AsyncClient, platform_user):
    _, data = await _bootstrap(client, "ten-nulls")
    headers, _ = await platform_user("owner@ten-nulls.io")

    resp = await client.put(f"/api/tenants/{data['tenant']['id']}", json={
        "organization_name": None,
        "contact_email": None,
        "business_type": None,
        "industry": "Retail",
    }, headers=headers)
    assert resp.status_code == 200, resp.text
    tenant = resp.json()["data"]
    assert tenant["organization_name"] == data["tenant"]["organization_name"]
    assert tenant["contact_email"] == data["tenant"]["contact_email"]
    assert tenant["industry"] == "Retail"

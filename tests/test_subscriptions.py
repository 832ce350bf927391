"""Plan catalog, upgrades, cancellation and the payment gateway callback."""

import json
import re
from datetime import datetime

import pytest
from httpx import AsyncClient

from crm.core.config import get_settings
from crm.core.security import sign_payload
from crm.services.plans import seed_plans


async def _bootstrap(client: AsyncClient, slug: str) -> tuple[dict, dict]:
    resp = await client.post("/api/auth/register", json={
        "organization_name": f"{slug} LLP",
        "slug": slug,
        "contact_email": f"billing@{slug}.com",
        "admin_first_name": "Rohan",
        "admin_last_name": "Das",
        "admin_email": f"admin@{slug}.com",
        "admin_password": "testpass123",
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['access_token']}"}, data


@pytest.mark.asyncio
async def test_plans_are_public(client: AsyncClient, plans):
    resp = await client.get("/api/subscriptions/plans")
    assert resp.status_code == 200
    catalog = resp.json()["data"]
    names = [p["name"] for p in catalog]
    assert names == ["Free", "Basic", "Professional", "Enterprise"]

    basic = catalog[1]
    assert basic["price_monthly"] == 999
    assert basic["price_yearly"] == 9990
    assert isinstance(basic["limits"], dict)
    assert isinstance(basic["features"], dict)


@pytest.mark.asyncio
async def test_registration_uses_free_plan_trial(client: AsyncClient, plans):
    headers, data = await _bootstrap(client, "sub-trial")
    assert data["subscription"]["plan_id"] == plans["Free"]

    resp = await client.get("/api/subscriptions/current", headers=headers)
    assert resp.status_code == 200
    current = resp.json()["data"]
    assert current["status"]["is_trial_active"] is True
    assert current["status"]["has_active_subscription"] is True
    assert current["status"]["trial_days_remaining"] == 15
    assert current["payments"] == []


@pytest.mark.asyncio
async def test_demo_upgrade_activates_plan(client: AsyncClient, plans):
    headers, _ = await _bootstrap(client, "sub-upgrade")

    resp = await client.post("/api/subscriptions/upgrade", json={
        "plan_id": plans["Basic"], "billing_cycle": "monthly",
    }, headers=headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Successfully upgraded to Basic plan"

    result = body["data"]
    sub = result["subscription"]
    assert sub["status"] == "active"
    assert sub["plan_name"] == "Basic"
    assert sub["amount"] == 999
    assert sub["total_paid"] == 999
    assert sub["is_trial_active"] is False

    start = datetime.fromisoformat(sub["start_date"])
    end = datetime.fromisoformat(sub["end_date"])
    assert 28 <= (end - start).days <= 31

    payment = result["payment"]
    assert payment["status"] == "completed"
    assert payment["payment_method"] == "demo"
    assert payment["gateway_transaction_id"].startswith("DEMO-")
    assert re.fullmatch(r"INV-\d{6}-\d{6}", result["invoice_number"])

    resp = await client.get("/api/subscriptions/current", headers=headers)
    assert len(resp.json()["data"]["payments"]) == 1


@pytest.mark.asyncio
async def test_invoice_numbers_increase(client: AsyncClient, plans):
    headers, _ = await _bootstrap(client, "sub-invoices")

    first = await client.post("/api/subscriptions/upgrade", json={"plan_id": plans["Basic"]}, headers=headers)
    second = await client.post("/api/subscriptions/upgrade", json={
        "plan_id": plans["Professional"], "billing_cycle": "yearly",
    }, headers=headers)
    n1 = int(first.json()["data"]["invoice_number"].rsplit("-", 1)[1])
    n2 = int(second.json()["data"]["invoice_number"].rsplit("-", 1)[1])
    assert n2 > n1

    sub = second.json()["data"]["subscription"]
    assert sub["billing_cycle"] == "yearly"
    assert sub["amount"] == 29990
    assert sub["total_paid"] == 999 + 29990
    assert second.json()["data"]["payment"]["payment_type"] == "upgrade"


@pytest.mark.asyncio
async def test_upgrade_rejects_bad_input(client: AsyncClient, plans):
    headers, _ = await _bootstrap(client, "sub-badinput")

    resp = await client.post("/api/subscriptions/upgrade", json={
        "plan_id": plans["Basic"], "billing_cycle": "weekly",
    }, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid billing cycle. Must be 'monthly' or 'yearly'"

    resp = await client.post("/api/subscriptions/upgrade", json={
        "plan_id": "00000000-0000-0000-0000-000000000000",
    }, headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cancel_keeps_paid_period(client: AsyncClient, plans):
    headers, _ = await _bootstrap(client, "sub-cancel")
    upgraded = await client.post("/api/subscriptions/upgrade", json={"plan_id": plans["Basic"]}, headers=headers)
    end_date = upgraded.json()["data"]["subscription"]["end_date"]

    resp = await client.post("/api/subscriptions/cancel", json={"reason": "Too expensive"}, headers=headers)
    assert resp.status_code == 200, resp.text
    sub = resp.json()["data"]
    assert sub["status"] == "cancelled"
    assert sub["auto_renew"] is False
    assert sub["cancellation_reason"] == "Too expensive"
    assert sub["end_date"] == end_date


@pytest.mark.asyncio
async def test_gateway_mode_waits_for_webhook(client: AsyncClient, plans, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "demo_payments_enabled", False)
    monkeypatch.setattr(settings, "payment_webhook_secret", "whsec-test")
    headers, _ = await _bootstrap(client, "sub-gateway")

    resp = await client.post("/api/subscriptions/upgrade", json={"plan_id": plans["Basic"]}, headers=headers)
    assert resp.status_code == 200, resp.text
    result = resp.json()["data"]
    assert result["payment"]["status"] == "pending"
    assert result["payment"]["payment_method"] == "razorpay"
    assert result["invoice_number"] is None
    assert result["subscription"]["status"] == "trial"

    raw = json.dumps({
        "event": "payment.captured",
        "payment_id": result["payment"]["id"],
        "transaction_id": "pay_abc123",
    }).encode()

    resp = await client.post(
        "/api/subscriptions/webhook", content=raw,
        headers={"X-Payment-Signature": "deadbeef", "Content-Type": "application/json"},
    )
    assert resp.status_code == 401

    good = {"X-Payment-Signature": sign_payload("whsec-test", raw), "Content-Type": "application/json"}
    resp = await client.post("/api/subscriptions/webhook", content=raw, headers=good)
    assert resp.status_code == 200, resp.text
    payment = resp.json()["data"]
    assert payment["status"] == "completed"
    assert payment["gateway_transaction_id"] == "pay_abc123"
    assert payment["invoice_number"].startswith("INV-")

    # replay is a no-op
    resp = await client.post("/api/subscriptions/webhook", content=raw, headers=good)
    assert resp.status_code == 200
    assert resp.json()["data"]["invoice_number"] == payment["invoice_number"]

    resp = await client.get("/api/subscriptions/current", headers=headers)
    sub = resp.json()["data"]["subscription"]
    assert sub["status"] == "active"
    assert sub["total_paid"] == 999


@pytest.mark.asyncio
async def test_platform_overview_and_override(client: AsyncClient, plans, platform_user):
    tenant_headers, data = await _bootstrap(client, "sub-platform")
    await client.post("/api/subscriptions/upgrade", json={"plan_id": plans["Basic"]}, headers=tenant_headers)
    headers, _ = await platform_user("owner@sub-platform.io")

    resp = await client.get("/api/subscriptions/all", headers=tenant_headers)
    assert resp.status_code == 403

    resp = await client.get("/api/subscriptions/all", params={"status": "active"}, headers=headers)
    assert resp.status_code == 200
    overview = resp.json()["data"]
    assert overview["revenue"]["active_subscriptions"] >= 1
    assert overview["revenue"]["total_revenue"] >= 999
    assert all(item["status"] == "active" for item in overview["items"])

    tenant_id = data["tenant"]["id"]
    resp = await client.put(f"/api/subscriptions/{tenant_id}", json={"status": "trial"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot change subscription status from active to trial"

    resp = await client.put(f"/api/subscriptions/{tenant_id}", json={
        "status": "suspended", "reason": "Chargeback",
    }, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "suspended"

    resp = await client.put(f"/api/subscriptions/{tenant_id}", json={"status": "expired"}, headers=headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_seed_plans_is_idempotent(session, plans):
    assert await seed_plans(session) == 0

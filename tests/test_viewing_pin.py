"""Viewing PIN lifecycle, OTP reset and the access audit trail."""

import re
import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from crm.models.base import utcnow
from crm.models.user import User


async def _bootstrap(client: AsyncClient, slug: str) -> tuple[dict, dict]:
    resp = await client.post("/api/auth/register", json={
        "organization_name": f"{slug} Labs",
        "slug": slug,
        "contact_email": f"team@{slug}.com",
        "admin_first_name": "Kavya",
        "admin_last_name": "Menon",
        "admin_email": f"admin@{slug}.com",
        "admin_password": "testpass123",
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['access_token']}"}, data


async def _request_otp(client: AsyncClient, headers: dict) -> str:
    """Trigger /forgot with mail delivery stubbed; return the emailed code."""
    with patch("crm.services.viewing_pin.send_email") as send:
        resp = await client.post("/api/viewing-pin/forgot", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["message"] == "OTP sent to your email"
    to, subject, _html, text = send.call_args.args
    assert subject == "Reset Your Viewing PIN - OTP"
    return re.search(r"\b(\d{6})\b", text).group(1)


@pytest.mark.asyncio
async def test_set_and_verify(client: AsyncClient):
    headers, _ = await _bootstrap(client, "pin-basic")

    resp = await client.get("/api/viewing-pin/status", headers=headers)
    assert resp.json()["data"] == {"is_pin_set": False}

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "1234"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Viewing PIN not set. Please set your PIN first."

    resp = await client.post("/api/viewing-pin/set", json={"pin": "12AB"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "PIN must be 4 digits"

    resp = await client.post("/api/viewing-pin/set", json={"pin": "4821"}, headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "4821"}, headers=headers)
    assert resp.status_code == 200

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "0000"}, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid PIN"

    resp = await client.get("/api/viewing-pin/status", headers=headers)
    assert resp.json()["data"] == {"is_pin_set": True}


@pytest.mark.asyncio
async def test_pin_is_not_stored_in_plain_text(client: AsyncClient, session: AsyncSession):
    headers, data = await _bootstrap(client, "pin-hash")
    await client.post("/api/viewing-pin/set", json={"pin": "7788"}, headers=headers)

    user = await session.get(User, uuid.UUID(data["user"]["id"]))
    await session.refresh(user)
    assert user.viewing_pin_hash
    assert "7788" not in user.viewing_pin_hash


@pytest.mark.asyncio
async def test_change_requires_current_pin(client: AsyncClient):
    headers, _ = await _bootstrap(client, "pin-change")
    await client.post("/api/viewing-pin/set", json={"pin": "1111"}, headers=headers)

    resp = await client.post("/api/viewing-pin/change", json={"new_pin": "2222"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Current PIN is required"

    resp = await client.post(
        "/api/viewing-pin/change", json={"current_pin": "9999", "new_pin": "2222"}, headers=headers,
    )
    assert resp.status_code == 401

    resp = await client.post(
        "/api/viewing-pin/change", json={"current_pin": "1111", "new_pin": "2222"}, headers=headers,
    )
    assert resp.status_code == 200

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "2222"}, headers=headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_reset_with_emailed_otp(client: AsyncClient):
    headers, _ = await _bootstrap(client, "pin-reset")
    await client.post("/api/viewing-pin/set", json={"pin": "1234"}, headers=headers)

    otp = await _request_otp(client, headers)
    wrong = "000000" if otp != "000000" else "111111"

    resp = await client.post("/api/viewing-pin/reset", json={"otp": wrong, "new_pin": "5678"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid OTP"

    resp = await client.post("/api/viewing-pin/reset", json={"otp": otp, "new_pin": "567890"}, headers=headers)
    assert resp.status_code == 200, resp.text

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "567890"}, headers=headers)
    assert resp.status_code == 200

    # single use
    resp = await client.post("/api/viewing-pin/reset", json={"otp": otp, "new_pin": "4444"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "No OTP request found. Please request a new OTP."


@pytest.mark.asyncio
async def test_expired_otp_rejected(client: AsyncClient, session: AsyncSession):
    headers, data = await _bootstrap(client, "pin-expired")
    otp = await _request_otp(client, headers)

    user = await session.get(User, uuid.UUID(data["user"]["id"]))
    user.viewing_pin_otp_expires_at = utcnow() - timedelta(minutes=1)
    session.add(user)
    await session.commit()

    resp = await client.post("/api/viewing-pin/reset", json={"otp": otp, "new_pin": "1234"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "OTP has expired. Please request a new one."


@pytest.mark.asyncio
async def test_forgot_fails_when_mail_cannot_be_sent(client: AsyncClient, session: AsyncSession):
    headers, data = await _bootstrap(client, "pin-nomail")

    # No SMTP relay is configured under test.
    resp = await client.post("/api/viewing-pin/forgot", headers=headers)
    assert resp.status_code == 500
    assert resp.json()["message"] == "Failed to send OTP"

    user = await session.get(User, uuid.UUID(data["user"]["id"]))
    await session.refresh(user)
    assert user.viewing_pin_otp_hash is None


@pytest.mark.asyncio
async def test_access_log_and_audit_listing(client: AsyncClient, platform_user):
    headers, data = await _bootstrap(client, "pin-audit")
    record_id = str(uuid.uuid4())

    resp = await client.post("/api/viewing-pin/log-access", json={"resource_type": "lead"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "resource_type and resource_id are required"

    resp = await client.post("/api/viewing-pin/log-access", json={
        "resource_type": "lead", "resource_id": record_id, "resource_name": "Big Prospect",
    }, headers=headers)
    assert resp.status_code == 200, resp.text
    entry = resp.json()["data"]
    assert entry["action"] == "viewed"
    assert entry["user"]["id"] == data["user"]["id"]

    resp = await client.get("/api/viewing-pin/audit-logs", headers=headers)
    assert resp.status_code == 200
    page = resp.json()["data"]
    assert page["pagination"]["total"] == 1
    assert page["pagination"]["limit"] == 20
    assert page["items"][0]["resource_id"] == record_id

    platform_headers, _ = await platform_user("owner@pin-audit.io")
    resp = await client.get(
        "/api/viewing-pin/audit-logs",
        params={"tenant_id": data["tenant"]["id"], "resource_type": "lead"},
        headers=platform_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["pagination"]["total"] == 1

    resp = await client.post("/api/viewing-pin/log-access", json={
        "resource_type": "lead", "resource_id": record_id,
    }, headers=platform_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("pin", ["1234\n", "١٢٣٤", "12345", " 1234"])
async def test_pin_must_be_exactly_four_ascii_digits(client: AsyncClient, pin: str):
    headers, _ = await _bootstrap(client, f"pin-strict-{uuid.uuid4().hex[:8]}")

    resp = await client.post("/api/viewing-pin/set", json={"pin": pin}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "PIN must be 4 digits"

    await client.post("/api/viewing-pin/set", json={"pin": "1234"}, headers=headers)
    resp = await client.post(
        "/api/viewing-pin/change", json={"current_pin": "1234", "new_pin": pin}, headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "New PIN must be 4 digits"

    resp = await client.post("/api/viewing-pin/verify", json={"pin": "1234"}, headers=headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("new_pin", ["123456\n", "١٢٣٤"])
async def test_reset_rejects_non_ascii_or_trailing_newline(client: AsyncClient, new_pin: str):
    headers, _ = await _bootstrap(client, f"pin-rstrict-{uuid.uuid4().hex[:8]}")
    otp = await _request_otp(client, headers)

    resp = await client.post("/api/viewing-pin/reset", json={"otp": otp, "new_pin": new_pin}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "New PIN must be 4-6 digits"

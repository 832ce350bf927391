"""Viewing PIN endpoints and the access audit trail they feed."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import select

from crm.api.deps import Auth, Session, client_ip
from crm.api.policy import is_platform, require_tenant_member
from crm.core.errors import AccessDenied, InvalidRequest, NotFound
from crm.core.responses import Envelope, Page, ok, paginate
from crm.models.audit import AccessAudit, AccessAuditRead, AccessLogCreate, AuditResourceType
from crm.models.base import naive_utc
from crm.models.user import User, UserRole, UserSummary
from crm.services import viewing_pin
from crm.services.activity import log_activity

router = APIRouter(prefix="/viewing-pin", tags=["viewing-pin"])


class PinRequest(BaseModel):
    pin: str | None = None


class ChangePinRequest(BaseModel):
    current_pin: str | None = None
    new_pin: str | None = None


class ResetPinRequest(BaseModel):
    otp: str | None = None
    new_pin: str | None = None


class PinStatus(BaseModel):
    is_pin_set: bool


async def _current_user(session, auth) -> User:
    user = await session.get(User, auth.user_id)
    if user is None:
        raise NotFound("User not found")
    return user


# ── PIN lifecycle ────────────────────────────────────────────

@router.post("/set", response_model=Envelope[None])
async def set_pin(body: PinRequest, auth: Auth, session: Session, request: Request) -> Envelope:
    user = await _current_user(session, auth)
    viewing_pin.set_pin(user, body.pin)
    session.add(user)
    await session.commit()
    await log_activity(session, auth, request, "viewing_pin.set", "user", user.id)
    return ok(None, "Viewing PIN set successfully")


@router.post("/verify", response_model=Envelope[None])
async def verify_pin(body: PinRequest, auth: Auth, session: Session) -> Envelope:
    user = await _current_user(session, auth)
    viewing_pin.check_pin(user, body.pin)
    return ok(None, "PIN verified successfully")


@router.post("/change", response_model=Envelope[None])
async def change_pin(
    body: ChangePinRequest, auth: Auth, session: Session, request: Request,
) -> Envelope:
    user = await _current_user(session, auth)
    viewing_pin.change_pin(user, body.current_pin, body.new_pin)
    session.add(user)
    await session.commit()
    await log_activity(session, auth, request, "viewing_pin.changed", "user", user.id)
    return ok(None, "Viewing PIN changed successfully")


@router.post("/forgot", response_model=Envelope[None])
async def forgot_pin(auth: Auth, session: Session) -> Envelope:
    """Email a one-time reset code to the caller."""
    user = await _current_user(session, auth)
    await viewing_pin.request_reset(session, user)
    return ok(None, "OTP sent to your email")


@router.post("/reset", response_model=Envelope[None])
async def reset_pin(
    body: ResetPinRequest, auth: Auth, session: Session, request: Request,
) -> Envelope:
    user = await _current_user(session, auth)
    viewing_pin.reset_pin(user, body.otp, body.new_pin)
    session.add(user)
    await session.commit()
    await log_activity(session, auth, request, "viewing_pin.reset", "user", user.id)
    return ok(None, "Viewing PIN reset successfully")


@router.get("/status", response_model=Envelope[PinStatus])
async def pin_status(auth: Auth, session: Session) -> Envelope:
    user = await _current_user(session, auth)
    return ok(PinStatus(is_pin_set=user.is_viewing_pin_set))


# ── Access audit ─────────────────────────────────────────────

@router.post("/log-access", response_model=Envelope[AccessAuditRead])
async def log_access(
    body: AccessLogCreate, auth: Auth, session: Session, request: Request,
) -> Envelope:
    """Record that the caller opened a PIN-protected record."""
    tenant_id = require_tenant_member(auth)
    if body.resource_type is None or body.resource_id is None:
        raise InvalidRequest("resource_type and resource_id are required")

    entry = AccessAudit(
        user_id=auth.user_id,
        tenant_id=tenant_id,
        resource_type=body.resource_type,
        resource_id=body.resource_id,
        resource_name=body.resource_name,
        action=body.action,
        ip_address=client_ip(request),
        user_agent=(request.headers.get("user-agent") or "")[:500] or None,
    )
    session.add(entry)
    await session.commit()

    user = await _current_user(session, auth)
    return ok(
        AccessAuditRead(**entry.model_dump(exclude={"user_id"}), user=UserSummary.model_validate(user)),
        "Access logged",
    )


@router.get("/audit-logs", response_model=Envelope[Page[AccessAuditRead]])
async def audit_logs(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    resource_type: AuditResourceType | None = None,
    user_id: uuid.UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    tenant_id: uuid.UUID | None = None,
) -> Envelope:
    """Tenant admins see their own tenant; platform operators any, or all."""
    if is_platform(auth):
        scope = tenant_id
    elif auth.user_role == UserRole.TENANT_ADMIN:
        scope = auth.tenant_id
    else:
        raise AccessDenied("Only organization admins can view access logs")

    stmt = select(AccessAudit)
    if scope is not None:
        stmt = stmt.where(AccessAudit.tenant_id == scope)
    if resource_type:
        stmt = stmt.where(AccessAudit.resource_type == resource_type)
    if user_id:
        stmt = stmt.where(AccessAudit.user_id == user_id)
    if start_date:
        stmt = stmt.where(AccessAudit.accessed_at >= naive_utc(start_date))
    if end_date:
        stmt = stmt.where(AccessAudit.accessed_at <= naive_utc(end_date))

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await session.execute(
        stmt.order_by(AccessAudit.accessed_at.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * limit)
        .limit(limit)
    )
    entries = result.scalars().all()

    user_ids = {e.user_id for e in entries}
    users: dict[uuid.UUID, User] = {}
    if user_ids:
        rows = await session.execute(select(User).where(User.id.in_(user_ids)))  # type: ignore[attr-defined]
        users = {u.id: u for u in rows.scalars().all()}

    items = [
        AccessAuditRead(
            **e.model_dump(exclude={"user_id"}),
            user=UserSummary.model_validate(users[e.user_id]) if e.user_id in users else None,
        )
        for e in entries
    ]
    return ok(paginate(items, total, page, limit))

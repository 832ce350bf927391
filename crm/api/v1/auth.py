"""Authentication endpoints: tenant registration, login, current user."""

import logging

from fastapi import APIRouter, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.api.deps import Auth, Session
from crm.api.v1.tenants import tenant_read
from crm.core.errors import AccessDenied, Conflict, InvalidRequest, Unauthorized
from crm.core.responses import Envelope, ok
from crm.core.security import create_jwt, hash_password, verify_password
from crm.models.subscription import SubscriptionRead, TenantSubscription
from crm.models.tenant import Tenant, TenantRead
from crm.models.user import User, UserRead, UserRole
from crm.services import billing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Schemas ──────────────────────────────────────────────────

class RegisterRequest(BaseModel):
    """A new organization and its first administrator."""
    organization_name: str = Field(min_length=1, max_length=255)
    slug: str = Field(max_length=100, pattern=r"^[a-z0-9\-]+$")
    contact_email: EmailStr
    contact_phone: str = Field(default="", max_length=50)
    admin_first_name: str = Field(min_length=1, max_length=100)
    admin_last_name: str = Field(min_length=1, max_length=100)
    admin_email: EmailStr
    admin_password: str = Field(min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SessionData(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
    tenant: TenantRead | None = None
    subscription: SubscriptionRead | None = None


class MeData(BaseModel):
    user: UserRead
    tenant: TenantRead | None = None


# ── Helpers ──────────────────────────────────────────────────

async def _next_organization_code(session: AsyncSession) -> str:
    """Sequential ``UFS001``-style code, one past the highest issued."""
    result = await session.execute(
        select(Tenant.organization_code)
        .where(Tenant.organization_code.like("UFS%"))  # type: ignore[union-attr]
        .order_by(
            func.length(Tenant.organization_code).desc(),
            Tenant.organization_code.desc(),  # type: ignore[union-attr]
        )
        .limit(1)
    )
    last = result.scalar_one_or_none()
    number = int(last[3:]) + 1 if last and last[3:].isdigit() else 1
    return f"UFS{number:03d}"


def _issue_token(user: User) -> str:
    return create_jwt(
        subject=str(user.id),
        tenant_id=str(user.tenant_id) if user.tenant_id else None,
        role=user.role,
    )


# ── Routes ───────────────────────────────────────────────────

@router.post(
    "/register",
    response_model=Envelope[SessionData],
    status_code=status.HTTP_201_CREATED,
)
async def register(body: RegisterRequest, session: Session) -> Envelope:
    """Create a tenant, its admin user and a trial subscription in one call."""
    taken = await session.execute(select(Tenant.id).where(Tenant.slug == body.slug))
    if taken.first():
        raise InvalidRequest("Organization slug already exists")
    taken = await session.execute(select(User.id).where(User.email == body.admin_email.lower()))
    if taken.first():
        raise InvalidRequest("Email already registered")

    tenant = Tenant(
        organization_code=await _next_organization_code(session),
        organization_name=body.organization_name,
        slug=body.slug,
        contact_email=body.contact_email,
        contact_phone=body.contact_phone,
    )
    session.add(tenant)
    await session.flush()  # populate tenant.id

    user = User(
        tenant_id=tenant.id,
        email=body.admin_email.lower(),
        password_hash=hash_password(body.admin_password),
        first_name=body.admin_first_name,
        last_name=body.admin_last_name,
        role=UserRole.TENANT_ADMIN,
    )
    session.add(user)

    subscription = await billing.start_trial(session, tenant.id)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict("Organization or email already registered") from exc

    logger.info("Registered tenant %s (%s)", tenant.slug, tenant.organization_code)
    days = subscription.trial_days_remaining()
    return ok(
        SessionData(
            access_token=_issue_token(user),
            user=UserRead.model_validate(user),
            tenant=tenant_read(tenant, subscription),
            subscription=SubscriptionRead.model_validate(subscription),
        ),
        f"Registration successful! Your {days}-day free trial has started.",
    )


@router.post("/login", response_model=Envelope[SessionData])
async def login(body: LoginRequest, session: Session) -> Envelope:
    """Authenticate with email + password, receive a JWT."""
    result = await session.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    if not user.is_active:
        raise AccessDenied("Account is disabled")

    tenant = None
    subscription = None
    if user.tenant_id is not None:
        tenant = await session.get(Tenant, user.tenant_id)
        if tenant is None or not tenant.is_active or tenant.is_suspended:
            raise AccessDenied("Organization is suspended or inactive")
        result = await session.execute(
            select(TenantSubscription).where(TenantSubscription.tenant_id == tenant.id)
        )
        subscription = result.scalar_one_or_none()

    return ok(
        SessionData(
            access_token=_issue_token(user),
            user=UserRead.model_validate(user),
            tenant=tenant_read(tenant, subscription) if tenant else None,
            subscription=SubscriptionRead.model_validate(subscription) if subscription else None,
        ),
        "Login successful",
    )


@router.get("/me", response_model=Envelope[MeData])
async def get_me(auth: Auth, session: Session) -> Envelope:
    """Return the current authenticated user and their tenant."""
    user = await session.get(User, auth.user_id)
    tenant = await session.get(Tenant, auth.tenant_id) if auth.tenant_id else None
    return ok(MeData(
        user=UserRead.model_validate(user),
        tenant=tenant_read(tenant) if tenant else None,
    ))

"""Tenant administration for platform operators, plus the caller's own tenant."""

import uuid
from datetime import timedelta

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel
from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.api.deps import Auth, Session
from crm.api.policy import require_platform, require_platform_owner
from crm.core.errors import NotFound
from crm.core.responses import Envelope, Page, ok, paginate
from crm.models.audit import AccessAudit, ActivityLog
from crm.models.base import utcnow
from crm.models.meeting import Meeting
from crm.models.note import Note
from crm.models.payment import Payment
from crm.models.records import Account, Contact, Lead, Opportunity, Task
from crm.models.subscription import SubscriptionEvent, SubscriptionStatus, TenantSubscription
from crm.models.tenant import Tenant, TenantRead, TenantUpdate, TenantUsage
from crm.models.user import User, UserRole, UserSummary
from crm.services import billing
from crm.services.activity import log_activity

router = APIRouter(prefix="/tenants", tags=["tenants"])

PLAN_BUCKETS = ("free", "basic", "professional", "enterprise")


class SuspendRequest(BaseModel):
    reason: str | None = None


class TenantStats(BaseModel):
    total: int
    active: int
    suspended: int
    trial: int
    recent: int
    by_plan: dict[str, int]


def tenant_read(
    tenant: Tenant,
    subscription: TenantSubscription | None = None,
    **extra,
) -> TenantRead:
    return TenantRead(
        **tenant.model_dump(exclude={"usage_users", "usage_leads", "usage_contacts",
                                     "usage_deals", "usage_storage_mb",
                                     "usage_emails_sent_today"}),
        usage=TenantUsage(
            users=tenant.usage_users,
            leads=tenant.usage_leads,
            contacts=tenant.usage_contacts,
            deals=tenant.usage_deals,
            storage_mb=tenant.usage_storage_mb,
            emails_sent_today=tenant.usage_emails_sent_today,
        ),
        plan_name=subscription.plan_name if subscription else None,
        subscription_status=subscription.status if subscription else None,
        **extra,
    )


async def _subscription_of(session: AsyncSession, tenant_id: uuid.UUID) -> TenantSubscription | None:
    result = await session.execute(
        select(TenantSubscription).where(TenantSubscription.tenant_id == tenant_id)
    )
    return result.scalar_one_or_none()


async def _get_or_404(session: AsyncSession, tenant_id: uuid.UUID) -> Tenant:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


async def _user_count(session: AsyncSession, tenant_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(User).where(User.tenant_id == tenant_id)
    )
    return result.scalar_one()


# ── Routes ────────────────────────────────────────────────────

@router.get("", response_model=Envelope[Page[TenantRead]])
async def list_tenants(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    plan_name: str | None = None,
    is_active: bool | None = None,
    is_suspended: bool | None = None,
) -> Envelope:
    require_platform(auth)

    stmt = select(Tenant, TenantSubscription).outerjoin(
        TenantSubscription, TenantSubscription.tenant_id == Tenant.id,
    )
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Tenant.organization_name.ilike(pattern),  # type: ignore[attr-defined]
            Tenant.slug.ilike(pattern),  # type: ignore[attr-defined]
            Tenant.contact_email.ilike(pattern),  # type: ignore[attr-defined]
        ))
    if plan_name:
        stmt = stmt.where(func.lower(TenantSubscription.plan_name) == plan_name.lower())
    if is_active is not None:
        stmt = stmt.where(Tenant.is_active == is_active)
    if is_suspended is not None:
        stmt = stmt.where(Tenant.is_suspended == is_suspended)

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = (await session.execute(
        stmt.order_by(Tenant.created_at.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * limit)
        .limit(limit)
    )).all()

    ids = [tenant.id for tenant, _ in rows]
    counts: dict[uuid.UUID, int] = {}
    if ids:
        result = await session.execute(
            select(User.tenant_id, func.count())
            .where(User.tenant_id.in_(ids))  # type: ignore[union-attr]
            .group_by(User.tenant_id)
        )
        counts = dict(result.all())

    items = [
        tenant_read(tenant, subscription, user_count=counts.get(tenant.id, 0))
        for tenant, subscription in rows
    ]
    return ok(paginate(items, total, page, limit))


@router.get("/me", response_model=Envelope[TenantRead])
async def get_my_tenant(auth: Auth, session: Session) -> Envelope:
    """The tenant the caller belongs to."""
    if auth.tenant_id is None:
        raise NotFound("No tenant is associated with this account")
    tenant = await _get_or_404(session, auth.tenant_id)
    return ok(tenant_read(tenant, await _subscription_of(session, tenant.id)))


@router.get("/stats/overview", response_model=Envelope[TenantStats])
async def tenant_stats(auth: Auth, session: Session) -> Envelope:
    require_platform(auth)

    async def count(*where) -> int:
        stmt = (
            select(func.count())
            .select_from(Tenant)
            .outerjoin(TenantSubscription, TenantSubscription.tenant_id == Tenant.id)
            .where(*where)
        )
        return (await session.execute(stmt)).scalar_one()

    by_plan = dict.fromkeys(PLAN_BUCKETS, 0)
    result = await session.execute(
        select(func.lower(TenantSubscription.plan_name), func.count())
        .group_by(func.lower(TenantSubscription.plan_name))
    )
    for name, n in result.all():
        by_plan[name] = by_plan.get(name, 0) + n

    stats = TenantStats(
        total=await count(),
        active=await count(
            Tenant.is_active.is_(True),  # type: ignore[attr-defined]
            Tenant.is_suspended.is_(False),  # type: ignore[attr-defined]
            TenantSubscription.status == SubscriptionStatus.ACTIVE,
        ),
        suspended=await count(Tenant.is_suspended.is_(True)),  # type: ignore[attr-defined]
        trial=await count(TenantSubscription.status == SubscriptionStatus.TRIAL),
        recent=await count(Tenant.created_at >= utcnow() - timedelta(days=30)),
        by_plan=by_plan,
    )
    return ok(stats)


@router.get("/{tenant_id}", response_model=Envelope[TenantRead])
async def get_tenant(tenant_id: uuid.UUID, auth: Auth, session: Session) -> Envelope:
    require_platform(auth)
    tenant = await _get_or_404(session, tenant_id)

    result = await session.execute(
        select(User)
        .where(User.tenant_id == tenant_id, User.role == UserRole.TENANT_ADMIN)
        .order_by(User.created_at.asc())  # type: ignore[attr-defined]
        .limit(1)
    )
    admin = result.scalar_one_or_none()

    return ok(tenant_read(
        tenant,
        await _subscription_of(session, tenant_id),
        user_count=await _user_count(session, tenant_id),
        admin=UserSummary.model_validate(admin) if admin else None,
    ))


@router.put("/{tenant_id}", response_model=Envelope[TenantRead])
async def update_tenant(
    tenant_id: uuid.UUID,
    body: TenantUpdate,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    require_platform(auth)
    tenant = await _get_or_404(session, tenant_id)

    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    for field, value in changes.items():
        setattr(tenant, field, value)
    tenant.updated_at = utcnow()
    session.add(tenant)
    await session.commit()

    data = tenant_read(tenant, await _subscription_of(session, tenant_id))
    await log_activity(
        session, auth, request, "tenant.updated", "tenant", tenant_id,
        details={"fields": sorted(changes)}, tenant_id=tenant_id,
    )
    return ok(data, "Tenant updated successfully")


@router.delete("/{tenant_id}", response_model=Envelope[None])
async def delete_tenant(
    tenant_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    """Permanently remove a tenant and everything it owns."""
    require_platform_owner(auth)
    tenant = await _get_or_404(session, tenant_id)
    name = tenant.organization_name

    # Children before parents, all in one transaction.
    for model in (
        AccessAudit, ActivityLog, Note, Meeting,
        Lead, Account, Contact, Opportunity, Task,
        Payment, SubscriptionEvent, TenantSubscription, User,
    ):
        await session.execute(delete(model).where(model.tenant_id == tenant_id))
    await session.delete(tenant)
    await session.commit()

    await log_activity(
        session, auth, request, "tenant.deleted", "tenant", tenant_id,
        details={"organization_name": name},
    )
    return ok(None, "Tenant and all associated data deleted successfully")


@router.post("/{tenant_id}/suspend", response_model=Envelope[TenantRead])
async def suspend_tenant(
    tenant_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
    body: SuspendRequest | None = None,
) -> Envelope:
    require_platform(auth)
    tenant = await _get_or_404(session, tenant_id)
    reason = (body.reason if body else None) or "No reason provided"

    tenant.is_suspended = True
    tenant.is_active = False
    tenant.suspension_reason = reason
    tenant.updated_at = utcnow()
    session.add(tenant)

    subscription = await _subscription_of(session, tenant_id)
    if subscription and subscription.status != SubscriptionStatus.SUSPENDED:
        billing.transition(session, subscription, SubscriptionStatus.SUSPENDED, reason, auth.user_id)
    await session.commit()

    data = tenant_read(tenant, subscription)
    await log_activity(
        session, auth, request, "tenant.suspended", "tenant", tenant_id,
        details={"reason": reason}, tenant_id=tenant_id,
    )
    return ok(data, "Tenant suspended successfully")


@router.post("/{tenant_id}/activate", response_model=Envelope[TenantRead])
async def activate_tenant(
    tenant_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    require_platform(auth)
    tenant = await _get_or_404(session, tenant_id)

    tenant.is_suspended = False
    tenant.is_active = True
    tenant.suspension_reason = None
    tenant.updated_at = utcnow()
    session.add(tenant)

    subscription = await _subscription_of(session, tenant_id)
    if subscription and subscription.status != SubscriptionStatus.ACTIVE:
        billing.transition(session, subscription, SubscriptionStatus.ACTIVE, "Tenant activated", auth.user_id)
    await session.commit()

    data = tenant_read(tenant, subscription)
    await log_activity(
        session, auth, request, "tenant.activated", "tenant", tenant_id, tenant_id=tenant_id,
    )
    return ok(data, "Tenant activated successfully")

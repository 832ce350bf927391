"""Plan catalog, tenant subscriptions, upgrades and the payment gateway callback."""

import json
import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import select

from crm.api.deps import Auth, Session
from crm.api.policy import require_platform, require_tenant_member
from crm.api.v1.tenants import tenant_read
from crm.core.config import get_settings
from crm.core.errors import InvalidRequest, NotFound, Unauthorized
from crm.core.responses import Envelope, Page, ok, paginate
from crm.core.security import verify_signature
from crm.models.base import load_json, naive_utc, utcnow
from crm.models.payment import Payment, PaymentRead, PaymentStatus
from crm.models.plan import SubscriptionPlan, SubscriptionPlanRead
from crm.models.subscription import (
    BillingCycle,
    SubscriptionRead,
    SubscriptionStatus,
    TenantSubscription,
)
from crm.models.tenant import Tenant, TenantRead, TenantUsage
from crm.services import billing
from crm.services.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])

SIGNATURE_HEADER = "X-Payment-Signature"


# ── Schemas ──────────────────────────────────────────────────

class UpgradeRequest(BaseModel):
    plan_id: uuid.UUID
    billing_cycle: str = BillingCycle.MONTHLY


class CancelRequest(BaseModel):
    reason: str | None = None


class AdminSubscriptionUpdate(BaseModel):
    plan_id: uuid.UUID | None = None
    status: SubscriptionStatus | None = None
    end_date: datetime | None = None
    reason: str | None = None


class SubscriptionFlags(BaseModel):
    is_trial_active: bool
    is_trial_expired: bool
    trial_days_remaining: int
    has_active_subscription: bool


class CurrentSubscription(BaseModel):
    organization: TenantRead
    subscription: SubscriptionRead
    usage: TenantUsage
    status: SubscriptionFlags
    payments: list[PaymentRead]


class UpgradeResult(BaseModel):
    subscription: SubscriptionRead
    payment: PaymentRead
    invoice_number: str | None


class TenantBrief(BaseModel):
    id: uuid.UUID
    organization_name: str
    slug: str
    contact_email: str


class SubscriptionListItem(SubscriptionRead):
    tenant: TenantBrief


class Revenue(BaseModel):
    total_revenue: float
    monthly_recurring_revenue: float
    active_subscriptions: int


class SubscriptionOverview(Page[SubscriptionListItem]):
    revenue: Revenue


def _plan_read(plan: SubscriptionPlan) -> SubscriptionPlanRead:
    return SubscriptionPlanRead(
        **plan.model_dump(exclude={"limits", "features"}),
        limits=load_json(plan.limits, {}),
        features=load_json(plan.features, {}),
    )


# ── Tenant routes ────────────────────────────────────────────

@router.get("/plans", response_model=Envelope[list[SubscriptionPlanRead]])
async def list_plans(session: Session) -> Envelope:
    """Public plan catalog."""
    result = await session.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active.is_(True))  # type: ignore[union-attr]
        .order_by(SubscriptionPlan.sort_order.asc())  # type: ignore[union-attr]
    )
    return ok([_plan_read(p) for p in result.scalars().all()])


@router.get("/current", response_model=Envelope[CurrentSubscription])
async def current_subscription(auth: Auth, session: Session) -> Envelope:
    tenant_id = require_tenant_member(auth)
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    subscription = await billing.get_subscription(session, tenant_id)

    result = await session.execute(
        select(Payment)
        .where(Payment.tenant_id == tenant_id)
        .order_by(Payment.created_at.desc())  # type: ignore[union-attr]
        .limit(10)
    )
    organization = tenant_read(tenant, subscription)
    return ok(CurrentSubscription(
        organization=organization,
        subscription=SubscriptionRead.model_validate(subscription),
        usage=organization.usage,
        status=SubscriptionFlags(
            is_trial_active=subscription.is_trial_active,
            is_trial_expired=subscription.is_trial_expired(),
            trial_days_remaining=subscription.trial_days_remaining(),
            has_active_subscription=subscription.has_active_subscription(),
        ),
        payments=[PaymentRead.model_validate(p) for p in result.scalars().all()],
    ))


@router.post("/upgrade", response_model=Envelope[UpgradeResult])
async def upgrade(
    body: UpgradeRequest,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    tenant_id = require_tenant_member(auth)
    subscription, payment = await billing.upgrade_plan(
        session, tenant_id, body.plan_id, body.billing_cycle, actor_id=auth.user_id,
    )
    await session.commit()

    completed = payment.status == PaymentStatus.COMPLETED
    data = UpgradeResult(
        subscription=SubscriptionRead.model_validate(subscription),
        payment=PaymentRead.model_validate(payment),
        invoice_number=payment.invoice_number,
    )
    await log_activity(
        session, auth, request, "subscription.upgraded" if completed else "subscription.upgrade_requested",
        "subscription", subscription.id,
        details={"plan": payment.plan_name, "billing_cycle": payment.billing_cycle,
                 "amount": payment.amount, "payment_status": payment.status},
    )
    if completed:
        return ok(data, f"Successfully upgraded to {payment.plan_name} plan")
    return ok(data, "Payment initiated. Complete the payment to activate your plan.")


@router.post("/cancel", response_model=Envelope[SubscriptionRead])
async def cancel(
    auth: Auth,
    session: Session,
    request: Request,
    body: CancelRequest | None = None,
) -> Envelope:
    tenant_id = require_tenant_member(auth)
    subscription = await billing.get_subscription(session, tenant_id)
    await billing.cancel_subscription(
        session, subscription, body.reason if body else None, actor_id=auth.user_id,
    )
    await session.commit()

    data = SubscriptionRead.model_validate(subscription)
    await log_activity(
        session, auth, request, "subscription.cancelled", "subscription", subscription.id,
        details={"reason": subscription.cancellation_reason},
    )
    return ok(data, "Subscription cancelled. Access continues until the end of the current period.")


# ── Gateway callback ─────────────────────────────────────────

@router.post("/webhook", response_model=Envelope[PaymentRead])
async def payment_webhook(request: Request, session: Session) -> Envelope:
    """Payment processor callback, authenticated by an HMAC-SHA256 body signature."""
    raw = await request.body()
    secret = get_settings().payment_webhook_secret
    if not verify_signature(secret, raw, request.headers.get(SIGNATURE_HEADER, "")):
        logger.warning("Rejected payment webhook with bad signature")
        raise Unauthorized("Invalid signature")

    try:
        event = json.loads(raw)
    except ValueError:
        raise InvalidRequest("Malformed payload") from None
    if not isinstance(event, dict):
        raise InvalidRequest("Malformed payload")

    payment = await billing.apply_gateway_event(session, event)
    await session.commit()
    logger.info("Payment %s is now %s", payment.id, payment.status)
    return ok(PaymentRead.model_validate(payment), "Webhook processed")


# ── Platform routes ──────────────────────────────────────────

@router.get("/all", response_model=Envelope[SubscriptionOverview])
async def list_subscriptions(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: SubscriptionStatus | None = None,
    plan_name: str | None = None,
) -> Envelope:
    require_platform(auth)

    stmt = select(TenantSubscription, Tenant).join(Tenant, Tenant.id == TenantSubscription.tenant_id)
    if status:
        stmt = stmt.where(TenantSubscription.status == status)
    if plan_name:
        stmt = stmt.where(func.lower(TenantSubscription.plan_name) == plan_name.lower())

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = (await session.execute(
        stmt.order_by(TenantSubscription.created_at.desc())  # type: ignore[union-attr]
        .offset((page - 1) * limit)
        .limit(limit)
    )).all()
    items = [
        SubscriptionListItem(
            **SubscriptionRead.model_validate(sub).model_dump(),
            tenant=TenantBrief.model_validate(tenant, from_attributes=True),
        )
        for sub, tenant in rows
    ]

    # Revenue over all active subscriptions, not just this page.
    active = await session.execute(
        select(TenantSubscription.billing_cycle, TenantSubscription.amount, TenantSubscription.total_paid)
        .where(TenantSubscription.status == SubscriptionStatus.ACTIVE)
    )
    total_revenue = mrr = 0.0
    count = 0
    for cycle, amount, paid in active.all():
        count += 1
        total_revenue += paid or 0.0
        mrr += (amount or 0.0) / 12 if cycle == BillingCycle.YEARLY else (amount or 0.0)

    page_data = paginate(items, total, page, limit)
    return ok(SubscriptionOverview(
        items=page_data.items,
        pagination=page_data.pagination,
        revenue=Revenue(
            total_revenue=round(total_revenue, 2),
            monthly_recurring_revenue=round(mrr, 2),
            active_subscriptions=count,
        ),
    ))


@router.put("/{tenant_id}", response_model=Envelope[SubscriptionRead])
async def update_subscription(
    tenant_id: uuid.UUID,
    body: AdminSubscriptionUpdate,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    """Operator override of a tenant's plan, status or end date."""
    require_platform(auth)
    subscription = await billing.get_subscription(session, tenant_id)

    plan = await billing.get_active_plan(session, body.plan_id) if body.plan_id else None
    if body.status and not billing.can_transition(SubscriptionStatus(subscription.status), body.status):
        raise InvalidRequest(
            f"Cannot change subscription status from {subscription.status} to {body.status}"
        )

    if plan is not None:
        subscription.plan_id = plan.id
        subscription.plan_name = plan.name
        subscription.amount = plan.price_for(subscription.billing_cycle)
    if body.status:
        billing.transition(
            session, subscription, body.status,
            reason=body.reason or "Updated by platform operator", actor_id=auth.user_id,
        )
    if body.end_date is not None:
        subscription.end_date = naive_utc(body.end_date)
        subscription.renewal_date = subscription.end_date
    subscription.updated_at = utcnow()
    session.add(subscription)
    await session.commit()

    data = SubscriptionRead.model_validate(subscription)
    await log_activity(
        session, auth, request, "subscription.updated", "subscription", subscription.id,
        details=body.model_dump(exclude_none=True), tenant_id=tenant_id,
    )
    return ok(data, "Subscription updated successfully")

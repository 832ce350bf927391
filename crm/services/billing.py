"""Subscription lifecycle, plan upgrades, payments and invoice numbering.

Every function here stages changes on the caller's session and leaves the
commit to the caller, so a subscription mutation and the payment that
caused it land in one transaction.
"""

import calendar
import json
import logging
import time
import uuid
from datetime import datetime, timedelta

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.core.config import get_settings
from crm.core.errors import InvalidRequest, NotFound
from crm.models.base import utcnow
from crm.models.payment import (
    InvoiceCounter,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
)
from crm.models.plan import SubscriptionPlan
from crm.models.subscription import (
    BillingCycle,
    SubscriptionEvent,
    SubscriptionStatus,
    TenantSubscription,
)

logger = logging.getLogger(__name__)

S = SubscriptionStatus

# Allowed status changes. Nothing goes back to trial.
TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    S.TRIAL: frozenset({S.ACTIVE, S.SUSPENDED, S.CANCELLED, S.EXPIRED}),
    S.ACTIVE: frozenset({S.ACTIVE, S.SUSPENDED, S.CANCELLED, S.EXPIRED}),
    S.SUSPENDED: frozenset({S.ACTIVE, S.CANCELLED}),
    S.CANCELLED: frozenset({S.ACTIVE, S.SUSPENDED}),
    S.EXPIRED: frozenset({S.ACTIVE, S.SUSPENDED}),
}

INVOICE_COUNTER = "invoice"


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(
    session: AsyncSession,
    subscription: TenantSubscription,
    target: SubscriptionStatus,
    reason: str = "",
    actor_id: uuid.UUID | None = None,
) -> None:
    """Move ``subscription`` to ``target`` and append the change to its history."""
    current = SubscriptionStatus(subscription.status)
    if not can_transition(current, target):
        raise InvalidRequest(f"Cannot change subscription status from {current} to {target}")

    subscription.status = target
    if target != S.TRIAL:
        subscription.is_trial_active = False
    subscription.updated_at = utcnow()
    session.add(subscription)
    session.add(SubscriptionEvent(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        from_status=current,
        to_status=target,
        reason=reason,
        actor_id=actor_id,
    ))


# ── Calendar arithmetic ───────────────────────────────────────

def add_months(dt: datetime, months: int) -> datetime:
    """Same day ``months`` later, clamped to the last day of a shorter month."""
    index = dt.month - 1 + months
    year, month = dt.year + index // 12, index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def period_end(start: datetime, cycle: BillingCycle) -> datetime:
    return add_months(start, 12 if cycle == BillingCycle.YEARLY else 1)


def parse_cycle(value: str | None) -> BillingCycle:
    try:
        return BillingCycle(value)
    except ValueError:
        raise InvalidRequest("Invalid billing cycle. Must be 'monthly' or 'yearly'") from None


# ── Lookups ───────────────────────────────────────────────────

async def get_subscription(session: AsyncSession, tenant_id: uuid.UUID) -> TenantSubscription:
    result = await session.execute(
        select(TenantSubscription).where(TenantSubscription.tenant_id == tenant_id)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise NotFound("Subscription not found")
    return subscription


async def get_active_plan(session: AsyncSession, plan_id: uuid.UUID) -> SubscriptionPlan:
    plan = await session.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFound("Plan not found")
    return plan


# ── Trial ─────────────────────────────────────────────────────

async def start_trial(session: AsyncSession, tenant_id: uuid.UUID) -> TenantSubscription:
    """Open a trial on the Free plan, or a plan-less trial if the catalog is empty."""
    settings = get_settings()
    result = await session.execute(
        select(SubscriptionPlan).where(
            SubscriptionPlan.name == "Free",
            SubscriptionPlan.is_active.is_(True),  # type: ignore[union-attr]
        )
    )
    plan = result.scalar_one_or_none()
    trial_days = plan.trial_days if plan else settings.trial_days

    now = utcnow()
    subscription = TenantSubscription(
        tenant_id=tenant_id,
        plan_id=plan.id if plan else None,
        plan_name=plan.name if plan else "Free",
        status=SubscriptionStatus.TRIAL,
        is_trial_active=True,
        trial_start_date=now,
        trial_end_date=now + timedelta(days=trial_days),
        start_date=now,
        billing_cycle=BillingCycle.MONTHLY,
        amount=0.0,
        currency=settings.default_currency,
    )
    session.add(subscription)
    await session.flush()
    session.add(SubscriptionEvent(
        subscription_id=subscription.id,
        tenant_id=tenant_id,
        from_status=None,
        to_status=SubscriptionStatus.TRIAL,
        reason="Registration",
    ))
    return subscription


# ── Invoices ──────────────────────────────────────────────────

async def allocate_invoice_number(session: AsyncSession, now: datetime | None = None) -> str:
    """Next ``INV-YYYYMM-NNNNNN`` number.

    The counter row is seeded from the number of existing payments the
    first time it is needed; after that a single UPDATE increments it, and
    the row lock it takes serialises concurrent allocations.
    """
    now = now or utcnow()
    counter = await session.get(InvoiceCounter, INVOICE_COUNTER)
    if counter is None:
        existing = (await session.execute(select(func.count()).select_from(Payment))).scalar_one()
        session.add(InvoiceCounter(name=INVOICE_COUNTER, value=existing))
        await session.flush()

    await session.execute(
        update(InvoiceCounter)
        .where(InvoiceCounter.name == INVOICE_COUNTER)
        .values(value=InvoiceCounter.value + 1)
    )
    result = await session.execute(
        select(InvoiceCounter.value).where(InvoiceCounter.name == INVOICE_COUNTER)
    )
    sequence = result.scalar_one()
    return f"INV-{now:%Y%m}-{sequence:06d}"


# ── Upgrade / payment completion ──────────────────────────────

def _payment_type(subscription: TenantSubscription, plan: SubscriptionPlan) -> PaymentType:
    if subscription.status == S.TRIAL:
        return PaymentType.SUBSCRIPTION
    if subscription.plan_id == plan.id:
        return PaymentType.RENEWAL
    return PaymentType.UPGRADE


def _millis() -> int:
    return int(time.time() * 1000)


async def complete_payment(
    session: AsyncSession,
    subscription: TenantSubscription,
    payment: Payment,
    actor_id: uuid.UUID | None = None,
    transaction_id: str | None = None,
    gateway_response: dict | None = None,
) -> None:
    """Mark ``payment`` completed and activate the plan it paid for."""
    now = utcnow()
    cycle = BillingCycle(payment.billing_cycle)
    end = period_end(now, cycle)

    transition(session, subscription, S.ACTIVE, reason=f"Payment for {payment.plan_name}", actor_id=actor_id)
    subscription.plan_id = payment.plan_id
    subscription.plan_name = payment.plan_name
    subscription.is_trial_active = False
    subscription.billing_cycle = cycle
    subscription.amount = payment.amount
    subscription.currency = payment.currency
    subscription.start_date = now
    subscription.end_date = end
    subscription.renewal_date = end
    subscription.last_payment_date = now
    subscription.last_payment_amount = payment.amount
    subscription.total_paid = (subscription.total_paid or 0.0) + payment.amount
    subscription.cancelled_at = None
    subscription.cancellation_reason = None

    payment.invoice_number = await allocate_invoice_number(session, now)
    payment.status = PaymentStatus.COMPLETED
    payment.paid_at = now
    payment.billing_period_start = now
    payment.billing_period_end = end
    if transaction_id:
        payment.gateway_transaction_id = transaction_id
    if gateway_response is not None:
        payment.gateway_response = json.dumps(gateway_response, default=str)
    payment.updated_at = now
    session.add(payment)


async def upgrade_plan(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    plan_id: uuid.UUID,
    billing_cycle: str | None,
    actor_id: uuid.UUID | None = None,
) -> tuple[TenantSubscription, Payment]:
    """Start a plan change for a tenant.

    In demo mode the plan is activated at once with a completed payment.
    Otherwise only a pending payment is recorded and the subscription is
    left alone until the gateway confirms it through the webhook.
    """
    cycle = parse_cycle(billing_cycle)
    plan = await get_active_plan(session, plan_id)
    subscription = await get_subscription(session, tenant_id)
    settings = get_settings()

    now = utcnow()
    stamp = _millis()
    demo = settings.demo_payments_enabled
    payment = Payment(
        tenant_id=tenant_id,
        plan_id=plan.id,
        plan_name=plan.name,
        amount=plan.price_for(cycle),
        currency=subscription.currency or settings.default_currency,
        billing_cycle=cycle,
        billing_period_start=now,
        billing_period_end=period_end(now, cycle),
        status=PaymentStatus.PENDING,
        payment_method=PaymentMethod.DEMO if demo else PaymentMethod.RAZORPAY,
        payment_type=_payment_type(subscription, plan),
        gateway_order_id=f"ORDER-{stamp}",
        notes=f"{plan.display_name} ({cycle})",
    )

    if demo:
        await complete_payment(
            session, subscription, payment, actor_id=actor_id,
            transaction_id=f"DEMO-{stamp}",
            gateway_response={"mode": "demo"},
        )
    session.add(payment)
    logger.info(
        "Plan change for tenant %s to %s (%s), payment %s",
        tenant_id, plan.name, cycle, "completed" if demo else "pending",
    )
    return subscription, payment


async def cancel_subscription(
    session: AsyncSession,
    subscription: TenantSubscription,
    reason: str | None,
    actor_id: uuid.UUID | None = None,
) -> None:
    """Cancel at period end: the paid-up ``end_date`` is kept."""
    reason = reason or "No reason provided"
    transition(session, subscription, S.CANCELLED, reason=reason, actor_id=actor_id)
    subscription.auto_renew = False
    subscription.cancelled_at = utcnow()
    subscription.cancellation_reason = reason


# ── Gateway callbacks ─────────────────────────────────────────

async def apply_gateway_event(session: AsyncSession, event: dict) -> Payment:
    """Apply a verified gateway callback to the pending payment it references.

    ``payment.captured`` completes the payment and activates the plan;
    ``payment.failed`` marks it failed. Replays of a settled payment are no-ops.
    """
    kind = event.get("event")
    if kind not in ("payment.captured", "payment.failed"):
        raise InvalidRequest(f"Unsupported event: {kind}")

    try:
        payment_id = uuid.UUID(str(event.get("payment_id")))
    except ValueError:
        raise InvalidRequest("payment_id is required") from None

    payment = await session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    if payment.status != PaymentStatus.PENDING:
        logger.info("Ignoring %s for payment %s already %s", kind, payment.id, payment.status)
        return payment

    if kind == "payment.failed":
        payment.status = PaymentStatus.FAILED
        payment.gateway_response = json.dumps(event, default=str)
        payment.updated_at = utcnow()
        session.add(payment)
        return payment

    subscription = await get_subscription(session, payment.tenant_id)
    await complete_payment(
        session, subscription, payment,
        transaction_id=event.get("transaction_id"),
        gateway_response=event,
    )
    return payment

"""Tenant subscription aggregate and its transition history."""

import math
import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid, utcnow


class SubscriptionStatus(StrEnum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class BillingCycle(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TenantSubscription(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenant_subscriptions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, unique=True, index=True)
    plan_id: uuid.UUID | None = Field(default=None, foreign_key="subscription_plans.id")
    plan_name: str = Field(default="Free", max_length=50)

    status: SubscriptionStatus = Field(default=SubscriptionStatus.TRIAL, index=True)

    is_trial_active: bool = Field(default=True)
    trial_start_date: datetime | None = Field(default=None)
    trial_end_date: datetime | None = Field(default=None)

    start_date: datetime | None = Field(default=None)
    end_date: datetime | None = Field(default=None, index=True)
    renewal_date: datetime | None = Field(default=None)

    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY)
    amount: float = Field(default=0.0)
    currency: str = Field(default="INR", max_length=3)

    last_payment_date: datetime | None = Field(default=None)
    last_payment_amount: float = Field(default=0.0)
    total_paid: float = Field(default=0.0)

    auto_renew: bool = Field(default=True)
    cancelled_at: datetime | None = Field(default=None)
    cancellation_reason: str | None = Field(default=None, max_length=1000)

    def is_trial_expired(self, now: datetime | None = None) -> bool:
        if not self.is_trial_active or self.trial_end_date is None:
            return False
        return (now or utcnow()) > self.trial_end_date

    def has_active_subscription(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        if self.is_trial_active and not self.is_trial_expired(now):
            return True
        return self.status == SubscriptionStatus.ACTIVE and (
            self.end_date is None or now < self.end_date
        )

    def trial_days_remaining(self, now: datetime | None = None) -> int:
        if not self.is_trial_active or self.trial_end_date is None:
            return 0
        seconds = (self.trial_end_date - (now or utcnow())).total_seconds()
        return max(0, math.ceil(seconds / 86400))


class SubscriptionEvent(SQLModel, table=True):
    """Append-only record of a subscription status transition."""

    __tablename__ = "subscription_events"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    subscription_id: uuid.UUID = Field(
        foreign_key="tenant_subscriptions.id", nullable=False, index=True,
    )
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    from_status: SubscriptionStatus | None = Field(default=None)
    to_status: SubscriptionStatus = Field(nullable=False)
    reason: str = Field(default="", max_length=1000)
    actor_id: uuid.UUID | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class SubscriptionRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    plan_id: uuid.UUID | None
    plan_name: str
    status: SubscriptionStatus
    is_trial_active: bool
    trial_start_date: datetime | None
    trial_end_date: datetime | None
    start_date: datetime | None
    end_date: datetime | None
    renewal_date: datetime | None
    billing_cycle: BillingCycle
    amount: float
    currency: str
    last_payment_date: datetime | None
    last_payment_amount: float
    total_paid: float
    auto_renew: bool
    cancelled_at: datetime | None
    cancellation_reason: str | None

"""Payment model: one row per billing transaction."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(StrEnum):
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    MANUAL = "manual"
    DEMO = "demo"


class PaymentType(StrEnum):
    SUBSCRIPTION = "subscription"
    UPGRADE = "upgrade"
    RENEWAL = "renewal"
    ADDON = "addon"


class Payment(TimestampMixin, SQLModel, table=True):
    __tablename__ = "payments"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    plan_id: uuid.UUID = Field(foreign_key="subscription_plans.id", nullable=False)
    plan_name: str = Field(max_length=50, nullable=False)

    amount: float = Field(nullable=False)
    currency: str = Field(default="INR", max_length=3)

    billing_cycle: str = Field(max_length=20, nullable=False)
    billing_period_start: datetime = Field(nullable=False)
    billing_period_end: datetime = Field(nullable=False)

    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    payment_method: PaymentMethod = Field(default=PaymentMethod.RAZORPAY)
    payment_type: PaymentType = Field(default=PaymentType.SUBSCRIPTION)

    gateway_transaction_id: str | None = Field(default=None, max_length=255, index=True)
    gateway_order_id: str | None = Field(default=None, max_length=255)
    gateway_response: str | None = Field(default=None, sa_column=Column(Text))

    # Allocated only once the payment is completed
    invoice_number: str | None = Field(default=None, max_length=32, unique=True)
    invoice_url: str | None = Field(default=None, max_length=2048)

    paid_at: datetime | None = Field(default=None)
    notes: str = Field(default="", max_length=2000)

    refunded_at: datetime | None = Field(default=None)
    refund_amount: float = Field(default=0.0)
    refund_reason: str | None = Field(default=None, max_length=1000)


class InvoiceCounter(SQLModel, table=True):
    """Named monotonically increasing counter for invoice sequence numbers."""

    __tablename__ = "invoice_counters"

    name: str = Field(primary_key=True, max_length=50)
    value: int = Field(default=0, nullable=False)


# ── Pydantic schemas ─────────────────────────────────────────

class PaymentRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    plan_id: uuid.UUID
    plan_name: str
    amount: float
    currency: str
    billing_cycle: str
    billing_period_start: datetime
    billing_period_end: datetime
    status: PaymentStatus
    payment_method: PaymentMethod
    payment_type: PaymentType
    gateway_transaction_id: str | None
    gateway_order_id: str | None
    invoice_number: str | None
    invoice_url: str | None
    paid_at: datetime | None
    created_at: datetime

"""Tenant model: top-level isolation boundary."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid
from crm.models.user import UserSummary


class BusinessType(StrEnum):
    B2B = "B2B"
    B2C = "B2C"
    B2B2C = "B2B2C"
    OTHER = "Other"


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)

    # Human-facing sequential code, e.g. "UFS001"
    organization_code: str | None = Field(default=None, max_length=20, unique=True)

    organization_name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    contact_email: str = Field(max_length=320, nullable=False)
    contact_phone: str = Field(default="", max_length=50)
    business_type: BusinessType = Field(default=BusinessType.B2B)
    industry: str = Field(default="", max_length=255)

    # Settings
    timezone: str = Field(default="Asia/Kolkata", max_length=64)
    date_format: str = Field(default="DD/MM/YYYY", max_length=20)
    currency: str = Field(default="INR", max_length=3)

    # Usage counters
    usage_users: int = Field(default=1)
    usage_leads: int = Field(default=0)
    usage_contacts: int = Field(default=0)
    usage_deals: int = Field(default=0)
    usage_storage_mb: int = Field(default=0)
    usage_emails_sent_today: int = Field(default=0)

    is_active: bool = Field(default=True, index=True)
    is_suspended: bool = Field(default=False)
    suspension_reason: str | None = Field(default=None, max_length=1000)


# ── Pydantic schemas ─────────────────────────────────────────

class TenantUsage(SQLModel):
    users: int
    leads: int
    contacts: int
    deals: int
    storage_mb: int
    emails_sent_today: int


class TenantUpdate(SQLModel):
    """Fields a platform operator may change; anything else is ignored."""
    organization_name: str | None = Field(default=None, max_length=255)
    contact_email: str | None = Field(default=None, max_length=320)
    contact_phone: str | None = Field(default=None, max_length=50)
    business_type: BusinessType | None = None
    industry: str | None = Field(default=None, max_length=255)
    timezone: str | None = Field(default=None, max_length=64)
    date_format: str | None = Field(default=None, max_length=20)
    currency: str | None = Field(default=None, max_length=3)
    is_active: bool | None = None


class TenantRead(SQLModel):
    id: uuid.UUID
    organization_code: str | None
    organization_name: str
    slug: str
    contact_email: str
    contact_phone: str
    business_type: BusinessType
    industry: str
    timezone: str
    date_format: str
    currency: str
    usage: TenantUsage
    is_active: bool
    is_suspended: bool
    suspension_reason: str | None
    plan_name: str | None = None
    subscription_status: str | None = None
    user_count: int | None = None
    admin: UserSummary | None = None
    created_at: datetime
    updated_at: datetime

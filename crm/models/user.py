"""User model: belongs to a tenant, or to the platform when tenant_id is NULL."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid


class UserRole(StrEnum):
    SAAS_OWNER = "saas_owner"
    SAAS_ADMIN = "saas_admin"
    TENANT_ADMIN = "tenant_admin"
    TENANT_MANAGER = "tenant_manager"
    TENANT_USER = "tenant_user"


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID | None = Field(
        default=None, foreign_key="tenants.id", nullable=True, index=True,
    )
    email: str = Field(max_length=320, nullable=False, unique=True, index=True)
    password_hash: str = Field(nullable=False)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    role: UserRole = Field(default=UserRole.TENANT_USER)
    is_active: bool = Field(default=True)

    # Viewing PIN: Argon2 hash, never the raw digits
    viewing_pin_hash: str | None = Field(default=None)
    is_viewing_pin_set: bool = Field(default=False)

    # Pending PIN reset: SHA-256 of the emailed OTP
    viewing_pin_otp_hash: str | None = Field(default=None, max_length=64)
    viewing_pin_otp_expires_at: datetime | None = Field(default=None)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ── Pydantic schemas ─────────────────────────────────────────

class UserSummary(SQLModel):
    """Compact user reference embedded in other responses."""
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str


class UserRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID | None
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    is_viewing_pin_set: bool

"""Audit trails: PIN-gated record access and general activity."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from crm.models.base import new_uuid, utcnow
from crm.models.user import UserSummary


class AuditResourceType(StrEnum):
    LEAD = "lead"
    CONTACT = "contact"
    DEAL = "deal"
    TASK = "task"
    DOCUMENT = "document"
    OTHER = "other"


class AuditAction(StrEnum):
    VIEWED = "viewed"
    EDITED = "edited"
    DELETED = "deleted"
    EXPORTED = "exported"


class AccessAudit(SQLModel, table=True):
    __tablename__ = "access_audits"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)

    resource_type: AuditResourceType = Field(nullable=False)
    resource_id: uuid.UUID = Field(nullable=False, index=True)
    resource_name: str = Field(default="", max_length=500)
    action: AuditAction = Field(default=AuditAction.VIEWED)

    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=500)
    accessed_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_logs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    # NULL for platform operators acting outside any tenant
    tenant_id: uuid.UUID | None = Field(default=None, foreign_key="tenants.id", index=True)

    action: str = Field(max_length=100, nullable=False, index=True)
    resource_type: str | None = Field(default=None, max_length=50)
    resource_id: uuid.UUID | None = Field(default=None)
    details: str | None = Field(default=None, sa_column=Column(Text))

    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=500)
    request_method: str | None = Field(default=None, max_length=10)
    request_path: str | None = Field(default=None, max_length=2048)
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


# ── Pydantic schemas ─────────────────────────────────────────

class AccessLogCreate(SQLModel):
    resource_type: AuditResourceType | None = None
    resource_id: uuid.UUID | None = None
    resource_name: str = Field(default="", max_length=500)
    action: AuditAction = AuditAction.VIEWED


class AccessAuditRead(SQLModel):
    id: uuid.UUID
    user: UserSummary | None
    tenant_id: uuid.UUID
    resource_type: AuditResourceType
    resource_id: uuid.UUID
    resource_name: str
    action: AuditAction
    ip_address: str | None
    user_agent: str | None
    accessed_at: datetime


class ActivityLogRead(SQLModel):
    id: uuid.UUID
    user_id: uuid.UUID
    tenant_id: uuid.UUID | None
    action: str
    resource_type: str | None
    resource_id: uuid.UUID | None
    details: dict | None
    ip_address: str | None
    request_method: str | None
    request_path: str | None
    created_at: datetime

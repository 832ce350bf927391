"""Note model: free text attached to a CRM record."""

import uuid
from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid
from crm.models.records import RelatedKind, RelatedRead, RelatedRef
from crm.models.user import UserSummary


class Note(TimestampMixin, SQLModel, table=True):
    __tablename__ = "notes"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)

    title: str = Field(max_length=500, nullable=False)
    content: str = Field(sa_column=Column(Text, nullable=False))

    related_kind: RelatedKind = Field(nullable=False)
    related_id: uuid.UUID = Field(nullable=False, index=True)

    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    created_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")
    last_modified_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")

    is_active: bool = Field(default=True, index=True)


# ── Pydantic schemas ─────────────────────────────────────────

class NoteCreate(SQLModel):
    title: str | None = Field(default=None, max_length=500)
    content: str | None = None
    related_to: RelatedRef | None = None
    tenant_id: uuid.UUID | None = Field(default=None, description="Required for platform operators")


class NoteUpdate(SQLModel):
    title: str | None = Field(default=None, max_length=500)
    content: str | None = None


class NoteRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    title: str
    content: str
    related_to: RelatedRead
    owner: UserSummary | None
    created_by_id: uuid.UUID | None
    last_modified_by_id: uuid.UUID | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

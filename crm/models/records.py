"""CRM records that meetings and notes can be attached to.

Only the columns needed to resolve and describe a relation live here.
"""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid


class RelatedKind(StrEnum):
    LEAD = "Lead"
    ACCOUNT = "Account"
    CONTACT = "Contact"
    OPPORTUNITY = "Opportunity"
    DEAL = "Deal"
    TASK = "Task"


class RelatedRef(SQLModel):
    """Tagged reference to a CRM record: the kind names the table the id lives in."""
    kind: RelatedKind
    id: uuid.UUID


class RecordMixin(TimestampMixin):
    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)
    email: str | None = Field(default=None, max_length=320)
    is_active: bool = Field(default=True)


class Lead(RecordMixin, SQLModel, table=True):
    __tablename__ = "leads"


class Account(RecordMixin, SQLModel, table=True):
    __tablename__ = "accounts"


class Contact(RecordMixin, SQLModel, table=True):
    __tablename__ = "contacts"


class Opportunity(RecordMixin, SQLModel, table=True):
    """Also stores deals: a deal is an opportunity further down the pipeline."""
    __tablename__ = "opportunities"


class Task(RecordMixin, SQLModel, table=True):
    __tablename__ = "tasks"


# ── Pydantic schemas ─────────────────────────────────────────

class RelatedRead(SQLModel):
    kind: RelatedKind
    id: uuid.UUID
    name: str | None = None

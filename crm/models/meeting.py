"""Meeting model: a scheduled call or visit, optionally tied to a CRM record."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from crm.models.base import TimestampMixin, new_uuid
from crm.models.records import RelatedKind, RelatedRead, RelatedRef
from crm.models.user import UserSummary


class MeetingStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class MeetingType(StrEnum):
    ONLINE = "online"
    IN_PERSON = "in_person"
    PHONE_CALL = "phone_call"


class Meeting(TimestampMixin, SQLModel, table=True):
    __tablename__ = "meetings"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)

    title: str = Field(max_length=500, nullable=False)
    location: str = Field(default="", max_length=500)
    starts_at: datetime = Field(nullable=False, index=True)
    ends_at: datetime = Field(nullable=False)

    # Generated on create: "crm-<millis>-<9 base36 chars>"
    meeting_id: str | None = Field(default=None, max_length=64, unique=True)
    meeting_link: str = Field(default="", max_length=2048)

    # JSON array of attendee email addresses
    participants: str = Field(default="[]", sa_column=Column(Text, nullable=False, server_default="[]"))

    related_kind: RelatedKind | None = Field(default=None, index=True)
    related_id: uuid.UUID | None = Field(default=None, index=True)
    contact_id: uuid.UUID | None = Field(default=None, foreign_key="contacts.id")

    description: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    agenda: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    outcome: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))

    meeting_type: MeetingType = Field(default=MeetingType.ONLINE)
    status: MeetingStatus = Field(default=MeetingStatus.SCHEDULED, index=True)

    host_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    created_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")
    last_modified_by_id: uuid.UUID | None = Field(default=None, foreign_key="users.id")

    is_active: bool = Field(default=True, index=True)


# ── Pydantic schemas ─────────────────────────────────────────

class MeetingCreate(SQLModel):
    title: str | None = Field(default=None, max_length=500)
    location: str = Field(default="", max_length=500)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    related_to: RelatedRef | None = None
    contact_id: uuid.UUID | None = None
    participants: list[str] = Field(default_factory=list)
    description: str = ""
    agenda: str = ""
    meeting_type: MeetingType = MeetingType.ONLINE
    host_id: uuid.UUID | None = None
    owner_id: uuid.UUID | None = None
    tenant_id: uuid.UUID | None = Field(default=None, description="Required for platform operators")
    send_invitation: bool = True


class MeetingUpdate(SQLModel):
    """Editable fields. Anything else in the request body is ignored."""
    title: str | None = Field(default=None, max_length=500)
    location: str | None = Field(default=None, max_length=500)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    description: str | None = None
    agenda: str | None = None
    outcome: str | None = None
    meeting_type: MeetingType | None = None
    status: MeetingStatus | None = None
    participants: list[str] | None = None
    contact_id: uuid.UUID | None = None


class MeetingRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    title: str
    location: str
    starts_at: datetime
    ends_at: datetime
    meeting_id: str | None
    meeting_link: str
    participants: list[str]
    related_to: RelatedRead | None
    contact_id: uuid.UUID | None
    description: str
    agenda: str
    outcome: str
    meeting_type: MeetingType
    status: MeetingStatus
    host: UserSummary | None
    owner: UserSummary | None
    created_by_id: uuid.UUID | None
    last_modified_by_id: uuid.UUID | None
    is_active: bool
    created_at: datetime
    updated_at: datetime

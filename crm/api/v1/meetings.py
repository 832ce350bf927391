"""Meetings CRUD: tenant-scoped, with generated conference links and email invitations."""

import json
import logging
import secrets
import string
import time
import uuid

from fastapi import APIRouter, BackgroundTasks, Query, Request, status
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.concurrency import run_in_threadpool

from crm.api.deps import Auth, AuthContext, Session
from crm.api.policy import ensure_tenant_access, is_platform, resolve_create_tenant
from crm.core.config import get_settings
from crm.core.errors import Conflict, InvalidRequest, NotFound, ServerError
from crm.core.responses import Envelope, Page, ok, paginate
from crm.models.base import load_json, naive_utc, utcnow
from crm.models.meeting import (
    Meeting,
    MeetingCreate,
    MeetingRead,
    MeetingStatus,
    MeetingUpdate,
)
from crm.models.records import RelatedKind, RelatedRef
from crm.models.user import User, UserSummary
from crm.services import mailer
from crm.services.activity import log_activity
from crm.services.relations import (
    MEETING_KINDS,
    describe_related,
    related_email,
    resolve_related,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])

_ID_ALPHABET = string.digits + string.ascii_lowercase


class ResendInvitationRequest(BaseModel):
    emails: list[str] | None = None


def generate_meeting_id() -> str:
    """``crm-<epoch millis>-<9 random base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"crm-{int(time.time() * 1000)}-{suffix}"


def meeting_link(meeting_id: str) -> str:
    return f"{get_settings().meeting_base_url.rstrip('/')}/{meeting_id}"


def is_meeting_id_collision(exc: IntegrityError) -> bool:
    """True when the unique index on ``meetings.meeting_id`` was violated."""
    return "meeting_id" in str(exc.orig)


async def _user_summary(session: AsyncSession, user_id: uuid.UUID | None) -> UserSummary | None:
    if user_id is None:
        return None
    user = await session.get(User, user_id)
    return UserSummary.model_validate(user) if user else None


async def _to_read(session: AsyncSession, meeting: Meeting) -> MeetingRead:
    return MeetingRead(
        **meeting.model_dump(exclude={"participants", "related_kind", "related_id",
                                      "host_id", "owner_id"}),
        participants=load_json(meeting.participants, []),
        related_to=await describe_related(session, meeting.related_kind, meeting.related_id),
        host=await _user_summary(session, meeting.host_id),
        owner=await _user_summary(session, meeting.owner_id),
    )


async def _get_scoped(session: AsyncSession, auth: AuthContext, meeting_id: uuid.UUID) -> Meeting:
    meeting = await session.get(Meeting, meeting_id)
    if meeting is None:
        raise NotFound("Meeting not found")
    ensure_tenant_access(auth, meeting.tenant_id)
    return meeting


async def _tenant_user(session: AsyncSession, user_id: uuid.UUID, tenant_id: uuid.UUID) -> uuid.UUID:
    user = await session.get(User, user_id)
    if user is None or user.tenant_id != tenant_id:
        raise InvalidRequest("User not found in this organization")
    return user_id


async def _attendees(session: AsyncSession, meeting: Meeting) -> list[str]:
    """Participants plus the related lead or contact, without duplicates."""
    emails = list(load_json(meeting.participants, []))
    for kind, record_id in (
        (meeting.related_kind, meeting.related_id),
        (RelatedKind.CONTACT, meeting.contact_id),
    ):
        email = await related_email(session, kind, record_id)
        if email:
            emails.append(email)
    return list(dict.fromkeys(e.strip() for e in emails if e and e.strip()))


async def _organizer_name(session: AsyncSession, auth: AuthContext) -> str:
    user = await session.get(User, auth.user_id)
    return (user.full_name or user.email) if user else "Your colleague"


# ── Routes ───────────────────────────────────────────────────

@router.get("", response_model=Envelope[Page[MeetingRead]])
async def list_meetings(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: MeetingStatus | None = Query(None, alias="status"),
    related_kind: RelatedKind | None = None,
    related_id: uuid.UUID | None = None,
    search: str | None = None,
) -> Envelope:
    stmt = select(Meeting).where(Meeting.is_active.is_(True))  # type: ignore[attr-defined]
    if not is_platform(auth):
        stmt = stmt.where(Meeting.tenant_id == auth.tenant_id)
    if status_filter:
        stmt = stmt.where(Meeting.status == status_filter)
    if related_kind:
        stmt = stmt.where(Meeting.related_kind == related_kind)
    if related_id:
        stmt = stmt.where(Meeting.related_id == related_id)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(
            Meeting.title.ilike(pattern),  # type: ignore[attr-defined]
            Meeting.location.ilike(pattern),  # type: ignore[attr-defined]
        ))

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await session.execute(
        stmt.order_by(Meeting.starts_at.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [await _to_read(session, m) for m in result.scalars().all()]
    return ok(paginate(items, total, page, limit))


@router.get("/{meeting_id}", response_model=Envelope[MeetingRead])
async def get_meeting(meeting_id: uuid.UUID, auth: Auth, session: Session) -> Envelope:
    meeting = await _get_scoped(session, auth, meeting_id)
    return ok(await _to_read(session, meeting))


@router.post("", response_model=Envelope[MeetingRead], status_code=status.HTTP_201_CREATED)
async def create_meeting(
    body: MeetingCreate,
    auth: Auth,
    session: Session,
    request: Request,
    background: BackgroundTasks,
) -> Envelope:
    tenant_id = await resolve_create_tenant(auth, body.tenant_id, session)

    if not body.title or not body.starts_at or not body.ends_at:
        raise InvalidRequest("Please provide title, start time and end time")
    starts_at, ends_at = naive_utc(body.starts_at), naive_utc(body.ends_at)
    if ends_at < starts_at:
        raise InvalidRequest("End time must be after start time")

    if body.related_to is not None:
        await resolve_related(session, body.related_to, tenant_id, allowed=MEETING_KINDS)
    if body.contact_id is not None:
        await resolve_related(
            session, RelatedRef(kind=RelatedKind.CONTACT, id=body.contact_id), tenant_id,
        )

    host_id = body.host_id or auth.user_id
    owner_id = body.owner_id or auth.user_id
    for user_id in {body.host_id, body.owner_id} - {None}:
        await _tenant_user(session, user_id, tenant_id)

    generated_id = generate_meeting_id()
    meeting = Meeting(
        tenant_id=tenant_id,
        title=body.title,
        location=body.location,
        starts_at=starts_at,
        ends_at=ends_at,
        meeting_id=generated_id,
        meeting_link=meeting_link(generated_id),
        participants=json.dumps(body.participants),
        related_kind=body.related_to.kind if body.related_to else None,
        related_id=body.related_to.id if body.related_to else None,
        contact_id=body.contact_id,
        description=body.description,
        agenda=body.agenda,
        meeting_type=body.meeting_type,
        host_id=host_id,
        owner_id=owner_id,
        created_by_id=auth.user_id,
        last_modified_by_id=auth.user_id,
    )
    session.add(meeting)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_meeting_id_collision(exc):
            raise
        logger.warning("Meeting id collision on %s", generated_id)
        raise Conflict("A meeting with this meeting id already exists") from exc

    data = await _to_read(session, meeting)

    if body.send_invitation:
        recipients = await _attendees(session, meeting)
        if recipients:
            subject, html, text = mailer.meeting_invitation_message(
                meeting, await _organizer_name(session, auth),
            )
            background.add_task(mailer.send_email_quietly, recipients, subject, html, text)

    await log_activity(
        session, auth, request, "meeting.created", "meeting", meeting.id,
        details={"title": meeting.title}, tenant_id=tenant_id,
    )
    return ok(data, "Meeting created successfully")


@router.put("/{meeting_id}", response_model=Envelope[MeetingRead])
async def update_meeting(
    meeting_id: uuid.UUID,
    body: MeetingUpdate,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    meeting = await _get_scoped(session, auth, meeting_id)

    changes = body.model_dump(exclude_unset=True)
    for key in ("starts_at", "ends_at"):
        if changes.get(key) is not None:
            changes[key] = naive_utc(changes[key])
    if "participants" in changes:
        changes["participants"] = json.dumps(changes["participants"] or [])
    if changes.get("contact_id") is not None:
        await resolve_related(
            session, RelatedRef(kind=RelatedKind.CONTACT, id=changes["contact_id"]), meeting.tenant_id,
        )

    # Only contact_id may be cleared; other nulls are treated as "unchanged".
    changes = {k: v for k, v in changes.items() if v is not None or k == "contact_id"}
    starts_at = changes.get("starts_at", meeting.starts_at)
    ends_at = changes.get("ends_at", meeting.ends_at)
    if ends_at < starts_at:
        raise InvalidRequest("End time must be after start time")

    for field, value in changes.items():
        setattr(meeting, field, value)

    meeting.last_modified_by_id = auth.user_id
    meeting.updated_at = utcnow()
    session.add(meeting)
    await session.commit()

    data = await _to_read(session, meeting)
    await log_activity(
        session, auth, request, "meeting.updated", "meeting", meeting.id,
        details={"fields": sorted(changes)}, tenant_id=meeting.tenant_id,
    )
    return ok(data, "Meeting updated successfully")


@router.delete("/{meeting_id}", response_model=Envelope[None])
async def delete_meeting(
    meeting_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
    background: BackgroundTasks,
    send_cancellation: bool = False,
    reason: str | None = None,
) -> Envelope:
    """Cancel a meeting. The row is kept, marked inactive."""
    meeting = await _get_scoped(session, auth, meeting_id)

    meeting.is_active = False
    meeting.status = MeetingStatus.CANCELLED
    meeting.last_modified_by_id = auth.user_id
    meeting.updated_at = utcnow()
    session.add(meeting)
    await session.commit()

    if send_cancellation:
        recipients = await _attendees(session, meeting)
        if recipients:
            subject, html, text = mailer.meeting_cancellation_message(meeting, reason)
            background.add_task(mailer.send_email_quietly, recipients, subject, html, text)

    await log_activity(
        session, auth, request, "meeting.deleted", "meeting", meeting.id,
        details={"title": meeting.title, "reason": reason}, tenant_id=meeting.tenant_id,
    )
    return ok(None, "Meeting deleted successfully")


@router.post("/{meeting_id}/resend-invitation", response_model=Envelope[dict])
async def resend_invitation(
    meeting_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
    body: ResendInvitationRequest | None = None,
) -> Envelope:
    meeting = await _get_scoped(session, auth, meeting_id)

    recipients = (body.emails if body and body.emails else None) or await _attendees(session, meeting)
    if not recipients:
        raise InvalidRequest("No recipients to send the invitation to")

    subject, html, text = mailer.meeting_invitation_message(
        meeting, await _organizer_name(session, auth),
    )
    try:
        await run_in_threadpool(mailer.send_email, recipients, subject, html, text)
    except mailer.MailDeliveryError as exc:
        logger.error("Invitation resend for meeting %s failed: %s", meeting.id, exc)
        raise ServerError("Failed to send invitation") from exc

    await log_activity(
        session, auth, request, "meeting.invitation_resent", "meeting", meeting.id,
        details={"recipients": len(recipients)}, tenant_id=meeting.tenant_id,
    )
    return ok({"recipients": recipients}, "Invitation sent successfully")

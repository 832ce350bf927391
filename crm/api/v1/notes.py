"""Notes CRUD: tenant-scoped, every note attached to a CRM record."""

import uuid

from fastapi import APIRouter, Query, Request, status
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.api.deps import Auth, AuthContext, Session
from crm.api.policy import ensure_tenant_access, is_platform, resolve_create_tenant
from crm.core.errors import InvalidRequest, NotFound
from crm.core.responses import Envelope, Page, ok, paginate
from crm.models.base import utcnow
from crm.models.note import Note, NoteCreate, NoteRead, NoteUpdate
from crm.models.records import RelatedKind
from crm.models.user import User, UserSummary
from crm.services.activity import log_activity
from crm.services.relations import describe_related, resolve_related

router = APIRouter(prefix="/notes", tags=["notes"])


async def _to_read(session: AsyncSession, note: Note) -> NoteRead:
    owner = await session.get(User, note.owner_id)
    return NoteRead(
        **note.model_dump(exclude={"related_kind", "related_id", "owner_id"}),
        related_to=await describe_related(session, note.related_kind, note.related_id),
        owner=UserSummary.model_validate(owner) if owner else None,
    )


async def _get_scoped(session: AsyncSession, auth: AuthContext, note_id: uuid.UUID) -> Note:
    note = await session.get(Note, note_id)
    if note is None:
        raise NotFound("Note not found")
    ensure_tenant_access(auth, note.tenant_id)
    return note


@router.get("", response_model=Envelope[Page[NoteRead]])
async def list_notes(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    related_kind: RelatedKind | None = None,
    related_id: uuid.UUID | None = None,
    owner_id: uuid.UUID | None = None,
) -> Envelope:
    stmt = select(Note).where(Note.is_active.is_(True))  # type: ignore[attr-defined]
    if not is_platform(auth):
        stmt = stmt.where(Note.tenant_id == auth.tenant_id)
    if related_kind:
        stmt = stmt.where(Note.related_kind == related_kind)
    if related_id:
        stmt = stmt.where(Note.related_id == related_id)
    if owner_id:
        stmt = stmt.where(Note.owner_id == owner_id)

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await session.execute(
        stmt.order_by(Note.created_at.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [await _to_read(session, n) for n in result.scalars().all()]
    return ok(paginate(items, total, page, limit))


@router.get("/{note_id}", response_model=Envelope[NoteRead])
async def get_note(note_id: uuid.UUID, auth: Auth, session: Session) -> Envelope:
    note = await _get_scoped(session, auth, note_id)
    return ok(await _to_read(session, note))


@router.post("", response_model=Envelope[NoteRead], status_code=status.HTTP_201_CREATED)
async def create_note(
    body: NoteCreate,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    tenant_id = await resolve_create_tenant(auth, body.tenant_id, session)
    if not body.title or not body.content or body.related_to is None:
        raise InvalidRequest("Please provide title, content and related record")
    await resolve_related(session, body.related_to, tenant_id)

    note = Note(
        tenant_id=tenant_id,
        title=body.title,
        content=body.content,
        related_kind=body.related_to.kind,
        related_id=body.related_to.id,
        owner_id=auth.user_id,
        created_by_id=auth.user_id,
        last_modified_by_id=auth.user_id,
    )
    session.add(note)
    await session.commit()

    data = await _to_read(session, note)
    await log_activity(
        session, auth, request, "note.created", "note", note.id,
        details={"title": note.title}, tenant_id=tenant_id,
    )
    return ok(data, "Note created successfully")


@router.put("/{note_id}", response_model=Envelope[NoteRead])
async def update_note(
    note_id: uuid.UUID,
    body: NoteUpdate,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    note = await _get_scoped(session, auth, note_id)

    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    for field, value in changes.items():
        setattr(note, field, value)
    note.last_modified_by_id = auth.user_id
    note.updated_at = utcnow()
    session.add(note)
    await session.commit()

    data = await _to_read(session, note)
    await log_activity(
        session, auth, request, "note.updated", "note", note.id,
        details={"fields": sorted(changes)}, tenant_id=note.tenant_id,
    )
    return ok(data, "Note updated successfully")


@router.delete("/{note_id}", response_model=Envelope[None])
async def delete_note(
    note_id: uuid.UUID,
    auth: Auth,
    session: Session,
    request: Request,
) -> Envelope:
    note = await _get_scoped(session, auth, note_id)
    note.is_active = False
    note.last_modified_by_id = auth.user_id
    note.updated_at = utcnow()
    session.add(note)
    await session.commit()

    await log_activity(
        session, auth, request, "note.deleted", "note", note.id, tenant_id=note.tenant_id,
    )
    return ok(None, "Note deleted successfully")

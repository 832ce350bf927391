"""Resolve polymorphic ``related_to`` references to the rows they point at."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from crm.core.errors import InvalidRequest
from crm.models.records import (
    Account,
    Contact,
    Lead,
    Opportunity,
    RecordMixin,
    RelatedKind,
    RelatedRead,
    RelatedRef,
    Task,
)

# Deals are opportunities further down the pipeline and share their table.
RELATED_MODELS: dict[RelatedKind, type[RecordMixin]] = {
    RelatedKind.LEAD: Lead,
    RelatedKind.ACCOUNT: Account,
    RelatedKind.CONTACT: Contact,
    RelatedKind.OPPORTUNITY: Opportunity,
    RelatedKind.DEAL: Opportunity,
    RelatedKind.TASK: Task,
}

MEETING_KINDS = frozenset(RELATED_MODELS) - {RelatedKind.TASK}
NOTE_KINDS = frozenset(RELATED_MODELS)


async def resolve_related(
    session: AsyncSession,
    ref: RelatedRef,
    tenant_id: uuid.UUID,
    allowed: frozenset[RelatedKind] = NOTE_KINDS,
) -> RecordMixin:
    """Return the live record ``ref`` names, owned by ``tenant_id``.

    A kind/table mismatch, a soft-deleted row and another tenant's row are
    all reported the same way so ids from other tenants are not probeable.
    """
    if ref.kind not in allowed:
        raise InvalidRequest(f"Cannot relate to {ref.kind}")

    model = RELATED_MODELS[ref.kind]
    result = await session.execute(
        select(model).where(
            model.id == ref.id,
            model.tenant_id == tenant_id,
            model.is_active.is_(True),  # type: ignore[attr-defined]
        )
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise InvalidRequest(f"Related {ref.kind} not found")
    return record


async def describe_related(
    session: AsyncSession,
    kind: RelatedKind | None,
    record_id: uuid.UUID | None,
) -> RelatedRead | None:
    """Build the embedded ``related_to`` block; the name is None if the row is gone."""
    if kind is None or record_id is None:
        return None
    record = await session.get(RELATED_MODELS[kind], record_id)
    return RelatedRead(kind=kind, id=record_id, name=record.name if record else None)


async def related_email(
    session: AsyncSession,
    kind: RelatedKind | None,
    record_id: uuid.UUID | None,
) -> str | None:
    """Email of a related Lead or Contact, used to invite them to meetings."""
    if kind not in (RelatedKind.LEAD, RelatedKind.CONTACT) or record_id is None:
        return None
    record = await session.get(RELATED_MODELS[kind], record_id)
    return record.email if record and record.email else None

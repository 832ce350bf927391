"""Read access to the activity log for administrators."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import select

from crm.api.deps import Auth, AuthContext, Session
from crm.api.policy import is_platform
from crm.core.errors import AccessDenied
from crm.core.responses import Envelope, Page, ok, paginate
from crm.models.audit import ActivityLog, ActivityLogRead
from crm.models.base import load_json, naive_utc
from crm.models.user import UserRole

router = APIRouter(prefix="/activity-logs", tags=["activity-logs"])


class CountBucket(BaseModel):
    key: str | None
    count: int


class ActivityStats(BaseModel):
    total: int
    by_action: list[CountBucket]
    by_resource_type: list[CountBucket]


def _scope(auth: AuthContext, tenant_id: uuid.UUID | None) -> uuid.UUID | None:
    """Tenant the caller may read; None means every tenant."""
    if is_platform(auth):
        return tenant_id
    if auth.user_role == UserRole.TENANT_ADMIN:
        return auth.tenant_id
    raise AccessDenied("Only administrators can view activity logs")


def _to_read(entry: ActivityLog) -> ActivityLogRead:
    return ActivityLogRead(
        **entry.model_dump(exclude={"details"}),
        details=load_json(entry.details, None),
    )


@router.get("", response_model=Envelope[Page[ActivityLogRead]])
async def list_activity(
    auth: Auth,
    session: Session,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: uuid.UUID | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    tenant_id: uuid.UUID | None = None,
) -> Envelope:
    scope = _scope(auth, tenant_id)

    stmt = select(ActivityLog)
    if scope is not None:
        stmt = stmt.where(ActivityLog.tenant_id == scope)
    if user_id:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    if action:
        stmt = stmt.where(ActivityLog.action == action)
    if resource_type:
        stmt = stmt.where(ActivityLog.resource_type == resource_type)
    if start_date:
        stmt = stmt.where(ActivityLog.created_at >= naive_utc(start_date))
    if end_date:
        stmt = stmt.where(ActivityLog.created_at <= naive_utc(end_date))

    total = (await session.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await session.execute(
        stmt.order_by(ActivityLog.created_at.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [_to_read(e) for e in result.scalars().all()]
    return ok(paginate(items, total, page, limit))


@router.get("/stats", response_model=Envelope[ActivityStats])
async def activity_stats(
    auth: Auth,
    session: Session,
    tenant_id: uuid.UUID | None = None,
) -> Envelope:
    scope = _scope(auth, tenant_id)
    where = [ActivityLog.tenant_id == scope] if scope is not None else []

    async def buckets(column, top: int | None = None) -> list[CountBucket]:
        stmt = (
            select(column, func.count().label("n"))
            .where(*where)
            .group_by(column)
            .order_by(func.count().desc())
        )
        if top:
            stmt = stmt.limit(top)
        result = await session.execute(stmt)
        return [CountBucket(key=key, count=n) for key, n in result.all()]

    total = (await session.execute(
        select(func.count()).select_from(ActivityLog).where(*where)
    )).scalar_one()
    return ok(ActivityStats(
        total=total,
        by_action=await buckets(ActivityLog.action, top=10),
        by_resource_type=await buckets(ActivityLog.resource_type),
    ))

"""Activity log: one row per mutation, written after the primary commit."""

import json
import logging
import uuid

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm.api.deps import AuthContext, client_ip
from crm.models.audit import ActivityLog

logger = logging.getLogger(__name__)


async def log_activity(
    session: AsyncSession,
    auth: AuthContext,
    request: Request | None,
    action: str,
    resource_type: str | None = None,
    resource_id: uuid.UUID | None = None,
    details: dict | None = None,
    tenant_id: uuid.UUID | None = None,
) -> None:
    """Record who did what. Never raises: the mutation it describes already succeeded."""
    try:
        entry = ActivityLog(
            user_id=auth.user_id,
            tenant_id=tenant_id or auth.tenant_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=json.dumps(details, default=str) if details else None,
        )
        if request is not None:
            entry.ip_address = client_ip(request)
            entry.user_agent = (request.headers.get("user-agent") or "")[:500] or None
            entry.request_method = request.method
            entry.request_path = request.url.path
        session.add(entry)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception("Failed to write activity log %s for user %s", action, auth.user_id)

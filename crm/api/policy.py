"""Authorization policy: which roles act across tenants, and what they may touch."""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from crm.api.deps import AuthContext
from crm.core.errors import AccessDenied, InvalidRequest, NotFound
from crm.models.tenant import Tenant
from crm.models.user import UserRole

PLATFORM_ROLES = frozenset({UserRole.SAAS_OWNER, UserRole.SAAS_ADMIN})


def is_platform(auth: AuthContext) -> bool:
    return auth.user_role in PLATFORM_ROLES


def require_platform(auth: AuthContext) -> None:
    if not is_platform(auth):
        raise AccessDenied("Access denied. SaaS admin privileges required.")


def require_platform_owner(auth: AuthContext) -> None:
    if auth.user_role != UserRole.SAAS_OWNER:
        raise AccessDenied("Access denied. Only the SaaS owner can perform this action.")


def require_tenant_member(auth: AuthContext) -> uuid.UUID:
    """Return the caller's tenant id, or 403 for callers outside any tenant."""
    if auth.tenant_id is None:
        raise AccessDenied("This action requires a tenant account")
    return auth.tenant_id


def ensure_tenant_access(auth: AuthContext, tenant_id: uuid.UUID) -> None:
    """403 unless the caller is a platform operator or belongs to ``tenant_id``."""
    if is_platform(auth):
        return
    if auth.tenant_id != tenant_id:
        raise AccessDenied("Access denied")


async def resolve_create_tenant(
    auth: AuthContext,
    requested: uuid.UUID | None,
    session: AsyncSession,
) -> uuid.UUID:
    """Pick the tenant a new record belongs to.

    Tenant users always write into their own tenant; platform operators
    have none, so they must name an existing one.
    """
    if not is_platform(auth):
        return require_tenant_member(auth)

    if requested is None:
        raise InvalidRequest("tenant_id is required for platform users")
    if await session.get(Tenant, requested) is None:
        raise NotFound("Tenant not found")
    return requested

"""FastAPI dependencies for authentication and tenant resolution."""

import uuid
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import get_session
from crm.core.errors import Unauthorized
from crm.core.security import decode_jwt
from crm.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext:
    """Resolved identity carried through a request.

    ``tenant_id`` is None for platform operators, who act across tenants.
    """

    __slots__ = ("tenant_id", "user_id", "user_role")

    def __init__(
        self,
        tenant_id: uuid.UUID | None,
        user_id: uuid.UUID,
        user_role: str,
    ) -> None:
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.user_role = user_role


def _subject_from_jwt(token: str) -> uuid.UUID:
    """Decode a JWT and return the user id it was issued for."""
    try:
        payload = decode_jwt(token)
    except JWTError as exc:
        raise Unauthorized("Invalid or expired token") from exc

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise Unauthorized("Malformed token payload") from exc


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Resolve a bearer JWT to an AuthContext.

    Role and tenant are read from the user row rather than the token claims,
    so a deactivated or re-scoped account takes effect immediately.
    """
    if credentials is None:
        raise Unauthorized("Not authorized, no token")

    user_id = _subject_from_jwt(credentials.credentials)
    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthorized("Not authorized, user not found or disabled")

    return AuthContext(
        tenant_id=user.tenant_id,
        user_id=user.id,
        user_role=user.role,
    )


def client_ip(request: Request) -> str | None:
    """Best-effort caller address, honouring a reverse proxy's X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
Session = Annotated[AsyncSession, Depends(get_session)]

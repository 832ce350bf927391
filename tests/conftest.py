"""Shared test fixtures: async SQLite in-memory DB + test client."""

import os

# Settings are read once at import time, so these must be in place first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DEMO_PAYMENTS_ENABLED", "true")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlmodel import SQLModel, select  # noqa: E402

# Import all models so metadata is populated
import crm.models  # noqa: E402, F401
from crm.core.database import get_session  # noqa: E402
from crm.core.security import create_jwt, hash_password  # noqa: E402
from crm.main import app  # noqa: E402
from crm.models.plan import SubscriptionPlan  # noqa: E402
from crm.models.user import User, UserRole  # noqa: E402
from crm.services.plans import seed_plans  # noqa: E402


@pytest.fixture(scope="session")
async def engine():
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture(scope="session")
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def plans(session) -> dict[str, str]:
    """Default plan catalog, as a name -> id mapping."""
    await seed_plans(session)
    result = await session.execute(select(SubscriptionPlan))
    return {p.name: str(p.id) for p in result.scalars().all()}


@pytest.fixture
def platform_user(session):
    """Factory: create a platform operator and return (headers, user)."""

    async def _make(email: str, role: UserRole = UserRole.SAAS_OWNER):
        user = User(
            tenant_id=None,
            email=email,
            password_hash=hash_password("platformpass1"),
            first_name="Platform",
            last_name=role.replace("_", " ").title(),
            role=role,
        )
        session.add(user)
        await session.commit()
        token = create_jwt(subject=str(user.id), tenant_id=None, role=user.role)
        return {"Authorization": f"Bearer {token}"}, user

    return _make

"""
Test Configuration and Fixtures

Shared fixtures for KEYSTONE API tests.
Provides an isolated in-memory database seeded with the built-in roles,
users for each role, and authenticated clients.
"""

from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from keystone.api.access.audit import AuditEngine
from keystone.api.access.policy import AuthContext, PolicyEngine
from keystone.api.auth.jwt import create_access_token
from keystone.api.auth.passwords import hash_password
from keystone.api.config import settings
from keystone.api.db.models import Role, User
from keystone.api.db.repositories import (
    AuditLogRepository,
    RoleRepository,
    UserRepository,
)
from keystone.api.db.seed import seed
from keystone.api.db.session import Database, get_db
from keystone.api.main import create_app


ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPassword123"
USER_PASSWORD = "UserPassword123"


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Keep bcrypt cheap in tests."""
    monkeypatch.setattr(settings, "BCRYPT_ROUNDS", 4)


# ==================== Database Fixtures ====================


@pytest_asyncio.fixture(scope="function")
async def database() -> AsyncGenerator[Database, None]:
    """In-memory SQLite database shared through a single connection."""
    db = Database(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with database.session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def roles(db_session) -> Dict[str, Role]:
    """Seed the permission catalog and built-in roles; keyed by role name."""
    await seed(db_session, ADMIN_EMAIL, ADMIN_PASSWORD, password_rounds=4)
    repo = RoleRepository(db_session)
    return {role.name: role for role in await repo.list()}


# ==================== User Fixtures ====================


async def _make_user(
    db_session: AsyncSession,
    email: str,
    role: Role,
    is_active: bool = True,
) -> User:
    user = await UserRepository(db_session).add(
        User(
            email=email,
            password_hash=hash_password(USER_PASSWORD, rounds=4),
            first_name="Test",
            last_name=role.name.capitalize(),
            role_id=role.id,
            is_active=is_active,
        )
    )
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session, roles) -> User:
    """The administrator created by seeding."""
    return await UserRepository(db_session).get_by_email(ADMIN_EMAIL)


@pytest_asyncio.fixture(scope="function")
async def manager_user(db_session, roles) -> User:
    return await _make_user(db_session, "manager@example.com", roles["manager"])


@pytest_asyncio.fixture(scope="function")
async def viewer_user(db_session, roles) -> User:
    return await _make_user(db_session, "viewer@example.com", roles["viewer"])


@pytest_asyncio.fixture(scope="function")
async def inactive_user(db_session, roles) -> User:
    return await _make_user(
        db_session, "inactive@example.com", roles["viewer"], is_active=False
    )


def context_for(user: User) -> AuthContext:
    """Auth context as the HTTP layer would build it."""
    return AuthContext(
        user_id=user.id,
        email=user.email,
        role_id=user.role_id,
        ip_address="127.0.0.1",
        user_agent="pytest",
    )


@pytest.fixture(scope="function")
def admin_context(admin_user) -> AuthContext:
    return context_for(admin_user)


@pytest.fixture(scope="function")
def viewer_context(viewer_user) -> AuthContext:
    return context_for(viewer_user)


# ==================== Engine Fixtures ====================


@pytest.fixture(scope="function")
def policy(db_session) -> PolicyEngine:
    return PolicyEngine(UserRepository(db_session), RoleRepository(db_session))


@pytest.fixture(scope="function")
def audit(db_session) -> AuditEngine:
    return AuditEngine(AuditLogRepository(db_session))


# ==================== Application Fixtures ====================


@pytest.fixture(scope="function")
def app(database, db_session) -> FastAPI:
    """Create FastAPI app with test database."""
    test_app = create_app(database)

    async def override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(user: User) -> dict:
    """Authorization header carrying a fresh access token for the user."""
    token = create_access_token(user_id=user.id, email=user.email, role_id=user.role_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def admin_headers(admin_user) -> dict:
    """Authorization headers for the administrator."""
    return bearer(admin_user)


@pytest.fixture(scope="function")
def manager_headers(manager_user) -> dict:
    return bearer(manager_user)


@pytest.fixture(scope="function")
def viewer_headers(viewer_user) -> dict:
    """Authorization headers for a read-only user."""
    return bearer(viewer_user)

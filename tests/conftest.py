"""
Shared fixtures: in-memory SQLite store, factories and an API client.
"""

from __future__ import annotations

import os

# Must be set before orgkit reads its settings
os.environ.setdefault("ORGKIT_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ORGKIT_LOG_FORMAT", "text")

from datetime import timedelta  # noqa: E402
from typing import Any, Optional  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, select  # noqa: E402

import orgkit.models  # noqa: E402,F401
from orgkit.core.auth import OrgContext, create_jwt, hash_password  # noqa: E402
from orgkit.core.database import enforce_sqlite_foreign_keys, get_session  # noqa: E402
from orgkit.core.email import Mailer, get_mailer  # noqa: E402
from orgkit.core.features import FeatureFlags, get_feature_flags, resolve_feature_flags  # noqa: E402
from orgkit.models.base import utcnow  # noqa: E402
from orgkit.models.invitation import Invitation  # noqa: E402
from orgkit.models.membership import Membership  # noqa: E402
from orgkit.models.organization import Organization  # noqa: E402
from orgkit.models.user import User  # noqa: E402
from orgkit.services.audit import RequestMeta  # noqa: E402


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class RecordingMailer(Mailer):
    def __init__(self):
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> None:
        self.sent.append((template, recipient, variables))


class FailingMailer(Mailer):
    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> None:
        raise ConnectionError("smtp unavailable")


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def failing_mailer() -> FailingMailer:
    return FailingMailer()


@pytest.fixture
def flags_on() -> FeatureFlags:
    return resolve_feature_flags({"FEATURES__AUDIT_LOG": "true"})


@pytest.fixture
def flags_off() -> FeatureFlags:
    return resolve_feature_flags({})


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    enforce_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class Factory:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def user(
        self,
        email: str = "owner@acme.io",
        name: Optional[str] = "Owner",
        password: Optional[str] = None,
    ) -> User:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password) if password else None,
        )
        self.session.add(user)
        await self.session.commit()
        return user

    async def org(self, owner: User, name: str = "Acme", slug: str = "acme") -> Organization:
        org = Organization(name=name, slug=slug)
        self.session.add(org)
        await self.session.flush()
        self.session.add(Membership(user_id=owner.id, organization_id=org.id, role="owner"))
        await self.session.commit()
        return org

    async def member(
        self,
        org: Organization,
        user: User,
        role: str = "member",
        status: str = "active",
    ) -> Membership:
        membership = Membership(user_id=user.id, organization_id=org.id, role=role, status=status)
        self.session.add(membership)
        await self.session.commit()
        return membership

    async def invitation(
        self,
        org: Organization,
        email: str,
        *,
        role: str = "member",
        invited_by: Optional[User] = None,
        expires_in: timedelta = timedelta(days=7),
        token: Optional[str] = None,
    ) -> Invitation:
        invitation = Invitation(
            organization_id=org.id,
            email=email,
            role=role,
            token=token or os.urandom(32).hex(),
            invited_by=invited_by.id if invited_by else None,
            expires_at=utcnow() + expires_in,
        )
        self.session.add(invitation)
        await self.session.commit()
        return invitation

    async def ctx(self, user: User, org: Organization, meta: Optional[RequestMeta] = None) -> OrgContext:
        result = await self.session.execute(
            select(Membership).where(
                Membership.user_id == user.id, Membership.organization_id == org.id
            )
        )
        return OrgContext(user=user, org=org, membership=result.scalar_one(), meta=meta)


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


@pytest.fixture
async def owner(factory) -> User:
    return await factory.user("owner@acme.io", "Olivia Owner", password="correct-horse")


@pytest.fixture
async def org(factory, owner) -> Organization:
    return await factory.org(owner)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

def bearer(user: User) -> dict[str, str]:
    token, _jti = create_jwt(user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return bearer


@pytest.fixture
async def app(session_factory, mailer, flags_on):
    from orgkit.main import app

    async def _get_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_feature_flags] = lambda: flags_on
    with patch("orgkit.core.auth.is_jwt_revoked", new=AsyncMock(return_value=False)), patch(
        "orgkit.api.v1.auth.is_jwt_revoked", new=AsyncMock(return_value=False)
    ), patch("orgkit.api.v1.auth.revoke_jwt", new=AsyncMock()):
        yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fetch(session):
    """Query through the test session, refreshing rows other sessions may have changed."""
    async def _fetch(stmt):
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())
    return _fetch

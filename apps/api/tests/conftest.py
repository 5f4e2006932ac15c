"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database (fresh per test, SAVEPOINT-capable)
- Fake identity provider and captured outbound mail
- Local blob storage under tmp_path
- HTTPX AsyncClient fixtures for planner and executor sessions
"""
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Generator

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["ENV"] = "test"
os.environ["TESTING"] = "1"
os.environ["JWT_SECRET"] = "test-secret-for-session-tokens-0123456789"
os.environ["RESEND_API_KEY"] = ""
os.environ["EMAIL_FROM"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from everease.core.config import settings
from everease.core.deps import (
    COOKIE_NAME,
    get_db,
    get_identity_provider,
    get_optional_identity_provider,
)
from everease.core.security import create_session_token
from everease.db.base import Base
from everease.db.enums import ProfileRole
from everease.db.models import Profile
from everease.main import app
from everease.services.identity_provider import (
    Identity,
    IdentityAlreadyExistsError,
    InvalidCredentialsError,
)
from everease.utils.normalization import clean_email, normalize_email


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory database per test.

    pysqlite's own transaction handling breaks SAVEPOINT; take it over so
    begin_nested() behaves as on PostgreSQL.
    """
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(test_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(test_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    """Blob storage on local disk under tmp_path."""
    monkeypatch.setattr(settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path / "blobs"))
    return tmp_path / "blobs"


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakeIdentityProvider:
    """In-memory identity provider."""

    def __init__(self):
        self.accounts: dict[str, tuple[Identity, str]] = {}
        self.sign_up_calls: list[dict[str, Any]] = []

    def add_account(self, email: str, password: str = "correct-horse", metadata=None) -> Identity:
        identity = Identity(
            id=uuid.uuid4(),
            email=clean_email(email),
            metadata=metadata or {},
            access_token=f"idp-{uuid.uuid4().hex}",
        )
        self.accounts[normalize_email(email)] = (identity, password)
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        account = self.accounts.get(normalize_email(email))
        if not account or account[1] != password:
            raise InvalidCredentialsError()
        return account[0]

    async def sign_up(self, email: str, password: str, metadata=None) -> Identity:
        self.sign_up_calls.append({"email": email, "metadata": metadata or {}})
        if normalize_email(email) in self.accounts:
            raise IdentityAlreadyExistsError()
        return self.add_account(email, password, metadata)

    async def get_identity(self, access_token: str) -> Identity:
        for identity, _ in self.accounts.values():
            if identity.access_token == access_token:
                return identity
        raise InvalidCredentialsError()

    async def lookup_identity_by_email(self, email: str) -> Identity | None:
        account = self.accounts.get(normalize_email(email))
        return account[0] if account else None


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str
    text: str | None
    idempotency_key: str | None = None


@dataclass
class Mailbox:
    sent: list[SentEmail] = field(default_factory=list)
    fail_with: Exception | None = None

    def tokens(self) -> list[str]:
        """Invitation tokens from the acceptance links sent so far."""
        from urllib.parse import parse_qs, urlparse
        import re

        tokens = []
        for email in self.sent:
            for url in re.findall(r"https?://\S+accept-invitation\?token=\S+", email.text or ""):
                tokens.append(parse_qs(urlparse(url).query)["token"][0])
        return tokens


@pytest.fixture
def mailbox(monkeypatch) -> Mailbox:
    """Capture outbound email instead of calling the provider."""
    from everease.services import email_service

    box = Mailbox()

    async def fake_send(to, subject, html, text=None, *, idempotency_key=None):
        if box.fail_with is not None:
            raise box.fail_with
        box.sent.append(SentEmail(to, subject, html, text, idempotency_key))
        return {"message_id": f"msg-{len(box.sent)}"}

    monkeypatch.setattr(email_service, "send", fake_send)
    return box


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def planner(db: Session) -> Profile:
    profile = Profile(
        id=uuid.uuid4(),
        email="planner@example.com",
        display_name="Pat Planner",
        role=ProfileRole.PLANNER.value,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def profile_factory(db: Session):
    """Create extra profiles: profile_factory("someone@example.com", ProfileRole.EXECUTOR)."""
    def _make(email: str, role: ProfileRole = ProfileRole.PLANNER, display_name: str | None = None) -> Profile:
        profile = Profile(
            id=uuid.uuid4(),
            email=clean_email(email),
            display_name=display_name,
            role=role.value,
        )
        db.add(profile)
        db.commit()
        return profile
    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

def session_cookie_for(profile: Profile) -> dict[str, str]:
    token = create_session_token(profile.id, profile.email, profile.role)
    return {COOKIE_NAME: token}


@pytest.fixture
def override_deps(db: Session, identity_provider: FakeIdentityProvider):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_optional_identity_provider] = lambda: identity_provider
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client(override_deps) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient with the CSRF header."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Requested-With": "XMLHttpRequest"},
    ) as c:
        yield c


@pytest.fixture
def client_for(override_deps):
    """
    Build an AsyncClient signed in as the given profile.

    Use as ``async with client_for(profile) as c: ...``
    """
    def _build(profile: Profile) -> AsyncClient:
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=session_cookie_for(profile),
            headers={"X-Requested-With": "XMLHttpRequest"},
        )
    return _build


@pytest.fixture
async def planner_client(client_for, planner: Profile) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient signed in as the planner."""
    async with client_for(planner) as c:
        yield c

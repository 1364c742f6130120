"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite + StaticPool) so
the suite needs no PostgreSQL. Every session created during a test shares
the single pooled connection, so fixtures that seed data for API tests
commit before the request is made.
"""

import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from moviesaw.core.config import settings
from moviesaw.core.database import create_all
from moviesaw.models import Account
from moviesaw.models.account import Role
from moviesaw.repositories.account_repository import AccountRepository
from moviesaw.services import credential_store

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "correct-horse-battery"  # nosec B105


def create_test_jwt(
    account_id: uuid.UUID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta = timedelta(hours=1),
    audience: str | None = None,
    issuer: str | None = None,
) -> str:
    """Create a signed session-shaped JWT outside the token issuer.

    Args:
        account_id: Account UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret to verify).
        expires_delta: Time until expiration (negative for expired tokens).
        audience: aud claim. Defaults to settings.auth_audience.
        issuer: iss claim. Defaults to settings.auth_issuer.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(account_id),
        "aud": audience or settings.auth_audience,
        "iss": issuer or settings.auth_issuer,
        "exp": now + expires_delta,
        "iat": now - timedelta(hours=2),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture(autouse=True)
def auth_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Deterministic auth settings for every test.

    - Known signing secret
    - Cookies without the Secure flag (the test client speaks plain http)
    - Cheap bcrypt cost
    - No HIBP network calls
    """
    monkeypatch.setattr(settings, "auth_secret", SecretStr(TEST_AUTH_SECRET))
    monkeypatch.setattr(settings, "auth_cookie_secure", False)
    monkeypatch.setattr(settings, "password_hash_rounds", 4)
    monkeypatch.setattr(settings, "password_breach_check_enabled", False)
    monkeypatch.setattr(settings, "session_cap", 2)
    monkeypatch.setattr(settings, "revocation_retention_days", 7)


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.
    """
    from moviesaw.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


@pytest.fixture(autouse=True)
def sent_verification_emails() -> Iterator[AsyncMock]:
    """Capture verification emails instead of calling Resend.

    Yields:
        AsyncMock standing in for send_verification_email. Each call has
        to_email and token keyword arguments.
    """
    with patch(
        "moviesaw.api.v1.auth.send_verification_email", new_callable=AsyncMock
    ) as mock_send:
        yield mock_send


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    await create_all(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test database.

    Sets up:
    - Test database connection via dependency override
    - httpx.AsyncClient with ASGI transport

    Yields:
        AsyncClient for making API requests.
    """
    from moviesaw.core.database import get_db
    from moviesaw.main import app

    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_local_account(
    db: AsyncSession,
    *,
    email: str = "viewer@example.com",
    name: str = "Viewer",
    password: str = TEST_PASSWORD,
    verified: bool = True,
    role: Role = Role.USER,
) -> Account:
    """Register a local account and commit it.

    Args:
        db: Async database session.
        email: Account email.
        name: Display name.
        password: Plain-text password.
        verified: Mark the email verified.
        role: Account role.

    Returns:
        The committed Account.
    """
    created = await credential_store.create_local_account(
        db, name=name, email=email, raw_password=password
    )
    account = created.account
    if verified:
        account.email_verified = True
        account.verification_token_hash = None
        account.verification_expires_at = None
    if role is not Role.USER:
        account.role = role.value
    await db.commit()
    return await AccountRepository.get_by_id(db, account.id)


@pytest_asyncio.fixture
async def verified_account(db_session: AsyncSession) -> Account:
    """A verified local account with TEST_PASSWORD."""
    return await make_local_account(db_session)


@pytest_asyncio.fixture
async def admin_account(db_session: AsyncSession) -> Account:
    """A verified local admin account with TEST_PASSWORD."""
    return await make_local_account(
        db_session, email="admin@example.com", name="Admin", role=Role.ADMIN
    )

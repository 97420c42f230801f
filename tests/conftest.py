"""Pytest configuration and fixtures."""

import os
import re
from collections.abc import AsyncGenerator
from dataclasses import asdict
from datetime import UTC, datetime, timedelta
from typing import Any

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from creativehub.api.deps import (
    get_auth_policy,
    get_clock,
    get_email_service,
    get_identity_providers,
)
from creativehub.config import settings
from creativehub.database import get_session
from creativehub.exceptions import DeliveryFailed
from creativehub.main import app
from creativehub.models import Privilege, User
from creativehub.services.auth import create_token
from creativehub.services.email import EmailBackend, EmailService, OutgoingEmail
from creativehub.services.identity import IdentityProviders
from creativehub.services.otp import OtpPolicy
from creativehub.services.passwords import hash_password
from creativehub.services.rate_limit import get_rate_limiter
from creativehub.services.step_up import AuthPolicy

TEST_PASSWORD = "correct-horse"

_CODE_PATTERN = re.compile(r"Your verification code is: (\d{6})")


class FakeClock:
    """Controllable clock for expiry and cooldown tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingEmailBackend(EmailBackend):
    """Keeps sent messages in memory instead of delivering them."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def deliver(self, message: OutgoingEmail) -> str:
        if self.fail:
            raise DeliveryFailed()
        self.sent.append(asdict(message))
        return f"test-{len(self.sent)}"

    def last_code(self, to: str | None = None) -> str:
        """Code from the most recent message (optionally to ``to``)."""
        for message in reversed(self.sent):
            if to is None or message["to"] == to:
                match = _CODE_PATTERN.search(message["text"] or "")
                assert match, "no code in message"
                return match.group(1)
        raise AssertionError(f"no email sent to {to}")


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Rate limiter state is process-global."""
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
async def test_engine():
    """In-memory SQLite engine with a fresh schema per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def outbox() -> RecordingEmailBackend:
    return RecordingEmailBackend()


@pytest.fixture
def email_service(outbox: RecordingEmailBackend) -> EmailService:
    return EmailService(backend=outbox)


@pytest.fixture
def auth_policy() -> AuthPolicy:
    """Default policy for tests: mock provider tokens accepted, no code previews."""
    return AuthPolicy(
        require_step_up_for_privileged=True,
        step_up_federated_logins=True,
        allow_mock_identity=True,
        expose_code_preview=False,
        federated_email_domain="rkch",
        otp=OtpPolicy(),
    )


@pytest.fixture
def identity_providers(auth_policy: AuthPolicy) -> IdentityProviders:
    return IdentityProviders.from_settings(settings, allow_mock=auth_policy.allow_mock_identity)


@pytest.fixture
async def client(
    session: AsyncSession,
    clock: FakeClock,
    email_service: EmailService,
    auth_policy: AuthPolicy,
    identity_providers: IdentityProviders,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_auth_policy] = lambda: auth_policy
    app.dependency_overrides[get_identity_providers] = lambda: identity_providers

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_user(
    session: AsyncSession,
    email: str,
    privilege: Privilege = Privilege.STANDARD,
    password: str = TEST_PASSWORD,
    name: str = "Test User",
) -> User:
    user = User(
        email=email,
        name=name,
        phone="555-0100",
        password_hash=hash_password(password),
        privilege=privilege,
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def user(session: AsyncSession) -> User:
    """Create a standard test user."""
    return await make_user(session, "test@example.com")


@pytest.fixture
async def admin_user(session: AsyncSession) -> User:
    """Create a privileged test user."""
    return await make_user(session, "admin@example.com", Privilege.PRIVILEGED, name="Admin User")


@pytest.fixture
def user_token(user: User) -> str:
    """Create a JWT token for the test user."""
    return create_token(user)


@pytest.fixture
def admin_token(admin_user: User) -> str:
    """Create a JWT token for the admin user."""
    return create_token(admin_user)


@pytest.fixture
def auth_headers(user_token: str) -> dict[str, str]:
    """Create authorization headers for the test user."""
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def admin_headers(admin_token: str) -> dict[str, str]:
    """Create authorization headers for the admin user."""
    return {"Authorization": f"Bearer {admin_token}"}

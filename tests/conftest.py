"""Shared fixtures.

Every test gets its own SQLite file so the auth middleware's session and the
endpoint session see the same committed rows over separate connections.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient, Response
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from newsgears.core import auth as auth_module
from newsgears.core.auth import hash_password
from newsgears.core.claims import random_claim_value
from newsgears.core.config import settings
from newsgears.core.rate_limiting import PrincipalRateLimiter, limiter
from newsgears.core.tokens import TokenCodec
from newsgears.models.base import Base
from newsgears.models.user import AuthProvider, User
from newsgears.repositories.api_key_repository import ApiKeyRepository
from newsgears.repositories.user_repository import UserRepository

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_TOKEN_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_PASSWORD = "correct-horse"  # nosec B105

TEST_API_SECRET = "s3cr3tS3cr3tS3cr3tS3cr3tS3cr3t00"  # nosec B105

# Fixed instant for codec tests; far enough in the past that tokens issued
# with it are never mistaken for live ones.
FIXED_NOW = datetime(2024, 1, 1, tzinfo=UTC)


class FixedClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def cookie_value(response: Response, name: str) -> str | None:
    """Return the value of a Set-Cookie header by cookie name."""
    for header in response.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key.strip() == name:
            return rest.split(";", 1)[0].strip('"')
    return None


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Deterministic settings for every test.

    - known token secret
    - development flag on so cookies work over plain HTTP
    - no outbound mail
    - per-IP limiter off, bcrypt at minimum cost
    """
    monkeypatch.setattr(settings, "token_secret", SecretStr(TEST_TOKEN_SECRET))
    monkeypatch.setattr(settings, "development", True)
    monkeypatch.setattr(settings, "mail_disabled", True)
    monkeypatch.setattr(settings, "single_user_mode", False)
    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    monkeypatch.setattr(limiter, "enabled", False)
    monkeypatch.setattr(auth_module, "_BCRYPT_ROUNDS", 4)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def codec(clock: FixedClock) -> TokenCodec:
    """Codec on a fixed clock, for service-level tests."""
    return TokenCodec(TEST_TOKEN_SECRET, clock=clock)


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


MakeUser = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> MakeUser:
    """Factory creating committed users.

    Local users get a password and all four claims; with_api_key adds a key
    whose secret is TEST_API_SECRET.
    """

    async def _make(
        username: str = "alice",
        *,
        email: str | None = None,
        password: str | None = TEST_PASSWORD,
        provider: AuthProvider = AuthProvider.LOCAL,
        verified: bool = False,
        with_claims: bool = True,
        with_api_key: bool = False,
    ) -> User:
        user = await UserRepository.create(
            db_session,
            username=username,
            email_address=email or f"{username}@example.com",
            password_hash=hash_password(password) if password else None,
            auth_provider=provider,
            is_verified=verified,
        )
        if with_claims:
            user.auth_claim = random_claim_value()
            user.pw_reset_claim = random_claim_value()
            user.pw_reset_auth_claim = random_claim_value()
            user.verification_claim = random_claim_value()
        if with_api_key:
            await ApiKeyRepository.create(
                db_session,
                user_id=user.id,
                api_key=f"key-{username}",
                api_secret=TEST_API_SECRET,
            )
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def app(session_factory: async_sessionmaker[AsyncSession]) -> FastAPI:
    """Application wired to the test database.

    The per-principal limit is raised so multi-step flows never trip it;
    rate limiting tests build their own app.
    """
    from newsgears.core.database import get_db
    from newsgears.main import create_app

    application = create_app(
        session_factory=session_factory,
        rate_limiter=PrincipalRateLimiter("1000/minute"),
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the ASGI app."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

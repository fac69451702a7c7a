"""
Pytest fixtures for auth service tests.
"""

import os
import tempfile
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

# Point the app at SQLite before anything under src/ builds its engine
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp.name}"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.config import AuthConfig, get_settings
from src.database import build_engine, build_session_maker
from src.kernel.identity.google import GoogleIdentityProvider, GoogleProfile
from src.kernel.identity.jwt import JWTManager
from src.kernel.identity.password import PasswordHasher
from src.kernel.identity.session_manager import SessionManager
from src.kernel.models import Base

get_settings.cache_clear()

TEST_CLIENT_ID = "test-client.apps.googleusercontent.com"


@pytest.fixture
def auth_config() -> AuthConfig:
    """Deterministic config with a cheap bcrypt work factor."""
    return AuthConfig(
        access_secret="test-access-secret-for-testing-only",
        refresh_secret="test-refresh-secret-for-testing-only",
        bcrypt_rounds=4,
        google_client_id=TEST_CLIENT_ID,
        google_client_secret="test-google-secret",
        google_redirect_uri="http://localhost:3000/auth/google/callback",
        provider_timeout_seconds=2.0,
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def jwt_manager(auth_config: AuthConfig) -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(auth_config)


@pytest.fixture
def google_profile() -> GoogleProfile:
    return GoogleProfile(
        subject_id="google-sub-123",
        email="gina@example.com",
        email_verified=True,
        given_name="Gina",
        family_name="Google",
        avatar_url="https://lh3.googleusercontent.com/a/gina",
    )


@pytest.fixture
def google_provider(google_profile: GoogleProfile) -> MagicMock:
    """Provider stand-in; both sign-in paths return ``google_profile``."""
    provider = MagicMock(spec=GoogleIdentityProvider)
    provider.verify_id_token = AsyncMock(return_value=google_profile)
    provider.exchange_code = AsyncMock(return_value=google_profile)
    provider.get_auth_url = MagicMock(return_value="https://accounts.google.com/o/oauth2/v2/auth?x=1")
    return provider


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Per-test file-backed SQLite database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_manager(db_session, auth_config, google_provider) -> SessionManager:
    return SessionManager(db_session, auth_config, provider=google_provider)


@pytest.fixture
def register_payload() -> dict:
    return {
        "username": "alice",
        "email": "a@x.com",
        "password": "Abc123!!",
        "first_name": "Alice",
        "last_name": "Liddell",
    }

"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

# Must be set before any app imports that trigger Settings validation
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CACHE_ENABLED", "false")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.auth import hash_password  # noqa: E402
from core.cache import MemoryCache  # noqa: E402
from models.base import Base  # noqa: E402
from models.user import User  # noqa: E402
from services.user_read_model import UserReadModel  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"  # noqa: S105

# Hashed once per session; bcrypt is deliberately slow
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class RecordingCache(MemoryCache):
    """MemoryCache that records every operation as (command, key)."""

    def __init__(self, available: bool = True) -> None:
        super().__init__(available=available)
        self.calls: list[tuple[str, str]] = []

    def calls_for(self, key: str) -> list[str]:
        """Commands issued against a single key, in order."""
        return [command for command, k in self.calls if k == key]

    async def get(self, key: str) -> str | None:
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        self.calls.append(("set", key))
        return await super().set(key, value, ttl)

    async def delete(self, key: str) -> bool:
        self.calls.append(("delete", key))
        return await super().delete(key)


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine on a throwaway SQLite file with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need several independent sessions."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create an async session. The database is discarded after each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_password() -> str:
    """Plaintext password of every user built by user_factory."""
    return TEST_PASSWORD


@pytest.fixture
def user_factory(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """
    Return a coroutine that inserts and commits a user directly in the store.

    Bypasses commands, so the read model is not notified.
    """

    async def _create(
        email: str,
        first_name: str = "Test",
        last_name: str = "User",
        role: str = "user",
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email,
            password_hash=TEST_PASSWORD_HASH,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest.fixture
async def cache() -> AsyncGenerator[RecordingCache]:
    """In-memory cache backend that records calls."""
    backend = RecordingCache()
    yield backend
    await backend.close()


@pytest.fixture
def read_model(cache: RecordingCache) -> UserReadModel:
    """Read model with caching enabled over the recording cache."""
    return UserReadModel(cache, cache_enabled=True, default_ttl=3600)


@pytest.fixture
async def client(
    db_session: AsyncSession,
    read_model: UserReadModel,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database session and read model overrides."""
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import get_async_session
    from services.user_read_model import get_user_read_model

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_user_read_model] = lambda: read_model

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()

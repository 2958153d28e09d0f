"""Tests for user write commands and their read model notifications."""
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import jwt
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import verify_password
from core.config import Settings
from models.user import User
from schemas.user import UserCreate, UserListOptions, UserResponse
from services import user_store
from services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    UserNotFoundError,
    UserStoreError,
)
from services.user_commands import authenticate_user, create_user, delete_user, update_user
from services.user_read_model import ALL_USERS_KEY, UserReadModel, user_cache_key

UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-secret",
    )


def _new_user(email: str = "new@example.com", **overrides: Any) -> UserCreate:
    data = {
        "email": email,
        "password": "s3cret-password",
        "first_name": "New",
        "last_name": "Person",
    }
    data.update(overrides)
    return UserCreate(**data)


class TestCreateUser:
    """Tests for create_user."""

    async def test__create__persists_hashed_password(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
    ) -> None:
        """The stored user has a bcrypt hash, never the plaintext."""
        record = await create_user(db_session, read_model, _new_user())

        stored = await user_store.find_by_id(db_session, record.id)
        assert stored is not None
        assert stored.password_hash != "s3cret-password"
        assert verify_password("s3cret-password", stored.password_hash)

    async def test__create__defaults_role_and_active(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
    ) -> None:
        """New accounts are active regular users."""
        record = await create_user(db_session, read_model, _new_user())

        assert record.role == "user"
        assert record.is_active is True

    async def test__create__normalizes_email(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
    ) -> None:
        """Email is stored lowercased."""
        record = await create_user(db_session, read_model, _new_user("Mixed.Case@Example.COM"))
        assert record.email == "mixed.case@example.com"

    async def test__create__then_get_returns_created_user(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
    ) -> None:
        """The new user is cached and readable without a store lookup."""
        await cache.set(ALL_USERS_KEY, "stale")

        record = await create_user(db_session, read_model, _new_user())

        assert await cache.get(ALL_USERS_KEY) is None
        with patch.object(user_store, "find_by_id", new_callable=AsyncMock) as find:
            assert await read_model.get_user_by_id(db_session, record.id) == record
        find.assert_not_awaited()

    async def test__create__duplicate_email_rejected(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """Registering an existing email (any case) raises EmailAlreadyExistsError."""
        await user_factory("taken@example.com")

        with pytest.raises(EmailAlreadyExistsError):
            await create_user(db_session, read_model, _new_user("TAKEN@example.com"))

    async def test__create__integrity_error_maps_to_duplicate(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
    ) -> None:
        """A unique violation from a concurrent insert is still a duplicate email."""
        error = IntegrityError("INSERT ...", {}, Exception("duplicate key"))
        with patch.object(user_store, "insert", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(EmailAlreadyExistsError):
                await create_user(db_session, read_model, _new_user())

        assert cache.calls == []

    async def test__create__store_failure_wrapped_and_cache_untouched(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
    ) -> None:
        """A failed write is reported generically and never reaches the cache."""
        error = OperationalError("INSERT ...", {}, Exception("disk full"))
        with patch.object(user_store, "insert", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(UserStoreError, match="Failed to create user"):
                await create_user(db_session, read_model, _new_user())

        assert cache.calls == []


class TestUpdateUser:
    """Tests for update_user."""

    async def test__update__changes_fields_and_refreshes_cache(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """The cached record reflects the update and the listing is dropped."""
        user = await user_factory("sam@example.com", first_name="Sam")
        await read_model.list_users(db_session)

        record = await update_user(db_session, read_model, user.id, {"first_name": "Samuel"})

        assert record.first_name == "Samuel"
        assert await cache.get(ALL_USERS_KEY) is None
        cached = UserResponse.model_validate_json(await cache.get(user_cache_key(user.id)))
        assert cached.first_name == "Samuel"

    async def test__update__password_fields_dropped(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
        user_factory: UserFactory,
        user_password: str,
    ) -> None:
        """Password and hash changes are silently ignored."""
        user = await user_factory("tina@example.com")

        await update_user(
            db_session,
            read_model,
            user.id,
            {"password": "new-password", "password_hash": "x", "last_name": "Turner"},
        )

        stored = await user_store.find_by_id(db_session, user.id)
        assert stored.last_name == "Turner"
        assert verify_password(user_password, stored.password_hash)

    async def test__update__none_values_ignored(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """Explicit None leaves the field unchanged."""
        user = await user_factory("uma@example.com", first_name="Uma")

        record = await update_user(db_session, read_model, user.id, {"first_name": None})

        assert record.first_name == "Uma"

    async def test__update__email_taken_by_other_user(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """Changing to another account's email raises EmailAlreadyExistsError."""
        await user_factory("victor@example.com")
        user = await user_factory("wendy@example.com")

        with pytest.raises(EmailAlreadyExistsError):
            await update_user(db_session, read_model, user.id, {"email": "Victor@example.com"})

    async def test__update__own_email_allowed(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """Re-submitting your own email is not a conflict."""
        user = await user_factory("xena@example.com")

        record = await update_user(db_session, read_model, user.id, {"email": "XENA@example.com"})

        assert record.email == "xena@example.com"

    async def test__update__missing_user(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
    ) -> None:
        """Updating an unknown id raises UserNotFoundError without touching the cache."""
        with pytest.raises(UserNotFoundError):
            await update_user(db_session, read_model, uuid4(), {"first_name": "Nobody"})

        assert cache.calls == []

    async def test__create_list_update__no_stale_reads(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
    ) -> None:
        """Create, list, update: every subsequent read sees the new name."""
        created = await create_user(db_session, read_model, _new_user(first_name="Alice"))
        listing = await read_model.list_users(db_session)
        assert [u.first_name for u in listing.users] == ["Alice"]

        await update_user(db_session, read_model, created.id, {"first_name": "Alicia"})

        assert (await read_model.get_user_by_id(db_session, created.id)).first_name == "Alicia"
        listing = await read_model.list_users(db_session, UserListOptions())
        assert [u.first_name for u in listing.users] == ["Alicia"]


class TestDeleteUser:
    """Tests for delete_user."""

    async def test__delete__removes_user_and_cache_entries(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
        user_factory: UserFactory,
    ) -> None:
        """After delete both keys are absent and reads raise UserNotFoundError."""
        user = await user_factory("yuri@example.com")
        user_id = user.id
        await read_model.list_users(db_session)

        await delete_user(db_session, read_model, user_id)

        assert await cache.get(user_cache_key(user_id)) is None
        assert await cache.get(ALL_USERS_KEY) is None
        with pytest.raises(UserNotFoundError):
            await read_model.get_user_by_id(db_session, user_id)

    async def test__delete__missing_user(
        self,
        read_model: UserReadModel,
        db_session: AsyncSession,
    ) -> None:
        """Deleting an unknown id raises UserNotFoundError."""
        with pytest.raises(UserNotFoundError):
            await delete_user(db_session, read_model, uuid4())

    async def test__delete__store_failure_wrapped(
        self,
        read_model: UserReadModel,
        cache: Any,
        db_session: AsyncSession,
    ) -> None:
        """A failed delete is reported generically and never reaches the cache."""
        error = OperationalError("DELETE ...", {}, Exception("lock timeout"))
        with patch.object(user_store, "delete_by_id", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(UserStoreError, match="Failed to delete user"):
                await delete_user(db_session, read_model, uuid4())

        assert cache.calls == []


class TestAuthenticateUser:
    """Tests for authenticate_user."""

    async def test__valid_credentials__returns_user_and_token(
        self,
        db_session: AsyncSession,
        user_factory: UserFactory,
        user_password: str,
        settings: Settings,
    ) -> None:
        """A signed token carrying id, email, and role is issued."""
        user = await user_factory("zoe@example.com", role="admin")

        record, token = await authenticate_user(
            db_session, "Zoe@Example.com", user_password, settings,
        )

        assert record.id == user.id
        claims = jwt.decode(token, "test-secret", algorithms=["HS256"])
        assert claims["sub"] == str(user.id)
        assert claims["email"] == "zoe@example.com"
        assert claims["role"] == "admin"

    async def test__wrong_password(
        self,
        db_session: AsyncSession,
        user_factory: UserFactory,
        settings: Settings,
    ) -> None:
        """Wrong password gives the generic credentials error."""
        await user_factory("adam@example.com")

        with pytest.raises(InvalidCredentialsError, match="Invalid email or password"):
            await authenticate_user(db_session, "adam@example.com", "wrong-password", settings)

    async def test__unknown_email(
        self,
        db_session: AsyncSession,
        settings: Settings,
    ) -> None:
        """Unknown email gives the same generic error as a wrong password."""
        with pytest.raises(InvalidCredentialsError, match="Invalid email or password"):
            await authenticate_user(db_session, "ghost@example.com", "whatever", settings)

    async def test__inactive_user(
        self,
        db_session: AsyncSession,
        user_factory: UserFactory,
        user_password: str,
        settings: Settings,
    ) -> None:
        """Deactivated accounts cannot log in."""
        await user_factory("bella@example.com", is_active=False)

        with pytest.raises(InvalidCredentialsError, match="inactive"):
            await authenticate_user(db_session, "bella@example.com", user_password, settings)

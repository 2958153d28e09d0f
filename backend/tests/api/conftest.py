"""Shared fixtures for API tests."""
from collections.abc import Awaitable, Callable

import pytest

from core.auth import create_access_token
from core.config import get_settings
from models.user import User


def _auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user.id, user.email, user.role, get_settings())
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build a bearer header for any user, signed with the application settings."""
    return _auth_headers


@pytest.fixture
async def admin_user(user_factory: Callable[..., Awaitable[User]]) -> User:
    """An active admin account."""
    return await user_factory("admin@example.com", first_name="Ada", role="admin")


@pytest.fixture
async def regular_user(user_factory: Callable[..., Awaitable[User]]) -> User:
    """An active regular account."""
    return await user_factory("regular@example.com", first_name="Reg")


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return _auth_headers(admin_user)


@pytest.fixture
def user_headers(regular_user: User) -> dict[str, str]:
    return _auth_headers(regular_user)

"""
Write side of the user service.

Each command mutates the primary store, commits, and then notifies the read
model before returning. Unlike the rest of the service layer these functions
commit themselves: the read model must only ever see committed state, so the
commit has to happen before the cache is touched rather than at request end.
Read model notifications never fail a command.
"""
import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import create_access_token, hash_password, verify_password
from core.config import Settings
from models.user import User
from schemas.user import UserCreate, UserResponse
from services import user_store
from services.exceptions import (
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    UserNotFoundError,
    UserStoreError,
)
from services.user_read_model import UserReadModel
from services.utils import normalize_email

logger = logging.getLogger(__name__)

# Fields an update command may change. Anything else (password, password_hash,
# id, timestamps) is silently dropped.
UPDATABLE_FIELDS = frozenset({"email", "first_name", "last_name", "role", "is_active"})


async def create_user(
    db: AsyncSession,
    read_model: UserReadModel,
    data: UserCreate,
) -> UserResponse:
    """
    Register a new user.

    Raises:
        EmailAlreadyExistsError: The email is already registered.
        UserStoreError: The primary store write failed.
    """
    email = normalize_email(data.email)
    try:
        if await user_store.find_by_email(db, email) is not None:
            raise EmailAlreadyExistsError(email)

        user = await user_store.insert(
            db,
            User(
                email=email,
                password_hash=hash_password(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
            ),
        )
        record = UserResponse.model_validate(user)
        await db.commit()
    except IntegrityError as e:
        # Race condition: another request registered the same email between
        # our SELECT and INSERT
        await db.rollback()
        raise EmailAlreadyExistsError(email) from e
    except SQLAlchemyError as e:
        logger.exception("user_create_failed")
        await db.rollback()
        raise UserStoreError("Failed to create user") from e

    await read_model.handle_user_created(record)
    logger.info("user_created user_id=%s", record.id)
    return record


async def update_user(
    db: AsyncSession,
    read_model: UserReadModel,
    user_id: UUID,
    changes: Mapping[str, Any],
) -> UserResponse:
    """
    Update a user's profile fields.

    Password changes are never applied through this command.

    Raises:
        UserNotFoundError: The user does not exist.
        EmailAlreadyExistsError: The new email belongs to another account.
        UserStoreError: The primary store write failed.
    """
    fields = {
        name: value
        for name, value in changes.items()
        if name in UPDATABLE_FIELDS and value is not None
    }
    if "email" in fields:
        fields["email"] = normalize_email(fields["email"])

    try:
        if "email" in fields:
            existing = await user_store.find_by_email(db, fields["email"])
            if existing is not None and existing.id != user_id:
                raise EmailAlreadyExistsError(fields["email"])

        user = await user_store.update_by_id(db, user_id, fields)
        if user is None:
            raise UserNotFoundError()
        record = UserResponse.model_validate(user)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise EmailAlreadyExistsError(fields.get("email", "")) from e
    except SQLAlchemyError as e:
        logger.exception("user_update_failed user_id=%s", user_id)
        await db.rollback()
        raise UserStoreError("Failed to update user") from e

    await read_model.handle_user_updated(record)
    logger.info("user_updated user_id=%s fields=%s", user_id, sorted(fields))
    return record


async def delete_user(
    db: AsyncSession,
    read_model: UserReadModel,
    user_id: UUID,
) -> None:
    """
    Delete a user.

    Raises:
        UserNotFoundError: The user does not exist.
        UserStoreError: The primary store write failed.
    """
    try:
        user = await user_store.delete_by_id(db, user_id)
        if user is None:
            raise UserNotFoundError()
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception("user_delete_failed user_id=%s", user_id)
        await db.rollback()
        raise UserStoreError("Failed to delete user") from e

    await read_model.handle_user_deleted(user_id)
    logger.info("user_deleted user_id=%s", user_id)


async def authenticate_user(
    db: AsyncSession,
    email: str,
    password: str,
    settings: Settings,
) -> tuple[UserResponse, str]:
    """
    Check credentials and issue a token.

    Returns:
        Tuple of (user, bearer token).

    Raises:
        InvalidCredentialsError: Unknown email, wrong password, or inactive account.
        UserStoreError: The primary store lookup failed.
    """
    try:
        user = await user_store.find_by_email(db, normalize_email(email))
    except SQLAlchemyError as e:
        logger.exception("user_login_lookup_failed")
        raise UserStoreError("Failed to retrieve user") from e

    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    if not user.is_active:
        raise InvalidCredentialsError("User is inactive")

    record = UserResponse.model_validate(user)
    token = create_access_token(record.id, record.email, record.role, settings)
    return record, token

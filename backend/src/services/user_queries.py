"""Read side of the user service. Every query goes through the read model."""
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from schemas.user import UserListOptions, UserListResponse, UserResponse
from services.user_read_model import UserReadModel


async def get_user(db: AsyncSession, read_model: UserReadModel, user_id: UUID) -> UserResponse:
    """Get a user by id. Raises UserNotFoundError if absent."""
    return await read_model.get_user_by_id(db, user_id)


async def list_users(
    db: AsyncSession,
    read_model: UserReadModel,
    options: UserListOptions | None = None,
) -> UserListResponse:
    """List users with pagination."""
    return await read_model.list_users(db, options)


async def search_users(
    db: AsyncSession,
    read_model: UserReadModel,
    query: str,
) -> list[UserResponse]:
    """Search users. Raises UserValidationError for queries that are too short."""
    return await read_model.search_users(db, query)

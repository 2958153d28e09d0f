"""User account endpoints: registration, login, profile, and admin management."""
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_async_session,
    get_current_user,
    get_settings,
    get_user_read_model,
    require_admin,
)
from core.config import Settings
from schemas.user import (
    LoginRequest,
    LoginResponse,
    UserAdminUpdate,
    UserCreate,
    UserListOptions,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from services import user_commands, user_queries
from services.user_read_model import UserReadModel

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    data: UserCreate,
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserResponse:
    """Register a new user account."""
    return await user_commands.create_user(db, read_model, data)


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    """Exchange email and password for a bearer token."""
    user, token = await user_commands.authenticate_user(db, data.email, data.password, settings)
    return LoginResponse(user=user, token=token)


@router.get("/profile", response_model=UserResponse)
async def get_profile(
    current_user: UserResponse = Depends(get_current_user),
) -> UserResponse:
    """Get the current user's profile."""
    return current_user


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    data: UserUpdate,
    current_user: UserResponse = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserResponse:
    """
    Update the current user's profile.

    Only email, first_name, and last_name can be changed here. Passwords cannot
    be changed through this endpoint.
    """
    return await user_commands.update_user(
        db, read_model, current_user.id, data.model_dump(exclude_unset=True),
    )


@router.get("/", response_model=UserListResponse)
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="created_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    role: Literal["user", "admin"] | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    _admin: UserResponse = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserListResponse:
    """
    List users (admin only).

    The default listing (page 1, limit 10, newest first, no filters) is served
    from cache when available.
    """
    filters: dict[str, object] = {}
    if role is not None:
        filters["role"] = role
    if is_active is not None:
        filters["is_active"] = is_active
    options = UserListOptions(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        filters=filters,
    )
    return await user_queries.list_users(db, read_model, options)


@router.get("/search", response_model=list[UserResponse])
async def search_users(
    q: str = Query(default=""),
    _admin: UserResponse = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> list[UserResponse]:
    """Search users by email, first name, or last name (admin only, max 20 results)."""
    return await user_queries.search_users(db, read_model, q)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    _admin: UserResponse = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserResponse:
    """Get any user by id (admin only)."""
    return await user_queries.get_user(db, read_model, user_id)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    data: UserAdminUpdate,
    _admin: UserResponse = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserResponse:
    """Update any user, including role and active status (admin only)."""
    return await user_commands.update_user(
        db, read_model, user_id, data.model_dump(exclude_unset=True),
    )


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    _admin: UserResponse = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> None:
    """Delete a user (admin only)."""
    await user_commands.delete_user(db, read_model, user_id)

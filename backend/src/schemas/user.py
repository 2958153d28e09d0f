"""Pydantic schemas for user endpoints and the user read model."""
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# Sort fields accepted by listings; anything else falls back to created_at
USER_SORT_FIELDS = ("created_at", "updated_at", "email", "first_name", "last_name")

# Listing filters accepted by the store
USER_FILTER_FIELDS = ("role", "is_active")


class UserCreate(BaseModel):
    """Schema for registering a new user."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class UserUpdate(BaseModel):
    """Schema for a user updating their own profile. All fields optional."""

    email: EmailStr | None = None
    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)


class UserAdminUpdate(UserUpdate):
    """Schema for an admin updating any account, including role and status."""

    role: Literal["user", "admin"] | None = None
    is_active: bool | None = None


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseModel):
    """
    Public user representation.

    This is also the shape stored in the read model cache under user:<id>.
    It never includes the password hash.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class LoginResponse(BaseModel):
    """Successful login: the user and a bearer token."""

    user: UserResponse
    token: str


class Pagination(BaseModel):
    """Pagination metadata for listings."""

    total: int
    page: int
    limit: int
    pages: int


class UserListResponse(BaseModel):
    """
    A page of users.

    This is also the shape stored in the read model cache under users:all.
    """

    users: list[UserResponse]
    pagination: Pagination


class UserListOptions(BaseModel):
    """
    Options for listing users.

    Only the defaults with no filters form the canonical query whose result
    is cached.
    """

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"
    filters: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_canonical(self) -> bool:
        """True only for page 1, limit 10, newest first, no filters."""
        return (
            not self.filters
            and self.page == 1
            and self.limit == 10
            and self.sort_by == "created_at"
            and self.sort_order == "desc"
        )

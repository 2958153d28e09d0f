"""
Primary store access for users.

Thin async functions over the SQLAlchemy session. Database errors propagate
unchanged; callers decide how to wrap them. Functions flush but never
commit; the write commands own the commit.
"""
from collections.abc import Mapping
from typing import Any, Literal
from uuid import UUID

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from models.user import User
from schemas.user import USER_FILTER_FIELDS
from services.exceptions import UserValidationError
from services.utils import escape_ilike


def _sort_columns() -> dict[str, InstrumentedAttribute]:
    return {
        "created_at": User.created_at,
        "updated_at": User.updated_at,
        "email": User.email,
        "first_name": User.first_name,
        "last_name": User.last_name,
    }


def _apply_filters(query: Select, filters: Mapping[str, Any]) -> Select:
    for name, value in filters.items():
        if name not in USER_FILTER_FIELDS:
            raise UserValidationError(f"Unsupported filter: {name}")
        query = query.where(getattr(User, name) == value)
    return query


async def find_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    """Get a user by primary key."""
    return await db.get(User, user_id)


async def find_by_email(db: AsyncSession, email: str) -> User | None:
    """Get a user by (already normalized) email."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def insert(db: AsyncSession, user: User) -> User:
    """Add a new user and flush so id and timestamps are populated."""
    db.add(user)
    await db.flush()
    return user


async def update_by_id(
    db: AsyncSession,
    user_id: UUID,
    fields: Mapping[str, Any],
) -> User | None:
    """Apply field changes to a user. Returns None if the user does not exist."""
    user = await db.get(User, user_id)
    if user is None:
        return None
    for name, value in fields.items():
        setattr(user, name, value)
    await db.flush()
    return user


async def delete_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    """Delete a user. Returns the deleted user, or None if it did not exist."""
    user = await db.get(User, user_id)
    if user is None:
        return None
    await db.delete(user)
    await db.flush()
    return user


async def count(db: AsyncSession, filters: Mapping[str, Any]) -> int:
    """Count users matching filters."""
    query = _apply_filters(select(func.count()).select_from(User), filters)
    result = await db.execute(query)
    return result.scalar() or 0


async def find_page(
    db: AsyncSession,
    filters: Mapping[str, Any],
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    offset: int = 0,
    limit: int = 10,
) -> list[User]:
    """Get one page of users matching filters, sorted with an id tiebreaker."""
    sort_column = _sort_columns().get(sort_by, User.created_at)
    query = _apply_filters(select(User), filters)
    if sort_order == "desc":
        query = query.order_by(sort_column.desc(), User.id.desc())
    else:
        query = query.order_by(sort_column.asc(), User.id.asc())
    result = await db.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all())


async def search(db: AsyncSession, text: str, limit: int = 20) -> list[User]:
    """Case-insensitive partial match on email, first name, or last name."""
    pattern = f"%{escape_ilike(text)}%"
    result = await db.execute(
        select(User)
        .where(
            or_(
                User.email.ilike(pattern, escape="\\"),
                User.first_name.ilike(pattern, escape="\\"),
                User.last_name.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit),
    )
    return list(result.scalars().all())

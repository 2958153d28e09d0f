"""SQLAlchemy models."""
from models.base import Base, TimestampMixin
from models.user import User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserRole",
]

"""Authentication: password hashing, JWT issuance/validation, and FastAPI dependencies."""
import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_async_session
from models.user import UserRole
from schemas.user import UserResponse
from services.exceptions import UserNotFoundError
from services.user_read_model import UserReadModel, get_user_read_model

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode()[:BCRYPT_MAX_BYTES], bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode()[:BCRYPT_MAX_BYTES], password_hash.encode())
    except ValueError:
        # Malformed stored hash
        logger.warning("Invalid password hash encountered during verification")
        return False


def create_access_token(
    user_id: UUID,
    email: str,
    role: str,
    settings: Settings,
) -> str:
    """Issue a signed JWT for a user."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expiry_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    """
    Decode and validate a JWT issued by this service.

    Raises:
        HTTPException: If token is invalid or expired.
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWTError as e:
        # Log full details for debugging (server-side only)
        logger.warning("JWT validation failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
    read_model: UserReadModel = Depends(get_user_read_model),
) -> UserResponse:
    """
    Dependency that validates the bearer token and returns the current user.

    The user is loaded through the read model, so repeated requests are served
    from cache. Deleted or deactivated accounts are rejected even while their
    token is still valid.
    """
    if credentials is None:
        raise _unauthorized("Authentication token is required")

    payload = decode_access_token(credentials.credentials, settings)

    subject = payload.get("sub")
    try:
        user_id = UUID(subject)
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token: missing sub claim")

    try:
        user = await read_model.get_user_by_id(db, user_id)
    except UserNotFoundError:
        logger.info("Authenticated user no longer exists: %s", user_id)
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("User is inactive")

    return user


async def require_admin(
    current_user: UserResponse = Depends(get_current_user),
) -> UserResponse:
    """Dependency that only lets admins through."""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user

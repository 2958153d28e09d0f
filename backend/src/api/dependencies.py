"""FastAPI dependencies for injection."""
from core.auth import get_current_user, require_admin
from core.config import get_settings
from db.session import get_async_session
from services.user_read_model import get_user_read_model

__all__ = [
    "get_async_session",
    "get_current_user",
    "get_settings",
    "get_user_read_model",
    "require_admin",
]

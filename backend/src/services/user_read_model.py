"""
User read model - the query side of the user service.

Reads go cache-first and fall back to the primary store, populating the cache
on the way out. Commands notify the read model after every committed write so
that cached entries are dropped or refreshed before the command returns.

Cache keys:
    user:<id>   - a single UserResponse
    users:all   - the canonical listing (page 1, limit 10, newest first, no filters)

The cache is an accelerator only. Every cache failure is logged and treated as
a miss or a no-op; it never reaches the caller. Store failures other than
not-found are wrapped in UserStoreError.
"""
import logging
from typing import TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.cache import CacheBackend
from schemas.user import Pagination, UserListOptions, UserListResponse, UserResponse
from services import user_store
from services.exceptions import UserNotFoundError, UserStoreError, UserValidationError
from services.utils import page_count

logger = logging.getLogger(__name__)

USER_KEY_PREFIX = "user:"
ALL_USERS_KEY = "users:all"

DEFAULT_CACHE_TTL = 3600  # 1 hour

SEARCH_MIN_LENGTH = 2
SEARCH_MAX_RESULTS = 20

ModelT = TypeVar("ModelT", bound=BaseModel)


def user_cache_key(user_id: UUID | str) -> str:
    """Cache key for a single user."""
    return f"{USER_KEY_PREFIX}{user_id}"


class UserReadModel:
    """
    Cache-aside read model for users.

    There is no stale-but-served state: an invalidated or expired key is simply
    absent and the next reader repopulates it. Concurrent writers to the same
    user are not serialized here; the cache ends up holding whichever value was
    written last. A reader that misses, loads from the store, and writes back
    after a concurrent command has already invalidated the same key can leave an
    older snapshot in user:<id> or users:all until the TTL expires.
    """

    def __init__(
        self,
        cache: CacheBackend,
        cache_enabled: bool = True,
        default_ttl: int = DEFAULT_CACHE_TTL,
    ) -> None:
        self._cache = cache
        self._cache_enabled = cache_enabled
        self._default_ttl = default_ttl

    @property
    def cache(self) -> CacheBackend:
        """The underlying cache backend."""
        return self._cache

    def is_caching_available(self) -> bool:
        """Caching is used only when enabled in config and the backend is up."""
        return self._cache_enabled and self._cache.is_available()

    # --- Queries ---

    async def get_user_by_id(self, db: AsyncSession, user_id: UUID) -> UserResponse:
        """
        Get a user, from cache when possible.

        Raises:
            UserNotFoundError: The user does not exist in the primary store.
            UserStoreError: The primary store lookup failed.
        """
        key = user_cache_key(user_id)
        cached = await self._get_cached(key, UserResponse)
        if cached is not None:
            logger.debug("user_cache_hit user_id=%s", user_id)
            return cached
        logger.debug("user_cache_miss user_id=%s", user_id)

        try:
            user = await user_store.find_by_id(db, user_id)
        except SQLAlchemyError as e:
            logger.exception("user_lookup_failed user_id=%s", user_id)
            raise UserStoreError("Failed to retrieve user") from e

        if user is None:
            raise UserNotFoundError()

        record = UserResponse.model_validate(user)
        await self._cache_user(record)
        return record

    async def list_users(
        self,
        db: AsyncSession,
        options: UserListOptions | None = None,
    ) -> UserListResponse:
        """
        List users with pagination.

        Only the canonical query is read from or written to the cache. Any other
        page, limit, sort, or filter goes straight to the primary store. A freshly
        computed canonical page also caches each of its users individually, so
        detail lookups after a listing are warm.

        Raises:
            UserValidationError: Unsupported filter.
            UserStoreError: The primary store query failed.
        """
        options = options or UserListOptions()
        use_cache = options.is_canonical and self.is_caching_available()

        if use_cache:
            cached = await self._get_cached(ALL_USERS_KEY, UserListResponse)
            if cached is not None:
                logger.debug("user_list_cache_hit")
                return cached
            logger.debug("user_list_cache_miss")

        try:
            total = await user_store.count(db, options.filters)
            users = await user_store.find_page(
                db,
                options.filters,
                sort_by=options.sort_by,
                sort_order=options.sort_order,
                offset=(options.page - 1) * options.limit,
                limit=options.limit,
            )
        except SQLAlchemyError as e:
            logger.exception("user_list_failed")
            raise UserStoreError("Failed to retrieve users list") from e

        result = UserListResponse(
            users=[UserResponse.model_validate(user) for user in users],
            pagination=Pagination(
                total=total,
                page=options.page,
                limit=options.limit,
                pages=page_count(total, options.limit),
            ),
        )

        if use_cache:
            await self._set(ALL_USERS_KEY, result.model_dump_json())
            for record in result.users:
                await self._cache_user(record)

        return result

    async def search_users(self, db: AsyncSession, query: str) -> list[UserResponse]:
        """
        Search users by email, first name, or last name. Never cached.

        Raises:
            UserValidationError: Query shorter than SEARCH_MIN_LENGTH.
            UserStoreError: The primary store query failed.
        """
        if not query or len(query) < SEARCH_MIN_LENGTH:
            raise UserValidationError(
                f"Search query must be at least {SEARCH_MIN_LENGTH} characters",
            )

        try:
            users = await user_store.search(db, query, limit=SEARCH_MAX_RESULTS)
        except SQLAlchemyError as e:
            logger.exception("user_search_failed")
            raise UserStoreError("Failed to search users") from e

        return [UserResponse.model_validate(user) for user in users]

    # --- Change notifications (called by commands after the store write) ---

    async def handle_user_created(self, user: UserResponse) -> None:
        """Cache the new user and drop the canonical listing."""
        await self._cache_user(user)
        await self._delete(ALL_USERS_KEY)
        logger.debug("user_created_handled user_id=%s", user.id)

    async def handle_user_updated(self, user: UserResponse) -> None:
        """Drop then repopulate the user entry, and drop the canonical listing."""
        await self._delete(user_cache_key(user.id))
        await self._cache_user(user)
        await self._delete(ALL_USERS_KEY)
        logger.debug("user_updated_handled user_id=%s", user.id)

    async def handle_user_deleted(self, user_id: UUID) -> None:
        """Drop the user entry and the canonical listing."""
        await self._delete(user_cache_key(user_id))
        await self._delete(ALL_USERS_KEY)
        logger.debug("user_deleted_handled user_id=%s", user_id)

    # --- Cache helpers; none of these raise ---

    async def _cache_user(self, user: UserResponse) -> None:
        await self._set(user_cache_key(user.id), user.model_dump_json())

    async def _get_cached(self, key: str, model: type[ModelT]) -> ModelT | None:
        if not self.is_caching_available():
            return None
        try:
            data = await self._cache.get(key)
        except Exception:
            logger.warning("cache_get_failed key=%s", key, exc_info=True)
            return None
        if not data:
            return None
        try:
            return model.model_validate_json(data)
        except ValidationError:
            logger.warning("cache_entry_invalid key=%s", key)
            return None

    async def _set(self, key: str, value: str) -> None:
        if not self.is_caching_available():
            return
        try:
            await self._cache.set(key, value, ttl=self._default_ttl)
        except Exception:
            logger.warning("cache_set_failed key=%s", key, exc_info=True)

    async def _delete(self, key: str) -> None:
        if not self.is_caching_available():
            return
        try:
            await self._cache.delete(key)
        except Exception:
            logger.warning("cache_delete_failed key=%s", key, exc_info=True)


# Global read model state using a container to avoid global statement
class _ReadModelState:
    """Container for the process-wide read model (set during app startup)."""

    read_model: UserReadModel | None = None


_state = _ReadModelState()


def get_user_read_model() -> UserReadModel:
    """
    Get the process-wide read model.

    Raises:
        RuntimeError: Called before application startup configured it.
    """
    if _state.read_model is None:
        raise RuntimeError("User read model is not initialized")
    return _state.read_model


def set_user_read_model(read_model: UserReadModel | None) -> None:
    """Set the process-wide read model."""
    _state.read_model = read_model

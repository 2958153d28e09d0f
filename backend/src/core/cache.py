"""Cache backend protocol, in-memory fallback store, and backend selection."""
import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from core.redis import RedisCache

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class CacheBackend(Protocol):
    """
    Key/value + hash operations with TTL.

    Implementations never raise on backend failure: reads return a neutral value
    (None or an empty dict) and writes report success, with the failure logged.
    """

    def is_available(self) -> bool:
        """Whether the backend is currently usable."""
        ...

    async def get(self, key: str) -> str | None:
        """Get value by key, None if absent."""
        ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value, optionally expiring after ttl seconds."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete key."""
        ...

    async def hgetall(self, key: str) -> dict[str, str]:
        """Get all fields of a hash, empty dict if absent."""
        ...

    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set a single hash field."""
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Expire key after the given number of seconds."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class MemoryCache:
    """
    In-process stand-in for Redis.

    Used when caching is disabled or Redis cannot be reached at startup, and as
    a deterministic backend in tests. TTLs are enforced by a deletion scheduled on
    the running event loop; overwriting or deleting a key cancels its timer.

    A stand-in built with available=False reports itself unusable, so callers
    that check is_available() pass straight through to the source of truth.
    """

    def __init__(self, available: bool = True) -> None:
        self._available = available
        self._data: dict[str, str | dict[str, str]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()

    def is_available(self) -> bool:
        """Whether callers should use this store."""
        return self._available

    async def get(self, key: str) -> str | None:
        """Get value, None if absent or if the key holds a hash."""
        async with self._lock:
            value = self._data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value, replacing any pending expiry."""
        async with self._lock:
            self._data[key] = value
            self._cancel_timer(key)
            if ttl:
                self._schedule_expiry(key, ttl)
        return True

    async def delete(self, key: str) -> bool:
        """Delete key and its pending expiry."""
        async with self._lock:
            self._data.pop(key, None)
            self._cancel_timer(key)
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        """Get a copy of all hash fields."""
        async with self._lock:
            value = self._data.get(key)
        return dict(value) if isinstance(value, dict) else {}

    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set a hash field, creating the hash if needed."""
        async with self._lock:
            current = self._data.get(key)
            if not isinstance(current, dict):
                current = {}
                self._data[key] = current
            current[field] = value
        return True

    async def expire(self, key: str, seconds: int) -> bool:
        """Schedule deletion of key. Returns False if the key does not exist."""
        async with self._lock:
            if key not in self._data:
                return False
            self._cancel_timer(key)
            self._schedule_expiry(key, seconds)
        return True

    async def close(self) -> None:
        """Drop all data and pending timers."""
        async with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            self._data.clear()

    def _schedule_expiry(self, key: str, seconds: float) -> None:
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(max(seconds, 0), self._expire_now, key)

    def _cancel_timer(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _expire_now(self, key: str) -> None:
        # Runs on the event loop thread between awaits, so no lock is needed
        self._timers.pop(key, None)
        self._data.pop(key, None)
        logger.debug("memory_cache_expired key=%s", key)


async def create_cache_backend(settings: "Settings") -> CacheBackend:
    """
    Build the cache backend selected by configuration.

    Returns a connected RedisCache when caching is enabled and Redis answers.
    When caching is disabled, returns a MemoryCache; the config flag keeps the
    read model off it. When Redis cannot be reached, returns an unavailable
    MemoryCache so caching is silently disabled and reads go to the database.
    """
    if not settings.cache_enabled:
        logger.info("Cache disabled by configuration, using in-memory cache")
        return MemoryCache()

    redis_cache = RedisCache(
        url=settings.redis_url,
        pool_size=settings.redis_pool_size,
        socket_timeout=settings.redis_socket_timeout,
        retry_interval=settings.cache_retry_interval,
    )
    await redis_cache.connect()
    if redis_cache.is_available():
        return redis_cache

    logger.warning("Redis unreachable at startup, caching disabled")
    await redis_cache.close()
    return MemoryCache(available=False)

"""Redis cache backend with connection pooling and graceful fallback."""
import logging
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheState(StrEnum):
    """Connection lifecycle of the Redis backend."""

    INIT = "init"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


class RedisCache:
    """
    Async Redis cache with connection pooling and graceful fallback.

    No operation raises on a Redis failure. Failures move the backend to ERROR,
    which makes is_available() report False until retry_interval seconds have
    passed; the next operation after that either restores READY or restarts
    the wait.
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 20,
        socket_timeout: float = 2.0,
        retry_interval: float = 5.0,
    ) -> None:
        self._url = url
        self._pool_size = pool_size
        self._socket_timeout = socket_timeout
        self._retry_interval = retry_interval
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._state = CacheState.INIT
        self._failed_at = 0.0
        self._failure_count = 0
        self._last_error: str | None = None

    async def connect(self) -> None:
        """Initialize connection pool and verify the server answers."""
        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._pool_size,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
        except (RedisError, ValueError) as e:
            # ValueError: malformed REDIS_URL
            logger.warning("Redis connection failed: %s", e)
            self._mark_failed("CONNECT", e)
            return
        self._mark_ready()
        logger.info("Redis connected successfully")

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("Redis close failed: %s", e)
            self._client = None
            self._pool = None
            logger.info("Redis connection closed")
        self._state = CacheState.CLOSED

    @property
    def state(self) -> CacheState:
        """Current lifecycle state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Number of failed operations since creation."""
        return self._failure_count

    @property
    def last_error(self) -> str | None:
        """Message of the most recent failure."""
        return self._last_error

    def is_available(self) -> bool:
        """Check whether operations should be attempted against Redis."""
        if self._client is None:
            return False
        if self._state == CacheState.READY:
            return True
        if self._state == CacheState.ERROR:
            return time.monotonic() - self._failed_at >= self._retry_interval
        return False

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        return await self._call("PING", lambda client: client.ping(), False)

    async def get(self, key: str) -> str | None:
        """Get value, returns None if Redis unavailable."""
        return await self._call("GET", lambda client: client.get(key), None)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value with optional expiry, no-op success if Redis unavailable."""
        await self._call("SET", lambda client: client.set(key, value, ex=ttl or None), None)
        return True

    async def delete(self, key: str) -> bool:
        """Delete key, no-op success if Redis unavailable."""
        await self._call("DEL", lambda client: client.delete(key), None)
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        """Get all hash fields, returns empty dict if Redis unavailable."""
        return await self._call("HGETALL", lambda client: client.hgetall(key), {})

    async def hset(self, key: str, field: str, value: str) -> bool:
        """Set hash field, no-op success if Redis unavailable."""
        await self._call("HSET", lambda client: client.hset(key, field, value), None)
        return True

    async def expire(self, key: str, seconds: int) -> bool:
        """Set key expiry, no-op success if Redis unavailable."""
        await self._call("EXPIRE", lambda client: client.expire(key, seconds), None)
        return True

    async def flushdb(self) -> bool:
        """Flush current database (for testing). Returns False if unavailable."""
        return bool(await self._call("FLUSHDB", lambda client: client.flushdb(), False))

    async def _call(
        self,
        command: str,
        operation: Callable[[Redis], Awaitable[T]],
        fallback: T,
    ) -> T:
        """Run a command, absorbing Redis errors into the fallback value."""
        if not self.is_available():
            return fallback
        try:
            result = await operation(self._client)
        except RedisError as e:
            logger.warning("Redis %s failed: %s", command, e)
            self._mark_failed(command, e)
            return fallback
        self._mark_ready()
        return result

    def _mark_ready(self) -> None:
        if self._state != CacheState.READY:
            logger.info("redis_cache_ready previous_state=%s", self._state)
        self._state = CacheState.READY

    def _mark_failed(self, command: str, error: Exception) -> None:
        if self._state == CacheState.READY:
            logger.warning("redis_cache_unavailable command=%s", command)
        self._state = CacheState.ERROR
        self._failed_at = time.monotonic()
        self._failure_count += 1
        self._last_error = str(error)

"""Redis Client for Nova.

Provides async Redis operations for:
- Key/value and hash storage backing the data cache
- Work queues (LPUSH / BRPOP)
- Counters and MULTI/EXEC transactions
- Token-checked distributed locking
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from nova.config import get_settings
from nova.utils import random_alphabet_and_number

logger = logging.getLogger(__name__)

LOCK_TOKEN_LENGTH = 16

# Delete the lock only when it still holds our token
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisError(Exception):
    """Base exception for Redis operations."""

    pass


class RedisConnectionError(RedisError):
    """Exception raised when Redis connection fails."""

    pass


class LockNotAcquiredError(RedisError):
    """Exception raised when a lock could not be taken in time."""

    pass


class RedisClient:
    """Async Redis client with utilities for Nova.

    Wraps a ``redis.asyncio`` connection pool with the operations the
    data cache and background workers need.
    """

    def __init__(
        self,
        url: str | None = None,
        max_connections: int | None = None,
        socket_timeout: float | None = None,
        decode_responses: bool = True,
    ):
        """Initialize Redis client.

        Args:
            url: Redis connection URL. Uses REDIS_URL from config if not provided.
            max_connections: Maximum connections in pool.
            socket_timeout: Socket timeout in seconds.
            decode_responses: Whether to decode responses to strings.
        """
        settings = get_settings()

        self.url = url or settings.REDIS_URL
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.socket_timeout = socket_timeout or settings.REDIS_SOCKET_TIMEOUT
        self.decode_responses = decode_responses

        self._pool: ConnectionPool | None = None
        self._client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the Redis connection pool and verify connectivity."""
        if self._initialized:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                socket_timeout=self.socket_timeout,
                decode_responses=self.decode_responses,
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()

            self._initialized = True
            logger.info(
                "Redis client initialized",
                extra={"url": self._mask_url(self.url), "max_connections": self.max_connections},
            )

        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise RedisConnectionError(f"Redis connection failed: {e}") from e
        except redis.RedisError as e:
            logger.error(f"Failed to initialize Redis client: {e}")
            raise RedisError(f"Redis initialization failed: {e}") from e

    def _mask_url(self, url: str) -> str:
        """Mask password in Redis URL for logging."""
        if "@" in url:
            parts = url.split("@")
            return f"redis://***@{parts[-1]}"
        return url

    async def _ensure_initialized(self) -> redis.Redis:
        """Ensure client is initialized and return it."""
        if not self._initialized or self._client is None:
            await self.initialize()
        return self._client  # type: ignore

    # ==================== Basic Operations ====================

    async def get(self, key: str) -> str | None:
        client = await self._ensure_initialized()
        return await client.get(key)

    async def set(self, key: str, value: str | int | float, ttl: int | None = None) -> bool:
        """Set a value, optionally expiring after ``ttl`` seconds."""
        client = await self._ensure_initialized()
        return bool(await client.set(key, value, ex=ttl))

    async def delete(self, *keys: str) -> int:
        client = await self._ensure_initialized()
        return await client.delete(*keys)

    # ==================== Hash Operations ====================

    async def hset(self, key: str, field: str, value: str) -> int:
        client = await self._ensure_initialized()
        return await client.hset(key, field, value)

    async def hget(self, key: str, field: str) -> str | None:
        client = await self._ensure_initialized()
        return await client.hget(key, field)

    async def hgetall(self, key: str) -> dict[str, str]:
        client = await self._ensure_initialized()
        return await client.hgetall(key)

    async def hdel(self, key: str, *fields: str) -> int:
        client = await self._ensure_initialized()
        return await client.hdel(key, *fields)

    # ==================== List Operations ====================

    async def lpush(self, key: str, *values: str) -> int:
        client = await self._ensure_initialized()
        return await client.lpush(key, *values)

    async def brpop(self, key: str, timeout: float = 0) -> str | None:
        """Pop from the tail of a list, blocking up to ``timeout`` seconds.

        Returns:
            The popped value, or None on timeout.
        """
        client = await self._ensure_initialized()
        result = await client.brpop([key], timeout=timeout)
        if result is None:
            return None
        return result[1]

    # ==================== Counter Operations ====================

    async def incr_by(self, key: str, amount: int = 1) -> int:
        client = await self._ensure_initialized()
        return await client.incrby(key, amount)

    async def decr_by(self, key: str, amount: int = 1) -> int:
        client = await self._ensure_initialized()
        return await client.decrby(key, amount)

    # ==================== Transactions ====================

    async def transaction(
        self,
        build: Callable[[redis.client.Pipeline], Awaitable[None] | None],
    ) -> list[Any]:
        """Queue commands with ``build(pipe)`` and run them in MULTI/EXEC.

        Returns:
            list: Per-command results in queue order.
        """
        client = await self._ensure_initialized()
        async with client.pipeline(transaction=True) as pipe:
            queued = build(pipe)
            if queued is not None:
                await queued
            return await pipe.execute()

    async def tx_incr(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Increment a counter and optionally refresh its TTL atomically."""

        def build(pipe: redis.client.Pipeline) -> None:
            pipe.incrby(key, amount)
            if ttl is not None:
                pipe.expire(key, ttl)

        results = await self.transaction(build)
        return int(results[0])

    # ==================== Distributed Lock ====================

    async def acquire_lock(self, name: str, ttl: int = 30) -> str | None:
        """Try once to take a lock.

        Returns:
            The lock token when acquired, None otherwise.
        """
        client = await self._ensure_initialized()
        token = random_alphabet_and_number(LOCK_TOKEN_LENGTH)
        acquired = await client.set(f"lock:{name}", token, nx=True, ex=ttl)
        return token if acquired else None

    async def release_lock(self, name: str, token: str) -> bool:
        """Release a lock only if ``token`` still owns it."""
        client = await self._ensure_initialized()
        released = await client.eval(_RELEASE_LOCK_SCRIPT, 1, f"lock:{name}", token)
        if not released:
            logger.warning(f"Lock {name} was already released or expired")
        return bool(released)

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        ttl: int = 30,
        blocking_timeout: float = 10.0,
        poll_interval: float = 0.1,
    ) -> AsyncGenerator[str, None]:
        """Hold a distributed lock for the duration of the block.

        Raises:
            LockNotAcquiredError: If the lock is not free within ``blocking_timeout``.
        """
        deadline = time.monotonic() + blocking_timeout
        token = await self.acquire_lock(name, ttl)
        while token is None:
            if time.monotonic() >= deadline:
                raise LockNotAcquiredError(f"Could not acquire lock {name}")
            await asyncio.sleep(poll_interval)
            token = await self.acquire_lock(name, ttl)

        try:
            yield token
        finally:
            await self.release_lock(name, token)

    # ==================== Health Check ====================

    def pool_stats(self) -> dict[str, Any]:
        """Connection pool usage counters."""
        if self._pool is None:
            return {"status": "not_initialized"}
        return {
            "status": "active",
            "max_connections": self.max_connections,
            "in_use": len(self._pool._in_use_connections),
            "available": len(self._pool._available_connections),
        }

    async def health_check(self) -> dict[str, Any]:
        """Check Redis connection health.

        Returns:
            dict: Health status with latency info.
        """
        try:
            client = await self._ensure_initialized()
            start = time.time()
            await client.ping()
            latency = time.time() - start
            return {
                "status": "healthy",
                "latency_ms": round(latency * 1000, 2),
            }
        except (RedisError, redis.RedisError) as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    # ==================== Cleanup ====================

    async def close(self) -> None:
        """Close the Redis client and connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

        self._initialized = False
        logger.info("Redis client closed")


def cache_key(*parts: str) -> str:
    """Generate a cache key from parts.

    Args:
        *parts: Key parts to join.

    Returns:
        str: Cache key with colon separators.
    """
    return ":".join(parts)

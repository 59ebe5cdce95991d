"""Data cache in front of the database.

Entries are JSON-compatible dicts grouped by namespace ("users",
"questions"). ``MemoryCache`` keeps them in process; ``RedisDataCache``
stores each namespace as a Redis hash.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

from nova.config import Settings
from nova.services.redis_client import RedisClient, cache_key

logger = logging.getLogger(__name__)


class DataCache(ABC):
    """Namespace -> key -> document store."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None: ...

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> None: ...

    @abstractmethod
    async def values(self, namespace: str) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def clear(self, namespace: str) -> None: ...

    async def health(self) -> dict[str, Any]:
        """Status dict with at least a ``"status"`` key."""
        return {"status": "healthy", "type": type(self).__name__}

    async def close(self) -> None:
        return None


class NullCache(DataCache):
    """Cache that stores nothing; every read misses."""

    async def health(self) -> dict[str, Any]:
        return {"status": "disabled", "type": "none"}

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        return None

    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        return None

    async def delete(self, namespace: str, key: str) -> None:
        return None

    async def values(self, namespace: str) -> list[dict[str, Any]]:
        return []

    async def clear(self, namespace: str) -> None:
        return None


class MemoryCache(DataCache):
    """In-process cache; values are copied on the way in and out."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._data.get(namespace, {}).get(key)
            return copy.deepcopy(value) if value is not None else None

    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[key] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> None:
        with self._lock:
            self._data.get(namespace, {}).pop(key, None)

    async def values(self, namespace: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(v) for v in self._data.get(namespace, {}).values()]

    async def clear(self, namespace: str) -> None:
        with self._lock:
            self._data.pop(namespace, None)

    async def health(self) -> dict[str, Any]:
        with self._lock:
            entries = sum(len(v) for v in self._data.values())
        return {"status": "healthy", "type": "memory", "entries": entries}


class RedisDataCache(DataCache):
    """Cache stored in Redis hashes named ``nova:<namespace>``."""

    def __init__(self, client: RedisClient, prefix: str = "nova"):
        self._client = client
        self._prefix = prefix

    def _key(self, namespace: str) -> str:
        return cache_key(self._prefix, namespace)

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        raw = await self._client.hget(self._key(namespace), key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Dropping undecodable cache entry {namespace}/{key}")
            await self._client.hdel(self._key(namespace), key)
            return None

    async def set(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        await self._client.hset(self._key(namespace), key, json.dumps(value))

    async def delete(self, namespace: str, key: str) -> None:
        await self._client.hdel(self._key(namespace), key)

    async def values(self, namespace: str) -> list[dict[str, Any]]:
        entries = await self._client.hgetall(self._key(namespace))
        return [json.loads(raw) for raw in entries.values()]

    async def clear(self, namespace: str) -> None:
        await self._client.delete(self._key(namespace))

    async def health(self) -> dict[str, Any]:
        return {"type": "redis", **(await self._client.health_check())}

    async def close(self) -> None:
        await self._client.close()


async def build_cache(settings: Settings) -> DataCache:
    """Create the cache selected by ``CACHE_TYPE``."""
    match settings.CACHE_TYPE:
        case "redis":
            client = RedisClient(
                url=settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            )
            await client.initialize()
            return RedisDataCache(client)
        case "memory":
            return MemoryCache()
        case _:
            return NullCache()

"""Nova services: domain operations, caching and the Redis client."""

from nova.services.cache import DataCache, MemoryCache, NullCache, RedisDataCache, build_cache
from nova.services.errors import (
    AlreadyExistsError,
    InvalidRequestError,
    NotFoundError,
    ServiceError,
)
from nova.services.questions import QuestionService
from nova.services.redis_client import RedisClient, RedisConnectionError, RedisError
from nova.services.users import UserService

__all__ = [
    "DataCache",
    "MemoryCache",
    "NullCache",
    "RedisDataCache",
    "build_cache",
    "ServiceError",
    "NotFoundError",
    "AlreadyExistsError",
    "InvalidRequestError",
    "QuestionService",
    "UserService",
    "RedisClient",
    "RedisError",
    "RedisConnectionError",
]

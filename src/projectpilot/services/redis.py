import logging
from typing import Any, List, Set

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..errors import SessionStoreError
from ..settings import get_settings

logger = logging.getLogger(__name__)

_REDIS_ERRORS = (RedisConnectionError, RedisTimeoutError)


class RedisCrudService:
    """Async key, list and set operations against a Redis instance.

    Unlike a cache, the session store cannot treat a failed read as a miss, so
    every backend failure is logged and re-raised as SessionStoreError.
    """

    def __init__(self, url: str) -> None:
        """Create a Redis client for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis | None = None

    async def connect(self) -> None:
        """Establish connection to Redis. Idempotent."""
        if self._client is not None:
            return
        self._client = Redis.from_url(
            self._url,
            decode_responses=True,
        )
        try:
            await self._client.ping()
            logger.info("Redis connection established: %s", self._url.split("@")[-1])
        except _REDIS_ERRORS as e:
            logger.warning("Redis ping failed: %s", e)
            await self._client.aclose()
            self._client = None
            raise

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")

    @property
    def client(self) -> Redis | None:
        """Return the underlying Redis client, or None if not connected."""
        return self._client

    def _require_client(self) -> Redis:
        if self._client is None:
            raise SessionStoreError("Redis is not connected")
        return self._client

    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if missing."""
        client = self._require_client()
        try:
            value = await client.get(key)
        except _REDIS_ERRORS as e:
            logger.warning("Redis get %s failed: %s", key, e)
            raise SessionStoreError(f"get {key} failed: {e}") from e
        return value if value is None else str(value)

    async def set(self, key: str, value: str) -> None:
        client = self._require_client()
        try:
            await client.set(key, value)
        except _REDIS_ERRORS as e:
            logger.warning("Redis set %s failed: %s", key, e)
            raise SessionStoreError(f"set {key} failed: {e}") from e

    async def append(self, key: str, value: str) -> None:
        """Append value to the list stored at key (created if missing)."""
        client = self._require_client()
        try:
            await client.rpush(key, value)
        except _REDIS_ERRORS as e:
            logger.warning("Redis rpush %s failed: %s", key, e)
            raise SessionStoreError(f"append {key} failed: {e}") from e

    async def get_list(self, key: str) -> List[str]:
        """Return the whole list stored at key, in insertion order."""
        client = self._require_client()
        try:
            values: List[Any] = await client.lrange(key, 0, -1)
        except _REDIS_ERRORS as e:
            logger.warning("Redis lrange %s failed: %s", key, e)
            raise SessionStoreError(f"list {key} failed: {e}") from e
        return [str(v) for v in values]

    async def add_member(self, key: str, member: str) -> None:
        client = self._require_client()
        try:
            await client.sadd(key, member)
        except _REDIS_ERRORS as e:
            logger.warning("Redis sadd %s failed: %s", key, e)
            raise SessionStoreError(f"add member to {key} failed: {e}") from e

    async def remove_member(self, key: str, member: str) -> None:
        client = self._require_client()
        try:
            await client.srem(key, member)
        except _REDIS_ERRORS as e:
            logger.warning("Redis srem %s failed: %s", key, e)
            raise SessionStoreError(f"remove member from {key} failed: {e}") from e

    async def members(self, key: str) -> Set[str]:
        client = self._require_client()
        try:
            values = await client.smembers(key)
        except _REDIS_ERRORS as e:
            logger.warning("Redis smembers %s failed: %s", key, e)
            raise SessionStoreError(f"members of {key} failed: {e}") from e
        return {str(v) for v in values}


def get_redis_crud_service() -> RedisCrudService | None:
    """Return a Redis CRUD service if redis_url is configured, else None."""
    settings = get_settings()
    if not settings.redis_url or not settings.redis_url.strip():
        return None
    return RedisCrudService(settings.redis_url.strip())

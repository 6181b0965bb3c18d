"""
Redis client and the JSON cache used for analytics reporting views.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis, from_url

from nibret.core.config import settings
from nibret.core.metrics import record_cache_operation

logger = logging.getLogger(__name__)

redis_client: Optional[Redis] = None


async def get_redis() -> Redis:
    """Get Redis client instance."""
    global redis_client
    if redis_client is None:
        redis_client = from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return redis_client


async def close_redis():
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.close()
        redis_client = None


class CacheService:
    """Redis caching service with JSON serialization."""

    def __init__(self, redis: Redis, prefix: str = "nibret"):
        self.redis = redis
        self.prefix = prefix

    def key(self, *parts: Any) -> str:
        return ":".join([self.prefix, *(str(part) for part in parts)])

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        value = await self.redis.get(key)
        if value is not None:
            record_cache_operation("hit")
            return json.loads(value)
        record_cache_operation("miss")
        return None

    async def set(
        self, key: str, value: Any, ttl: int = settings.REDIS_CACHE_TTL
    ) -> bool:
        """Set value in cache with TTL."""
        serialized = json.dumps(value, default=str)
        success = await self.redis.setex(key, ttl, serialized)
        if success:
            record_cache_operation("set")
        return success

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        deleted = bool(await self.redis.delete(key))
        if deleted:
            record_cache_operation("delete")
        return deleted

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        ttl: int,
    ) -> Any:
        """
        Return the cached value for ``key`` or compute, cache and return it.

        Cache failures degrade to a direct computation; reporting views are
        eventually consistent so a stale or missing entry is acceptable.
        """
        try:
            cached = await self.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            cached = None
        if cached is not None:
            return cached

        value = await compute()
        try:
            await self.set(key, value, ttl=ttl)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
        return value

    async def invalidate_pattern(self, pattern: str) -> int:
        """Invalidate all keys matching pattern."""
        keys = []
        async for key in self.redis.scan_iter(match=pattern):
            keys.append(key)
        if keys:
            deleted = await self.redis.delete(*keys)
            if deleted:
                record_cache_operation("invalidate")
            return deleted
        return 0

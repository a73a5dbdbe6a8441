"""
Redis caching layer for Social Service
"""
import redis.asyncio as redis
from typing import Optional, Any
import json
import logging

from .config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis cache manager for follow status and unread counters"""

    def __init__(self):
        self.redis: Optional[redis.Redis] = None

    async def connect(self):
        """Connect to Redis"""
        if not settings.REDIS_ENABLED:
            logger.info("Redis caching is disabled")
            return

        try:
            self.redis = redis.from_url(
                f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}",
                password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
                encoding="utf-8",
                decode_responses=True,
            )
            # Test connection
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except Exception as e:
            logger.warning(f"Failed to connect to Redis: {e}. Continuing without cache.")
            self.redis = None

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Disconnected from Redis")

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self.redis:
            return None

        try:
            value = await self.redis.get(key)
            if value is not None:
                return json.loads(value)
            return None
        except Exception as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 300):
        """Set value in cache with TTL"""
        if not self.redis:
            return

        try:
            await self.redis.setex(key, ttl, json.dumps(value))
        except Exception as e:
            logger.error(f"Error setting cache key {key}: {e}")

    async def delete(self, *keys: str):
        """Delete keys from cache"""
        if not self.redis or not keys:
            return

        try:
            await self.redis.delete(*keys)
        except Exception as e:
            logger.error(f"Error deleting cache keys {keys}: {e}")

    def _follow_status_key(self, viewer_id: int, target_id: int) -> str:
        return f"social:follow-status:{viewer_id}:{target_id}"

    def _follow_generation_key(self, viewer_id: int, target_id: int) -> str:
        return f"social:follow-gen:{viewer_id}:{target_id}"

    def _unread_count_key(self, user_id: int) -> str:
        return f"social:unread-count:{user_id}"

    async def get_follow_generation(self, viewer_id: int, target_id: int) -> int:
        """Mutation counter of the pair; snapshots from older generations are stale"""
        value = await self.get(self._follow_generation_key(viewer_id, target_id))
        return int(value or 0)

    async def get_follow_status(
        self, viewer_id: int, target_id: int, generation: int
    ) -> Optional[dict]:
        """Get cached {following, requested} snapshot taken at generation"""
        snapshot = await self.get(self._follow_status_key(viewer_id, target_id))
        if not snapshot or snapshot.pop("generation", None) != generation:
            return None
        return snapshot

    async def set_follow_status(
        self, viewer_id: int, target_id: int, status: dict, generation: int
    ):
        await self.set(
            self._follow_status_key(viewer_id, target_id),
            {**status, "generation": generation},
            settings.CACHE_TTL_FOLLOW_STATUS,
        )

    async def invalidate_follow_status(self, viewer_id: int, target_id: int):
        """
        Drop the snapshot and bump the generation

        A reader that computed its status before the mutation still holds the
        old generation, so a snapshot it writes afterwards is never served.
        """
        if not self.redis:
            return

        generation_key = self._follow_generation_key(viewer_id, target_id)
        try:
            await self.redis.incr(generation_key)
            await self.redis.expire(generation_key, settings.CACHE_TTL_FOLLOW_STATUS * 2)
            await self.redis.delete(self._follow_status_key(viewer_id, target_id))
        except Exception as e:
            logger.error(f"Error invalidating follow status {viewer_id}->{target_id}: {e}")

    async def get_unread_count(self, user_id: int) -> Optional[int]:
        return await self.get(self._unread_count_key(user_id))

    async def set_unread_count(self, user_id: int, count: int):
        await self.set(self._unread_count_key(user_id), count, settings.CACHE_TTL_UNREAD_COUNT)

    async def invalidate_unread_count(self, user_id: int):
        await self.delete(self._unread_count_key(user_id))


# Global cache instance
cache = RedisCache()


async def get_cache() -> RedisCache:
    """Dependency for getting cache instance"""
    return cache

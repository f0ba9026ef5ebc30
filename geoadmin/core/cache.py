"""
@file cache.py
@brief Redis cache manager singleton
@details
Caches rendered geometry projections (simplified GeoJSON is expensive to
compute for large countries). Every call degrades to a miss when Redis is
unreachable, so the API keeps serving straight from the store.

@author GeoAdmin Project
@date 2026-10-06
"""

import json
import logging
from typing import Optional, Any
import redis.asyncio as redis

from geoadmin.core.config import get_settings

logger = logging.getLogger(__name__)

GEOMETRY_KEY_PREFIX = "geo:geometry"


def geometry_cache_key(area_id: int, zoom: Optional[float], tolerance_meters: Optional[float]) -> str:
    return f"{GEOMETRY_KEY_PREFIX}:{area_id}:z={zoom}:t={tolerance_meters}"


class RedisCache:
    """
    @brief Singleton wrapper for Async Redis client
    """
    _instance: Optional['RedisCache'] = None
    client: Optional[redis.Redis] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(RedisCache, cls).__new__(cls)
        return cls._instance

    async def connect(self, redis_url: Optional[str] = None):
        """
        @brief Initialize Redis connection pool from REDIS_URL
        """
        redis_url = redis_url or get_settings().redis_url
        try:
            self.client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self.client.ping()
            logger.info(f"Connected to Redis at {redis_url}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.client = None

    async def close(self):
        if self.client:
            await self.client.close()
            logger.info("Redis connection closed")

    async def get(self, key: str) -> Optional[Any]:
        if not self.client:
            return None
        try:
            value = await self.client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600):
        """
        @brief Set JSON-serializable value in cache with TTL (seconds)
        """
        if not self.client:
            return
        try:
            serialized = json.dumps(value)
            await self.client.setex(key, ttl, serialized)
        except Exception as e:
            logger.warning(f"Redis set error for {key}: {e}")

    async def delete_pattern(self, pattern: str) -> int:
        """
        @brief Delete every key matching a glob pattern
        @return Number of keys deleted (0 when Redis is unavailable)
        """
        if not self.client:
            return 0
        deleted = 0
        try:
            async for key in self.client.scan_iter(match=pattern):
                deleted += await self.client.delete(key)
        except Exception as e:
            logger.warning(f"Redis delete error for {pattern}: {e}")
        return deleted

    async def invalidate_geometries(self) -> int:
        deleted = await self.delete_pattern(f"{GEOMETRY_KEY_PREFIX}:*")
        if deleted:
            logger.info(f"Invalidated {deleted} cached geometries")
        return deleted


# Global instance
cache = RedisCache()

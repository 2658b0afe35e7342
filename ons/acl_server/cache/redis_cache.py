"""
Redis authority cache.

Shared backend for deployments running several ACL server processes.
Uses SETEX for writes and EXPIRE for refresh-on-hit.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import CacheError

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis implementation of AuthorityCache.

    Example:
        >>> cache = RedisCache("redis://localhost:6379/0")
        >>> await cache.connect()
        >>> await cache.set_with_expiry("acme:acme.io", "{}", 300)
    """

    def __init__(self, redis_url: str) -> None:
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Initialize Redis connection."""
        try:
            self.redis = redis.from_url(self.redis_url, decode_responses=True)
            await self.redis.ping()
        except RedisError as e:
            raise CacheError(f"Failed to connect to Redis: {e}") from e
        logger.info("Connected to Redis cache")

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheError("Redis cache is not connected")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client().get(key)
        except RedisError as e:
            raise CacheError(f"Redis GET {key} failed: {e}") from e

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client().setex(key, ttl_seconds, value)
        except RedisError as e:
            raise CacheError(f"Redis SETEX {key} failed: {e}") from e

    async def refresh_expiry(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._client().expire(key, ttl_seconds))
        except RedisError as e:
            raise CacheError(f"Redis EXPIRE {key} failed: {e}") from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._client().delete(*keys))
        except RedisError as e:
            raise CacheError(f"Redis DEL failed: {e}") from e

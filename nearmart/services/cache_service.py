"""
Cache backends for the geocoding collaborator.

Supports:
1. Redis (preferred for production, shared across workers)
2. In-memory fallback (development/testing), bounded in size

Usage:
    cache = get_cache()
    await cache.set("geocode:1 main st...", {"longitude": ..., "latitude": ...}, ttl=3600)
    value = await cache.get("geocode:1 main st...")
"""
import json
from typing import Any, Optional, Dict
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from nearmart.config import settings

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass

    async def cleanup_expired(self) -> int:
        """Remove expired entries. Backends with native expiry have nothing to do."""
        return 0

    async def size(self) -> int:
        return 0


class InMemoryCache(CacheBackend):
    """
    In-memory TTL cache.

    When full, the entry closest to expiry is evicted first (with one TTL
    for every entry that is also the oldest). Not shared across processes.
    """

    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self.max_entries:
                oldest_key = min(self._cache, key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def cleanup_expired(self) -> int:
        """Remove expired entries. Called periodically by the scheduler."""
        async with self._lock:
            now = datetime.now(timezone.utc)
            expired_keys = [
                k for k, (_, expires_at) in self._cache.items()
                if expires_at <= now
            ]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    async def size(self) -> int:
        return len(self._cache)


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Cache failures are logged and treated as misses so a Redis outage
    degrades to uncached lookups instead of failing requests.
    """

    def __init__(self, redis_url: str, namespace: str = "nearmart"):
        self._redis_url = redis_url
        self._namespace = namespace
        self._client = None

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _get_client(self):
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._get_client()
            value = await client.get(self._key(key))
            if value:
                return json.loads(value)
            return None
        except RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            client = await self._get_client()
            await client.set(self._key(key), json.dumps(value), ex=ttl)
            return True
        except RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            client = await self._get_client()
            await client.delete(self._key(key))
            return True
        except RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    async def clear_pattern(self, pattern: str) -> int:
        try:
            client = await self._get_client()
            cursor = 0
            deleted = 0
            while True:
                cursor, keys = await client.scan(cursor, match=self._key(pattern), count=100)
                if keys:
                    await client.delete(*keys)
                    deleted += len(keys)
                if cursor == 0:
                    break
            return deleted
        except RedisError as e:
            logger.warning(f"Redis clear_pattern failed for {pattern}: {e}")
            return 0

    async def size(self) -> int:
        try:
            client = await self._get_client()
            return await client.dbsize()
        except RedisError as e:
            logger.warning(f"Redis dbsize failed: {e}")
            return 0


# Global cache instance
_cache_backend: Optional[CacheBackend] = None


def get_cache() -> CacheBackend:
    """Get or create the process-wide cache backend."""
    global _cache_backend

    if _cache_backend is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            logger.info("Using Redis cache backend")
            _cache_backend = RedisCache(settings.REDIS_URL)
        else:
            logger.info("Using in-memory cache backend")
            _cache_backend = InMemoryCache(max_entries=settings.GEOCODER_CACHE_MAX_ENTRIES)

    return _cache_backend

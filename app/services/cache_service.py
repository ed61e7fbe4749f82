"""
Location Cache Service.

Pincode -> ResolvedLocation mappings are effectively static, so successful
provider lookups are cached for LOCATION_CACHE_TTL_DAYS.

Supports:
1. Redis (preferred for production, shared across workers)
2. Bounded in-memory fallback (for development/testing)

Usage:
    cache = get_cache()

    await cache.set_location("560001", location.model_dump())
    data = await cache.get_location("560001")
"""
import json
from collections import OrderedDict
from typing import Any, Optional
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

from app.config import settings

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


class InMemoryCache(CacheBackend):
    """
    Bounded in-memory cache.

    When full, the oldest inserted entry is evicted first.
    Not shared across server processes; use Redis for multi-worker deployments.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self._cache: "OrderedDict[str, tuple[Any, datetime]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.max_entries = max_entries or settings.LOCATION_CACHE_MAX_ENTRIES

    def __len__(self) -> int:
        return len(self._cache)

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
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            # Re-setting a key counts as a fresh insertion
            self._cache.pop(key, None)
            self._cache[key] = (value, expires_at)
            while len(self._cache) > self.max_entries:
                evicted, _ = self._cache.popitem(last=False)
                logger.debug(f"Location cache full, evicted {evicted}")
            return True

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


class RedisCache(CacheBackend):
    """
    Redis cache backend for production.

    Cache failures never break a lookup: errors are logged and reported as misses.
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    async def _get_client(self):
        if self._client is None:
            import redis.asyncio as redis
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._get_client()
            value = await client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        try:
            client = await self._get_client()
            await client.set(key, json.dumps(value), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            return False


class CacheService:
    """
    Namespaced cache for resolved locations.

    Cache keys follow the format:

        {namespace}:location:{pincode}

    Example:
        storefront:location:560001
    """

    def __init__(self, backend: CacheBackend, namespace: str = "storefront"):
        self._backend = backend
        self._namespace = namespace

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await self._backend.get(self._make_key(key))

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return await self._backend.set(self._make_key(key), value, ttl)

    # ==================== Location Cache ====================

    @staticmethod
    def _location_key(pincode: str) -> str:
        return f"location:{pincode}"

    async def get_location(self, pincode: str) -> Optional[dict]:
        """Get cached location data for a pincode."""
        return await self.get(self._location_key(pincode))

    async def set_location(
        self,
        pincode: str,
        data: dict,
        ttl: Optional[int] = None
    ) -> bool:
        """Cache resolved location data for a pincode."""
        ttl = ttl or int(timedelta(days=settings.LOCATION_CACHE_TTL_DAYS).total_seconds())
        return await self.set(self._location_key(pincode), data, ttl)

    async def cleanup_expired(self) -> int:
        """Purge expired entries (in-memory backend only; Redis expires keys itself)."""
        if isinstance(self._backend, InMemoryCache):
            return await self._backend.cleanup_expired()
        return 0


# Singleton cache instance
_cache_instance: Optional[CacheService] = None


def get_cache() -> CacheService:
    """Get the cache service singleton."""
    global _cache_instance

    if _cache_instance is None:
        if settings.REDIS_URL and settings.CACHE_ENABLED:
            backend = RedisCache(settings.REDIS_URL)
            logger.info("Cache initialized with Redis backend")
        else:
            backend = InMemoryCache()
            logger.info("Cache initialized with in-memory backend")

        _cache_instance = CacheService(backend)

    return _cache_instance


def reset_cache() -> None:
    """Drop the singleton (tests and settings reloads)."""
    global _cache_instance
    _cache_instance = None

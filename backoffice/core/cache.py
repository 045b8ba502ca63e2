"""
Cache collaborator.

Derived read paths are memoized here with a bounded TTL. The cache is never a
source of truth: a failed read is a miss, a failed delete is an error because
the caller can no longer rely on seeing its own write.

The backend is created once at startup (see `init_cache`) and injected into
the components; nothing in this module keeps a global client.
"""
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis
from fastapi import Request

from backoffice.core.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)


class CacheKeys:
    """Key namespace, by entity type and id."""

    RECIPE_STATS = "recipe_stats"
    MEAL_STATS = "meal_stats"
    MENU_STATS = "menu_stats"
    ACTIVE_MENUS = "active_menus"

    @staticmethod
    def recipe(recipe_id: int) -> str:
        return f"recipe:{recipe_id}"

    @staticmethod
    def meal(meal_id: int) -> str:
        return f"meal:{meal_id}"

    @staticmethod
    def menu(menu_id: int, include_items: bool) -> str:
        return f"menu:{menu_id}:{str(include_items).lower()}"

    @classmethod
    def menu_variants(cls, menu_id: int) -> list[str]:
        return [cls.menu(menu_id, True), cls.menu(menu_id, False)]


class CacheBackend(ABC):
    """Key-value store with expiry. Values must be JSON-serializable."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def delete(self, *keys: str) -> None:
        ...

    def close(self) -> None:
        """Release connections. Called once at shutdown."""


class RedisCache(CacheBackend):
    """Redis-backed cache storing JSON documents with `SET ... EX`."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2))

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(f"Discarding undecodable cache value for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            self.client.set(key, json.dumps(value), ex=ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Cache invalidation failed for {list(keys)}: {e}")
            raise ServiceUnavailableError("Cache invalidation failed", {"keys": list(keys)}) from e

    def close(self) -> None:
        self.client.close()


class MemoryCache(CacheBackend):
    """
    In-process TTL store.

    Used when Redis is not configured and in tests. Values are kept as JSON
    text so callers never share mutable state with the cache.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[float, str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, raw = entry
            if expires_at <= self._clock():
                del self._data[key]
                return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = (self._clock() + ttl_seconds, raw)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def close(self) -> None:
        with self._lock:
            self._data.clear()


def init_cache(settings) -> CacheBackend:
    """Create the process-wide cache backend from settings."""
    if settings.CACHE_BACKEND == "memory":
        logger.info("Using in-memory cache backend")
        return MemoryCache()

    cache = RedisCache.from_url(settings.REDIS_URL)
    try:
        cache.client.ping()
        logger.info(f"Connected to Redis at {settings.REDIS_URL}")
    except redis.RedisError as e:
        # Reads degrade to misses; invalidations will surface as 503s
        logger.warning(f"Redis not reachable at startup: {e}")
    return cache


def close_cache(cache: Optional[CacheBackend]) -> None:
    if cache is not None:
        cache.close()


def get_cache(request: Request) -> CacheBackend:
    """FastAPI dependency returning the backend created at startup."""
    return request.app.state.cache

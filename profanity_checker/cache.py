"""
Key-value cache with per-entry TTL.

Providers cache search results and downloaded subtitle content under their
own prefixed keys; the pipeline caches finished analyses. The in-memory
store is the default, a Redis backend is used when a URL is configured so
several instances can share results.
"""

import json
import logging
import time
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol

from cachetools import TLRUCache

from profanity_checker.config import Settings, settings
from profanity_checker.models import SearchRequest

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "profanity:"


class CacheProtocol(Protocol):
    """Protocol for cache implementations."""

    async def get(self, key: str) -> Any | None: ...
    async def set(self, key: str, value: Any, ttl: float) -> None: ...
    async def clear(self) -> None: ...
    async def get_stats(self) -> dict[str, Any]: ...


def analysis_cache_key(request: SearchRequest) -> str:
    """
    Build the cache key for a finished analysis.

    Season and episode are always part of the key (empty when absent) so a
    show and each of its episodes never collide.

    Examples:
        >>> from profanity_checker.models import ContentType
        >>> analysis_cache_key(SearchRequest(603, ContentType.movie, "The Matrix"))
        'analysis:603:movie:se'
    """
    return f"analysis:{request.tmdb_id}:{request.content_type.value}:{request.episode_tag}"


class _Entry(NamedTuple):
    value: Any
    ttl: float


def _time_to_use(key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class MemoryCache:
    """
    In-process cache backed by cachetools.TLRUCache.

    Unlike a plain TTLCache, every entry carries its own time-to-live, so
    short-lived search results and day-long analyses share one store. LRU
    eviction applies once maxsize is reached.
    """

    def __init__(self, maxsize: int | None = None):
        self._hits = 0
        self._misses = 0
        self._maxsize = maxsize or settings.cache_maxsize
        self._cache: TLRUCache = TLRUCache(
            maxsize=self._maxsize,
            ttu=_time_to_use,
            timer=time.monotonic,
        )

    @property
    def maxsize(self) -> int:
        return self._maxsize

    async def get(self, key: str) -> Any | None:
        """
        Get a cached value if present and not expired.

        Args:
            key: Cache key

        Returns:
            The stored value, or None on a miss
        """
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        self._hits += 1
        logger.debug(f"Cache hit for key: {key}")
        return entry.value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        """
        Store a value, replacing any previous value under the same key.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds
        """
        self._cache[key] = _Entry(value, ttl)
        logger.debug(f"Cache set for key: {key} (ttl={ttl}s)")

    async def clear(self) -> None:
        """Clear all cached data."""
        size = len(self._cache)
        self._cache.clear()
        logger.info(f"Cache cleared: {size} entries removed")

    async def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache size, hits, misses, and hit rate
        """
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0
        return {
            "backend": "memory",
            "size": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": hit_rate,
        }


# Global Redis connection pool - shared across all RedisCache instances
_redis_pool: "redis.ConnectionPool | None" = None


def _get_redis_pool(redis_url: str) -> "redis.ConnectionPool":
    """
    Get or create the global Redis connection pool.

    Args:
        redis_url: Redis URL

    Returns:
        Shared ConnectionPool instance
    """
    global _redis_pool
    if _redis_pool is None:
        import redis.asyncio as redis

        _redis_pool = redis.ConnectionPool.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
        )
        logger.info("Created Redis connection pool")
    return _redis_pool


class RedisCache:
    """
    Redis-based cache for deployments with more than one instance.

    Values are stored as JSON under a common prefix with SETEX, so every
    write is a whole-value overwrite and Redis handles expiry. Connection
    failures degrade to cache misses; the pipeline never fails because the
    cache is down.
    """

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client: "redis.Redis | None" = None
        self._hits = 0
        self._misses = 0

    async def connect(self) -> None:
        """Connect to Redis server using connection pool."""
        import redis.asyncio as redis

        pool = _get_redis_pool(self._redis_url)
        self._client = redis.Redis(connection_pool=pool)
        logger.info("Connected to Redis using connection pool")

    async def disconnect(self) -> None:
        """Disconnect from Redis server (returns connection to pool)."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis")

    async def get(self, key: str) -> Any | None:
        if not self._client:
            return None

        try:
            data = await self._client.get(REDIS_KEY_PREFIX + key)
        except Exception as e:
            logger.error(f"Redis get error: {e}")
            self._misses += 1
            return None

        if data is None:
            self._misses += 1
            return None

        try:
            value = json.loads(data)
        except ValueError as e:
            logger.error(f"Redis value for {key} is not valid JSON: {e}")
            self._misses += 1
            return None

        self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: float) -> None:
        if not self._client:
            return

        try:
            await self._client.setex(REDIS_KEY_PREFIX + key, int(ttl), json.dumps(value))
        except Exception as e:
            logger.error(f"Redis set error: {e}")

    async def clear(self) -> None:
        """Clear our keys only; other Redis data is left alone."""
        if not self._client:
            return

        try:
            keys = []
            async for key in self._client.scan_iter(match=f"{REDIS_KEY_PREFIX}*", count=100):
                keys.append(key)
            if keys:
                await self._client.delete(*keys)
                logger.info(f"Redis cache cleared: {len(keys)} entries removed")
        except Exception as e:
            logger.error(f"Redis clear error: {e}")

    async def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        hit_rate = self._hits / total if total > 0 else 0
        return {
            "backend": "redis",
            "size": "N/A",  # Redis handles TTL internally, size tracking adds overhead
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": hit_rate,
        }


def create_cache(config: Settings | None = None) -> MemoryCache | RedisCache:
    """
    Pick the cache backend from configuration.

    The Redis backend still needs ``await cache.connect()`` before use.
    """
    config = config or settings
    if config.redis_url:
        return RedisCache(config.redis_url)
    return MemoryCache(maxsize=config.cache_maxsize)

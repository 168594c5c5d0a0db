import hashlib
import logging

import redis.asyncio as redis

from blogapi.config import settings

logger = logging.getLogger(__name__)


def list_key(page: int, page_size: int, sort: str, tag: str | None) -> str:
    """Cache key for one page of the article listing."""
    return f"posts:list:{page}:{page_size}:{sort}:{tag or ''}"


def detail_key(article_id: int) -> str:
    return f"posts:detail:{article_id}"


def fingerprint(payload: str) -> str:
    """MD5 hex digest of a serialized payload, used as its ETag."""
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class CacheManager:
    """
    Read-through cache backed by Redis.

    Payloads are stored as the exact JSON text sent to clients so a cached
    response and its fingerprint are byte-for-byte stable.

    All public methods are safe to call even when Redis is unavailable:
    reads return None and writes/flushes are skipped, so a cache outage
    never fails the surrounding request.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:
            # Non-fatal: every operation degrades to a miss / no-op until Redis is back.
            logger.warning("Redis ping failed, cache degraded: %s", exc)

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the cached payload for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            return await self._redis.get(key)
        except Exception as exc:
            logger.warning("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, payload: str, ttl: int | None = None) -> None:
        """
        Store *payload* under *key* with an optional TTL (seconds).

        Redis failures are logged but never propagated.
        """
        if not self._redis:
            return
        try:
            await self._redis.set(key, payload, ex=ttl)
        except Exception as exc:
            logger.warning("Cache SET error for key=%r: %s", key, exc)

    async def flush_all(self) -> None:
        """
        Drop every key in the cache database.

        Called after any article write.  The whole database goes, not just
        the entries the write touched, so no stale list or detail page can
        survive it.
        """
        if not self._redis:
            return
        try:
            await self._redis.flushdb()
            logger.debug("Cache flushed")
        except Exception as exc:
            logger.warning("Cache FLUSH error: %s", exc)


# Module-level singleton shared across all request handlers.
cache = CacheManager()

"""
Redis-backed cache for aggregated query results.

Values are stored as JSON with a TTL. Every operation is best-effort:
connection or command failures are logged and behave as a cache miss (or
a no-op for writes), so cache infrastructure problems never turn into
query failures.

CHANGELOG:
- 2026-10-16: Drop unused single-key delete (STORY-026)
- 2026-10-05: Wrap one shared client built by the container (STORY-022)
- 2026-10-04: Add invalidate_pattern via SCAN (STORY-022)
- 2026-10-02: Initial creation (STORY-020)

TODO:
- None
"""

import json
import logging
from typing import Any

import redis.asyncio as redis

from energy_rollup.config import Settings, get_settings

logger = logging.getLogger(__name__)

AGGREGATED_KEY_PREFIX = "energy:aggregated"


def create_redis(settings: Settings | None = None) -> redis.Redis:
    """Create an async Redis client from application settings.

    Args:
        settings: Optional settings. If not provided, loads them from env.

    Returns:
        redis.Redis: Async Redis client.
    """
    if settings is None:
        settings = get_settings()
    return redis.from_url(settings.REDIS_URL)


class RedisCache:
    """JSON cache on top of an async Redis client.

    Args:
        client: Async Redis client shared for the process lifetime.
        default_ttl: TTL in seconds used when ``set`` gets none.
        scan_count: COUNT hint for SCAN during pattern invalidation.
    """

    def __init__(
        self,
        client: redis.Redis,
        default_ttl: int = 300,
        scan_count: int = 100,
    ) -> None:
        self._client = client
        self._default_ttl = default_ttl
        self._scan_count = scan_count

    async def get(self, key: str) -> Any | None:
        """Return the decoded value for *key*, or None on miss or failure."""
        try:
            raw = await self._client.get(key)
            if raw is not None:
                return json.loads(raw)
        except Exception:
            logger.warning("Redis cache read failed for key %s", key, exc_info=True)
        return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* as JSON under *key*."""
        try:
            await self._client.set(
                key, json.dumps(value), ex=ttl if ttl is not None else self._default_ttl,
            )
        except Exception:
            logger.warning("Redis cache write failed for key %s", key, exc_info=True)

    async def invalidate_pattern(self, pattern: str) -> None:
        """Delete every key matching the glob *pattern*.

        Uses SCAN rather than KEYS so large keyspaces do not block Redis.
        """
        try:
            batch: list = []
            async for key in self._client.scan_iter(match=pattern, count=self._scan_count):
                batch.append(key)
                if len(batch) >= self._scan_count:
                    await self._client.delete(*batch)
                    batch = []
            if batch:
                await self._client.delete(*batch)
        except Exception:
            logger.warning(
                "Redis cache invalidation failed for pattern %s", pattern, exc_info=True,
            )

    async def ping(self) -> bool:
        """Return True if Redis answers PING; raises on connection failure."""
        return bool(await self._client.ping())

    async def close(self) -> None:
        """Close the underlying client."""
        await self._client.aclose()

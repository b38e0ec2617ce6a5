"""Redis cache for values that must survive between sessions.

Holds the WhatsApp instance token of each profile so a reconnecting client
can resume without creating a new instance.
"""
import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from pulse.config import settings

logger = structlog.get_logger(__name__)


class RedisCache:
    """Redis-based caching layer. Failures are logged, never raised."""

    def __init__(self, url: str | None = None):
        """Initialize Redis connection settings."""
        self.url = url or str(settings.redis_url)
        self.redis_client: Optional[redis.Redis] = None
        self._initialized = False

    async def _ensure_connection(self) -> redis.Redis:
        """
        Ensure Redis connection is established.

        Returns:
            Redis client instance
        """
        if not self._initialized or self.redis_client is None:
            try:
                self.redis_client = redis.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                )
                await self.redis_client.ping()
                self._initialized = True
                logger.info("redis_connected")
            except Exception as e:
                logger.error("redis_connection_failed", error=str(e))
                raise

        return self.redis_client

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/unavailable
        """
        try:
            client = await self._ensure_connection()
            value = await client.get(key)

            if value is None:
                logger.debug("cache_miss", key=key)
                return None

            logger.debug("cache_hit", key=key)

            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value

        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (always JSON serialized, so strings round-trip unchanged)
            ttl: Time-to-live in seconds; None keeps the key until deleted

        Returns:
            True if successful, False otherwise
        """
        try:
            client = await self._ensure_connection()

            value = json.dumps(value)

            if ttl is None:
                await client.set(key, value)
            else:
                await client.setex(key, ttl, value)

            logger.debug("cache_set", key=key, ttl=ttl)
            return True

        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if deleted, False otherwise
        """
        try:
            client = await self._ensure_connection()
            result = await client.delete(key)

            logger.debug("cache_delete", key=key, deleted=bool(result))
            return bool(result)

        except Exception as e:
            logger.warning("cache_delete_failed", key=key, error=str(e))
            return False

    async def ping(self) -> bool:
        """Return True when Redis answers."""
        try:
            client = await self._ensure_connection()
            return bool(await client.ping())
        except Exception as e:
            logger.warning("cache_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self._initialized = False
            logger.info("redis_closed")


def cache_key(entity_type: str, entity_id: str, suffix: str = "") -> str:
    """
    Generate consistent cache key.

    Args:
        entity_type: Entity type or key prefix
        entity_id: Entity ID
        suffix: Optional suffix for variations

    Returns:
        Cache key string
    """
    if suffix:
        return f"{entity_type}:{entity_id}:{suffix}"
    return f"{entity_type}:{entity_id}"

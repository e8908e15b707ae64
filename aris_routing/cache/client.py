"""Async Redis connection manager with graceful fallback."""

import logging
from typing import Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class RedisManager:
    """Lazily connected async Redis client that degrades to "unavailable".

    When Redis is not configured or cannot be reached, ``get_client``
    returns None and callers fall back to their in-process tier.

    Attributes:
        _redis_url: Redis connection URL, or None if not configured.
        _key_prefix: Namespace prefix for all Redis keys.
        _client: Cached async Redis client instance.
        _available: Whether Redis answered the last connection attempt.
    """

    def __init__(self, redis_url: Optional[str] = None, key_prefix: str = "aris:") -> None:
        """Initialize RedisManager.

        Args:
            redis_url: Redis connection URL (e.g. "redis://localhost:6379/0").
                When None, Redis is disabled.
            key_prefix: Namespace prefix for all Redis keys.
        """
        self._redis_url: Optional[str] = redis_url
        self._key_prefix: str = key_prefix
        self._client: Optional[aioredis.Redis] = None
        self._available: bool = False

    async def get_client(self) -> Optional[aioredis.Redis]:
        """Return a connected client, connecting on first use.

        Returns:
            Async Redis client, or None if Redis is unavailable or not configured.
        """
        if self._redis_url is None:
            return None

        if self._client is not None and self._available:
            return self._client

        try:
            self._client = aioredis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=5.0,
                socket_timeout=5.0,
                retry_on_timeout=True,
            )
            await self._client.ping()  # type: ignore[misc, union-attr]
            self._available = True
            logger.info(f"redis_connected: url={self._redis_url[:20]}...")
            return self._client
        except (aioredis.ConnectionError, aioredis.TimeoutError, OSError) as e:
            logger.warning(f"redis_unavailable: error={str(e)}")
            self._available = False
            self._client = None
            return None

    def mark_unavailable(self) -> None:
        """Force a reconnect attempt on the next ``get_client`` call."""
        self._available = False

    @property
    def available(self) -> bool:
        return self._available and self._redis_url is not None

    @property
    def key_prefix(self) -> str:
        return self._key_prefix

    async def close(self) -> None:
        """Close the connection pool."""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("redis_closed: pool closed gracefully")
            except Exception as e:
                logger.warning(f"redis_close_error: error={str(e)}")
            finally:
                self._client = None
                self._available = False

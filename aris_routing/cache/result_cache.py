"""Time-bounded memo of completed task results keyed by task fingerprint."""

import hashlib
import logging
import time
from collections import OrderedDict
from typing import Optional

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError

from aris_routing.cache.client import RedisManager
from aris_routing.models.task_models import TaskRequest, TaskResult
from aris_routing.routing.models import enum_value

logger = logging.getLogger(__name__)


class _CacheEntry:
    """In-memory cache entry with TTL tracking.

    Attributes:
        result: The cached TaskResult.
        created_at: Monotonic timestamp when the entry was created.
    """

    __slots__ = ("result", "created_at")

    def __init__(self, result: TaskResult) -> None:
        self.result: TaskResult = result
        self.created_at: float = time.monotonic()

    def is_expired(self, ttl_seconds: float) -> bool:
        return (time.monotonic() - self.created_at) > ttl_seconds


class CacheStats(BaseModel):
    """Counters for the result cache."""

    hits: int = 0
    misses: int = 0
    l2_hits: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0


class ResultCache:
    """LRU + TTL cache of completed TaskResults with an optional Redis tier.

    L1 is an in-process ``OrderedDict`` in recency order: a hit moves the
    entry to the end, and inserting past ``max_entries`` evicts from the
    front. Entries older than ``ttl_seconds`` are misses. L2, when a
    RedisManager is supplied, stores JSON with SETEX and the same TTL; any
    Redis failure degrades to L1 only.

    Writes are last-wins. Two concurrent writes for the same fingerprint
    leave exactly one entry.

    Args:
        ttl_seconds: Entry lifetime.
        max_entries: L1 capacity.
        fingerprint_chars: Leading task characters included in the fingerprint.
        redis_manager: Optional Redis connection manager for the L2 tier.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 100,
        fingerprint_chars: int = 200,
        redis_manager: Optional[RedisManager] = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._fingerprint_chars = fingerprint_chars
        self._redis = redis_manager
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._stats = CacheStats()

    @staticmethod
    def fingerprint(task_id: str, task_type: object, text: str, chars: int = 200) -> str:
        """Stable SHA-256 fingerprint of task id, task type and leading text.

        Args:
            task_id: Caller task identifier.
            task_type: Task-type tag.
            text: Task text; only the first ``chars`` characters are used.
            chars: Number of leading characters to include.

        Returns:
            Hex digest.
        """
        raw = "\x1f".join((task_id, enum_value(task_type), text[:chars]))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def fingerprint_for(self, request: TaskRequest) -> str:
        return self.fingerprint(
            request.task_id, request.task_type, request.text, self._fingerprint_chars
        )

    def _redis_key(self, fingerprint: str) -> str:
        prefix = self._redis.key_prefix if self._redis is not None else ""
        return f"{prefix}result:{fingerprint}"

    @staticmethod
    def _as_hit(result: TaskResult) -> TaskResult:
        """Copy of a cached result attributed zero cost and zero latency."""
        metadata = result.metadata.model_copy(
            update={"cache_hit": True, "cost_usd": 0.0, "latency_ms": 0.0}
        )
        return result.model_copy(deep=True, update={"metadata": metadata})

    async def get(self, fingerprint: str) -> Optional[TaskResult]:
        """Look up a fingerprint in L1, then L2.

        Args:
            fingerprint: Key produced by ``fingerprint``.

        Returns:
            The cached result annotated as a cache hit, or None on a miss.
        """
        entry = self._entries.get(fingerprint)
        if entry is not None:
            if entry.is_expired(self._ttl_seconds):
                del self._entries[fingerprint]
                self._stats.expirations += 1
            else:
                self._entries.move_to_end(fingerprint)
                self._stats.hits += 1
                logger.debug(f"result_cache_hit: tier=l1, fingerprint={fingerprint[:12]}")
                return self._as_hit(entry.result)

        result = await self._get_l2(fingerprint)
        if result is not None:
            self._store_l1(fingerprint, result)
            self._stats.hits += 1
            self._stats.l2_hits += 1
            logger.debug(f"result_cache_hit: tier=l2, fingerprint={fingerprint[:12]}")
            return self._as_hit(result)

        self._stats.misses += 1
        return None

    async def put(self, fingerprint: str, result: TaskResult) -> None:
        """Store a result under a fingerprint in L1 and, when configured, L2."""
        self._store_l1(fingerprint, result)
        await self._put_l2(fingerprint, result)

    def _store_l1(self, fingerprint: str, result: TaskResult) -> None:
        self._entries[fingerprint] = _CacheEntry(result)
        self._entries.move_to_end(fingerprint)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug(f"result_cache_evicted: fingerprint={evicted[:12]}")

    async def _get_l2(self, fingerprint: str) -> Optional[TaskResult]:
        if self._redis is None:
            return None
        client = await self._redis.get_client()
        if client is None:
            return None

        key = self._redis_key(fingerprint)
        try:
            raw = await client.get(key)
        except (aioredis.RedisError, OSError) as e:
            logger.warning(f"result_cache_l2_get_error: key={key}, error={str(e)}")
            self._redis.mark_unavailable()
            return None

        if raw is None:
            return None
        try:
            return TaskResult.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"result_cache_l2_deserialize_error: key={key}, error={str(e)}")
            return None

    async def _put_l2(self, fingerprint: str, result: TaskResult) -> None:
        if self._redis is None:
            return
        client = await self._redis.get_client()
        if client is None:
            return

        key = self._redis_key(fingerprint)
        try:
            await client.setex(key, max(int(self._ttl_seconds), 1), result.model_dump_json())
        except (aioredis.RedisError, OSError) as e:
            logger.warning(f"result_cache_l2_set_error: key={key}, error={str(e)}")
            self._redis.mark_unavailable()

    async def invalidate(self, fingerprint: str) -> bool:
        """Remove a fingerprint from both tiers.

        Returns:
            True if an L1 entry was removed.
        """
        removed = self._entries.pop(fingerprint, None) is not None
        if self._redis is not None:
            client = await self._redis.get_client()
            if client is not None:
                try:
                    await client.delete(self._redis_key(fingerprint))
                except (aioredis.RedisError, OSError) as e:
                    logger.warning(f"result_cache_l2_delete_error: error={str(e)}")
        return removed

    async def clear(self) -> None:
        """Drop every L1 entry and every L2 key under this cache's prefix."""
        self._entries.clear()
        if self._redis is None:
            return
        client = await self._redis.get_client()
        if client is None:
            return
        try:
            keys = [key async for key in client.scan_iter(match=self._redis_key("*"))]
            if keys:
                await client.delete(*keys)
        except (aioredis.RedisError, OSError) as e:
            logger.warning(f"result_cache_l2_clear_error: error={str(e)}")

    def stats(self) -> CacheStats:
        """Snapshot of the cache counters."""
        return self._stats.model_copy(update={"size": len(self._entries)})

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries

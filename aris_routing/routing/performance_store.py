"""Concurrency-safe running statistics per (model, task type, complexity)."""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aris_routing.db.repositories.performance_repo import PerformanceRepository
from aris_routing.routing.models import (
    ComplexityClass,
    PerformanceObservation,
    PerformanceRecord,
    enum_value,
)

logger = logging.getLogger(__name__)

PerformanceKey = tuple[str, str, str]


def _key(model_id: str, task_type: str, complexity: ComplexityClass | str) -> PerformanceKey:
    return (model_id, enum_value(task_type), enum_value(complexity))


class PerformanceStore:
    """In-memory performance records with per-key locking.

    Memory is bounded by the number of distinct (model, task type,
    complexity) triples, never by the number of tasks processed. Each
    observation is merged under the lock for its key, so concurrent
    updates to the same triple are never lost.

    When a session factory is supplied, every observation is also written
    through to the ``ai_model_performance`` table. Persistence failures are
    logged and swallowed; the in-memory record is authoritative.

    Args:
        session_factory: Optional async session factory for durable write-through.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._records: dict[PerformanceKey, PerformanceRecord] = {}
        self._locks: dict[PerformanceKey, asyncio.Lock] = {}
        self._session_factory = session_factory

    def _lock_for(self, key: PerformanceKey) -> asyncio.Lock:
        # setdefault without an intervening await is atomic on the event loop
        return self._locks.setdefault(key, asyncio.Lock())

    async def record(self, observation: PerformanceObservation) -> PerformanceRecord:
        """Merge an observation into the running record for its triple.

        Args:
            observation: The outcome to record.

        Returns:
            The updated PerformanceRecord.
        """
        key = _key(observation.model_id, observation.task_type, observation.complexity)

        async with self._lock_for(key):
            current = self._records.get(key) or PerformanceRecord(
                model_id=observation.model_id,
                task_type=key[1],
                complexity=observation.complexity,
            )
            updated = current.merged(observation)
            self._records[key] = updated

        logger.info(
            f"performance_store_recorded: model={observation.model_id}, "
            f"task_type={key[1]}, complexity={key[2]}, success={observation.success}, "
            f"observations={updated.observations}, success_rate={updated.success_rate:.3f}"
        )

        if self._session_factory is not None:
            await self._persist(observation)

        return updated

    async def _persist(self, observation: PerformanceObservation) -> None:
        """Write one observation to the database, logging any failure."""
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                repo = PerformanceRepository(session)
                await repo.add_observation(observation)
                await session.commit()
        except Exception as e:
            logger.warning(
                f"performance_store_persist_failed: model={observation.model_id}, error={str(e)}"
            )

    def get(
        self,
        model_id: str,
        task_type: str,
        complexity: ComplexityClass | str,
    ) -> Optional[PerformanceRecord]:
        """Return the record for a triple, or None when nothing was observed."""
        return self._records.get(_key(model_id, task_type, complexity))

    def records_for_model(self, model_id: str) -> list[PerformanceRecord]:
        """Return every record for one model across task types and complexities."""
        return [r for k, r in self._records.items() if k[0] == model_id]

    def snapshot(self) -> list[PerformanceRecord]:
        """Return all records."""
        return list(self._records.values())

    async def warm_from(self, session: AsyncSession) -> int:
        """Populate records from aggregated history in the database.

        Existing in-memory records for the same triple are replaced by the
        database aggregate, which already includes them once persisted.

        Args:
            session: Database session used for the aggregate query.

        Returns:
            Number of records loaded.
        """
        repo = PerformanceRepository(session)
        aggregates = await repo.load_aggregates()
        for record in aggregates:
            key = _key(record.model_id, record.task_type, record.complexity)
            async with self._lock_for(key):
                self._records[key] = record

        logger.info(f"performance_store_warmed: records={len(aggregates)}")
        return len(aggregates)

    def __len__(self) -> int:
        return len(self._records)

"""Repository for model performance observations."""

import logging

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aris_routing.db.models.performance import ModelPerformanceORM
from aris_routing.db.repositories.base import BaseRepository
from aris_routing.routing.models import (
    ComplexityClass,
    PerformanceObservation,
    PerformanceRecord,
    enum_value,
)

logger = logging.getLogger(__name__)


class PerformanceRepository(BaseRepository[ModelPerformanceORM]):
    """Append-only access to ``ai_model_performance``.

    Args:
        session: AsyncSession for database operations.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ModelPerformanceORM)

    async def add_observation(self, observation: PerformanceObservation) -> ModelPerformanceORM:
        """Insert one observation row."""
        return await self.create(
            model_id=observation.model_id,
            task_type=enum_value(observation.task_type),
            complexity=enum_value(observation.complexity),
            success=observation.success,
            latency_ms=observation.latency_ms,
            user_rating=observation.rating,
        )

    async def load_aggregates(self) -> list[PerformanceRecord]:
        """Aggregate all observations into one record per triple.

        Rows whose complexity is not a known class are skipped.

        Returns:
            One PerformanceRecord per (model, task type, complexity).
        """
        orm = ModelPerformanceORM
        stmt = select(
            orm.model_id,
            orm.task_type,
            orm.complexity,
            func.count().label("observations"),
            func.avg(case((orm.success.is_(True), 1.0), else_=0.0)).label("success_rate"),
            func.avg(orm.latency_ms).label("mean_latency_ms"),
            func.count(orm.latency_ms).label("latency_samples"),
            func.avg(orm.user_rating).label("mean_rating"),
            func.count(orm.user_rating).label("satisfaction_samples"),
            func.max(orm.created_at).label("updated_at"),
        ).group_by(orm.model_id, orm.task_type, orm.complexity)

        result = await self._session.execute(stmt)

        records: list[PerformanceRecord] = []
        for row in result.all():
            try:
                complexity = ComplexityClass(row.complexity)
            except ValueError:
                logger.warning(
                    f"performance_repo_unknown_complexity: model={row.model_id}, "
                    f"complexity={row.complexity}"
                )
                continue

            mean_rating = float(row.mean_rating) if row.mean_rating is not None else None
            fields = {
                "model_id": row.model_id,
                "task_type": row.task_type,
                "complexity": complexity,
                "success_rate": float(row.success_rate or 0.0),
                "mean_latency_ms": float(row.mean_latency_ms or 0.0),
                "mean_satisfaction": (
                    PerformanceRecord.normalise_rating(mean_rating)  # type: ignore[arg-type]
                    if mean_rating is not None
                    else 0.0
                ),
                "observations": int(row.observations),
                "latency_samples": int(row.latency_samples),
                "satisfaction_samples": int(row.satisfaction_samples),
            }
            if row.updated_at is not None:
                fields["updated_at"] = row.updated_at
            records.append(PerformanceRecord(**fields))

        logger.info(f"performance_repo_aggregated: triples={len(records)}")
        return records

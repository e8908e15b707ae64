"""Model performance observation ORM model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from aris_routing.db.base import Base, UUIDMixin


class ModelPerformanceORM(Base, UUIDMixin):
    """One reported outcome for a (model, task type, complexity) triple.

    Rows are append-only; running statistics are rebuilt by aggregating
    them at startup. Maps to the ``ai_model_performance`` table.
    """

    __tablename__ = "ai_model_performance"
    __table_args__ = (
        Index("idx_ai_model_performance_triple", "model_id", "task_type", "complexity"),
    )

    model_id: Mapped[str] = mapped_column(Text, nullable=False)
    task_type: Mapped[str] = mapped_column(Text, nullable=False)
    complexity: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    latency_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    user_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

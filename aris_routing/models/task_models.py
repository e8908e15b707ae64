"""Pydantic models for task requests, results, and feedback."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aris_routing.errors import TaskInputError
from aris_routing.preferences.models import PreferenceDecision, TaskMetadata
from aris_routing.routing.models import (
    ComplexityScore,
    PerformanceObservation,
    RoutingDecision,
    SituationalFlags,
    TaskType,
)


class TaskRequest(BaseModel):
    """One unit of work submitted for AI-assisted processing. Immutable.

    Args:
        task_id: Caller identifier for the task (e.g. the email id).
        text: Opaque task text.
        task_type: Task-type tag.
        tenant_id: Organization the task belongs to.
        user_id: Caller identity.
        model_override: Optional caller-requested model id.
        use_learned_routing: Let performance history replace the static
            by-class model choice for this task.
        flags: Situational hints.
        metadata: Email metadata for rule evaluation.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(min_length=1)
    text: str = ""
    task_type: TaskType = TaskType.GENERAL
    tenant_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    model_override: Optional[str] = None
    use_learned_routing: bool = False
    flags: SituationalFlags = Field(default_factory=SituationalFlags)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResultStatus(str, Enum):
    """Terminal state of an orchestrated task."""

    COMPLETED = "completed"
    SUPPRESSED = "suppressed"
    ESCALATED = "escalated"


class ResultMetadata(BaseModel):
    """Accounting and observability data attached to every result."""

    model_used: Optional[str] = None
    work_units: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0
    cache_hit: bool = False
    retries: int = 0
    fallback_model: Optional[str] = None
    contributed_sources: list[str] = Field(default_factory=list)
    failed_sources: list[str] = Field(default_factory=list)
    trimmed_sources: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)


class TaskResult(BaseModel):
    """Result returned by the orchestrator entry point.

    A suppressed or escalated task is a successful invocation with
    ``should_process`` False, not an error.
    """

    task_id: str
    status: ResultStatus
    output: Optional[str] = None
    rationale: str = ""
    complexity: Optional[ComplexityScore] = None
    routing: Optional[RoutingDecision] = None
    preference: PreferenceDecision
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)

    @property
    def should_process(self) -> bool:
        """Whether automated processing was allowed for this task."""
        return self.preference.should_process


class FeedbackReport(PerformanceObservation):
    """Outcome report for a previously issued RoutingDecision.

    Args:
        suggested_model_id: The model the router originally suggested, when
            the caller overrode it. Triggers override learning.
    """

    suggested_model_id: Optional[str] = None


def parse_task_request(payload: dict[str, Any]) -> TaskRequest:
    """Validate a raw payload into a TaskRequest.

    Raises:
        TaskInputError: If the payload does not describe a valid task.
    """
    try:
        return TaskRequest.model_validate(payload)
    except ValidationError as e:
        raise TaskInputError(f"Invalid task request: {e}") from e

"""Pydantic models for task requests and results."""

from aris_routing.models.task_models import (
    FeedbackReport,
    ResultMetadata,
    ResultStatus,
    TaskRequest,
    TaskResult,
    parse_task_request,
)
from aris_routing.preferences.models import TaskMetadata
from aris_routing.routing.models import SituationalFlags, TaskType

__all__ = [
    "FeedbackReport",
    "ResultMetadata",
    "ResultStatus",
    "SituationalFlags",
    "TaskMetadata",
    "TaskRequest",
    "TaskResult",
    "TaskType",
    "parse_task_request",
]

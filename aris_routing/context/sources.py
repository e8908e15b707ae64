"""Context sources: named, independently failing providers of context fragments."""

import logging
from abc import ABC, abstractmethod
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from aris_routing.models.task_models import TaskRequest

logger = logging.getLogger(__name__)

SourceLoader = Callable[[TaskRequest], Awaitable[Any]]


class SourcePriority(IntEnum):
    """Merge order; lower values are kept first when the bundle is trimmed."""

    PRIMARY = 0
    SECONDARY = 1
    LEARNED = 2


class OutcomeStatus(str, Enum):
    """How a single source fetch settled."""

    OK = "ok"
    ABSENT = "absent"
    TIMEOUT = "timeout"
    ERROR = "error"


class ContextFragment(BaseModel):
    """One named piece of supporting information."""

    model_config = ConfigDict(frozen=True)

    source: str
    content: str
    priority: SourcePriority

    @property
    def size(self) -> int:
        return len(self.content)


class SourceOutcome(BaseModel):
    """Settled result of one source fetch: a fragment or an explicit absence.

    Args:
        source: Source name.
        status: How the fetch settled.
        fragment: The fragment, only when status is OK.
        error: Failure description for TIMEOUT and ERROR.
        elapsed_ms: Wall time spent on the fetch.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    status: OutcomeStatus
    fragment: Optional[ContextFragment] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK and self.fragment is not None

    @property
    def failed(self) -> bool:
        return self.status in (OutcomeStatus.TIMEOUT, OutcomeStatus.ERROR)


class ContextSource(ABC):
    """Base class for context sources.

    Subclasses implement ``fetch``. Returning None or an empty string means
    the source has nothing for this task. Raising is allowed; the assembler
    converts any exception into an ERROR outcome.

    Args:
        name: Unique source name.
        priority: Merge and trim tier.
        timeout_seconds: Per-source timeout, or None for the assembler default.
        required: Whether the task should escalate when this source is missing.
    """

    def __init__(
        self,
        name: str,
        priority: SourcePriority = SourcePriority.SECONDARY,
        timeout_seconds: Optional[float] = None,
        required: bool = False,
    ) -> None:
        self.name = name
        self.priority = priority
        self.timeout_seconds = timeout_seconds
        self.required = required

    @abstractmethod
    async def fetch(self, request: TaskRequest) -> Optional[str]:
        """Return this source's fragment text for a task, or None."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, priority={self.priority.name})"


def format_payload(value: Any, title: Optional[str] = None) -> Optional[str]:
    """Render a loader result as fragment text.

    Strings pass through, mappings become ``key: value`` lines, sequences
    become ``- item`` lines. Empty values render as None.
    """
    if value is None:
        return None

    if isinstance(value, str):
        body = value.strip()
    elif isinstance(value, Mapping):
        body = "\n".join(f"{k}: {v}" for k, v in value.items() if v not in (None, ""))
    elif isinstance(value, Sequence):
        body = "\n".join(f"- {item}" for item in value if item not in (None, ""))
    else:
        body = str(value).strip()

    if not body:
        return None
    return f"{title}:\n{body}" if title else body


class CallableContextSource(ContextSource):
    """Adapts an async loader callable into a ContextSource.

    Args:
        name: Unique source name.
        loader: Async callable receiving the TaskRequest.
        title: Optional heading prepended to the rendered fragment.
        priority: Merge and trim tier.
        timeout_seconds: Per-source timeout override.
        required: Whether the task should escalate when this source is missing.
    """

    def __init__(
        self,
        name: str,
        loader: SourceLoader,
        title: Optional[str] = None,
        priority: SourcePriority = SourcePriority.SECONDARY,
        timeout_seconds: Optional[float] = None,
        required: bool = False,
    ) -> None:
        super().__init__(name, priority, timeout_seconds, required)
        self._loader = loader
        self._title = title

    async def fetch(self, request: TaskRequest) -> Optional[str]:
        return format_payload(await self._loader(request), self._title)


def tenant_config_source(
    loader: SourceLoader, timeout_seconds: Optional[float] = None, required: bool = True
) -> CallableContextSource:
    """Tenant communication settings and business profile."""
    return CallableContextSource(
        "tenant_config",
        loader,
        title="TENANT CONFIGURATION",
        priority=SourcePriority.PRIMARY,
        timeout_seconds=timeout_seconds,
        required=required,
    )


def related_entity_source(
    loader: SourceLoader, timeout_seconds: Optional[float] = None, required: bool = False
) -> CallableContextSource:
    """Contact, company and order history related to the task."""
    return CallableContextSource(
        "related_entities",
        loader,
        title="RELATED RECORDS",
        priority=SourcePriority.PRIMARY,
        timeout_seconds=timeout_seconds,
        required=required,
    )


def prior_interactions_source(
    loader: SourceLoader, timeout_seconds: Optional[float] = None
) -> CallableContextSource:
    """Previous emails and conversations with the same party."""
    return CallableContextSource(
        "prior_interactions",
        loader,
        title="PREVIOUS INTERACTIONS",
        priority=SourcePriority.SECONDARY,
        timeout_seconds=timeout_seconds,
    )


def learned_patterns_source(
    loader: SourceLoader, timeout_seconds: Optional[float] = None
) -> CallableContextSource:
    """Writing patterns learned from the tenant's historical replies."""
    return CallableContextSource(
        "learned_patterns",
        loader,
        title="LEARNED PATTERNS",
        priority=SourcePriority.LEARNED,
        timeout_seconds=timeout_seconds,
    )

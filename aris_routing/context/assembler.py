"""Concurrent context assembly with per-source timeouts and priority trimming."""

import asyncio
import logging
import time
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from aris_routing.context.sources import (
    ContextFragment,
    ContextSource,
    OutcomeStatus,
    SourceOutcome,
)
from aris_routing.models.task_models import TaskRequest

logger = logging.getLogger(__name__)


class ContextBundle(BaseModel):
    """Fragments obtained for one task plus a record of what was missing.

    Built once per task; read-only afterwards.

    Args:
        fragments: Kept fragments in priority order.
        contributed: Sources whose fragment is in the bundle.
        failed: Sources that timed out or raised.
        absent: Sources that had nothing for this task.
        trimmed: Sources whose fragment was dropped to respect the size bound.
        missing_required: Required sources with no fragment in the bundle.
    """

    model_config = ConfigDict(frozen=True)

    fragments: tuple[ContextFragment, ...] = ()
    contributed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    absent: tuple[str, ...] = ()
    trimmed: tuple[str, ...] = ()
    missing_required: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.fragments

    @property
    def total_chars(self) -> int:
        return sum(f.size for f in self.fragments)

    def render(self, separator: str = "\n\n") -> str:
        """Join fragment contents in priority order."""
        return separator.join(f.content for f in self.fragments)


class ContextAssembler:
    """Fans out to every context source concurrently and merges what arrives.

    Each source is bounded by its own timeout and any failure becomes an
    explicit outcome, so one slow or broken source never fails the whole
    assembly. Runs exactly once per call; there are no internal retries.
    Cancelling the caller cancels every outstanding fetch.

    Args:
        sources: Context sources; declaration order breaks priority ties.
        default_timeout_seconds: Timeout for sources without their own.
        max_chars: Upper bound on total fragment size.
    """

    def __init__(
        self,
        sources: Sequence[ContextSource] = (),
        default_timeout_seconds: float = 2.0,
        max_chars: int = 12000,
    ) -> None:
        names = [s.name for s in sources]
        if len(names) != len(set(names)):
            raise ValueError(f"Context source names must be unique: {names}")
        self._sources: list[ContextSource] = list(sources)
        self._default_timeout = default_timeout_seconds
        self._max_chars = max_chars

    @property
    def sources(self) -> list[ContextSource]:
        return list(self._sources)

    async def _run(self, source: ContextSource, request: TaskRequest) -> SourceOutcome:
        """Fetch one source, converting every failure into an outcome."""
        timeout = source.timeout_seconds if source.timeout_seconds is not None else self._default_timeout
        start = time.monotonic()

        try:
            content = await asyncio.wait_for(source.fetch(request), timeout=timeout)
        except asyncio.TimeoutError:
            elapsed_ms = (time.monotonic() - start) * 1000.0
            logger.warning(
                f"context_source_timeout: source={source.name}, task_id={request.task_id}, "
                f"timeout_s={timeout}"
            )
            return SourceOutcome(
                source=source.name,
                status=OutcomeStatus.TIMEOUT,
                error=f"timed out after {timeout}s",
                elapsed_ms=elapsed_ms,
            )
        except Exception as e:
            elapsed_ms = (time.monotonic() - start) * 1000.0
            logger.warning(
                f"context_source_failed: source={source.name}, task_id={request.task_id}, "
                f"error={type(e).__name__}: {str(e)}"
            )
            return SourceOutcome(
                source=source.name,
                status=OutcomeStatus.ERROR,
                error=f"{type(e).__name__}: {str(e)}",
                elapsed_ms=elapsed_ms,
            )

        elapsed_ms = (time.monotonic() - start) * 1000.0
        if not content:
            return SourceOutcome(source=source.name, status=OutcomeStatus.ABSENT, elapsed_ms=elapsed_ms)

        return SourceOutcome(
            source=source.name,
            status=OutcomeStatus.OK,
            fragment=ContextFragment(source=source.name, content=content, priority=source.priority),
            elapsed_ms=elapsed_ms,
        )

    async def gather_outcomes(self, request: TaskRequest) -> list[SourceOutcome]:
        """Run every source concurrently and return outcomes in declaration order."""
        if not self._sources:
            return []
        return list(await asyncio.gather(*(self._run(s, request) for s in self._sources)))

    async def assemble(self, request: TaskRequest) -> ContextBundle:
        """Build the context bundle for one task.

        Args:
            request: The task being processed.

        Returns:
            ContextBundle; empty but valid when every source fails.
        """
        outcomes = await self.gather_outcomes(request)
        bundle = self.merge(outcomes)

        logger.info(
            f"context_assembled: task_id={request.task_id}, contributed={len(bundle.contributed)}, "
            f"failed={len(bundle.failed)}, trimmed={len(bundle.trimmed)}, chars={bundle.total_chars}"
        )
        return bundle

    def merge(self, outcomes: Sequence[SourceOutcome], max_chars: Optional[int] = None) -> ContextBundle:
        """Order fragments by priority and trim the lowest-priority ones to fit.

        Args:
            outcomes: Outcomes in source declaration order.
            max_chars: Size bound, defaulting to the assembler's.

        Returns:
            The merged ContextBundle.
        """
        limit = self._max_chars if max_chars is None else max_chars
        order = {s.name: i for i, s in enumerate(self._sources)}

        fragments = sorted(
            (o.fragment for o in outcomes if o.ok and o.fragment is not None),
            key=lambda f: (f.priority, order.get(f.source, len(order))),
        )

        trimmed: list[str] = []
        total = sum(f.size for f in fragments)
        while fragments and total > limit:
            dropped = fragments.pop()
            total -= dropped.size
            trimmed.append(dropped.source)

        kept = {f.source for f in fragments}
        missing_required = tuple(s.name for s in self._sources if s.required and s.name not in kept)

        return ContextBundle(
            fragments=tuple(fragments),
            contributed=tuple(f.source for f in fragments),
            failed=tuple(o.source for o in outcomes if o.failed),
            absent=tuple(o.source for o in outcomes if o.status is OutcomeStatus.ABSENT),
            trimmed=tuple(trimmed),
            missing_required=missing_required,
        )

"""Single entry point: gate, route, assemble context, complete, cache, learn."""

import asyncio
import logging
import time
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aris_routing.cache.client import RedisManager
from aris_routing.cache.result_cache import ResultCache
from aris_routing.completion.models import ChatMessage, CompletionRequest, CompletionResponse
from aris_routing.completion.openrouter import OpenRouterCompletionProvider
from aris_routing.completion.provider import CompletionProvider
from aris_routing.context.assembler import ContextAssembler, ContextBundle
from aris_routing.context.sources import ContextSource
from aris_routing.db.engine import get_engine, get_session_factory
from aris_routing.errors import (
    PermanentProviderError,
    ProviderError,
    TaskInputError,
    TaskTimeoutError,
    TransientProviderError,
)
from aris_routing.models.task_models import (
    FeedbackReport,
    ResultMetadata,
    ResultStatus,
    TaskRequest,
    TaskResult,
)
from aris_routing.preferences.gate import PreferenceGate
from aris_routing.preferences.models import PreferenceDecision
from aris_routing.preferences.provider import (
    CachedPreferenceProvider,
    DatabasePreferenceProvider,
    InMemoryPreferenceProvider,
    PreferenceProvider,
)
from aris_routing.routing.complexity_analyzer import TaskComplexityAnalyzer
from aris_routing.routing.model_registry import ModelRegistry
from aris_routing.routing.model_router import ModelRouter, estimate_cost, estimate_work_units
from aris_routing.routing.models import (
    ComplexityScore,
    ModelProfile,
    PerformanceObservation,
    RoutingDecision,
    enum_value,
)
from aris_routing.routing.performance_store import PerformanceStore
from aris_routing.settings import Settings

logger = logging.getLogger(__name__)


def build_messages(
    request: TaskRequest,
    bundle: ContextBundle,
    preference: PreferenceDecision,
) -> list[ChatMessage]:
    """Assemble the chat messages for one completion call."""
    system_parts = [f"Task type: {enum_value(request.task_type)}."]
    if preference.priority.value != "medium":
        system_parts.append(f"Priority: {preference.priority.value}.")
    if preference.instructions:
        system_parts.append("Instructions:\n" + "\n".join(f"- {i}" for i in preference.instructions))
    if not bundle.is_empty:
        system_parts.append("Context:\n" + bundle.render())

    return [
        ChatMessage(role="system", content="\n\n".join(system_parts)),
        ChatMessage(role="user", content=request.text),
    ]


class TaskOrchestrator:
    """Sequences one task through the routing engine.

    Order: validate, preference gate, cache lookup, complexity analysis,
    model routing, context assembly, required-context check, completion
    (one retry on a transient failure), cache write, performance update.

    Suppressed and escalated tasks are returned as results with
    ``should_process`` False; only input errors, provider errors and
    caller timeouts raise.

    Args:
        analyzer: Complexity analyzer.
        router: Model router (owns the registry and performance store).
        gate: Preference gate.
        assembler: Context assembler.
        completion: Completion provider.
        cache: Optional result cache; lookups still require use_cache=True.
        max_task_chars: Longest accepted task text.
        enable_retry: Retry transient provider failures once.
        enable_learned_routing: Allow requests to opt in to learned routing.
        escalate_on_missing_required_context: Escalate when a required source is missing.
        completion_temperature: Sampling temperature for completion calls.
        completion_max_tokens: Output ceiling for completion calls.
    """

    def __init__(
        self,
        analyzer: TaskComplexityAnalyzer,
        router: ModelRouter,
        gate: PreferenceGate,
        assembler: ContextAssembler,
        completion: CompletionProvider,
        cache: Optional[ResultCache] = None,
        max_task_chars: int = 50000,
        enable_retry: bool = True,
        enable_learned_routing: bool = True,
        escalate_on_missing_required_context: bool = True,
        completion_temperature: float = 0.3,
        completion_max_tokens: int = 1500,
    ) -> None:
        self._analyzer = analyzer
        self._router = router
        self._gate = gate
        self._assembler = assembler
        self._completion = completion
        self._cache = cache
        self._max_task_chars = max_task_chars
        self._enable_retry = enable_retry
        self._enable_learned_routing = enable_learned_routing
        self._escalate_on_missing_required = escalate_on_missing_required_context
        self._temperature = completion_temperature
        self._max_tokens = completion_max_tokens
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._redis: Optional[RedisManager] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sources: Sequence[ContextSource] = (),
        completion: Optional[CompletionProvider] = None,
        preference_provider: Optional[PreferenceProvider] = None,
    ) -> "TaskOrchestrator":
        """Wire every component from settings.

        Without a database, preferences come from ``preference_provider`` or
        an empty in-memory provider (every task escalates).

        Args:
            settings: Loaded settings.
            sources: Context sources for the assembler.
            completion: Completion provider; defaults to the OpenRouter client.
            preference_provider: Preference provider; defaults to the database.

        Returns:
            Configured TaskOrchestrator.
        """
        flags = settings.feature_flags

        session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        if settings.database_url:
            engine = get_engine(
                settings.database_url,
                pool_size=settings.database_pool_size,
                pool_overflow=settings.database_pool_overflow,
            )
            session_factory = get_session_factory(engine)

        registry = ModelRegistry.from_path(settings.model_profiles_path)
        store = PerformanceStore(
            session_factory if flags.enable_performance_persistence else None
        )
        router = ModelRouter(registry, store)

        if preference_provider is None:
            if session_factory is not None:
                preference_provider = DatabasePreferenceProvider(session_factory)
            else:
                logger.warning("orchestrator_no_preference_store: every task will escalate")
                preference_provider = InMemoryPreferenceProvider()
        gate = PreferenceGate(
            CachedPreferenceProvider(preference_provider, settings.preference_cache_ttl_seconds)
        )

        assembler = ContextAssembler(
            sources,
            default_timeout_seconds=settings.context_source_timeout_seconds,
            max_chars=settings.context_max_chars,
        )

        redis_manager: Optional[RedisManager] = None
        if flags.enable_redis_cache and settings.redis_url:
            redis_manager = RedisManager(settings.redis_url, settings.redis_key_prefix)

        cache: Optional[ResultCache] = None
        if flags.enable_result_cache:
            cache = ResultCache(
                ttl_seconds=settings.result_cache_ttl_seconds,
                max_entries=settings.result_cache_max_entries,
                fingerprint_chars=settings.result_cache_fingerprint_chars,
                redis_manager=redis_manager,
            )

        if completion is None:
            completion = OpenRouterCompletionProvider(
                api_key=settings.llm_api_key,
                base_url=settings.llm_base_url,
                timeout_seconds=settings.completion_timeout_seconds,
            )

        orchestrator = cls(
            analyzer=TaskComplexityAnalyzer(),
            router=router,
            gate=gate,
            assembler=assembler,
            completion=completion,
            cache=cache,
            max_task_chars=settings.max_task_chars,
            enable_retry=flags.enable_provider_retry,
            enable_learned_routing=flags.enable_learned_routing,
            escalate_on_missing_required_context=flags.escalate_on_missing_required_context,
            completion_temperature=settings.completion_temperature,
            completion_max_tokens=settings.completion_max_tokens,
        )
        orchestrator._session_factory = session_factory
        orchestrator._redis = redis_manager
        return orchestrator

    @property
    def router(self) -> ModelRouter:
        return self._router

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    async def startup(self) -> None:
        """Warm the performance store from persisted history, when a database is configured."""
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                await self._router.store.warm_from(session)
        except Exception as e:
            logger.warning(f"orchestrator_warm_failed: error={str(e)}")

    async def aclose(self) -> None:
        """Release HTTP and Redis connections."""
        closer = getattr(self._completion, "aclose", None)
        if closer is not None:
            await closer()
        if self._redis is not None:
            await self._redis.close()

    def _validate(self, request: TaskRequest) -> None:
        if len(request.text) > self._max_task_chars:
            raise TaskInputError(
                f"Task text is {len(request.text)} characters; limit is {self._max_task_chars}"
            )

    def analyze(self, request: TaskRequest) -> tuple[ComplexityScore, RoutingDecision]:
        """Score and route a task without gating, context, or a completion call.

        Raises:
            TaskInputError: If the task text exceeds the configured limit.
        """
        self._validate(request)
        score = self._analyzer.analyze(request.text, request.flags)
        decision = self._router.route(
            score,
            task_type=request.task_type,
            flags=request.flags,
            override=request.model_override,
            input_chars=len(request.text),
            use_learning=self._enable_learned_routing and request.use_learned_routing,
        )
        return score, decision

    async def process(
        self,
        request: TaskRequest,
        *,
        use_cache: bool = False,
        timeout: Optional[float] = None,
    ) -> TaskResult:
        """Process one task end to end.

        Args:
            request: The task.
            use_cache: Opt in to the result cache for this call.
            timeout: Optional deadline in seconds. On expiry the context
                fan-out and any in-flight completion call are cancelled.

        Returns:
            TaskResult with status completed, suppressed, or escalated.

        Raises:
            TaskInputError: If the request is malformed.
            ProviderError: If the completion provider fails permanently, or
                transiently after the retry.
            TaskTimeoutError: If ``timeout`` elapses.
        """
        if timeout is None:
            return await self._process(request, use_cache)

        try:
            return await asyncio.wait_for(self._process(request, use_cache), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"orchestrator_timeout: task_id={request.task_id}, timeout_s={timeout}")
            raise TaskTimeoutError(
                f"Task {request.task_id} did not complete within {timeout}s"
            ) from e

    async def _process(self, request: TaskRequest, use_cache: bool) -> TaskResult:
        self._validate(request)

        preference = await self._gate.evaluate(
            request.tenant_id, request.user_id, request.metadata, request.task_type
        )
        if not preference.should_process:
            status = ResultStatus.SUPPRESSED if preference.suppressed else ResultStatus.ESCALATED
            logger.info(
                f"orchestrator_gated: task_id={request.task_id}, status={status.value}, "
                f"rationale={preference.rationale}"
            )
            return TaskResult(
                task_id=request.task_id,
                status=status,
                rationale=preference.rationale,
                preference=preference,
            )

        fingerprint: Optional[str] = None
        if use_cache and self._cache is not None:
            fingerprint = self._cache.fingerprint_for(request)
            cached = await self._cache.get(fingerprint)
            if cached is not None:
                logger.info(f"orchestrator_cache_hit: task_id={request.task_id}")
                return cached.model_copy(update={"preference": preference})

        score, decision = self.analyze(request)

        bundle = await self._assembler.assemble(request)
        metadata = ResultMetadata(
            model_used=decision.model_id,
            work_units=decision.estimated_work_units,
            contributed_sources=list(bundle.contributed),
            failed_sources=list(bundle.failed),
            trimmed_sources=list(bundle.trimmed),
        )

        if bundle.missing_required and self._escalate_on_missing_required:
            missing = ", ".join(bundle.missing_required)
            escalated = preference.model_copy(
                update={
                    "should_process": False,
                    "should_escalate": True,
                    "rationale": f"{preference.rationale}; required context unavailable: {missing}",
                }
            )
            logger.info(
                f"orchestrator_escalated_missing_context: task_id={request.task_id}, missing={missing}"
            )
            return TaskResult(
                task_id=request.task_id,
                status=ResultStatus.ESCALATED,
                rationale=escalated.rationale,
                complexity=score,
                routing=decision,
                preference=escalated,
                metadata=metadata.model_copy(update={"model_used": None, "work_units": 0}),
            )

        completion_request = CompletionRequest(
            model=decision.provider_model,
            messages=build_messages(request, bundle, preference),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        start = time.monotonic()
        response, profile, retries = await self._complete_with_retry(
            request, decision, completion_request
        )
        latency_ms = (time.monotonic() - start) * 1000.0

        work_units = estimate_work_units(len(request.text), decision.complexity)
        cost = (
            response.usage.cost_usd
            if response.usage.cost_usd is not None
            else estimate_cost(work_units, profile)
        )
        fallback = profile.id if profile.id != decision.model_id else None

        notes = list(metadata.notes)
        if fallback is not None:
            notes.append(f"Downgraded from {decision.model_id} to {fallback} after transient failure")

        result = TaskResult(
            task_id=request.task_id,
            status=ResultStatus.COMPLETED,
            output=response.text,
            rationale=preference.rationale,
            complexity=score,
            routing=decision,
            preference=preference,
            metadata=metadata.model_copy(
                update={
                    "model_used": profile.id,
                    "work_units": work_units,
                    "cost_usd": cost,
                    "latency_ms": latency_ms,
                    "retries": retries,
                    "fallback_model": fallback,
                    "notes": notes,
                }
            ),
        )

        if fingerprint is not None and self._cache is not None:
            await self._cache.put(fingerprint, result)

        await self._router.store.record(
            PerformanceObservation(
                model_id=profile.id,
                task_type=enum_value(request.task_type),
                complexity=decision.complexity,
                success=True,
                latency_ms=latency_ms,
            )
        )

        logger.info(
            f"orchestrator_completed: task_id={request.task_id}, model={profile.id}, "
            f"complexity={decision.complexity.value}, cost={cost:.6f}, "
            f"latency_ms={latency_ms:.0f}, retries={retries}"
        )
        return result

    def _fallback_profile(self, request: TaskRequest, decision: RoutingDecision) -> ModelProfile:
        """Next cheaper model suitable for the class that can hold the input, or the same model."""
        current = self._router.registry.require(decision.model_id)
        cheaper = [
            p
            for p in self._router.candidates(decision.complexity, len(request.text))
            if p.cost_per_1k_units < current.cost_per_1k_units
        ]
        if not cheaper:
            return current
        return max(cheaper, key=lambda p: (p.cost_per_1k_units, p.id))

    async def _complete_with_retry(
        self,
        request: TaskRequest,
        decision: RoutingDecision,
        completion_request: CompletionRequest,
    ) -> tuple[CompletionResponse, ModelProfile, int]:
        """Call the provider, retrying once on a transient failure.

        Returns:
            (response, profile that produced it, retry count).
        """
        profile = self._router.registry.require(decision.model_id)
        try:
            return await self._completion.complete(completion_request), profile, 0
        except TransientProviderError as e:
            await self._record_failure(request, decision, profile)
            if not self._enable_retry:
                raise
            logger.warning(
                f"orchestrator_retrying: task_id={request.task_id}, model={profile.id}, error={str(e)}"
            )
        except PermanentProviderError:
            await self._record_failure(request, decision, profile)
            raise

        fallback = self._fallback_profile(request, decision)
        retry_request = completion_request.model_copy(update={"model": fallback.provider_model})
        try:
            return await self._completion.complete(retry_request), fallback, 1
        except ProviderError:
            await self._record_failure(request, decision, fallback)
            raise

    async def _record_failure(
        self, request: TaskRequest, decision: RoutingDecision, profile: ModelProfile
    ) -> None:
        await self._router.store.record(
            PerformanceObservation(
                model_id=profile.id,
                task_type=enum_value(request.task_type),
                complexity=decision.complexity,
                success=False,
            )
        )

    async def record_feedback(self, report: FeedbackReport) -> None:
        """Feed an observed outcome back into the performance store.

        When the report names a different originally suggested model, the
        override learning loop runs instead of a plain observation.

        Args:
            report: Outcome for a previously issued RoutingDecision.
        """
        if report.suggested_model_id and report.suggested_model_id != report.model_id:
            await self._router.learn_from_override(
                original_model=report.suggested_model_id,
                selected_model=report.model_id,
                task_type=report.task_type,
                complexity=report.complexity,
                success=report.success,
                latency_ms=report.latency_ms,
                rating=report.rating,
            )
            return

        await self._router.store.record(
            PerformanceObservation.model_validate(
                report.model_dump(exclude={"suggested_model_id"})
            )
        )
        logger.info(
            f"orchestrator_feedback_recorded: model={report.model_id}, "
            f"task_type={report.task_type}, success={report.success}"
        )

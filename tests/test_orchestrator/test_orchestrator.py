"""Tests for TaskOrchestrator end-to-end sequencing."""

from typing import Sequence

import pytest

from aris_routing.cache.result_cache import ResultCache
from aris_routing.context.assembler import ContextAssembler
from aris_routing.context.sources import ContextSource, tenant_config_source
from aris_routing.errors import (
    PermanentProviderError,
    TaskInputError,
    TaskTimeoutError,
    TransientProviderError,
)
from aris_routing.models.task_models import FeedbackReport, ResultStatus, TaskRequest
from aris_routing.orchestrator import TaskOrchestrator, build_messages
from aris_routing.preferences.gate import PreferenceGate
from aris_routing.preferences.models import PreferenceRule, RuleEffect, TaskMetadata, TenantPreferences
from aris_routing.preferences.provider import InMemoryPreferenceProvider
from aris_routing.routing.complexity_analyzer import TaskComplexityAnalyzer
from aris_routing.routing.model_registry import ModelRegistry
from aris_routing.routing.model_router import COMPLEX_REASON, ModelRouter, estimate_work_units
from aris_routing.routing.models import (
    ComplexityClass,
    ComplexityScore,
    PerformanceObservation,
    RoutingRule,
    SituationalFlags,
)
from aris_routing.routing.performance_store import PerformanceStore
from aris_routing.settings import Settings
from aris_routing.completion.models import CompletionResponse, CompletionUsage
from aris_routing.completion.provider import CompletionProvider


def _orchestrator(
    completion: CompletionProvider,
    provider: InMemoryPreferenceProvider,
    sources: Sequence[ContextSource] = (),
    **kwargs,
) -> TaskOrchestrator:
    return TaskOrchestrator(
        analyzer=TaskComplexityAnalyzer(),
        router=ModelRouter(ModelRegistry(), PerformanceStore()),
        gate=PreferenceGate(provider),
        assembler=ContextAssembler(sources, default_timeout_seconds=0.5),
        completion=completion,
        **kwargs,
    )


def _response(cost: float) -> CompletionResponse:
    return CompletionResponse(
        text="Generated reply",
        model="fake",
        usage=CompletionUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15, cost_usd=cost),
    )


def _request(text: str = "Hello there", **kwargs) -> TaskRequest:
    return TaskRequest(task_id="email-1", text=text, tenant_id="t1", user_id="u1", **kwargs)


def _complex_override_request() -> TaskRequest:
    return _request(
        "Where is the shipment for order 42?",
        model_override="gpt-4",
        flags=SituationalFlags(requires_external_lookup=True),
    )


class TestCompletedPath:
    """Tasks that pass the gate and complete."""

    @pytest.mark.unit
    async def test_completes_with_routed_model(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)

        result = await orchestrator.process(_request())

        assert result.status == ResultStatus.COMPLETED
        assert result.should_process is True
        assert result.output == "Generated reply"
        assert result.routing is not None
        assert result.metadata.model_used == result.routing.model_id
        assert result.metadata.retries == 0
        assert result.metadata.fallback_model is None
        assert result.metadata.work_units == estimate_work_units(
            len("Hello there"), result.routing.complexity
        )
        assert completion.requests[0].model == result.routing.provider_model

    @pytest.mark.unit
    async def test_success_recorded_in_store(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)

        result = await orchestrator.process(_request())

        record = orchestrator.router.store.get(
            result.metadata.model_used, "general", result.routing.complexity
        )
        assert record is not None
        assert record.success_rate == pytest.approx(1.0)
        assert record.latency_samples == 1

    @pytest.mark.unit
    async def test_repeated_complex_task_keeps_capability_route(
        self, completion, preference_provider
    ) -> None:
        orchestrator = _orchestrator(completion, preference_provider)
        request = _request("urgent: order stuck, need refund now")

        first = await orchestrator.process(request)
        second = await orchestrator.process(request)

        for result in (first, second):
            assert result.routing.complexity == ComplexityClass.COMPLEX
            assert result.routing.model_id == "gpt-4o"
            assert result.routing.rule == RoutingRule.COMPLEXITY
            assert COMPLEX_REASON in result.routing.reasoning

    @pytest.mark.unit
    async def test_learned_routing_is_per_request_opt_in(
        self, completion, preference_provider
    ) -> None:
        orchestrator = _orchestrator(completion, preference_provider)
        await orchestrator.router.store.record(
            PerformanceObservation(
                model_id="gpt-4o",
                task_type="general",
                complexity=ComplexityClass.COMPLEX,
                success=False,
            )
        )

        default = await orchestrator.process(_request("urgent: order stuck, need refund now"))
        opted_in = await orchestrator.process(
            _request("urgent: order stuck, need refund now", use_learned_routing=True)
        )

        assert default.routing.model_id == "gpt-4o"
        assert opted_in.routing.model_id == "gpt-4"
        assert opted_in.routing.rule == RoutingRule.LEARNED
        assert COMPLEX_REASON in opted_in.routing.reasoning

    @pytest.mark.unit
    async def test_opt_in_ignored_when_learning_disabled(
        self, completion, preference_provider
    ) -> None:
        orchestrator = _orchestrator(completion, preference_provider, enable_learned_routing=False)
        await orchestrator.router.store.record(
            PerformanceObservation(
                model_id="gpt-4o",
                task_type="general",
                complexity=ComplexityClass.COMPLEX,
                success=False,
            )
        )

        result = await orchestrator.process(
            _request("urgent: order stuck, need refund now", use_learned_routing=True)
        )

        assert result.routing.model_id == "gpt-4o"
        assert result.routing.rule == RoutingRule.COMPLEXITY

    @pytest.mark.unit
    async def test_provider_cost_preferred_over_estimate(self, make_completion, preference_provider) -> None:
        completion = make_completion([_response(cost=0.0123)])
        orchestrator = _orchestrator(completion, preference_provider)

        result = await orchestrator.process(_request())

        assert result.metadata.cost_usd == pytest.approx(0.0123)

    @pytest.mark.unit
    async def test_instructions_and_context_sent(self, completion, preference_provider) -> None:
        async def tenant_loader(request: TaskRequest) -> dict:
            return {"company": "ACME GmbH"}

        orchestrator = _orchestrator(
            completion, preference_provider, sources=[tenant_config_source(tenant_loader)]
        )

        result = await orchestrator.process(_request())

        system, user = completion.requests[0].messages
        assert system.role == "system"
        assert "- Reply in English." in system.content
        assert "company: ACME GmbH" in system.content
        assert user.content == "Hello there"
        assert result.metadata.contributed_sources == ["tenant_config"]


class TestGatedPaths:
    """Suppressed and escalated tasks never reach the provider."""

    @pytest.mark.unit
    async def test_suppressed_by_exclusion(self, completion) -> None:
        provider = InMemoryPreferenceProvider(
            [
                TenantPreferences(
                    tenant_id="t1",
                    exclusion_rules=(
                        PreferenceRule(
                            name="Newsletters",
                            condition="subject_contains(['unsubscribe'])",
                            effect=RuleEffect.SUPPRESS,
                        ),
                    ),
                )
            ]
        )
        orchestrator = _orchestrator(completion, provider)

        result = await orchestrator.process(
            _request(metadata=TaskMetadata(subject="Click here to unsubscribe"))
        )

        assert result.status == ResultStatus.SUPPRESSED
        assert result.should_process is False
        assert result.output is None
        assert result.rationale.startswith("Excluded by rule: Newsletters")
        assert completion.requests == []

    @pytest.mark.unit
    async def test_unconfigured_tenant_escalates(self, completion) -> None:
        orchestrator = _orchestrator(completion, InMemoryPreferenceProvider())

        result = await orchestrator.process(_request())

        assert result.status == ResultStatus.ESCALATED
        assert result.preference.should_escalate is True
        assert completion.requests == []

    @pytest.mark.unit
    async def test_missing_required_context_escalates(self, completion, preference_provider) -> None:
        async def broken_loader(request: TaskRequest) -> dict:
            raise ConnectionError("tenant service down")

        orchestrator = _orchestrator(
            completion, preference_provider, sources=[tenant_config_source(broken_loader)]
        )

        result = await orchestrator.process(_request())

        assert result.status == ResultStatus.ESCALATED
        assert result.should_process is False
        assert result.routing is not None
        assert "required context unavailable: tenant_config" in result.rationale
        assert result.metadata.failed_sources == ["tenant_config"]
        assert result.metadata.model_used is None
        assert completion.requests == []

    @pytest.mark.unit
    async def test_missing_required_context_tolerated_when_disabled(
        self, completion, preference_provider
    ) -> None:
        async def broken_loader(request: TaskRequest) -> dict:
            raise ConnectionError("tenant service down")

        orchestrator = _orchestrator(
            completion,
            preference_provider,
            sources=[tenant_config_source(broken_loader)],
            escalate_on_missing_required_context=False,
        )

        result = await orchestrator.process(_request())

        assert result.status == ResultStatus.COMPLETED
        assert result.metadata.failed_sources == ["tenant_config"]


class TestResultCache:
    """Opt-in result caching."""

    @pytest.mark.unit
    async def test_second_call_is_cache_hit(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider, cache=ResultCache())

        first = await orchestrator.process(_request(), use_cache=True)
        second = await orchestrator.process(_request(), use_cache=True)

        assert len(completion.requests) == 1
        assert first.metadata.cache_hit is False
        assert second.metadata.cache_hit is True
        assert second.metadata.cost_usd == 0.0
        assert second.output == first.output

    @pytest.mark.unit
    async def test_cache_not_used_without_opt_in(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider, cache=ResultCache())

        await orchestrator.process(_request())
        await orchestrator.process(_request())

        assert len(completion.requests) == 2
        assert len(orchestrator.cache) == 0

    @pytest.mark.unit
    async def test_gate_runs_before_cache(self, completion, preference_provider) -> None:
        cache = ResultCache()
        orchestrator = _orchestrator(completion, preference_provider, cache=cache)
        await orchestrator.process(_request(), use_cache=True)

        preference_provider.put(TenantPreferences(tenant_id="t1", ai_enabled=False))
        result = await orchestrator.process(_request(), use_cache=True)

        assert result.status == ResultStatus.ESCALATED
        assert cache.stats().hits == 0


class TestProviderFailures:
    """Retry, downgrade and error propagation."""

    @pytest.mark.unit
    async def test_transient_failure_downgrades_once(self, make_completion, preference_provider) -> None:
        completion = make_completion([TransientProviderError("rate limited", status_code=429)])
        orchestrator = _orchestrator(completion, preference_provider)

        result = await orchestrator.process(_complex_override_request())

        assert [r.model for r in completion.requests] == ["openai/gpt-4", "openai/gpt-4o"]
        assert result.status == ResultStatus.COMPLETED
        assert result.routing.model_id == "gpt-4"
        assert result.metadata.model_used == "gpt-4o"
        assert result.metadata.fallback_model == "gpt-4o"
        assert result.metadata.retries == 1
        assert "Downgraded from gpt-4 to gpt-4o after transient failure" in result.metadata.notes

        store = orchestrator.router.store
        assert store.get("gpt-4", "general", ComplexityClass.COMPLEX).success_rate == 0.0
        assert store.get("gpt-4o", "general", ComplexityClass.COMPLEX).success_rate == 1.0

    @pytest.mark.unit
    async def test_retry_on_cheapest_model_reuses_it(self, make_completion, preference_provider) -> None:
        completion = make_completion([TransientProviderError("timeout")])
        orchestrator = _orchestrator(completion, preference_provider)

        result = await orchestrator.process(_request())

        assert len(completion.requests) == 2
        assert completion.requests[0].model == completion.requests[1].model
        assert result.metadata.retries == 1
        assert result.metadata.fallback_model is None

    @pytest.mark.unit
    def test_fallback_skips_models_too_small_for_input(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)
        standard = ComplexityScore(pattern=5.0, linguistic=5.0, situational=5.0)
        short_request = _request("x" * 100)
        long_request = _request("x" * 20000)

        short = orchestrator.router.route(standard, override="gpt-4o", input_chars=100)
        long = orchestrator.router.route(standard, override="gpt-4o", input_chars=20000)

        assert orchestrator._fallback_profile(short_request, short).id == "gpt-3.5-turbo"
        assert orchestrator._fallback_profile(long_request, long).id == "gpt-4o-mini"

    @pytest.mark.unit
    async def test_second_transient_failure_raises(self, make_completion, preference_provider) -> None:
        completion = make_completion(
            [TransientProviderError("first"), TransientProviderError("second")]
        )
        orchestrator = _orchestrator(completion, preference_provider)

        with pytest.raises(TransientProviderError, match="second"):
            await orchestrator.process(_complex_override_request())

        store = orchestrator.router.store
        assert store.get("gpt-4", "general", ComplexityClass.COMPLEX).success_rate == 0.0
        assert store.get("gpt-4o", "general", ComplexityClass.COMPLEX).success_rate == 0.0

    @pytest.mark.unit
    async def test_retry_disabled(self, make_completion, preference_provider) -> None:
        completion = make_completion([TransientProviderError("503", status_code=503)])
        orchestrator = _orchestrator(completion, preference_provider, enable_retry=False)

        with pytest.raises(TransientProviderError):
            await orchestrator.process(_request())

        assert len(completion.requests) == 1

    @pytest.mark.unit
    async def test_permanent_failure_not_retried(self, make_completion, preference_provider) -> None:
        completion = make_completion([PermanentProviderError("bad request", status_code=400)])
        orchestrator = _orchestrator(completion, preference_provider)

        with pytest.raises(PermanentProviderError):
            await orchestrator.process(_complex_override_request())

        assert len(completion.requests) == 1
        record = orchestrator.router.store.get("gpt-4", "general", ComplexityClass.COMPLEX)
        assert record is not None
        assert record.success_rate == 0.0


class TestValidationAndTimeout:
    """Input validation and caller deadlines."""

    @pytest.mark.unit
    async def test_oversized_text_rejected(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider, max_task_chars=10)

        with pytest.raises(TaskInputError):
            await orchestrator.process(_request("this text is too long"))

        assert completion.requests == []

    @pytest.mark.unit
    async def test_timeout_cancels_processing(self, make_completion, preference_provider) -> None:
        completion = make_completion(delay=1.0)
        orchestrator = _orchestrator(completion, preference_provider)

        with pytest.raises(TaskTimeoutError):
            await orchestrator.process(_request(), timeout=0.05)

        assert len(orchestrator.router.store) == 0


class TestAnalyze:
    """Dry-run scoring and routing."""

    @pytest.mark.unit
    def test_analyze_makes_no_calls(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)

        score, decision = orchestrator.analyze(_complex_override_request())

        assert 0.0 <= score.composite <= 10.0
        assert decision.model_id == "gpt-4"
        assert completion.requests == []


class TestFeedback:
    """Feedback reports update the performance store."""

    @pytest.mark.unit
    async def test_plain_feedback_recorded(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)

        await orchestrator.record_feedback(
            FeedbackReport(
                model_id="gpt-4o-mini",
                task_type="draft_reply",
                complexity=ComplexityClass.STANDARD,
                success=True,
                rating=4,
            )
        )

        record = orchestrator.router.store.get("gpt-4o-mini", "draft_reply", ComplexityClass.STANDARD)
        assert record is not None
        assert record.mean_satisfaction == pytest.approx(0.8)

    @pytest.mark.unit
    async def test_override_feedback_penalises_suggestion(self, completion, preference_provider) -> None:
        orchestrator = _orchestrator(completion, preference_provider)

        await orchestrator.record_feedback(
            FeedbackReport(
                model_id="gpt-4o",
                suggested_model_id="gpt-4o-mini",
                task_type="draft_reply",
                complexity=ComplexityClass.STANDARD,
                success=True,
            )
        )

        store = orchestrator.router.store
        assert store.get("gpt-4o", "draft_reply", ComplexityClass.STANDARD).success_rate == 1.0
        assert store.get("gpt-4o-mini", "draft_reply", ComplexityClass.STANDARD).success_rate == 0.0


class TestBuildMessages:
    """System prompt assembly."""

    @pytest.mark.unit
    def test_medium_priority_omitted(self) -> None:
        from aris_routing.context.assembler import ContextBundle
        from aris_routing.preferences.models import PreferenceDecision

        messages = build_messages(
            _request(), ContextBundle(), PreferenceDecision(should_process=True)
        )

        assert messages[0].content == "Task type: general."
        assert messages[1].content == "Hello there"


class TestFromSettings:
    """Wiring from Settings."""

    @pytest.mark.unit
    async def test_wires_without_database_or_redis(self, completion) -> None:
        settings = Settings(llm_api_key="test-key", database_url=None, redis_url=None, _env_file=None)

        orchestrator = TaskOrchestrator.from_settings(settings, completion=completion)
        result = await orchestrator.process(_request())
        await orchestrator.startup()
        await orchestrator.aclose()

        assert orchestrator.cache is not None
        assert result.status == ResultStatus.ESCALATED
        assert completion.closed is True

    @pytest.mark.unit
    async def test_uses_supplied_preference_provider(self, completion, preference_provider) -> None:
        settings = Settings(llm_api_key="test-key", database_url=None, redis_url=None, _env_file=None)

        orchestrator = TaskOrchestrator.from_settings(
            settings, completion=completion, preference_provider=preference_provider
        )
        result = await orchestrator.process(_request())

        assert result.status == ResultStatus.COMPLETED

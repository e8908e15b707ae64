"""Unit tests for ModelRouter selection, learned ranking and feedback."""

import pytest

from aris_routing.errors import RoutingEngineError
from aris_routing.routing.model_registry import DEFAULT_PROFILES, ModelRegistry
from aris_routing.routing.model_router import (
    COMPLEX_REASON,
    ModelRouter,
    estimate_cost,
    estimate_work_units,
    input_units,
)
from aris_routing.routing.models import (
    ComplexityClass,
    ComplexityScore,
    PerformanceObservation,
    RoutingRule,
    SituationalFlags,
    TaskType,
)
from aris_routing.routing.performance_store import PerformanceStore


def _observation(
    model_id: str,
    success: bool,
    complexity: ComplexityClass = ComplexityClass.STANDARD,
    rating: int | None = None,
) -> PerformanceObservation:
    return PerformanceObservation(
        model_id=model_id,
        task_type="general",
        complexity=complexity,
        success=success,
        rating=rating,
    )


class TestEstimates:
    """Tests for work-unit and cost estimation helpers."""

    @pytest.mark.unit
    def test_input_units_round_up(self) -> None:
        assert input_units(0) == 0
        assert input_units(1) == 1
        assert input_units(8) == 2
        assert input_units(9) == 3

    @pytest.mark.unit
    def test_work_units_scale_with_class(self) -> None:
        assert estimate_work_units(400, ComplexityClass.SIMPLE) == 200
        assert estimate_work_units(400, ComplexityClass.STANDARD) == 400
        assert estimate_work_units(400, ComplexityClass.COMPLEX) == 800

    @pytest.mark.unit
    def test_cost_uses_profile_rate(self) -> None:
        gpt_4o = DEFAULT_PROFILES[2]
        assert estimate_cost(1000, gpt_4o) == pytest.approx(0.005)


class TestRouteByComplexity:
    """Tests for the static complexity rule."""

    @pytest.mark.unit
    def test_simple_uses_cheapest(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        decision = router.route(simple_score)

        assert decision.model_id == "gpt-4o-mini"
        assert decision.complexity == ComplexityClass.SIMPLE
        assert decision.rule == RoutingRule.COMPLEXITY
        assert decision.alternatives == ("gpt-3.5-turbo",)

    @pytest.mark.unit
    def test_standard_uses_cheapest(self, router: ModelRouter, standard_score: ComplexityScore) -> None:
        decision = router.route(standard_score)

        assert decision.model_id == "gpt-4o-mini"
        assert decision.alternatives == ("gpt-4o", "gpt-3.5-turbo")

    @pytest.mark.unit
    def test_complex_uses_most_capable(self, router: ModelRouter, complex_score: ComplexityScore) -> None:
        decision = router.route(complex_score)

        assert decision.model_id == "gpt-4o"
        assert decision.provider_model == "openai/gpt-4o"
        assert decision.alternatives == ("gpt-4",)
        assert COMPLEX_REASON in decision.reasoning

    @pytest.mark.unit
    def test_reasoning_starts_with_class(self, router: ModelRouter, complex_score: ComplexityScore) -> None:
        decision = router.route(complex_score)
        assert decision.reasoning[0].startswith("Complexity class: complex")

    @pytest.mark.unit
    def test_estimates_attached(self, router: ModelRouter, complex_score: ComplexityScore) -> None:
        decision = router.route(complex_score, input_chars=400)

        assert decision.estimated_work_units == 800
        assert decision.estimated_cost == pytest.approx(0.004)

    @pytest.mark.unit
    def test_chosen_model_supports_resolved_class(self, router: ModelRouter) -> None:
        for value in (0.0, 2.5, 3.5, 6.9, 7.5, 10.0):
            score = ComplexityScore(pattern=value, linguistic=value, situational=value)
            decision = router.route(score)
            profile = router.registry.require(decision.model_id)
            assert profile.supports(decision.complexity)

    @pytest.mark.unit
    def test_no_model_for_class_raises(self, simple_score: ComplexityScore) -> None:
        router = ModelRouter(ModelRegistry([DEFAULT_PROFILES[3]]))
        with pytest.raises(RoutingEngineError, match="simple"):
            router.route(simple_score)


class TestForcingRules:
    """Tests for the external-dependency and narrow-task rules."""

    @pytest.mark.unit
    def test_external_lookup_forces_complex(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        flags = SituationalFlags(requires_external_lookup=True)
        decision = router.route(simple_score, flags=flags)

        assert decision.complexity == ComplexityClass.COMPLEX
        assert decision.model_id == "gpt-4o"
        assert decision.rule == RoutingRule.EXTERNAL_DEPENDENCY

    @pytest.mark.unit
    def test_cross_entity_lookup_forces_complex(self, router: ModelRouter, standard_score: ComplexityScore) -> None:
        flags = SituationalFlags(requires_cross_entity_lookup=True)
        decision = router.route(standard_score, flags=flags)

        assert decision.rule == RoutingRule.EXTERNAL_DEPENDENCY
        assert decision.model_id == "gpt-4o"

    @pytest.mark.unit
    @pytest.mark.parametrize("task_type", [TaskType.PATTERN_EXTRACTION, "language_detection"])
    def test_narrow_task_uses_cheapest_standard(
        self, router: ModelRouter, complex_score: ComplexityScore, task_type
    ) -> None:
        decision = router.route(complex_score, task_type=task_type)

        assert decision.complexity == ComplexityClass.STANDARD
        assert decision.model_id == "gpt-4o-mini"
        assert decision.rule == RoutingRule.NARROW_TASK

    @pytest.mark.unit
    def test_external_beats_narrow(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        decision = router.route(
            simple_score,
            task_type=TaskType.PATTERN_EXTRACTION,
            flags=SituationalFlags(requires_external_lookup=True),
        )
        assert decision.rule == RoutingRule.EXTERNAL_DEPENDENCY


class TestOverride:
    """Tests for caller overrides."""

    @pytest.mark.unit
    def test_valid_override_wins(self, router: ModelRouter, complex_score: ComplexityScore) -> None:
        decision = router.route(complex_score, override="gpt-4")

        assert decision.model_id == "gpt-4"
        assert decision.rule == RoutingRule.CALLER_OVERRIDE
        assert decision.requested_override == "gpt-4"
        assert "caller override" in decision.reasoning

    @pytest.mark.unit
    def test_override_beats_external_dependency(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        decision = router.route(
            simple_score,
            flags=SituationalFlags(requires_external_lookup=True),
            override="gpt-4",
        )
        assert decision.rule == RoutingRule.CALLER_OVERRIDE

    @pytest.mark.unit
    def test_unknown_override_ignored(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        decision = router.route(simple_score, override="nope")

        assert decision.model_id == "gpt-4o-mini"
        assert decision.rule == RoutingRule.COMPLEXITY
        assert "Override 'nope' ignored: unknown model" in decision.reasoning

    @pytest.mark.unit
    def test_unsuitable_override_ignored(self, router: ModelRouter, simple_score: ComplexityScore) -> None:
        decision = router.route(simple_score, override="gpt-4")

        assert decision.model_id == "gpt-4o-mini"
        assert "Override 'gpt-4' ignored: not suitable for simple tasks" in decision.reasoning


class TestCandidates:
    """Tests for input-size filtering."""

    @pytest.mark.unit
    def test_models_too_small_for_input_excluded(self, router: ModelRouter) -> None:
        ids = {p.id for p in router.candidates(ComplexityClass.STANDARD, input_chars=20000)}
        assert ids == {"gpt-4o-mini", "gpt-4o"}

    @pytest.mark.unit
    def test_falls_back_to_all_when_nothing_fits(self, router: ModelRouter) -> None:
        ids = {p.id for p in router.candidates(ComplexityClass.STANDARD, input_chars=40000)}
        assert ids == {"gpt-3.5-turbo", "gpt-4o-mini", "gpt-4o"}


class TestLearnedRanking:
    """Tests for score_model and get_recommended_model."""

    @pytest.mark.unit
    def test_accuracy_priority_without_history(self, router: ModelRouter) -> None:
        best = router.get_recommended_model(ComplexityClass.STANDARD)
        assert best.id == "gpt-4o"

    @pytest.mark.unit
    def test_speed_priority_without_history(self, router: ModelRouter) -> None:
        best = router.get_recommended_model(ComplexityClass.STANDARD, prioritize_speed=True)
        assert best.id == "gpt-3.5-turbo"

    @pytest.mark.unit
    def test_score_model_uses_neutral_priors(self, router: ModelRouter) -> None:
        gpt_4o = router.registry.require("gpt-4o")
        score = router.score_model(gpt_4o, ComplexityClass.STANDARD, TaskType.GENERAL)
        assert score == pytest.approx(3.0 + 3.0 + 24.0 + 16.0 - 0.5)

    @pytest.mark.unit
    async def test_failures_lower_a_model_score(self, router: ModelRouter, store: PerformanceStore) -> None:
        await store.record(_observation("gpt-4o-mini", success=False))
        await store.record(_observation("gpt-4o-mini", success=False))

        mini = router.registry.require("gpt-4o-mini")
        score = router.score_model(mini, ComplexityClass.STANDARD, "general")
        assert score == pytest.approx(2.7 + 2.4 + 0.0 + 16.0 - 0.015)

    @pytest.mark.unit
    async def test_history_alone_keeps_static_choice(
        self, router: ModelRouter, store: PerformanceStore, standard_score: ComplexityScore
    ) -> None:
        await store.record(_observation("gpt-4o-mini", success=False))
        await store.record(_observation("gpt-4o-mini", success=False))

        decision = router.route(standard_score)

        assert decision.model_id == "gpt-4o-mini"
        assert decision.rule == RoutingRule.COMPLEXITY

    @pytest.mark.unit
    async def test_opt_in_switches_route_to_learned(
        self, router: ModelRouter, store: PerformanceStore, standard_score: ComplexityScore
    ) -> None:
        await store.record(_observation("gpt-4o-mini", success=False))
        await store.record(_observation("gpt-4o-mini", success=False))

        decision = router.route(standard_score, use_learning=True)

        assert decision.model_id == "gpt-4o"
        assert decision.rule == RoutingRule.LEARNED
        assert "standard task: using most cost-effective capable model" in decision.reasoning
        assert "Learned performance history prefers gpt-4o over gpt-4o-mini" in decision.reasoning

    @pytest.mark.unit
    async def test_complex_failure_keeps_capability_choice(
        self, router: ModelRouter, store: PerformanceStore, complex_score: ComplexityScore
    ) -> None:
        await store.record(_observation("gpt-4o", success=False, complexity=ComplexityClass.COMPLEX))

        static = router.route(complex_score)
        learned = router.route(complex_score, use_learning=True)

        assert static.model_id == "gpt-4o"
        assert static.rule == RoutingRule.COMPLEXITY
        assert learned.model_id == "gpt-4"
        assert learned.complexity == ComplexityClass.COMPLEX
        assert COMPLEX_REASON in learned.reasoning

    @pytest.mark.unit
    async def test_opt_in_without_change_keeps_rule(
        self, router: ModelRouter, store: PerformanceStore, complex_score: ComplexityScore
    ) -> None:
        await store.record(_observation("gpt-4o", success=True, complexity=ComplexityClass.COMPLEX))

        decision = router.route(complex_score, use_learning=True)

        assert decision.model_id == "gpt-4o"
        assert decision.rule == RoutingRule.COMPLEXITY
        assert COMPLEX_REASON in decision.reasoning


class TestLearnFromOverride:
    """Tests for override feedback."""

    @pytest.mark.unit
    async def test_successful_override_penalises_suggestion(
        self, router: ModelRouter, store: PerformanceStore
    ) -> None:
        await router.learn_from_override(
            original_model="gpt-4o-mini",
            selected_model="gpt-4o",
            task_type=TaskType.GENERAL,
            complexity=ComplexityClass.STANDARD,
            success=True,
        )

        chosen = store.get("gpt-4o", "general", ComplexityClass.STANDARD)
        suggested = store.get("gpt-4o-mini", "general", ComplexityClass.STANDARD)
        assert chosen is not None and suggested is not None
        assert chosen.success_rate == pytest.approx(1.0)
        assert chosen.mean_satisfaction == pytest.approx(1.0)
        assert suggested.success_rate == pytest.approx(0.0)
        assert suggested.mean_satisfaction == pytest.approx(0.4)

    @pytest.mark.unit
    async def test_failed_override_records_only_selection(
        self, router: ModelRouter, store: PerformanceStore
    ) -> None:
        await router.learn_from_override(
            original_model="gpt-4o-mini",
            selected_model="gpt-4o",
            task_type="general",
            complexity=ComplexityClass.STANDARD,
            success=False,
        )

        chosen = store.get("gpt-4o", "general", ComplexityClass.STANDARD)
        assert chosen is not None
        assert chosen.mean_satisfaction == pytest.approx(0.6)
        assert store.get("gpt-4o-mini", "general", ComplexityClass.STANDARD) is None

    @pytest.mark.unit
    async def test_explicit_rating_is_used(self, router: ModelRouter, store: PerformanceStore) -> None:
        await router.learn_from_override(
            original_model="gpt-4o",
            selected_model="gpt-4",
            task_type="general",
            complexity=ComplexityClass.COMPLEX,
            success=True,
            latency_ms=1200.0,
            rating=4,
        )

        chosen = store.get("gpt-4", "general", ComplexityClass.COMPLEX)
        assert chosen is not None
        assert chosen.mean_satisfaction == pytest.approx(0.8)
        assert chosen.mean_latency_ms == pytest.approx(1200.0)


class TestUserPreferredModels:
    """Tests for user_preferred_models."""

    @pytest.mark.unit
    async def test_only_well_rated_models_returned(
        self, router: ModelRouter, store: PerformanceStore
    ) -> None:
        await store.record(_observation("gpt-4o", success=True, rating=4))
        await store.record(_observation("gpt-4o-mini", success=True, rating=3))

        preferred = router.user_preferred_models("general", ComplexityClass.STANDARD)
        assert [p.id for p in preferred] == ["gpt-4o"]

    @pytest.mark.unit
    def test_empty_without_ratings(self, router: ModelRouter) -> None:
        assert router.user_preferred_models("general", ComplexityClass.STANDARD) == []

    @pytest.mark.unit
    async def test_preferred_model_wins_learned_selection(
        self, router: ModelRouter, store: PerformanceStore
    ) -> None:
        await store.record(_observation("gpt-4o-mini", success=False, rating=4))

        ranked = router.get_recommended_model(ComplexityClass.STANDARD)
        selected = router.select_model_with_learning(ComplexityClass.STANDARD, "general")

        assert ranked.id == "gpt-4o"
        assert selected.id == "gpt-4o-mini"

    @pytest.mark.unit
    async def test_preferred_model_outside_candidates_ignored(
        self, router: ModelRouter, store: PerformanceStore
    ) -> None:
        await store.record(_observation("gpt-4o-mini", success=True, rating=5))

        pool = [router.registry.require("gpt-4o"), router.registry.require("gpt-3.5-turbo")]
        selected = router.select_model_with_learning(ComplexityClass.STANDARD, "general", pool)

        assert selected.id == "gpt-4o"

    @pytest.mark.unit
    def test_without_history_falls_back_to_ranking(self, router: ModelRouter) -> None:
        selected = router.select_model_with_learning(ComplexityClass.STANDARD)
        assert selected.id == "gpt-4o"

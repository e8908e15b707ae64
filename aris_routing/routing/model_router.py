"""Model selection from complexity, static profiles, and learned performance."""

import logging
import math
from typing import Optional

from aris_routing.errors import RoutingEngineError
from aris_routing.routing.model_registry import ModelRegistry
from aris_routing.routing.models import (
    ComplexityClass,
    ComplexityScore,
    ModelProfile,
    PerformanceObservation,
    RoutingDecision,
    RoutingRule,
    SituationalFlags,
    TaskType,
    enum_value,
)
from aris_routing.routing.performance_store import PerformanceStore

logger = logging.getLogger(__name__)

# Low-risk, high-volume task families where cost dominates
NARROW_TASK_TYPES: frozenset[str] = frozenset(
    {TaskType.PATTERN_EXTRACTION.value, TaskType.LANGUAGE_DETECTION.value}
)

WORK_UNIT_MULTIPLIERS: dict[str, int] = {
    ComplexityClass.SIMPLE.value: 2,
    ComplexityClass.STANDARD.value: 4,
    ComplexityClass.COMPLEX.value: 8,
}
CHARS_PER_INPUT_UNIT: int = 4

# Neutral priors used when a triple has no observations yet
DEFAULT_SUCCESS_RATE: float = 0.8
DEFAULT_SATISFACTION: float = 0.8
DEFAULT_LATENCY_MS: float = 2000.0

PREFERRED_SATISFACTION: float = 0.8

COMPLEX_REASON = "complex task — using higher-capability model"


def input_units(input_chars: int) -> int:
    """Approximate input size in work units (roughly four characters each)."""
    return math.ceil(max(input_chars, 0) / CHARS_PER_INPUT_UNIT)


def estimate_work_units(input_chars: int, complexity: ComplexityClass) -> int:
    """Expected work units: input units times the complexity multiplier."""
    return input_units(input_chars) * WORK_UNIT_MULTIPLIERS[enum_value(complexity)]


def estimate_cost(work_units: int, profile: ModelProfile) -> float:
    """USD cost of a call of ``work_units`` on a model."""
    return work_units / 1000.0 * profile.cost_per_1k_units


def _cheapest(candidates: list[ModelProfile]) -> ModelProfile:
    return min(candidates, key=lambda p: (p.cost_per_1k_units, p.id))


def _most_capable(candidates: list[ModelProfile]) -> ModelProfile:
    return max(
        candidates,
        key=lambda p: (p.capability_score, p.capabilities.reasoning, -p.cost_per_1k_units),
    )


class ModelRouter:
    """Maps a complexity score and situational context to a RoutingDecision.

    Selection order, first matching rule wins:

        1. caller override that exists and supports the resolved class
        2. external-system / cross-entity flag -> most capable ``complex`` model
        3. narrow task family -> cheapest ``standard`` model
        4. by class: simple/standard -> cheapest, complex -> most capable

    Learned ranking is opt-in per call (``use_learning``). It can only swap
    rule 4's static choice for another model suitable for the same class,
    and the class reasoning is recorded either way.

    The registry is read without locking; the performance store handles its
    own per-key locking.

    Args:
        registry: Model profile registry.
        store: Performance store used for learned ranking and feedback.
    """

    def __init__(self, registry: ModelRegistry, store: Optional[PerformanceStore] = None) -> None:
        self._registry = registry
        self._store = store if store is not None else PerformanceStore()

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def store(self) -> PerformanceStore:
        return self._store

    def resolve_complexity(
        self,
        score: ComplexityScore,
        task_type: TaskType | str,
        flags: SituationalFlags,
    ) -> tuple[ComplexityClass, Optional[RoutingRule]]:
        """Return the complexity class a task is routed at and the forcing rule, if any."""
        if flags.forces_high_capability:
            return ComplexityClass.COMPLEX, RoutingRule.EXTERNAL_DEPENDENCY
        if enum_value(task_type) in NARROW_TASK_TYPES:
            return ComplexityClass.STANDARD, RoutingRule.NARROW_TASK
        return score.complexity_class, None

    def candidates(self, complexity: ComplexityClass, input_chars: int = 0) -> list[ModelProfile]:
        """Models suitable for a class that can hold the input.

        Falls back to every suitable model when none can hold the input.

        Raises:
            RoutingEngineError: If no registered model supports the class.
        """
        suitable = self._registry.for_complexity(complexity)
        if not suitable:
            raise RoutingEngineError(f"No registered model supports complexity '{complexity.value}'")

        needed = input_units(input_chars)
        fitting = [p for p in suitable if p.max_input_units >= needed]
        return fitting or suitable

    def route(
        self,
        score: ComplexityScore,
        task_type: TaskType | str = TaskType.GENERAL,
        flags: Optional[SituationalFlags] = None,
        override: Optional[str] = None,
        input_chars: int = 0,
        use_learning: bool = False,
    ) -> RoutingDecision:
        """Choose a model for one task.

        Args:
            score: Complexity analysis of the task.
            task_type: Task-type tag.
            flags: Situational hints.
            override: Optional caller-requested model id.
            input_chars: Length of the model input, used for size and cost estimates.
            use_learning: Let learned history replace the static by-class choice.

        Returns:
            RoutingDecision whose model declares support for the resolved class.

        Raises:
            RoutingEngineError: If no registered model supports the resolved class.
        """
        flags = flags or SituationalFlags()
        complexity, forced_rule = self.resolve_complexity(score, task_type, flags)
        candidates = self.candidates(complexity, input_chars)

        reasoning: list[str] = [
            f"Complexity class: {complexity.value} (score {score.composite:.1f}/10, "
            f"confidence {score.confidence:.2f})"
        ]

        chosen: Optional[ModelProfile] = None
        rule = RoutingRule.COMPLEXITY

        if override is not None:
            profile = self._registry.get(override)
            if profile is None:
                reasoning.append(f"Override '{override}' ignored: unknown model")
            elif not profile.supports(complexity):
                reasoning.append(
                    f"Override '{override}' ignored: not suitable for {complexity.value} tasks"
                )
            else:
                chosen = profile
                rule = RoutingRule.CALLER_OVERRIDE
                reasoning.append("caller override")

        if chosen is None and forced_rule is RoutingRule.EXTERNAL_DEPENDENCY:
            chosen = _most_capable(candidates)
            rule = forced_rule
            reasoning.append("Depends on an external system of record: using highest-capability model")
        elif chosen is None and forced_rule is RoutingRule.NARROW_TASK:
            chosen = _cheapest(candidates)
            rule = forced_rule
            reasoning.append(
                f"Narrow repetitive task ({enum_value(task_type)}): using cheapest standard model"
            )

        if chosen is None:
            if complexity is ComplexityClass.COMPLEX:
                chosen = _most_capable(candidates)
                reasoning.append(COMPLEX_REASON)
            else:
                chosen = _cheapest(candidates)
                reasoning.append(f"{complexity.value} task: using most cost-effective capable model")

            if use_learning and self._has_history(candidates, task_type, complexity):
                learned = self.select_model_with_learning(complexity, task_type, candidates)
                if learned.id != chosen.id:
                    reasoning.append(
                        f"Learned performance history prefers {learned.id} over {chosen.id}"
                    )
                    chosen = learned
                    rule = RoutingRule.LEARNED

        alternatives = sorted(
            (p for p in self._registry.for_complexity(complexity) if p.id != chosen.id),
            key=lambda p: (-p.capabilities.accuracy, p.cost_per_1k_units, p.id),
        )

        work_units = estimate_work_units(input_chars, complexity)
        decision = RoutingDecision(
            model_id=chosen.id,
            provider_model=chosen.provider_model,
            complexity=complexity,
            rule=rule,
            reasoning=tuple(reasoning),
            alternatives=tuple(p.id for p in alternatives),
            estimated_work_units=work_units,
            estimated_cost=estimate_cost(work_units, chosen),
            requested_override=override,
        )

        logger.info(
            f"model_router_selected: model={decision.model_id}, complexity={complexity.value}, "
            f"rule={rule.value}, work_units={work_units}, cost={decision.estimated_cost:.6f}"
        )
        return decision

    def _has_history(
        self,
        candidates: list[ModelProfile],
        task_type: TaskType | str,
        complexity: ComplexityClass,
    ) -> bool:
        return any(self._store.get(p.id, task_type, complexity) is not None for p in candidates)

    def score_model(
        self,
        profile: ModelProfile,
        complexity: ComplexityClass,
        task_type: TaskType | str,
        prioritize_speed: bool = False,
    ) -> float:
        """Blend static capability with learned performance for one model.

        Speed priority:
            speed*0.4 + success_rate*30 + satisfaction*20 - latency_s*5
        Accuracy priority:
            accuracy*0.3 + reasoning*0.3 + success_rate*30 + satisfaction*20 - cost*100

        Missing history falls back to neutral priors.
        """
        record = self._store.get(profile.id, task_type, complexity)
        success_rate = DEFAULT_SUCCESS_RATE
        satisfaction = DEFAULT_SATISFACTION
        latency_ms = DEFAULT_LATENCY_MS
        if record is not None and record.observations > 0:
            success_rate = record.success_rate
            if record.satisfaction_samples > 0:
                satisfaction = record.mean_satisfaction
            if record.latency_samples > 0:
                latency_ms = record.mean_latency_ms

        caps = profile.capabilities
        if prioritize_speed:
            return (
                caps.speed * 0.4
                + success_rate * 30.0
                + satisfaction * 20.0
                - (latency_ms / 1000.0) * 5.0
            )
        return (
            caps.accuracy * 0.3
            + caps.reasoning * 0.3
            + success_rate * 30.0
            + satisfaction * 20.0
            - profile.cost_per_1k_units * 100.0
        )

    def get_recommended_model(
        self,
        complexity: ComplexityClass,
        task_type: TaskType | str = TaskType.GENERAL,
        prioritize_speed: bool = False,
        candidates: Optional[list[ModelProfile]] = None,
    ) -> ModelProfile:
        """Rank suitable models by blended capability and learned performance.

        Args:
            complexity: Complexity class to rank for.
            task_type: Task-type tag.
            prioritize_speed: Favor speed and latency over accuracy and cost.
            candidates: Restrict ranking to these models.

        Returns:
            The highest-scoring ModelProfile.

        Raises:
            RoutingEngineError: If no registered model supports the class.
        """
        pool = candidates if candidates else self.candidates(complexity)
        scored = [
            (self.score_model(p, complexity, task_type, prioritize_speed), p) for p in pool
        ]
        best_score, best = max(scored, key=lambda item: (item[0], -item[1].cost_per_1k_units))

        logger.info(
            f"model_router_recommended: model={best.id}, complexity={complexity.value}, "
            f"task_type={enum_value(task_type)}, score={best_score:.2f}, "
            f"prioritize_speed={prioritize_speed}"
        )
        return best

    def select_model_with_learning(
        self,
        complexity: ComplexityClass,
        task_type: TaskType | str = TaskType.GENERAL,
        candidates: Optional[list[ModelProfile]] = None,
    ) -> ModelProfile:
        """Pick a model from history: user-preferred models first, then ranking.

        Args:
            complexity: Complexity class to select for.
            task_type: Task-type tag.
            candidates: Restrict selection to these models.

        Returns:
            The top user-preferred candidate, else the best-scoring candidate.
        """
        pool = candidates if candidates else self.candidates(complexity)
        pool_ids = {p.id for p in pool}
        for profile in self.user_preferred_models(task_type, complexity):
            if profile.id in pool_ids and profile.supports(complexity):
                logger.info(
                    f"model_router_user_preferred: model={profile.id}, "
                    f"complexity={complexity.value}, task_type={enum_value(task_type)}"
                )
                return profile
        return self.get_recommended_model(complexity, task_type, candidates=pool)

    async def learn_from_override(
        self,
        original_model: str,
        selected_model: str,
        task_type: TaskType | str,
        complexity: ComplexityClass,
        success: bool,
        latency_ms: Optional[float] = None,
        rating: Optional[int] = None,
    ) -> None:
        """Record the outcome of a caller override.

        The chosen model always gets an observation (the reported rating, or
        5 on success and 3 otherwise). When the override succeeded and differs
        from the suggestion, the suggested model gets a negative observation.

        Args:
            original_model: Model the router suggested.
            selected_model: Model the caller chose instead.
            task_type: Task-type tag.
            complexity: Complexity class the task was routed at.
            success: Whether the override's outcome was acceptable.
            latency_ms: Observed latency of the chosen model, when known.
            rating: User rating for the chosen model, when reported.
        """
        task_type_value = enum_value(task_type)
        await self._store.record(
            PerformanceObservation(
                model_id=selected_model,
                task_type=task_type_value,
                complexity=complexity,
                success=success,
                latency_ms=latency_ms,
                rating=rating if rating is not None else (5 if success else 3),
            )
        )

        if success and original_model != selected_model:
            await self._store.record(
                PerformanceObservation(
                    model_id=original_model,
                    task_type=task_type_value,
                    complexity=complexity,
                    success=False,
                    rating=2,
                )
            )

        logger.info(
            f"model_router_learned_override: original={original_model}, "
            f"selected={selected_model}, complexity={enum_value(complexity)}, success={success}"
        )

    def user_preferred_models(
        self,
        task_type: TaskType | str,
        complexity: ComplexityClass,
        limit: int = 3,
    ) -> list[ModelProfile]:
        """Models users rated highly for a task type and class.

        Args:
            task_type: Task-type tag.
            complexity: Complexity class.
            limit: Maximum number of models to return.

        Returns:
            Registered models with mean satisfaction >= 0.8, ordered by
            satisfaction then observation count.
        """
        rated = []
        for profile in self._registry.all():
            record = self._store.get(profile.id, task_type, complexity)
            if record is None or record.satisfaction_samples == 0:
                continue
            if record.mean_satisfaction >= PREFERRED_SATISFACTION:
                rated.append((record.mean_satisfaction, record.observations, profile))

        rated.sort(key=lambda item: (-item[0], -item[1], item[2].id))
        return [profile for _, _, profile in rated[:limit]]

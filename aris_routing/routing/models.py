"""Pydantic models for complexity scoring, model profiles, and routing decisions."""

from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ComplexityClass(str, Enum):
    """Coarse complexity bucket that drives model choice."""

    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"


class RoutingRule(str, Enum):
    """Which selection rule produced a RoutingDecision."""

    CALLER_OVERRIDE = "caller_override"
    EXTERNAL_DEPENDENCY = "external_dependency"
    NARROW_TASK = "narrow_task"
    LEARNED = "learned"
    COMPLEXITY = "complexity"


def enum_value(value: object) -> str:
    """Return the plain string value of a str-backed enum (or the string itself).

    Str enums hash by member name, so dictionary keys are normalised
    through this helper.
    """
    return str(getattr(value, "value", value))


class TaskType(str, Enum):
    """Task-type tag attached to every unit of work."""

    EMAIL_ANALYSIS = "email_analysis"
    EMAIL_CLASSIFICATION = "email_classification"
    DRAFT_REPLY = "draft_reply"
    PATTERN_EXTRACTION = "pattern_extraction"
    LANGUAGE_DETECTION = "language_detection"
    CHAT = "chat"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SEARCH = "search"
    ANALYZE = "analyze"
    GENERAL = "general"


class SituationalFlags(BaseModel):
    """Caller-supplied situational hints about a task.

    Args:
        has_related_entity_data: Related CRM entities (contact, order) are attached.
        requires_external_lookup: Correctness depends on an external system of record.
        requires_cross_entity_lookup: The task spans several CRM entities.
        conversation_turns: Number of prior conversation messages.
        last_action: Previous action tag in the conversation (e.g. "ANALYZE").
        recent_entities: Number of entities touched recently in the conversation.
    """

    model_config = ConfigDict(frozen=True)

    has_related_entity_data: bool = False
    requires_external_lookup: bool = False
    requires_cross_entity_lookup: bool = False
    conversation_turns: int = Field(default=0, ge=0)
    last_action: Optional[str] = None
    recent_entities: int = Field(default=0, ge=0)

    @property
    def forces_high_capability(self) -> bool:
        """True when an external system or cross-entity lookup is involved."""
        return self.requires_external_lookup or self.requires_cross_entity_lookup


class ComplexityScore(BaseModel):
    """Three-signal task complexity analysis.

    Each sub-score is in [0, 10]. The weighted composite determines the
    complexity class:

        simple (0-3]  |  standard (3-7]  |  complex (7-10]

    Weights and thresholds are class-level constants; the weights sum to 1.0.

    Args:
        pattern: Surface-pattern match score.
        linguistic: Token, clause, connective and terminology density score.
        situational: Business-context and situational-flag score.
        reasoning: Human-readable notes explaining the score.
    """

    model_config = ConfigDict(frozen=True)

    WEIGHTS: ClassVar[dict[str, float]] = {
        "pattern": 0.40,
        "linguistic": 0.35,
        "situational": 0.25,
    }
    SIMPLE_MAX: ClassVar[float] = 3.0
    STANDARD_MAX: ClassVar[float] = 7.0
    MAX_CONFIDENCE: ClassVar[float] = 0.9

    pattern: float = Field(default=0.0, ge=0.0, le=10.0)
    linguistic: float = Field(default=0.0, ge=0.0, le=10.0)
    situational: float = Field(default=0.0, ge=0.0, le=10.0)
    reasoning: tuple[str, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def composite(self) -> float:
        """Weighted sum of the three sub-scores.

        Returns:
            Float in [0.0, 10.0] representing overall task complexity.
        """
        return (
            self.pattern * self.WEIGHTS["pattern"]
            + self.linguistic * self.WEIGHTS["linguistic"]
            + self.situational * self.WEIGHTS["situational"]
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def complexity_class(self) -> ComplexityClass:
        """Complexity bucket derived from the composite score."""
        total = self.composite
        if total <= self.SIMPLE_MAX:
            return ComplexityClass.SIMPLE
        if total <= self.STANDARD_MAX:
            return ComplexityClass.STANDARD
        return ComplexityClass.COMPLEX

    @computed_field  # type: ignore[prop-decorator]
    @property
    def confidence(self) -> float:
        """Confidence in the class, growing with distance from the nearest threshold.

        Returns:
            Float in [0.5, MAX_CONFIDENCE].
        """
        total = self.composite
        distance = min(abs(total - self.SIMPLE_MAX), abs(total - self.STANDARD_MAX))
        return min(self.MAX_CONFIDENCE, 0.5 + distance * 0.15)


class ModelCapabilities(BaseModel):
    """Static capability vector for a model, each dimension on a 1-10 scale."""

    model_config = ConfigDict(frozen=True)

    reasoning: int = Field(ge=1, le=10)
    speed: int = Field(ge=1, le=10)
    creativity: int = Field(ge=1, le=10)
    accuracy: int = Field(ge=1, le=10)


class ModelProfile(BaseModel):
    """A completion model with its capabilities and cost metadata.

    Args:
        id: Registry identifier (e.g. "gpt-4o-mini").
        name: Human-readable label.
        provider_model: Provider-recognised model name sent on completion calls.
        capabilities: Static capability vector.
        cost_per_1k_units: USD cost per 1 000 work units.
        max_input_units: Largest input the model accepts, in work units.
        suitable_for: Complexity classes the model is declared suitable for.
        description: Free-text description.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    provider_model: str = Field(min_length=1)
    capabilities: ModelCapabilities
    cost_per_1k_units: float = Field(ge=0.0)
    max_input_units: int = Field(ge=1)
    suitable_for: frozenset[ComplexityClass]
    description: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def capability_score(self) -> float:
        """Mean of reasoning and accuracy, used to rank "highest-capability" models."""
        return (self.capabilities.reasoning + self.capabilities.accuracy) / 2.0

    def supports(self, complexity: ComplexityClass) -> bool:
        """Whether the model is declared suitable for a complexity class."""
        return complexity in self.suitable_for


class RoutingDecision(BaseModel):
    """Outcome of model selection for one task.

    Args:
        model_id: Chosen ModelProfile id.
        provider_model: Provider model name for the chosen profile.
        complexity: Complexity class the decision was resolved at.
        rule: Selection rule that fired.
        reasoning: Ordered explanation strings.
        alternatives: Other suitable model ids ordered by descending accuracy.
        estimated_work_units: Expected work units for the call.
        estimated_cost: Expected USD cost for the call.
        requested_override: Caller override id, if one was supplied.
    """

    model_config = ConfigDict(frozen=True)

    model_id: str
    provider_model: str
    complexity: ComplexityClass
    rule: RoutingRule
    reasoning: tuple[str, ...] = ()
    alternatives: tuple[str, ...] = ()
    estimated_work_units: int = Field(ge=0)
    estimated_cost: float = Field(ge=0.0)
    requested_override: Optional[str] = None


class PerformanceObservation(BaseModel):
    """One reported outcome for a (model, task type, complexity) triple.

    Args:
        model_id: Model that handled the task.
        task_type: Task-type tag.
        complexity: Complexity class the task was routed at.
        success: Whether the outcome was acceptable.
        latency_ms: Observed latency, when known.
        rating: Optional user satisfaction rating from 1 to 5.
    """

    model_id: str = Field(min_length=1)
    task_type: str = Field(min_length=1)
    complexity: ComplexityClass
    success: bool
    latency_ms: Optional[float] = Field(default=None, ge=0.0)
    rating: Optional[int] = Field(default=None, ge=1, le=5)


class PerformanceRecord(BaseModel):
    """Running statistics for a (model, task type, complexity) triple.

    Updated only through ``merged`` so each observation folds into the
    running means instead of replacing them.
    """

    model_config = ConfigDict(frozen=True)

    model_id: str
    task_type: str
    complexity: ComplexityClass
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    mean_latency_ms: float = Field(default=0.0, ge=0.0)
    mean_satisfaction: float = Field(default=0.0, ge=0.0, le=1.0)
    observations: int = Field(default=0, ge=0)
    latency_samples: int = Field(default=0, ge=0)
    satisfaction_samples: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def normalise_rating(rating: int) -> float:
        """Map a 1-5 rating onto [0.2, 1.0]."""
        return rating / 5.0

    def merged(self, observation: PerformanceObservation) -> "PerformanceRecord":
        """Fold one observation into the running means.

        Uses ``new = (old * (n - 1) + sample) / n`` for each tracked mean.

        Args:
            observation: The outcome to merge.

        Returns:
            A new PerformanceRecord with updated statistics.
        """
        n = self.observations + 1
        success_rate = (self.success_rate * (n - 1) + (1.0 if observation.success else 0.0)) / n

        mean_latency = self.mean_latency_ms
        latency_samples = self.latency_samples
        if observation.latency_ms is not None:
            latency_samples += 1
            mean_latency = (
                mean_latency * (latency_samples - 1) + observation.latency_ms
            ) / latency_samples

        mean_satisfaction = self.mean_satisfaction
        satisfaction_samples = self.satisfaction_samples
        if observation.rating is not None:
            satisfaction_samples += 1
            mean_satisfaction = (
                mean_satisfaction * (satisfaction_samples - 1)
                + self.normalise_rating(observation.rating)
            ) / satisfaction_samples

        return self.model_copy(
            update={
                "success_rate": success_rate,
                "mean_latency_ms": mean_latency,
                "mean_satisfaction": mean_satisfaction,
                "observations": n,
                "latency_samples": latency_samples,
                "satisfaction_samples": satisfaction_samples,
                "updated_at": datetime.now(timezone.utc),
            }
        )

"""Deterministic task complexity scoring from text and situational flags."""

import logging
import re
from typing import Optional

from aris_routing.routing.models import ComplexityScore, SituationalFlags, TaskType

logger = logging.getLogger(__name__)

# Surface patterns per tier, matched against lowercased text
SIMPLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(add|create|show|list|find|get)\s+\w+"),
    re.compile(r"\b(supplier|product|contact)\b.*\b(email|phone|name)\b"),
    re.compile(r"^(what|who|when|where)\s+"),
    re.compile(r"\b(thanks|thank you|received|noted)\b"),
)

STANDARD_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(update|modify|change)\b.*\bwhere\b"),
    re.compile(r"\b(filter|sort|group)\b"),
    re.compile(r"\bmultiple\b.*\b(criteria|conditions)\b"),
    re.compile(r"\b(analyze|compare|calculate)\b"),
    re.compile(r"\b(quote|pricing|availability|delivery date)\b"),
)

COMPLEX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(cross|join|relationship|correlation)\b"),
    re.compile(r"\b(if|then|else|when|unless)\b.*\b(and|or)\b"),
    re.compile(r"\b(optimize|recommend|suggest|predict)\b"),
    re.compile(r"\b(report|dashboard|visualization)\b"),
    re.compile(r"\bmultiple\b.*\b(tables|entities|sources)\b"),
    re.compile(r"\b(urgent|asap|emergency|immediately|critical)\b"),
    re.compile(r"\b(refund|chargeback|dispute|complaint|lawyer|legal)\b"),
    re.compile(r"\b(stuck|broken|not working|stopped working|failed|missing)\b"),
)

# Base score per tier; extra matches in the winning tier add up to _MAX_PATTERN_BONUS
_TIER_BASE: tuple[tuple[tuple[re.Pattern[str], ...], float], ...] = (
    (COMPLEX_PATTERNS, 8.0),
    (STANDARD_PATTERNS, 5.0),
    (SIMPLE_PATTERNS, 2.0),
)
_MAX_PATTERN_BONUS: float = 2.0

COMPLEX_CONNECTIVES: list[str] = [
    "however",
    "therefore",
    "nevertheless",
    "furthermore",
    "moreover",
    "consequently",
]

LOGICAL_OPERATORS: list[str] = ["and", "or", "but", "if", "then", "unless", "except"]

TECHNICAL_TERMS: list[str] = [
    "database",
    "query",
    "relationship",
    "foreign key",
    "index",
    "aggregate",
    "pivot",
    "integration",
    "api",
]

# Business-complexity keyword families for the situational score
BUSINESS_FAMILIES: dict[str, tuple[str, ...]] = {
    "urgency": ("urgent", "asap", "emergency", "immediately", "now", "deadline"),
    "financial": ("refund", "invoice", "payment", "chargeback", "charge", "billing"),
    "fulfilment": ("order", "shipment", "delivery", "tracking", "stuck", "return"),
    "escalation": ("complaint", "lawyer", "legal", "cancel", "manager", "unacceptable"),
}
_FAMILY_WEIGHT: float = 2.5
_SITUATIONAL_BASE: float = 3.0
_FORCED_SITUATIONAL: float = 8.0

_CLAUSE_SPLIT = re.compile(r"[.!?;:,]+")
_WORD = re.compile(r"\S+")

TASK_TYPE_KEYWORDS: tuple[tuple[TaskType, tuple[str, ...]], ...] = (
    (TaskType.CREATE, ("add", "create")),
    (TaskType.UPDATE, ("update", "modify", "change")),
    (TaskType.DELETE, ("delete", "remove")),
    (TaskType.SEARCH, ("find", "search", "show", "list")),
    (TaskType.ANALYZE, ("analyze", "report", "calculate")),
)


def _contains_word(text: str, word: str) -> bool:
    """Whole-word (or whole-phrase) containment check."""
    return re.search(rf"\b{re.escape(word)}\b", text) is not None


class TaskComplexityAnalyzer:
    """Scores task complexity along pattern, linguistic and situational signals.

    Pure and deterministic: identical text and flags always produce an
    identical ComplexityScore. No I/O, no randomness.
    """

    def analyze(self, text: str, flags: Optional[SituationalFlags] = None) -> ComplexityScore:
        """Score a task description.

        Empty or whitespace-only text yields a valid low score.

        Args:
            text: The task text to score.
            flags: Optional situational hints.

        Returns:
            ComplexityScore with three sub-scores in [0.0, 10.0].
        """
        flags = flags or SituationalFlags()
        lowered = text.lower().strip()

        pattern = self.pattern_score(lowered)
        linguistic = self.linguistic_score(lowered)
        situational = self.situational_score(lowered, flags)

        provisional = ComplexityScore(
            pattern=pattern, linguistic=linguistic, situational=situational
        )
        score = provisional.model_copy(
            update={"reasoning": self._reasoning(text, provisional, flags)}
        )

        logger.debug(
            f"complexity_analyzer_scored: pattern={pattern:.1f}, "
            f"linguistic={linguistic:.1f}, situational={situational:.1f}, "
            f"composite={score.composite:.2f}, class={score.complexity_class.value}"
        )
        return score

    def pattern_score(self, lowered: str) -> float:
        """Score surface patterns, falling back to text length when nothing matches.

        Args:
            lowered: Lowercased, stripped task text.

        Returns:
            Pattern score in [0.0, 10.0].
        """
        for patterns, base in _TIER_BASE:
            matched = sum(1 for p in patterns if p.search(lowered))
            if matched:
                bonus = min(float(matched - 1), _MAX_PATTERN_BONUS)
                return min(base + bonus, 10.0)

        length = len(lowered)
        if length < 20:
            return 1.0
        if length < 100:
            return 3.0
        if length < 200:
            return 6.0
        return 8.0

    def linguistic_score(self, lowered: str) -> float:
        """Score word count, clause count, connectives and technical terms.

        Args:
            lowered: Lowercased, stripped task text.

        Returns:
            Linguistic score in [0.0, 10.0].
        """
        words = len(_WORD.findall(lowered))
        if words <= 5:
            score = 1.0
        elif words <= 15:
            score = 3.0
        elif words <= 30:
            score = 6.0
        else:
            score = 8.0

        clauses = [c for c in _CLAUSE_SPLIT.split(lowered) if c.strip()]
        if len(clauses) > 3:
            score += 2.0

        score += sum(1.0 for word in COMPLEX_CONNECTIVES if word in lowered)

        operator_count = sum(1 for op in LOGICAL_OPERATORS if f" {op} " in f" {lowered} ")
        score += min(3.0, float(operator_count))

        tech_count = sum(1 for term in TECHNICAL_TERMS if _contains_word(lowered, term))
        score += min(2.0, float(tech_count))

        return min(score, 10.0)

    def situational_score(self, lowered: str, flags: SituationalFlags) -> float:
        """Score business context; forced high when external lookups are involved.

        Args:
            lowered: Lowercased, stripped task text.
            flags: Situational hints.

        Returns:
            Situational score in [0.0, 10.0].
        """
        score = _SITUATIONAL_BASE

        families = sum(
            1
            for keywords in BUSINESS_FAMILIES.values()
            if any(_contains_word(lowered, kw) for kw in keywords)
        )
        score += families * _FAMILY_WEIGHT

        if flags.has_related_entity_data and _contains_word(lowered, "and"):
            score += 2.0
        if flags.last_action in ("ANALYZE", "CROSS_ENTITY"):
            score += 2.0
        if flags.recent_entities > 1:
            score += 1.0
        if flags.conversation_turns > 5:
            score += 1.0

        if flags.forces_high_capability:
            score = max(score, _FORCED_SITUATIONAL)

        return min(score, 10.0)

    @staticmethod
    def infer_task_type(text: str) -> TaskType:
        """Keyword-based task type for callers that did not tag their task.

        Args:
            text: The task text.

        Returns:
            The first matching TaskType, or TaskType.GENERAL.
        """
        lowered = text.lower()
        for task_type, keywords in TASK_TYPE_KEYWORDS:
            if any(_contains_word(lowered, kw) for kw in keywords):
                return task_type
        return TaskType.GENERAL

    @staticmethod
    def _reasoning(
        text: str, score: ComplexityScore, flags: SituationalFlags
    ) -> tuple[str, ...]:
        """Build human-readable notes for a score."""
        notes = [
            f"Complexity score {score.composite:.1f}/10",
            f"Pattern analysis: {score.pattern:.1f}/10",
            f"Language complexity: {score.linguistic:.1f}/10",
            f"Situational factors: {score.situational:.1f}/10",
        ]
        if score.pattern >= 7.0:
            notes.append("Detected complex operations requiring advanced reasoning")
        elif score.pattern <= 3.0:
            notes.append("Simple, straightforward request detected")
        if flags.forces_high_capability:
            notes.append("Depends on an external system or cross-entity lookup")
        if len(text) > 150:
            notes.append("Long message suggests detailed requirements")
        return tuple(notes)

"""Pydantic models for tenant preference rules and gate decisions."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from aris_routing.preferences.conditions import Condition, parse_condition


class TaskMetadata(BaseModel):
    """Email metadata the preference gate evaluates rule conditions against."""

    model_config = ConfigDict(frozen=True)

    subject: str = ""
    sender: str = ""
    sender_domain: str = ""
    body: str = ""
    email_type: str = ""
    urgency: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resolved_sender_domain(self) -> str:
        """Explicit sender domain, or the part of ``sender`` after the last '@'."""
        if self.sender_domain:
            return self.sender_domain.lower()
        if "@" in self.sender:
            return self.sender.rsplit("@", 1)[1].strip(" >").lower()
        return ""


class RuleEffect(str, Enum):
    """What a matching rule does to the decision."""

    SUPPRESS = "suppress"
    FORCE_ESCALATION = "force_escalation"
    SET_PRIORITY = "set_priority"
    ATTACH_INSTRUCTION = "attach_instruction"


class RuleFamily(str, Enum):
    """Rule families, evaluated in declaration order."""

    EXCLUSION = "exclusion"
    FILTER = "filter"
    RESPONSE = "response"


class Priority(str, Enum):
    """Resolved processing priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class PreferenceRule(BaseModel):
    """One independently toggleable condition -> effect pair.

    The condition may be supplied as text; it is parsed into the AST once,
    at validation time.

    Args:
        id: Stable rule identifier.
        name: Human-readable name used in rationales.
        condition: Parsed condition (or its textual form).
        effect: Effect applied when the condition matches.
        priority: Priority to apply for ``set_priority`` rules.
        instruction: Text to attach for ``attach_instruction`` rules.
        reason: Free-text reason quoted in the rationale.
        active: Inactive rules are skipped entirely.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = Field(min_length=1)
    condition: Condition
    effect: RuleEffect
    priority: Optional[Priority] = None
    instruction: Optional[str] = None
    reason: str = ""
    active: bool = True

    @field_validator("condition", mode="before")
    @classmethod
    def parse_textual_condition(cls, value: Any) -> Any:
        """Parse string conditions into the AST."""
        if isinstance(value, str):
            return parse_condition(value)
        return value


class PreferenceStats(BaseModel):
    """Rule counts for a tenant/user scope."""

    total_rules: int = 0
    active_rules: int = 0
    exclusion_rules: int = 0
    email_filters: int = 0
    response_rules: int = 0


class TenantPreferences(BaseModel):
    """AI processing preferences for a tenant, optionally narrowed to one user.

    Args:
        tenant_id: Tenant identifier.
        user_id: User identifier, or None for the tenant-wide record.
        ai_enabled: Master switch. Disabled means escalate every task.
        exclusion_rules: Short-circuiting rules.
        email_filters: Accumulating filter rules.
        response_rules: Escalation and instruction rules.
        global_instructions: Always appended when present.
        custom_instructions: Always appended when present.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    user_id: Optional[str] = None
    ai_enabled: bool = True
    exclusion_rules: tuple[PreferenceRule, ...] = ()
    email_filters: tuple[PreferenceRule, ...] = ()
    response_rules: tuple[PreferenceRule, ...] = ()
    global_instructions: Optional[str] = None
    custom_instructions: Optional[str] = None

    def rules(self, family: RuleFamily) -> tuple[PreferenceRule, ...]:
        """Rules of one family, in evaluation order."""
        if family is RuleFamily.EXCLUSION:
            return self.exclusion_rules
        if family is RuleFamily.FILTER:
            return self.email_filters
        return self.response_rules

    def stats(self) -> PreferenceStats:
        """Count total and active rules."""
        everything = self.exclusion_rules + self.email_filters + self.response_rules
        return PreferenceStats(
            total_rules=len(everything),
            active_rules=sum(1 for r in everything if r.active),
            exclusion_rules=len(self.exclusion_rules),
            email_filters=len(self.email_filters),
            response_rules=len(self.response_rules),
        )


class PreferenceDecision(BaseModel):
    """Gate outcome for one task, computed before any model is invoked.

    Args:
        should_process: Whether automated processing may proceed.
        should_escalate: Whether the task must be handed to a human.
        suppressed: Whether a rule suppressed processing.
        priority: Resolved priority.
        instructions: Ordered instructions to attach to the completion call.
        fired_rules: Labels of the rules that matched, in evaluation order.
        rationale: Free-text explanation.
    """

    model_config = ConfigDict(frozen=True)

    should_process: bool
    should_escalate: bool = False
    suppressed: bool = False
    priority: Priority = Priority.MEDIUM
    instructions: tuple[str, ...] = ()
    fired_rules: tuple[str, ...] = ()
    rationale: str = ""

    @classmethod
    def disabled(cls, rationale: str = "processing disabled") -> "PreferenceDecision":
        """Safe default when preferences are absent or AI is switched off."""
        return cls(should_process=False, should_escalate=True, rationale=rationale)

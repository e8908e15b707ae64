"""Preference gate: decides whether a task may be processed automatically."""

import logging
from typing import Optional

from aris_routing.preferences.conditions import ConditionFacts
from aris_routing.preferences.models import (
    PreferenceDecision,
    PreferenceRule,
    PreferenceStats,
    Priority,
    RuleEffect,
    RuleFamily,
    TaskMetadata,
    TenantPreferences,
)
from aris_routing.preferences.provider import PreferenceProvider
from aris_routing.routing.models import enum_value

logger = logging.getLogger(__name__)

# Rationale label per family, as shown in fired_rules
FAMILY_LABELS: dict[RuleFamily, str] = {
    RuleFamily.EXCLUSION: "Exclusion",
    RuleFamily.FILTER: "Filter",
    RuleFamily.RESPONSE: "Response Rule",
}

DEFAULT_RATIONALE = "Default processing (no specific rules matched)"


def build_facts(metadata: TaskMetadata, task_type: object = "") -> dict[str, str]:
    """Flatten task metadata into the fact vocabulary conditions evaluate against."""
    return {
        "subject": metadata.subject,
        "sender": metadata.sender,
        "sender_domain": metadata.resolved_sender_domain,
        "body": metadata.body,
        "email_type": metadata.email_type,
        "task_type": enum_value(task_type),
        "urgency": metadata.urgency,
    }


class PreferenceGate:
    """Evaluates tenant rules against task metadata before any model call.

    Families run in strict order:

        exclusion  a matching suppress rule short-circuits; the decision is final
        filter     effects accumulate; several may fire
        response   escalation and instructions
        global     global and custom instructions, always appended

    Missing preferences, a disabled tenant, or a provider failure all yield
    should_process=False, should_escalate=True.

    Args:
        provider: Source of tenant preferences.
    """

    def __init__(self, provider: PreferenceProvider) -> None:
        self._provider = provider

    async def _load(self, tenant_id: str, user_id: Optional[str]) -> Optional[TenantPreferences]:
        try:
            return await self._provider.get(tenant_id, user_id)
        except Exception as e:
            logger.warning(
                f"preference_gate_provider_failed: tenant={tenant_id}, user={user_id}, error={str(e)}"
            )
            return None

    async def evaluate(
        self,
        tenant_id: str,
        user_id: Optional[str],
        metadata: TaskMetadata,
        task_type: object = "",
    ) -> PreferenceDecision:
        """Load preferences for a scope and decide.

        Args:
            tenant_id: Tenant the task belongs to.
            user_id: Caller identity.
            metadata: Email metadata for rule evaluation.
            task_type: Task-type tag.

        Returns:
            PreferenceDecision. Never raises for missing or broken configuration.
        """
        preferences = await self._load(tenant_id, user_id)
        if preferences is None or not preferences.ai_enabled:
            logger.info(
                f"preference_gate_disabled: tenant={tenant_id}, user={user_id}, "
                f"configured={preferences is not None}"
            )
            return PreferenceDecision.disabled()

        return self.decide(preferences, metadata, task_type)

    def decide(
        self,
        preferences: TenantPreferences,
        metadata: TaskMetadata,
        task_type: object = "",
    ) -> PreferenceDecision:
        """Apply a tenant's rules to one task. Pure.

        Args:
            preferences: The tenant's preferences.
            metadata: Email metadata.
            task_type: Task-type tag.

        Returns:
            PreferenceDecision with should_process = not suppressed and not escalated.
        """
        if not preferences.ai_enabled:
            return PreferenceDecision.disabled()

        facts = build_facts(metadata, task_type)
        suppressed = False
        escalate = False
        priority: Optional[Priority] = None
        instructions: list[str] = []
        fired: list[str] = []
        notes: list[str] = []

        for family in (RuleFamily.EXCLUSION, RuleFamily.FILTER, RuleFamily.RESPONSE):
            for rule in preferences.rules(family):
                if not rule.active or not self._matches(rule, facts, preferences.tenant_id):
                    continue

                fired.append(f"{FAMILY_LABELS[family]}: {rule.name}")

                if rule.effect is RuleEffect.SUPPRESS:
                    suppressed = True
                    if family is RuleFamily.EXCLUSION:
                        decision = PreferenceDecision(
                            should_process=False,
                            should_escalate=escalate,
                            suppressed=True,
                            priority=priority or Priority.MEDIUM,
                            instructions=tuple(instructions),
                            fired_rules=tuple(fired),
                            rationale=f"Excluded by rule: {rule.name} - {rule.reason or 'matched'}",
                        )
                        self._log(preferences, decision)
                        return decision
                    notes.append(f"Suppressed by rule: {rule.name}")
                elif rule.effect is RuleEffect.FORCE_ESCALATION:
                    escalate = True
                    notes.append(f"Escalated by rule: {rule.name}")
                elif rule.effect is RuleEffect.SET_PRIORITY:
                    if rule.priority is not None and (
                        priority is None or rule.priority.rank > priority.rank
                    ):
                        priority = rule.priority
                elif rule.effect is RuleEffect.ATTACH_INSTRUCTION:
                    if rule.instruction:
                        instructions.append(rule.instruction)

        for extra in (preferences.global_instructions, preferences.custom_instructions):
            if extra and extra.strip():
                instructions.append(extra.strip())

        rationale_parts = [f"Applied rules: {', '.join(fired)}"] if fired else [DEFAULT_RATIONALE]
        rationale_parts.extend(notes)

        decision = PreferenceDecision(
            should_process=not suppressed and not escalate,
            should_escalate=escalate,
            suppressed=suppressed,
            priority=priority or Priority.MEDIUM,
            instructions=tuple(instructions),
            fired_rules=tuple(fired),
            rationale="; ".join(rationale_parts),
        )
        self._log(preferences, decision)
        return decision

    @staticmethod
    def _matches(rule: PreferenceRule, facts: ConditionFacts, tenant_id: str) -> bool:
        try:
            return rule.condition.evaluate(facts)
        except Exception as e:
            logger.warning(
                f"preference_gate_rule_error: tenant={tenant_id}, rule={rule.name}, error={str(e)}"
            )
            return False

    @staticmethod
    def _log(preferences: TenantPreferences, decision: PreferenceDecision) -> None:
        logger.info(
            f"preference_gate_decided: tenant={preferences.tenant_id}, "
            f"should_process={decision.should_process}, escalate={decision.should_escalate}, "
            f"priority={decision.priority.value}, fired={len(decision.fired_rules)}"
        )

    async def preference_stats(self, tenant_id: str, user_id: Optional[str] = None) -> PreferenceStats:
        """Rule counts for a scope; zeros when nothing is configured."""
        preferences = await self._load(tenant_id, user_id)
        if preferences is None:
            return PreferenceStats()
        return preferences.stats()

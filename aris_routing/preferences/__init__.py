"""Tenant preference rules and the gate that applies them."""

from aris_routing.preferences.conditions import Condition, parse_condition
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

__all__ = [
    "Condition",
    "PreferenceDecision",
    "PreferenceRule",
    "PreferenceStats",
    "Priority",
    "RuleEffect",
    "RuleFamily",
    "TaskMetadata",
    "TenantPreferences",
    "parse_condition",
]

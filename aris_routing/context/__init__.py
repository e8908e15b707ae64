"""Concurrent context assembly from independently failing sources."""

from aris_routing.context.assembler import ContextAssembler, ContextBundle
from aris_routing.context.sources import (
    CallableContextSource,
    ContextFragment,
    ContextSource,
    OutcomeStatus,
    SourceOutcome,
    SourcePriority,
    learned_patterns_source,
    prior_interactions_source,
    related_entity_source,
    tenant_config_source,
)

__all__ = [
    "CallableContextSource",
    "ContextAssembler",
    "ContextBundle",
    "ContextFragment",
    "ContextSource",
    "OutcomeStatus",
    "SourceOutcome",
    "SourcePriority",
    "learned_patterns_source",
    "prior_interactions_source",
    "related_entity_source",
    "tenant_config_source",
]

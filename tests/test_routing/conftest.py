"""Shared fixtures for routing tests."""

import pytest

from aris_routing.routing.complexity_analyzer import TaskComplexityAnalyzer
from aris_routing.routing.model_registry import ModelRegistry
from aris_routing.routing.model_router import ModelRouter
from aris_routing.routing.models import ComplexityScore
from aris_routing.routing.performance_store import PerformanceStore


def _uniform_score(value: float) -> ComplexityScore:
    """ComplexityScore whose composite equals ``value`` (weights sum to 1.0)."""
    return ComplexityScore(pattern=value, linguistic=value, situational=value)


@pytest.fixture
def analyzer() -> TaskComplexityAnalyzer:
    """Return a TaskComplexityAnalyzer."""
    return TaskComplexityAnalyzer()


@pytest.fixture
def registry() -> ModelRegistry:
    """Registry populated with the built-in profiles."""
    return ModelRegistry()


@pytest.fixture
def store() -> PerformanceStore:
    """Empty in-memory performance store."""
    return PerformanceStore()


@pytest.fixture
def router(registry: ModelRegistry, store: PerformanceStore) -> ModelRouter:
    """ModelRouter over the built-in registry and an empty store."""
    return ModelRouter(registry, store)


@pytest.fixture
def simple_score() -> ComplexityScore:
    return _uniform_score(2.0)


@pytest.fixture
def standard_score() -> ComplexityScore:
    return _uniform_score(5.0)


@pytest.fixture
def complex_score() -> ComplexityScore:
    return _uniform_score(8.5)

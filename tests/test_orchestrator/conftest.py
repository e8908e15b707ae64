"""Shared fixtures for orchestrator tests."""

import asyncio
from typing import Optional, Union

import pytest

from aris_routing.completion.models import CompletionRequest, CompletionResponse
from aris_routing.preferences.models import TenantPreferences
from aris_routing.preferences.provider import InMemoryPreferenceProvider

Outcome = Union[CompletionResponse, Exception]


class FakeCompletionProvider:
    """Scripted completion provider that records every request.

    Each call pops the next outcome; an Exception outcome is raised. When the
    script runs out, a default response is returned.
    """

    def __init__(self, outcomes: Optional[list[Outcome]] = None, delay: float = 0.0) -> None:
        self.outcomes: list[Outcome] = list(outcomes or [])
        self.requests: list[CompletionRequest] = []
        self.delay = delay
        self.closed = False

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return CompletionResponse(text="Generated reply", model=request.model)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_completion() -> type[FakeCompletionProvider]:
    """The scripted provider class, for tests that need a custom script."""
    return FakeCompletionProvider


@pytest.fixture
def completion() -> FakeCompletionProvider:
    return FakeCompletionProvider()


@pytest.fixture
def preference_provider() -> InMemoryPreferenceProvider:
    """Tenant t1 with AI enabled and one global instruction."""
    return InMemoryPreferenceProvider(
        [TenantPreferences(tenant_id="t1", global_instructions="Reply in English.")]
    )

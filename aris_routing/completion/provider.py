"""Completion provider contract."""

from typing import Protocol

from aris_routing.completion.models import CompletionRequest, CompletionResponse


class CompletionProvider(Protocol):
    """Black-box text generation endpoint.

    Implementations raise TransientProviderError for retryable failures and
    PermanentProviderError for everything else.
    """

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        ...

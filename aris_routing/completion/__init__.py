"""Completion provider contract and the OpenAI-compatible HTTP client."""

from aris_routing.completion.models import (
    ChatMessage,
    CompletionRequest,
    CompletionResponse,
    CompletionUsage,
)
from aris_routing.completion.openrouter import OpenRouterCompletionProvider
from aris_routing.completion.provider import CompletionProvider

__all__ = [
    "ChatMessage",
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResponse",
    "CompletionUsage",
    "OpenRouterCompletionProvider",
]

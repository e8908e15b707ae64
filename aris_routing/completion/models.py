"""Pydantic models for completion calls."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    """Payload for one completion call.

    Args:
        model: Provider-recognised model name.
        messages: Conversation sent to the model.
        temperature: Sampling temperature.
        max_tokens: Output token ceiling.
        json_response: Ask the provider for a JSON object response.
    """

    model: str = Field(min_length=1)
    messages: list[ChatMessage]
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1500, ge=1)
    json_response: bool = False


class CompletionUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: Optional[float] = None


class CompletionResponse(BaseModel):
    """Generated text plus usage accounting."""

    text: str
    model: str
    usage: CompletionUsage = Field(default_factory=CompletionUsage)
    latency_ms: float = 0.0

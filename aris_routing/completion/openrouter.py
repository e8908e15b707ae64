"""OpenRouter (OpenAI-compatible) chat completions client."""

import logging
import time
from typing import Any, Optional

import httpx

from aris_routing.completion.models import CompletionRequest, CompletionResponse, CompletionUsage
from aris_routing.errors import PermanentProviderError, TransientProviderError

logger = logging.getLogger(__name__)

# Status codes worth one retry
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({408, 429})


def is_transient_status(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


class OpenRouterCompletionProvider:
    """Calls ``{base_url}/chat/completions`` with bearer authentication.

    Errors are mapped onto the engine taxonomy: timeouts, network errors and
    408/429/5xx responses become TransientProviderError; other 4xx responses
    and unparseable bodies become PermanentProviderError.

    Args:
        api_key: Provider API key. Never logged.
        base_url: API base URL.
        timeout_seconds: Per-request timeout.
        client: Optional shared AsyncClient. When omitted the provider owns one.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_seconds: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [m.model_dump() for m in request.messages],
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_response:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one chat completion.

        Args:
            request: The completion payload.

        Returns:
            CompletionResponse with text and usage.

        Raises:
            TransientProviderError: On timeouts, network errors, 408/429/5xx.
            PermanentProviderError: On other HTTP errors or malformed responses.
        """
        start = time.monotonic()
        try:
            response = await self._client.post(
                f"{self._base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=self._payload(request),
            )
        except httpx.TimeoutException as e:
            logger.warning(f"completion_timeout: model={request.model}, error={type(e).__name__}")
            raise TransientProviderError(
                f"Completion request timed out: {type(e).__name__}", model=request.model
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"completion_network_error: model={request.model}, error={str(e)}")
            raise TransientProviderError(
                f"Completion request failed: {str(e)}", model=request.model
            ) from e

        latency_ms = (time.monotonic() - start) * 1000.0

        if response.status_code >= 400:
            error_cls = (
                TransientProviderError
                if is_transient_status(response.status_code)
                else PermanentProviderError
            )
            logger.error(
                f"completion_api_error: model={request.model}, status={response.status_code}, "
                f"transient={error_cls is TransientProviderError}"
            )
            raise error_cls(
                f"Completion API returned HTTP {response.status_code}",
                model=request.model,
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"completion_malformed_response: model={request.model}, error={str(e)}")
            raise PermanentProviderError(
                "Completion API returned an unparseable response",
                model=request.model,
                status_code=response.status_code,
            ) from e

        if not isinstance(content, str):
            raise PermanentProviderError(
                "Completion API returned non-text content",
                model=request.model,
                status_code=response.status_code,
            )

        raw_usage = data.get("usage") or {}
        usage = CompletionUsage(
            prompt_tokens=int(raw_usage.get("prompt_tokens") or 0),
            completion_tokens=int(raw_usage.get("completion_tokens") or 0),
            total_tokens=int(raw_usage.get("total_tokens") or 0),
            cost_usd=raw_usage.get("cost"),
        )

        logger.info(
            f"completion_success: model={data.get('model', request.model)}, "
            f"total_tokens={usage.total_tokens}, latency_ms={latency_ms:.0f}"
        )
        return CompletionResponse(
            text=content,
            model=data.get("model") or request.model,
            usage=usage,
            latency_ms=latency_ms,
        )

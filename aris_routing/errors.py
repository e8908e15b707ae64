"""Exception hierarchy for the task routing engine.

Only input errors and permanent provider errors are meant to reach callers
as hard failures. Everything else degrades and is recorded in result metadata.
"""

from typing import Optional


class RoutingEngineError(Exception):
    """Base class for all routing engine errors."""


class TaskInputError(RoutingEngineError):
    """A TaskRequest was malformed and was rejected before any work began."""


class UnknownModelError(RoutingEngineError, ValueError):
    """A model id was not found in the registry."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown model id: {model_id}")
        self.model_id = model_id


class ProviderError(RoutingEngineError):
    """The completion provider failed.

    Args:
        message: Human-readable failure description.
        model: Provider model name the call was made against.
        status_code: HTTP status code when the failure came from a response.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.model = model
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Retryable provider failure (timeout, network error, 408/429/5xx)."""


class PermanentProviderError(ProviderError):
    """Non-retryable provider failure (bad request, auth, unparseable output)."""


class TaskTimeoutError(RoutingEngineError, TimeoutError):
    """The caller-supplied deadline elapsed before the task completed."""

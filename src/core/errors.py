# src/core/errors.py — v1
"""Error taxonomy of the query pipeline.

Every error carries the status code the HTTP layer should answer with and a
``to_dict()`` body. Fallbacks are not errors: they are reported through
``FallbackReason`` on stage outcomes and response stats.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class QueryPipelineError(Exception):
    """Base class for all errors surfaced by the query pipeline."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class RequestValidationError(QueryPipelineError):
    """Bad input shape. Never retried."""

    status_code = 400

    def __init__(self, message: str, field: str, issue: str, **details: Any) -> None:
        super().__init__(message, field=field, issue=issue, **details)
        self.field = field
        self.issue = issue


class RateLimitExceeded(QueryPipelineError):
    """A provider's request budget for the current window is exhausted."""

    status_code = 429

    def __init__(self, provider_id: str, retry_after_s: float) -> None:
        super().__init__(
            f"Rate limit exceeded for provider '{provider_id}', "
            f"retry after {retry_after_s:.2f}s",
            provider_id=provider_id,
            retry_after_s=round(retry_after_s, 3),
        )
        self.provider_id = provider_id
        self.retry_after_s = retry_after_s


class DeadlineExceeded(QueryPipelineError, TimeoutError):
    """The overall request deadline ran out."""

    status_code = 504

    def __init__(self, stage: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Deadline exceeded during '{stage}'",
            stage=stage,
        )
        self.stage = stage


class ProviderError(QueryPipelineError):
    """An upstream provider kept failing after retries were exhausted."""

    status_code = 502

    def __init__(
        self,
        provider_id: str,
        message: str,
        attempts: int = 0,
        error_type: str = "unknown",
    ) -> None:
        super().__init__(
            message,
            provider_id=provider_id,
            attempts=attempts,
            error_type=error_type,
        )
        self.provider_id = provider_id
        self.attempts = attempts
        self.error_type = error_type


class FallbackReason(str, Enum):
    """Why a stage degraded to its deterministic fallback."""

    PROVIDER_DISABLED = "provider_disabled"
    PROVIDER_ERROR = "provider_error"
    DIMENSION_MISMATCH = "dimension_mismatch"
    NO_MATCHING_CONTENT = "no_matching_content"


def status_code_for(error: BaseException) -> int:
    """Map any exception raised by a pipeline run to a response status."""
    if isinstance(error, QueryPipelineError):
        return error.status_code
    if isinstance(error, TimeoutError):
        return 504
    return 500

# src/resilience/retry.py — v2
"""Retry policy with exponential backoff, jitter and error classification.

Only transient failures (network, timeouts, 5xx, provider throttling) are
retried. Bad input and auth failures propagate on the first attempt.
"""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})
NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 409, 413, 422})

RETRYABLE_ERROR_TYPES = frozenset({"rate_limit", "timeout", "server_error", "network"})


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule and attempt bound.

    ``max_attempts`` counts the first call, so 3 means one call plus at most
    two retries.
    """

    max_attempts: int = 3
    base_delay_s: float = 0.5
    backoff_factor: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True

    def delay_for(self, retry_index: int, rng: random.Random | None = None) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        delay = self.base_delay_s * (self.backoff_factor ** retry_index)
        if self.jitter:
            delay *= 0.5 + (rng or random).random()  # noqa: S311
        return min(delay, self.max_delay_s)

    @classmethod
    def from_settings(cls, settings: object) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,  # type: ignore[attr-defined]
            base_delay_s=settings.retry_base_delay_s,  # type: ignore[attr-defined]
            backoff_factor=settings.retry_backoff_factor,  # type: ignore[attr-defined]
            max_delay_s=settings.retry_max_delay_s,  # type: ignore[attr-defined]
            jitter=settings.retry_jitter,  # type: ignore[attr-defined]
        )


def _status_code(error: BaseException) -> int | None:
    for attr in ("status_code", "status", "http_status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_error(error: BaseException) -> str:
    """Classify an exception into a retry error type."""
    status = _status_code(error)
    if status is not None:
        if status == 429:
            return "rate_limit"
        if status in (408, 504):
            return "timeout"
        if status >= 500:
            return "server_error"
        if status in (401, 403):
            return "auth"
        if status in NON_RETRYABLE_STATUS_CODES or 400 <= status < 500:
            return "bad_request"

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return "timeout"
    if isinstance(error, (ConnectionError, OSError)):
        return "network"
    if isinstance(error, (ValueError, TypeError, KeyError)):
        return "bad_request"

    name = type(error).__name__.lower()
    msg = str(error).lower()
    if "ratelimit" in name or re.search(r"\b429\b|rate limit|too many requests", msg):
        return "rate_limit"
    if "timeout" in name or "timed out" in msg or "timeout" in msg:
        return "timeout"
    if "connection" in name or "connection" in msg:
        return "network"
    if "authentication" in name or "permission" in name or re.search(r"\b40[13]\b", msg):
        return "auth"
    if re.search(r"\b50[0234]\b", msg) or "server error" in msg or "unavailable" in msg:
        return "server_error"
    return "unknown"


def is_retryable(error: BaseException) -> bool:
    return classify_error(error) in RETRYABLE_ERROR_TYPES

# src/resilience/executor.py — v2
"""Rate-limited, deadline-aware retry wrapper around external provider calls.

``ProviderExecutor.execute(provider_id, fn, deadline)`` is the single seam
through which the embedding, retrieval and generation stages reach their
providers. Each attempt reserves one rate-limit slot, so retries are charged
but a single attempt is never charged twice.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from insurag.core.deadline import Deadline
from insurag.core.errors import DeadlineExceeded, ProviderError, RateLimitExceeded
from insurag.resilience.rate_limiter import SlidingWindowRateLimiter
from insurag.resilience.retry import RetryPolicy, classify_error, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tolerance for asyncio timers firing slightly before their due time.
TIMER_SLACK_S = 0.01


@dataclass
class RetryableCall:
    """Runtime descriptor of one stage invocation. Discarded when it ends."""

    provider_id: str
    deadline: Deadline
    attempt: int = 0
    next_delay: float = 0.0
    last_error: BaseException | None = None


class ProviderExecutor:
    """Run provider calls under a rate limit, retry policy and deadline.

    Args:
        rate_limiter: Shared per-provider sliding-window limiter.
        policy: Default retry policy.
        policies: Per-provider overrides of ``policy``.
        sleep: Async sleep (injectable for tests).
        rng: Random source for jitter (injectable for tests).
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        policy: RetryPolicy | None = None,
        policies: dict[str, RetryPolicy] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._policy = policy or RetryPolicy()
        self._policies = policies or {}
        self._sleep = sleep
        self._rng = rng

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter | None:
        return self._rate_limiter

    def policy_for(self, provider_id: str) -> RetryPolicy:
        return self._policies.get(provider_id, self._policy)

    async def execute(
        self,
        provider_id: str,
        fn: Callable[[], Awaitable[T]],
        deadline: Deadline,
    ) -> T:
        """Call ``fn`` until it succeeds, fails permanently, or runs out of budget.

        Raises:
            DeadlineExceeded: The deadline ran out before or during an attempt,
                or the next backoff delay would outlive it.
            RateLimitExceeded: The provider's window is full and the policy
                does not allow waiting long enough.
            ProviderError: Retryable failures persisted for every attempt.
            Exception: Non-retryable provider errors propagate unchanged.
        """
        policy = self.policy_for(provider_id)
        call = RetryableCall(provider_id=provider_id, deadline=deadline)

        while True:
            deadline.ensure(provider_id)
            if self._rate_limiter is not None:
                await self._rate_limiter.acquire(provider_id, deadline)
            remaining = deadline.ensure(provider_id)
            call.attempt += 1
            loop = asyncio.get_running_loop()
            started = loop.time()

            try:
                return await asyncio.wait_for(fn(), timeout=remaining)
            except (DeadlineExceeded, RateLimitExceeded):
                raise
            except asyncio.TimeoutError as e:
                # The attempt timeout is the remaining budget; the timer may fire
                # a clock tick early, so elapsed time decides, not expired.
                if deadline.expired or loop.time() - started >= remaining - TIMER_SLACK_S:
                    raise DeadlineExceeded(
                        provider_id,
                        f"Provider '{provider_id}' did not answer within the request deadline",
                    ) from e
                call.last_error = e
            except Exception as e:
                if not is_retryable(e):
                    logger.warning(
                        "Provider '%s' failed with non-retryable %s: %s",
                        provider_id, classify_error(e), e,
                    )
                    raise
                call.last_error = e

            error_type = classify_error(call.last_error)
            if call.attempt >= policy.max_attempts:
                raise ProviderError(
                    provider_id,
                    f"Provider '{provider_id}' failed after {call.attempt} attempts "
                    f"({error_type}): {call.last_error}",
                    attempts=call.attempt,
                    error_type=error_type,
                ) from call.last_error

            call.next_delay = policy.delay_for(call.attempt - 1, self._rng)
            if not deadline.allows(call.next_delay):
                raise DeadlineExceeded(
                    provider_id,
                    f"Retry of '{provider_id}' in {call.next_delay:.2f}s would exceed "
                    f"the request deadline ({deadline.remaining():.2f}s left)",
                ) from call.last_error

            logger.warning(
                "Provider '%s' — %s (attempt %d/%d), retrying in %.2fs",
                provider_id, error_type, call.attempt, policy.max_attempts, call.next_delay,
            )
            await self._sleep(call.next_delay)


def build_executor(settings: Any) -> ProviderExecutor:
    """Wire a ProviderExecutor from application settings."""
    limiter = SlidingWindowRateLimiter(
        limits=settings.rate_limits,
        window_s=settings.rate_limit_window_s,
        policy=settings.rate_limit_policy,
        max_wait_s=settings.rate_limit_max_wait_s,
    )
    return ProviderExecutor(
        rate_limiter=limiter,
        policy=RetryPolicy.from_settings(settings),
    )

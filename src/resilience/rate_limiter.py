# src/resilience/rate_limiter.py — v1
"""Per-provider sliding-window request limiter.

Each provider gets at most ``limit`` call starts per rolling ``window_s``.
When the window is full the caller either waits (bounded by
``max_wait_s`` and its own deadline) or fails fast, depending on the policy.
Queueing is never unbounded.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Awaitable, Callable, Literal

from insurag.core.deadline import Deadline
from insurag.core.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

RateLimitPolicy = Literal["wait", "fail_fast"]


class SlidingWindowRateLimiter:
    """Thread-safe sliding-window counters keyed by provider id.

    Args:
        limits: Max calls per window for each provider id. Providers not in
            the mapping are unthrottled.
        window_s: Window length in seconds.
        policy: "wait" queues up to ``max_wait_s``; "fail_fast" raises at once.
        max_wait_s: Upper bound on a single wait under the "wait" policy.
        clock: Monotonic clock (injectable for tests).
        sleep: Async sleep (injectable for tests).
    """

    def __init__(
        self,
        limits: dict[str, int],
        window_s: float = 60.0,
        policy: RateLimitPolicy = "wait",
        max_wait_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._limits = dict(limits)
        self._window_s = window_s
        self._policy = policy
        self._max_wait_s = max_wait_s
        self._clock = clock
        self._sleep = sleep
        self._calls: dict[str, deque[float]] = {p: deque() for p in self._limits}
        self._lock = threading.Lock()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    async def acquire(self, provider_id: str, deadline: Deadline | None = None) -> None:
        """Reserve one call slot for ``provider_id``.

        Raises:
            RateLimitExceeded: If the window is full and waiting is not allowed,
                would exceed ``max_wait_s``, or would outlive the deadline.
        """
        if provider_id not in self._limits:
            return

        waited = 0.0
        while True:
            wait_s = self._try_reserve(provider_id)
            if wait_s is None:
                if waited:
                    logger.debug(
                        "Rate limit slot for '%s' acquired after %.2fs", provider_id, waited
                    )
                return

            if self._policy == "fail_fast":
                logger.warning("Rate limit hit for '%s' (fail_fast)", provider_id)
                raise RateLimitExceeded(provider_id, wait_s)

            budget = self._max_wait_s - waited
            if deadline is not None:
                budget = min(budget, deadline.remaining())
            if wait_s > budget:
                logger.warning(
                    "Rate limit hit for '%s': need %.2fs, budget %.2fs",
                    provider_id, wait_s, max(budget, 0.0),
                )
                raise RateLimitExceeded(provider_id, wait_s)

            logger.debug("Rate limit hit for '%s', waiting %.2fs", provider_id, wait_s)
            await self._sleep(wait_s)
            waited += wait_s

    def _try_reserve(self, provider_id: str) -> float | None:
        """Record a call if the window has room; otherwise return the wait needed."""
        now = self._clock()
        limit = self._limits[provider_id]
        with self._lock:
            calls = self._calls[provider_id]
            cutoff = now - self._window_s
            while calls and calls[0] <= cutoff:
                calls.popleft()
            if len(calls) < limit:
                calls.append(now)
                return None
            if not calls:
                return self._window_s
            return max(calls[0] + self._window_s - now, 0.0)

    def in_window(self, provider_id: str) -> int:
        """Number of calls currently counted in the window for ``provider_id``."""
        if provider_id not in self._limits:
            return 0
        now = self._clock()
        with self._lock:
            calls = self._calls[provider_id]
            cutoff = now - self._window_s
            return sum(1 for t in calls if t > cutoff)

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {
            provider: {"limit": limit, "in_window": self.in_window(provider)}
            for provider, limit in self._limits.items()
        }

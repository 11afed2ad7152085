# src/core/deadline.py — v1
"""Shared time budget for one pipeline run.

A single ``Deadline`` is created when a request enters the pipeline; every
stage reads the *remaining* budget from it rather than owning a fixed
allowance.
"""

from __future__ import annotations

import time
from typing import Callable

from insurag.core.errors import DeadlineExceeded


class Deadline:
    """Monotonic deadline with remaining-time accounting."""

    def __init__(
        self,
        budget_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._budget_s = budget_s
        self._start = clock()
        self._expires_at = self._start + budget_s

    @property
    def budget_s(self) -> float:
        return self._budget_s

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - self._clock())

    def elapsed_ms(self) -> float:
        return (self._clock() - self._start) * 1000.0

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def ensure(self, stage: str) -> float:
        """Return the remaining budget, or raise if nothing is left for ``stage``."""
        remaining = self.remaining()
        if remaining <= 0:
            raise DeadlineExceeded(stage)
        return remaining

    def allows(self, delay_s: float) -> bool:
        """Whether sleeping ``delay_s`` would still leave budget afterwards."""
        return delay_s < self.remaining()

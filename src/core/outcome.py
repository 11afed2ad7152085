# src/core/outcome.py — v1
"""Tagged result returned uniformly by every pipeline stage.

A stage never raises to the orchestrator; it returns one of

- ``StageOutcome.success(value)``
- ``StageOutcome.fallback(value, reason)`` — degraded but usable value
- ``StageOutcome.failed(error)``

so sequencing code has a single shape regardless of which stage degraded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from insurag.core.errors import FallbackReason

T = TypeVar("T")

OutcomeStatus = Literal["success", "fallback", "failed"]


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    status: OutcomeStatus
    value: T | None = None
    reason: FallbackReason | None = None
    error: BaseException | None = None

    @classmethod
    def success(cls, value: T) -> StageOutcome[T]:
        return cls(status="success", value=value)

    @classmethod
    def fallback(cls, value: T, reason: FallbackReason) -> StageOutcome[T]:
        return cls(status="fallback", value=value, reason=reason)

    @classmethod
    def failed(cls, error: BaseException) -> StageOutcome[T]:
        return cls(status="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def used_fallback(self) -> bool:
        return self.status == "fallback"

    def unwrap(self) -> T:
        """Return the value, re-raising the stored error for failed outcomes."""
        if self.status == "failed":
            assert self.error is not None
            raise self.error
        return self.value  # type: ignore[return-value]

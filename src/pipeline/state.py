# src/pipeline/state.py — v2
"""Per-request pipeline state machine.

    NORMALIZING → CACHE_LOOKUP → DONE                          (hit)
    NORMALIZING → CACHE_LOOKUP → EMBEDDING → RETRIEVING
                → GENERATING → CACHE_WRITE → DONE              (miss)
    any non-terminal state → FAILED

``PipelineRun`` is request-local; it is never shared between requests.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PipelineStage(str, Enum):
    NORMALIZING = "normalizing"
    CACHE_LOOKUP = "cache_lookup"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    CACHE_WRITE = "cache_write"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineStage.DONE, PipelineStage.FAILED)


_ALLOWED: dict[PipelineStage, frozenset[PipelineStage]] = {
    PipelineStage.NORMALIZING: frozenset({PipelineStage.CACHE_LOOKUP}),
    PipelineStage.CACHE_LOOKUP: frozenset({PipelineStage.EMBEDDING, PipelineStage.DONE}),
    PipelineStage.EMBEDDING: frozenset({PipelineStage.RETRIEVING}),
    PipelineStage.RETRIEVING: frozenset({PipelineStage.GENERATING}),
    PipelineStage.GENERATING: frozenset({PipelineStage.CACHE_WRITE, PipelineStage.DONE}),
    PipelineStage.CACHE_WRITE: frozenset({PipelineStage.DONE}),
    PipelineStage.DONE: frozenset(),
    PipelineStage.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised on a transition the state machine does not allow."""


class PipelineRun(BaseModel):
    """Mutable record of one request flowing through the pipeline."""

    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    stage: PipelineStage = PipelineStage.NORMALIZING
    history: list[PipelineStage] = Field(
        default_factory=lambda: [PipelineStage.NORMALIZING]
    )
    stage_started_at: float = 0.0
    durations_ms: dict[str, float] = Field(default_factory=dict)
    fallback_reasons: dict[str, str] = Field(default_factory=dict)
    failed_stage: PipelineStage | None = None
    error: dict[str, Any] | None = None

    def transition(self, target: PipelineStage) -> None:
        if target == PipelineStage.FAILED:
            if self.stage.terminal:
                raise InvalidTransitionError(f"{self.stage.value} is terminal")
            self.failed_stage = self.stage
        elif target not in _ALLOWED[self.stage]:
            raise InvalidTransitionError(
                f"Cannot transition from {self.stage.value} to {target.value}"
            )
        self.stage = target
        self.history.append(target)

    @property
    def done(self) -> bool:
        return self.stage == PipelineStage.DONE

# src/logging/context.py — v2
"""Contextual logging support — attach request_id, stage and fingerprint to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging — set per query execution.
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_fingerprint: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "fingerprint", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    fingerprint: str | None = None
    stage: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        fingerprint=_fingerprint.get(),
        stage=_stage.get(),
    )


def set_request_context(request_id: str, fingerprint: str | None = None) -> None:
    """Set request-level context (called once per pipeline run)."""
    _request_id.set(request_id)
    _fingerprint.set(fingerprint)


def set_fingerprint_context(fingerprint: str) -> None:
    """Attach the request fingerprint once normalization succeeded."""
    _fingerprint.set(fingerprint)


def set_stage_context(stage: str | None) -> None:
    """Set stage-level context (called on every pipeline transition)."""
    _stage.set(stage)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _fingerprint.set(None)
    _stage.set(None)

# src/tracking/models.py — v2
"""Analytics domain models: AnalyticsSample, LatencySummary, EndpointStats, MetricsSnapshot."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AnalyticsSample(BaseModel):
    """One timed observation for an endpoint or pipeline stage."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    status_code: int
    duration_ms: float
    timestamp: datetime
    outcome: str = "ok"
    error_type: str | None = None

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class LatencySummary(BaseModel):
    """Aggregates over the retained timing ring."""

    samples: int = 0
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class EndpointStats(BaseModel):
    """Per-endpoint counters plus latency over the retained ring."""

    count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    by_status_code: dict[int, int] = Field(default_factory=dict)
    by_outcome: dict[str, int] = Field(default_factory=dict)
    latency_ms: LatencySummary = Field(default_factory=LatencySummary)


class MetricsSnapshot(BaseModel):
    """Point-in-time view for the operator metrics surface."""

    started_at: datetime
    uptime_s: float
    total_samples: int
    total_errors: int
    error_rate: float
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    endpoints: dict[str, EndpointStats] = Field(default_factory=dict)

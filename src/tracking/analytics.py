# src/tracking/analytics.py — v1
"""Process-wide analytics recorder.

Counters are cumulative since the last reset; latency percentiles are
computed on read over a fixed-size ring of the most recent samples per
endpoint (oldest overwritten first). State changes only through ``record``
and the operator ``reset``.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from insurag.tracking.models import (
    AnalyticsSample,
    EndpointStats,
    LatencySummary,
    MetricsSnapshot,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def percentile(sorted_values: list[float], pct: float) -> float:
    """Nearest-rank percentile of an ascending list (0 when empty)."""
    if not sorted_values:
        return 0.0
    rank = math.ceil(pct / 100.0 * len(sorted_values)) - 1
    return sorted_values[min(max(rank, 0), len(sorted_values) - 1)]


@dataclass
class _EndpointState:
    ring: deque[float]
    count: int = 0
    error_count: int = 0
    by_status: Counter = field(default_factory=Counter)
    by_outcome: Counter = field(default_factory=Counter)


class AnalyticsRecorder:
    """Thread-safe counters and timing rings keyed by endpoint.

    Args:
        ring_size: Samples retained per endpoint for percentiles.
        clock: Wall clock (injectable for tests).
    """

    def __init__(
        self,
        ring_size: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if ring_size <= 0:
            raise ValueError("ring_size must be > 0")
        self._ring_size = ring_size
        self._clock = clock
        self._lock = threading.Lock()
        self._endpoints: dict[str, _EndpointState] = {}
        self._errors_by_type: Counter = Counter()
        self._started_at = clock()

    def now(self) -> datetime:
        return self._clock()

    def record(
        self,
        endpoint: str,
        status_code: int,
        duration_ms: float,
        outcome: str = "ok",
        error_type: str | None = None,
    ) -> AnalyticsSample:
        sample = AnalyticsSample(
            endpoint=endpoint,
            status_code=status_code,
            duration_ms=max(duration_ms, 0.0),
            timestamp=self._clock(),
            outcome=outcome,
            error_type=error_type,
        )
        self.add(sample)
        return sample

    def add(self, sample: AnalyticsSample) -> None:
        with self._lock:
            state = self._endpoints.get(sample.endpoint)
            if state is None:
                state = _EndpointState(ring=deque(maxlen=self._ring_size))
                self._endpoints[sample.endpoint] = state
            state.ring.append(sample.duration_ms)
            state.count += 1
            state.by_status[sample.status_code] += 1
            state.by_outcome[sample.outcome] += 1
            if sample.is_error:
                state.error_count += 1
                self._errors_by_type[sample.error_type or f"HTTP{sample.status_code}"] += 1

    def endpoint_stats(self, endpoint: str) -> EndpointStats:
        with self._lock:
            state = self._endpoints.get(endpoint)
            if state is None:
                return EndpointStats()
            return _summarize(state)

    def snapshot(self) -> MetricsSnapshot:
        now = self._clock()
        with self._lock:
            endpoints = {name: _summarize(s) for name, s in self._endpoints.items()}
            errors_by_type = dict(self._errors_by_type)
            started_at = self._started_at

        total = sum(e.count for e in endpoints.values())
        errors = sum(e.error_count for e in endpoints.values())
        return MetricsSnapshot(
            started_at=started_at,
            uptime_s=(now - started_at).total_seconds(),
            total_samples=total,
            total_errors=errors,
            error_rate=errors / total if total else 0.0,
            errors_by_type=errors_by_type,
            endpoints=endpoints,
        )

    def reset(self) -> None:
        """Operator action: drop all counters and samples."""
        with self._lock:
            self._endpoints.clear()
            self._errors_by_type.clear()
            self._started_at = self._clock()
        logger.info("Analytics reset")


def _summarize(state: _EndpointState) -> EndpointStats:
    values = sorted(state.ring)
    latency = LatencySummary()
    if values:
        latency = LatencySummary(
            samples=len(values),
            avg=sum(values) / len(values),
            min=values[0],
            max=values[-1],
            p50=percentile(values, 50),
            p95=percentile(values, 95),
            p99=percentile(values, 99),
        )
    return EndpointStats(
        count=state.count,
        error_count=state.error_count,
        error_rate=state.error_count / state.count if state.count else 0.0,
        by_status_code=dict(state.by_status),
        by_outcome=dict(state.by_outcome),
        latency_ms=latency,
    )

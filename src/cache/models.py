# src/cache/models.py — v2
"""Cache domain models: CacheEntry, CacheStats."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from insurag.core.models import SourceRef


class CacheEntry(BaseModel):
    """Answer bundle stored under a request fingerprint. Never mutated."""

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    answer: str
    sources: list[SourceRef] = Field(default_factory=list)
    stage_timings_ms: dict[str, float] = Field(default_factory=dict)
    embedding_fallback: bool = False
    generation_fallback: bool = False
    fallback_reasons: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls,
        fingerprint: str,
        answer: str,
        sources: list[SourceRef],
        created_at: datetime,
        ttl_s: float,
        **kwargs: object,
    ) -> CacheEntry:
        """Build an entry whose expiry is ``created_at + ttl_s``."""
        return cls(
            fingerprint=fingerprint,
            answer=answer,
            sources=sources,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_s),
            **kwargs,  # type: ignore[arg-type]
        )

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at


class CacheStats(BaseModel):
    """Counters exposed to the metrics surface."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    sets: int = 0
    deletes: int = 0
    size: int = 0
    max_entries: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

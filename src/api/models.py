# src/api/models.py — v2
"""API-level models: QueryRequest, QueryStats, QueryResponse.

``QueryRequest`` mirrors the request surface exactly as the HTTP layer
receives it (camelCase aliases accepted); nothing is validated here beyond
shape, the normalizer owns that.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from insurag.core.models import SourceRef


class QueryRequest(BaseModel):
    """Raw query parameters."""

    model_config = ConfigDict(populate_by_name=True)

    query_text: Any = Field(default=None, alias="queryText")
    category_filter: Any = Field(default=None, alias="categoryFilter")
    result_count: Any = Field(default=None, alias="resultCount")
    similarity_threshold: Any = Field(default=None, alias="similarityThreshold")


class QueryStats(BaseModel):
    """Per-request metadata returned next to the answer."""

    request_id: str
    fingerprint: str
    cache_hit: bool
    applied_filter: list[str] = Field(default_factory=list)
    result_count: int
    similarity_floor: float
    candidate_count: int = 0
    durations_ms: dict[str, float] = Field(default_factory=dict)
    total_ms: float = 0.0
    embedding_fallback: bool = False
    generation_fallback: bool = False
    fallback_reasons: dict[str, str] = Field(default_factory=dict)

    @property
    def fallback_used(self) -> bool:
        return self.embedding_fallback or self.generation_fallback

    def model_dump_public(self) -> dict[str, Any]:
        data = self.model_dump()
        data["fallback_used"] = self.fallback_used
        return data


class QueryResponse(BaseModel):
    """Return value of QueryService.query()."""

    answer: str
    sources: list[SourceRef] = Field(default_factory=list)
    stats: QueryStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [s.model_dump() for s in self.sources],
            "stats": self.stats.model_dump_public(),
        }

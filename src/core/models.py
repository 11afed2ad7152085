# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# === REQUEST ===


class NormalizedRequest(BaseModel):
    """Canonical form of one incoming query. Created once, never mutated."""

    model_config = ConfigDict(frozen=True)

    query_text: str = Field(min_length=1)
    filters: frozenset[str] = frozenset()
    result_count: int = Field(ge=1)
    similarity_floor: float = Field(ge=0.0, le=1.0)
    fingerprint: str

    @property
    def sorted_filters(self) -> list[str]:
        return sorted(self.filters)

    @property
    def has_filter(self) -> bool:
        return bool(self.filters)


# === RETRIEVAL ===


class RetrievalCandidate(BaseModel):
    """One ranked fragment returned by the vector store for a single run."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    insurer_id: str
    category: str
    text: str
    similarity: float = Field(ge=0.0, le=1.0)


class SourceRef(BaseModel):
    """Citation of a fragment that backed an answer."""

    model_config = ConfigDict(frozen=True)

    fragment_id: str
    insurer_id: str
    category: str
    similarity: float
    preview: str

    @classmethod
    def from_candidate(
        cls, candidate: RetrievalCandidate, preview_chars: int = 200
    ) -> SourceRef:
        text = candidate.text
        preview = text if len(text) <= preview_chars else text[:preview_chars] + "..."
        return cls(
            fragment_id=candidate.fragment_id,
            insurer_id=candidate.insurer_id,
            category=candidate.category,
            similarity=candidate.similarity,
            preview=preview,
        )

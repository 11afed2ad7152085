# src/stages/retrieval.py — v1
"""Retrieval stage: query vector + category filter → ranked candidates.

Filtering happens inside the store before ranking. Afterwards only the
similarity floor is applied here; an empty result is a valid outcome.
"""

from __future__ import annotations

import logging

from insurag.core.deadline import Deadline
from insurag.core.models import RetrievalCandidate
from insurag.core.outcome import StageOutcome
from insurag.rag.vector_store.base_vector_store import BaseVectorStore
from insurag.resilience.executor import ProviderExecutor

logger = logging.getLogger(__name__)

PROVIDER_ID = "retrieval"


def apply_floor(
    candidates: list[RetrievalCandidate], floor: float
) -> list[RetrievalCandidate]:
    """Drop candidates below ``floor`` and order by similarity descending.

    The sort is stable, so ties keep the order the store returned them in.
    """
    kept = [c for c in candidates if c.similarity >= floor]
    return sorted(kept, key=lambda c: c.similarity, reverse=True)


class RetrievalStage:
    """Filtered similarity search through the provider executor."""

    def __init__(
        self,
        vector_store: BaseVectorStore,
        executor: ProviderExecutor,
        collection: str = "insurance_fragments",
    ) -> None:
        self._store = vector_store
        self._executor = executor
        self._collection = collection

    @property
    def vector_store(self) -> BaseVectorStore:
        return self._store

    async def retrieve(
        self,
        vector: list[float],
        filters: frozenset[str],
        count: int,
        floor: float,
        deadline: Deadline,
    ) -> StageOutcome[list[RetrievalCandidate]]:
        categories = sorted(filters)
        store = self._store
        try:
            raw = await self._executor.execute(
                PROVIDER_ID,
                lambda: store.query(
                    self._collection,
                    vector,
                    top_k=count,
                    categories=categories or None,
                    min_similarity=floor,
                ),
                deadline,
            )
        except Exception as e:
            logger.error("Retrieval failed: %s", e)
            return StageOutcome.failed(e)

        candidates = apply_floor(raw, floor)[:count]
        if not candidates:
            logger.info(
                "No fragments above floor %.2f (filters=%s)", floor, categories or "any"
            )
        return StageOutcome.success(candidates)

# src/stages/embedding.py — v1
"""Embedding stage: question text → fixed-length vector.

Over-long input is cut at a fixed character boundary (logged, not an error).
When the provider is disabled, misconfigured or keeps failing, the stage
degrades to a deterministic hash pseudo-embedding and reports the fallback.
Deadline and rate-limit exhaustion are never masked by the fallback.
"""

from __future__ import annotations

import logging

from insurag.core.deadline import Deadline
from insurag.core.errors import DeadlineExceeded, FallbackReason, RateLimitExceeded
from insurag.core.outcome import StageOutcome
from insurag.rag.embeddings.base_embedder import BaseEmbedder
from insurag.rag.embeddings.hash_embedder import hash_embedding
from insurag.resilience.executor import ProviderExecutor

logger = logging.getLogger(__name__)

PROVIDER_ID = "embedding"


def truncate_input(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` characters; identical input, identical cut."""
    if len(text) <= max_chars:
        return text
    logger.warning(
        "Embedding input truncated from %d to %d characters", len(text), max_chars
    )
    return text[:max_chars]


class EmbeddingStage:
    """Embed one query through the provider executor.

    Args:
        embedder: Real provider, or None when disabled.
        executor: Rate-limited retry wrapper.
        dimensions: Vector length agreed with the vector store.
        max_input_chars: Truncation boundary.
    """

    def __init__(
        self,
        embedder: BaseEmbedder | None,
        executor: ProviderExecutor,
        dimensions: int = 1536,
        max_input_chars: int = 8000,
    ) -> None:
        self._embedder = embedder
        self._executor = executor
        self._dimensions = dimensions
        self._max_input_chars = max_input_chars

    @property
    def enabled(self) -> bool:
        return self._embedder is not None

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def embedder(self) -> BaseEmbedder | None:
        return self._embedder

    async def embed(self, text: str, deadline: Deadline) -> StageOutcome[list[float]]:
        text = truncate_input(text, self._max_input_chars)

        if self._embedder is None:
            return self._fallback(text, FallbackReason.PROVIDER_DISABLED)

        embedder = self._embedder
        try:
            vector = await self._executor.execute(
                PROVIDER_ID, lambda: embedder.embed_query(text), deadline
            )
        except (DeadlineExceeded, RateLimitExceeded) as e:
            return StageOutcome.failed(e)
        except Exception as e:
            logger.warning("Embedding provider unavailable, using hash fallback: %s", e)
            return self._fallback(text, FallbackReason.PROVIDER_ERROR)

        if len(vector) != self._dimensions:
            logger.error(
                "Embedding provider returned %d dimensions, expected %d",
                len(vector), self._dimensions,
            )
            return self._fallback(text, FallbackReason.DIMENSION_MISMATCH)

        return StageOutcome.success(list(vector))

    def _fallback(self, text: str, reason: FallbackReason) -> StageOutcome[list[float]]:
        logger.info("Embedding fallback (%s)", reason.value)
        return StageOutcome.fallback(hash_embedding(text, self._dimensions), reason)

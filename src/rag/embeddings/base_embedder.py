# src/rag/embeddings/base_embedder.py — v3
"""Abstract embeddings interface.

Fragments (policy terms, tariff tables, coverage notes) are embedded once
when the store is seeded; customer questions are embedded per request by
the embedding stage. Both must land in the same vector space, so one
embedder instance serves both sides.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseEmbedder(ABC):
    """Unified interface for all embedding providers."""

    @abstractmethod
    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of insurance fragments, one vector per fragment."""

    @abstractmethod
    async def embed_query(self, query: str) -> list[float]:
        """Embed a customer question for similarity search over fragments.

        The caller truncates over-length input beforehand; implementations
        should not silently cut it again.
        """

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Output vector dimensions.

        The embedding stage falls back to a hash vector when a returned vector
        does not have the dimensions the fragment collection was built with.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier, reported by rag_status()."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier."""

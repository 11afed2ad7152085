# src/rag/vector_store/base_vector_store.py — v2
"""Abstract vector store interface.

The store owns similarity computation and category filtering: a query
returns at most ``top_k`` fragments, already restricted to the requested
categories and ranked by similarity descending.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from insurag.core.models import RetrievalCandidate


class BaseVectorStore(ABC):
    """Unified interface for vector store backends."""

    @abstractmethod
    async def upsert(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict] | None = None,
    ) -> None:
        """Insert or update fragments. Metadata carries insurer_id and category."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int = 5,
        categories: list[str] | None = None,
        min_similarity: float = 0.0,
    ) -> list[RetrievalCandidate]:
        """Rank fragments by similarity.

        Args:
            collection: Collection name.
            query_embedding: Query vector.
            top_k: Maximum number of candidates.
            categories: Match-any category filter; empty or None = unrestricted.
            min_similarity: Similarity floor the store may apply itself.
        """

    @abstractmethod
    async def count(self, collection: str) -> int:
        """Return number of fragments in a collection."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (memory, chromadb)."""

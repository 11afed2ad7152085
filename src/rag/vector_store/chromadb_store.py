# src/rag/vector_store/chromadb_store.py — v3
"""ChromaDB vector store adapter.

Uses the chromadb SDK for local or remote vector storage. Collections are
created with cosine space so ``1 - distance`` is the similarity.
The SDK is synchronous; every call runs in a worker thread so the request
deadline can cancel the wait instead of blocking the event loop.
Requires: pip install insurag[chromadb].
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from insurag.core.models import RetrievalCandidate
from insurag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


def category_where(categories: list[str] | None) -> dict | None:
    """Translate a match-any category list into a Chroma ``where`` clause."""
    if not categories:
        return None
    if len(categories) == 1:
        return {"category": categories[0]}
    return {"category": {"$in": list(categories)}}


class ChromaDBStore(BaseVectorStore):
    """Vector store backed by ChromaDB."""

    def __init__(
        self,
        persist_path: str | Path | None = None,
        host: str | None = None,
        port: int = 8000,
    ) -> None:
        try:
            import chromadb
        except ImportError as e:
            raise ImportError(
                "chromadb package required: pip install insurag[chromadb]"
            ) from e

        if host:
            self._client = chromadb.HttpClient(host=host, port=port)
        elif persist_path:
            self._client = chromadb.PersistentClient(path=str(persist_path))
        else:
            self._client = chromadb.Client()

    def _collection(self, collection: str):
        return self._client.get_or_create_collection(
            collection, metadata={"hnsw:space": "cosine"}
        )

    async def upsert(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict] | None = None,
    ) -> None:
        """Insert or update fragments."""
        col = await asyncio.to_thread(self._collection, collection)
        await asyncio.to_thread(
            col.upsert,
            ids=ids,
            embeddings=embeddings,
            documents=documents,
            metadatas=metadatas,
        )

    async def query(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int = 5,
        categories: list[str] | None = None,
        min_similarity: float = 0.0,
    ) -> list[RetrievalCandidate]:
        """Query by embedding similarity, filtered by category inside Chroma."""
        kwargs: dict = {
            "query_embeddings": [query_embedding],
            "n_results": top_k,
            "include": ["documents", "metadatas", "distances"],
        }
        where = category_where(categories)
        if where:
            kwargs["where"] = where

        col = await asyncio.to_thread(self._collection, collection)
        results = await asyncio.to_thread(col.query, **kwargs)

        candidates: list[RetrievalCandidate] = []
        if results["ids"] and results["ids"][0]:
            for i, frag_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results["distances"] else 1.0
                score = min(max(1.0 - distance, 0.0), 1.0)
                if score < min_similarity:
                    continue
                doc = results["documents"][0][i] if results["documents"] else ""
                meta = (results["metadatas"][0][i] if results["metadatas"] else None) or {}
                candidates.append(
                    RetrievalCandidate(
                        fragment_id=frag_id,
                        insurer_id=str(meta.get("insurer_id", "")),
                        category=str(meta.get("category", "")),
                        text=doc or "",
                        similarity=score,
                    )
                )
        return candidates

    async def count(self, collection: str) -> int:
        """Return number of fragments in a collection."""
        col = await asyncio.to_thread(self._collection, collection)
        return await asyncio.to_thread(col.count)

    @property
    def provider_name(self) -> str:
        return "chromadb"

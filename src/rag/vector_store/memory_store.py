# src/rag/vector_store/memory_store.py — v1
"""In-process vector store over numpy arrays.

Brute-force cosine similarity with the category filter applied before
ranking. Intended for development, tests and small fragment sets seeded
from a JSONL file; no persistence.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from insurag.core.models import RetrievalCandidate
from insurag.core.similarity import query_similarities
from insurag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


@dataclass
class _Collection:
    ids: list[str] = field(default_factory=list)
    documents: list[str] = field(default_factory=list)
    metadatas: list[dict] = field(default_factory=list)
    vectors: list[list[float]] = field(default_factory=list)

    def index_of(self, fragment_id: str) -> int | None:
        try:
            return self.ids.index(fragment_id)
        except ValueError:
            return None


class MemoryVectorStore(BaseVectorStore):
    """Vector store held entirely in memory."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.Lock()

    async def upsert(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict] | None = None,
    ) -> None:
        if not (len(ids) == len(embeddings) == len(documents)):
            raise ValueError("ids, embeddings and documents must have equal length")
        metadatas = metadatas or [{} for _ in ids]
        with self._lock:
            col = self._collections.setdefault(collection, _Collection())
            for frag_id, vector, doc, meta in zip(ids, embeddings, documents, metadatas):
                idx = col.index_of(frag_id)
                if idx is None:
                    col.ids.append(frag_id)
                    col.documents.append(doc)
                    col.metadatas.append(dict(meta))
                    col.vectors.append(list(vector))
                else:
                    col.documents[idx] = doc
                    col.metadatas[idx] = dict(meta)
                    col.vectors[idx] = list(vector)

    async def query(
        self,
        collection: str,
        query_embedding: list[float],
        top_k: int = 5,
        categories: list[str] | None = None,
        min_similarity: float = 0.0,
    ) -> list[RetrievalCandidate]:
        with self._lock:
            col = self._collections.get(collection)
            if col is None or not col.ids:
                return []
            wanted = {c.lower() for c in categories} if categories else None
            rows = [
                i for i, meta in enumerate(col.metadatas)
                if wanted is None or str(meta.get("category", "")).lower() in wanted
            ]
            if not rows:
                return []
            matrix = np.asarray([col.vectors[i] for i in rows], dtype=np.float64)
            snapshot = [(col.ids[i], col.documents[i], col.metadatas[i]) for i in rows]

        scores = query_similarities(np.asarray(query_embedding, dtype=np.float64), matrix)
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")

        results: list[RetrievalCandidate] = []
        for idx in order:
            score = float(scores[idx])
            if score < min_similarity:
                break
            frag_id, doc, meta = snapshot[idx]
            results.append(
                RetrievalCandidate(
                    fragment_id=frag_id,
                    insurer_id=str(meta.get("insurer_id", "")),
                    category=str(meta.get("category", "")),
                    text=doc,
                    similarity=score,
                )
            )
            if len(results) >= top_k:
                break
        return results

    async def count(self, collection: str) -> int:
        with self._lock:
            col = self._collections.get(collection)
            return len(col.ids) if col else 0

    @property
    def provider_name(self) -> str:
        return "memory"

    async def load_jsonl(
        self,
        collection: str,
        path: Path,
        embed: object | None = None,
    ) -> int:
        """Load fragments from a JSONL file.

        Each line holds ``id``, ``insurer_id``, ``category``, ``text`` and an
        optional ``embedding``. Lines without an embedding are embedded with
        ``embed`` (a BaseEmbedder); lines that cannot be embedded are skipped.

        Returns:
            Number of fragments loaded.
        """
        ids: list[str] = []
        vectors: list[list[float]] = []
        documents: list[str] = []
        metadatas: list[dict] = []
        pending: list[int] = []

        with Path(path).expanduser().open(encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning("Skipping malformed fragment line %d: %s", line_no, e)
                    continue
                ids.append(str(record["id"]))
                documents.append(str(record.get("text", "")))
                metadatas.append({
                    "insurer_id": str(record.get("insurer_id", "")),
                    "category": str(record.get("category", "")).lower(),
                })
                vector = record.get("embedding")
                if vector is None:
                    pending.append(len(vectors))
                    vectors.append([])
                else:
                    vectors.append([float(v) for v in vector])

        if pending:
            if embed is None:
                logger.warning("Skipping %d fragments without embeddings", len(pending))
                skipped = set(pending)
                keep = [i for i in range(len(ids)) if i not in skipped]
                ids = [ids[i] for i in keep]
                vectors = [vectors[i] for i in keep]
                documents = [documents[i] for i in keep]
                metadatas = [metadatas[i] for i in keep]
            else:
                embedded = await embed.embed_texts([documents[i] for i in pending])  # type: ignore[attr-defined]
                for i, vec in zip(pending, embedded):
                    vectors[i] = vec

        if ids:
            await self.upsert(collection, ids, vectors, documents, metadatas)
        logger.info("Loaded %d fragments into '%s' from %s", len(ids), collection, path)
        return len(ids)

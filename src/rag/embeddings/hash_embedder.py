# src/rag/embeddings/hash_embedder.py — v1
"""Deterministic pseudo-embeddings derived from a hash of the input text.

Used when the real embedding provider is disabled or unreachable so the
pipeline still runs end-to-end. Vectors are stable across processes and
platforms: SHA-256 in counter mode seeds every component. They carry no
semantic meaning beyond identical text mapping to identical vectors.
"""

from __future__ import annotations

import hashlib
import math
import struct

from insurag.rag.embeddings.base_embedder import BaseEmbedder


def hash_embedding(text: str, dimensions: int) -> list[float]:
    """Return a unit-length vector of ``dimensions`` floats for ``text``."""
    if dimensions <= 0:
        raise ValueError("dimensions must be > 0")
    seed = text.strip().lower().encode("utf-8")
    values: list[float] = []
    counter = 0
    while len(values) < dimensions:
        digest = hashlib.sha256(seed + counter.to_bytes(4, "big")).digest()
        for (word,) in struct.iter_unpack(">I", digest):
            values.append(word / 0xFFFFFFFF * 2.0 - 1.0)
            if len(values) == dimensions:
                break
        counter += 1

    norm = math.sqrt(sum(v * v for v in values)) or 1.0
    return [v / norm for v in values]


class HashEmbedder(BaseEmbedder):
    """BaseEmbedder over ``hash_embedding``. Never calls the network."""

    def __init__(self, dimensions: int = 1536) -> None:
        self._dimensions = dimensions

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        return [hash_embedding(t, self._dimensions) for t in texts]

    async def embed_query(self, query: str) -> list[float]:
        return hash_embedding(query, self._dimensions)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def provider_name(self) -> str:
        return "hash"

    @property
    def model_name(self) -> str:
        return "sha256-counter"

# src/rag/vector_store/vector_store_factory.py — v3
"""Factory: instantiate the fragment store from configuration."""

from __future__ import annotations

import logging
from urllib.parse import urlsplit

from insurag.config.settings import Settings
from insurag.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)

DEFAULT_CHROMADB_PORT = 8000


class UnsupportedVectorStoreError(ValueError):
    """Raised when a vector store type is not supported."""


def create_vector_store(settings: Settings) -> BaseVectorStore:
    """Instantiate the configured vector store.

    Args:
        settings: Application settings (VECTOR_DB_TYPE, VECTOR_DB_URL,
            VECTOR_DB_PATH).

    Returns:
        Configured BaseVectorStore instance. The memory store starts empty;
        seeding from VECTOR_DB_SEED_FILE is done by the service builder.

    Raises:
        UnsupportedVectorStoreError: If type is not supported.
    """
    db_type = settings.vector_db_type

    if db_type == "memory":
        from insurag.rag.vector_store.memory_store import MemoryVectorStore
        logger.info("Fragment store: in-process memory")
        return MemoryVectorStore()

    if db_type == "chromadb":
        from insurag.rag.vector_store.chromadb_store import ChromaDBStore
        if settings.vector_db_url:
            host, port = parse_chromadb_url(settings.vector_db_url)
            logger.info("Fragment store: ChromaDB server %s:%d", host, port)
            return ChromaDBStore(host=host, port=port)
        logger.info("Fragment store: ChromaDB at %s", settings.vector_db_path)
        return ChromaDBStore(persist_path=str(settings.vector_db_path))

    raise UnsupportedVectorStoreError(
        f"Unsupported vector store type: {db_type!r}. "
        f"Available: memory, chromadb"
    )


def parse_chromadb_url(url: str) -> tuple[str, int]:
    """Split ``[scheme://]host[:port]`` into host and port (default 8000)."""
    parts = urlsplit(url if "://" in url else f"http://{url}")
    if not parts.hostname:
        raise UnsupportedVectorStoreError(f"VECTOR_DB_URL has no host: {url!r}")
    return parts.hostname, parts.port or DEFAULT_CHROMADB_PORT

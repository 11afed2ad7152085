# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

import logging

from insurag.cache.base_cache_store import BaseCacheStore
from insurag.config.settings import Settings

logger = logging.getLogger(__name__)


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore | None:
    """Instantiate the answer cache.

    Args:
        settings: Application settings. Defaults to an in-memory cache with
            default capacity and TTL.

    Returns:
        Configured BaseCacheStore, or None when CACHE_ENABLED is false.
    """
    from insurag.cache.memory_store import MemoryCacheStore

    if settings is None:
        return MemoryCacheStore()

    if not settings.cache_enabled:
        logger.info("Answer cache disabled (CACHE_ENABLED=false)")
        return None

    return MemoryCacheStore(
        max_entries=settings.cache_max_entries,
        ttl_s=settings.cache_ttl_s,
    )

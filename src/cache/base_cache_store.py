# src/cache/base_cache_store.py — v2
"""Abstract answer cache interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone

from insurag.cache.models import CacheEntry, CacheStats


class BaseCacheStore(ABC):
    """Unified interface for answer cache backends."""

    @abstractmethod
    async def get(self, fingerprint: str) -> CacheEntry | None:
        """Return the live entry for ``fingerprint``, or None on miss."""

    @abstractmethod
    async def put(self, fingerprint: str, entry: CacheEntry) -> None:
        """Store or replace the entry for ``fingerprint``."""

    @abstractmethod
    async def delete(self, fingerprint: str) -> bool:
        """Remove an entry. Returns True if one was present."""

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry (counters are kept)."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Snapshot of hit/miss/eviction counters and current size."""

    @abstractmethod
    def reset_stats(self) -> None:
        """Zero the counters without touching stored entries."""

    def now(self) -> datetime:
        """Clock used to stamp and expire entries."""
        return datetime.now(timezone.utc)

    @property
    @abstractmethod
    def ttl_s(self) -> float:
        """Time-to-live applied to new entries."""

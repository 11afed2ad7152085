# src/cache/memory_store.py — v1
"""In-process LRU + TTL answer cache (default CACHE backend).

All bookkeeping happens under one ``threading.Lock`` so the store can be
shared by concurrent requests whether they run on one event loop or several
threads. No await happens while the lock is held.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable

from insurag.cache.base_cache_store import BaseCacheStore
from insurag.cache.models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCacheStore(BaseCacheStore):
    """Capacity-bounded LRU cache with per-entry expiry.

    Expiry is lazy: an expired entry found by ``get`` counts as a miss and is
    evicted immediately. ``sweep_expired`` may be called periodically to
    reclaim space early.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        ttl_s: float = 300.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self._max_entries = max_entries
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats(max_entries=max_entries)

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def now(self) -> datetime:
        return self._clock()

    async def get(self, fingerprint: str) -> CacheEntry | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                self._stats.misses += 1
                logger.debug("Cache miss: %s", fingerprint[:12])
                return None
            if not entry.is_live(now):
                del self._entries[fingerprint]
                self._stats.misses += 1
                self._stats.expirations += 1
                logger.debug("Cache entry expired: %s", fingerprint[:12])
                return None
            self._entries.move_to_end(fingerprint)
            self._stats.hits += 1
            logger.debug("Cache hit: %s", fingerprint[:12])
            return entry

    async def put(self, fingerprint: str, entry: CacheEntry) -> None:
        if entry.fingerprint != fingerprint:
            raise ValueError(
                f"Entry fingerprint {entry.fingerprint[:12]} does not match key "
                f"{fingerprint[:12]}"
            )
        with self._lock:
            if fingerprint in self._entries:
                del self._entries[fingerprint]
            self._entries[fingerprint] = entry
            self._stats.sets += 1
            while len(self._entries) > self._max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug("Cache LRU eviction: %s", evicted_key[:12])

    async def delete(self, fingerprint: str) -> bool:
        with self._lock:
            if self._entries.pop(fingerprint, None) is None:
                return False
            self._stats.deletes += 1
            return True

    async def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache flushed")

    def sweep_expired(self) -> int:
        """Evict every expired entry now. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not e.is_live(now)]
            for key in expired:
                del self._entries[key]
            self._stats.expirations += len(expired)
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return self._stats.model_copy(update={"size": len(self._entries)})

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = CacheStats(max_entries=self._max_entries)
        logger.info("Cache stats reset")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

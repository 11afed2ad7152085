# tests/unit/cache/test_unit_memory_store.py — v1
"""Tests for cache/memory_store.py — LRU capacity, TTL expiry, counters."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from insurag.cache.memory_store import MemoryCacheStore
from insurag.cache.models import CacheEntry
from insurag.core.models import SourceRef


class DateClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return DateClock()


@pytest.fixture
def store(clock):
    return MemoryCacheStore(max_entries=3, ttl_s=60, clock=clock)


def _entry(store: MemoryCacheStore, key: str, answer: str = "answer") -> CacheEntry:
    source = SourceRef(
        fragment_id="h1", insurer_id="allianz", category="health",
        similarity=0.9, preview="preview",
    )
    return CacheEntry.create(key, answer, [source], created_at=store.now(), ttl_s=store.ttl_s)


class TestGetPut:
    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        await store.put("k1", _entry(store, "k1"))
        entry = await store.get("k1")
        assert entry is not None
        assert entry.answer == "answer"
        assert entry.sources[0].fragment_id == "h1"

    @pytest.mark.asyncio
    async def test_repeated_get_is_idempotent(self, store, clock):
        await store.put("k1", _entry(store, "k1"))
        first = await store.get("k1")
        clock.advance(30)
        second = await store.get("k1")
        assert first == second

    @pytest.mark.asyncio
    async def test_miss(self, store):
        assert await store.get("missing") is None
        assert store.stats().misses == 1

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store):
        await store.put("k1", _entry(store, "k1", "old"))
        await store.put("k1", _entry(store, "k1", "new"))
        assert (await store.get("k1")).answer == "new"
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_key_must_match_entry(self, store):
        with pytest.raises(ValueError):
            await store.put("other", _entry(store, "k1"))


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_get_is_miss_and_evicts(self, store, clock):
        await store.put("k1", _entry(store, "k1"))
        clock.advance(60)
        assert await store.get("k1") is None
        stats = store.stats()
        assert stats.expirations == 1
        assert stats.misses == 1
        assert stats.size == 0

    @pytest.mark.asyncio
    async def test_live_just_before_expiry(self, store, clock):
        await store.put("k1", _entry(store, "k1"))
        clock.advance(59.9)
        assert await store.get("k1") is not None

    @pytest.mark.asyncio
    async def test_sweep_expired(self, store, clock):
        await store.put("k1", _entry(store, "k1"))
        clock.advance(30)
        await store.put("k2", _entry(store, "k2"))
        clock.advance(31)
        assert store.sweep_expired() == 1
        assert len(store) == 1


class TestLRU:
    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self, store):
        for key in ("k1", "k2", "k3"):
            await store.put(key, _entry(store, key))
        await store.get("k1")
        await store.put("k4", _entry(store, "k4"))
        assert await store.get("k2") is None
        assert await store.get("k1") is not None
        assert store.stats().evictions == 1
        assert len(store) == 3


class TestAdmin:
    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.put("k1", _entry(store, "k1"))
        assert await store.delete("k1") is True
        assert await store.delete("k1") is False
        assert store.stats().deletes == 1

    @pytest.mark.asyncio
    async def test_clear_keeps_counters(self, store):
        await store.put("k1", _entry(store, "k1"))
        await store.get("k1")
        await store.clear()
        stats = store.stats()
        assert stats.size == 0
        assert stats.hits == 1

    @pytest.mark.asyncio
    async def test_reset_stats_keeps_entries(self, store):
        await store.put("k1", _entry(store, "k1"))
        await store.get("k1")
        store.reset_stats()
        stats = store.stats()
        assert stats.hits == 0
        assert stats.size == 1

    @pytest.mark.asyncio
    async def test_hit_rate(self, store):
        await store.put("k1", _entry(store, "k1"))
        await store.get("k1")
        await store.get("k1")
        await store.get("nope")
        assert store.stats().hit_rate == pytest.approx(2 / 3)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_puts_respect_capacity(self, store):
        await asyncio.gather(*(store.put(f"k{i}", _entry(store, f"k{i}")) for i in range(20)))
        assert len(store) == 3
        assert store.stats().evictions == 17


class TestConstruction:
    @pytest.mark.parametrize("kwargs", [{"max_entries": 0}, {"ttl_s": 0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            MemoryCacheStore(**kwargs)

"""
test_dedup.py — Reserve / commit / release semantics of both registry backends.

Run with:
    pytest tests/test_dedup.py -v
"""

from __future__ import annotations

import asyncio
import fnmatch

import pytest

from alertbot.alerts.dedup import InMemoryDeduplicationStore, RedisDeduplicationStore
from alertbot.core.errors import UnknownAlertIdError


class _SecondsClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _RedisDouble:
    """Just enough of ``redis.asyncio.Redis`` for the registry; TTLs are recorded, not enforced."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.closed = False

    async def set(self, key, value, nx=False, xx=False, ex=None):
        if nx and key in self.data:
            return None
        if xx and key not in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += self.data.pop(key, None) is not None
        return removed

    async def exists(self, key):
        return int(key in self.data)

    async def scan_iter(self, pattern):
        for key in list(self.data):
            if fnmatch.fnmatch(key, pattern):
                yield key

    async def aclose(self):
        self.closed = True


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: In-memory backend
# ═══════════════════════════════════════════════════════════════════════════

class TestInMemoryStore:

    async def test_reserve_is_exclusive(self, dedup):
        assert await dedup.reserve("a") is True
        assert await dedup.reserve("a") is False
        assert await dedup.contains("a")

    async def test_commit_keeps_id(self, dedup):
        await dedup.reserve("a")
        await dedup.commit("a")
        await dedup.release("a")
        assert await dedup.contains("a")
        assert await dedup.reserve("a") is False

    async def test_release_allows_retry(self, dedup):
        await dedup.reserve("a")
        await dedup.release("a")
        assert not await dedup.contains("a")
        assert await dedup.reserve("a") is True

    async def test_commit_unknown_id(self, dedup):
        with pytest.raises(UnknownAlertIdError) as exc:
            await dedup.commit("ghost")
        assert exc.value.status_code == 409

    async def test_release_unknown_id_is_noop(self, dedup):
        await dedup.release("ghost")
        assert len(dedup) == 0

    async def test_clear(self, dedup):
        await dedup.reserve("a")
        await dedup.reserve("b")
        await dedup.clear()
        assert len(dedup) == 0

    async def test_concurrent_reserve_has_one_winner(self, dedup):
        results = await asyncio.gather(*(dedup.reserve("same") for _ in range(10)))
        assert results.count(True) == 1

    async def test_entries_expire(self):
        clock = _SecondsClock()
        store = InMemoryDeduplicationStore(ttl_seconds=60, clock=clock)
        await store.reserve("a")
        await store.commit("a")
        clock.now += 59
        assert await store.contains("a")
        clock.now += 1
        assert not await store.contains("a")
        assert await store.reserve("a") is True

    async def test_commit_after_expiry_raises(self):
        clock = _SecondsClock()
        store = InMemoryDeduplicationStore(ttl_seconds=10, clock=clock)
        await store.reserve("a")
        clock.now += 11
        with pytest.raises(UnknownAlertIdError):
            await store.commit("a")


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Redis backend
# ═══════════════════════════════════════════════════════════════════════════

class TestRedisStore:

    @pytest.fixture
    def redis_double(self):
        return _RedisDouble()

    @pytest.fixture
    def store(self, redis_double):
        return RedisDeduplicationStore(redis_double, ttl_seconds=3600, key_prefix="test:")

    async def test_reserve_uses_prefixed_key(self, store, redis_double):
        assert await store.reserve("a") is True
        assert redis_double.data == {"test:a": "reserved"}
        assert redis_double.ttls["test:a"] == 3600
        assert await store.reserve("a") is False

    async def test_commit_and_release(self, store, redis_double):
        await store.reserve("a")
        await store.commit("a")
        await store.release("a")
        assert redis_double.data["test:a"] == "committed"
        assert await store.contains("a")

    async def test_release_reserved(self, store):
        await store.reserve("a")
        await store.release("a")
        assert not await store.contains("a")

    async def test_commit_unknown_id(self, store):
        with pytest.raises(UnknownAlertIdError):
            await store.commit("ghost")

    async def test_clear_only_touches_prefix(self, store, redis_double):
        redis_double.data["other:x"] = "keep"
        await store.reserve("a")
        await store.reserve("b")
        await store.clear()
        assert redis_double.data == {"other:x": "keep"}

    async def test_close(self, store, redis_double):
        await store.close()
        assert redis_double.closed

"""
Unit Tests for InMemoryKVStore

Tests the in-process KV backend: strings, counters, hashes, sets, sorted sets,
lists and expiry.
"""

import asyncio

import pytest

from driveindex.core.config.constants import KVBackend
from driveindex.core.exceptions import CacheKeyError
from driveindex.infrastructure.kv.memory_kv import InMemoryKVStore


@pytest.mark.unit
class TestStrings:
    """Test string values and key-level operations."""

    @pytest.mark.asyncio
    async def test_set_get_roundtrip(self, memory_kv):
        await memory_kv.set("config", {"theme": "dark", "items": [1, 2]})

        assert await memory_kv.get("config") == {"theme": "dark", "items": [1, 2]}

    @pytest.mark.asyncio
    async def test_get_returns_fresh_copy(self, memory_kv):
        await memory_kv.set("config", {"items": [1]})

        value = await memory_kv.get("config")
        value["items"].append(2)

        assert await memory_kv.get("config") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_missing_key(self, memory_kv):
        assert await memory_kv.get("missing") is None
        assert await memory_kv.exists("missing") == 0
        assert await memory_kv.ttl("missing") == -2

    @pytest.mark.asyncio
    async def test_set_with_expiry(self, memory_kv, clock):
        await memory_kv.set("token", "abc", ex=60)

        assert await memory_kv.ttl("token") == 60
        clock.advance(59)
        assert await memory_kv.get("token") == "abc"
        clock.advance(1)
        assert await memory_kv.get("token") is None
        assert await memory_kv.ttl("token") == -2

    @pytest.mark.asyncio
    async def test_set_without_expiry_clears_ttl(self, memory_kv):
        await memory_kv.set("k", 1, ex=60)
        await memory_kv.set("k", 2)

        assert await memory_kv.ttl("k") == -1

    @pytest.mark.asyncio
    async def test_delete_counts_live_keys(self, memory_kv, clock):
        await memory_kv.set("a", 1)
        await memory_kv.set("b", 2, ex=1)
        clock.advance(2)

        assert await memory_kv.delete("a", "b", "c") == 1

    @pytest.mark.asyncio
    async def test_exists_counts(self, memory_kv):
        await memory_kv.set("a", 1)
        await memory_kv.sadd("s", "m")

        assert await memory_kv.exists("a", "s", "missing") == 2

    @pytest.mark.asyncio
    async def test_keys_glob(self, memory_kv):
        await memory_kv.set("zee-index:folder-content-v3:abc:first", [])
        await memory_kv.set("zee-index:folder-content-v3:abc:tok", [])
        await memory_kv.set("zee-index:folder-content-v3:xyz:first", [])

        keys = await memory_kv.keys("zee-index:folder-content-v3:abc:*")

        assert sorted(keys) == [
            "zee-index:folder-content-v3:abc:first",
            "zee-index:folder-content-v3:abc:tok",
        ]

    @pytest.mark.asyncio
    async def test_mget_mset(self, memory_kv):
        await memory_kv.mset({"a": 1, "b": "two"})
        await memory_kv.sadd("set-key", "x")

        assert await memory_kv.mget("a", "missing", "b", "set-key") == [1, None, "two", None]

    @pytest.mark.asyncio
    async def test_non_serializable_value_rejected(self, memory_kv):
        with pytest.raises(CacheKeyError):
            await memory_kv.set("bad", object())

    @pytest.mark.asyncio
    async def test_expire(self, memory_kv, clock):
        await memory_kv.set("k", 1)

        assert await memory_kv.expire("k", 10) is True
        assert await memory_kv.expire("missing", 10) is False

        clock.advance(10)
        assert await memory_kv.get("k") is None

    @pytest.mark.asyncio
    async def test_expiry_timer_purges_key(self):
        kv = InMemoryKVStore()
        await kv.set("k", 1, ex=0.05)

        await asyncio.sleep(0.1)

        assert "k" not in kv._data
        await kv.close()


@pytest.mark.unit
class TestCounters:
    """Test incr / incrby."""

    @pytest.mark.asyncio
    async def test_incr_from_missing(self, memory_kv):
        assert await memory_kv.incr("views") == 1
        assert await memory_kv.incr("views") == 2
        assert await memory_kv.incrby("views", 10) == 12
        assert await memory_kv.get("views") == 12

    @pytest.mark.asyncio
    async def test_incr_keeps_ttl(self, memory_kv):
        await memory_kv.incr("views")
        await memory_kv.expire("views", 100)

        await memory_kv.incr("views")

        assert await memory_kv.ttl("views") == 100

    @pytest.mark.asyncio
    async def test_incr_non_integer_fails(self, memory_kv):
        await memory_kv.set("name", "alice")

        with pytest.raises(CacheKeyError):
            await memory_kv.incr("name")


@pytest.mark.unit
class TestHashes:
    """Test hash operations."""

    @pytest.mark.asyncio
    async def test_hset_hgetall_hget(self, memory_kv):
        added = await memory_kv.hset("user:1", {"name": "alice", "age": 30})

        assert added == 2
        assert await memory_kv.hgetall("user:1") == {"name": "alice", "age": 30}
        assert await memory_kv.hget("user:1", "age") == 30
        assert await memory_kv.hget("user:1", "missing") is None

    @pytest.mark.asyncio
    async def test_hset_counts_only_new_fields(self, memory_kv):
        await memory_kv.hset("h", {"a": 1})

        assert await memory_kv.hset("h", {"a": 2, "b": 3}) == 1

    @pytest.mark.asyncio
    async def test_hdel_removes_empty_hash(self, memory_kv):
        await memory_kv.hset("h", {"a": 1})

        assert await memory_kv.hdel("h", "a", "missing") == 1
        assert await memory_kv.exists("h") == 0
        assert await memory_kv.hgetall("h") == {}

    @pytest.mark.asyncio
    async def test_wrong_type(self, memory_kv):
        await memory_kv.set("str", "x")

        with pytest.raises(CacheKeyError, match="WRONGTYPE"):
            await memory_kv.hgetall("str")


@pytest.mark.unit
class TestSets:
    """Test set operations."""

    @pytest.mark.asyncio
    async def test_sadd_and_membership(self, memory_kv):
        assert await memory_kv.sadd("visitors", "v-1", "v-2", "v-1") == 2
        assert await memory_kv.sadd("visitors", "v-2") == 0

        assert await memory_kv.sismember("visitors", "v-1") is True
        assert await memory_kv.sismember("visitors", "v-9") is False
        assert await memory_kv.smembers("visitors") == {"v-1", "v-2"}
        assert await memory_kv.scard("visitors") == 2

    @pytest.mark.asyncio
    async def test_srem(self, memory_kv):
        await memory_kv.sadd("s", "a", "b")

        assert await memory_kv.srem("s", "a", "z") == 1
        assert await memory_kv.smembers("s") == {"b"}

    @pytest.mark.asyncio
    async def test_sismember_many(self, memory_kv):
        await memory_kv.sadd("protected", "f1")
        await memory_kv.sadd("admins", "alice")

        results = await memory_kv.sismember_many(
            [("protected", "f1"), ("protected", "f2"), ("admins", "alice"), ("missing", "x")]
        )

        assert results == [True, False, True, False]


@pytest.mark.unit
class TestSortedSets:
    """Test sorted set operations."""

    @pytest.mark.asyncio
    async def test_zrange_by_index(self, memory_kv):
        await memory_kv.zadd("z", {"c": 3, "a": 1, "b": 2})

        assert await memory_kv.zrange("z", 0, -1) == ["a", "b", "c"]
        assert await memory_kv.zrange("z", 0, 0, rev=True) == ["c"]
        assert await memory_kv.zrange("z", -2, -1) == ["b", "c"]
        assert await memory_kv.zrange("z", 5, 10) == []

    @pytest.mark.asyncio
    async def test_zrange_by_score(self, memory_kv):
        await memory_kv.zadd("z", {"a": 10, "b": 20, "c": 30, "d": 40})

        assert await memory_kv.zrange("z", 20, 30, by_score=True) == ["b", "c"]
        assert await memory_kv.zrange("z", 15, 40, by_score=True, rev=True) == ["d", "c", "b"]
        assert await memory_kv.zrange("z", 10, 20, by_score=True, with_scores=True) == [
            ("a", 10.0),
            ("b", 20.0),
        ]

    @pytest.mark.asyncio
    async def test_ties_ordered_by_member(self, memory_kv):
        await memory_kv.zadd("z", {"b": 1, "a": 1, "c": 1})

        assert await memory_kv.zrange("z", 0, -1) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_zadd_updates_score(self, memory_kv):
        assert await memory_kv.zadd("z", {"a": 1}) == 1
        assert await memory_kv.zadd("z", {"a": 5}) == 0

        assert await memory_kv.zscore("z", "a") == 5.0
        assert await memory_kv.zcard("z") == 1

    @pytest.mark.asyncio
    async def test_zremrangebyscore_inclusive(self, memory_kv):
        await memory_kv.zadd("z", {"old": 100, "edge": 200, "new": 300})

        removed = await memory_kv.zremrangebyscore("z", 0, 200)

        assert removed == 2
        assert await memory_kv.zrange("z", 0, -1) == ["new"]

    @pytest.mark.asyncio
    async def test_zrem(self, memory_kv):
        await memory_kv.zadd("z", {"a": 1, "b": 2})

        assert await memory_kv.zrem("z", "a", "x") == 1
        assert await memory_kv.zscore("z", "a") is None


@pytest.mark.unit
class TestLists:
    """Test list operations."""

    @pytest.mark.asyncio
    async def test_push_and_range(self, memory_kv):
        await memory_kv.rpush("log", {"n": 1}, {"n": 2})
        await memory_kv.lpush("log", {"n": 0})

        assert await memory_kv.llen("log") == 3
        assert await memory_kv.lrange("log", 0, -1) == [{"n": 0}, {"n": 1}, {"n": 2}]
        assert await memory_kv.lrange("log", 1, 1) == [{"n": 1}]


@pytest.mark.unit
class TestLifecycle:
    """Test health and close."""

    @pytest.mark.asyncio
    async def test_health_check(self, memory_kv):
        await memory_kv.set("a", 1)

        health = await memory_kv.health_check()

        assert health["status"] == "healthy"
        assert health["backend"] == KVBackend.IN_PROCESS.value
        assert health["keys"] == 1
        assert await memory_kv.ping() is True

    @pytest.mark.asyncio
    async def test_close_cancels_timers(self, memory_kv):
        await memory_kv.set("k", 1, ex=600)

        await memory_kv.close()

        assert memory_kv._timers == {}

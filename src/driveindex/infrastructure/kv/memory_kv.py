"""
In-Process KV Store

Fallback implementation of the KVStore protocol used when no durable store is
configured (local development, tests, single-instance deployments).

Architecture:
    InMemoryKVStore (Public API)
        ├── _Record map (one shape per key: string, hash, set, zset, list)
        ├── Expiry deadlines (checked lazily on every access)
        └── Expiry timers (loop.call_later, cancelled on overwrite/delete)

Values that the durable backend would serialize are kept as orjson bytes here
too, so reads return fresh copies exactly like a network round-trip would.
Nothing survives a restart.
"""

from __future__ import annotations

import asyncio
import fnmatch
import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from driveindex.core.config.constants import KVBackend, Stage
from driveindex.core.exceptions import CacheKeyError
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.infrastructure.kv.serialization import decode, encode

logger = get_logger(__name__)

STRING = "string"
HASH = "hash"
SET = "set"
ZSET = "zset"
LIST = "list"


@dataclass
class _Record:
    kind: str
    value: Any


def _slice(items: list, start: int, stop: int) -> list:
    """Redis-style inclusive index range; negatives count from the end."""
    n = len(items)
    if start < 0:
        start = max(n + start, 0)
    if stop < 0:
        stop = n + stop
    if start >= n or stop < start:
        return []
    return items[start : stop + 1]


class InMemoryKVStore:
    """
    KVStore backed by plain dicts.

    Usage:
        kv = InMemoryKVStore()
        await kv.connect()

        await kv.set("greeting", {"text": "hi"}, ex=60)
        await kv.zadd("events", {"a": 1.0, "b": 2.0})
        members = await kv.zrange("events", 0, 10, by_score=True, rev=True)

    Args:
        clock: Wall-clock source in seconds (injectable for tests)
    """

    backend = KVBackend.IN_PROCESS

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, _Record] = {}
        self._expires: dict[str, float] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        log_stage(logger, Stage.KV_CONNECT, "In-process KV store ready")

    async def close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        log_stage(logger, Stage.KV_CLOSE, "In-process KV store closed", keys=len(self._data))

    async def ping(self) -> bool:
        return True

    async def health_check(self) -> dict[str, Any]:
        self._purge_expired()
        return {
            "status": "healthy",
            "backend": self.backend.value,
            "connected": True,
            "keys": len(self._data),
        }

    # -------------------------------------------------------------------------
    # Expiry bookkeeping
    # -------------------------------------------------------------------------

    def _is_expired(self, key: str) -> bool:
        deadline = self._expires.get(key)
        return deadline is not None and deadline <= self._clock()

    def _remove(self, key: str) -> bool:
        self._expires.pop(key, None)
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
        return self._data.pop(key, None) is not None

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, deadline in self._expires.items() if deadline <= now]:
            self._remove(key)

    def _set_expiry(self, key: str, seconds: float) -> None:
        deadline = self._clock() + seconds
        self._expires[key] = deadline

        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: lazy checks alone enforce the deadline
            return
        self._timers[key] = loop.call_later(seconds, self._expire_if_due, key, deadline)

    def _clear_expiry(self, key: str) -> None:
        self._expires.pop(key, None)
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _expire_if_due(self, key: str, deadline: float) -> None:
        self._timers.pop(key, None)
        if self._expires.get(key) == deadline:
            self._remove(key)

    def _record(self, key: str, kind: str, create: bool = False) -> _Record | None:
        """Fetch the live record for ``key``, enforcing its shape."""
        if self._is_expired(key):
            self._remove(key)

        record = self._data.get(key)
        if record is None:
            if not create:
                return None
            record = _Record(kind, self._empty(kind))
            self._data[key] = record
        elif record.kind != kind:
            raise CacheKeyError(
                message="WRONGTYPE Operation against a key holding the wrong kind of value",
                details={"key": key, "expected": kind, "actual": record.kind},
            )
        return record

    @staticmethod
    def _empty(kind: str) -> Any:
        if kind == HASH:
            return {}
        if kind == SET:
            return set()
        if kind == ZSET:
            return {}
        if kind == LIST:
            return []
        return b""

    def _drop_if_empty(self, key: str, record: _Record) -> None:
        if not record.value:
            self._remove(key)

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        record = self._record(key, STRING)
        return decode(record.value) if record else None

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        payload = encode(value, key)
        existing = self._data.get(key)
        if existing is not None and existing.kind != STRING:
            self._remove(key)

        self._data[key] = _Record(STRING, payload)
        if ex is not None:
            self._set_expiry(key, ex)
        else:
            self._clear_expiry(key)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            live = not self._is_expired(key)
            if self._remove(key) and live:
                deleted += 1
        return deleted

    async def exists(self, *keys: str) -> int:
        self._purge_expired()
        return sum(1 for key in keys if key in self._data)

    async def keys(self, pattern: str) -> list[str]:
        self._purge_expired()
        return [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]

    async def mget(self, *keys: str) -> list[Any | None]:
        values = []
        for key in keys:
            if self._is_expired(key):
                self._remove(key)
            record = self._data.get(key)
            values.append(decode(record.value) if record and record.kind == STRING else None)
        return values

    async def mset(self, mapping: Mapping[str, Any]) -> bool:
        for key, value in mapping.items():
            await self.set(key, value)
        return True

    async def incr(self, key: str) -> int:
        return await self.incrby(key, 1)

    async def incrby(self, key: str, amount: int) -> int:
        record = self._record(key, STRING)
        current = decode(record.value) if record else 0
        if isinstance(current, bool) or not isinstance(current, int):
            raise CacheKeyError(
                message="ERR value is not an integer or out of range",
                details={"key": key},
            )

        new_value = current + amount
        if record is None:
            self._data[key] = _Record(STRING, encode(new_value, key))
        else:
            # Keeps any TTL already on the key
            record.value = encode(new_value, key)
        return new_value

    async def expire(self, key: str, seconds: int) -> bool:
        if self._is_expired(key):
            self._remove(key)
        if key not in self._data:
            return False
        if seconds <= 0:
            self._remove(key)
            return True
        self._set_expiry(key, seconds)
        return True

    async def ttl(self, key: str) -> int:
        if self._is_expired(key):
            self._remove(key)
        if key not in self._data:
            return -2
        deadline = self._expires.get(key)
        if deadline is None:
            return -1
        return max(math.ceil(deadline - self._clock()), 0)

    # -------------------------------------------------------------------------
    # Hashes
    # -------------------------------------------------------------------------

    async def hgetall(self, name: str) -> dict[str, Any]:
        record = self._record(name, HASH)
        if record is None:
            return {}
        return {field: decode(raw) for field, raw in record.value.items()}

    async def hset(self, name: str, mapping: Mapping[str, Any]) -> int:
        encoded = {field: encode(value, name) for field, value in mapping.items()}
        record = self._record(name, HASH, create=True)
        added = sum(1 for field in encoded if field not in record.value)
        record.value.update(encoded)
        return added

    async def hget(self, name: str, field: str) -> Any | None:
        record = self._record(name, HASH)
        if record is None:
            return None
        return decode(record.value.get(field))

    async def hdel(self, name: str, *fields: str) -> int:
        record = self._record(name, HASH)
        if record is None:
            return 0
        removed = sum(1 for field in fields if record.value.pop(field, None) is not None)
        self._drop_if_empty(name, record)
        return removed

    # -------------------------------------------------------------------------
    # Sets
    # -------------------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> int:
        record = self._record(key, SET, create=True)
        before = len(record.value)
        record.value.update(members)
        return len(record.value) - before

    async def srem(self, key: str, *members: str) -> int:
        record = self._record(key, SET)
        if record is None:
            return 0
        removed = 0
        for member in members:
            if member in record.value:
                record.value.discard(member)
                removed += 1
        self._drop_if_empty(key, record)
        return removed

    async def sismember(self, key: str, member: str) -> bool:
        record = self._record(key, SET)
        return record is not None and member in record.value

    async def smembers(self, key: str) -> set[str]:
        record = self._record(key, SET)
        return set(record.value) if record else set()

    async def scard(self, key: str) -> int:
        record = self._record(key, SET)
        return len(record.value) if record else 0

    async def sismember_many(self, checks: Iterable[tuple[str, str]]) -> list[bool]:
        return [await self.sismember(key, member) for key, member in checks]

    # -------------------------------------------------------------------------
    # Sorted sets
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        record = self._record(key, ZSET, create=True)
        added = sum(1 for member in mapping if member not in record.value)
        record.value.update({member: float(score) for member, score in mapping.items()})
        return added

    async def zrange(
        self,
        key: str,
        start: float,
        stop: float,
        by_score: bool = False,
        rev: bool = False,
        with_scores: bool = False,
    ) -> list[Any]:
        record = self._record(key, ZSET)
        if record is None:
            return []

        # Ties ordered by member, like Redis
        items = sorted(record.value.items(), key=lambda item: (item[1], item[0]))

        if by_score:
            items = [item for item in items if start <= item[1] <= stop]
            if rev:
                items.reverse()
        else:
            if rev:
                items.reverse()
            items = _slice(items, int(start), int(stop))

        if with_scores:
            return [(member, score) for member, score in items]
        return [member for member, _ in items]

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        record = self._record(key, ZSET)
        if record is None:
            return 0
        doomed = [m for m, score in record.value.items() if min_score <= score <= max_score]
        for member in doomed:
            del record.value[member]
        self._drop_if_empty(key, record)
        return len(doomed)

    async def zcard(self, key: str) -> int:
        record = self._record(key, ZSET)
        return len(record.value) if record else 0

    async def zrem(self, key: str, *members: str) -> int:
        record = self._record(key, ZSET)
        if record is None:
            return 0
        removed = sum(1 for member in members if record.value.pop(member, None) is not None)
        self._drop_if_empty(key, record)
        return removed

    async def zscore(self, key: str, member: str) -> float | None:
        record = self._record(key, ZSET)
        return record.value.get(member) if record else None

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    async def lpush(self, key: str, *values: Any) -> int:
        encoded = [encode(value, key) for value in values]
        record = self._record(key, LIST, create=True)
        for item in encoded:
            record.value.insert(0, item)
        return len(record.value)

    async def rpush(self, key: str, *values: Any) -> int:
        encoded = [encode(value, key) for value in values]
        record = self._record(key, LIST, create=True)
        record.value.extend(encoded)
        return len(record.value)

    async def lrange(self, key: str, start: int, stop: int) -> list[Any]:
        record = self._record(key, LIST)
        if record is None:
            return []
        return [decode(raw) for raw in _slice(record.value, start, stop)]

    async def llen(self, key: str) -> int:
        record = self._record(key, LIST)
        return len(record.value) if record else 0

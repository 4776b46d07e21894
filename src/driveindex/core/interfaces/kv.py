"""
KV Store Protocol

This module defines the protocol every KV backend implements. Callers type
against ``KVStore`` and never against a concrete backend.

Architectural Decision: Protocol-based abstraction
- Exactly two implementations: RedisKVStore (durable) and InMemoryKVStore
  (in-process fallback), chosen once by ``create_kv_store``
- Serialization to and from the wire is the backend's job, not the caller's
- Tests written against one backend hold for the other

Value conventions:
- String values, hash field values and list elements are any JSON-serializable
  object; reads return a freshly decoded copy
- Set and sorted-set members are plain strings (callers JSON-encode payloads)
- Integer counters written by ``incr`` read back as ``int`` through ``get``
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KVStore(Protocol):
    """
    Protocol defining the uniform key-value contract.

    Every method is a coroutine. Expired keys behave as missing for every
    operation. All writes are single-key and last-writer-wins.

    Usage:
        async def remember(kv: KVStore, key: str, value: dict) -> None:
            await kv.set(key, value, ex=3600)
    """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Prepare the backend for use.

        Raises:
            CacheConnectionError: If the durable backend is unreachable
        """
        ...

    async def close(self) -> None:
        """Release connections and timers."""
        ...

    async def ping(self) -> bool:
        """Return True when the backend answers."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """Return a status dict for the health endpoint."""
        ...

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """
        Get a value.

        Returns:
            The decoded value, or None if missing or expired

        Raises:
            CacheKeyError: If the operation fails
        """
        ...

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        """
        Set a value, optionally expiring after ``ex`` seconds.

        Setting without ``ex`` clears any previous expiry.
        """
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys of any shape. Returns how many existed."""
        ...

    async def exists(self, *keys: str) -> int:
        """Count how many of ``keys`` exist."""
        ...

    async def keys(self, pattern: str) -> list[str]:
        """List keys matching a glob-style pattern."""
        ...

    async def mget(self, *keys: str) -> list[Any | None]:
        """Get several values at once, None for missing keys."""
        ...

    async def mset(self, mapping: Mapping[str, Any]) -> bool:
        """Set several values at once (no expiry)."""
        ...

    async def incr(self, key: str) -> int:
        """Increment an integer counter, creating it at 0."""
        ...

    async def incrby(self, key: str, amount: int) -> int:
        """Increment an integer counter by ``amount``."""
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on an existing key. False if the key is missing."""
        ...

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds, -1 without expiry, -2 if missing."""
        ...

    # ------------------------------------------------------------------
    # Hashes
    # ------------------------------------------------------------------

    async def hgetall(self, name: str) -> dict[str, Any]:
        """All fields of a hash (empty dict if missing)."""
        ...

    async def hset(self, name: str, mapping: Mapping[str, Any]) -> int:
        """Set hash fields. Returns the number of new fields."""
        ...

    async def hget(self, name: str, field: str) -> Any | None:
        """One hash field, or None."""
        ...

    async def hdel(self, name: str, *fields: str) -> int:
        """Delete hash fields. Returns how many existed."""
        ...

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> int:
        """Add members. Returns how many were new."""
        ...

    async def srem(self, key: str, *members: str) -> int:
        """Remove members. Returns how many existed."""
        ...

    async def sismember(self, key: str, member: str) -> bool:
        """Membership test."""
        ...

    async def smembers(self, key: str) -> set[str]:
        """All members (empty set if missing)."""
        ...

    async def scard(self, key: str) -> int:
        """Set cardinality."""
        ...

    async def sismember_many(self, checks: Iterable[tuple[str, str]]) -> list[bool]:
        """
        Batched membership tests.

        Args:
            checks: ``(key, member)`` pairs

        Returns:
            One bool per pair, in order
        """
        ...

    # ------------------------------------------------------------------
    # Sorted sets
    # ------------------------------------------------------------------

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        """Add or re-score members. Returns how many were new."""
        ...

    async def zrange(
        self,
        key: str,
        start: float,
        stop: float,
        by_score: bool = False,
        rev: bool = False,
        with_scores: bool = False,
    ) -> list[Any]:
        """
        Range query.

        With ``by_score`` the bounds are an inclusive score range
        ``[start, stop]`` (``start`` is always the lower bound); otherwise
        they are inclusive indices where negatives count from the end.
        ``rev`` returns descending order.

        Returns:
            Members, or ``(member, score)`` tuples with ``with_scores``
        """
        ...

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        """Remove members scored in ``[min_score, max_score]``."""
        ...

    async def zcard(self, key: str) -> int:
        """Sorted-set cardinality."""
        ...

    async def zrem(self, key: str, *members: str) -> int:
        """Remove members. Returns how many existed."""
        ...

    async def zscore(self, key: str, member: str) -> float | None:
        """Score of a member, or None."""
        ...

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def lpush(self, key: str, *values: Any) -> int:
        """Prepend values. Returns the new length."""
        ...

    async def rpush(self, key: str, *values: Any) -> int:
        """Append values. Returns the new length."""
        ...

    async def lrange(self, key: str, start: int, stop: int) -> list[Any]:
        """Inclusive index range, negatives count from the end."""
        ...

    async def llen(self, key: str) -> int:
        """List length."""
        ...

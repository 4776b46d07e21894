"""
Durable KV Store (Redis) with L1 Read-Through

Architecture:
    RedisKVStore (Public API, KVStore protocol)
        ├── ConnectionManager (pool lifecycle from KV_URL)
        ├── _execute (command execution with error wrapping and logging)
        ├── L1 read-through (MemoryCache, namespaced prefixes)
        └── HealthMonitor (ping latency, pool and L1 metrics)

Read path for get / hgetall / hget / sismember:
    1. Check the process-local MemoryCache under kv:str: / kv:hash: / kv:sism:
    2. On a miss, go to Redis, read the key's PTTL and populate L1
       (TTL = KV_L1_TTL, never longer than what the key has left)

Write path: ``set`` refreshes the L1 copy; every other mutation invalidates
the matching L1 entries. L1 is per process, so another instance's writes are
only seen once the short L1 TTL runs out.

No internal retries: RedisError is logged and re-raised as CacheKeyError and
callers decide whether a failure is fatal.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from driveindex.core.config.constants import (
    L1_PREFIX_HASH,
    L1_PREFIX_SISMEMBER,
    L1_PREFIX_STRING,
    KVBackend,
    Stage,
)
from driveindex.core.exceptions import CacheConnectionError, CacheKeyError
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.infrastructure.cache.memory_cache import MemoryCache
from driveindex.infrastructure.kv.serialization import decode, encode

logger = get_logger(__name__)


# =============================================================================
# CONNECTION MANAGEMENT
# =============================================================================


class ConnectionManager:
    """
    Manages the Redis connection pool.

    Pool Configuration (from settings):
    - KV_MAX_CONNECTIONS, KV_SOCKET_TIMEOUT, KV_SOCKET_CONNECT_TIMEOUT
    - KV_HEALTH_CHECK_INTERVAL
    - decode_responses=True (strings in, strings out)
    """

    def __init__(self, settings, client: redis.Redis | None = None):
        """
        Args:
            settings: Application settings
            client: Pre-built client (tests); skips pool creation
        """
        self._settings = settings
        self._pool: ConnectionPool | None = None
        self._client = client
        self._is_connected = False

    async def connect(self) -> redis.Redis:
        """
        Create the pool and verify it with a PING.

        Raises:
            CacheConnectionError: If Redis is unreachable
        """
        if self._is_connected and self._client:
            return self._client

        kv = self._settings.kv
        try:
            if self._client is None:
                self._pool = ConnectionPool.from_url(
                    kv.KV_URL,
                    max_connections=kv.KV_MAX_CONNECTIONS,
                    socket_timeout=kv.KV_SOCKET_TIMEOUT,
                    socket_connect_timeout=kv.KV_SOCKET_CONNECT_TIMEOUT,
                    health_check_interval=kv.KV_HEALTH_CHECK_INTERVAL,
                    retry_on_timeout=True,
                    decode_responses=True,
                )
                self._client = redis.Redis(connection_pool=self._pool)

            await self._client.ping()
            self._is_connected = True

            log_stage(
                logger,
                Stage.KV_CONNECT,
                "Redis connected successfully",
                max_connections=kv.KV_MAX_CONNECTIONS,
            )
            return self._client

        except (ConnectionError, TimeoutError) as e:
            log_stage(logger, Stage.KV_CONNECT, "Failed to connect to Redis", level="error", error=str(e))
            raise CacheConnectionError(
                message=f"Failed to connect to Redis: {e}",
                details={"max_connections": kv.KV_MAX_CONNECTIONS},
            )

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._is_connected = False
        log_stage(logger, Stage.KV_CLOSE, "Redis disconnected")

    async def ping(self) -> bool:
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    def get_client(self) -> redis.Redis | None:
        return self._client

    def get_pool(self) -> ConnectionPool | None:
        return self._pool

    def is_connected(self) -> bool:
        return self._is_connected


# =============================================================================
# HEALTH MONITORING
# =============================================================================


class HealthMonitor:
    """Ping latency plus pool and L1 metrics for the health endpoint."""

    def __init__(self, connection_manager: ConnectionManager, memory_cache: MemoryCache):
        self._conn_mgr = connection_manager
        self._l1 = memory_cache

    async def health_check(self) -> dict[str, Any]:
        health = {
            "status": "healthy",
            "backend": KVBackend.DURABLE.value,
            "connected": self._conn_mgr.is_connected(),
            "pool_size": 0,
            "ping_latency_ms": None,
            "l1": self._l1.stats(),
        }

        client = self._conn_mgr.get_client()
        if not client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)

        pool = self._conn_mgr.get_pool()
        if pool:
            health["pool_size"] = pool.max_connections

        return health


# =============================================================================
# PUBLIC API
# =============================================================================


class RedisKVStore:
    """
    KVStore backed by Redis with a MemoryCache L1 tier.

    Usage:
        kv = RedisKVStore(settings, memory_cache)
        await kv.connect()

        await kv.set("google:access-token", token, ex=3500)
        token = await kv.get("google:access-token")

        await kv.close()
    """

    backend = KVBackend.DURABLE

    def __init__(self, settings, memory_cache: MemoryCache, client: redis.Redis | None = None):
        self._settings = settings
        self._l1 = memory_cache
        self._l1_ttl = settings.kv.KV_L1_TTL

        self._conn_mgr = ConnectionManager(settings, client)
        self._health_monitor = HealthMonitor(self._conn_mgr, memory_cache)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        await self._conn_mgr.connect()

    async def close(self) -> None:
        await self._conn_mgr.disconnect()

    async def ping(self) -> bool:
        return await self._conn_mgr.ping()

    async def health_check(self) -> dict[str, Any]:
        return await self._health_monitor.health_check()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _client(self) -> redis.Redis:
        client = self._conn_mgr.get_client()
        if client is None or not self._conn_mgr.is_connected():
            raise CacheConnectionError(message="KV store is not connected")
        return client

    async def _execute(self, command: str, key: str | None, *args, **kwargs) -> Any:
        """
        Run one Redis command.

        Raises:
            CacheKeyError: Wrapping any RedisError
        """
        try:
            return await getattr(self._client(), command)(*args, **kwargs)
        except RedisError as e:
            log_stage(
                logger,
                Stage.KV_COMMAND,
                "KV command failed",
                level="error",
                command=command.upper(),
                key=key,
                error=str(e),
            )
            raise CacheKeyError(
                message=f"KV {command.upper()} failed: {e}",
                details={"key": key, "command": command.upper()},
            )

    # -------------------------------------------------------------------------
    # L1 helpers
    # -------------------------------------------------------------------------

    def _l1_ttl_for(self, ex: float | None) -> float:
        return self._l1_ttl if ex is None else min(self._l1_ttl, ex)

    def _l1_ttl_from_pttl(self, pttl: int) -> float | None:
        """
        L1 TTL for a value just read from Redis.

        PTTL is -1 for a key without expiry and -2 (or 0) once the key is
        gone; in the latter case nothing may be cached.
        """
        if pttl == -1:
            return self._l1_ttl
        if pttl <= 0:
            return None
        return min(self._l1_ttl, pttl / 1000)

    async def _fill_l1(self, l1_key: str, key: str, value: Any) -> None:
        ttl = self._l1_ttl_from_pttl(await self._execute("pttl", key, key))
        if ttl is not None:
            self._l1.set(l1_key, value, ttl=ttl)

    def _invalidate(self, key: str) -> None:
        self._l1.delete(L1_PREFIX_STRING + key)
        self._l1.delete(L1_PREFIX_HASH + key)
        self._l1.delete_by_prefix(f"{L1_PREFIX_SISMEMBER}{key}:")

    # -------------------------------------------------------------------------
    # Strings
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        l1_key = L1_PREFIX_STRING + key
        cached = self._l1.get(l1_key)
        if cached is not None:
            return decode(cached)

        raw = await self._execute("get", key, key)
        if raw is None:
            return None

        await self._fill_l1(l1_key, key, raw)
        return decode(raw)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        payload = encode(value, key)
        result = await self._execute("set", key, key, payload, ex=ex)

        self._invalidate(key)
        self._l1.set(L1_PREFIX_STRING + key, payload, ttl=self._l1_ttl_for(ex))
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        deleted = await self._execute("delete", keys[0], *keys)
        for key in keys:
            self._invalidate(key)
        return deleted

    async def exists(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._execute("exists", keys[0], *keys)

    async def keys(self, pattern: str) -> list[str]:
        # SCAN instead of KEYS so large keyspaces never block the server
        try:
            return [key async for key in self._client().scan_iter(match=pattern, count=500)]
        except RedisError as e:
            log_stage(logger, Stage.KV_COMMAND, "KV command failed", level="error", command="SCAN", key=pattern, error=str(e))
            raise CacheKeyError(message=f"KV SCAN failed: {e}", details={"key": pattern, "command": "SCAN"})

    async def mget(self, *keys: str) -> list[Any | None]:
        if not keys:
            return []
        raws = await self._execute("mget", keys[0], list(keys))
        return [decode(raw) for raw in raws]

    async def mset(self, mapping: Mapping[str, Any]) -> bool:
        if not mapping:
            return True
        encoded = {key: encode(value, key) for key, value in mapping.items()}
        result = await self._execute("mset", next(iter(encoded)), encoded)
        for key in encoded:
            self._invalidate(key)
        return bool(result)

    async def incr(self, key: str) -> int:
        value = await self._execute("incr", key, key)
        self._l1.delete(L1_PREFIX_STRING + key)
        return value

    async def incrby(self, key: str, amount: int) -> int:
        value = await self._execute("incrby", key, key, amount)
        self._l1.delete(L1_PREFIX_STRING + key)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        result = await self._execute("expire", key, key, seconds)
        self._invalidate(key)
        return bool(result)

    async def ttl(self, key: str) -> int:
        return await self._execute("ttl", key, key)

    # -------------------------------------------------------------------------
    # Hashes
    # -------------------------------------------------------------------------

    async def _raw_hash(self, name: str) -> dict[str, str]:
        l1_key = L1_PREFIX_HASH + name
        cached = self._l1.get(l1_key)
        if cached is not None:
            return cached

        raw = await self._execute("hgetall", name, name)
        if raw:
            await self._fill_l1(l1_key, name, raw)
        return raw or {}

    async def hgetall(self, name: str) -> dict[str, Any]:
        raw = await self._raw_hash(name)
        return {field: decode(value) for field, value in raw.items()}

    async def hset(self, name: str, mapping: Mapping[str, Any]) -> int:
        encoded = {field: encode(value, name) for field, value in mapping.items()}
        added = await self._execute("hset", name, name, mapping=encoded)
        self._l1.delete(L1_PREFIX_HASH + name)
        return added

    async def hget(self, name: str, field: str) -> Any | None:
        cached = self._l1.get(L1_PREFIX_HASH + name)
        if cached is not None:
            return decode(cached.get(field))
        return decode(await self._execute("hget", name, name, field))

    async def hdel(self, name: str, *fields: str) -> int:
        removed = await self._execute("hdel", name, name, *fields)
        self._l1.delete(L1_PREFIX_HASH + name)
        return removed

    # -------------------------------------------------------------------------
    # Sets
    # -------------------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> int:
        added = await self._execute("sadd", key, key, *members)
        self._l1.delete_by_prefix(f"{L1_PREFIX_SISMEMBER}{key}:")
        return added

    async def srem(self, key: str, *members: str) -> int:
        removed = await self._execute("srem", key, key, *members)
        self._l1.delete_by_prefix(f"{L1_PREFIX_SISMEMBER}{key}:")
        return removed

    async def sismember(self, key: str, member: str) -> bool:
        l1_key = f"{L1_PREFIX_SISMEMBER}{key}:{member}"
        cached = self._l1.get(l1_key)
        if cached is not None:
            return cached

        result = bool(await self._execute("sismember", key, key, member))
        if result:
            # a positive answer turns false when the set expires
            await self._fill_l1(l1_key, key, result)
        else:
            self._l1.set(l1_key, result, ttl=self._l1_ttl)
        return result

    async def smembers(self, key: str) -> set[str]:
        return set(await self._execute("smembers", key, key))

    async def scard(self, key: str) -> int:
        return await self._execute("scard", key, key)

    async def sismember_many(self, checks: Iterable[tuple[str, str]]) -> list[bool]:
        """
        Batched membership tests.

        L1 answers what it can; the remaining checks go out in one pipeline.
        """
        checks = list(checks)
        results: list[bool | None] = []
        pending: list[int] = []

        for index, (key, member) in enumerate(checks):
            cached = self._l1.get(f"{L1_PREFIX_SISMEMBER}{key}:{member}")
            results.append(cached)
            if cached is None:
                pending.append(index)

        if pending:
            try:
                pipe = self._client().pipeline(transaction=False)
                for index in pending:
                    key, member = checks[index]
                    pipe.sismember(key, member)
                    pipe.pttl(key)
                replies = await pipe.execute()
            except RedisError as e:
                log_stage(
                    logger,
                    Stage.KV_COMMAND,
                    "KV pipeline failed",
                    level="error",
                    command="SISMEMBER",
                    batch=len(pending),
                    error=str(e),
                )
                raise CacheKeyError(
                    message=f"KV SISMEMBER pipeline failed: {e}",
                    details={"command": "SISMEMBER", "batch": len(pending)},
                )

            for index, answer, pttl in zip(pending, replies[0::2], replies[1::2]):
                key, member = checks[index]
                results[index] = bool(answer)
                ttl = self._l1_ttl_from_pttl(pttl) if answer else self._l1_ttl
                if ttl is not None:
                    self._l1.set(f"{L1_PREFIX_SISMEMBER}{key}:{member}", bool(answer), ttl=ttl)

        return [bool(result) for result in results]

    # -------------------------------------------------------------------------
    # Sorted sets
    # -------------------------------------------------------------------------

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        return await self._execute("zadd", key, key, dict(mapping))

    async def zrange(
        self,
        key: str,
        start: float,
        stop: float,
        by_score: bool = False,
        rev: bool = False,
        with_scores: bool = False,
    ) -> list[Any]:
        if by_score and rev:
            # ZRANGE ... BYSCORE REV takes the upper bound first
            start, stop = stop, start

        result = await self._execute(
            "zrange",
            key,
            key,
            start,
            stop,
            desc=rev,
            withscores=with_scores,
            byscore=by_score,
        )
        if with_scores:
            return [(member, float(score)) for member, score in result]
        return list(result)

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return await self._execute("zremrangebyscore", key, key, min_score, max_score)

    async def zcard(self, key: str) -> int:
        return await self._execute("zcard", key, key)

    async def zrem(self, key: str, *members: str) -> int:
        return await self._execute("zrem", key, key, *members)

    async def zscore(self, key: str, member: str) -> float | None:
        score = await self._execute("zscore", key, key, member)
        return None if score is None else float(score)

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    async def lpush(self, key: str, *values: Any) -> int:
        return await self._execute("lpush", key, key, *(encode(v, key) for v in values))

    async def rpush(self, key: str, *values: Any) -> int:
        return await self._execute("rpush", key, key, *(encode(v, key) for v in values))

    async def lrange(self, key: str, start: int, stop: int) -> list[Any]:
        return [decode(raw) for raw in await self._execute("lrange", key, key, start, stop)]

    async def llen(self, key: str) -> int:
        return await self._execute("llen", key, key)

#!/usr/bin/env python3
"""
Process-Local Memory Cache (LRU + TTL + Stale-While-Revalidate)

Architecture:
    MemoryCache (Public API)
        ├── CacheEntry (value + hard expiry + soft "stale" deadline)
        ├── LRU eviction (by last access, 10% of the ceiling at a time)
        ├── Background sweep task (removes hard-expired entries)
        └── Detached SWR revalidation tasks (one per key at most)

This is a per-process cache, never shared across workers. The durable KV
backend uses it as its L1 read-through tier; the API layer uses it directly
for expensive aggregate responses.

No locks: every operation on the entry map completes without awaiting, so the
event loop's cooperative scheduling already serializes them.
"""

import asyncio
import inspect
import math
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from driveindex.core.config.constants import (
    L1_CACHE_MAX_SIZE,
    L1_DEFAULT_TTL,
    L1_EVICTION_FRACTION,
    L1_SWEEP_INTERVAL,
    Stage,
)
from driveindex.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[T] | T]


@dataclass
class CacheEntry(Generic[T]):
    """
    One cached value.

    ``stale_at <= expires`` always holds. Between the two the value is still
    served, but ``get_with_swr`` refreshes it in the background.
    """

    value: T
    expires: float
    stale_at: float
    access_count: int
    last_access: float


@dataclass
class CacheStats:
    """Diagnostic counters. Nothing reads them to make decisions."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0


async def _resolve(fetcher: Fetcher) -> Any:
    value = fetcher()
    if inspect.isawaitable(value):
        value = await value
    return value


class MemoryCache:
    """
    In-memory LRU cache with TTL and stale-while-revalidate.

    Usage:
        cache = MemoryCache()
        cache.start()  # inside a running event loop

        cache.set("drive:folder:abc:first", listing, ttl=60)
        listing = cache.get("drive:folder:abc:first")

        report = await cache.get_with_swr("analytics", build_report, ttl=60, swr=30)

        await cache.close()

    Args:
        max_entries: Entry ceiling; reaching it evicts the least recently
            used 10% before the next insert
        default_ttl: TTL in seconds when ``set`` is called without one
        sweep_interval: Seconds between background expiry sweeps
        clock: Wall-clock source in seconds (injectable for tests)
    """

    def __init__(
        self,
        max_entries: int = L1_CACHE_MAX_SIZE,
        default_ttl: float = L1_DEFAULT_TTL,
        sweep_interval: float = L1_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._entries: dict[str, CacheEntry[Any]] = {}
        self._stats = CacheStats()
        self._sweep_task: asyncio.Task | None = None
        self._revalidations: dict[str, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the background sweep.

        Must be called from inside a running event loop. The sweep is a plain
        asyncio task, so it never keeps the process alive on its own.
        """
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def close(self) -> None:
        """Cancel the sweep and any in-flight revalidations."""
        tasks = list(self._revalidations.values())
        if self._sweep_task is not None:
            tasks.append(self._sweep_task)
            self._sweep_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

        self._revalidations.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.cleanup_expired()

    def cleanup_expired(self) -> int:
        """
        Remove every hard-expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires <= now]
        for key in expired:
            del self._entries[key]

        if expired:
            log_stage(logger, Stage.L1_SWEEP, "Cleaned expired entries", level="debug", cleaned=len(expired))

        return len(expired)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    def _live_entry(self, key: str, now: float) -> CacheEntry[Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires <= now:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """
        Get a value.

        Returns None on a miss or once the entry reached its hard expiry
        (the expired entry is deleted on the way out).
        """
        now = self._clock()
        entry = self._live_entry(key, now)

        if entry is None:
            self._stats.misses += 1
            return None

        entry.access_count += 1
        entry.last_access = now
        self._stats.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None, swr: float = 0.0) -> None:
        """
        Store a value.

        Args:
            key: Cache key
            value: Value to cache (stored by reference)
            ttl: Seconds until hard expiry (default: ``default_ttl``)
            swr: Trailing part of ``ttl`` during which the value is stale
                but still served by ``get_with_swr``
        """
        ttl = self._default_ttl if ttl is None else ttl
        swr = min(max(swr, 0.0), ttl)

        if key not in self._entries:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            expires=now + ttl,
            stale_at=now + (ttl - swr),
            access_count=1,
            last_access=now,
        )
        self._stats.sets += 1

    def has(self, key: str) -> bool:
        """Check if key exists and is not expired (does not count as access)."""
        return self._live_entry(key, self._clock()) is not None

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``. Returns the count."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry (counters are kept)."""
        self._entries.clear()

    def _evict_lru(self) -> None:
        """
        Evict the least recently used 10% once the ceiling is reached.

        Sorting is stable, so entries with equal ``last_access`` leave in
        insertion order.
        """
        if len(self._entries) < self._max_entries:
            return

        to_evict = math.ceil(self._max_entries * L1_EVICTION_FRACTION)
        victims = sorted(self._entries.items(), key=lambda item: item[1].last_access)[:to_evict]
        for key, _ in victims:
            del self._entries[key]
            self._stats.evictions += 1

        log_stage(logger, Stage.L1_EVICTION, "L1 evicted entries", level="debug", evicted=len(victims))

    # -------------------------------------------------------------------------
    # Advanced Patterns
    # -------------------------------------------------------------------------

    async def get_or_set(self, key: str, fetcher: Fetcher, ttl: float | None = None) -> Any:
        """
        Cache-aside: return the cached value or fetch, store and return it.

        The fetcher runs once per miss. It may be sync or async.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        value = await _resolve(fetcher)
        self.set(key, value, ttl)
        return value

    async def get_with_swr(self, key: str, fetcher: Fetcher, ttl: float, swr: float) -> Any:
        """
        Stale-while-revalidate read.

        - fresh (before ``stale_at``): cached value, no fetch
        - stale (between ``stale_at`` and ``expires``): cached value, plus one
          detached background refetch for this key
        - missing or expired: fetch inline, store, return

        A failed background refetch is logged and leaves the old entry in
        place until its hard expiry.
        """
        now = self._clock()
        entry = self._live_entry(key, now)

        if entry is not None:
            entry.access_count += 1
            entry.last_access = now
            self._stats.hits += 1
            if now > entry.stale_at:
                self._schedule_revalidation(key, fetcher, ttl, swr)
            return entry.value

        self._stats.misses += 1
        value = await _resolve(fetcher)
        self.set(key, value, ttl, swr)
        return value

    def _schedule_revalidation(self, key: str, fetcher: Fetcher, ttl: float, swr: float) -> None:
        running = self._revalidations.get(key)
        if running is not None and not running.done():
            return

        task = asyncio.get_running_loop().create_task(self._revalidate(key, fetcher, ttl, swr))
        self._revalidations[key] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._revalidations.get(key) is finished:
                del self._revalidations[key]

        task.add_done_callback(_forget)

    async def _revalidate(self, key: str, fetcher: Fetcher, ttl: float, swr: float) -> None:
        try:
            value = await _resolve(fetcher)
        except Exception as e:
            log_stage(
                logger,
                Stage.L1_REVALIDATE,
                "Background revalidation failed",
                level="warning",
                cache_key=key,
                error=str(e),
            )
            return

        self.set(key, value, ttl, swr)
        log_stage(logger, Stage.L1_REVALIDATE, "Background revalidation complete", level="debug", cache_key=key)

    async def wait_for_revalidations(self) -> None:
        """Await every in-flight background revalidation (used on shutdown and in tests)."""
        pending = list(self._revalidations.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Current number of entries (expired ones included until swept)."""
        return len(self._entries)

    @property
    def max_size(self) -> int:
        """Entry ceiling."""
        return self._max_entries

    def get_keys(self) -> list[str]:
        """All keys in insertion order."""
        return list(self._entries.keys())

    def entry(self, key: str) -> CacheEntry[Any] | None:
        """Raw entry lookup without touching counters or expiry."""
        return self._entries.get(key)

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with hits, misses, sets, evictions, size and hit rate (%)
        """
        total = self._stats.hits + self._stats.misses
        hit_rate = round(self._stats.hits / total * 100, 2) if total > 0 else 0.0

        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "sets": self._stats.sets,
            "evictions": self._stats.evictions,
            "size": len(self._entries),
            "max_size": self._max_entries,
            "hit_rate": hit_rate,
        }

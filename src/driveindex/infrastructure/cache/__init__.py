from .memory_cache import CacheEntry, CacheStats, MemoryCache

__all__ = [
    "CacheEntry",
    "CacheStats",
    "MemoryCache",
]

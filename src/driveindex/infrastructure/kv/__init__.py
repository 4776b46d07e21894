from .factory import create_kv_store, select_backend
from .memory_kv import InMemoryKVStore
from .redis_kv import RedisKVStore

__all__ = [
    "InMemoryKVStore",
    "RedisKVStore",
    "create_kv_store",
    "select_backend",
]

from .kv import KVStore

__all__ = ["KVStore"]

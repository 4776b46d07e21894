"""
KV Store Factory

Chooses the KV backend once at startup. Nothing else in the code base looks at
the concrete type; everything types against ``KVStore``.
"""

from driveindex.core.config.constants import KVBackend, Stage
from driveindex.core.interfaces.kv import KVStore
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.infrastructure.cache.memory_cache import MemoryCache
from driveindex.infrastructure.kv.memory_kv import InMemoryKVStore
from driveindex.infrastructure.kv.redis_kv import RedisKVStore

logger = get_logger(__name__)


def select_backend(settings) -> KVBackend:
    """
    Decide which backend the settings call for.

    The durable backend needs both a ``KV_URL`` and a runtime that keeps
    sockets open between requests (``KV_PERSISTENT_CONNECTIONS``).
    """
    kv = settings.kv
    if kv.KV_URL and kv.KV_PERSISTENT_CONNECTIONS:
        return KVBackend.DURABLE
    return KVBackend.IN_PROCESS


def create_kv_store(settings, memory_cache: MemoryCache) -> KVStore:
    """
    Build the KV store for this process.

    Args:
        settings: Application settings
        memory_cache: Shared MemoryCache, used as L1 by the durable backend

    Returns:
        KVStore: Unconnected store; the caller awaits ``connect()``
    """
    backend = select_backend(settings)

    if backend is KVBackend.DURABLE:
        store: KVStore = RedisKVStore(settings, memory_cache)
    else:
        if settings.kv.KV_URL:
            log_stage(
                logger,
                Stage.KV_SELECT,
                "KV_URL ignored because persistent connections are disabled",
                level="warning",
            )
        store = InMemoryKVStore()

    log_stage(logger, Stage.KV_SELECT, "KV backend selected", backend=backend.value)
    return store

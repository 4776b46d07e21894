"""
Application Context

Builds every long-lived component once and owns their lifecycle:

    Settings
      └── MemoryCache ──────────────┐
      └── KV store (factory) ◄──────┘ (L1 for the durable backend)
      └── httpx.AsyncClient
            └── TokenManager (KV + HTTP)
                  └── ResilientFetcher
                        └── DriveFetchers (KV + MemoryCache)
      └── AnalyticsAggregator (KV)

The API stores one context on ``app.state``; tests build a fresh one per test
instead of sharing module-level singletons.
"""

import asyncio
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from driveindex.analytics.tracker import AnalyticsAggregator
from driveindex.core.config.constants import Stage
from driveindex.core.config.settings import Settings, get_settings
from driveindex.core.exceptions import ConfigurationError
from driveindex.core.interfaces.kv import KVStore
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.drive.auth import TokenManager
from driveindex.drive.client import ResilientFetcher, SleepFunc
from driveindex.drive.fetchers import DriveFetchers
from driveindex.infrastructure.cache.memory_cache import MemoryCache
from driveindex.infrastructure.kv.factory import create_kv_store

logger = get_logger(__name__)


def _resolve_timezone(name: str | None) -> ZoneInfo | None:
    """Map ANALYTICS_TIMEZONE to a zone; None keeps the host zone."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(
            message=f"Unknown ANALYTICS_TIMEZONE: {name}",
            details={"setting": "ANALYTICS_TIMEZONE", "value": name},
        ) from e


class AppContext:
    """
    Container for the process-wide components.

    Usage:
        context = AppContext()
        await context.start()
        token = await context.token_manager.get_access_token()
        await context.close()

    Any component can be passed in pre-built (tests hand in an in-process KV
    store, a mock-transport HTTP client or a no-op sleep).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        memory_cache: MemoryCache | None = None,
        kv: KVStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        cache_cfg = self.settings.cache
        drive_cfg = self.settings.drive
        analytics_cfg = self.settings.analytics
        analytics_tz = _resolve_timezone(analytics_cfg.ANALYTICS_TIMEZONE)

        self.memory_cache = memory_cache or MemoryCache(
            max_entries=cache_cfg.CACHE_L1_MAX_SIZE,
            default_ttl=cache_cfg.CACHE_L1_DEFAULT_TTL,
            sweep_interval=cache_cfg.CACHE_SWEEP_INTERVAL,
        )
        self.kv = kv or create_kv_store(self.settings, self.memory_cache)

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=drive_cfg.HTTP_TIMEOUT)

        self.token_manager = TokenManager(self.kv, self.http_client, self.settings)
        self.fetcher = ResilientFetcher(
            self.http_client,
            self.token_manager,
            max_retries=drive_cfg.FETCH_MAX_RETRIES,
            base_delay=drive_cfg.FETCH_RETRY_BASE_DELAY,
            sleep=sleep,
        )
        self.drive = DriveFetchers(self.kv, self.memory_cache, self.fetcher, self.token_manager, self.settings)

        self.analytics = AnalyticsAggregator(
            self.kv,
            tz=analytics_tz,
            enabled=analytics_cfg.ANALYTICS_ENABLED,
        )

    async def start(self) -> None:
        """Connect the KV store and start the cache sweep."""
        await self.kv.connect()
        self.memory_cache.start()
        log_stage(logger, Stage.INITIALIZATION, "Application context started", kv_backend=self.kv.backend.value)

    async def close(self) -> None:
        """Flush detached work, stop timers and release connections."""
        await self.drive.wait_for_background()
        await self.memory_cache.close()
        await self.kv.close()
        if self._owns_http_client:
            await self.http_client.aclose()
        log_stage(logger, Stage.INITIALIZATION, "Application context closed")

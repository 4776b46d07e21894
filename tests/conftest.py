"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.test_fixtures.clock import FakeClock, SleepRecorder

# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode via pyproject.toml


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """
    Real Settings built from explicit values.

    ``_env_file=None`` keeps a developer's .env out of the tests; explicit
    kwargs win over anything in the process environment.
    """
    from driveindex.core.config.settings import Settings

    return Settings(
        _env_file=None,
        KV_URL=None,
        KV_PERSISTENT_CONNECTIONS=True,
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
        GOOGLE_REFRESH_TOKEN="refresh-token",
        ROOT_FOLDER_ID="root-folder",
        OAUTH_TOKEN_URL="https://oauth.test/token",
        DRIVE_API_URL="https://drive.test/drive/v3",
        ANALYTICS_TIMEZONE=None,
        ENVIRONMENT="test",
        LOG_LEVEL="INFO",
    )


@pytest.fixture
def unconfigured_settings(settings):
    """Settings without an environment refresh token (credentials come from KV)."""
    return settings.model_copy(update={"GOOGLE_REFRESH_TOKEN": None})


@pytest.fixture
def redis_settings(settings):
    """Settings selecting the durable backend."""
    return settings.model_copy(update={"KV_URL": "redis://localhost:6379/0"})


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def clock():
    """Manually advanced wall clock (seconds)."""
    return FakeClock()


@pytest.fixture
def sleeps():
    """Records requested backoff delays instead of sleeping."""
    return SleepRecorder()


# ============================================================================
# Cache / KV Fixtures
# ============================================================================


@pytest.fixture
def memory_cache(clock):
    """MemoryCache on the fake clock."""
    from driveindex.infrastructure.cache.memory_cache import MemoryCache

    return MemoryCache(clock=clock)


@pytest.fixture
async def memory_kv(clock):
    """In-process KV store on the fake clock, closed after the test."""
    from driveindex.infrastructure.kv.memory_kv import InMemoryKVStore

    kv = InMemoryKVStore(clock=clock)
    await kv.connect()
    yield kv
    await kv.close()


@pytest.fixture
def mock_redis_client():
    """
    AsyncMock standing in for ``redis.asyncio.Redis``.

    Every command is awaitable and keys carry no expiry (PTTL -1) unless a
    test says otherwise. ``pipeline()`` is synchronous and returns a
    pipeline whose only awaitable is ``execute``.
    """
    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.pttl = AsyncMock(return_value=-1)

    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    client.pipeline = MagicMock(return_value=pipe)

    return client


# ============================================================================
# Drive Fixtures
# ============================================================================


@pytest.fixture
def mock_token_manager():
    """TokenManager double handing out a fixed token."""
    from driveindex.drive.auth import TokenManager

    tokens = AsyncMock(spec=TokenManager)
    tokens.get_access_token = AsyncMock(return_value="fresh-token")
    tokens.invalidate_access_token = AsyncMock()
    return tokens

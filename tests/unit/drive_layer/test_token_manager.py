"""
Unit Tests for TokenManager

Tests token caching, the refresh-token grant and failure classification.
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs

import httpx
import pytest

from driveindex.core.config.constants import KV_KEY_ACCESS_TOKEN, KV_KEY_CREDENTIALS
from driveindex.core.exceptions import (
    AppNotConfiguredError,
    AuthenticationFailedError,
    CacheKeyError,
    SessionExpiredError,
)
from driveindex.drive.auth import AppCredentials, TokenManager
from tests.test_fixtures.http_factory import HttpTestFactory

STORED_CREDENTIALS = {
    "clientId": "stored-client",
    "clientSecret": "stored-secret",
    "refreshToken": "stored-refresh",
    "rootFolderId": "stored-root",
}


def _token_endpoint(status: int, payload: dict, seen: list):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=payload)

    return HttpTestFactory.client(handler)


@pytest.mark.unit
class TestCredentials:
    """Test credential resolution order."""

    @pytest.mark.asyncio
    async def test_settings_take_precedence(self, settings, memory_kv):
        await memory_kv.set(KV_KEY_CREDENTIALS, STORED_CREDENTIALS)
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), settings)

        credentials = await tokens.get_credentials()

        assert credentials.client_id == "client-id"
        assert credentials.refresh_token == "refresh-token"
        assert credentials.root_folder_id == "root-folder"

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_record(self, unconfigured_settings, memory_kv):
        await memory_kv.set(KV_KEY_CREDENTIALS, STORED_CREDENTIALS)
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), unconfigured_settings)

        credentials = await tokens.get_credentials()

        assert credentials == AppCredentials(
            client_id="stored-client",
            client_secret="stored-secret",
            refresh_token="stored-refresh",
            root_folder_id="stored-root",
        )

    @pytest.mark.asyncio
    async def test_malformed_record_is_not_configured(self, unconfigured_settings, memory_kv):
        await memory_kv.set(KV_KEY_CREDENTIALS, {"clientId": "only-this"})
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), unconfigured_settings)

        assert await tokens.get_credentials() is None


@pytest.mark.unit
class TestGetAccessToken:
    """Test the cached / refreshed token paths."""

    @pytest.mark.asyncio
    async def test_cached_token_skips_refresh(self, settings, memory_kv):
        await memory_kv.set(KV_KEY_ACCESS_TOKEN, "cached-token", ex=100)
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), settings)

        assert await tokens.get_access_token() == "cached-token"

    @pytest.mark.asyncio
    async def test_refreshes_and_caches_with_margin(self, settings, memory_kv):
        seen = []
        client = _token_endpoint(200, {"access_token": "ya29.new", "expires_in": 3600}, seen)
        tokens = TokenManager(memory_kv, client, settings)

        token = await tokens.get_access_token()

        assert token == "ya29.new"
        assert await memory_kv.get(KV_KEY_ACCESS_TOKEN) == "ya29.new"
        assert await memory_kv.ttl(KV_KEY_ACCESS_TOKEN) == 3500

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://oauth.test/token"
        form = parse_qs(request.content.decode())
        assert form == {
            "client_id": ["client-id"],
            "client_secret": ["client-secret"],
            "refresh_token": ["refresh-token"],
            "grant_type": ["refresh_token"],
        }

    @pytest.mark.asyncio
    async def test_second_call_uses_cache(self, settings, memory_kv):
        seen = []
        client = _token_endpoint(200, {"access_token": "ya29.new", "expires_in": 3600}, seen)
        tokens = TokenManager(memory_kv, client, settings)

        await tokens.get_access_token()
        await tokens.get_access_token()

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_missing_expires_in_defaults_to_an_hour(self, settings, memory_kv):
        client = _token_endpoint(200, {"access_token": "ya29.new"}, [])
        tokens = TokenManager(memory_kv, client, settings)

        await tokens.get_access_token()

        assert await memory_kv.ttl(KV_KEY_ACCESS_TOKEN) == 3500

    @pytest.mark.asyncio
    async def test_not_configured(self, unconfigured_settings, memory_kv):
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), unconfigured_settings)

        with pytest.raises(AppNotConfiguredError):
            await tokens.get_access_token()

    @pytest.mark.asyncio
    async def test_invalid_grant_deletes_credentials(self, unconfigured_settings, memory_kv):
        await memory_kv.set(KV_KEY_CREDENTIALS, STORED_CREDENTIALS)
        client = _token_endpoint(400, {"error": "invalid_grant", "error_description": "Token has been revoked."}, [])
        tokens = TokenManager(memory_kv, client, unconfigured_settings)

        with pytest.raises(SessionExpiredError):
            await tokens.get_access_token()

        assert await memory_kv.get(KV_KEY_CREDENTIALS) is None

    @pytest.mark.asyncio
    async def test_other_oauth_error(self, settings, memory_kv):
        client = _token_endpoint(401, {"error": "invalid_client", "error_description": "The OAuth client was not found."}, [])
        tokens = TokenManager(memory_kv, client, settings)

        with pytest.raises(AuthenticationFailedError) as exc_info:
            await tokens.get_access_token()

        assert exc_info.value.message == "The OAuth client was not found."
        assert exc_info.value.details["oauth_error"] == "invalid_client"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, settings, memory_kv):
        client = HttpTestFactory.client(lambda request: httpx.Response(502, text="Bad Gateway"))
        tokens = TokenManager(memory_kv, client, settings)

        with pytest.raises(AuthenticationFailedError, match="Authentication failed"):
            await tokens.get_access_token()

    @pytest.mark.asyncio
    async def test_cache_failures_do_not_block_refresh(self, settings):
        kv = AsyncMock()
        kv.get.side_effect = CacheKeyError("KV GET failed")
        kv.set.side_effect = CacheKeyError("KV SET failed")
        client = _token_endpoint(200, {"access_token": "ya29.new", "expires_in": 3600}, [])
        tokens = TokenManager(kv, client, settings)

        assert await tokens.get_access_token() == "ya29.new"


@pytest.mark.unit
class TestInvalidate:
    """Test token invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_keeps_credentials(self, unconfigured_settings, memory_kv):
        await memory_kv.set(KV_KEY_ACCESS_TOKEN, "old", ex=100)
        await memory_kv.set(KV_KEY_CREDENTIALS, STORED_CREDENTIALS)
        tokens = TokenManager(memory_kv, HttpTestFactory.unreachable(), unconfigured_settings)

        await tokens.invalidate_access_token()

        assert await memory_kv.get(KV_KEY_ACCESS_TOKEN) is None
        assert await memory_kv.get(KV_KEY_CREDENTIALS) == STORED_CREDENTIALS

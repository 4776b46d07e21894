"""
Unit Tests for DriveFetchers

Tests the two-tier cached Drive reads and folder cache invalidation.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from driveindex.core.exceptions import CacheKeyError, DriveAPIError
from driveindex.drive.client import ResilientFetcher
from driveindex.drive.fetchers import DriveFetchers
from tests.test_fixtures.http_factory import HttpTestFactory

FOLDER_ID = "abc"
MEMORY_KEY = "drive:folder:abc:first"
KV_KEY = "zee-index:folder-content-v3:abc:first"

LISTING = {
    "files": [
        HttpTestFactory.drive_file("1", "Docs", folder=True),
        HttpTestFactory.drive_file("2", "notes.txt", size="120"),
    ],
    "nextPageToken": "tok2",
}


def _drive(kv, memory_cache, tokens, settings, sleeps, client) -> DriveFetchers:
    fetcher = ResilientFetcher(client, tokens, sleep=sleeps)
    return DriveFetchers(kv, memory_cache, fetcher, tokens, settings)


@pytest.fixture
def build_drive(memory_kv, memory_cache, mock_token_manager, settings, sleeps):
    def _build(client, kv=None):
        return _drive(kv or memory_kv, memory_cache, mock_token_manager, settings, sleeps, client)

    return _build


@pytest.mark.unit
class TestListFiles:
    """Test folder listing and its cache tiers."""

    @pytest.mark.asyncio
    async def test_fetches_and_flags_folders(self, build_drive):
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client)

        result = await drive.list_files(FOLDER_ID)
        await drive.wait_for_background()

        assert result["next_page_token"] == "tok2"
        assert [f["is_folder"] for f in result["files"]] == [True, False]
        assert result["files"][1]["size"] == "120"

        request = script.requests[0]
        assert request.url.path == "/drive/v3/files"
        assert request.url.params["q"] == "'abc' in parents and trashed=false"
        assert request.url.params["pageSize"] == "50"
        assert request.url.params["orderBy"] == "folder, name"
        assert "pageToken" not in request.url.params
        assert request.headers["Authorization"] == "Bearer fresh-token"

    @pytest.mark.asyncio
    async def test_populates_both_tiers(self, build_drive, memory_kv, memory_cache, clock):
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client)

        result = await drive.list_files(FOLDER_ID)
        await drive.wait_for_background()

        assert memory_cache.entry(MEMORY_KEY).expires == clock() + 60
        assert await memory_kv.get(KV_KEY) == result
        assert await memory_kv.ttl(KV_KEY) == 3600

    @pytest.mark.asyncio
    async def test_second_call_served_from_memory(self, build_drive):
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client)

        first = await drive.list_files(FOLDER_ID)
        second = await drive.list_files(FOLDER_ID)
        await drive.wait_for_background()

        assert first == second
        assert len(script.requests) == 1

    @pytest.mark.asyncio
    async def test_kv_hit_fills_memory(self, build_drive, memory_kv, memory_cache):
        stored = {"files": [{"id": "9", "is_folder": False}], "next_page_token": None}
        await memory_kv.set(KV_KEY, stored)
        drive = build_drive(HttpTestFactory.unreachable())

        assert await drive.list_files(FOLDER_ID) == stored
        assert memory_cache.get(MEMORY_KEY) == stored

    @pytest.mark.asyncio
    async def test_empty_listing_cached_briefly(self, build_drive, memory_kv, memory_cache, clock):
        client, _ = HttpTestFactory.scripted((200, {"files": []}))
        drive = build_drive(client)

        result = await drive.list_files(FOLDER_ID)
        await drive.wait_for_background()

        assert result == {"files": [], "next_page_token": None}
        assert await memory_kv.ttl(KV_KEY) == 5
        assert memory_cache.entry(MEMORY_KEY).expires == clock() + 5

    @pytest.mark.asyncio
    async def test_page_token_keys_and_params(self, build_drive, memory_kv):
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client)

        await drive.list_files(FOLDER_ID, page_token="tok2", page_size=10)
        await drive.wait_for_background()

        assert script.requests[0].url.params["pageToken"] == "tok2"
        assert script.requests[0].url.params["pageSize"] == "10"
        assert await memory_kv.exists("zee-index:folder-content-v3:abc:tok2") == 1

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_reads(self, build_drive, memory_cache):
        memory_cache.set(MEMORY_KEY, {"files": [], "next_page_token": None}, ttl=60)
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client)

        result = await drive.list_files(FOLDER_ID, use_cache=False)
        await drive.wait_for_background()

        assert len(script.requests) == 1
        assert len(result["files"]) == 2
        assert memory_cache.get(MEMORY_KEY) == result

    @pytest.mark.asyncio
    async def test_api_error_raises_with_message(self, build_drive):
        client, _ = HttpTestFactory.scripted((404, {"error": {"code": 404, "message": "File not found: abc."}}))
        drive = build_drive(client)

        with pytest.raises(DriveAPIError, match="File not found: abc."):
            await drive.list_files(FOLDER_ID)

    @pytest.mark.asyncio
    async def test_api_error_without_body(self, build_drive):
        client, _ = HttpTestFactory.scripted(httpx.Response(400, text="bad"))
        drive = build_drive(client)

        with pytest.raises(DriveAPIError) as exc_info:
            await drive.list_files(FOLDER_ID)

        assert exc_info.value.details == {"folder_id": FOLDER_ID, "status_code": 400}

    @pytest.mark.asyncio
    async def test_cache_failures_fall_through_to_api(self, build_drive):
        kv = AsyncMock()
        kv.get.side_effect = CacheKeyError("KV GET failed")
        kv.set.side_effect = CacheKeyError("KV SET failed")
        client, script = HttpTestFactory.scripted((200, LISTING))
        drive = build_drive(client, kv=kv)

        result = await drive.list_files(FOLDER_ID)
        await drive.wait_for_background()

        assert len(result["files"]) == 2
        kv.set.assert_awaited_once()


@pytest.mark.unit
class TestFileDetails:
    """Test single-file metadata reads."""

    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, build_drive, memory_kv):
        client, script = HttpTestFactory.scripted((200, HttpTestFactory.drive_file("f1", "a.pdf")))
        drive = build_drive(client)

        first = await drive.get_file_details("f1")
        second = await drive.get_file_details("f1")

        assert first == second
        assert first["is_folder"] is False
        assert len(script.requests) == 1
        assert script.requests[0].url.path == "/drive/v3/files/f1"
        assert await memory_kv.ttl("gdrive:file-details-v2:f1") == 600

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, build_drive, memory_kv):
        client, _ = HttpTestFactory.scripted(404)
        drive = build_drive(client)

        assert await drive.get_file_details("missing") is None
        assert await memory_kv.exists("gdrive:file-details-v2:missing") == 0


@pytest.mark.unit
class TestSharedDrives:
    """Test shared drive listing."""

    @pytest.mark.asyncio
    async def test_lists_drives(self, build_drive):
        client, script = HttpTestFactory.scripted((200, {"drives": [{"id": "d1", "name": "Team"}]}))
        drive = build_drive(client)

        assert await drive.list_shared_drives() == [{"id": "d1", "name": "Team"}]
        assert script.requests[0].url.params["pageSize"] == "100"

    @pytest.mark.asyncio
    async def test_error_returns_empty(self, build_drive):
        client, _ = HttpTestFactory.scripted(403)
        drive = build_drive(client)

        assert await drive.list_shared_drives() == []


@pytest.mark.unit
class TestInvalidateFolderCache:
    """Test cache invalidation for one folder."""

    @pytest.mark.asyncio
    async def test_drops_matching_keys_in_both_tiers(self, build_drive, memory_kv, memory_cache):
        for key in (
            "zee-index:folder-content-v3:abc:first",
            "zee-index:folder-content-v3:abc:tok2",
            "zee-index:folder-path-v7:abc:user",
            "zee-index:folder-tree",
            "zee-index:folder-tree:root",
            "zee-index:folder-content-v3:other:first",
        ):
            await memory_kv.set(key, [])
        memory_cache.set("drive:folder:abc:first", [], ttl=60)
        memory_cache.set("folder-path:abc:user", [], ttl=60)
        memory_cache.set("drive:folder:other:first", [], ttl=60)
        drive = build_drive(HttpTestFactory.unreachable())

        deleted = await drive.invalidate_folder_cache("abc")

        assert deleted == 5
        assert await memory_kv.keys("*") == ["zee-index:folder-content-v3:other:first"]
        assert memory_cache.get_keys() == ["drive:folder:other:first"]

    @pytest.mark.asyncio
    async def test_kv_failure_still_clears_memory(self, build_drive, memory_cache):
        kv = AsyncMock()
        kv.keys.side_effect = CacheKeyError("KV SCAN failed")
        memory_cache.set("drive:folder:abc:first", [], ttl=60)
        drive = build_drive(HttpTestFactory.unreachable(), kv=kv)

        assert await drive.invalidate_folder_cache("abc") == 0
        assert memory_cache.get_keys() == []

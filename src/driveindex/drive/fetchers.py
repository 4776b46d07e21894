"""
Drive API Fetchers

Read-side calls against the Drive v3 API, cached in two tiers:

    MemoryCache (process-local, seconds)  ->  KV store (shared, up to an hour)  ->  API

Every request goes through ResilientFetcher, so 401 / 429 / 5xx handling lives
in one place. Cache failures never fail a read; they are logged and treated as
a miss.
"""

import asyncio
from typing import Any

from driveindex.core.config.constants import (
    DRIVE_DETAIL_FIELDS,
    DRIVE_FOLDER_MIME_TYPE,
    DRIVE_LIST_FIELDS,
    EMPTY_FOLDER_TTL,
    FILE_DETAILS_TTL,
    FOLDER_CONTENT_TTL,
    HEADER_AUTHORIZATION,
    KV_KEY_FILE_DETAILS,
    KV_KEY_FOLDER_CONTENT,
    KV_KEY_FOLDER_PATH,
    KV_KEY_FOLDER_TREE,
    L1_KEY_FOLDER,
    L1_KEY_FOLDER_PATH,
    CacheTTL,
    Stage,
)
from driveindex.core.exceptions import CacheError, DriveAPIError
from driveindex.core.interfaces.kv import KVStore
from driveindex.core.logging.logger import get_logger, log_stage
from driveindex.drive.auth import TokenManager
from driveindex.drive.client import ResilientFetcher
from driveindex.infrastructure.cache.memory_cache import MemoryCache

logger = get_logger(__name__)


def _with_folder_flag(file: dict[str, Any]) -> dict[str, Any]:
    return {**file, "is_folder": file.get("mimeType") == DRIVE_FOLDER_MIME_TYPE}


class DriveFetchers:
    """
    Cached Drive API reads and folder cache invalidation.

    Usage:
        drive = DriveFetchers(kv, memory_cache, fetcher, token_manager, settings)
        page = await drive.list_files(folder_id)
        details = await drive.get_file_details(file_id)
        await drive.invalidate_folder_cache(folder_id)
    """

    def __init__(
        self,
        kv: KVStore,
        memory_cache: MemoryCache,
        fetcher: ResilientFetcher,
        token_manager: TokenManager,
        settings,
    ):
        self._kv = kv
        self._memory = memory_cache
        self._fetcher = fetcher
        self._tokens = token_manager
        self._api_url = settings.drive.DRIVE_API_URL.rstrip("/")
        self._background: set[asyncio.Task] = set()

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._tokens.get_access_token()
        return {HEADER_AUTHORIZATION: f"Bearer {token}"}

    # -------------------------------------------------------------------------
    # Shared drives
    # -------------------------------------------------------------------------

    async def list_shared_drives(self) -> list[dict[str, Any]]:
        """Shared drives visible to the account; empty on any non-OK response."""
        response = await self._fetcher.fetch_with_retry(
            "GET",
            f"{self._api_url}/drives",
            headers=await self._auth_headers(),
            params={"pageSize": 100},
        )
        if not response.is_success:
            log_stage(logger, Stage.DRIVE_LIST, "Shared drive listing failed", level="warning", status_code=response.status_code)
            return []
        return response.json().get("drives") or []

    # -------------------------------------------------------------------------
    # Folder listings
    # -------------------------------------------------------------------------

    async def list_files(
        self,
        folder_id: str,
        page_token: str | None = None,
        page_size: int = 50,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """
        One page of a folder listing.

        Returns:
            ``{"files": [...], "next_page_token": str | None}``; each file
            carries ``is_folder``

        Raises:
            DriveAPIError: The API rejected the listing
        """
        page = page_token or "first"
        kv_key = f"{KV_KEY_FOLDER_CONTENT}:{folder_id}:{page}"
        memory_key = f"{L1_KEY_FOLDER}:{folder_id}:{page}"

        if use_cache:
            cached = self._memory.get(memory_key)
            if cached is not None:
                return cached

            try:
                stored = await self._kv.get(kv_key)
            except CacheError as e:
                log_stage(logger, Stage.DRIVE_LIST, "Folder cache read failed", level="warning", folder_id=folder_id, error=str(e))
                stored = None

            if stored:
                self._memory.set(memory_key, stored, CacheTTL.FOLDER_CONTENT)
                return stored

        params: dict[str, Any] = {
            "q": f"'{folder_id}' in parents and trashed=false",
            "fields": DRIVE_LIST_FIELDS,
            "orderBy": "folder, name",
            "pageSize": page_size,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        if page_token:
            params["pageToken"] = page_token

        response = await self._fetcher.fetch_with_retry(
            "GET",
            f"{self._api_url}/files",
            headers=await self._auth_headers(),
            params=params,
        )

        if not response.is_success:
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            raise DriveAPIError(
                message or "Make sure the folder ID is correct and accessible.",
                details={"folder_id": folder_id, "status_code": response.status_code},
            )

        data = response.json()
        files = [_with_folder_flag(file) for file in data.get("files") or []]
        result = {"files": files, "next_page_token": data.get("nextPageToken")}

        # Empty listings are often a folder that is still being filled
        kv_ttl = EMPTY_FOLDER_TTL if not files else FOLDER_CONTENT_TTL
        memory_ttl = EMPTY_FOLDER_TTL if not files else CacheTTL.FOLDER_CONTENT

        self._memory.set(memory_key, result, memory_ttl)
        self._spawn(self._kv.set(kv_key, result, ex=kv_ttl), kv_key)

        log_stage(logger, Stage.DRIVE_LIST, "Folder listed", level="debug", folder_id=folder_id, count=len(files))
        return result

    def _spawn(self, coro, key: str) -> None:
        """Run a cache write detached from the request; failures are logged."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                log_stage(logger, Stage.DRIVE_LIST, "Background cache write failed", level="error", cache_key=key, error=str(error))

        task.add_done_callback(_done)

    async def wait_for_background(self) -> None:
        """Await pending detached cache writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -------------------------------------------------------------------------
    # File details
    # -------------------------------------------------------------------------

    async def get_file_details(self, file_id: str) -> dict[str, Any] | None:
        """Full metadata for one file, or None when the API says no."""
        kv_key = f"{KV_KEY_FILE_DETAILS}:{file_id}"
        try:
            cached = await self._kv.get(kv_key)
            if cached:
                return cached
        except CacheError as e:
            log_stage(logger, Stage.DRIVE_DETAILS, "File details cache read failed", level="error", file_id=file_id, error=str(e))

        response = await self._fetcher.fetch_with_retry(
            "GET",
            f"{self._api_url}/files/{file_id}",
            headers=await self._auth_headers(),
            params={"fields": DRIVE_DETAIL_FIELDS, "supportsAllDrives": "true"},
        )
        if not response.is_success:
            return None

        details = _with_folder_flag(response.json())

        try:
            await self._kv.set(kv_key, details, ex=FILE_DETAILS_TTL)
        except CacheError as e:
            log_stage(logger, Stage.DRIVE_DETAILS, "File details cache write failed", level="error", file_id=file_id, error=str(e))

        return details

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    async def invalidate_folder_cache(self, folder_id: str) -> int:
        """
        Drop every cached view of a folder in both tiers.

        Returns:
            Number of KV keys deleted
        """
        patterns = [
            f"{KV_KEY_FOLDER_CONTENT}:{folder_id}:*",
            f"{KV_KEY_FOLDER_PATH}:{folder_id}:*",
            f"{KV_KEY_FOLDER_TREE}*",
        ]

        deleted = 0
        try:
            for pattern in patterns:
                keys = await self._kv.keys(pattern)
                if keys:
                    deleted += await self._kv.delete(*keys)
        except CacheError as e:
            log_stage(logger, Stage.DRIVE_INVALIDATE, "Folder cache invalidation failed", level="error", folder_id=folder_id, error=str(e))

        for prefix in (f"{L1_KEY_FOLDER}:{folder_id}:", f"{L1_KEY_FOLDER_PATH}:{folder_id}:"):
            self._memory.delete_by_prefix(prefix)

        log_stage(logger, Stage.DRIVE_INVALIDATE, "Folder cache invalidated", folder_id=folder_id, kv_keys=deleted)
        return deleted

"""
Access Token Lifecycle

TokenManager obtains a bearer token for the storage API from a long-lived
refresh token, caches it in the KV store and drops it when the API rejects
it.

Flow for ``get_access_token()``:
    1. KV hit on ``google:access-token`` -> return it
    2. Load AppCredentials (environment settings first, then the KV record
       written by the setup flow)
    3. POST a refresh-token grant to the token endpoint
    4. Cache the new token for ``expires_in - 100`` seconds

Concurrent callers that all miss the cache each refresh on their own; the last
write wins. Tokens are interchangeable, so this only costs extra requests.
"""

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from driveindex.core.config.constants import (
    KV_KEY_ACCESS_TOKEN,
    KV_KEY_CREDENTIALS,
    OAUTH_ERROR_INVALID_GRANT,
    TOKEN_DEFAULT_EXPIRES_IN,
    TOKEN_EXPIRY_MARGIN,
    Stage,
)
from driveindex.core.exceptions import (
    AppNotConfiguredError,
    AuthenticationFailedError,
    CacheError,
    SessionExpiredError,
)
from driveindex.core.interfaces.kv import KVStore
from driveindex.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)


class AppCredentials(BaseModel):
    """
    OAuth client credentials plus the refresh token.

    The KV copy is stored camelCase by the setup flow; both spellings load.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    client_id: str
    client_secret: str
    refresh_token: str
    root_folder_id: str | None = None


class TokenManager:
    """
    Acquires, caches and invalidates the storage API access token.

    Usage:
        tokens = TokenManager(kv, http_client, settings)
        token = await tokens.get_access_token()
        ...
        await tokens.invalidate_access_token()  # after a 401
    """

    def __init__(self, kv: KVStore, http_client: httpx.AsyncClient, settings):
        self._kv = kv
        self._http = http_client
        self._settings = settings

    async def get_credentials(self) -> AppCredentials | None:
        """
        Resolve credentials: settings first, then the KV record.

        A failed or malformed KV read counts as "not configured".
        """
        drive = self._settings.drive
        if drive.GOOGLE_REFRESH_TOKEN:
            return AppCredentials(
                client_id=drive.GOOGLE_CLIENT_ID or "",
                client_secret=drive.GOOGLE_CLIENT_SECRET or "",
                refresh_token=drive.GOOGLE_REFRESH_TOKEN,
                root_folder_id=drive.ROOT_FOLDER_ID,
            )

        try:
            stored = await self._kv.get(KV_KEY_CREDENTIALS)
        except CacheError as e:
            log_stage(logger, Stage.AUTH_REFRESH, "Failed to read stored credentials", level="error", error=str(e))
            return None

        if not stored:
            return None

        try:
            return AppCredentials.model_validate(stored)
        except ValidationError as e:
            log_stage(logger, Stage.AUTH_REFRESH, "Stored credentials are malformed", level="error", error=str(e))
            return None

    async def get_access_token(self) -> str:
        """
        Return a usable bearer token.

        Raises:
            AppNotConfiguredError: No credentials anywhere
            SessionExpiredError: The refresh token was revoked (credentials deleted)
            AuthenticationFailedError: Any other token endpoint failure
        """
        try:
            cached = await self._kv.get(KV_KEY_ACCESS_TOKEN)
            if cached:
                log_stage(logger, Stage.AUTH_CACHE, "Access token cache hit", level="debug")
                return cached
        except CacheError as e:
            log_stage(logger, Stage.AUTH_CACHE, "Access token cache read failed", level="error", error=str(e))

        credentials = await self.get_credentials()
        if credentials is None:
            raise AppNotConfiguredError(
                "Application is not configured. Run the setup flow to connect a storage account."
            )

        token_data = await self._refresh(credentials)
        access_token = token_data["access_token"]
        expires_in = int(token_data.get("expires_in") or TOKEN_DEFAULT_EXPIRES_IN)
        ttl = max(expires_in - TOKEN_EXPIRY_MARGIN, 1)

        try:
            await self._kv.set(KV_KEY_ACCESS_TOKEN, access_token, ex=ttl)
        except CacheError as e:
            log_stage(logger, Stage.AUTH_CACHE, "Access token cache write failed", level="error", error=str(e))

        log_stage(logger, Stage.AUTH_REFRESH, "Access token refreshed", ttl=ttl)
        return access_token

    async def _refresh(self, credentials: AppCredentials) -> dict[str, Any]:
        response = await self._http.post(
            self._settings.drive.OAUTH_TOKEN_URL,
            data={
                "client_id": credentials.client_id,
                "client_secret": credentials.client_secret,
                "refresh_token": credentials.refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

        if response.is_success:
            return response.json()

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}

        error_code = error_data.get("error")
        log_stage(
            logger,
            Stage.AUTH_REFRESH,
            "OAuth token refresh failed",
            level="error",
            status_code=response.status_code,
            oauth_error=error_code,
        )

        if error_code == OAUTH_ERROR_INVALID_GRANT:
            try:
                await self._kv.delete(KV_KEY_CREDENTIALS)
            except CacheError as e:
                log_stage(logger, Stage.AUTH_REFRESH, "Failed to delete revoked credentials", level="error", error=str(e))
            raise SessionExpiredError(
                "Storage session expired. Run the setup flow again.",
                details={"oauth_error": error_code},
            )

        raise AuthenticationFailedError(
            error_data.get("error_description") or "Authentication failed",
            details={"oauth_error": error_code, "status_code": response.status_code},
        )

    async def invalidate_access_token(self) -> None:
        """Drop the cached token (the credentials stay)."""
        await self._kv.delete(KV_KEY_ACCESS_TOKEN)
        log_stage(logger, Stage.AUTH_INVALIDATE, "Access token invalidated")

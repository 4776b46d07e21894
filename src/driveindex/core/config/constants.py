"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the drive index caching and resilience core.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- KV key names live here so that writers and readers never drift apart
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage`` field of structured log entries.

    Format: {PREFIX}.{NUMBER}_{DESCRIPTIVE_NAME}
    - PREFIX groups a subsystem (KV, L1, AUTH, FETCH, ANALYTICS)
    - DESCRIPTIVE_NAME makes the log line readable without code lookup
    """

    INITIALIZATION = "0.0_INITIALIZATION"

    # MemoryCache
    L1_LOOKUP = "L1.1_LOOKUP"
    L1_SET = "L1.2_SET"
    L1_EVICTION = "L1.3_EVICTION"
    L1_SWEEP = "L1.4_SWEEP"
    L1_REVALIDATE = "L1.5_SWR_REVALIDATE"

    # KV store
    KV_SELECT = "KV.0_BACKEND_SELECTION"
    KV_CONNECT = "KV.1_CONNECT"
    KV_COMMAND = "KV.2_COMMAND"
    KV_CLOSE = "KV.3_CLOSE"

    # Token lifecycle
    AUTH_CACHE = "AUTH.1_TOKEN_CACHE"
    AUTH_REFRESH = "AUTH.2_TOKEN_REFRESH"
    AUTH_INVALIDATE = "AUTH.3_TOKEN_INVALIDATE"

    # Outbound HTTP
    FETCH_REQUEST = "FETCH.1_REQUEST"
    FETCH_RETRY = "FETCH.2_RETRY"
    FETCH_EXHAUSTED = "FETCH.3_EXHAUSTED"

    # Analytics
    ANALYTICS_TRACK = "ANALYTICS.1_TRACK"
    ANALYTICS_QUERY = "ANALYTICS.2_QUERY"

    # Drive fetchers
    DRIVE_LIST = "DRIVE.1_LIST"
    DRIVE_DETAILS = "DRIVE.2_DETAILS"
    DRIVE_INVALIDATE = "DRIVE.3_INVALIDATE"


# ============================================================================
# KV Backend Kinds
# ============================================================================


class KVBackend(str, Enum):
    """
    The two interchangeable KV implementations.

    DURABLE: Redis over a pooled network connection
    IN_PROCESS: Plain dictionaries living in this process
    """

    DURABLE = "durable"
    IN_PROCESS = "in_process"


# ============================================================================
# MemoryCache
# ============================================================================

L1_CACHE_MAX_SIZE = 1000  # Entry ceiling before LRU eviction kicks in
L1_EVICTION_FRACTION = 0.1  # Share of the ceiling evicted at once
L1_DEFAULT_TTL = 30.0  # seconds
L1_SWEEP_INTERVAL = 60.0  # seconds between expired-entry sweeps

# L1 namespaces used by the durable KV adapter
L1_PREFIX_STRING = "kv:str:"
L1_PREFIX_HASH = "kv:hash:"
L1_PREFIX_SISMEMBER = "kv:sism:"


class CacheTTL:
    """Named MemoryCache TTL presets (seconds)."""

    FOLDER_CONTENT = 60.0
    FOLDER_PATH = 300.0
    FILE_DETAILS = 120.0
    PROTECTED_FOLDERS = 60.0
    USER_ACCESS = 30.0
    CONFIG = 300.0
    SHARE_TOKEN = 60.0


# ============================================================================
# Token Lifecycle
# ============================================================================

KV_KEY_ACCESS_TOKEN = "google:access-token"
KV_KEY_CREDENTIALS = "zee-index:credentials"
TOKEN_DEFAULT_EXPIRES_IN = 3600  # seconds, used when the provider omits it
TOKEN_EXPIRY_MARGIN = 100  # cached token dies this long before the provider's
OAUTH_ERROR_INVALID_GRANT = "invalid_grant"

# ============================================================================
# Retry Settings
# ============================================================================

MAX_RETRIES = 5  # Attempts per request, including the first
RETRY_BASE_DELAY = 1.0  # Base delay for exponential backoff (seconds)

# ============================================================================
# Drive API
# ============================================================================

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DRIVE_LIST_FIELDS = (
    "nextPageToken, files(id, name, mimeType, size, modifiedTime, createdTime, "
    "webViewLink, thumbnailLink, hasThumbnail, parents, trashed)"
)
DRIVE_DETAIL_FIELDS = (
    "id, name, mimeType, size, modifiedTime, createdTime, webViewLink, "
    "webContentLink, thumbnailLink, hasThumbnail, parents, "
    "owners(displayName, emailAddress), lastModifyingUser(displayName), "
    "md5Checksum, imageMediaMetadata(width, height), "
    "videoMediaMetadata(width, height, durationMillis), trashed"
)

KV_KEY_FOLDER_CONTENT = "zee-index:folder-content-v3"
KV_KEY_FOLDER_PATH = "zee-index:folder-path-v7"
KV_KEY_FOLDER_TREE = "zee-index:folder-tree"
KV_KEY_FILE_DETAILS = "gdrive:file-details-v2"
L1_KEY_FOLDER = "drive:folder"
L1_KEY_FOLDER_PATH = "folder-path"

FOLDER_CONTENT_TTL = 3600  # seconds in KV
EMPTY_FOLDER_TTL = 5  # seconds, both tiers
FILE_DETAILS_TTL = 600  # seconds in KV

# ============================================================================
# Analytics
# ============================================================================

ANALYTICS_PREFIX = "zee-index:analytics"
KV_KEY_PAGEVIEWS = f"{ANALYTICS_PREFIX}:pageviews"
KV_KEY_VISITORS = f"{ANALYTICS_PREFIX}:visitors"
KV_KEY_DAILY_VIEWS = f"{ANALYTICS_PREFIX}:daily-views"
KV_KEY_DAILY_VISITORS = f"{ANALYTICS_PREFIX}:daily-visitors"
KV_KEY_POPULAR_PAGES = f"{ANALYTICS_PREFIX}:popular-pages"
KV_KEY_DEVICE_STATS = f"{ANALYTICS_PREFIX}:device-stats"
KV_KEY_REFERRERS = f"{ANALYTICS_PREFIX}:referrers"
KV_KEY_BANDWIDTH = f"{ANALYTICS_PREFIX}:bandwidth"
KV_KEY_ACTIVE_VISITORS = f"{ANALYTICS_PREFIX}:active-visitors"

LOG_EXPIRATION_SECONDS = 60 * 60 * 24 * 90  # 90-day retention
ACTIVE_WINDOW_SECONDS = 5 * 60
TREND_DAYS = 30
WEEK_DAYS = 7
TOP_PAGES_LIMIT = 10
TOP_DEVICES_LIMIT = 8
TOP_REFERRERS_LIMIT = 10

ANALYTICS_RESPONSE_TTL = 60.0  # seconds
ANALYTICS_RESPONSE_SWR = 30.0  # seconds

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_AUTHORIZATION = "Authorization"
HEADER_FORWARDED_FOR = "x-forwarded-for"
HEADER_REAL_IP = "x-real-ip"

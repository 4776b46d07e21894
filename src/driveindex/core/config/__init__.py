"""
Configuration Module

Centralized, type-safe configuration for the drive index core.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: KV key names, TTLs, retention windows and stage identifiers

Usage:
------
```python
from driveindex.core.config import get_settings
from driveindex.core.config.constants import Stage, KV_KEY_ACCESS_TOKEN

settings = get_settings()
kv_url = settings.kv.KV_URL
```

Environment Variables:
---------------------
```bash
KV_URL=redis://localhost:6379/0
KV_PERSISTENT_CONNECTIONS=true
GOOGLE_CLIENT_ID=...
GOOGLE_CLIENT_SECRET=...
GOOGLE_REFRESH_TOKEN=...
LOG_LEVEL=INFO
LOG_FORMAT=json
```
"""

from driveindex.core.config.constants import (
    HEADER_REQUEST_ID,
    L1_CACHE_MAX_SIZE,
    LOG_EXPIRATION_SECONDS,
    MAX_RETRIES,
    RETRY_BASE_DELAY,
    CacheTTL,
    KVBackend,
    Stage,
)
from driveindex.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "KVBackend",
    "CacheTTL",
    # Limits
    "L1_CACHE_MAX_SIZE",
    "LOG_EXPIRATION_SECONDS",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    # HTTP headers
    "HEADER_REQUEST_ID",
]

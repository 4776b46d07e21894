"""
Exception Module

Structured exception hierarchy for the drive index core.
All exceptions are organized by theme for better maintainability.

Module Structure:
-----------------
- **base.py**: DriveIndexError base class + ConfigurationError
- **cache.py**: KV / cache exceptions
- **auth.py**: Token lifecycle exceptions
- **upstream.py**: Remote API exceptions

Usage:
------
```python
from driveindex.core.exceptions import SessionExpiredError, RetryExhaustedError
```
"""

# Auth exceptions
from driveindex.core.exceptions.auth import (
    AppNotConfiguredError,
    AuthenticationError,
    AuthenticationFailedError,
    SessionExpiredError,
)

# Base exception
from driveindex.core.exceptions.base import ConfigurationError, DriveIndexError

# Cache exceptions
from driveindex.core.exceptions.cache import CacheConnectionError, CacheError, CacheKeyError

# Upstream exceptions
from driveindex.core.exceptions.upstream import DriveAPIError, RetryExhaustedError, UpstreamError

__all__ = [
    # Base
    "DriveIndexError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    # Auth
    "AuthenticationError",
    "AppNotConfiguredError",
    "AuthenticationFailedError",
    "SessionExpiredError",
    # Upstream
    "UpstreamError",
    "RetryExhaustedError",
    "DriveAPIError",
]

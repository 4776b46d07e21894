"""
Core Module

Foundational components: configuration, logging, exceptions and interfaces.
"""

from .exceptions import (
    AuthenticationError,
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    ConfigurationError,
    DriveIndexError,
    RetryExhaustedError,
    SessionExpiredError,
)
from .logging import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
    setup_logging,
)

__all__ = [
    "AuthenticationError",
    "CacheConnectionError",
    "CacheError",
    "CacheKeyError",
    "ConfigurationError",
    "DriveIndexError",
    "RetryExhaustedError",
    "SessionExpiredError",
    "clear_request_id",
    "get_logger",
    "get_request_id",
    "log_stage",
    "set_request_id",
    "setup_logging",
]

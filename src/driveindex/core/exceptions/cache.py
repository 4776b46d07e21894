"""
Cache-Related Exceptions

All exceptions related to KV and cache operations (Redis, in-process store).
"""

from driveindex.core.exceptions.base import DriveIndexError


class CacheError(DriveIndexError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the durable KV backend.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect URL or credentials
    """
    pass


class CacheKeyError(CacheError):
    """
    Raised when a KV command fails.

    Common causes:
    - WRONGTYPE (command against a key holding another shape)
    - Operation timeout
    - Value that cannot be serialized
    """
    pass

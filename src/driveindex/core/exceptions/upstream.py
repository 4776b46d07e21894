"""
Upstream Exceptions

Errors raised when talking to the remote file-storage API.
"""

from driveindex.core.exceptions.base import DriveIndexError


class UpstreamError(DriveIndexError):
    """Base exception for remote API errors."""
    pass


class RetryExhaustedError(UpstreamError):
    """
    Raised when every attempt of a request ended in a retryable status
    (429 / 5xx / 401) and the retry budget is spent.

    Surfaces to callers as "upstream unavailable".
    """
    pass


class DriveAPIError(UpstreamError):
    """
    Raised when the Drive API returns a non-retryable error that the
    caller cannot express as an empty result.
    """
    pass

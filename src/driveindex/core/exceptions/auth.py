"""
Authentication Exceptions

Token lifecycle failures. These describe why a bearer token could not be
obtained; they say nothing about who may access what.
"""

from driveindex.core.exceptions.base import DriveIndexError


class AuthenticationError(DriveIndexError):
    """Base exception for token lifecycle errors."""
    pass


class AppNotConfiguredError(AuthenticationError):
    """
    Raised when no OAuth credentials exist in settings or in the KV store.

    The setup flow has to run before any remote call can succeed.
    """
    pass


class AuthenticationFailedError(AuthenticationError):
    """
    Raised when the token endpoint rejects a refresh for any reason other
    than a revoked refresh token.
    """
    pass


class SessionExpiredError(AuthenticationError):
    """
    Raised when the provider reports the long-lived credential as revoked
    (``invalid_grant``).

    The stored credentials have already been deleted when this is raised;
    a retry cannot help, the application must be re-authorized.
    """
    pass

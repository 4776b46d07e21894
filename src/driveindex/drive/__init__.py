"""
Drive Module

Token lifecycle, resilient HTTP and cached Drive API reads.
"""

from .auth import AppCredentials, TokenManager
from .client import ResilientFetcher
from .fetchers import DriveFetchers

__all__ = [
    "AppCredentials",
    "DriveFetchers",
    "ResilientFetcher",
    "TokenManager",
]

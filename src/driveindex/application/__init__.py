"""
Application Layer

FastAPI surface over the AppContext.
"""

from .app import create_app

__all__ = ["create_app"]

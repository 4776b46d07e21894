"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .clock import FakeClock, SleepRecorder
from .http_factory import HttpTestFactory, ScriptedTransport

__all__ = ["FakeClock", "SleepRecorder", "HttpTestFactory", "ScriptedTransport"]

"""
Drive Index

Caching and external-API resilience core for a cloud drive front end.
"""

__version__ = "1.0.0"

"""
Infrastructure Layer

Process-local cache and the KV backends.
"""

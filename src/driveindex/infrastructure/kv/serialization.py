"""
KV payload codec.

Both backends store string values, hash fields and list elements as JSON
produced by orjson. Reads decode a fresh object every time, so callers can
mutate what they get back without touching the stored copy.
"""

from typing import Any

import orjson

from driveindex.core.exceptions import CacheKeyError


def encode(value: Any, key: str | None = None) -> bytes:
    """Serialize a value for storage."""
    try:
        return orjson.dumps(value)
    except TypeError as e:
        raise CacheKeyError(
            message=f"Value is not JSON-serializable: {e}",
            details={"key": key, "value_type": type(value).__name__},
        )


def decode(raw: bytes | str | None) -> Any:
    """
    Deserialize a stored value.

    Values written by other clients may be plain text rather than JSON; those
    come back as the raw string.
    """
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        return raw.decode() if isinstance(raw, bytes) else raw

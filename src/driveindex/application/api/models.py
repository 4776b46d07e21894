"""
API request and response models that are not owned by a domain module.
"""

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy or unhealthy")
    timestamp: float
    kv: dict[str, Any]
    memory_cache: dict[str, Any]


class TrackResponse(BaseModel):
    ok: bool = True


class ClearCacheRequest(BaseModel):
    folder_id: str = Field(..., min_length=1, max_length=256, description="Folder whose cache to drop")


class ClearCacheResponse(BaseModel):
    ok: bool = True
    folder_id: str
    kv_keys_deleted: int

"""
Admin Routes

- GET  /api/admin/analytics    dashboard report, stale-while-revalidate cached
- POST /api/admin/cache/clear  drop both cache tiers for one folder

Access control for these routes belongs to the deployment (reverse proxy or
session layer in front of the API).
"""

from fastapi import APIRouter

from driveindex.analytics.models import AnalyticsData
from driveindex.application.api.dependencies import AnalyticsDep, DriveDep, MemoryCacheDep
from driveindex.application.api.models import ClearCacheRequest, ClearCacheResponse
from driveindex.core.config.constants import ANALYTICS_RESPONSE_SWR, ANALYTICS_RESPONSE_TTL

router = APIRouter(prefix="/api/admin", tags=["Admin"])

ANALYTICS_CACHE_KEY = "admin:analytics"


@router.get("/analytics", response_model=AnalyticsData)
async def get_analytics(analytics: AnalyticsDep, memory_cache: MemoryCacheDep) -> AnalyticsData:
    """
    Dashboard report.

    Building it costs ~100 KV reads, so it is served from MemoryCache: fresh
    for 30 s, then stale-but-served for another 30 s while one background
    rebuild runs.
    """
    return await memory_cache.get_with_swr(
        ANALYTICS_CACHE_KEY,
        analytics.get_analytics_data,
        ttl=ANALYTICS_RESPONSE_TTL,
        swr=ANALYTICS_RESPONSE_SWR,
    )


@router.post("/cache/clear", response_model=ClearCacheResponse)
async def clear_folder_cache(body: ClearCacheRequest, drive: DriveDep) -> ClearCacheResponse:
    deleted = await drive.invalidate_folder_cache(body.folder_id)
    return ClearCacheResponse(folder_id=body.folder_id, kv_keys_deleted=deleted)

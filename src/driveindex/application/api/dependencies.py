"""
FastAPI Dependencies

Route handlers receive the long-lived components through these providers
instead of importing singletons. Everything hangs off the ``AppContext`` that
the lifespan manager stores on ``app.state``, so a test can swap the whole
graph by handing ``create_app`` its own context.

Example:
    @router.get("/example")
    async def example(context: ContextDep):
        return await context.kv.health_check()
"""

from typing import Annotated

from fastapi import Depends, Request

from driveindex.analytics.tracker import AnalyticsAggregator
from driveindex.context import AppContext
from driveindex.core.config.constants import HEADER_FORWARDED_FOR, HEADER_REAL_IP
from driveindex.drive.fetchers import DriveFetchers
from driveindex.infrastructure.cache.memory_cache import MemoryCache


def get_context(request: Request) -> AppContext:
    """
    Retrieve the AppContext built during startup.

    Raises:
        RuntimeError: If the lifespan manager did not run
    """
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise RuntimeError(
            "AppContext not initialized in app.state. "
            "This indicates the application lifespan startup didn't complete properly."
        )
    return context


def get_analytics(context: Annotated[AppContext, Depends(get_context)]) -> AnalyticsAggregator:
    return context.analytics


def get_memory_cache(context: Annotated[AppContext, Depends(get_context)]) -> MemoryCache:
    return context.memory_cache


def get_drive(context: Annotated[AppContext, Depends(get_context)]) -> DriveFetchers:
    return context.drive


def get_client_ip(request: Request) -> str:
    """
    Best-effort client address.

    Behind a proxy the first ``x-forwarded-for`` entry is the original client;
    ``x-real-ip`` is the fallback, then the socket peer.
    """
    forwarded = request.headers.get(HEADER_FORWARDED_FOR)
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get(HEADER_REAL_IP)
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


# ============================================================================
# TYPE ALIASES FOR CLEANER ROUTE SIGNATURES
# ============================================================================

ContextDep = Annotated[AppContext, Depends(get_context)]
AnalyticsDep = Annotated[AnalyticsAggregator, Depends(get_analytics)]
MemoryCacheDep = Annotated[MemoryCache, Depends(get_memory_cache)]
DriveDep = Annotated[DriveFetchers, Depends(get_drive)]
ClientIPDep = Annotated[str, Depends(get_client_ip)]

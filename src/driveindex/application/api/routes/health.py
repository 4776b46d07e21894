"""
Health Check Route

Reports KV backend status and MemoryCache statistics. Returns 503 when the KV
store does not answer, so load balancers stop routing to this instance.
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from driveindex.application.api.dependencies import ContextDep
from driveindex.application.api.models import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(context: ContextDep):
    kv_health = await context.kv.health_check()
    body = HealthResponse(
        status="healthy" if kv_health.get("status") == "healthy" else "unhealthy",
        timestamp=time.time(),
        kv=kv_health,
        memory_cache=context.memory_cache.stats(),
    )

    if body.status != "healthy":
        return JSONResponse(status_code=503, content=body.model_dump())
    return body

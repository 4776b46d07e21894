"""
Page-View Ingestion Route

Called by the front end on every navigation. Ingestion is best-effort: the
aggregator swallows storage failures, so this endpoint always answers ok.
"""

from fastapi import APIRouter, Request

from driveindex.analytics.models import TrackPageViewRequest
from driveindex.application.api.dependencies import AnalyticsDep, ClientIPDep
from driveindex.application.api.models import TrackResponse

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


@router.post("/track", response_model=TrackResponse)
async def track_page_view(
    body: TrackPageViewRequest,
    request: Request,
    analytics: AnalyticsDep,
    client_ip: ClientIPDep,
) -> TrackResponse:
    await analytics.track_page_view(
        path=body.path,
        ip=client_ip,
        user_agent=request.headers.get("user-agent", ""),
        referrer=body.referrer,
    )
    return TrackResponse()

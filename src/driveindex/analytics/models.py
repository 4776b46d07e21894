"""
Analytics data models.

PageViewEvent is what gets stored (camelCase JSON, millisecond timestamps, so
records stay readable by every producer sharing the store). AnalyticsData is
what the admin API returns.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PageViewEvent(BaseModel):
    """One recorded page view. Never mutated after it is written."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    path: str
    timestamp: int = Field(..., description="Epoch milliseconds")
    visitor_id: str
    ip: str
    user_agent: str
    referrer: str = ""
    browser: str
    os: str
    device: str


class UserAgentInfo(BaseModel):
    browser: str = "Other"
    os: str = "Other"
    device: str = "Desktop"


class Overview(BaseModel):
    views_today: int = 0
    views_yesterday: int = 0
    views_this_week: int = 0
    views_this_month: int = 0
    visitors_today: int = 0
    visitors_yesterday: int = 0
    visitors_this_week: int = 0
    visitors_this_month: int = 0
    active_now: int = 0


class HourlyViews(BaseModel):
    hour: str
    views: int = 0
    visitors: int = 0


class DailyTrendPoint(BaseModel):
    date: str
    views: int = 0
    visitors: int = 0


class PageCount(BaseModel):
    path: str
    views: int


class NamedCount(BaseModel):
    name: str
    count: int


class DeviceBreakdown(BaseModel):
    browsers: list[NamedCount] = Field(default_factory=list)
    os: list[NamedCount] = Field(default_factory=list)
    devices: list[NamedCount] = Field(default_factory=list)


class ReferrerCount(BaseModel):
    source: str
    count: int


class BandwidthPoint(BaseModel):
    date: str
    bytes: int = 0


class BandwidthSummary(BaseModel):
    total_today: int = 0
    total_this_week: int = 0
    total_this_month: int = 0
    daily_trend: list[BandwidthPoint] = Field(default_factory=list)


class AnalyticsData(BaseModel):
    """Everything the analytics dashboard shows."""

    overview: Overview
    hourly_views: list[HourlyViews]
    daily_trend: list[DailyTrendPoint]
    popular_pages: list[PageCount]
    device_breakdown: DeviceBreakdown
    top_referrers: list[ReferrerCount]
    bandwidth: BandwidthSummary


class TrackPageViewRequest(BaseModel):
    """Body of the page-view ingestion endpoint."""

    path: str = Field(..., min_length=1, max_length=2048)
    referrer: str = Field(default="", max_length=2048)

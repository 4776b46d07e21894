from .models import AnalyticsData, PageViewEvent, TrackPageViewRequest
from .tracker import AnalyticsAggregator, parse_user_agent, referrer_source, visitor_id

__all__ = [
    "AnalyticsAggregator",
    "AnalyticsData",
    "PageViewEvent",
    "TrackPageViewRequest",
    "parse_user_agent",
    "referrer_source",
    "visitor_id",
]

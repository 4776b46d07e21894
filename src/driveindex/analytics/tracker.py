"""
Analytics Aggregator

Page-view and bandwidth ingestion plus the dashboard query, built only on KV
counter / set / sorted-set primitives.

Storage layout (prefix ``zee-index:analytics:``):
    pageviews              zset  event JSON scored by timestamp (ms)
    daily-views:{day}      str   integer counter
    visitors:{day}         set   visitor ids seen that day
    daily-visitors:{day}   str   cardinality of the visitor set
    active-visitors        zset  visitor id scored by last view (ms)
    popular-pages          zset  {"path", "dayKey"} JSON
    device-stats           zset  {"browser", "os", "device", "dayKey"} JSON
    referrers              zset  {"source", "dayKey"} JSON
    bandwidth:{day}        str   byte total

Everything expires or is pruned after 90 days. Days are local calendar days
(``ANALYTICS_TIMEZONE`` or the host zone).

Ingestion never raises: a failed write loses that data point and is logged.
"""

import asyncio
import time
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, tzinfo
from typing import Any
from urllib.parse import urlsplit

import orjson
from pydantic import ValidationError

from driveindex.analytics.models import (
    AnalyticsData,
    BandwidthPoint,
    BandwidthSummary,
    DailyTrendPoint,
    DeviceBreakdown,
    HourlyViews,
    NamedCount,
    Overview,
    PageCount,
    PageViewEvent,
    ReferrerCount,
    UserAgentInfo,
)
from driveindex.core.config.constants import (
    ACTIVE_WINDOW_SECONDS,
    KV_KEY_ACTIVE_VISITORS,
    KV_KEY_BANDWIDTH,
    KV_KEY_DAILY_VIEWS,
    KV_KEY_DAILY_VISITORS,
    KV_KEY_DEVICE_STATS,
    KV_KEY_PAGEVIEWS,
    KV_KEY_POPULAR_PAGES,
    KV_KEY_REFERRERS,
    KV_KEY_VISITORS,
    LOG_EXPIRATION_SECONDS,
    TOP_DEVICES_LIMIT,
    TOP_PAGES_LIMIT,
    TOP_REFERRERS_LIMIT,
    TREND_DAYS,
    WEEK_DAYS,
    Stage,
)
from driveindex.core.interfaces.kv import KVStore
from driveindex.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

DAY_MS = 86_400_000

PRUNED_KEYS = (
    KV_KEY_PAGEVIEWS,
    KV_KEY_ACTIVE_VISITORS,
    KV_KEY_POPULAR_PAGES,
    KV_KEY_DEVICE_STATS,
    KV_KEY_REFERRERS,
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# =============================================================================
# Helpers
# =============================================================================


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def visitor_id(ip: str, user_agent: str) -> str:
    """
    Approximate visitor fingerprint from IP and user agent.

    Rolling ``h = h * 31 + c`` over the UTF-16 code units, wrapped to a
    signed 32-bit integer after every step, then ``"v-" + base36(|h|)``.
    """
    raw = f"{ip}:{user_agent}".encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        code = raw[i] | (raw[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
    return f"v-{to_base36(abs(h))}"


def parse_user_agent(ua: str) -> UserAgentInfo:
    """Classify a user agent by substring rules; first match wins."""
    if "Firefox/" in ua:
        browser = "Firefox"
    elif "Edg/" in ua:
        browser = "Edge"
    elif "OPR/" in ua or "Opera/" in ua:
        browser = "Opera"
    elif "Chrome/" in ua:
        browser = "Chrome"
    elif "Safari/" in ua:
        browser = "Safari"
    elif "bot" in ua or "Bot" in ua or "crawler" in ua:
        browser = "Bot"
    else:
        browser = "Other"

    if "Windows" in ua:
        os_name = "Windows"
    elif "Mac OS X" in ua or "Macintosh" in ua:
        os_name = "macOS"
    elif "Linux" in ua and "Android" not in ua:
        os_name = "Linux"
    elif "Android" in ua:
        os_name = "Android"
    elif "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "CrOS" in ua:
        os_name = "ChromeOS"
    else:
        os_name = "Other"

    if "Mobile" in ua or "Android" in ua or "iPhone" in ua:
        device = "Mobile"
    elif "iPad" in ua or "Tablet" in ua:
        device = "Tablet"
    else:
        device = "Desktop"

    return UserAgentInfo(browser=browser, os=os_name, device=device)


def referrer_source(referrer: str) -> str | None:
    """
    Hostname of an absolute referrer URL, ``"Direct"`` if it has none.

    Returns None when the referrer is empty or not an absolute URL.
    """
    if not referrer:
        return None
    try:
        parts = urlsplit(referrer)
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return hostname or "Direct"


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _member(payload: dict[str, Any]) -> str:
    return orjson.dumps(payload).decode()


def _parse_members(members: Iterable[str]) -> Iterable[dict[str, Any]]:
    """Decode JSON members, skipping anything malformed."""
    for member in members:
        try:
            parsed = orjson.loads(member)
        except orjson.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            yield parsed


def _text_field(parsed: dict[str, Any], name: str, default: str | None = None) -> str | None:
    """A member's string field; empty falls back to ``default``, non-strings to None."""
    value = parsed.get(name)
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else None


def _top(counter: Counter, limit: int) -> list[tuple[str, int]]:
    # Stable sort keeps first-seen order among equal counts
    return sorted(counter.items(), key=lambda item: item[1], reverse=True)[:limit]


# =============================================================================
# Aggregator
# =============================================================================


class AnalyticsAggregator:
    """
    Records page views / bandwidth and builds the dashboard report.

    Usage:
        analytics = AnalyticsAggregator(kv)
        await analytics.track_page_view("/folder/abc", ip, user_agent, referrer)
        await analytics.track_bandwidth(1_048_576)
        report = await analytics.get_analytics_data()

    Args:
        kv: KV store
        clock: Wall clock in seconds (injectable for tests)
        tz: Zone for day boundaries; None means the host's local zone
        enabled: When False, tracking calls do nothing
    """

    def __init__(
        self,
        kv: KVStore,
        clock: Callable[[], float] = time.time,
        tz: tzinfo | None = None,
        enabled: bool = True,
    ):
        self._kv = kv
        self._clock = clock
        self._tz = tz
        self._enabled = enabled

    # -------------------------------------------------------------------------
    # Time helpers
    # -------------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _local(self, timestamp_ms: int) -> datetime:
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=self._tz)

    def day_key(self, timestamp_ms: int) -> str:
        """Local calendar day as ``YYYY-MM-DD``."""
        return self._local(timestamp_ms).strftime("%Y-%m-%d")

    def _day_label(self, timestamp_ms: int) -> str:
        local = self._local(timestamp_ms)
        return f"{local.day}/{local.month}"

    def _midnight_ms(self, timestamp_ms: int) -> int:
        midnight = self._local(timestamp_ms).replace(hour=0, minute=0, second=0, microsecond=0)
        return int(midnight.timestamp() * 1000)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def track_page_view(self, path: str, ip: str, user_agent: str, referrer: str = "") -> None:
        """Record one page view. Never raises."""
        if not self._enabled:
            return

        try:
            await self._record_page_view(path, ip, user_agent, referrer)
        except Exception as e:
            log_stage(logger, Stage.ANALYTICS_TRACK, "Failed to track page view", level="error", path=path, error=str(e))

    async def _record_page_view(self, path: str, ip: str, user_agent: str, referrer: str) -> None:
        timestamp = self._now_ms()
        day = self.day_key(timestamp)
        ua = parse_user_agent(user_agent)
        visitor = visitor_id(ip, user_agent)

        event = PageViewEvent(
            id=f"{timestamp}-{uuid.uuid4().hex[:9]}",
            path=path,
            timestamp=timestamp,
            visitor_id=visitor,
            ip=ip,
            user_agent=user_agent,
            referrer=referrer,
            browser=ua.browser,
            os=ua.os,
            device=ua.device,
        )
        await self._kv.zadd(KV_KEY_PAGEVIEWS, {event.model_dump_json(by_alias=True): timestamp})

        views_key = f"{KV_KEY_DAILY_VIEWS}:{day}"
        await self._kv.incr(views_key)
        await self._kv.expire(views_key, LOG_EXPIRATION_SECONDS)

        visitors_key = f"{KV_KEY_VISITORS}:{day}"
        await self._kv.sadd(visitors_key, visitor)
        await self._kv.expire(visitors_key, LOG_EXPIRATION_SECONDS)

        unique_today = await self._kv.scard(visitors_key)
        await self._kv.set(f"{KV_KEY_DAILY_VISITORS}:{day}", unique_today, ex=LOG_EXPIRATION_SECONDS)

        await self._kv.zadd(KV_KEY_ACTIVE_VISITORS, {visitor: timestamp})
        await self._kv.zadd(KV_KEY_POPULAR_PAGES, {_member({"path": path, "dayKey": day}): timestamp})
        await self._kv.zadd(
            KV_KEY_DEVICE_STATS,
            {_member({"browser": ua.browser, "os": ua.os, "device": ua.device, "dayKey": day}): timestamp},
        )

        source = referrer_source(referrer)
        if source is not None:
            await self._kv.zadd(KV_KEY_REFERRERS, {_member({"source": source, "dayKey": day}): timestamp})

        await self.prune(timestamp)
        log_stage(logger, Stage.ANALYTICS_TRACK, "Page view tracked", level="debug", path=path, visitor_id=visitor)

    async def prune(self, now_ms: int | None = None) -> int:
        """Drop sorted-set members older than the retention window."""
        now_ms = self._now_ms() if now_ms is None else now_ms
        cutoff = now_ms - LOG_EXPIRATION_SECONDS * 1000
        removed = await asyncio.gather(*(self._kv.zremrangebyscore(key, 0, cutoff) for key in PRUNED_KEYS))
        return sum(removed)

    async def track_bandwidth(self, num_bytes: int) -> None:
        """Add to today's byte total. Never raises."""
        if not self._enabled:
            return

        key = f"{KV_KEY_BANDWIDTH}:{self.day_key(self._now_ms())}"
        try:
            # Read-modify-write; concurrent downloads may drop an increment
            current = _as_int(await self._kv.get(key))
            await self._kv.set(key, current + num_bytes, ex=LOG_EXPIRATION_SECONDS)
        except Exception as e:
            log_stage(logger, Stage.ANALYTICS_TRACK, "Failed to track bandwidth", level="error", error=str(e))

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    async def get_analytics_data(self) -> AnalyticsData:
        """Build the full dashboard report."""
        now = self._now_ms()
        window_start = now - TREND_DAYS * DAY_MS

        # Index i is "i days ago"
        day_stamps = [now - i * DAY_MS for i in range(TREND_DAYS)]
        day_keys = [self.day_key(ts) for ts in day_stamps]

        views = [_as_int(v) for v in await self._kv.mget(*(f"{KV_KEY_DAILY_VIEWS}:{d}" for d in day_keys))]
        visitors = [_as_int(v) for v in await self._kv.mget(*(f"{KV_KEY_DAILY_VISITORS}:{d}" for d in day_keys))]
        bandwidth = [_as_int(v) for v in await self._kv.mget(*(f"{KV_KEY_BANDWIDTH}:{d}" for d in day_keys))]

        active = await self._kv.zrange(
            KV_KEY_ACTIVE_VISITORS, now - ACTIVE_WINDOW_SECONDS * 1000, now, by_score=True
        )

        overview = Overview(
            views_today=views[0],
            views_yesterday=views[1],
            views_this_week=sum(views[:WEEK_DAYS]),
            views_this_month=sum(views),
            visitors_today=visitors[0],
            visitors_yesterday=visitors[1],
            visitors_this_week=sum(visitors[:WEEK_DAYS]),
            visitors_this_month=sum(visitors),
            active_now=len(set(active)),
        )

        daily_trend = [
            DailyTrendPoint(date=self._day_label(day_stamps[i]), views=views[i], visitors=visitors[i])
            for i in reversed(range(TREND_DAYS))
        ]

        bandwidth_summary = BandwidthSummary(
            total_today=bandwidth[0],
            total_this_week=sum(bandwidth[:WEEK_DAYS]),
            total_this_month=sum(bandwidth),
            daily_trend=[
                BandwidthPoint(date=self._day_label(day_stamps[i]), bytes=bandwidth[i])
                for i in reversed(range(TREND_DAYS))
            ],
        )

        report = AnalyticsData(
            overview=overview,
            hourly_views=await self._hourly_views(now),
            daily_trend=daily_trend,
            popular_pages=await self._popular_pages(window_start, now),
            device_breakdown=await self._device_breakdown(window_start, now),
            top_referrers=await self._top_referrers(window_start, now),
            bandwidth=bandwidth_summary,
        )

        log_stage(logger, Stage.ANALYTICS_QUERY, "Analytics report built", level="debug", views_today=overview.views_today)
        return report

    async def _hourly_views(self, now: int) -> list[HourlyViews]:
        events = await self._kv.zrange(KV_KEY_PAGEVIEWS, self._midnight_ms(now), now, by_score=True)

        views_per_hour: Counter = Counter()
        visitors_per_hour: dict[int, set[str]] = defaultdict(set)
        for raw in events:
            try:
                event = PageViewEvent.model_validate_json(raw)
            except ValidationError:
                continue
            hour = self._local(event.timestamp).hour
            views_per_hour[hour] += 1
            visitors_per_hour[hour].add(event.visitor_id)

        return [
            HourlyViews(hour=f"{hour:02d}:00", views=views_per_hour[hour], visitors=len(visitors_per_hour[hour]))
            for hour in range(24)
        ]

    async def _popular_pages(self, start: int, now: int) -> list[PageCount]:
        members = await self._kv.zrange(KV_KEY_POPULAR_PAGES, start, now, by_score=True)
        paths = (_text_field(parsed, "path", default="/") for parsed in _parse_members(members))
        counts = Counter(path for path in paths if path is not None)
        return [PageCount(path=path, views=count) for path, count in _top(counts, TOP_PAGES_LIMIT)]

    async def _device_breakdown(self, start: int, now: int) -> DeviceBreakdown:
        members = await self._kv.zrange(KV_KEY_DEVICE_STATS, start, now, by_score=True)
        browsers: Counter = Counter()
        systems: Counter = Counter()
        devices: Counter = Counter()
        for parsed in _parse_members(members):
            browsers[str(parsed.get("browser"))] += 1
            systems[str(parsed.get("os"))] += 1
            devices[str(parsed.get("device"))] += 1

        def _named(counter: Counter) -> list[NamedCount]:
            return [NamedCount(name=name, count=count) for name, count in _top(counter, TOP_DEVICES_LIMIT)]

        return DeviceBreakdown(browsers=_named(browsers), os=_named(systems), devices=_named(devices))

    async def _top_referrers(self, start: int, now: int) -> list[ReferrerCount]:
        members = await self._kv.zrange(KV_KEY_REFERRERS, start, now, by_score=True)
        sources = (_text_field(parsed, "source") for parsed in _parse_members(members))
        counts = Counter(source for source in sources if source is not None)
        return [ReferrerCount(source=source, count=count) for source, count in _top(counts, TOP_REFERRERS_LIMIT)]
"""
Dashboard aggregation over the visits log.

All statistics for one request are computed from a single (range, domain,
tz offset, now) tuple so that every number on the dashboard agrees with the
others. Sub-queries never depend on each other and run concurrently.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

from .database import Database, format_ts, utc_now
from .models import ChartPoint, DashboardStats, KeyValueStat, Summary
from .useragent import tally


DEFAULT_RANGE = "24h"
DOMAIN_LOOKBACK_DAYS = 365
TOP_LIMIT = 10
DEVICE_ROW_LIMIT = 100

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

HOURLY = "%Y-%m-%d %H:00"
DAILY = "%Y-%m-%d"
MONTHLY = "%Y-%m"

# range key -> (how far back, chart bucket). None means "since the epoch".
RANGES: Dict[str, Tuple[Optional[Union[timedelta, relativedelta]], str]] = {
    "24h": (timedelta(hours=24), HOURLY),
    "7d": (timedelta(days=7), DAILY),
    "30d": (timedelta(days=30), DAILY),
    "3m": (relativedelta(months=3), DAILY),
    "6m": (relativedelta(months=6), DAILY),
    "1y": (relativedelta(years=1), MONTHLY),
    "all": (None, MONTHLY),
}

Offset = Union[int, float]


@dataclass(frozen=True)
class RangeWindow:
    key: str
    since: datetime
    bucket_format: str


def as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def resolve_range(range_key: Optional[str], now: Optional[datetime] = None) -> RangeWindow:
    """Map a range key to its lower bound and chart granularity; unknown keys mean 24h."""
    key = range_key if range_key in RANGES else DEFAULT_RANGE
    back, bucket = RANGES[key]
    now = as_utc(now)
    since = EPOCH if back is None else now - back
    return RangeWindow(key=key, since=since, bucket_format=bucket)


def today_start_utc(tz_offset: Offset = 0, now: Optional[datetime] = None) -> datetime:
    """
    UTC instant of local midnight for a caller `tz_offset` hours east of UTC.

    Shift into local time, floor to midnight, shift back.
    """
    shift = timedelta(hours=tz_offset)
    local = as_utc(now) + shift
    local_midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return local_midnight - shift


def offset_modifier(tz_offset: Offset) -> str:
    """SQLite date modifier for the caller's offset, e.g. '+8 hours'."""
    if isinstance(tz_offset, float) and tz_offset.is_integer():
        tz_offset = int(tz_offset)
    return f"+{tz_offset} hours" if tz_offset >= 0 else f"{tz_offset} hours"


def bounce_rate(single_page_sessions: int, sessions: int) -> int:
    """Percentage of sessions with one page view, rounded half up; 0 with no sessions."""
    rate = single_page_sessions / max(sessions, 1) * 100
    return max(0, min(100, int(math.floor(rate + 0.5))))


class QueryBuilder:
    """
    Base statement plus optional AND-ed predicates with positional params.

    Predicates with a falsy value are skipped, which is how an absent domain
    filter leaves a query unfiltered.
    """

    def __init__(self, base: str, params: Sequence[Any] = ()):
        self.base = base
        self.params: List[Any] = list(params)
        self.clauses: List[str] = []

    def where(self, clause: str, value: Any) -> "QueryBuilder":
        if value is None or value == "":
            return self
        self.clauses.append(clause)
        self.params.append(value)
        return self

    def domain(self, domain_filter: Optional[str]) -> "QueryBuilder":
        return self.where("domain = ?", domain_filter)

    def build(self, suffix: str = "") -> Tuple[str, List[Any]]:
        sql = self.base
        for clause in self.clauses:
            sql += f" AND {clause}"
        if suffix:
            sql += f" {suffix}"
        return sql, list(self.params)


def int_field(row: Optional[Dict[str, Any]], key: str) -> int:
    if not row:
        return 0
    value = row.get(key)
    return int(value) if value is not None else 0


def _top(rows: List[Dict[str, Any]]) -> List[KeyValueStat]:
    return [KeyValueStat(key=r["key"], count=int(r["count"])) for r in rows]


def _top_by(column: str, since: str, domain_filter: Optional[str]) -> Tuple[str, List[Any]]:
    # Ties go to whichever key was seen first.
    return (
        QueryBuilder(f"SELECT {column} AS key, COUNT(*) AS count FROM visits WHERE timestamp > ?", [since])
        .domain(domain_filter)
        .build(f"GROUP BY {column} ORDER BY count DESC, MIN(id) ASC LIMIT {TOP_LIMIT}")
    )


def get_domains(db: Database, days: int = DOMAIN_LOOKBACK_DAYS, now: Optional[datetime] = None) -> List[str]:
    """Distinct domains seen in the last `days` days, alphabetically."""
    since = format_ts(as_utc(now) - timedelta(days=days))
    rows = db.all(
        "SELECT DISTINCT domain FROM visits WHERE timestamp > ? AND domain IS NOT NULL ORDER BY domain",
        [since],
    )
    return [str(r["domain"]) for r in rows]


def get_dashboard_stats(
    db: Database,
    range_key: Optional[str] = DEFAULT_RANGE,
    domain_filter: Optional[str] = None,
    tz_offset: Offset = 0,
    now: Optional[datetime] = None,
) -> DashboardStats:
    now = as_utc(now)
    window = resolve_range(range_key, now)
    since = format_ts(window.since)
    today = format_ts(today_start_utc(tz_offset, now))

    q_summary = QueryBuilder(
        "SELECT COUNT(*) AS pv, COUNT(DISTINCT session_id) AS uv FROM visits WHERE timestamp > ?", [since]
    ).domain(domain_filter).build()
    q_today = QueryBuilder(
        "SELECT COUNT(*) AS pv, COUNT(DISTINCT session_id) AS uv FROM visits WHERE timestamp >= ?", [today]
    ).domain(domain_filter).build()
    q_pages = _top_by("url", since, domain_filter)
    q_referrers = _top_by("referrer", since, domain_filter)
    q_countries = _top_by("country", since, domain_filter)
    q_chart = QueryBuilder(
        "SELECT strftime(?, timestamp, ?) AS time, COUNT(*) AS pv, COUNT(DISTINCT session_id) AS uv "
        "FROM visits WHERE timestamp > ?",
        [window.bucket_format, offset_modifier(tz_offset), since],
    ).domain(domain_filter).build("GROUP BY time ORDER BY time")
    bounce_sql, bounce_params = QueryBuilder(
        "SELECT session_id FROM visits WHERE timestamp > ? AND session_id IS NOT NULL", [since]
    ).domain(domain_filter).build("GROUP BY session_id HAVING COUNT(*) = 1")
    q_bounce = (f"SELECT COUNT(*) AS n FROM ({bounce_sql})", bounce_params)
    q_devices = QueryBuilder(
        "SELECT user_agent, COUNT(*) AS count FROM visits WHERE timestamp > ?", [since]
    ).domain(domain_filter).build(f"GROUP BY user_agent ORDER BY count DESC, MIN(id) ASC LIMIT {DEVICE_ROW_LIMIT}")

    results = db.gather(
        {
            "summary": lambda: db.first(*q_summary),
            "today": lambda: db.first(*q_today),
            "pages": lambda: db.all(*q_pages),
            "referrers": lambda: db.all(*q_referrers),
            "countries": lambda: db.all(*q_countries),
            "chart": lambda: db.all(*q_chart),
            "bounce": lambda: db.first(*q_bounce),
            "devices": lambda: db.all(*q_devices),
            "domains": lambda: get_domains(db, DOMAIN_LOOKBACK_DAYS, now),
        }
    )

    pv = int_field(results["summary"], "pv")
    uv = int_field(results["summary"], "uv")
    top_os, top_browsers = tally(results["devices"])

    return DashboardStats(
        summary=Summary(
            pv=pv,
            uv=uv,
            bounce_rate=bounce_rate(int_field(results["bounce"], "n"), uv),
            today_pv=int_field(results["today"], "pv"),
            today_uv=int_field(results["today"], "uv"),
        ),
        top_pages=_top(results["pages"]),
        top_referrers=_top(results["referrers"]),
        top_countries=_top(results["countries"]),
        top_os=top_os,
        top_browsers=top_browsers,
        chart_data=[
            ChartPoint(time=str(r["time"]), pv=int(r["pv"]), uv=int(r["uv"])) for r in results["chart"]
        ],
        domains=results["domains"],
    )

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


UNKNOWN_DOMAIN = "unknown"
UNKNOWN_COUNTRY = "XX"


@dataclass(frozen=True)
class VisitRecord:
    """
    One tracked page view. Rows are append-only; the store assigns `id` and,
    unless given, `timestamp`.
    """

    url: str
    domain: str = UNKNOWN_DOMAIN
    referrer: str = ""
    user_agent: str = ""
    ip: str = ""
    country: str = UNKNOWN_COUNTRY
    session_id: str = ""
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class KeyValueStat:
    key: Optional[str]
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "count": self.count}


@dataclass(frozen=True)
class ChartPoint:
    time: str
    pv: int
    uv: int

    def to_dict(self) -> Dict[str, Any]:
        return {"time": self.time, "pv": self.pv, "uv": self.uv}


@dataclass(frozen=True)
class Summary:
    pv: int = 0
    uv: int = 0
    bounce_rate: int = 0
    today_pv: int = 0
    today_uv: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "pv": self.pv,
            "uv": self.uv,
            "bounceRate": self.bounce_rate,
            "todayPv": self.today_pv,
            "todayUv": self.today_uv,
        }


@dataclass(frozen=True)
class DashboardStats:
    summary: Summary = field(default_factory=Summary)
    top_pages: List[KeyValueStat] = field(default_factory=list)
    top_referrers: List[KeyValueStat] = field(default_factory=list)
    top_countries: List[KeyValueStat] = field(default_factory=list)
    top_os: List[KeyValueStat] = field(default_factory=list)
    top_browsers: List[KeyValueStat] = field(default_factory=list)
    chart_data: List[ChartPoint] = field(default_factory=list)
    domains: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "topPages": [s.to_dict() for s in self.top_pages],
            "topReferrers": [s.to_dict() for s in self.top_referrers],
            "topCountries": [s.to_dict() for s in self.top_countries],
            "topOS": [s.to_dict() for s in self.top_os],
            "topBrowsers": [s.to_dict() for s in self.top_browsers],
            "chartData": [p.to_dict() for p in self.chart_data],
            "domains": list(self.domains),
        }


@dataclass(frozen=True)
class CountPair:
    pv: int = 0
    uv: int = 0
    today_pv: int = 0
    today_uv: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"pv": self.pv, "uv": self.uv, "todayPv": self.today_pv, "todayUv": self.today_uv}


@dataclass(frozen=True)
class PublicCounts:
    page: CountPair = field(default_factory=CountPair)
    site: CountPair = field(default_factory=CountPair)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {"page": self.page.to_dict(), "site": self.site.to_dict()}

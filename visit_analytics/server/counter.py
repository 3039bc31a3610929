from __future__ import annotations

from datetime import datetime
from typing import Optional

from .database import Database, format_ts
from .models import CountPair, PublicCounts
from .stats import Offset, as_utc, int_field, today_start_utc


_COUNTS = "SELECT COUNT(*) AS pv, COUNT(DISTINCT session_id) AS uv FROM visits WHERE domain = ?"


def get_public_counts(
    db: Database,
    domain: str,
    url: str,
    tz_offset: Offset = 0,
    now: Optional[datetime] = None,
) -> PublicCounts:
    """
    Page- and site-level view counts for embedding on a public page.

    "Today" uses the same local-midnight boundary as the dashboard.
    """
    today = format_ts(today_start_utc(tz_offset, as_utc(now)))

    results = db.gather(
        {
            "page": lambda: db.first(f"{_COUNTS} AND url = ?", [domain, url]),
            "site": lambda: db.first(_COUNTS, [domain]),
            "page_today": lambda: db.first(f"{_COUNTS} AND url = ? AND timestamp >= ?", [domain, url, today]),
            "site_today": lambda: db.first(f"{_COUNTS} AND timestamp >= ?", [domain, today]),
        }
    )

    return PublicCounts(
        page=CountPair(
            pv=int_field(results["page"], "pv"),
            uv=int_field(results["page"], "uv"),
            today_pv=int_field(results["page_today"], "pv"),
            today_uv=int_field(results["page_today"], "uv"),
        ),
        site=CountPair(
            pv=int_field(results["site"], "pv"),
            uv=int_field(results["site"], "uv"),
            today_pv=int_field(results["site_today"], "pv"),
            today_uv=int_field(results["site_today"], "uv"),
        ),
    )

from __future__ import annotations

import re
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Tuple

from .models import KeyValueStat


TOP_N = 10


def _has(pattern: str, ua: str) -> bool:
    return re.search(pattern, ua, re.IGNORECASE) is not None


def parse_os(ua: str) -> str:
    # Order matters: iOS UAs say "like Mac OS X", Android UAs say "Linux".
    ua = ua or ""
    if _has("Win", ua):
        return "Windows"
    if _has("Mac", ua):
        if _has("iPhone|iPad|iPod", ua):
            return "iOS"
        return "macOS"
    if _has("Android", ua):
        return "Android"
    if _has("Linux", ua):
        return "Linux"
    return "Other"


def parse_browser(ua: str) -> str:
    # Edge and Opera both carry "Chrome"; Chrome carries "Safari".
    ua = ua or ""
    if _has("Edg", ua):
        return "Edge"
    if _has("Chrome", ua) and not _has("Edg", ua) and not _has("OPR", ua):
        return "Chrome"
    if _has("Firefox", ua):
        return "Firefox"
    if _has("Safari", ua) and not _has("Chrome", ua):
        return "Safari"
    if _has("OPR", ua):
        return "Opera"
    return "Other"


def top_counts(totals: Mapping[str, int], limit: int = TOP_N) -> List[KeyValueStat]:
    ranked = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
    return [KeyValueStat(key=k, count=int(v)) for k, v in ranked[:limit]]


def tally(rows: Iterable[Mapping[str, object]]) -> Tuple[List[KeyValueStat], List[KeyValueStat]]:
    """
    Fold (user_agent, count) rows into per-OS and per-browser totals.

    Returns (top_os, top_browsers), each sorted by total descending and
    capped at TOP_N.
    """
    os_totals: Dict[str, int] = Counter()
    browser_totals: Dict[str, int] = Counter()
    for row in rows:
        ua = str(row.get("user_agent") or "")
        count = int(row.get("count") or 0)  # type: ignore[arg-type]
        os_totals[parse_os(ua)] += count
        browser_totals[parse_browser(ua)] += count
    return top_counts(os_totals), top_counts(browser_totals)

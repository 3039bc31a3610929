from __future__ import annotations

import argparse
import json
import logging
from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .server.config import AppConfig, load_config
from .server.counter import get_public_counts
from .server.database import Database, DatabaseConfig
from .server.models import DashboardStats, KeyValueStat
from .server.sanitize import extract_domain, is_valid_url, sanitize_url
from .server.schema import initialize
from .server.stats import RANGES, get_dashboard_stats


console = Console()


def _db(cfg: AppConfig) -> Database:
    return Database(DatabaseConfig(sqlite_path=cfg.sqlite_path))


def _top_table(title: str, rows: List[KeyValueStat]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Count", justify="right")
    for row in rows:
        table.add_row(row.key if row.key else "(direct)", str(row.count))
    return table


def _print_stats(stats: DashboardStats, range_key: str) -> None:
    s = stats.summary
    console.print(
        Panel.fit(
            f"[bold]PV[/bold] {s.pv}   [bold]UV[/bold] {s.uv}   [bold]Bounce[/bold] {s.bounce_rate}%\n"
            f"[dim]today[/dim] PV {s.today_pv}   UV {s.today_uv}",
            title=f"Summary ({range_key})",
            border_style="cyan",
        )
    )
    for title, rows in (
        ("Top Pages", stats.top_pages),
        ("Top Referrers", stats.top_referrers),
        ("Top Countries", stats.top_countries),
        ("Operating Systems", stats.top_os),
        ("Browsers", stats.top_browsers),
    ):
        if rows:
            console.print(_top_table(title, rows))


def _cmd_init(args: argparse.Namespace, cfg: AppConfig) -> int:
    initialize(_db(cfg))
    console.print(f"[green]Schema ready:[/green] {cfg.sqlite_path}")
    return 0


def _cmd_serve(args: argparse.Namespace, cfg: AppConfig) -> int:
    from .server.app import create_app

    app = create_app(cfg)
    app.run(host=args.host or cfg.host, port=args.port or cfg.port, debug=False)
    return 0


def _cmd_stats(args: argparse.Namespace, cfg: AppConfig) -> int:
    tz = cfg.tz_offset if args.tz is None else args.tz
    stats = get_dashboard_stats(_db(cfg), args.range, args.domain, tz)
    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
    else:
        _print_stats(stats, args.range)
    return 0


def _cmd_counts(args: argparse.Namespace, cfg: AppConfig) -> int:
    if not is_valid_url(args.url):
        console.print(f"[bold red]Error:[/bold red] not an absolute URL: {args.url}")
        return 2
    url = sanitize_url(args.url)
    tz = cfg.tz_offset if args.tz is None else args.tz
    counts = get_public_counts(_db(cfg), extract_domain(url), url, tz)
    print(json.dumps(counts.to_dict(), indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="visit-analytics", description="Privacy-friendly page view analytics.")
    p.add_argument("--config", default=None, help="Path to config.yaml (default: $VISIT_ANALYTICS_CONFIG).")
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("init", help="Create the visits table and indexes.")
    i.set_defaults(func=_cmd_init)

    sv = sub.add_parser("serve", help="Run the collection / stats HTTP server.")
    sv.add_argument("--host", default=None)
    sv.add_argument("--port", type=int, default=None)
    sv.set_defaults(func=_cmd_serve)

    st = sub.add_parser("stats", help="Print dashboard statistics.")
    st.add_argument("--range", default="24h", choices=sorted(RANGES))
    st.add_argument("--domain", default=None, help="Only count visits to this domain.")
    st.add_argument("--tz", type=float, default=None, help="Timezone offset in hours (default from config).")
    st.add_argument("--json", action="store_true", help="Emit raw JSON instead of tables.")
    st.set_defaults(func=_cmd_stats)

    c = sub.add_parser("counts", help="Print public page/site counts for a URL.")
    c.add_argument("--url", required=True)
    c.add_argument("--tz", type=float, default=None)
    c.set_defaults(func=_cmd_counts)

    args = p.parse_args(argv)
    cfg = load_config(args.config)
    logging.basicConfig(level=cfg.log_level)
    return int(args.func(args, cfg))


if __name__ == "__main__":
    raise SystemExit(main())

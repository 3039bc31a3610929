from __future__ import annotations

import os
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, TypeVar


T = TypeVar("T")

# Matches SQLite's CURRENT_TIMESTAMP text so string comparison orders correctly.
TS_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class DatabaseConfig:
    sqlite_path: str
    busy_timeout: float = 15.0
    max_workers: int = 9


def _dict_factory(cursor: sqlite3.Cursor, row: Tuple[Any, ...]) -> Dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_ts(dt: datetime) -> str:
    """Render a datetime as the store's UTC text timestamp (naive values are taken as UTC)."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime(TS_FORMAT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    """
    Parameterised-query executor over the visits store.

    Every call opens its own connection, so calls are safe to issue from
    several threads at once (see `gather`).
    """

    def __init__(self, cfg: DatabaseConfig):
        self.cfg = cfg
        self._ensure_parent_dir()

    def _ensure_parent_dir(self) -> None:
        path = os.path.abspath(self.cfg.sqlite_path)
        parent = os.path.dirname(path)
        if parent and not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.cfg.sqlite_path, timeout=self.cfg.busy_timeout, check_same_thread=False)
        conn.row_factory = _dict_factory
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    # -------- executor shapes --------
    def first(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        conn = self.connect()
        try:
            return conn.execute(sql, tuple(params)).fetchone()
        finally:
            conn.close()

    def all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = self.connect()
        try:
            return list(conn.execute(sql, tuple(params)).fetchall())
        finally:
            conn.close()

    def run(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self.connect()
        try:
            cur = conn.execute(sql, tuple(params))
            conn.commit()
            return int(cur.lastrowid or 0)
        finally:
            conn.close()

    # -------- catalog --------
    def column_names(self, table: str) -> List[str]:
        rows = self.all(f"PRAGMA table_info({table})")
        return [str(r["name"]) for r in rows]

    def index_names(self, table: str) -> List[str]:
        rows = self.all(f"PRAGMA index_list({table})")
        return sorted(str(r["name"]) for r in rows)

    # -------- fan-out --------
    def gather(self, calls: Mapping[str, Callable[[], T]]) -> Dict[str, T]:
        """
        Run independent read/DDL calls concurrently and wait for all of them.

        Results come back under the same keys. The first exception raised by
        any call is re-raised here.
        """
        if not calls:
            return {}
        workers = max(1, min(self.cfg.max_workers, len(calls)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="visits-query") as pool:
            futures = {key: pool.submit(fn) for key, fn in calls.items()}
            return {key: fut.result() for key, fut in futures.items()}

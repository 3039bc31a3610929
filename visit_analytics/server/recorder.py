from __future__ import annotations

import logging
import sqlite3
from typing import Any, List, Tuple

from .database import Database, format_ts
from .models import VisitRecord
from .schema import initialize


logger = logging.getLogger(__name__)

_COLUMNS = ("url", "referrer", "user_agent", "ip", "country", "domain", "session_id")


def _insert_statement(record: VisitRecord) -> Tuple[str, List[Any]]:
    columns = list(_COLUMNS)
    params: List[Any] = [
        record.url,
        record.referrer,
        record.user_agent,
        record.ip,
        record.country,
        record.domain,
        record.session_id,
    ]
    if record.timestamp is not None:
        columns.append("timestamp")
        params.append(format_ts(record.timestamp))
    placeholders = ", ".join("?" for _ in columns)
    sql = f"INSERT INTO visits ({', '.join(columns)}) VALUES ({placeholders})"
    return sql, params


def is_missing_table(exc: BaseException) -> bool:
    """True for store errors that mean the visits table has not been created yet."""
    if not isinstance(exc, sqlite3.Error):
        return False
    if "no such table" in str(exc).lower():
        return True
    return getattr(exc, "sqlite_errorname", None) == "SQLITE_ERROR"


def record_visit(db: Database, record: VisitRecord) -> int:
    """
    Insert one visit and return its row id.

    A cold store (no table yet) is initialised on the fly and the insert is
    retried once; anything else propagates as-is.
    """
    sql, params = _insert_statement(record)
    try:
        return db.run(sql, params)
    except sqlite3.Error as e:
        if not is_missing_table(e):
            raise
        logger.warning("visits table missing (%s), initialising and retrying", e)
        initialize(db)
        return db.run(sql, params)

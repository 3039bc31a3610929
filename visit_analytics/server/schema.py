from __future__ import annotations

import logging
import sqlite3
from typing import Dict, Tuple

from .database import Database


logger = logging.getLogger(__name__)

TABLE = "visits"

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS visits (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  url TEXT,
  referrer TEXT,
  user_agent TEXT,
  ip TEXT,
  country TEXT,
  domain TEXT,
  session_id TEXT,
  timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""

# Columns added after the first release: (name, type).
MIGRATED_COLUMNS: Tuple[Tuple[str, str], ...] = (("domain", "TEXT"),)

INDEXES: Dict[str, str] = {
    "idx_visits_timestamp": "visits(timestamp)",
    "idx_visits_url": "visits(url)",
    "idx_visits_domain": "visits(domain)",
    "idx_visits_session_id": "visits(session_id)",
    "idx_visits_referrer": "visits(referrer)",
    "idx_visits_country": "visits(country)",
    "idx_visits_user_agent": "visits(user_agent)",
    "idx_visits_domain_timestamp": "visits(domain, timestamp)",
}


def _add_missing_columns(db: Database) -> None:
    existing = set(db.column_names(TABLE))
    for name, coltype in MIGRATED_COLUMNS:
        if name in existing:
            continue
        try:
            db.run(f"ALTER TABLE {TABLE} ADD COLUMN {name} {coltype}")
            logger.info("added column %s.%s", TABLE, name)
        except sqlite3.OperationalError as e:
            # Another initializer won the race between the catalog read and the ALTER.
            if "duplicate column" not in str(e).lower():
                raise
            logger.debug("column %s.%s already present", TABLE, name)


def initialize(db: Database) -> None:
    """
    Create the visits table, migrate older layouts and ensure all indexes.

    Idempotent; safe to run alongside ingestion. Column migration happens
    before index creation so the domain indexes always have their column.
    """
    db.run(CREATE_TABLE_SQL)
    _add_missing_columns(db)

    statements = {
        name: f"CREATE INDEX IF NOT EXISTS {name} ON {target}" for name, target in INDEXES.items()
    }
    db.gather({name: (lambda sql=sql: db.run(sql)) for name, sql in statements.items()})
    logger.info("schema ready (%d indexes)", len(INDEXES))

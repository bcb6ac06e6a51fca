"""Schema migrations.

The base tables come from `init_db`; every later change is a numbered step
in MIGRATIONS. The highest applied step is kept under `schema_version` in the
metadata table, so running the migrator again is a no-op.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Callable, Dict

from .schema import BASIC_UTC_NOW, init_db

logger = logging.getLogger("fxentry.db.migrate")

SCHEMA_VERSION_KEY = "schema_version"
BASE_VERSION = 1


def _table_columns(conn: sqlite3.Connection, table: str) -> set:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def _add_columns(conn: sqlite3.Connection, table: str, columns: Dict[str, str]) -> None:
    present = _table_columns(conn, table)
    for name, decl in columns.items():
        if name not in present:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")


def _v2_confirmation_pricing(conn: sqlite3.Connection) -> None:
    """Record the fee and rate each confirmation was priced with."""
    _add_columns(
        conn,
        "confirmations",
        {
            "fee_amount": "TEXT NOT NULL DEFAULT '0'",
            "fee_currency": "TEXT NOT NULL DEFAULT ''",
            "applied_rate": "TEXT",
            "rate_is_approximate": "INTEGER NOT NULL DEFAULT 0",
        },
    )


MIGRATIONS: Dict[int, Callable[[sqlite3.Connection], None]] = {
    2: _v2_confirmation_pricing,
}
CURRENT_SCHEMA_VERSION = max(MIGRATIONS, default=BASE_VERSION)


def read_schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT value FROM metadata WHERE key=?", (SCHEMA_VERSION_KEY,)
    ).fetchone()
    return int(row[0]) if row else BASE_VERSION


def _write_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        "INSERT INTO metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
        f"updated_at=({BASIC_UTC_NOW})",
        (SCHEMA_VERSION_KEY, str(version)),
    )


def apply_migrations(db_path: Path) -> int:
    """Bring the database at db_path up to CURRENT_SCHEMA_VERSION and return it."""
    init_db(db_path)
    conn = sqlite3.connect(db_path)
    try:
        version = read_schema_version(conn)
        for target in sorted(v for v in MIGRATIONS if v > version):
            try:
                MIGRATIONS[target](conn)
                _write_schema_version(conn, target)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                logger.exception("migration to schema version %d failed", target)
                raise
            logger.info("database migrated to schema version %d", target)
            version = target
        return version
    finally:
        conn.close()

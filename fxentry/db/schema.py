"""Database schema DDL definitions and initialization utilities.

Tables:
  - accounts: linked payment accounts (cards, banks, wallets) and their currency
  - balances: stored wallet balance per currency (decimal text)
  - confirmations: confirmation tokens already applied to the ledger
  - activities: activity feed rows, one per applied confirmation
  - metadata: key/value store (display currency, schema version)

Amounts are stored as TEXT so Decimal values round-trip exactly.
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

ACCOUNTS_DDL = f"""
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    account_number TEXT NOT NULL DEFAULT '',
    currency TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

BALANCES_DDL = f"""
CREATE TABLE IF NOT EXISTS balances (
    currency TEXT PRIMARY KEY,
    amount TEXT NOT NULL DEFAULT '0.00',
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

CONFIRMATIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS confirmations (
    token TEXT PRIMARY KEY,
    operation TEXT NOT NULL, -- 'deposit' | 'withdrawal' | 'p2p_send' | 'p2p_request'
    applied_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

ACTIVITIES_DDL = f"""
CREATE TABLE IF NOT EXISTS activities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    token TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL,
    counterparty TEXT NOT NULL DEFAULT '',
    display_amount TEXT NOT NULL, -- '+$126.00'
    amount TEXT NOT NULL,
    currency TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (token) REFERENCES confirmations(token)
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

ACTIVITIES_CREATED_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_activities_created ON activities(created_at);"
)

DDL_ORDER: Sequence[str] = (
    ACCOUNTS_DDL,
    BALANCES_DDL,
    CONFIRMATIONS_DDL,
    ACTIVITIES_DDL,
    METADATA_DDL,
)


def init_db(path: Path) -> None:
    """Create every table and index that is missing; existing data is untouched."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.executescript("".join((*DDL_ORDER, ACTIVITIES_CREATED_INDEX_DDL)))
    finally:
        conn.close()

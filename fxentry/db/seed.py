"""Seeding helpers for linked accounts and the stored balance row.

Existing rows are left untouched so this can be safely re-run.
"""

from __future__ import annotations
from pathlib import Path
import sqlite3
from typing import Iterable, Tuple

from .schema import init_db

# (name, account number mask, currency)
DEFAULT_ACCOUNTS: Tuple[Tuple[str, str, str], ...] = (
    ("Apple Pay", "", "GBP"),
    ("UK Debit Card", "•••• 4567", "GBP"),
    ("US Bank", "•••• 5678", "USD"),
    ("EU Bank", "NL91 •••• 00", "EUR"),
    ("Crypto Wallet", "Ae2l •••• b3Yl", "USDC"),
    ("Mexican Bank", "•••• 7832", "MXN"),
    ("Brazilian Bank", "•••• 4521", "BRL"),
    ("Kenyan Mobile Money", "+254 •••• 89", "KES"),
)


def seed_accounts(
    db_path: Path, accounts: Iterable[Tuple[str, str, str]] = DEFAULT_ACCOUNTS
) -> int:
    """Insert the default linked accounts when none exist. Returns rows inserted."""
    init_db(db_path)  # ensure tables exist
    with sqlite3.connect(db_path) as conn:
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM accounts")
        if cur.fetchone()[0]:
            return 0
        rows = list(accounts)
        cur.executemany(
            "INSERT INTO accounts (name, account_number, currency) VALUES (?, ?, ?)",
            rows,
        )
        conn.commit()
        return len(rows)


def seed_balance(db_path: Path, currency: str, opening: str = "0.00") -> None:
    init_db(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "INSERT OR IGNORE INTO balances (currency, amount) VALUES (?, ?)",
            (currency.upper(), opening),
        )
        conn.commit()

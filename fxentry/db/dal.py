"""Data Access Layer for linked accounts, the stored balance and the activity feed.

Responsibilities
----------------
- Read linked accounts and the balance kept in the storage currency.
- Apply a ledger effect (balance delta + activity row + consumed token) in a
  single SQLite transaction; a token can be applied at most once.
- Offer key/value access to the metadata table for app-level settings.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
import sqlite3
from typing import Any, Dict, List, Optional

from fxentry.core.errors import DuplicateConfirmation, InsufficientFunds
from fxentry.models.ledger import ActivityRecord

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _read_balance(cur: sqlite3.Cursor, currency: str) -> Decimal:
        cur.execute("SELECT amount FROM balances WHERE currency = ?", (currency,))
        row = cur.fetchone()
        return Decimal(row[0]) if row else Decimal("0")

    # ------------------------------------------------------------------
    # Accounts
    def list_accounts(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT id, name, account_number, currency FROM accounts ORDER BY id")
            return [dict(r) for r in cur.fetchall()]

    def get_account(self, account_id: int) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, name, account_number, currency FROM accounts WHERE id = ?",
                (account_id,),
            )
            row = cur.fetchone()
            return dict(row) if row else None

    # ------------------------------------------------------------------
    # Balance
    def get_balance(self, currency: str) -> Decimal:
        with self._connect() as conn:
            return self._read_balance(conn.cursor(), currency.upper())

    def set_balance(self, currency: str, amount: Decimal) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO balances (currency, amount) VALUES (?, ?)
                ON CONFLICT(currency) DO UPDATE SET
                    amount = excluded.amount,
                    updated_at = ({UTC_NOW_SQL})
                """,
                (currency.upper(), str(amount)),
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Ledger effects
    def is_token_applied(self, token: str) -> bool:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT 1 FROM confirmations WHERE token = ?", (token,))
            return cur.fetchone() is not None

    def apply_effect(
        self,
        record: ActivityRecord,
        delta: Decimal,
        *,
        fee_amount: Decimal = Decimal("0"),
        fee_currency: str = "",
        applied_rate: Optional[Decimal] = None,
        rate_is_approximate: bool = False,
    ) -> Decimal:
        """Consume the token, move the balance and append the activity row.

        All three writes commit together or not at all. Returns the balance
        after the change. Raises DuplicateConfirmation when the token was
        already applied, InsufficientFunds when the balance would go negative.
        """
        currency = record.amount.currency
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                cur.execute(
                    """
                    INSERT INTO confirmations (
                        token, operation, fee_amount, fee_currency, applied_rate, rate_is_approximate
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.token,
                        record.kind.value,
                        str(fee_amount),
                        fee_currency,
                        str(applied_rate) if applied_rate is not None else None,
                        1 if rate_is_approximate else 0,
                    ),
                )
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise DuplicateConfirmation(record.token) from e

            balance = self._read_balance(cur, currency)
            after = balance + delta
            if after < 0:
                conn.rollback()
                raise InsufficientFunds(-delta, balance)

            cur.execute(
                f"""
                INSERT INTO balances (currency, amount) VALUES (?, ?)
                ON CONFLICT(currency) DO UPDATE SET
                    amount = excluded.amount,
                    updated_at = ({UTC_NOW_SQL})
                """,
                (currency, str(after)),
            )
            cur.execute(
                """
                INSERT INTO activities (
                    token, kind, counterparty, display_amount, amount, currency, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.token,
                    record.kind.value,
                    record.counterparty,
                    record.display_amount,
                    str(record.amount.amount),
                    currency,
                    record.created_at.isoformat(),
                ),
            )
            conn.commit()
            return after

    def list_activities(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT token, kind, counterparty, display_amount, amount, currency, created_at
                FROM activities
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            )
            return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Metadata
    def get_metadata(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT value FROM metadata WHERE key = ?", (key,))
            row = cur.fetchone()
            return row[0] if row else None

    def set_metadata(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO metadata (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = ({UTC_NOW_SQL})
                """,
                (key, value),
            )
            conn.commit()

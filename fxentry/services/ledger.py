"""Ledger effect applier.

Turns a confirmation snapshot into a balance change and an activity row in
the storage currency. Amounts are rounded half-up to cents here and nowhere
earlier.

Deposit:    credit = max(0, stored-side amount - fee in storage currency)
Withdrawal: debit  = stored-side amount + fee in storage currency

The fee is converted with the snapshot's own rate, never a live one, so the
effect is fully determined by the snapshot. A token that was already applied
raises DuplicateConfirmation and changes nothing.
"""

from __future__ import annotations
import logging
from decimal import Decimal

from fxentry.core.errors import DuplicateConfirmation
from fxentry.db.dal import Database
from fxentry.models.constants import OperationKind
from fxentry.models.ledger import ActivityRecord, LedgerEffect
from fxentry.models.money import Money
from fxentry.models.reconciliation import ConfirmationSnapshot
from fxentry.services.fee_policy import fee_in_currency
from fxentry.services.money import format_signed, quantize_minor

logger = logging.getLogger("fxentry.ledger")

CREDIT_OPERATIONS = frozenset({OperationKind.DEPOSIT, OperationKind.P2P_REQUEST})


class LedgerEffectApplier:
    def __init__(self, db: Database, storage_currency: str = "USD"):
        self._db = db
        self.storage_currency = storage_currency.upper()

    def _stored_side(self, snapshot: ConfirmationSnapshot) -> Money:
        if snapshot.secondary_amount.currency == self.storage_currency:
            return snapshot.secondary_amount
        if snapshot.primary_amount.currency == self.storage_currency:
            return snapshot.primary_amount
        raise ValueError(
            f"snapshot {snapshot.token} has no {self.storage_currency} side"
        )

    def fee_in_storage(self, snapshot: ConfirmationSnapshot) -> Money:
        return fee_in_currency(
            snapshot.fee_result,
            self.storage_currency,
            snapshot.primary_amount.currency,
            snapshot.secondary_amount.currency,
            snapshot.applied_rate,
        )

    def compute(self, snapshot: ConfirmationSnapshot) -> Money:
        """Signed balance delta for a snapshot, rounded to the storage currency."""
        stored = self._stored_side(snapshot)
        fee = self.fee_in_storage(snapshot)
        if snapshot.operation in CREDIT_OPERATIONS:
            delta = (stored - fee).clamp_zero()
        else:
            delta = -(stored + fee)
        return Money(quantize_minor(delta.amount, self.storage_currency), self.storage_currency)

    def apply(self, snapshot: ConfirmationSnapshot) -> LedgerEffect:
        delta = self.compute(snapshot)
        record = ActivityRecord(
            token=snapshot.token,
            kind=snapshot.operation,
            counterparty=snapshot.counterparty,
            display_amount=format_signed(delta),
            amount=delta,
            created_at=snapshot.created_at,
        )
        fee = snapshot.fee_result
        try:
            after = self._db.apply_effect(
                record,
                delta.amount,
                fee_amount=Decimal("0") if fee.is_free else fee.amount,
                fee_currency=fee.currency,
                applied_rate=snapshot.applied_rate,
                rate_is_approximate=snapshot.rate_is_approximate,
            )
        except DuplicateConfirmation:
            logger.error("confirmation %s already applied; duplicate attempt rejected", snapshot.token)
            raise
        logger.info(
            "applied %s %s: %s (balance %s)",
            snapshot.operation.value,
            snapshot.token,
            record.display_amount,
            after,
        )
        return LedgerEffect(
            balance_delta=delta,
            activity_record=record,
            balance_after=Money(after, self.storage_currency),
        )

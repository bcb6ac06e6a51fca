"""Per-operation amount ceilings.

Checks the single transaction being entered against a configured ceiling. No
rolling total is kept: a period-based deposit limit would need persisted
history of confirmed deposits, which this guard deliberately does not model.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Mapping, Optional

from fxentry.core.config import Settings
from fxentry.models.constants import (
    MSG_DEPOSIT_LIMIT,
    MSG_WITHDRAWAL_LIMIT,
    OperationKind,
)
from fxentry.models.money import Money

MESSAGE_KEYS: Dict[OperationKind, str] = {
    OperationKind.DEPOSIT: MSG_DEPOSIT_LIMIT,
    OperationKind.WITHDRAWAL: MSG_WITHDRAWAL_LIMIT,
}


def exceeds(amount_in_limit_currency: Decimal, ceiling: Decimal) -> bool:
    """True when the amount is strictly above the ceiling."""
    return amount_in_limit_currency > ceiling


class LimitGuard:
    def __init__(self, ceilings: Optional[Mapping[OperationKind, Money]] = None):
        self._ceilings: Dict[OperationKind, Money] = dict(ceilings or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> "LimitGuard":
        ceilings: Dict[OperationKind, Money] = {}
        if settings.deposit_limit_amount is not None:
            ceilings[OperationKind.DEPOSIT] = Money(
                settings.deposit_limit_amount, settings.deposit_limit_currency
            )
        if settings.withdrawal_limit_amount is not None:
            ceilings[OperationKind.WITHDRAWAL] = Money(
                settings.withdrawal_limit_amount, settings.withdrawal_limit_currency
            )
        return cls(ceilings)

    def ceiling_for(self, operation: OperationKind) -> Optional[Money]:
        return self._ceilings.get(operation)

    def message_key(self, operation: OperationKind) -> Optional[str]:
        return MESSAGE_KEYS.get(operation)

    def exceeds(self, operation: OperationKind, amount: Money) -> bool:
        """Compare an amount already expressed in the ceiling's currency."""
        ceiling = self.ceiling_for(operation)
        if ceiling is None:
            return False
        if amount.currency != ceiling.currency:
            raise ValueError(
                f"limit for {operation.value} is in {ceiling.currency}, got {amount.currency}"
            )
        return exceeds(amount.amount, ceiling.amount)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .constants import EntryPhase, OperationKind, Side
from .fees import FeeResult
from .money import Money


@dataclass
class ReconciliationState:
    """Live state of one amount-entry session. Owned by a single reconciler."""

    operation: OperationKind
    primary_currency: str
    secondary_currency: str
    active_side: Side = Side.PRIMARY
    raw_input: str = ""
    primary_amount: Money = field(init=False)
    secondary_amount: Money = field(init=False)
    applied_rate: Optional[Decimal] = None
    rate_is_approximate: bool = False
    fee_result: Optional[FeeResult] = None
    limit_exceeded: bool = False
    insufficient_funds: bool = False
    phase: EntryPhase = EntryPhase.IDLE
    message_key: Optional[str] = None
    sequence: int = 0

    def __post_init__(self) -> None:
        self.primary_amount = Money.zero(self.primary_currency)
        self.secondary_amount = Money.zero(self.secondary_currency)

    def amount_on(self, side: Side) -> Money:
        return self.primary_amount if side is Side.PRIMARY else self.secondary_amount

    def currency_on(self, side: Side) -> str:
        return self.primary_currency if side is Side.PRIMARY else self.secondary_currency

    def set_amount(self, side: Side, money: Money) -> None:
        if side is Side.PRIMARY:
            self.primary_amount = money
        else:
            self.secondary_amount = money


@dataclass(frozen=True)
class ConfirmationSnapshot:
    """Frozen, confirmation-ready copy of a settled session.

    ``token`` is single use: the ledger applies a snapshot at most once.
    """

    token: str
    operation: OperationKind
    primary_amount: Money
    secondary_amount: Money
    fee_result: FeeResult
    applied_rate: Decimal
    rate_is_approximate: bool
    counterparty: str
    created_at: datetime

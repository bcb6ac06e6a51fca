from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .constants import OperationKind
from .money import Money


@dataclass(frozen=True)
class ActivityRecord:
    token: str
    kind: OperationKind
    counterparty: str
    display_amount: str  # signed, e.g. "+$126.00"
    amount: Money  # signed, storage currency
    created_at: datetime


@dataclass(frozen=True)
class LedgerEffect:
    balance_delta: Money
    activity_record: ActivityRecord
    balance_after: Money

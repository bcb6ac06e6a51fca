"""Value types and enumerations for the amount / fee reconciliation engine."""

from .constants import (
    CURRENCIES,
    STABLE_ASSETS,
    EntryPhase,
    OperationKind,
    Side,
)  # re-export
from .money import Money
from .rates import RateQuote
from .fees import FeeResult, FeeWaivers
from .reconciliation import ConfirmationSnapshot, ReconciliationState
from .ledger import ActivityRecord, LedgerEffect
from .accounts import LinkedAccount

__all__ = [
    "CURRENCIES",
    "STABLE_ASSETS",
    "EntryPhase",
    "OperationKind",
    "Side",
    "Money",
    "RateQuote",
    "FeeResult",
    "FeeWaivers",
    "ConfirmationSnapshot",
    "ReconciliationState",
    "ActivityRecord",
    "LedgerEffect",
    "LinkedAccount",
]

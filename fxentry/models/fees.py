from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .money import Money

EARLY_ADOPTER_REASON = "Early adopter - fees waived"


@dataclass(frozen=True)
class FeeWaivers:
    """Promotional waivers evaluated by the fee policy.

    Passed in explicitly on every evaluation; consuming a free transfer is the
    caller's job after a confirmed transaction.
    """

    free_transfers_remaining: int = 0
    early_adopter: bool = False
    early_adopter_expiry: Optional[datetime] = None

    def reason(self, now: datetime) -> Optional[str]:
        if self.early_adopter and (
            self.early_adopter_expiry is None or now < self.early_adopter_expiry
        ):
            return EARLY_ADOPTER_REASON
        if self.free_transfers_remaining > 0:
            n = self.free_transfers_remaining
            return f"{n} free transfer{'' if n == 1 else 's'} remaining"
        return None

    def uses_free_transfer(self, now: datetime) -> bool:
        reason = self.reason(now)
        return reason is not None and reason != EARLY_ADOPTER_REASON


@dataclass(frozen=True)
class FeeResult:
    is_free: bool
    amount: Decimal
    currency: str
    base_amount: Decimal = Decimal("0")
    base_currency: str = ""
    is_approximate: bool = False
    converted: bool = True
    is_waived: bool = False
    waiver_reason: Optional[str] = None

    @classmethod
    def free(cls, currency: str) -> "FeeResult":
        return cls(
            is_free=True,
            amount=Decimal("0"),
            currency=currency,
            base_amount=Decimal("0"),
            base_currency=currency,
        )

    @property
    def charged(self) -> Money:
        """Fee actually deducted (zero when free or waived)."""
        if self.is_free:
            return Money.zero(self.currency)
        return Money(self.amount, self.currency)

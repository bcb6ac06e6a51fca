"""Cross-currency fee policy.

A fixed fee (``fee_amount`` in ``fee_currency``) applies when the payment
instrument's currency differs from the user's reference currency; same-currency
movements are always free and P2P transfers never pay a fee.

The fee is expressed in the instrument currency for deduction. Conversion uses
the freshest rate the cache holds, then the bootstrap table (flagged
approximate). If neither covers the pair the fee is kept at face value in its
own currency rather than dropped.

``calculate_fee`` reads but never writes shared state, so identical inputs
against an unchanged cache give identical results. Results are not cached.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from fxentry.core.config import Settings
from fxentry.models.constants import OperationKind, peg_of
from fxentry.models.fees import FeeResult, FeeWaivers
from fxentry.models.money import Money, to_decimal
from fxentry.services.rates.base import SupportsRateLookup

logger = logging.getLogger("fxentry.fees")

FREE_OPERATIONS = frozenset({OperationKind.P2P_SEND, OperationKind.P2P_REQUEST})


class FeePolicy:
    def __init__(
        self,
        rates: SupportsRateLookup,
        fee_amount=Decimal("0.50"),
        fee_currency: str = "USD",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._rates = rates
        self.fee_amount = to_decimal(fee_amount)
        self.fee_currency = fee_currency.upper()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: Settings, rates: SupportsRateLookup) -> "FeePolicy":
        return cls(rates, settings.fee_amount, settings.fee_currency)

    def _express(self, currency: str) -> tuple[Decimal, str, bool, bool]:
        """Fee in ``currency`` -> (amount, currency, approximate, converted)."""
        if peg_of(currency) == peg_of(self.fee_currency):
            return self.fee_amount, currency, False, True
        quote = self._rates.get_cached_rate(self.fee_currency, currency)
        if quote is None:
            quote = self._rates.fallback_rate(self.fee_currency, currency)
        if quote is None:
            logger.warning(
                "no rate for fee %s->%s; charging face value", self.fee_currency, currency
            )
            return self.fee_amount, self.fee_currency, False, False
        return self.fee_amount * quote.rate, currency, quote.is_fallback, True

    def calculate_fee(
        self,
        operation: OperationKind,
        instrument_currency: str,
        reference_currency: str,
        waivers: Optional[FeeWaivers] = None,
    ) -> FeeResult:
        instrument = instrument_currency.upper()
        if operation in FREE_OPERATIONS:
            return FeeResult.free(instrument)
        if peg_of(instrument) == peg_of(reference_currency):
            return FeeResult.free(instrument)

        amount, currency, approximate, converted = self._express(instrument)
        reason = waivers.reason(self._clock()) if waivers else None
        return FeeResult(
            is_free=reason is not None,
            amount=amount,
            currency=currency,
            base_amount=self.fee_amount,
            base_currency=self.fee_currency,
            is_approximate=approximate,
            converted=converted,
            is_waived=reason is not None,
            waiver_reason=reason,
        )


def fee_in_currency(
    fee: FeeResult,
    target: str,
    primary_currency: str,
    secondary_currency: str,
    applied_rate: Decimal,
) -> Money:
    """Express a fee in ``target`` using only what a settled pairing knows.

    ``applied_rate`` is primary->secondary. Prefers an amount already in the
    target currency (instrument or base fee) over converting.
    """
    target = target.upper()
    if fee.is_free:
        return Money.zero(target)
    if peg_of(fee.currency) == peg_of(target):
        return Money(fee.amount, target)
    if fee.base_currency and peg_of(fee.base_currency) == peg_of(target):
        return Money(fee.base_amount, target)
    fee_peg, primary, secondary = peg_of(fee.currency), peg_of(primary_currency), peg_of(secondary_currency)
    if fee_peg == secondary and peg_of(target) == primary:
        return Money(fee.amount / applied_rate, target)
    if fee_peg == primary and peg_of(target) == secondary:
        return Money(fee.amount * applied_rate, target)
    raise ValueError(f"cannot express {fee.currency} fee in {target}")

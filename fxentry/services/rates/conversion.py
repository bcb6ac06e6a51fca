from __future__ import annotations

from dataclasses import dataclass

from fxentry.models.money import Money
from fxentry.models.rates import RateQuote

"""Conversion result helper.

Keeps the arithmetic of "amount x rate" in one place. No rounding here: the
converted amount keeps full precision until it is displayed or written to the
ledger.
"""


@dataclass(frozen=True)
class ConversionResult:
    original: Money
    converted: Money
    rate: RateQuote

    @property
    def is_approximate(self) -> bool:
        return self.rate.is_fallback


def apply_quote(amount: Money, quote: RateQuote) -> ConversionResult:
    if amount.currency != quote.base:
        raise ValueError(
            f"quote {quote.base}->{quote.quote} cannot convert {amount.currency}"
        )
    return ConversionResult(
        original=amount,
        converted=amount.times(quote.rate, quote.quote),
        rate=quote,
    )

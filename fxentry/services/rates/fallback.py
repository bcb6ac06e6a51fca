"""Bootstrap rate table.

Approximate USD-based rates used only when the cache is empty and a live fetch
failed. Every consumer (rate cache, fee policy, limit checks) reads this one
table through the rate cache so degraded values are identical everywhere.
Cross rates are derived through USD; reciprocals are never stored.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Optional

from fxentry.models.constants import peg_of

# Units of currency per 1 USD
USD_BOOTSTRAP: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "GBP": Decimal("0.79"),
    "EUR": Decimal("0.92"),
    "JPY": Decimal("149.0"),
    "CHF": Decimal("0.88"),
    "CAD": Decimal("1.36"),
    "AUD": Decimal("1.53"),
    "NZD": Decimal("1.66"),
    "SGD": Decimal("1.34"),
    "HKD": Decimal("7.82"),
    "CNY": Decimal("7.24"),
    "INR": Decimal("83.2"),
    "MXN": Decimal("17.1"),
    "BRL": Decimal("4.97"),
    "ZAR": Decimal("18.6"),
}


def bootstrap_rate(base: str, quote: str) -> Optional[Decimal]:
    base, quote = peg_of(base), peg_of(quote)
    if base == quote:
        return Decimal("1")
    b = USD_BOOTSTRAP.get(base)
    q = USD_BOOTSTRAP.get(quote)
    if b is None or q is None:
        return None
    return q / b

"""Money / rounding / formatting helpers.

Centralized so the reconciler, fee policy, ledger and HTTP views use identical
rounding semantics: half-up to the currency's minor units, applied only at the
display or ledger-write boundary.
"""

from __future__ import annotations
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from fxentry.core.errors import InvalidAmountInput
from fxentry.models.constants import currency_info
from fxentry.models.money import Money, Number, to_decimal

_NUMERIC_PREFIX = re.compile(r"^(\d*)(?:\.(\d*))?")


def round2(value: Number) -> Decimal:
    return to_decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def quantize_minor(value: Number, currency: str) -> Decimal:
    units = currency_info(currency).minor_units
    exp = Decimal(1).scaleb(-units)
    return to_decimal(value).quantize(exp, rounding=ROUND_HALF_UP)


def minor_unit(currency: str) -> Decimal:
    return Decimal(1).scaleb(-currency_info(currency).minor_units)


def parse_amount_input(raw: str) -> Decimal:
    """Parse digits as typed into a non-negative Decimal.

    Partial input resolves to its last valid numeric prefix ("12." -> 12,
    "1.2.3" -> 1.2, "." -> 0). Raises InvalidAmountInput when nothing numeric
    can be recovered.
    """
    text = (raw or "").strip().replace(",", "")
    if not text:
        return Decimal("0")
    m = _NUMERIC_PREFIX.match(text)
    whole, frac = m.group(1), m.group(2)
    if not whole and not frac:
        if text.startswith("."):
            return Decimal("0")
        raise InvalidAmountInput(raw)
    if not frac:
        return Decimal(whole)
    return Decimal(f"{whole or '0'}.{frac}")


def format_for_input(value: Number) -> str:
    """Render an amount back into editable digits.

    Whole numbers drop the decimals; anything else gets two fixed places.
    """
    d = to_decimal(value)
    if d == d.to_integral_value():
        return str(d.quantize(Decimal("1")))
    return str(round2(d))


def _group(d: Decimal, places: int) -> str:
    return f"{d:,.{places}f}"


def format_money(money: Money, flexible: bool = False) -> str:
    """Symbol + comma grouped amount ("£24,477.78").

    ``flexible`` shows decimals only when needed, for the side being typed on.
    """
    info = currency_info(money.currency)
    value = quantize_minor(money.amount, money.currency)
    sign = "-" if value < 0 else ""
    value = abs(value)
    if flexible and value == value.to_integral_value():
        body = _group(value, 0)
    elif flexible:
        body = _group(value, info.minor_units).rstrip("0").rstrip(".")
    else:
        body = _group(value, info.minor_units)
    return f"{sign}{info.symbol}{body}"


def format_signed(money: Money) -> str:
    """Activity feed style: "+$126.00" / "-£100.00"."""
    text = format_money(Money(abs(money.amount), money.currency))
    return f"{'-' if money.amount < 0 else '+'}{text}"


def format_fee(amount: Decimal, currency: str, approximate: bool = False) -> str:
    text = format_money(Money(amount, currency))
    return f"~{text}" if approximate else text


def empty_display(currency: str) -> str:
    return f"{currency_info(currency).symbol}0"


def describe_rate(rate: Optional[Decimal], base: str, quote: str) -> str:
    if rate is None:
        return ""
    b = currency_info(base).symbol
    q = currency_info(quote).symbol
    return f"{b}1 = {q}{rate.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)}"

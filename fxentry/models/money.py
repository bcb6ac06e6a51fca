from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from fxentry.core.errors import UnsupportedCurrency
from .constants import is_supported

Number = Union[Decimal, int, str, float]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their shortest repr (0.1 -> Decimal("0.1"))
    return Decimal(str(value))


@dataclass(frozen=True)
class Money:
    """Immutable amount in a registered currency.

    Amounts keep full Decimal precision; rounding happens only when formatting
    or when a value is written to the ledger.
    """

    amount: Decimal
    currency: str

    def __post_init__(self) -> None:
        code = self.currency.upper()
        if not is_supported(code):
            raise UnsupportedCurrency(self.currency)
        object.__setattr__(self, "currency", code)
        object.__setattr__(self, "amount", to_decimal(self.amount))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal("0"), currency)

    def _same(self, other: "Money") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise ValueError(
                f"currency mismatch: {self.currency} vs {other.currency}"
            )

    def __add__(self, other: "Money") -> "Money":
        self._same(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._same(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __lt__(self, other: "Money") -> bool:
        self._same(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._same(other)
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._same(other)
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._same(other)
        return self.amount >= other.amount

    def times(self, rate: Number, currency: str) -> "Money":
        """Apply a rate, producing an amount in ``currency``."""
        return Money(self.amount * to_decimal(rate), currency)

    def clamp_zero(self) -> "Money":
        return self if self.amount >= 0 else Money.zero(self.currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"

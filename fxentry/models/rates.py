from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from .money import to_decimal


@dataclass(frozen=True)
class RateQuote:
    """Rate for converting one unit of ``base`` into ``quote``.

    ``is_fallback`` marks values served from the bootstrap table instead of a
    live fetch; callers surface these as approximate.
    """

    base: str
    quote: str
    rate: Decimal
    fetched_at: datetime
    is_fallback: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "rate", to_decimal(self.rate))
        if self.rate <= 0:
            raise ValueError(f"rate must be positive, got {self.rate}")

    def inverse(self) -> "RateQuote":
        return RateQuote(
            base=self.quote,
            quote=self.base,
            rate=Decimal(1) / self.rate,
            fetched_at=self.fetched_at,
            is_fallback=self.is_fallback,
        )

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_stale(self, now: datetime, threshold: timedelta) -> bool:
        return self.age(now) >= threshold

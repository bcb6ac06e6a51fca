from __future__ import annotations

"""Rate provider abstraction.

A provider answers one question: how many units of ``quote`` does one unit of
``base`` buy right now. Caching, reciprocals and fallback live in the rate
cache, not here.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Protocol

from fxentry.models.rates import RateQuote


class RateProvider(ABC):
    name: str = "abstract"

    @abstractmethod
    async def fetch_rate(self, base: str, quote: str) -> Decimal:
        """Return units of quote per 1 unit of base; raise RateUnavailable on failure."""
        raise NotImplementedError


class SupportsRateLookup(Protocol):
    def get_cached_rate(self, base: str, quote: str) -> RateQuote | None: ...

    def fallback_rate(self, base: str, quote: str) -> RateQuote | None: ...

from __future__ import annotations

from fastapi import APIRouter, Depends

from fxentry.core.errors import RateUnavailable, UnsupportedCurrency
from fxentry.models.constants import is_supported
from fxentry.models.rates import RateQuote
from fxentry.services.money import describe_rate
from .deps import RateCache, get_rate_cache

"""Rates router.

Endpoints:
    - GET /rates/{base}/{quote}           -> cached (possibly stale) or fallback rate
    - POST /rates/{base}/{quote}/refresh  -> fetch now, sharing any in-flight fetch

Reads never block on the network; a pair with neither a cached nor a
bootstrap value answers 503.
"""

router = APIRouter(prefix="/rates", tags=["rates"])


def _codes(base: str, quote: str) -> tuple[str, str]:
    for code in (base, quote):
        if not is_supported(code):
            raise UnsupportedCurrency(code)
    return base.upper(), quote.upper()


def _quote_out(rates: RateCache, q: RateQuote) -> dict:
    return {
        "base": q.base,
        "quote": q.quote,
        "rate": str(q.rate),
        "inverse": str(q.inverse().rate),
        "display": describe_rate(q.rate, q.base, q.quote),
        "fetched_at": q.fetched_at.isoformat(),
        "stale": rates.is_stale(q),
        "approximate": q.is_fallback,
    }


@router.get("/{base}/{quote}", summary="Current rate for a currency pair")
async def get_rate(base: str, quote: str, rates: RateCache = Depends(get_rate_cache)):
    base, quote = _codes(base, quote)
    q = rates.get_cached_rate(base, quote)
    if q is None:
        raise RateUnavailable(base, quote, "no cached or fallback rate")
    return _quote_out(rates, q)


@router.post("/{base}/{quote}/refresh", summary="Fetch a fresh rate now")
async def refresh_rate(base: str, quote: str, rates: RateCache = Depends(get_rate_cache)):
    base, quote = _codes(base, quote)
    q = await rates.fetch_rate(base, quote)
    return _quote_out(rates, q)

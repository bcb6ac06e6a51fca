from __future__ import annotations

"""Concrete rate providers and factory.

'static' answers from the bootstrap table (offline / development);
'external-http' queries the Frankfurter API.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Type

from fxentry.core.config import Settings, get_settings
from fxentry.core.errors import RateUnavailable
from fxentry.services.http_client import HttpError, get_json_async
from .base import RateProvider
from .fallback import bootstrap_rate

logger = logging.getLogger("fxentry.rates.providers")


class StaticRateProvider(RateProvider):
    name = "static"

    def __init__(self, settings: Optional[Settings] = None):
        pass

    async def fetch_rate(self, base: str, quote: str) -> Decimal:  # type: ignore[override]
        rate = bootstrap_rate(base, quote)
        if rate is None:
            raise RateUnavailable(base, quote, "not in static table")
        return rate


# Frankfurter (free, no API key): GET /latest?from=GBP&to=USD
# -> {"amount": 1.0, "base": "GBP", "date": "...", "rates": {"USD": 1.265}}
class ExternalHTTPRateProvider(RateProvider):
    name = "external-http"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._base_url = str(settings.exchange_api_base_url)
        self._timeout = settings.http_timeout_seconds
        self._retries = settings.http_retries

    async def fetch_rate(self, base: str, quote: str) -> Decimal:  # type: ignore[override]
        try:
            data = await get_json_async(
                self._base_url,
                {"from": base, "to": quote},
                timeout=self._timeout,
                retries=self._retries,
            )
        except HttpError as e:
            raise RateUnavailable(base, quote, str(e)) from e
        rates = data.get("rates") or {}
        value = rates.get(quote)
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            rate = None
        if rate is None or not rate.is_finite() or rate <= 0:
            raise RateUnavailable(base, quote, f"bad payload: {data!r}")
        return rate


_PROVIDER_REGISTRY: Dict[str, Type[RateProvider]] = {
    "static": StaticRateProvider,
    "external-http": ExternalHTTPRateProvider,
}


def make_rate_provider(kind: str, settings: Optional[Settings] = None) -> RateProvider:
    cls = _PROVIDER_REGISTRY.get(kind)
    if not cls:
        raise ValueError(f"Unknown rate provider kind '{kind}'")
    return cls(settings)  # type: ignore[call-arg]

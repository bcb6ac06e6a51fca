"""Smoke script for the shared rate cache.

Demonstrates:
 1. First access triggers an underlying provider fetch.
 2. Reverse-direction access reuses the same entry (reciprocal, no fetch).
 3. Backdating fetched_at makes the entry stale: it is still served and a
    background refresh replaces it.

NOTE: This is a lightweight diagnostic and not a formal test.
"""

import asyncio
from datetime import timedelta
from pprint import pprint

from fxentry.core.config import get_settings
from fxentry.models.rates import RateQuote
from fxentry.services.rates.cache_service import build_rate_cache


async def run():
    cache = build_rate_cache(get_settings())
    out = {"initial": {}, "reverse": {}, "stale": {}, "refreshed": {}}

    for quote in ("GBP", "EUR"):
        q = await cache.resolve_rate("USD", quote)
        out["initial"][quote] = {"rate": str(q.rate), "fetched_at": q.fetched_at.isoformat()}

    for base in ("GBP", "EUR"):
        q = cache.get_cached_rate(base, "USD")
        out["reverse"][base] = {"rate": str(q.rate), "fetched_at": q.fetched_at.isoformat()}

    # Force staleness by backdating entries beyond the threshold
    for key, entry in list(cache._entries.items()):  # type: ignore[attr-defined]
        cache._entries[key] = RateQuote(  # type: ignore[attr-defined]
            entry.base,
            entry.quote,
            entry.rate,
            entry.fetched_at - cache.stale_after - timedelta(seconds=5),
        )

    for quote in ("GBP", "EUR"):
        q = await cache.resolve_rate("USD", quote)
        out["stale"][quote] = {"fetched_at": q.fetched_at.isoformat(), "stale": cache.is_stale(q)}

    await asyncio.sleep(0.1)  # let background refreshes land
    for quote in ("GBP", "EUR"):
        q = cache.get_cached_rate("USD", quote)
        out["refreshed"][quote] = {"fetched_at": q.fetched_at.isoformat(), "stale": cache.is_stale(q)}

    pprint(out)


if __name__ == "__main__":
    asyncio.run(run())

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from fxentry.core.config import Settings, get_settings
from fxentry.core.errors import RateUnavailable
from fxentry.models.constants import peg_of
from fxentry.models.money import Money, to_decimal
from fxentry.models.rates import RateQuote
from .base import RateProvider
from .conversion import ConversionResult, apply_quote
from .fallback import bootstrap_rate
from .providers import make_rate_provider

"""Process-wide rate cache.

Purpose:
    Hold the last known rate for each currency pair, shared by every
    amount-entry session, and expose it synchronously (possibly stale) or
    asynchronously (fetching on a miss).

Design:
    - One entry per unordered pair. The stored orientation is whichever was
      fetched; the reciprocal is always derived on read, so A->B and B->A can
      never drift apart.
    - Entries are never expired by a timer. Every read exposes fetched_at;
      resolve_rate() serves a stale entry immediately and refreshes it in the
      background.
    - Fetches are serialized per pair: a second request for a pair already in
      flight awaits the same future instead of issuing another call.
    - A failed fetch leaves any existing entry untouched. Only when nothing is
      cached does the bootstrap table answer, flagged is_fallback.
    - Stable assets resolve to their pegged fiat currency at exactly 1.
"""

logger = logging.getLogger("fxentry.rates")

PairKey = FrozenSet[str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateCache:
    def __init__(
        self,
        provider: RateProvider,
        *,
        stale_after: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._provider = provider
        self._stale_after = stale_after
        self._clock = clock
        self._entries: Dict[PairKey, RateQuote] = {}
        self._inflight: Dict[PairKey, asyncio.Future] = {}
        self._background: Set[asyncio.Task] = set()

    # Internal --------------------------------------------------
    @staticmethod
    def _pair(base: str, quote: str) -> tuple[str, str, PairKey]:
        b, q = peg_of(base), peg_of(quote)
        return b, q, frozenset((b, q))

    def _identity(self, base: str, quote: str) -> RateQuote:
        return RateQuote(base.upper(), quote.upper(), Decimal("1"), self._clock())

    @staticmethod
    def _orient(entry: RateQuote, base: str, quote: str) -> RateQuote:
        """Return ``entry`` oriented base->quote, relabelled with the requested codes."""
        b = peg_of(base)
        if entry.base != b:
            entry = entry.inverse()
        if entry.base == base.upper() and entry.quote == quote.upper():
            return entry
        return RateQuote(
            base.upper(), quote.upper(), entry.rate, entry.fetched_at, entry.is_fallback
        )

    async def _do_fetch(self, base: str, quote: str, key: PairKey) -> RateQuote:
        try:
            rate = to_decimal(await self._provider.fetch_rate(base, quote))
        except RateUnavailable:
            logger.warning("rate fetch failed for %s->%s", base, quote)
            raise
        except Exception as e:
            logger.warning("rate fetch failed for %s->%s: %s", base, quote, e)
            raise RateUnavailable(base, quote, str(e)) from e
        entry = RateQuote(base, quote, rate, self._clock())
        self._entries[key] = entry
        logger.info("rate %s->%s = %s via %s", base, quote, rate, self._provider.name)
        return entry

    def _release(self, key: PairKey, fut: asyncio.Future) -> None:
        if self._inflight.get(key) is fut:
            del self._inflight[key]
        if not fut.cancelled():
            # Mark exception as retrieved when nobody awaited it
            fut.exception()

    # Public API -----------------------------------------------
    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    def now(self) -> datetime:
        return self._clock()

    def is_stale(self, entry: RateQuote) -> bool:
        return entry.is_stale(self._clock(), self._stale_after)

    def is_fetching(self, base: str, quote: str) -> bool:
        return self._pair(base, quote)[2] in self._inflight

    def get_cached_rate(
        self, base: str, quote: str, *, allow_fallback: bool = True
    ) -> Optional[RateQuote]:
        """Synchronous, non-blocking read.

        Returns the cached entry (possibly stale), else a flagged bootstrap value
        when ``allow_fallback``, else None.
        """
        b, q, key = self._pair(base, quote)
        if b == q:
            return self._identity(base, quote)
        entry = self._entries.get(key)
        if entry is not None:
            return self._orient(entry, base, quote)
        if allow_fallback:
            return self.fallback_rate(base, quote)
        return None

    def fallback_rate(self, base: str, quote: str) -> Optional[RateQuote]:
        rate = bootstrap_rate(base, quote)
        if rate is None:
            return None
        return RateQuote(base.upper(), quote.upper(), rate, self._clock(), is_fallback=True)

    def prime(self, base: str, quote: str, rate, fetched_at: Optional[datetime] = None) -> RateQuote:
        """Store a known rate as if it had been fetched (bootstrapping, overrides)."""
        b, q, key = self._pair(base, quote)
        if b == q:
            raise ValueError("cannot prime a same-currency pair")
        entry = RateQuote(b, q, rate, fetched_at or self._clock())
        self._entries[key] = entry
        return self._orient(entry, base, quote)

    async def fetch_rate(self, base: str, quote: str) -> RateQuote:
        """Fetch and store the pair, sharing any fetch already in flight.

        Raises RateUnavailable on failure; the existing entry is left as is.
        """
        b, q, key = self._pair(base, quote)
        if b == q:
            return self._identity(base, quote)
        fut = self._inflight.get(key)
        if fut is None:
            fut = asyncio.ensure_future(self._do_fetch(b, q, key))
            self._inflight[key] = fut
            fut.add_done_callback(lambda f, k=key: self._release(k, f))
        else:
            logger.debug("joining in-flight fetch for %s->%s", b, q)
        entry = await asyncio.shield(fut)
        return self._orient(entry, base, quote)

    async def resolve_rate(self, base: str, quote: str) -> RateQuote:
        """Best available rate for a conversion the UI is waiting on.

        Fresh cache -> returned; stale cache -> returned while a background
        refresh runs; miss -> fetched; failed fetch -> flagged fallback.
        """
        b, q, key = self._pair(base, quote)
        if b == q:
            return self._identity(base, quote)
        entry = self._entries.get(key)
        if entry is not None:
            if self.is_stale(entry):
                self.refresh_in_background(base, quote)
            return self._orient(entry, base, quote)
        try:
            return await self.fetch_rate(base, quote)
        except RateUnavailable:
            fallback = self.fallback_rate(base, quote)
            if fallback is None:
                raise
            logger.warning("using fallback rate for %s->%s", base, quote)
            return fallback

    def refresh_in_background(self, base: str, quote: str) -> None:
        if self.is_fetching(base, quote):
            return
        logger.info("rate %s->%s is stale; refreshing in background", base, quote)
        task = asyncio.get_running_loop().create_task(self._refresh_quietly(base, quote))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_quietly(self, base: str, quote: str) -> None:
        try:
            await self.fetch_rate(base, quote)
        except RateUnavailable:
            logger.warning("background refresh failed for %s->%s; keeping cached value", base, quote)

    async def conversion(self, amount: Money, quote: str) -> ConversionResult:
        """Convert using the cached rate when present, else fetch (fallback on failure).

        Returns the converted amount together with the quote it used, so
        callers can tell whether the result is approximate.
        """
        cached = self.get_cached_rate(amount.currency, quote, allow_fallback=False)
        if cached is None:
            try:
                cached = await self.fetch_rate(amount.currency, quote)
            except RateUnavailable:
                cached = self.fallback_rate(amount.currency, quote)
                if cached is None:
                    raise
        return apply_quote(amount, cached)

    async def convert(self, amount: Money, quote: str) -> Money:
        """Full-precision amount of `amount` expressed in `quote`."""
        return (await self.conversion(amount, quote)).converted

    def entries(self) -> List[RateQuote]:
        return list(self._entries.values())


def build_rate_cache(settings: Settings, provider: Optional[RateProvider] = None) -> RateCache:
    return RateCache(
        provider or make_rate_provider(settings.exchange_rate_provider, settings),
        stale_after=timedelta(seconds=settings.rate_stale_after_seconds),
    )


# Singleton dependency helper used by FastAPI DI
@lru_cache
def get_rate_cache() -> RateCache:
    return build_rate_cache(get_settings())

"""Shared fixtures: temporary SQLite store, controllable rate provider, fixed clock."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest

from fxentry.core.config import Settings
from fxentry.core.errors import RateUnavailable
from fxentry.db.dal import Database
from fxentry.db.migrate import apply_migrations
from fxentry.db.seed import seed_accounts, seed_balance
from fxentry.models.constants import OperationKind
from fxentry.models.money import Money
from fxentry.services.fee_policy import FeePolicy
from fxentry.services.limit_guard import LimitGuard
from fxentry.services.rates.base import RateProvider
from fxentry.services.rates.cache_service import RateCache
from fxentry.services.reconciler import AmountReconciler

FIXED_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeRateProvider(RateProvider):
    """Answers from a dict; can be made to fail or to wait on a gate."""

    name = "fake"

    def __init__(self, rates: Optional[Dict[Tuple[str, str], str]] = None):
        self.rates = {k: Decimal(v) for k, v in (rates or {}).items()}
        self.calls: List[Tuple[str, str]] = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    async def fetch_rate(self, base: str, quote: str) -> Decimal:
        self.calls.append((base, quote))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RateUnavailable(base, quote, "provider down")
        if (base, quote) in self.rates:
            return self.rates[(base, quote)]
        if (quote, base) in self.rates:
            return Decimal(1) / self.rates[(quote, base)]
        raise RateUnavailable(base, quote, "unknown pair")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeRateProvider:
    return FakeRateProvider()


@pytest.fixture
def rate_cache(provider, clock) -> RateCache:
    return RateCache(provider, stale_after=timedelta(minutes=5), clock=clock)


@pytest.fixture
def fee_policy(rate_cache, clock) -> FeePolicy:
    return FeePolicy(rate_cache, Decimal("0.50"), "USD", clock=clock)


@pytest.fixture
def limit_guard() -> LimitGuard:
    return LimitGuard({OperationKind.DEPOSIT: Money("7000", "GBP")})


@pytest.fixture
def make_reconciler(rate_cache, fee_policy, limit_guard, clock):
    def _make(operation=OperationKind.DEPOSIT, account_currency="GBP", **kwargs):
        kwargs.setdefault("storage_currency", "USD")
        kwargs.setdefault("reference_currency", "USD")
        return AmountReconciler(
            rate_cache,
            fee_policy,
            limit_guard,
            operation=operation,
            account_currency=account_currency,
            clock=clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def settings(tmp_path) -> Settings:
    s = Settings(data_dir=tmp_path, db_filename="test.sqlite3", debug=False)
    s.init_post_load()
    return s


@pytest.fixture
def db(settings) -> Database:
    apply_migrations(settings.db_path)
    seed_accounts(settings.db_path)
    seed_balance(settings.db_path, "USD")
    return Database(settings.db_path)

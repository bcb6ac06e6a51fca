import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from fxentry.core.errors import RateUnavailable
from fxentry.models.money import Money
from fxentry.services.money import minor_unit, quantize_minor
from fxentry.services.rates.providers import StaticRateProvider, make_rate_provider


async def _until(predicate, rounds: int = 50) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestReciprocals:
    def test_reverse_read_is_derived(self, rate_cache):
        rate_cache.prime("GBP", "USD", "1.25")
        forward = rate_cache.get_cached_rate("GBP", "USD")
        reverse = rate_cache.get_cached_rate("USD", "GBP")
        assert forward.rate == Decimal("1.25")
        assert reverse.rate == Decimal("0.8")
        assert reverse.fetched_at == forward.fetched_at
        assert len(rate_cache.entries()) == 1

    def test_fetch_both_directions_keeps_one_entry(self, rate_cache, provider):
        provider.rates[("GBP", "USD")] = Decimal("1.25")

        async def scenario():
            await rate_cache.fetch_rate("GBP", "USD")
            await rate_cache.fetch_rate("USD", "GBP")

        asyncio.run(scenario())
        assert len(rate_cache.entries()) == 1

    def test_stable_assets_are_pegged(self, rate_cache, provider):
        q = rate_cache.get_cached_rate("USDC", "USD")
        assert q.rate == Decimal("1")
        assert not q.is_fallback
        assert asyncio.run(rate_cache.resolve_rate("EURC", "EUR")).rate == Decimal("1")
        assert provider.calls == []


class TestFetching:
    def test_concurrent_fetches_share_one_call(self, rate_cache, provider):
        provider.rates[("GBP", "USD")] = Decimal("1.27")

        async def scenario():
            provider.gate = asyncio.Event()
            first = asyncio.ensure_future(rate_cache.fetch_rate("GBP", "USD"))
            second = asyncio.ensure_future(rate_cache.fetch_rate("USD", "GBP"))
            await _until(lambda: provider.calls)
            assert rate_cache.is_fetching("GBP", "USD")
            provider.gate.set()
            return await first, await second

        a, b = asyncio.run(scenario())
        assert provider.calls == [("GBP", "USD")]
        assert a.rate == Decimal("1.27")
        assert b.rate == Decimal(1) / Decimal("1.27")

    def test_cancelled_waiter_does_not_cancel_shared_fetch(self, rate_cache, provider):
        provider.rates[("GBP", "USD")] = Decimal("1.27")

        async def scenario():
            provider.gate = asyncio.Event()
            waiter = asyncio.ensure_future(rate_cache.fetch_rate("GBP", "USD"))
            await _until(lambda: provider.calls)
            waiter.cancel()
            provider.gate.set()
            await _until(lambda: not rate_cache.is_fetching("GBP", "USD"))

        asyncio.run(scenario())
        assert rate_cache.get_cached_rate("GBP", "USD", allow_fallback=False).rate == Decimal("1.27")

    def test_failure_keeps_existing_entry(self, rate_cache, provider):
        rate_cache.prime("GBP", "USD", "1.20")
        provider.fail = True
        with pytest.raises(RateUnavailable):
            asyncio.run(rate_cache.fetch_rate("GBP", "USD"))
        assert rate_cache.get_cached_rate("GBP", "USD").rate == Decimal("1.20")


class TestResolve:
    def test_stale_entry_served_then_refreshed(self, rate_cache, provider, clock):
        rate_cache.prime("GBP", "USD", "1.20", fetched_at=clock() - timedelta(minutes=10))
        provider.rates[("GBP", "USD")] = Decimal("1.30")

        async def scenario():
            served = await rate_cache.resolve_rate("GBP", "USD")
            await _until(lambda: provider.calls and not rate_cache.is_fetching("GBP", "USD"))
            return served

        served = asyncio.run(scenario())
        assert served.rate == Decimal("1.20")
        assert rate_cache.is_stale(served)
        fresh = rate_cache.get_cached_rate("GBP", "USD")
        assert fresh.rate == Decimal("1.30")
        assert not rate_cache.is_stale(fresh)

    def test_failed_background_refresh_keeps_stale_value(self, rate_cache, provider, clock):
        rate_cache.prime("GBP", "USD", "1.20", fetched_at=clock() - timedelta(minutes=10))
        provider.fail = True

        async def scenario():
            await rate_cache.resolve_rate("GBP", "USD")
            await _until(lambda: provider.calls and not rate_cache.is_fetching("GBP", "USD"))

        asyncio.run(scenario())
        assert rate_cache.get_cached_rate("GBP", "USD").rate == Decimal("1.20")

    def test_miss_with_failing_provider_uses_flagged_fallback(self, rate_cache, provider):
        provider.fail = True
        q = asyncio.run(rate_cache.resolve_rate("USD", "GBP"))
        assert q.is_fallback
        assert q.rate == Decimal("0.79")
        assert rate_cache.entries() == []

    def test_no_rate_anywhere_raises(self, rate_cache, provider):
        provider.fail = True
        with pytest.raises(RateUnavailable):
            asyncio.run(rate_cache.resolve_rate("USD", "KES"))
        assert rate_cache.get_cached_rate("USD", "KES") is None

    def test_cross_rate_fallback_goes_through_usd(self, rate_cache):
        q = rate_cache.get_cached_rate("GBP", "EUR")
        assert q.is_fallback
        assert q.rate == Decimal("0.92") / Decimal("0.79")


class TestConvert:
    def test_uses_cached_rate(self, rate_cache, provider):
        rate_cache.prime("GBP", "USD", "1.265")
        result = asyncio.run(rate_cache.conversion(Money("100", "GBP"), "USD"))
        assert result.converted == Money("126.5", "USD")
        assert not result.is_approximate
        assert provider.calls == []

    def test_convert_returns_money(self, rate_cache):
        rate_cache.prime("GBP", "USD", "1.265")
        converted = asyncio.run(rate_cache.convert(Money("100", "USD"), "GBP"))
        assert converted.currency == "GBP"
        assert quantize_minor(converted.amount, "GBP") == Decimal("79.05")

    def test_conversion_without_cache_uses_flagged_fallback(self, rate_cache):
        result = asyncio.run(rate_cache.conversion(Money("10", "USD"), "EUR"))
        assert result.converted == Money("9.2", "EUR")
        assert result.is_approximate


PRIMED = {("GBP", "USD"): "1.265", ("KES", "USD"): "0.0077", ("USD", "JPY"): "151.37"}
ROUND_TRIP_PAIRS = [
    ("GBP", "USD"),
    ("USD", "KES"),
    ("JPY", "USD"),
    ("EUR", "JPY"),
    ("GBP", "EUR"),
    ("BRL", "MXN"),
    ("ZAR", "INR"),
    ("USDC", "GBP"),
    ("EURC", "EUR"),
]


@pytest.mark.parametrize("start, other", ROUND_TRIP_PAIRS)
@pytest.mark.parametrize("typed", ["0.01", "1", "1234.56", "987654.3"])
def test_round_trip_within_one_minor_unit(rate_cache, start, other, typed):
    for (base, quote), rate in PRIMED.items():
        rate_cache.prime(base, quote, rate)
    original = Money(quantize_minor(typed, start), start)

    async def there_and_back():
        converted = await rate_cache.convert(original, other)
        return await rate_cache.convert(converted, start)

    back = asyncio.run(there_and_back())
    assert back.currency == start
    assert abs(quantize_minor(back.amount, start) - original.amount) <= minor_unit(start)


class TestProviders:
    def test_static_provider_answers_from_table(self):
        assert asyncio.run(StaticRateProvider().fetch_rate("USD", "EUR")) == Decimal("0.92")

    def test_static_provider_unknown_pair(self):
        with pytest.raises(RateUnavailable):
            asyncio.run(StaticRateProvider().fetch_rate("USD", "NGN"))

    def test_factory_rejects_unknown_kind(self, settings):
        with pytest.raises(ValueError):
            make_rate_provider("carrier-pigeon", settings)
        assert make_rate_provider("static", settings).name == "static"

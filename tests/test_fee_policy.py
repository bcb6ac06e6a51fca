from datetime import timedelta
from decimal import Decimal

import pytest

from fxentry.models.constants import OperationKind
from fxentry.models.fees import EARLY_ADOPTER_REASON, FeeResult, FeeWaivers
from fxentry.models.money import Money
from fxentry.services.fee_policy import FeePolicy, fee_in_currency


class TestCalculateFee:
    def test_same_currency_is_free(self, fee_policy):
        fee = fee_policy.calculate_fee(OperationKind.DEPOSIT, "GBP", "GBP")
        assert fee.is_free
        assert fee.charged == Money.zero("GBP")

    def test_stable_asset_matching_reference_is_free(self, fee_policy):
        assert fee_policy.calculate_fee(OperationKind.DEPOSIT, "USDC", "USD").is_free

    @pytest.mark.parametrize("op", [OperationKind.P2P_SEND, OperationKind.P2P_REQUEST])
    def test_p2p_is_always_free(self, fee_policy, op):
        assert fee_policy.calculate_fee(op, "EUR", "USD").is_free

    def test_cross_currency_uses_cached_rate(self, fee_policy, rate_cache):
        rate_cache.prime("USD", "GBP", "0.79")
        fee = fee_policy.calculate_fee(OperationKind.DEPOSIT, "GBP", "USD")
        assert not fee.is_free
        assert fee.currency == "GBP"
        assert fee.amount == Decimal("0.395")
        assert fee.base_amount == Decimal("0.50")
        assert fee.base_currency == "USD"
        assert not fee.is_approximate
        assert fee.converted

    def test_cold_cache_falls_back_and_flags_approximate(self, fee_policy):
        fee = fee_policy.calculate_fee(OperationKind.WITHDRAWAL, "EUR", "USD")
        assert fee.amount == Decimal("0.50") * Decimal("0.92")
        assert fee.is_approximate

    def test_no_rate_charges_face_value(self, fee_policy):
        fee = fee_policy.calculate_fee(OperationKind.DEPOSIT, "KES", "USD")
        assert not fee.is_free
        assert fee.amount == Decimal("0.50")
        assert fee.currency == "USD"
        assert not fee.converted

    def test_deterministic_for_unchanged_cache(self, fee_policy, rate_cache):
        rate_cache.prime("USD", "EUR", "0.93")
        first = fee_policy.calculate_fee(OperationKind.DEPOSIT, "EUR", "GBP")
        second = fee_policy.calculate_fee(OperationKind.DEPOSIT, "EUR", "GBP")
        assert first == second


class TestWaivers:
    def test_early_adopter_waives(self, fee_policy):
        fee = fee_policy.calculate_fee(
            OperationKind.DEPOSIT, "GBP", "USD", FeeWaivers(early_adopter=True)
        )
        assert fee.is_free
        assert fee.is_waived
        assert fee.waiver_reason == EARLY_ADOPTER_REASON
        assert fee.charged == Money.zero("GBP")

    def test_expired_early_adopter_charges(self, fee_policy, clock):
        waivers = FeeWaivers(early_adopter=True, early_adopter_expiry=clock() - timedelta(days=1))
        fee = fee_policy.calculate_fee(OperationKind.DEPOSIT, "GBP", "USD", waivers)
        assert not fee.is_free
        assert fee.waiver_reason is None

    def test_free_transfers_reason(self, fee_policy, clock):
        waivers = FeeWaivers(free_transfers_remaining=2)
        fee = fee_policy.calculate_fee(OperationKind.DEPOSIT, "GBP", "USD", waivers)
        assert fee.is_waived
        assert fee.waiver_reason == "2 free transfers remaining"
        assert waivers.uses_free_transfer(clock())
        assert not FeeWaivers(early_adopter=True, free_transfers_remaining=2).uses_free_transfer(clock())


class TestFeeInCurrency:
    def _fee(self, amount, currency, base="0.50", base_currency="USD"):
        return FeeResult(
            is_free=False,
            amount=Decimal(amount),
            currency=currency,
            base_amount=Decimal(base),
            base_currency=base_currency,
        )

    def test_prefers_base_amount_in_target(self):
        fee = self._fee("0.395", "GBP")
        assert fee_in_currency(fee, "USD", "GBP", "USD", Decimal("1.265")) == Money("0.50", "USD")

    def test_converts_with_pairing_rate(self):
        fee = self._fee("0.46", "EUR", base="0.40", base_currency="GBP")
        # primary USD -> secondary EUR at 0.92
        assert fee_in_currency(fee, "USD", "USD", "EUR", Decimal("0.92")) == Money("0.5", "USD")

    def test_free_fee_is_zero(self):
        assert fee_in_currency(FeeResult.free("GBP"), "USD", "GBP", "USD", Decimal("1.2")).is_zero

    def test_unrelated_currency_raises(self):
        fee = self._fee("100", "JPY", base="0.50", base_currency="CHF")
        with pytest.raises(ValueError):
            fee_in_currency(fee, "USD", "GBP", "EUR", Decimal("1.1"))


def test_from_settings(settings, rate_cache):
    policy = FeePolicy.from_settings(settings, rate_cache)
    assert policy.fee_amount == Decimal("0.5")
    assert policy.fee_currency == "USD"

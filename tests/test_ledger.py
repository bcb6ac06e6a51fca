import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fxentry.core.errors import DuplicateConfirmation, InsufficientFunds
from fxentry.db.migrate import CURRENT_SCHEMA_VERSION, apply_migrations
from fxentry.models.constants import OperationKind
from fxentry.models.fees import FeeResult
from fxentry.models.money import Money
from fxentry.models.reconciliation import ConfirmationSnapshot
from fxentry.services import app_settings
from fxentry.services.ledger import LedgerEffectApplier

CREATED = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def _snapshot(token, operation, primary, secondary, rate, fee=None, counterparty="UK Debit Card"):
    return ConfirmationSnapshot(
        token=token,
        operation=operation,
        primary_amount=primary,
        secondary_amount=secondary,
        fee_result=fee or FeeResult.free(primary.currency),
        applied_rate=Decimal(rate),
        rate_is_approximate=False,
        counterparty=counterparty,
        created_at=CREATED,
    )


def _deposit_fee():
    return FeeResult(
        is_free=False,
        amount=Decimal("0.50") / Decimal("1.265"),
        currency="GBP",
        base_amount=Decimal("0.50"),
        base_currency="USD",
    )


@pytest.fixture
def applier(db):
    return LedgerEffectApplier(db, "USD")


class TestDeposit:
    def test_credits_net_of_fee(self, applier, db):
        snap = _snapshot(
            "dep-1",
            OperationKind.DEPOSIT,
            Money("100", "GBP"),
            Money("126.50", "USD"),
            "1.265",
            _deposit_fee(),
        )
        effect = applier.apply(snap)
        assert effect.balance_delta == Money("126.00", "USD")
        assert effect.balance_after == Money("126.00", "USD")
        assert effect.activity_record.display_amount == "+$126.00"
        assert db.get_balance("USD") == Decimal("126.00")

    def test_fee_larger_than_amount_credits_zero(self, applier):
        fee = FeeResult(
            is_free=False,
            amount=Decimal("0.50"),
            currency="USD",
            base_amount=Decimal("0.50"),
            base_currency="USD",
        )
        snap = _snapshot(
            "dep-small", OperationKind.DEPOSIT, Money("0.30", "EUR"), Money("0.33", "USD"), "1.1", fee
        )
        assert applier.apply(snap).balance_delta == Money("0.00", "USD")

    def test_free_fee_credits_full_amount(self, applier):
        snap = _snapshot("dep-free", OperationKind.DEPOSIT, Money("50", "USDC"), Money("50", "USD"), "1")
        assert applier.apply(snap).balance_delta == Money("50.00", "USD")


class TestWithdrawal:
    def test_debits_amount_plus_fee(self, applier, db):
        db.set_balance("USD", Decimal("1000.00"))
        fee = FeeResult(
            is_free=False,
            amount=Decimal("0.395"),
            currency="GBP",
            base_amount=Decimal("0.50"),
            base_currency="USD",
        )
        snap = _snapshot(
            "wd-1",
            OperationKind.WITHDRAWAL,
            Money(Decimal("100") / Decimal("0.79"), "USD"),
            Money("100", "GBP"),
            "0.79",
            fee,
            counterparty="UK Debit Card",
        )
        effect = applier.apply(snap)
        assert effect.balance_delta == Money("-127.08", "USD")
        assert effect.activity_record.display_amount == "-$127.08"
        assert db.get_balance("USD") == Decimal("872.92")

    def test_overdraw_is_rejected_and_token_not_consumed(self, applier, db):
        db.set_balance("USD", Decimal("10.00"))
        snap = _snapshot("wd-big", OperationKind.WITHDRAWAL, Money("50", "USD"), Money("39.5", "GBP"), "0.79")
        with pytest.raises(InsufficientFunds):
            applier.apply(snap)
        assert db.get_balance("USD") == Decimal("10.00")
        assert not db.is_token_applied("wd-big")
        assert db.list_activities() == []


class TestIdempotency:
    def test_same_token_applies_once(self, applier, db, caplog):
        snap = _snapshot(
            "dup-1",
            OperationKind.DEPOSIT,
            Money("100", "GBP"),
            Money("126.50", "USD"),
            "1.265",
            _deposit_fee(),
        )
        applier.apply(snap)
        with caplog.at_level(logging.ERROR, logger="fxentry.ledger"):
            with pytest.raises(DuplicateConfirmation):
                applier.apply(snap)
        assert db.get_balance("USD") == Decimal("126.00")
        assert len(db.list_activities()) == 1
        assert any(
            "dup-1" in r.getMessage() and "rejected" in r.getMessage() for r in caplog.records
        )

    def test_activity_row_contents(self, applier, db):
        snap = _snapshot("act-1", OperationKind.DEPOSIT, Money("20", "USD"), Money("20", "USD"), "1")
        applier.apply(snap)
        [row] = db.list_activities()
        assert row["token"] == "act-1"
        assert row["kind"] == "deposit"
        assert row["counterparty"] == "UK Debit Card"
        assert row["display_amount"] == "+$20.00"
        assert Decimal(row["amount"]) == Decimal("20.00")


class TestStore:
    def test_migrations_are_idempotent(self, settings, db):
        assert apply_migrations(settings.db_path) == CURRENT_SCHEMA_VERSION
        assert apply_migrations(settings.db_path) == CURRENT_SCHEMA_VERSION

    def test_seeded_accounts(self, db):
        accounts = db.list_accounts()
        assert len(accounts) == 8
        assert {a["currency"] for a in accounts} >= {"GBP", "USD", "EUR", "USDC", "KES"}

    def test_display_currency_setting(self, db):
        assert app_settings.get_display_currency(db) == "GBP"
        assert app_settings.set_display_currency(db, "eur") == "EUR"
        assert app_settings.get_display_currency(db) == "EUR"

    def test_free_transfer_consumption(self, db):
        db.set_metadata("free_transfers_remaining", "2")
        assert app_settings.get_fee_waivers(db).free_transfers_remaining == 2
        assert app_settings.consume_free_transfer(db) == 1
        assert app_settings.consume_free_transfer(db) == 0
        assert app_settings.consume_free_transfer(db) == 0

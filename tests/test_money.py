from decimal import Decimal

import pytest

from fxentry.core.errors import InvalidAmountInput, UnsupportedCurrency
from fxentry.models.money import Money
from fxentry.services.money import (
    describe_rate,
    empty_display,
    format_fee,
    format_for_input,
    format_money,
    format_signed,
    parse_amount_input,
    quantize_minor,
    round2,
)


class TestParseAmountInput:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("", "0"),
            ("0", "0"),
            ("100", "100"),
            ("12.", "12"),
            ("12.5", "12.5"),
            (".5", "0.5"),
            (".", "0"),
            ("1.2.3", "1.2"),
            ("1,250.75", "1250.75"),
            ("  42 ", "42"),
        ],
    )
    def test_last_valid_prefix(self, raw, expected):
        assert parse_amount_input(raw) == Decimal(expected)

    def test_nothing_numeric_raises(self):
        with pytest.raises(InvalidAmountInput):
            parse_amount_input("abc")

    def test_negative_sign_is_not_numeric(self):
        with pytest.raises(InvalidAmountInput):
            parse_amount_input("-5")


class TestMoney:
    def test_unknown_currency_rejected(self):
        with pytest.raises(UnsupportedCurrency):
            Money("1", "XYZ")

    def test_codes_normalised(self):
        assert Money("1", "gbp").currency == "GBP"

    def test_arithmetic_requires_same_currency(self):
        with pytest.raises(ValueError):
            Money("1", "GBP") + Money("1", "USD")

    def test_clamp_zero(self):
        assert (Money("0.30", "USD") - Money("0.50", "USD")).clamp_zero() == Money.zero("USD")

    def test_float_input_keeps_short_repr(self):
        assert Money(0.1, "USD").amount == Decimal("0.1")


class TestRounding:
    def test_half_up(self):
        assert round2(Decimal("0.395")) == Decimal("0.40")
        assert round2(Decimal("127.0825")) == Decimal("127.08")
        assert round2(Decimal("2.675")) == Decimal("2.68")

    def test_zero_minor_units(self):
        assert quantize_minor(Decimal("149.5"), "JPY") == Decimal("150")


class TestFormatting:
    def test_fixed_two_places_with_grouping(self):
        assert format_money(Money("24477.777", "GBP")) == "£24,477.78"

    def test_flexible_drops_needless_decimals(self):
        assert format_money(Money("100", "GBP"), flexible=True) == "£100"
        assert format_money(Money("12.5", "GBP"), flexible=True) == "£12.5"
        assert format_money(Money("12.50", "GBP"), flexible=False) == "£12.50"

    def test_empty_display(self):
        assert empty_display("GBP") == "£0"
        assert empty_display("EUR") == "€0"

    def test_for_input(self):
        assert format_for_input(Decimal("126.5")) == "126.50"
        assert format_for_input(Decimal("100.000")) == "100"

    def test_signed(self):
        assert format_signed(Money("126", "USD")) == "+$126.00"
        assert format_signed(Money("-127.08", "USD")) == "-$127.08"

    def test_fee_marks_approximate(self):
        assert format_fee(Decimal("0.395"), "GBP") == "£0.40"
        assert format_fee(Decimal("0.395"), "GBP", approximate=True) == "~£0.40"

    def test_rate_description(self):
        assert describe_rate(Decimal("1.265"), "GBP", "USD") == "£1 = $1.2650"
        assert describe_rate(None, "GBP", "USD") == ""

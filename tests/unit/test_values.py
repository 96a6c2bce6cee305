"""Tests for money / quantity rounding and Decimal coercion."""

from decimal import Decimal

import pytest

from erp_kernel.domain.values import (
    money_equal,
    quantity_equal,
    round_money,
    round_quantity,
    round_whole,
    to_decimal,
)


class TestToDecimal:

    def test_float_rejected(self):
        with pytest.raises(TypeError, match="float not allowed"):
            to_decimal(0.1)

    def test_int_and_str_accepted(self):
        assert to_decimal(5) == Decimal("5")
        assert to_decimal("12.50") == Decimal("12.50")

    def test_decimal_returned_unchanged(self):
        value = Decimal("1.23456")
        assert to_decimal(value) is value


class TestRounding:

    def test_money_rounds_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_money(Decimal("2.344")) == Decimal("2.34")

    def test_quantity_keeps_three_places(self):
        assert round_quantity(Decimal("1.23456")) == Decimal("1.235")
        assert str(round_quantity(Decimal("70"))) == "70.000"

    def test_whole_rounding_for_grand_totals(self):
        assert round_whole(Decimal("1179.50")) == Decimal("1180.00")
        assert round_whole(Decimal("1179.49")) == Decimal("1179.00")

    def test_money_equal_within_tolerance(self):
        assert money_equal(Decimal("10.001"), Decimal("10.004"))
        assert not money_equal(Decimal("10.00"), Decimal("10.02"))

    def test_quantity_equal(self):
        assert quantity_equal(Decimal("5.0001"), Decimal("5"))
        assert not quantity_equal(Decimal("5.002"), Decimal("5"))

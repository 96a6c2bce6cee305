"""Production loss percentage and threshold rule."""

from decimal import Decimal

import pytest

from erp_kernel.domain.production import is_loss_exceeded, loss_percent


class TestLossPercent:

    @pytest.mark.parametrize(
        "input_qty, output_qty, expected",
        [
            ("100", "96", "4.00"),
            ("100", "95", "5.00"),
            ("100", "90", "10.00"),
            ("3", "2", "33.33"),
            ("50", "50", "0.00"),
        ],
    )
    def test_percent(self, input_qty, output_qty, expected):
        assert loss_percent(Decimal(input_qty), Decimal(output_qty)) == Decimal(expected)

    def test_zero_input_has_no_loss(self):
        assert loss_percent(Decimal("0"), Decimal("0")) == Decimal("0.00")


class TestThreshold:

    def test_threshold_itself_is_not_exceeded(self):
        assert not is_loss_exceeded(Decimal("5.00"), Decimal("5"))

    def test_above_threshold_is_exceeded(self):
        assert is_loss_exceeded(Decimal("5.01"), Decimal("5"))

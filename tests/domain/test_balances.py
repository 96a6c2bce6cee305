"""Document payment state rule."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_kernel.domain.balances import (
    PAID,
    PARTIAL,
    UNPAID,
    derive_payment_state,
)

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("10000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestDerivePaymentState:

    @pytest.mark.parametrize(
        "grand_total, paid, balance, status",
        [
            ("1180", "0", "1180.00", UNPAID),
            ("1180", "500", "680.00", PARTIAL),
            ("1180", "1180", "0.00", PAID),
            ("1180", "1180.01", "0.00", PAID),
        ],
    )
    def test_three_way_rule(self, grand_total, paid, balance, status):
        state = derive_payment_state(Decimal(grand_total), Decimal(paid))
        assert state.balance_amount == Decimal(balance)
        assert state.payment_status == status

    def test_negative_paid_treated_as_zero(self):
        state = derive_payment_state(Decimal("100"), Decimal("-5"))
        assert state.paid_amount == Decimal("0.00")
        assert state.payment_status == UNPAID

    @given(grand_total=money, paid=money)
    @settings(max_examples=300)
    def test_balance_and_status_always_derived(self, grand_total, paid):
        state = derive_payment_state(grand_total, paid)

        assert state.balance_amount == max(Decimal("0"), grand_total - paid)
        if paid >= grand_total:
            assert state.payment_status == PAID
        elif paid > 0:
            assert state.payment_status == PARTIAL
        else:
            assert state.payment_status == UNPAID


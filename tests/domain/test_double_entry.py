"""
Leg derivation for financial transactions.

Every transaction type must produce legs whose debits equal credits equal
the amount; REPAYMENT splits the counterparty leg into principal and
interest.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from erp_kernel.domain.double_entry import (
    INTEREST_EXPENSE_LEDGER,
    SELF_LEDGER,
    TRANSACTION_TYPES,
    assert_balanced,
    derive_legs,
    split_repayment,
)
from erp_kernel.domain.dtos import LedgerLeg
from erp_kernel.exceptions import (
    RepaymentSplitMismatchError,
    UnbalancedPostingError,
    ValidationError,
)

BANK = "bank-1"
ENTITY = "entity-1"


def _totals(legs):
    return sum(leg.debit for leg in legs), sum(leg.credit for leg in legs)


class TestLegTable:

    @pytest.mark.parametrize(
        "transaction_type, bank_side, party_type",
        [
            ("LOAN_TAKEN", "debit", "LIABILITY"),
            ("LOAN_GIVEN", "credit", "ASSET"),
            ("INVESTMENT_RECEIVED", "debit", "CAPITAL"),
            ("INVESTMENT_MADE", "credit", "ASSET"),
            ("BORROWING", "debit", "LIABILITY"),
        ],
    )
    def test_two_leg_types(self, transaction_type, bank_side, party_type):
        legs = derive_legs(transaction_type, Decimal("1000"), BANK, "BANK", ENTITY)

        bank_leg, party_leg = legs
        assert bank_leg.ledger_id == BANK
        assert party_leg.ledger_id == ENTITY
        assert party_leg.ledger_type == party_type
        assert getattr(bank_leg, bank_side) == Decimal("1000.00")
        assert _totals(legs) == (Decimal("1000.00"), Decimal("1000.00"))

    def test_repayment_with_interest_has_three_legs(self):
        legs = derive_legs(
            "REPAYMENT", Decimal("11000"), BANK, "BANK", ENTITY,
            principal=Decimal("10000"), interest=Decimal("1000"),
        )

        assert legs == (
            LedgerLeg(BANK, "BANK", credit=Decimal("11000.00")),
            LedgerLeg(ENTITY, "LIABILITY", debit=Decimal("10000.00")),
            LedgerLeg(INTEREST_EXPENSE_LEDGER, "EXPENSE", debit=Decimal("1000.00")),
        )

    def test_repayment_without_split_is_all_principal(self):
        legs = derive_legs("REPAYMENT", Decimal("500"), BANK, "BANK", ENTITY)

        assert len(legs) == 2
        assert legs[1].debit == Decimal("500.00")

    def test_missing_entity_posts_to_self(self):
        legs = derive_legs("INVESTMENT_RECEIVED", Decimal("50000"), BANK, "CASH", None)

        assert legs[0].ledger_type == "CASH"
        assert legs[1].ledger_id == SELF_LEDGER

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError, match="Invalid financial transaction type"):
            derive_legs("GIFT", Decimal("10"), BANK, "BANK", ENTITY)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            derive_legs("LOAN_TAKEN", amount, BANK, "BANK", ENTITY)


class TestSplitRepayment:

    def test_mismatch_raises(self):
        with pytest.raises(RepaymentSplitMismatchError) as exc_info:
            split_repayment(Decimal("11000"), Decimal("10000"), Decimal("500"))

        assert exc_info.value.code == "REPAYMENT_SPLIT_MISMATCH"
        assert exc_info.value.amount == Decimal("11000.00")

    def test_difference_within_tolerance_accepted(self):
        principal, interest = split_repayment(Decimal("100.00"), Decimal("90.00"), Decimal("9.99"))

        assert (principal, interest) == (Decimal("90.00"), Decimal("9.99"))

    def test_tolerance_difference_carried_by_principal_leg(self):
        legs = derive_legs(
            "REPAYMENT", Decimal("100.00"), BANK, "BANK", ENTITY,
            principal=Decimal("90.00"), interest=Decimal("9.99"),
        )

        assert legs[1].debit == Decimal("90.01")
        assert _totals(legs) == (Decimal("100.00"), Decimal("100.00"))

    def test_negative_parts_rejected(self):
        with pytest.raises(ValidationError):
            split_repayment(Decimal("100"), Decimal("110"), Decimal("-10"))


class TestAssertBalanced:

    def test_unbalanced_raises(self):
        legs = (
            LedgerLeg(BANK, "BANK", debit=Decimal("100")),
            LedgerLeg(ENTITY, "LIABILITY", credit=Decimal("90")),
        )
        with pytest.raises(UnbalancedPostingError):
            assert_balanced(legs, Decimal("100"))

    def test_balanced_but_wrong_amount_raises(self):
        legs = (
            LedgerLeg(BANK, "BANK", debit=Decimal("90")),
            LedgerLeg(ENTITY, "LIABILITY", credit=Decimal("90")),
        )
        with pytest.raises(UnbalancedPostingError):
            assert_balanced(legs, Decimal("100"))


class TestDoubleEntryProperty:

    @given(
        transaction_type=st.sampled_from(sorted(TRANSACTION_TYPES)),
        amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("999999999"), places=2),
        interest_share=st.decimals(min_value=Decimal("0"), max_value=Decimal("1"), places=2),
    )
    @settings(max_examples=300)
    def test_debits_equal_credits_equal_amount(self, transaction_type, amount, interest_share):
        interest = (amount * interest_share).quantize(Decimal("0.01"))
        principal = amount - interest

        legs = derive_legs(
            transaction_type, amount, BANK, "BANK", ENTITY,
            principal=principal, interest=interest,
        )

        assert_balanced(legs, amount)
        debits, credits = _totals(legs)
        assert debits == credits == amount
        for leg in legs:
            assert (leg.debit == 0) != (leg.credit == 0)

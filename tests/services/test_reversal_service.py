"""
Payment reversal: compensating writes, single reversal, advance protection.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from erp_kernel.domain.dtos import AccountFunding, AdvanceFunding, Allocation, PaymentRequest
from erp_kernel.exceptions import (
    AdvanceConsumedError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ValidationError,
)
from erp_kernel.models.payment import PaymentTransaction
from erp_kernel.selectors.finance_selector import FinanceSelector


def _receipt(kernel, party, account, amount, allocations=()):
    return kernel.payments.create_payment(
        PaymentRequest(
            payment_type="RECEIPT",
            party_id=party.id,
            amount=Decimal(amount),
            funding=AccountFunding(account.id),
            allocations=tuple(Allocation(doc.id, Decimal(a)) for doc, a in allocations),
        )
    )


class TestReversePayment:

    def test_reversal_restores_document_party_and_bank(
        self, kernel, session, customer, bank, make_sales_invoice
    ):
        """Reversing the 500 receipt puts the invoice back at 1180 Unpaid."""
        invoice = make_sales_invoice(customer)
        payment = _receipt(kernel, customer, bank, "500", [(invoice, "500")])

        result = kernel.reversals.reverse_payment(payment.payment_id, "Cheque bounced")

        assert result.voucher_number == "REV-0001"
        assert result.restored_document_ids == (invoice.id,)
        assert result.party_outstanding == Decimal("1180.00")
        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.balance_amount == Decimal("1180.00")
        assert invoice.payment_status == "Unpaid"
        assert customer.outstanding == Decimal("1180.00")
        assert bank.balance == Decimal("0.00")

        row = session.get(PaymentTransaction, payment.payment_id)
        assert row.status == "Reversed"
        assert row.reversed_at is not None
        assert "Reversed: Cheque bounced" in row.remarks

    def test_reversal_appends_mirrored_legs(self, kernel, session, customer, bank, make_sales_invoice):
        invoice = make_sales_invoice(customer)
        payment = _receipt(kernel, customer, bank, "500", [(invoice, "500")])

        result = kernel.reversals.reverse_payment(payment.payment_id, "Wrong customer")

        finance = FinanceSelector(session)
        debit_leg, credit_leg = finance.voucher_legs(result.voucher_number)
        assert (debit_leg.ledger_id, debit_leg.debit_amount) == (str(customer.id), Decimal("500.00"))
        assert (credit_leg.ledger_id, credit_leg.credit_amount) == (str(bank.id), Decimal("500.00"))
        for leg in (debit_leg, credit_leg):
            assert leg.is_reversal
            assert leg.voucher_type == "CONTRA"
            assert leg.reference_id == payment.payment_id
        # Original legs stay in place
        assert len(finance.voucher_legs(payment.voucher_number)) == 2
        assert finance.ledger_totals(str(bank.id)) == (Decimal("500.00"), Decimal("500.00"))

    def test_second_reversal_rejected(self, kernel, customer, bank):
        payment = _receipt(kernel, customer, bank, "100")
        kernel.reversals.reverse_payment(payment.payment_id, "Duplicate")

        with pytest.raises(PaymentAlreadyReversedError):
            kernel.reversals.reverse_payment(payment.payment_id, "Duplicate again")

        assert bank.balance == Decimal("0.00")

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_reason_required(self, kernel, customer, bank, reason):
        payment = _receipt(kernel, customer, bank, "100")

        with pytest.raises(ValidationError):
            kernel.reversals.reverse_payment(payment.payment_id, reason)

    def test_unknown_payment(self, kernel):
        with pytest.raises(PaymentNotFoundError):
            kernel.reversals.reverse_payment(uuid4(), "Typo")


class TestAdvanceReversal:

    @pytest.fixture
    def advance(self, kernel, customer, bank, make_sales_invoice):
        """2000 against a 1180 invoice: 820 advance."""
        invoice = make_sales_invoice(customer)
        return _receipt(kernel, customer, bank, "2000", [(invoice, "1180")])

    @pytest.fixture
    def later_invoice(self, customer, make_sales_invoice):
        return make_sales_invoice(
            customer, quantity=Decimal("1"), rate=Decimal("500"), gst_percent=Decimal("0")
        )

    def test_unspent_advance_can_be_reversed(self, kernel, customer, bank, advance):
        result = kernel.reversals.reverse_payment(advance.payment_id, "Refunded")

        assert result.amount == Decimal("2000.00")
        assert result.party_outstanding == Decimal("1180.00")
        assert customer.outstanding == Decimal("1180.00")
        assert bank.balance == Decimal("0.00")
        assert kernel.advances.available_advances(customer.id) == []

    def test_overpayment_records_applied_outstanding(self, session, advance):
        row = session.get(PaymentTransaction, advance.payment_id)

        # Only the 1180 owed could come off outstanding
        assert row.outstanding_applied == Decimal("1180.00")

    def test_pure_advance_reversal_leaves_outstanding_at_zero(self, kernel, make_party, make_account):
        party = make_party("customer")
        account = make_account()
        payment = _receipt(kernel, party, account, "500")

        result = kernel.reversals.reverse_payment(payment.payment_id, "Deposited twice")

        assert result.party_outstanding == Decimal("0.00")
        assert party.outstanding == Decimal("0.00")
        assert account.balance == Decimal("0.00")

    def test_advance_on_partly_owing_party(self, kernel, make_party, make_account, make_sales_invoice):
        """800 unallocated against 1180 owed takes 800 off; reversal puts 800 back."""
        party = make_party("customer")
        account = make_account()
        make_sales_invoice(party)
        payment = _receipt(kernel, party, account, "800")
        assert party.outstanding == Decimal("380.00")

        kernel.reversals.reverse_payment(payment.payment_id, "Wrong party")

        assert party.outstanding == Decimal("1180.00")

    def test_consumed_advance_blocked(self, kernel, bank, advance, later_invoice):
        kernel.advances.adjust_advance(advance.payment_id, later_invoice.id, Decimal("500"))

        with pytest.raises(AdvanceConsumedError) as exc_info:
            kernel.reversals.reverse_payment(advance.payment_id, "Refunded")

        assert exc_info.value.consumed == Decimal("500.00")
        assert bank.balance == Decimal("2000.00")

    def test_advance_funded_payment_restores_source(
        self, kernel, customer, bank, advance, later_invoice
    ):
        funded = kernel.payments.create_payment(
            PaymentRequest(
                payment_type="RECEIPT",
                party_id=customer.id,
                amount=Decimal("500"),
                funding=AdvanceFunding(advance.payment_id),
                allocations=(Allocation(later_invoice.id, Decimal("500")),),
            )
        )

        kernel.reversals.reverse_payment(funded.payment_id, "Applied to wrong invoice")

        (available,) = kernel.advances.available_advances(customer.id)
        assert available.advance_balance == Decimal("820.00")
        assert later_invoice.payment_status == "Unpaid"
        assert customer.outstanding == Decimal("500.00")
        assert bank.balance == Decimal("2000.00")

        # With the spend undone the advance itself is reversible again
        kernel.reversals.reverse_payment(advance.payment_id, "Refunded")
        assert bank.balance == Decimal("0.00")


class TestReversalRoundTrip:

    @given(amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1180"), places=2))
    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_receipt_then_reversal_is_neutral(
        self, kernel, make_party, make_account, make_sales_invoice, amount
    ):
        party = make_party("customer")
        account = make_account()
        invoice = make_sales_invoice(party)

        payment = _receipt(kernel, party, account, amount, [(invoice, amount)])
        kernel.reversals.reverse_payment(payment.payment_id, "Round trip")

        assert invoice.paid_amount == Decimal("0.00")
        assert invoice.balance_amount == invoice.grand_total
        assert invoice.payment_status == "Unpaid"
        assert party.outstanding == Decimal("1180.00")
        assert account.balance == Decimal("0.00")

    @given(amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2))
    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_overpaying_receipt_then_reversal_is_neutral(
        self, kernel, make_party, make_account, make_sales_invoice, amount
    ):
        party = make_party("customer")
        account = make_account()
        invoice = make_sales_invoice(party)
        allocated = min(amount, Decimal("1180"))

        payment = _receipt(kernel, party, account, amount, [(invoice, allocated)])
        kernel.reversals.reverse_payment(payment.payment_id, "Round trip")

        assert invoice.balance_amount == invoice.grand_total
        assert party.outstanding == Decimal("1180.00")
        assert account.balance == Decimal("0.00")
        assert kernel.advances.available_advances(party.id) == []

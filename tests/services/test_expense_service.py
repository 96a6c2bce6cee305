"""Expense heads and expenses paid from bank / cash accounts."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from erp_kernel.domain.dtos import ExpenseRequest
from erp_kernel.exceptions import (
    AccountNotFoundError,
    ExpenseHeadNotFoundError,
    ValidationError,
)
from erp_kernel.models.account import AccountTransaction
from erp_kernel.models.expense import Expense
from erp_kernel.selectors.finance_selector import FinanceSelector


@pytest.fixture
def rent(kernel):
    return kernel.expenses.create_expense_head("Rent", "Factory shed")


def _expense(head, account, amount, **kwargs):
    return ExpenseRequest(
        expense_head_id=head.id,
        account_id=account.id,
        amount=Decimal(amount),
        **kwargs,
    )


class TestPostExpense:

    def test_expense_reduces_account_and_posts_voucher(self, kernel, session, bank, rent):
        result = kernel.expenses.post_expense(_expense(rent, bank, "15000", payment_mode="Bank"))

        assert result.code == "EXP-0001"
        assert result.account_balance == Decimal("-15000.00")
        assert bank.balance == Decimal("-15000.00")

        debit_leg, credit_leg = FinanceSelector(session).voucher_legs("EXP-0001")
        assert (debit_leg.ledger_id, debit_leg.ledger_type) == (f"EXPENSE-{rent.id}", "EXPENSE")
        assert debit_leg.debit_amount == Decimal("15000.00")
        assert (credit_leg.ledger_id, credit_leg.ledger_type) == (str(bank.id), "BANK")
        assert credit_leg.credit_amount == Decimal("15000.00")
        assert {debit_leg.voucher_type, credit_leg.voucher_type} == {"PAYMENT"}
        assert debit_leg.reference_id == result.expense_id

    def test_description_defaults_to_head_name(self, kernel, session, bank, rent):
        result = kernel.expenses.post_expense(_expense(rent, bank, "500"))

        expense = session.get(Expense, result.expense_id)
        assert expense.description == "Expense for Rent"
        assert expense.payment_mode == "Cash"
        (row,) = session.scalars(
            select(AccountTransaction).where(AccountTransaction.reference_code == result.code)
        ).all()
        assert row.credit == Decimal("500.00")
        assert row.particular == "Expense for Rent"

    def test_same_key_replays_first_expense(self, kernel, bank, rent):
        request = _expense(rent, bank, "800", idempotency_key="exp-2024-0001")

        first = kernel.expenses.post_expense(request)
        second = kernel.expenses.post_expense(request)

        assert second.replayed
        assert second.expense_id == first.expense_id
        assert bank.balance == Decimal("-800.00")

    def test_expense_logged(self, kernel, bank, rent, captured_logs):
        result = kernel.expenses.post_expense(_expense(rent, bank, "120"))

        (record,) = [r for r in captured_logs() if r["message"] == "expense_posted"]
        assert record["code"] == result.code
        assert record["amount"] == "120.00"


class TestExpenseValidation:

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount(self, kernel, bank, rent, amount):
        with pytest.raises(ValidationError):
            kernel.expenses.post_expense(_expense(rent, bank, amount))

        assert bank.balance == Decimal("0")

    @pytest.mark.parametrize("mode", ["Adjustment", "Barter"])
    def test_invalid_mode(self, kernel, bank, rent, mode):
        with pytest.raises(ValidationError):
            kernel.expenses.post_expense(_expense(rent, bank, "10", payment_mode=mode))

    def test_unknown_head(self, kernel, session, bank):
        with pytest.raises(ExpenseHeadNotFoundError):
            kernel.expenses.post_expense(
                ExpenseRequest(expense_head_id=uuid4(), account_id=bank.id, amount=Decimal("10"))
            )

        assert session.scalars(select(Expense)).all() == []

    def test_unknown_account(self, kernel, rent):
        with pytest.raises(AccountNotFoundError):
            kernel.expenses.post_expense(
                ExpenseRequest(expense_head_id=rent.id, account_id=uuid4(), amount=Decimal("10"))
            )

    def test_duplicate_head_name(self, kernel, rent):
        with pytest.raises(ValidationError):
            kernel.expenses.create_expense_head(" Rent ")

    def test_blank_head_name(self, kernel):
        with pytest.raises(ValidationError):
            kernel.expenses.create_expense_head("  ")


class TestAccountHistory:

    def test_history_follows_transaction_date(self, kernel, bank, rent):
        kernel.expenses.post_expense(
            _expense(rent, bank, "300", expense_date=datetime(2024, 5, 2, tzinfo=timezone.utc))
        )
        kernel.expenses.post_expense(
            _expense(rent, bank, "200", expense_date=datetime(2024, 5, 1, tzinfo=timezone.utc))
        )

        history = kernel.accounts.history(bank.id)

        assert [row.credit for row in history] == [Decimal("200.00"), Decimal("300.00")]
        assert history[0].reference_code == "EXP-0002"

    def test_unknown_account(self, kernel):
        with pytest.raises(AccountNotFoundError):
            kernel.accounts.history(uuid4())

"""
Module: erp_kernel.selectors.finance_selector
Responsibility: Read models over bank / cash accounts, the general ledger and
    financial counterparties.
Architecture position: Kernel > Selectors.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from erp_kernel.domain.dtos import AccountBalance, EntityPosition
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import FinancialEntityNotFoundError
from erp_kernel.models.account import Account, AccountTransaction
from erp_kernel.models.expense import Expense
from erp_kernel.models.financial import (
    FinancialEntity,
    FinancialTransaction,
    FinancialTransactionLedger,
    FinancialTransactionType,
)
from erp_kernel.models.general_ledger import GeneralLedgerEntry
from erp_kernel.selectors.base import BaseSelector

_TAKEN_TYPES = (
    FinancialTransactionType.LOAN_TAKEN.value,
    FinancialTransactionType.INVESTMENT_RECEIVED.value,
    FinancialTransactionType.BORROWING.value,
)
_PRINCIPAL_LEDGER_TYPES = ("LIABILITY", "CAPITAL", "ASSET")


class FinanceSelector(BaseSelector):

    def account_balances(self, active_only: bool = True) -> list[AccountBalance]:
        stmt = select(Account).order_by(Account.code)
        if active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return [
            AccountBalance(
                account_id=a.id,
                code=a.code,
                name=a.name,
                account_type=a.account_type,
                balance=round_money(a.balance),
            )
            for a in self.session.execute(stmt).scalars()
        ]

    def balance_by_account_type(self) -> dict[str, Decimal]:
        rows = self.session.execute(
            select(Account.account_type, func.sum(Account.balance))
            .where(Account.is_active.is_(True))
            .group_by(Account.account_type)
        ).all()
        return {account_type: round_money(self.as_decimal(total)) for account_type, total in rows}

    def account_history(self, account_id: UUID) -> list[AccountTransaction]:
        return list(
            self.session.execute(
                select(AccountTransaction)
                .where(AccountTransaction.account_id == account_id)
                .order_by(AccountTransaction.transaction_date, AccountTransaction.created_at)
            ).scalars()
        )

    def voucher_legs(self, voucher_number: str) -> list[GeneralLedgerEntry]:
        return list(
            self.session.execute(
                select(GeneralLedgerEntry)
                .where(GeneralLedgerEntry.voucher_number == voucher_number)
                .order_by(GeneralLedgerEntry.debit_amount.desc())
            ).scalars()
        )

    def legs_for_reference(self, reference_id: UUID, is_reversal: bool | None = None) -> list[GeneralLedgerEntry]:
        stmt = select(GeneralLedgerEntry).where(GeneralLedgerEntry.reference_id == reference_id)
        if is_reversal is not None:
            stmt = stmt.where(GeneralLedgerEntry.is_reversal.is_(is_reversal))
        return list(self.session.execute(stmt).scalars())

    def ledger_totals(self, ledger_id: str) -> tuple[Decimal, Decimal]:
        """(total debit, total credit) of one ledger in the general ledger."""
        debit, credit = self.session.execute(
            select(
                func.coalesce(func.sum(GeneralLedgerEntry.debit_amount), 0),
                func.coalesce(func.sum(GeneralLedgerEntry.credit_amount), 0),
            ).where(GeneralLedgerEntry.ledger_id == ledger_id)
        ).one()
        return round_money(self.as_decimal(debit)), round_money(self.as_decimal(credit))

    def financial_by_idempotency_key(self, key: str) -> FinancialTransaction | None:
        return self.session.execute(
            select(FinancialTransaction).where(FinancialTransaction.idempotency_key == key)
        ).scalar_one_or_none()

    def expense_by_idempotency_key(self, key: str) -> Expense | None:
        return self.session.execute(
            select(Expense).where(Expense.idempotency_key == key)
        ).scalar_one_or_none()

    def entity_position(self, entity_id: UUID) -> EntityPosition:
        """
        Raised, repaid and interest totals of a counterparty.

        Raises:
            FinancialEntityNotFoundError: unknown entity.
        """
        entity = self.session.get(FinancialEntity, entity_id)
        if entity is None:
            raise FinancialEntityNotFoundError(str(entity_id))

        taken = self.session.execute(
            select(func.coalesce(func.sum(FinancialTransaction.amount), 0)).where(
                FinancialTransaction.entity_id == entity_id,
                FinancialTransaction.transaction_type.in_(_TAKEN_TYPES),
            )
        ).scalar_one()

        repaid_gross = self.session.execute(
            select(func.coalesce(func.sum(FinancialTransaction.amount), 0)).where(
                FinancialTransaction.entity_id == entity_id,
                FinancialTransaction.transaction_type == FinancialTransactionType.REPAYMENT.value,
            )
        ).scalar_one()

        # Repayments debit the counterparty with the principal only
        principal_repaid = self.session.execute(
            select(func.coalesce(func.sum(FinancialTransactionLedger.debit), 0))
            .join(
                FinancialTransaction,
                FinancialTransaction.id == FinancialTransactionLedger.transaction_id,
            )
            .where(
                FinancialTransactionLedger.ledger_account_id == str(entity_id),
                FinancialTransactionLedger.ledger_type.in_(_PRINCIPAL_LEDGER_TYPES),
                FinancialTransaction.transaction_type == FinancialTransactionType.REPAYMENT.value,
            )
        ).scalar_one()

        repaid_gross = round_money(self.as_decimal(repaid_gross))
        principal_repaid = round_money(self.as_decimal(principal_repaid))

        return EntityPosition(
            entity_id=entity.id,
            name=entity.name,
            total_taken=round_money(self.as_decimal(taken)),
            total_repaid_gross=repaid_gross,
            principal_repaid=principal_repaid,
            interest_paid=max(round_money(ZERO), repaid_gross - principal_repaid),
        )

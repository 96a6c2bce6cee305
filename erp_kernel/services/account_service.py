"""
AccountService -- sole owner of Account.balance.

Responsibility:
    Moves money in and out of bank and cash accounts and keeps a per-account
    transaction history.

Architecture position:
    Kernel > Services.  Called by PaymentService, ReversalService and
    FinancialPoster.

Invariants enforced:
    - balance changes only through ``balance = balance + delta`` issued as a
      single UPDATE.  Balances may go negative (overdraft, cash credit).
    - Every change appends one AccountTransaction row carrying the balance
      right after the change.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import AccountNotFoundError, ValidationError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.account import Account, AccountTransaction
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.account")


class AccountService(BaseService):

    def __init__(self, session, invalidator: CacheInvalidator | None = None, clock=None, actor_id=None):
        super().__init__(session, clock, actor_id)
        self._invalidator = invalidator or CacheInvalidator()
        self._selector = FinanceSelector(session)

    def get_account(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def history(self, account_id: UUID) -> list[AccountTransaction]:
        """Movements of one account, oldest transaction date first."""
        self.get_account(account_id)
        return self._selector.account_history(account_id)

    def adjust_balance(
        self,
        account_id: UUID,
        delta: Decimal,
        particular: str,
        reference_type: str | None = None,
        reference_code: str | None = None,
        transaction_date: datetime | None = None,
    ) -> Decimal:
        """
        Add delta (positive = money in) to an account balance.

        Returns:
            The balance after the change.

        Raises:
            AccountNotFoundError: unknown account.
            ValidationError: zero delta.
        """
        delta = round_money(delta)
        if delta == ZERO:
            raise ValidationError("Account movement must be non-zero", field="amount")

        result = self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + delta)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AccountNotFoundError(str(account_id))

        account = self.session.execute(
            select(Account).where(Account.id == account_id).execution_options(populate_existing=True)
        ).scalar_one()
        balance = round_money(account.balance)

        self.session.add(
            AccountTransaction(
                account_id=account_id,
                transaction_date=transaction_date or self.clock.now(),
                particular=particular,
                reference_type=reference_type,
                reference_code=reference_code,
                debit=delta if delta > ZERO else ZERO,
                credit=-delta if delta < ZERO else ZERO,
                balance=balance,
            )
        )
        self.session.flush()

        logger.info(
            "account_balance_changed",
            extra={
                "account_id": str(account_id),
                "delta": str(delta),
                "balance": str(balance),
                "reference_code": reference_code,
            },
        )
        self._invalidator.invalidate_account_balances()
        self._invalidator.invalidate_dashboard_kpis()
        return balance

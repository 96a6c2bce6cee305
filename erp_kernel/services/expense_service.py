"""
ExpenseService -- operating expenses paid from a bank or cash account.

Responsibility:
    Maintains expense heads and posts expenses: the expense row, the
    account movement and a balanced EXPENSE / bank voucher, under one
    EXP- code.

Architecture position:
    Kernel > Services.  The account balance moves only through
    AccountService.adjust_balance(); legs go through
    GeneralLedgerWriter.post_voucher().

Invariants enforced:
    - Dr EXPENSE-<head> == Cr <account> == amount.
    - A repeated idempotency_key returns the first expense unchanged.

Failure modes:
    - ValidationError (amount, mode, head name).
    - ExpenseHeadNotFoundError, AccountNotFoundError.
"""

from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.dtos import ExpenseRequest, ExpenseResult, LedgerLeg
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import ExpenseHeadNotFoundError, ValidationError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.expense import Expense, ExpenseHead
from erp_kernel.models.general_ledger import LedgerType, VoucherType
from erp_kernel.models.payment import PaymentMode
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.services.account_service import AccountService
from erp_kernel.services.base import BaseService
from erp_kernel.services.general_ledger import GeneralLedgerWriter
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.summary_service import CacheInvalidator
from erp_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.expense")

EXPENSE_REFERENCE = "EXPENSE"


class ExpenseService(BaseService):
    """
    Usage:
        rent = expenses.create_expense_head("Rent")
        expenses.post_expense(ExpenseRequest(rent.id, bank.id, Decimal("15000"), "Bank"))
        # bank Cr 15000, EXPENSE-<rent> Dr 15000
    """

    def __init__(
        self,
        session,
        accounts: AccountService,
        general_ledger: GeneralLedgerWriter,
        sequences: SequenceService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._accounts = accounts
        self._gl = general_ledger
        self._sequences = sequences
        self._invalidator = invalidator or CacheInvalidator()
        self._selector = FinanceSelector(session)

    def create_expense_head(self, name: str, description: str | None = None) -> ExpenseHead:
        if not name or not name.strip():
            raise ValidationError("Expense head name is required", field="name")
        name = name.strip()
        taken = self.session.execute(
            select(ExpenseHead.id).where(ExpenseHead.name == name)
        ).scalar_one_or_none()
        if taken is not None:
            raise ValidationError(f"Expense head {name} already exists", field="name")

        head = ExpenseHead(name=name, description=description, created_by_id=self.actor_id)
        self.session.add(head)
        self.session.flush()
        logger.info("expense_head_created", extra={"expense_head_id": str(head.id), "name": name})
        return head

    def post_expense(self, request: ExpenseRequest) -> ExpenseResult:
        if validate_idempotency_key(request.idempotency_key):
            existing = self._selector.expense_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                logger.info(
                    "expense_idempotent_replay",
                    extra={
                        "expense_id": str(existing.id),
                        "code": existing.code,
                        "idempotency_key": request.idempotency_key,
                    },
                )
                account = self._accounts.get_account(existing.account_id)
                return ExpenseResult(
                    expense_id=existing.id,
                    code=existing.code,
                    amount=round_money(existing.amount),
                    account_balance=round_money(account.balance),
                    replayed=True,
                )

        with LogContext.bind(idempotency_key=request.idempotency_key):
            return self._post(request)

    def _post(self, request: ExpenseRequest) -> ExpenseResult:
        amount = round_money(request.amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be greater than zero", field="amount")
        if (
            request.payment_mode not in {m.value for m in PaymentMode}
            or request.payment_mode == PaymentMode.ADJUSTMENT.value
        ):
            raise ValidationError(f"Invalid payment mode: {request.payment_mode}", field="payment_mode")

        head = self.session.get(ExpenseHead, request.expense_head_id)
        if head is None:
            raise ExpenseHeadNotFoundError(str(request.expense_head_id))
        account = self._accounts.get_account(request.account_id)

        code = self._sequences.next_code(SequenceService.EXPENSE)
        spent_at = request.expense_date or self.clock.now()
        description = request.description or f"Expense for {head.name}"

        expense = Expense(
            code=code,
            expense_head_id=head.id,
            account_id=account.id,
            amount=amount,
            payment_mode=request.payment_mode,
            expense_date=spent_at,
            description=description,
            reference=request.reference,
            idempotency_key=request.idempotency_key,
            created_by_id=self.actor_id,
        )
        self.session.add(expense)
        self.session.flush()

        balance = self._accounts.adjust_balance(
            account.id,
            -amount,
            particular=description,
            reference_type=EXPENSE_REFERENCE,
            reference_code=code,
            transaction_date=spent_at,
        )
        self._gl.post_voucher(
            voucher_number=code,
            voucher_type=VoucherType.PAYMENT.value,
            legs=(
                LedgerLeg(head.ledger_id, LedgerType.EXPENSE.value, debit=amount),
                LedgerLeg(str(account.id), account.ledger_type, credit=amount),
            ),
            reference_id=expense.id,
            description=description,
            transaction_date=spent_at,
        )

        logger.info(
            "expense_posted",
            extra={
                "expense_id": str(expense.id),
                "code": code,
                "expense_head_id": str(head.id),
                "amount": str(amount),
                "account_balance": str(balance),
            },
        )
        return ExpenseResult(
            expense_id=expense.id,
            code=code,
            amount=amount,
            account_balance=balance,
        )

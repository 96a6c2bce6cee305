"""
FinancialPoster -- double-entry posting of loans, borrowings and investments.

Responsibility:
    Posts a non-trade financial transaction: header row, bank / cash
    account movement, FinancialTransactionLedger legs and general ledger
    legs, all under one FIN- voucher.

Architecture position:
    Kernel > Services.  Leg derivation is the pure table in
    domain/double_entry.py; this service persists what it returns.

Invariants enforced:
    - SUM(debit) == SUM(credit) == amount, checked before anything is
      written (UnbalancedPostingError otherwise).
    - The account moves by +amount when the bank leg is a debit and by
      -amount when it is a credit.
    - A repeated idempotency_key returns the first posting unchanged.

Failure modes:
    - ValidationError (type, amount), RepaymentSplitMismatchError.
    - AccountNotFoundError, FinancialEntityNotFoundError.
    - UnbalancedPostingError.
"""

from uuid import UUID

from erp_kernel.domain.double_entry import assert_balanced, derive_legs, split_repayment
from erp_kernel.domain.dtos import (
    EntityPosition,
    FinancialPostingResult,
    FinancialTransactionRequest,
    LedgerLeg,
)
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import FinancialEntityNotFoundError, ValidationError
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.financial import (
    FinancialEntity,
    FinancialEntityType,
    FinancialTransaction,
    FinancialTransactionLedger,
    FinancialTransactionType,
)
from erp_kernel.models.general_ledger import VoucherType
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.services.account_service import AccountService
from erp_kernel.services.base import BaseService
from erp_kernel.services.general_ledger import GeneralLedgerWriter
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.summary_service import CacheInvalidator
from erp_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.financial")

_BANK_LEDGER_TYPES = frozenset({"BANK", "CASH"})


class FinancialPoster(BaseService):
    """
    Usage:
        result = poster.post_financial_transaction(FinancialTransactionRequest(
            transaction_type="REPAYMENT",
            account_id=bank.id,
            entity_id=lender.id,
            amount=Decimal("11000"),
            principal_amount=Decimal("10000"),
            interest_amount=Decimal("1000"),
        ))
        # bank Cr 11000, lender Dr 10000, EXPENSE-INTEREST Dr 1000
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

    def create_entity(
        self,
        name: str,
        entity_type: str,
        contact: str | None = None,
        email: str | None = None,
    ) -> FinancialEntity:
        if not name or not name.strip():
            raise ValidationError("Entity name is required", field="name")
        if entity_type not in {t.value for t in FinancialEntityType}:
            raise ValidationError(f"Invalid entity type: {entity_type}", field="entity_type")

        entity = FinancialEntity(
            name=name.strip(),
            entity_type=entity_type,
            contact=contact,
            email=email,
            created_by_id=self.actor_id,
        )
        self.session.add(entity)
        self.session.flush()
        logger.info("financial_entity_created", extra={"entity_id": str(entity.id), "name": entity.name})
        return entity

    def entity_position(self, entity_id: UUID) -> EntityPosition:
        return self._selector.entity_position(entity_id)

    def post_financial_transaction(self, request: FinancialTransactionRequest) -> FinancialPostingResult:
        if validate_idempotency_key(request.idempotency_key):
            existing = self._selector.financial_by_idempotency_key(request.idempotency_key)
            if existing is not None:
                logger.info(
                    "financial_idempotent_replay",
                    extra={
                        "transaction_id": str(existing.id),
                        "voucher_number": existing.voucher_number,
                        "idempotency_key": request.idempotency_key,
                    },
                )
                return self._result(existing, replayed=True)

        with LogContext.bind(idempotency_key=request.idempotency_key):
            return self._post(request)

    def _post(self, request: FinancialTransactionRequest) -> FinancialPostingResult:
        transaction_type = request.transaction_type
        amount = round_money(request.amount)
        account = self._accounts.get_account(request.account_id)

        entity = None
        if request.entity_id is not None:
            entity = self.session.get(FinancialEntity, request.entity_id)
            if entity is None:
                raise FinancialEntityNotFoundError(str(request.entity_id))

        legs = derive_legs(
            transaction_type,
            amount,
            bank_ledger_id=str(account.id),
            bank_ledger_type=account.ledger_type,
            party_ledger_id=str(entity.id) if entity else None,
            principal=request.principal_amount,
            interest=request.interest_amount,
        )
        assert_balanced(legs, amount)

        if transaction_type == FinancialTransactionType.REPAYMENT.value:
            principal, interest = split_repayment(
                amount, request.principal_amount, request.interest_amount
            )
        else:
            principal, interest = amount, round_money(ZERO)

        voucher = self._sequences.next_code(SequenceService.FINANCIAL_VOUCHER)
        posted_at = request.transaction_date or self.clock.now()

        transaction = FinancialTransaction(
            voucher_number=voucher,
            transaction_type=transaction_type,
            entity_id=entity.id if entity else None,
            account_id=account.id,
            amount=amount,
            principal_amount=principal,
            interest_amount=interest,
            interest_rate=request.interest_rate,
            tenure_months=request.tenure_months,
            due_date=request.due_date,
            payment_mode=request.payment_mode,
            transaction_date=posted_at,
            reference=request.reference,
            remarks=request.remarks,
            idempotency_key=request.idempotency_key,
            created_by_id=self.actor_id,
            ledger_entries=[
                FinancialTransactionLedger(
                    ledger_account_id=leg.ledger_id,
                    ledger_type=leg.ledger_type,
                    debit=leg.debit,
                    credit=leg.credit,
                    transaction_date=posted_at,
                )
                for leg in legs
            ],
        )
        self.session.add(transaction)
        self.session.flush()

        bank_leg = next(leg for leg in legs if leg.ledger_type in _BANK_LEDGER_TYPES)
        balance = self._accounts.adjust_balance(
            account.id,
            bank_leg.debit - bank_leg.credit,
            particular=f"{transaction_type} {voucher}",
            reference_type=transaction_type,
            reference_code=voucher,
            transaction_date=posted_at,
        )

        self._gl.post_voucher(
            voucher_number=voucher,
            voucher_type=VoucherType.JOURNAL.value,
            legs=legs,
            reference_id=transaction.id,
            description=request.remarks or f"{transaction_type} {voucher}",
            transaction_date=posted_at,
            leg_voucher_types=[
                VoucherType.PAYMENT.value if leg is bank_leg else VoucherType.JOURNAL.value
                for leg in legs
            ],
        )

        logger.info(
            "financial_transaction_posted",
            extra={
                "transaction_id": str(transaction.id),
                "voucher_number": voucher,
                "transaction_type": transaction_type,
                "amount": str(amount),
                "entity_id": str(entity.id) if entity else None,
                "leg_count": len(legs),
            },
        )
        return FinancialPostingResult(
            transaction_id=transaction.id,
            voucher_number=voucher,
            transaction_type=transaction_type,
            amount=amount,
            legs=legs,
            account_balance=balance,
        )

    def _result(self, transaction: FinancialTransaction, replayed: bool) -> FinancialPostingResult:
        account = self._accounts.get_account(transaction.account_id)
        return FinancialPostingResult(
            transaction_id=transaction.id,
            voucher_number=transaction.voucher_number,
            transaction_type=transaction.transaction_type,
            amount=round_money(transaction.amount),
            legs=tuple(
                LedgerLeg(
                    ledger_id=entry.ledger_account_id,
                    ledger_type=entry.ledger_type,
                    debit=round_money(entry.debit),
                    credit=round_money(entry.credit),
                )
                for entry in transaction.ledger_entries
            ),
            account_balance=round_money(account.balance),
            replayed=replayed,
        )

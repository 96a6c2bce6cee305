"""
PaymentService -- receipts from customers and payments to suppliers.

Responsibility:
    Records one money movement with a party, splits it across documents
    (allocations) and keeps any unallocated remainder as an advance.

Architecture position:
    Kernel > Services.  Coordinates DocumentService, PartyLedgerService,
    AccountService, AdvanceService and GeneralLedgerWriter inside the
    caller's transaction.

Invariants enforced:
    - SUM(allocation.amount) + advance_balance == amount at creation.
    - Party outstanding is lowered by the amount exactly once, however many
      documents are allocated.  The floor at zero can cut that short; the
      part actually applied is stored as outstanding_applied.
    - Exactly one funding source.  Account funding moves the account
      balance (+amount for RECEIPT, -amount for PAYMENT); advance funding
      draws the source advance and moves no account.
    - Two GL legs under the payment code as voucher number.
    - A repeated idempotency_key returns the first result unchanged.

Failure modes:
    - ValidationError (amount, allocations, party / document type).
    - AllocationExceedsAmountError, AllocationExceedsBalanceError, both
      raised before anything is written.
    - PartyNotFoundError, DocumentNotFoundError, AccountNotFoundError,
      PaymentNotFoundError.
    - PartyMismatchError, DocumentNotConfirmedError.
    - InsufficientFundsError, NotAnAdvanceError, PaymentAlreadyReversedError
      for advance funding.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from erp_kernel.domain.dtos import (
    AccountFunding,
    AdvanceFunding,
    Allocation,
    LedgerLeg,
    PaymentRequest,
    PaymentResult,
)
from erp_kernel.domain.values import MONEY_TOLERANCE, ZERO, round_money
from erp_kernel.exceptions import (
    AllocationExceedsAmountError,
    AllocationExceedsBalanceError,
    DocumentNotConfirmedError,
    InsufficientFundsError,
    PartyMismatchError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.document import DocumentStatus
from erp_kernel.models.general_ledger import LedgerType
from erp_kernel.models.party import PartyType
from erp_kernel.models.payment import (
    PaymentAllocation,
    PaymentMode,
    PaymentTransaction,
    PaymentType,
    TransactionStatus,
)
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.services.account_service import AccountService
from erp_kernel.services.advance_service import PAYMENT_DOCUMENT_TYPE, AdvanceService
from erp_kernel.services.base import BaseService
from erp_kernel.services.document_service import DocumentService
from erp_kernel.services.general_ledger import GeneralLedgerWriter
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.summary_service import CacheInvalidator
from erp_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.payment")

PAYMENT_PARTY_TYPE = {
    PaymentType.RECEIPT.value: PartyType.CUSTOMER.value,
    PaymentType.PAYMENT.value: PartyType.SUPPLIER.value,
}

PARTY_LEDGER_TYPE = {
    PartyType.CUSTOMER.value: LedgerType.CUSTOMER.value,
    PartyType.SUPPLIER.value: LedgerType.SUPPLIER.value,
}

_PAYMENT_SEQUENCE = {
    PaymentType.RECEIPT.value: SequenceService.RECEIPT,
    PaymentType.PAYMENT.value: SequenceService.PAYMENT,
}

ADVANCE_LEDGER_PREFIX = "ADVANCE-"


def payment_legs(
    payment_type: str,
    amount: Decimal,
    funding_ledger_id: str,
    funding_ledger_type: str,
    party_ledger_id: str,
    party_ledger_type: str,
) -> tuple[LedgerLeg, LedgerLeg]:
    """Receipts debit the funding side and credit the party; payments mirror that."""
    if payment_type == PaymentType.RECEIPT.value:
        return (
            LedgerLeg(funding_ledger_id, funding_ledger_type, debit=amount),
            LedgerLeg(party_ledger_id, party_ledger_type, credit=amount),
        )
    return (
        LedgerLeg(party_ledger_id, party_ledger_type, debit=amount),
        LedgerLeg(funding_ledger_id, funding_ledger_type, credit=amount),
    )


class PaymentService(BaseService):
    """
    Usage:
        result = payments.create_payment(PaymentRequest(
            payment_type="RECEIPT",
            party_id=customer.id,
            amount=Decimal("2000"),
            funding=AccountFunding(bank.id),
            allocations=[Allocation(invoice.id, Decimal("1180"))],
            idempotency_key="rec-2024-0001",
        ))
        result.is_advance, result.advance_balance   # True, Decimal("820.00")
    """

    def __init__(
        self,
        session,
        documents: DocumentService,
        party_ledger: PartyLedgerService,
        accounts: AccountService,
        advances: AdvanceService,
        general_ledger: GeneralLedgerWriter,
        sequences: SequenceService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._documents = documents
        self._parties = party_ledger
        self._accounts = accounts
        self._advances = advances
        self._gl = general_ledger
        self._sequences = sequences
        self._invalidator = invalidator or CacheInvalidator()
        self._selector = PaymentSelector(session)

    def create_payment(self, request: PaymentRequest) -> PaymentResult:
        if validate_idempotency_key(request.idempotency_key):
            existing = self._selector.by_idempotency_key(request.idempotency_key)
            if existing is not None:
                logger.info(
                    "payment_idempotent_replay",
                    extra={
                        "payment_id": str(existing.id),
                        "code": existing.code,
                        "idempotency_key": request.idempotency_key,
                    },
                )
                return self._result(existing, replayed=True)

        with LogContext.bind(idempotency_key=request.idempotency_key):
            return self._create(request)

    def _create(self, request: PaymentRequest) -> PaymentResult:
        payment_type = request.payment_type
        party_type = PAYMENT_PARTY_TYPE.get(payment_type)
        if party_type is None:
            raise ValidationError(f"Unknown payment type: {payment_type}", field="payment_type")

        amount = round_money(request.amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be greater than zero", field="amount")

        party = self._parties.get_party(request.party_id)
        if party.party_type != party_type:
            raise ValidationError(
                f"{payment_type} requires a {party_type}, got {party.party_type}",
                field="party_id",
            )

        allocated_total = self._validate_allocations(request, amount)
        unallocated = amount - allocated_total

        funding = request.funding
        mode = request.mode
        source_advance = None
        account = None

        if isinstance(funding, AccountFunding):
            account = self._accounts.get_account(funding.account_id)
            if mode not in {m.value for m in PaymentMode} or mode == PaymentMode.ADJUSTMENT.value:
                raise ValidationError(f"Invalid payment mode: {mode}", field="mode")
        elif isinstance(funding, AdvanceFunding):
            source_advance = self._advances.lock_advance(funding.advance_payment_id)
            if source_advance.party_id != party.id:
                raise PartyMismatchError(
                    str(party.id), str(source_advance.party_id), f"Advance {source_advance.code}"
                )
            if source_advance.payment_type != payment_type:
                raise ValidationError(
                    f"A {source_advance.payment_type} advance cannot fund a {payment_type}",
                    field="funding",
                )
            if unallocated > ZERO:
                raise ValidationError(
                    "An advance-funded payment must be fully allocated", field="allocations"
                )
            if amount > round_money(source_advance.advance_balance):
                raise InsufficientFundsError(
                    str(source_advance.id), round_money(source_advance.advance_balance), amount
                )
            mode = PaymentMode.ADJUSTMENT.value
        else:
            raise ValidationError("Payment funding is required", field="funding")

        code = self._sequences.next_code(_PAYMENT_SEQUENCE[payment_type])
        reference_type, reference_id, reference_code = self._reference(request.allocations)

        payment = PaymentTransaction(
            code=code,
            payment_type=payment_type,
            party_type=party_type,
            party_id=party.id,
            reference_type=reference_type,
            reference_id=reference_id,
            reference_code=reference_code,
            amount=amount,
            mode=mode,
            account_id=account.id if account else None,
            source_advance_id=source_advance.id if source_advance else None,
            is_advance=unallocated > ZERO,
            advance_balance=unallocated,
            status=TransactionStatus.COMPLETED.value,
            payment_date=request.payment_date or self.clock.now(),
            remarks=request.remarks,
            bank_reference=request.bank_reference,
            idempotency_key=request.idempotency_key,
            voucher_number=code,
            created_by_id=self.actor_id,
        )
        self.session.add(payment)
        self.session.flush()

        with LogContext.bind(payment_id=str(payment.id)):
            for allocation in request.allocations:
                document = self._documents.get_document(allocation.document_id)
                self.session.add(
                    PaymentAllocation(
                        payment_id=payment.id,
                        document_id=document.id,
                        document_number=document.number,
                        amount=round_money(allocation.amount),
                    )
                )
                self._documents.apply_payment(document.id, allocation.amount)

            payment.outstanding_applied = self._parties.settle(party.id, amount)

            if account is not None:
                delta = amount if payment_type == PaymentType.RECEIPT.value else -amount
                self._accounts.adjust_balance(
                    account.id,
                    delta,
                    particular=f"{payment_type} {code} - {party.name}",
                    reference_type=payment_type,
                    reference_code=code,
                    transaction_date=payment.payment_date,
                )
                funding_ledger = (str(account.id), account.ledger_type)
            else:
                self._advances.draw(source_advance, amount)
                funding_ledger = (
                    f"{ADVANCE_LEDGER_PREFIX}{party.id}",
                    PARTY_LEDGER_TYPE[party_type],
                )

            self._gl.post_voucher(
                voucher_number=code,
                voucher_type=payment_type,
                legs=payment_legs(
                    payment_type,
                    amount,
                    funding_ledger[0],
                    funding_ledger[1],
                    str(party.id),
                    PARTY_LEDGER_TYPE[party_type],
                ),
                reference_id=payment.id,
                description=f"{payment_type} {code} - {party.name}",
                transaction_date=payment.payment_date,
            )

            logger.info(
                "payment_created",
                extra={
                    "code": code,
                    "payment_type": payment_type,
                    "party_id": str(party.id),
                    "amount": str(amount),
                    "allocated_total": str(allocated_total),
                    "advance_balance": str(unallocated),
                    "mode": mode,
                },
            )

        self._invalidator.invalidate_dashboard_kpis()
        self._invalidator.invalidate_account_balances()
        return self._result(payment, replayed=False)

    def record_document_payment(
        self,
        document_id: UUID,
        amount: Decimal,
        account_id: UUID,
        mode: str = PaymentMode.BANK.value,
        payment_date: datetime | None = None,
        remarks: str | None = None,
        bank_reference: str | None = None,
        idempotency_key: str | None = None,
    ) -> PaymentResult:
        """Pay (or collect) amount against one document from an account."""
        document = self._documents.get_document(document_id)
        payment_type = next(
            p for p, d in PAYMENT_DOCUMENT_TYPE.items() if d == document.document_type
        )
        return self.create_payment(
            PaymentRequest(
                payment_type=payment_type,
                party_id=document.party_id,
                amount=amount,
                funding=AccountFunding(account_id),
                allocations=(Allocation(document.id, amount),),
                mode=mode,
                payment_date=payment_date,
                remarks=remarks,
                bank_reference=bank_reference,
                idempotency_key=idempotency_key,
            )
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _validate_allocations(self, request: PaymentRequest, amount: Decimal) -> Decimal:
        expected_type = PAYMENT_DOCUMENT_TYPE[request.payment_type]
        # Several allocations to one document are checked against its balance together
        per_document: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for allocation in request.allocations:
            if round_money(allocation.amount) <= ZERO:
                raise ValidationError("Allocation amounts must be positive", field="allocations")
            per_document[allocation.document_id] += round_money(allocation.amount)

        for document_id, allocated in per_document.items():
            document = self._documents.get_document(document_id)
            if document.party_id != request.party_id:
                raise PartyMismatchError(
                    str(request.party_id), str(document.party_id), f"Document {document.number}"
                )
            if document.document_type != expected_type:
                raise ValidationError(
                    f"A {request.payment_type} cannot settle a {document.document_type}",
                    field="allocations",
                )
            if document.status != DocumentStatus.CONFIRMED.value:
                raise DocumentNotConfirmedError(str(document.id), document.status)
            balance = round_money(document.balance_amount)
            if allocated - balance > MONEY_TOLERANCE:
                raise AllocationExceedsBalanceError(str(document.id), balance, allocated)

        allocated_total = round_money(request.allocated_total)
        if allocated_total > amount:
            raise AllocationExceedsAmountError(amount, allocated_total)
        return allocated_total

    def _reference(self, allocations: tuple[Allocation, ...]) -> tuple[str | None, UUID | None, str]:
        if not allocations:
            return None, None, "ADVANCE"
        if len(allocations) > 1:
            return None, None, "MULTIPLE"
        document = self._documents.get_document(allocations[0].document_id)
        return document.document_type, document.id, document.number

    def _result(self, payment: PaymentTransaction, replayed: bool) -> PaymentResult:
        allocated = sum(
            (round_money(a.amount) for a in self._selector.allocations_for(payment.id)), ZERO
        )
        return PaymentResult(
            payment_id=payment.id,
            code=payment.code,
            payment_type=payment.payment_type,
            party_id=payment.party_id,
            amount=round_money(payment.amount),
            allocated_total=round_money(allocated),
            is_advance=payment.is_advance,
            advance_balance=round_money(payment.advance_balance),
            voucher_number=payment.voucher_number,
            replayed=replayed,
        )

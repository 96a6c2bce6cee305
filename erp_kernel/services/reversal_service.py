"""
ReversalService -- undoes a completed receipt or payment.

Responsibility:
    Marks a payment Reversed and writes the compensating changes: document
    paid figures, party outstanding, account balance (or source advance),
    and mirrored general ledger legs.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - Completed -> Reversed happens once.  The payment row is locked and its
      status checked under the lock, so a retried reversal fails cleanly.
    - Nothing is deleted.  The reason is appended to remarks and the GL gets
      new legs with is_reversal=True under a fresh REV- voucher whose
      reference_id is the original payment id.
    - An advance whose money has already been spent elsewhere cannot be
      reversed until those uses are reversed.

Failure modes:
    - PaymentNotFoundError.
    - PaymentAlreadyReversedError.
    - AdvanceConsumedError.
"""

from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.dtos import ReversalResult
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import (
    AdvanceConsumedError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.general_ledger import VoucherType
from erp_kernel.models.payment import PaymentTransaction, PaymentType, TransactionStatus
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.services.account_service import AccountService
from erp_kernel.services.advance_service import AdvanceService
from erp_kernel.services.base import BaseService
from erp_kernel.services.document_service import DocumentService
from erp_kernel.services.general_ledger import GeneralLedgerWriter, reverse_legs
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.reversal")


class ReversalService(BaseService):

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
        self._payments = PaymentSelector(session)
        self._finance = FinanceSelector(session)

    def reverse_payment(self, payment_id: UUID, reason: str) -> ReversalResult:
        """
        Reverse a Completed payment.

        Postconditions:
            - status Reversed, reversed_at set, reason appended to remarks.
            - Every allocated document has the allocation removed.
            - Party outstanding raised by what the payment took off it
              (outstanding_applied), never by more.
            - Funding account moved back, or the source advance refilled.
            - Mirrored GL legs under a REV- voucher.
        """
        if not reason or not reason.strip():
            raise ValidationError("A reversal reason is required", field="reason")

        with LogContext.bind(payment_id=str(payment_id)):
            payment = self.session.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.id == payment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if payment is None:
                raise PaymentNotFoundError(str(payment_id))
            if payment.status == TransactionStatus.REVERSED.value:
                raise PaymentAlreadyReversedError(str(payment_id))

            amount = round_money(payment.amount)
            allocations = self._payments.allocations_for(payment.id)

            if payment.is_advance:
                allocated = sum((round_money(a.amount) for a in allocations), ZERO)
                consumed = (amount - allocated) - round_money(payment.advance_balance)
                if consumed > ZERO:
                    logger.warning(
                        "reversal_blocked_advance_consumed",
                        extra={"code": payment.code, "consumed": str(consumed)},
                    )
                    raise AdvanceConsumedError(str(payment.id), consumed)

            now = self.clock.now()
            payment.status = TransactionStatus.REVERSED.value
            payment.reversed_at = now
            note = f"Reversed: {reason.strip()}"
            payment.remarks = f"{payment.remarks} | {note}" if payment.remarks else note
            self.session.flush()

            restored = []
            for allocation in allocations:
                if allocation.document_id is None:
                    continue
                self._documents.remove_payment(allocation.document_id, allocation.amount)
                restored.append(allocation.document_id)

            outstanding = self._parties.increase(
                payment.party_id, round_money(payment.outstanding_applied)
            )

            if payment.account_id is not None:
                delta = -amount if payment.payment_type == PaymentType.RECEIPT.value else amount
                self._accounts.adjust_balance(
                    payment.account_id,
                    delta,
                    particular=f"Reversal of {payment.code}",
                    reference_type="REVERSAL",
                    reference_code=payment.code,
                    transaction_date=now,
                )
            elif payment.source_advance_id is not None:
                self._advances.restore(payment.source_advance_id, amount)

            voucher = self._sequences.next_code(SequenceService.REVERSAL_VOUCHER)
            original_legs = self._finance.legs_for_reference(payment.id, is_reversal=False)
            self._gl.post_voucher(
                voucher_number=voucher,
                voucher_type=VoucherType.CONTRA.value,
                legs=reverse_legs(original_legs),
                reference_id=payment.id,
                is_reversal=True,
                description=f"Reversal of {payment.code}: {reason.strip()}",
                transaction_date=now,
            )

            logger.info(
                "payment_reversed",
                extra={
                    "code": payment.code,
                    "amount": str(amount),
                    "voucher_number": voucher,
                    "restored_documents": len(restored),
                    "reason": reason,
                },
            )

        self._invalidator.invalidate_dashboard_kpis()
        self._invalidator.invalidate_account_balances()
        return ReversalResult(
            payment_id=payment.id,
            code=payment.code,
            amount=amount,
            voucher_number=voucher,
            restored_document_ids=tuple(restored),
            party_outstanding=outstanding,
        )

"""
AdvanceService -- spends and restores unallocated advance money.

Responsibility:
    Applies part of an advance (the unallocated remainder of an earlier
    receipt or payment) to a later document of the same party, and is the
    only code that changes PaymentTransaction.advance_balance after the
    payment row has been inserted.

Architecture position:
    Kernel > Services.  Used directly by the route layer (adjust_advance)
    and by PaymentService / ReversalService (draw / restore).

Invariants enforced:
    - advance_balance never goes negative.  The advance row is locked, the
      remaining balance checked under the lock, then decremented with
      ``advance_balance = advance_balance - amount``.
    - advance_balance is the single source of truth for remaining credit.
      AdvanceAdjustment rows are history and are never summed.
    - A repeated idempotency_key returns the first adjustment unchanged.

Failure modes:
    - PaymentNotFoundError, DocumentNotFoundError.
    - NotAnAdvanceError, PaymentAlreadyReversedError.
    - PartyMismatchError, ValidationError (document type vs payment type).
    - InsufficientFundsError with available / requested figures.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update

from erp_kernel.domain.dtos import AdjustmentResult, AvailableAdvance
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import (
    InsufficientFundsError,
    NotAnAdvanceError,
    PartyMismatchError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.document import DocumentType
from erp_kernel.models.payment import AdvanceAdjustment, PaymentTransaction, PaymentType
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.document_service import DocumentService
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.summary_service import CacheInvalidator
from erp_kernel.utils.idempotency import validate_idempotency_key

logger = get_logger("services.advance")

PAYMENT_DOCUMENT_TYPE = {
    PaymentType.RECEIPT.value: DocumentType.SALES_INVOICE.value,
    PaymentType.PAYMENT.value: DocumentType.PURCHASE_BILL.value,
}


class AdvanceService(BaseService):
    """
    Usage:
        advances.adjust_advance(advance.id, invoice.id, Decimal("500"))
        advances.available_advances(customer.id)
    """

    def __init__(
        self,
        session,
        documents: DocumentService,
        party_ledger: PartyLedgerService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._documents = documents
        self._parties = party_ledger
        self._invalidator = invalidator or CacheInvalidator()
        self._selector = PaymentSelector(session)

    def available_advances(self, party_id: UUID) -> list[AvailableAdvance]:
        return self._selector.available_advances(party_id)

    def adjustment_history(self, payment_id: UUID) -> list[AdvanceAdjustment]:
        """Where an advance has been spent, oldest adjustment first."""
        return self._selector.adjustments_for(payment_id)

    def adjust_advance(
        self,
        payment_id: UUID,
        document_id: UUID,
        amount: Decimal,
        idempotency_key: str | None = None,
    ) -> AdjustmentResult:
        """
        Apply ``amount`` of an advance to a document.

        Postconditions:
            - advance_balance lowered by amount.
            - Document paid_amount raised by amount, balance / status derived.
            - Party outstanding lowered by amount (floored at zero).
            - One AdvanceAdjustment history row.
        """
        if validate_idempotency_key(idempotency_key):
            existing = self._selector.adjustment_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "advance_adjustment_idempotent_replay",
                    extra={"adjustment_id": str(existing.id), "idempotency_key": idempotency_key},
                )
                return self._result(existing, replayed=True)

        amount = round_money(amount)
        if amount <= ZERO:
            raise ValidationError("Adjustment amount must be positive", field="amount")

        with LogContext.bind(
            payment_id=str(payment_id),
            document_id=str(document_id),
            idempotency_key=idempotency_key,
        ):
            advance = self.lock_advance(payment_id)
            document = self._documents.get_document(document_id)
            if document.party_id != advance.party_id:
                raise PartyMismatchError(
                    str(advance.party_id), str(document.party_id), f"Document {document.number}"
                )
            if document.document_type != PAYMENT_DOCUMENT_TYPE[advance.payment_type]:
                raise ValidationError(
                    f"A {advance.payment_type} advance cannot settle a {document.document_type}",
                    field="document_id",
                )

            remaining = self.draw(advance, amount)
            state = self._documents.apply_payment(document.id, amount)
            self._parties.decrease(advance.party_id, amount)

            adjustment = AdvanceAdjustment(
                payment_id=advance.id,
                document_id=document.id,
                document_number=document.number,
                amount=amount,
                adjusted_at=self.clock.now(),
                idempotency_key=idempotency_key,
            )
            self.session.add(adjustment)
            self.session.flush()

            logger.info(
                "advance_adjusted",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "amount": str(amount),
                    "advance_balance": str(remaining),
                    "document_number": document.number,
                },
            )

        self._invalidator.invalidate_dashboard_kpis()
        return AdjustmentResult(
            adjustment_id=adjustment.id,
            payment_id=advance.id,
            document_id=document.id,
            amount=amount,
            advance_balance=remaining,
            document_balance=state.balance_amount,
            document_payment_status=state.payment_status,
        )

    # -------------------------------------------------------------------------
    # advance_balance writers
    # -------------------------------------------------------------------------

    def lock_advance(self, payment_id: UUID) -> PaymentTransaction:
        """Lock an advance row and check it can still be spent."""
        advance = self.session.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if advance is None:
            raise PaymentNotFoundError(str(payment_id))
        if advance.is_reversed:
            raise PaymentAlreadyReversedError(str(payment_id))
        if not advance.is_advance:
            raise NotAnAdvanceError(str(payment_id))
        return advance

    def draw(self, advance: PaymentTransaction, amount: Decimal) -> Decimal:
        """
        Take amount off a locked advance.  Returns the remaining balance.

        Raises:
            InsufficientFundsError: less than amount is left.
        """
        available = round_money(advance.advance_balance)
        if amount > available:
            logger.warning(
                "advance_insufficient",
                extra={
                    "payment_id": str(advance.id),
                    "available": str(available),
                    "requested": str(amount),
                },
            )
            raise InsufficientFundsError(str(advance.id), available, amount)
        return self._shift(advance.id, -amount)

    def restore(self, payment_id: UUID, amount: Decimal) -> Decimal:
        """Give amount back to an advance, e.g. when a payment it funded is reversed."""
        return self._shift(payment_id, round_money(amount))

    def _shift(self, payment_id: UUID, delta: Decimal) -> Decimal:
        self.session.execute(
            update(PaymentTransaction)
            .where(PaymentTransaction.id == payment_id)
            .values(advance_balance=PaymentTransaction.advance_balance + delta)
            .execution_options(synchronize_session=False)
        )
        advance = self.session.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.id == payment_id)
            .execution_options(populate_existing=True)
        ).scalar_one()
        balance = round_money(advance.advance_balance)
        logger.debug(
            "advance_balance_changed",
            extra={"payment_id": str(payment_id), "delta": str(delta), "advance_balance": str(balance)},
        )
        return balance

    def _result(self, adjustment: AdvanceAdjustment, replayed: bool) -> AdjustmentResult:
        advance = self.session.get(PaymentTransaction, adjustment.payment_id)
        document = (
            self._documents.get_document(adjustment.document_id)
            if adjustment.document_id is not None
            else None
        )
        return AdjustmentResult(
            adjustment_id=adjustment.id,
            payment_id=adjustment.payment_id,
            document_id=adjustment.document_id,
            amount=round_money(adjustment.amount),
            advance_balance=round_money(advance.advance_balance),
            document_balance=round_money(document.balance_amount) if document else ZERO,
            document_payment_status=document.payment_status if document else "",
            replayed=replayed,
        )

"""
DocumentService -- lifecycle and balances of sales invoices and purchase bills.

Responsibility:
    Creates documents with computed GST totals, confirms them (stock
    movements + party outstanding), tracks paid / balance / status as
    payments are applied and removed, and voids unpaid documents with
    compensating stock movements.

Architecture position:
    Kernel > Services.  The only writer of Document.paid_amount,
    balance_amount and payment_status.

Invariants enforced:
    - Draft -> Confirmed -> (Unpaid | Partial | Paid) -> [voided]
    - balance_amount == max(0, grand_total - paid_amount) and payment_status
      follows derive_payment_state() after every change.
    - Confirming a sales invoice checks stock for every line before any
      movement is written.  A shortfall leaves no movement and no party
      change behind.
    - apply_payment / remove_payment never touch the party; the calling
      engine moves party outstanding exactly once per payment.
    - Item rows are locked in (item_type, item_id) order on confirm and
      void, whatever the line order, so two documents over the same items
      cannot deadlock.
    - A line carrying a bell writes no stock movement (the bell left stock
      when it was packed); confirm issues the bell, void releases it.

Failure modes:
    - DocumentNotFoundError, PartyNotFoundError, ItemNotFoundError.
    - DocumentNotDraftError when confirming twice.
    - DocumentNotConfirmedError when paying a Draft.
    - DocumentPaidError when voiding a document with money applied.
    - AllocationExceedsBalanceError when a payment exceeds the balance.
    - InsufficientStockError from confirm_document().
    - BellNotAvailableError when a bell on the invoice is already issued.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.balances import PaymentState, derive_payment_state
from erp_kernel.domain.dtos import DocumentDraft, MovementInput, OutstandingDocument
from erp_kernel.domain.tax import compute_line, compute_totals
from erp_kernel.domain.values import MONEY_TOLERANCE, ZERO, round_money, round_quantity
from erp_kernel.exceptions import (
    AllocationExceedsBalanceError,
    DocumentNotConfirmedError,
    DocumentNotDraftError,
    DocumentNotFoundError,
    DocumentPaidError,
    InsufficientStockError,
    BellItemNotFoundError,
    ItemNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.models.bell import BellItem
from erp_kernel.models.document import (
    Document,
    DocumentLine,
    DocumentStatus,
    DocumentType,
)
from erp_kernel.models.item import ITEM_MODELS, ItemType
from erp_kernel.models.party import PartyType
from erp_kernel.models.stock_movement import MovementType
from erp_kernel.selectors.document_selector import DocumentSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.bell_service import BellService
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedgerService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.document")

DOCUMENT_PARTY_TYPE = {
    DocumentType.SALES_INVOICE.value: PartyType.CUSTOMER.value,
    DocumentType.PURCHASE_BILL.value: PartyType.SUPPLIER.value,
}

_DOCUMENT_SEQUENCE = {
    DocumentType.SALES_INVOICE.value: SequenceService.SALES_INVOICE,
    DocumentType.PURCHASE_BILL.value: SequenceService.PURCHASE_BILL,
}

# (document type, item type) -> movement written on confirm
_CONFIRM_MOVEMENT = {
    (DocumentType.SALES_INVOICE.value, ItemType.FINISHED_PRODUCT.value): MovementType.FG_OUT.value,
    (DocumentType.SALES_INVOICE.value, ItemType.RAW_MATERIAL.value): MovementType.RAW_OUT.value,
    (DocumentType.PURCHASE_BILL.value, ItemType.RAW_MATERIAL.value): MovementType.RAW_IN.value,
    (DocumentType.PURCHASE_BILL.value, ItemType.FINISHED_PRODUCT.value): MovementType.FG_IN.value,
}


def lock_order(line: DocumentLine) -> tuple[str, str]:
    return (line.item_type, str(line.item_id))


class DocumentService(BaseService):
    """
    Usage:
        invoice = documents.create_document(DocumentDraft(
            document_type="SALES_INVOICE",
            party_id=customer.id,
            lines=[DocumentLineDraft("finished_product", fg.id, Decimal("10"),
                                     Decimal("100"), gst_percent=Decimal("18"))],
        ))
        documents.confirm_document(invoice.id)   # grand_total 1180, Unpaid
    """

    def __init__(
        self,
        session,
        stock_ledger: StockLedgerService,
        party_ledger: PartyLedgerService,
        sequences: SequenceService,
        bells: BellService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
        company_state_code: str = "27",
    ):
        super().__init__(session, clock, actor_id)
        self._stock = stock_ledger
        self._parties = party_ledger
        self._sequences = sequences
        self._bells = bells
        self._invalidator = invalidator or CacheInvalidator()
        self._company_state_code = company_state_code
        self._selector = DocumentSelector(session)

    # -------------------------------------------------------------------------
    # Creation and confirmation
    # -------------------------------------------------------------------------

    def create_document(self, draft: DocumentDraft) -> Document:
        """
        Create a Draft document with computed line and header amounts.

        If ``draft.confirm`` is set the document is confirmed in the same
        call (and therefore the same transaction).
        """
        party_type = DOCUMENT_PARTY_TYPE.get(draft.document_type)
        if party_type is None:
            raise ValidationError(
                f"Unknown document type: {draft.document_type}", field="document_type"
            )
        if not draft.lines:
            raise ValidationError("A document needs at least one line", field="lines")

        party = self._parties.get_party(draft.party_id)
        if party.party_type != party_type:
            raise ValidationError(
                f"{draft.document_type} requires a {party_type}, got {party.party_type}",
                field="party_id",
            )

        inter_state = bool(party.state_code) and party.state_code != self._company_state_code

        lines: list[DocumentLine] = []
        amounts = []
        bells_seen: set[UUID] = set()
        for line_no, line in enumerate(draft.lines, start=1):
            self._validate_line(line_no, line)
            if line.bell_item_id is not None:
                self._validate_bell_line(line_no, line, draft.document_type, bells_seen)
            computed = compute_line(
                line.quantity, line.rate, line.discount, line.gst_percent, inter_state
            )
            amounts.append(computed)
            lines.append(
                DocumentLine(
                    line_no=line_no,
                    item_type=line.item_type,
                    raw_material_id=line.item_id if line.item_type == ItemType.RAW_MATERIAL.value else None,
                    finished_product_id=(
                        line.item_id if line.item_type == ItemType.FINISHED_PRODUCT.value else None
                    ),
                    bell_item_id=line.bell_item_id,
                    quantity=round_quantity(line.quantity),
                    rate=round_money(line.rate),
                    discount=round_money(line.discount),
                    gst_percent=round_money(line.gst_percent),
                    amount=computed.amount,
                    taxable_amount=computed.taxable_amount,
                    cgst=computed.cgst,
                    sgst=computed.sgst,
                    igst=computed.igst,
                    total=computed.total,
                )
            )

        totals = compute_totals(amounts)
        state = derive_payment_state(totals.grand_total, ZERO)

        document = Document(
            document_type=draft.document_type,
            number=self._sequences.next_code(_DOCUMENT_SEQUENCE[draft.document_type]),
            party_id=party.id,
            external_number=draft.external_number,
            document_date=draft.document_date or self.clock.now(),
            due_date=draft.due_date,
            status=DocumentStatus.DRAFT.value,
            is_inter_state=inter_state,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            taxable_amount=totals.taxable_amount,
            cgst=totals.cgst,
            sgst=totals.sgst,
            igst=totals.igst,
            total_tax=totals.total_tax,
            round_off=totals.round_off,
            grand_total=totals.grand_total,
            paid_amount=state.paid_amount,
            balance_amount=state.balance_amount,
            payment_status=state.payment_status,
            remarks=draft.remarks,
            created_by_id=self.actor_id,
            lines=lines,
        )
        self.session.add(document)
        self.session.flush()

        logger.info(
            "document_created",
            extra={
                "document_id": str(document.id),
                "number": document.number,
                "document_type": document.document_type,
                "grand_total": str(document.grand_total),
                "line_count": len(lines),
            },
        )

        if draft.confirm:
            return self.confirm_document(document.id)
        return document

    def confirm_document(self, document_id: UUID) -> Document:
        """
        Draft -> Confirmed.

        Postconditions:
            - One stock movement per line without a bell (FG_OUT / RAW_OUT
              for sales, RAW_IN / FG_IN for purchases).
            - Every bell on the invoice is Issued.
            - balance_amount == grand_total, payment_status Unpaid.
            - Party outstanding raised by grand_total.
        """
        document = self._lock(document_id)
        if document.status != DocumentStatus.DRAFT.value:
            raise DocumentNotDraftError(str(document_id), document.status)

        stock_lines = sorted(
            (line for line in document.lines if line.bell_item_id is None), key=lock_order
        )
        bell_lines = sorted(
            (line for line in document.lines if line.bell_item_id is not None),
            key=lambda line: str(line.bell_item_id),
        )

        with LogContext.bind(document_id=str(document_id)):
            if document.document_type == DocumentType.SALES_INVOICE.value:
                self._check_stock(document, stock_lines)
            bells = [
                self._bells.check_available(line.bell_item_id, line.finished_product_id)
                for line in bell_lines
            ]

            for line in stock_lines:
                self._stock.record_movement(
                    MovementInput(
                        item_type=line.item_type,
                        item_id=line.item_id,
                        movement_type=_CONFIRM_MOVEMENT[(document.document_type, line.item_type)],
                        quantity_in=ZERO if document.is_sales else line.quantity,
                        quantity_out=line.quantity if document.is_sales else ZERO,
                        reference_type=document.document_type,
                        reference_id=document.id,
                        reference_code=document.number,
                        movement_date=document.document_date,
                    )
                )
            for bell in bells:
                self._bells.mark_issued(bell)

            state = derive_payment_state(document.grand_total, document.paid_amount)
            document.status = DocumentStatus.CONFIRMED.value
            document.paid_amount = state.paid_amount
            document.balance_amount = state.balance_amount
            document.payment_status = state.payment_status
            self.session.flush()

            self._parties.increase(document.party_id, document.grand_total)

            logger.info(
                "document_confirmed",
                extra={
                    "document_id": str(document.id),
                    "number": document.number,
                    "grand_total": str(document.grand_total),
                },
            )

        self._invalidator.invalidate_dashboard_kpis()
        return document

    def _check_stock(self, document: Document, lines: list[DocumentLine]) -> None:
        """All-lines availability check; raises before anything is written."""
        required: dict[tuple[str, UUID], Decimal] = defaultdict(lambda: ZERO)
        for line in lines:
            required[(line.item_type, line.item_id)] += line.quantity

        for (item_type, item_id), quantity in required.items():
            check = self._stock.validate_availability(item_type, item_id, quantity)
            if not check.is_valid:
                item = self.session.get(ITEM_MODELS[item_type], item_id)
                logger.warning(
                    "document_stock_insufficient",
                    extra={
                        "document_id": str(document.id),
                        "item_id": str(item_id),
                        "current_stock": str(check.current_stock),
                        "requested": str(check.requested_quantity),
                    },
                )
                raise InsufficientStockError(
                    str(item_id),
                    check.current_stock,
                    check.requested_quantity,
                    item.name if item else None,
                )

    def _validate_line(self, line_no: int, line) -> None:
        model = ITEM_MODELS.get(line.item_type)
        if model is None:
            raise ValidationError(f"Line {line_no}: unknown item type {line.item_type}", field="item_type")
        if line.quantity <= ZERO:
            raise ValidationError(f"Line {line_no}: quantity must be positive", field="quantity")
        if line.rate < ZERO:
            raise ValidationError(f"Line {line_no}: rate must be non-negative", field="rate")
        if line.discount < ZERO or line.discount > line.quantity * line.rate:
            raise ValidationError(
                f"Line {line_no}: discount must be between 0 and the line amount",
                field="discount",
            )
        if line.gst_percent < ZERO:
            raise ValidationError(f"Line {line_no}: GST percent must be non-negative", field="gst_percent")
        if self.session.get(model, line.item_id) is None:
            raise ItemNotFoundError(str(line.item_id))

    def _validate_bell_line(
        self, line_no: int, line, document_type: str, seen: set[UUID]
    ) -> None:
        if (
            document_type != DocumentType.SALES_INVOICE.value
            or line.item_type != ItemType.FINISHED_PRODUCT.value
        ):
            raise ValidationError(
                f"Line {line_no}: bells are sold on sales invoice finished product lines only",
                field="bell_item_id",
            )
        if line.bell_item_id in seen:
            raise ValidationError(f"Line {line_no}: bell appears twice", field="bell_item_id")
        seen.add(line.bell_item_id)
        bell = self.session.get(BellItem, line.bell_item_id)
        if bell is None:
            raise BellItemNotFoundError(str(line.bell_item_id))
        if bell.finished_product_id != line.item_id:
            raise ValidationError(
                f"Line {line_no}: bell {bell.code} is packed from another product",
                field="bell_item_id",
            )

    # -------------------------------------------------------------------------
    # Payment tracking
    # -------------------------------------------------------------------------

    def apply_payment(self, document_id: UUID, amount: Decimal) -> PaymentState:
        """
        Add amount to the paid figure of a Confirmed document.

        Raises:
            DocumentNotConfirmedError, AllocationExceedsBalanceError.
        """
        amount = self._positive(amount)
        document = self._lock(document_id)
        if document.status != DocumentStatus.CONFIRMED.value:
            raise DocumentNotConfirmedError(str(document_id), document.status)

        balance = round_money(document.balance_amount)
        if amount - balance > MONEY_TOLERANCE:
            raise AllocationExceedsBalanceError(str(document_id), balance, amount)

        state = self._write_state(document, round_money(document.paid_amount) + amount)
        logger.info(
            "document_payment_applied",
            extra={
                "document_id": str(document_id),
                "amount": str(amount),
                "paid_amount": str(state.paid_amount),
                "balance_amount": str(state.balance_amount),
                "payment_status": state.payment_status,
            },
        )
        return state

    def remove_payment(self, document_id: UUID, amount: Decimal) -> PaymentState:
        """Take amount back off the paid figure; the reversal counterpart of apply_payment()."""
        amount = self._positive(amount)
        document = self._lock(document_id)

        paid = max(ZERO, round_money(document.paid_amount) - amount)
        state = self._write_state(document, paid)
        logger.info(
            "document_payment_removed",
            extra={
                "document_id": str(document_id),
                "amount": str(amount),
                "paid_amount": str(state.paid_amount),
                "balance_amount": str(state.balance_amount),
                "payment_status": state.payment_status,
            },
        )
        return state

    def _write_state(self, document: Document, paid: Decimal) -> PaymentState:
        state = derive_payment_state(document.grand_total, paid)
        document.paid_amount = state.paid_amount
        document.balance_amount = state.balance_amount
        document.payment_status = state.payment_status
        self.session.flush()
        self._invalidator.invalidate_dashboard_kpis()
        return state

    # -------------------------------------------------------------------------
    # Void
    # -------------------------------------------------------------------------

    def void_document(self, document_id: UUID, reason: str | None = None) -> None:
        """
        Delete a document.  A Confirmed document gets compensating stock
        movements and its open balance taken off the party first.

        Raises:
            DocumentPaidError: any amount is applied to the document.
        """
        document = self._lock(document_id)
        number = document.number

        if document.status == DocumentStatus.CONFIRMED.value:
            paid = round_money(document.paid_amount)
            if paid > ZERO:
                raise DocumentPaidError(str(document_id), document.payment_status, paid)

            movement_type = (
                MovementType.SI_REVERSAL.value if document.is_sales else MovementType.PB_REVERSAL.value
            )
            for line in sorted(document.lines, key=lock_order):
                if line.bell_item_id is not None:
                    self._bells.release(line.bell_item_id)
                    continue
                self._stock.record_movement(
                    MovementInput(
                        item_type=line.item_type,
                        item_id=line.item_id,
                        movement_type=movement_type,
                        quantity_in=line.quantity if document.is_sales else ZERO,
                        quantity_out=ZERO if document.is_sales else line.quantity,
                        reference_type=document.document_type,
                        reference_id=document.id,
                        reference_code=number,
                        reason=reason or f"Void {number}",
                        allow_negative=True,
                    )
                )

            balance = round_money(document.balance_amount)
            if balance > ZERO:
                self._parties.decrease(document.party_id, balance)

        status = document.status
        self.session.delete(document)
        self.session.flush()

        logger.info(
            "document_voided",
            extra={
                "document_id": str(document_id),
                "number": number,
                "status": status,
                "reason": reason,
            },
        )
        self._invalidator.invalidate_dashboard_kpis()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def open_documents(self, party_id: UUID) -> list[OutstandingDocument]:
        """Confirmed, not fully paid documents of a party, oldest first; the allocation targets."""
        return self._selector.outstanding_documents(party_id)

    def get_document(self, document_id: UUID) -> Document:
        document = self.session.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def _lock(self, document_id: UUID) -> Document:
        document = self.session.execute(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        amount = round_money(amount)
        if amount <= ZERO:
            raise ValidationError("Amount must be positive", field="amount")
        return amount

"""
Module: erp_kernel.selectors.document_selector
Responsibility: Read models over sales invoices and purchase bills: open
    documents per party, and the per-party balance sums used to recompute
    party outstanding.
Architecture position: Kernel > Selectors.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from erp_kernel.domain.dtos import OutstandingDocument
from erp_kernel.domain.values import round_money
from erp_kernel.models.document import Document, DocumentStatus, DocumentType, PaymentStatus
from erp_kernel.selectors.base import BaseSelector

PARTY_DOCUMENT_TYPE = {
    "customer": DocumentType.SALES_INVOICE.value,
    "supplier": DocumentType.PURCHASE_BILL.value,
}


class DocumentSelector(BaseSelector):

    def outstanding_documents(self, party_id: UUID) -> list[OutstandingDocument]:
        """Confirmed documents of a party that are not fully paid, oldest first."""
        rows = self.session.execute(
            select(Document)
            .where(
                Document.party_id == party_id,
                Document.status == DocumentStatus.CONFIRMED.value,
                Document.payment_status != PaymentStatus.PAID.value,
            )
            .order_by(Document.document_date, Document.number)
        ).scalars()

        return [
            OutstandingDocument(
                document_id=d.id,
                document_type=d.document_type,
                number=d.number,
                document_date=d.document_date,
                grand_total=round_money(d.grand_total),
                paid_amount=round_money(d.paid_amount),
                balance_amount=round_money(d.balance_amount),
                payment_status=d.payment_status,
            )
            for d in rows
        ]

    def confirmed_balance(self, party_id: UUID) -> Decimal:
        """Sum of balance_amount over a party's Confirmed documents."""
        total = self.session.execute(
            select(func.coalesce(func.sum(Document.balance_amount), 0)).where(
                Document.party_id == party_id,
                Document.status == DocumentStatus.CONFIRMED.value,
            )
        ).scalar_one()
        return round_money(self.as_decimal(total))

    def confirmed_balance_by_party(self, document_type: str) -> dict[UUID, Decimal]:
        rows = self.session.execute(
            select(Document.party_id, func.sum(Document.balance_amount))
            .where(
                Document.document_type == document_type,
                Document.status == DocumentStatus.CONFIRMED.value,
            )
            .group_by(Document.party_id)
        ).all()
        return {party_id: round_money(self.as_decimal(total)) for party_id, total in rows}

    def pending_count(self, document_type: str) -> int:
        """Confirmed documents of a type that still have a balance."""
        return self.session.execute(
            select(func.count(Document.id)).where(
                Document.document_type == document_type,
                Document.status == DocumentStatus.CONFIRMED.value,
                Document.payment_status != PaymentStatus.PAID.value,
            )
        ).scalar_one()

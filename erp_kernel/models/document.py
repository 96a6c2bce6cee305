"""
Module: erp_kernel.models.document
Responsibility: ORM persistence for trade documents (sales invoices, purchase
    bills) and their lines.
Architecture position: Kernel > Models.  May import from db/ and sibling
    models only.

Invariants enforced:
    - balance_amount == max(0, grand_total - paid_amount).
    - payment_status is derived: Paid when paid_amount >= grand_total,
      Partial when 0 < paid_amount < grand_total, Unpaid otherwise.
    - paid_amount, balance_amount and payment_status have exactly one writer,
      services/document_service.py.
    - A voided document is deleted after its compensating stock movements and
      party outstanding decrease have been written.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, TrackedBase, UUIDString


class DocumentType(str, Enum):
    SALES_INVOICE = "SALES_INVOICE"
    PURCHASE_BILL = "PURCHASE_BILL"


class DocumentStatus(str, Enum):
    DRAFT = "Draft"
    CONFIRMED = "Confirmed"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class Document(TrackedBase):
    """Header of a sales invoice or purchase bill."""

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("document_type", "number", name="uq_document_number"),
        Index("idx_document_party_status", "party_id", "status"),
        Index("idx_document_payment_status", "payment_status"),
    )

    document_type: Mapped[DocumentType] = mapped_column(String(20), nullable=False)
    number: Mapped[str] = mapped_column(String(50), nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    # Supplier's own bill number for purchase bills
    external_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    document_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DocumentStatus.DRAFT,
    )

    is_inter_state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    igst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    round_off: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    remarks: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.line_no",
    )

    @property
    def is_sales(self) -> bool:
        return self.document_type == DocumentType.SALES_INVOICE

    def __repr__(self) -> str:
        return (
            f"<Document {self.number} {self.status} "
            f"total={self.grand_total} paid={self.paid_amount}>"
        )


class DocumentLine(Base):
    """One item line on a document; amounts are computed at creation."""

    __tablename__ = "document_lines"

    __table_args__ = (Index("idx_document_line_document", "document_id"),)

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    raw_material_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("raw_materials.id"),
        nullable=True,
    )
    finished_product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("finished_products.id"),
        nullable=True,
    )
    # A sales line may sell one packed bell of the finished product
    bell_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("bell_items.id"),
        nullable=True,
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    gst_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    sgst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    igst: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(back_populates="lines")

    @property
    def item_id(self) -> UUID:
        return self.raw_material_id or self.finished_product_id

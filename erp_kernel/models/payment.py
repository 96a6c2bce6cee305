"""
Module: erp_kernel.models.payment
Responsibility: ORM persistence for receipts / payments, their per-document
    allocations, and the advance adjustment history.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - SUM(allocation.amount) + advance_balance (at creation) == amount.
    - advance_balance is the single source of truth for unallocated advance
      money.  advance_adjustments is history only and is never summed to
      derive a balance.
    - status moves Completed -> Reversed exactly once.
    - idempotency_key is unique when present.
    - outstanding_applied <= amount; it is what creation took off party
      outstanding and what a reversal puts back.

Audit relevance:
    Reversed payments are kept (never deleted); their remarks carry the
    reversal reason and the general ledger carries compensating legs.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, TrackedBase, UUIDString


class PaymentType(str, Enum):
    RECEIPT = "RECEIPT"
    PAYMENT = "PAYMENT"


class PaymentMode(str, Enum):
    CASH = "Cash"
    BANK = "Bank"
    CHEQUE = "Cheque"
    UPI = "UPI"
    ADJUSTMENT = "Adjustment"


class TransactionStatus(str, Enum):
    COMPLETED = "Completed"
    REVERSED = "Reversed"


class PaymentTransaction(TrackedBase):
    """A receipt from a customer or a payment to a supplier."""

    __tablename__ = "payment_transactions"

    __table_args__ = (
        UniqueConstraint("code", name="uq_payment_code"),
        UniqueConstraint("idempotency_key", name="uq_payment_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint("advance_balance >= 0", name="ck_payment_advance_non_negative"),
        CheckConstraint("outstanding_applied >= 0", name="ck_payment_outstanding_applied_non_negative"),
        Index("idx_payment_party", "party_id", "status"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(String(20), nullable=False)
    party_type: Mapped[str] = mapped_column(String(20), nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    # Single-document payments point at the document; otherwise the code
    # is MULTIPLE or ADVANCE and reference_id is null.
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reference_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(String(20), nullable=False)

    # Exactly one funding source: a bank/cash account or an earlier advance
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )
    source_advance_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payment_transactions.id"),
        nullable=True,
    )

    is_advance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    advance_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Part of amount that actually lowered party outstanding (the floor may
    # have cut it short).  A reversal raises outstanding by this figure.
    outstanding_applied: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    remarks: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    bank_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    voucher_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    allocations: Mapped[list["PaymentAllocation"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    @property
    def is_reversed(self) -> bool:
        return self.status == TransactionStatus.REVERSED

    def __repr__(self) -> str:
        return f"<PaymentTransaction {self.code} {self.payment_type} {self.amount} {self.status}>"


class PaymentAllocation(Base):
    """Portion of a payment applied to one document."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_allocation_amount_positive"),
        Index("idx_allocation_payment", "payment_id"),
        Index("idx_allocation_document", "document_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Nulled if a fully reversed document is later voided
    document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped[PaymentTransaction] = relationship(back_populates="allocations")


class AdvanceAdjustment(Base):
    """History row: part of an advance applied to a later document."""

    __tablename__ = "advance_adjustments"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_advance_adjustment_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_adjustment_amount_positive"),
        Index("idx_adjustment_payment", "payment_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payment_transactions.id"),
        nullable=False,
    )
    document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

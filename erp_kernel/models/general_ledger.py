"""
Module: erp_kernel.models.general_ledger
Responsibility: Flat audit trail of voucher legs written by the payment,
    reversal and financial posting engines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rows are append-only.  A reversal never edits the original legs; it
      appends legs with is_reversal=True and reference_id pointing at the
      reversed transaction.
    - Within one voucher_number, SUM(debit_amount) == SUM(credit_amount).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base, UUIDString


class VoucherType(str, Enum):
    RECEIPT = "RECEIPT"
    PAYMENT = "PAYMENT"
    JOURNAL = "JOURNAL"
    CONTRA = "CONTRA"


class LedgerType(str, Enum):
    BANK = "BANK"
    CASH = "CASH"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    LIABILITY = "LIABILITY"
    ASSET = "ASSET"
    CAPITAL = "CAPITAL"
    EXPENSE = "EXPENSE"


class GeneralLedgerEntry(Base):
    """One debit or credit leg under a voucher."""

    __tablename__ = "general_ledger"

    __table_args__ = (
        Index("idx_general_ledger_ledger", "ledger_id"),
        Index("idx_general_ledger_voucher", "voucher_number"),
        Index("idx_general_ledger_reference", "reference_id"),
    )

    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    voucher_number: Mapped[str] = mapped_column(String(50), nullable=False)
    voucher_type: Mapped[VoucherType] = mapped_column(String(20), nullable=False)

    # Party id, account id, entity id or a fixed ledger name
    ledger_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ledger_type: Mapped[LedgerType] = mapped_column(String(20), nullable=False)

    debit_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_reversal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<GeneralLedgerEntry {self.voucher_number} {self.ledger_type} "
            f"Dr={self.debit_amount} Cr={self.credit_amount}>"
        )

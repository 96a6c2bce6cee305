"""
Module: erp_kernel.models.financial
Responsibility: ORM persistence for non-trade money movements: loans,
    borrowings, investments and repayments with their counterparties.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Every FinancialTransaction has ledger legs whose debits equal credits
      equal amount (checked by services/financial_poster.py before insert).
    - For REPAYMENT, principal_amount + interest_amount == amount within
      0.01.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
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


class FinancialEntityType(str, Enum):
    LENDER = "Lender"
    BORROWER = "Borrower"
    INVESTOR = "Investor"
    OTHER = "Other"


class FinancialTransactionType(str, Enum):
    LOAN_TAKEN = "LOAN_TAKEN"
    LOAN_GIVEN = "LOAN_GIVEN"
    INVESTMENT_RECEIVED = "INVESTMENT_RECEIVED"
    INVESTMENT_MADE = "INVESTMENT_MADE"
    BORROWING = "BORROWING"
    REPAYMENT = "REPAYMENT"


class FinancialEntity(TrackedBase):
    """Lender, borrower or investor counterparty."""

    __tablename__ = "financial_entities"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[FinancialEntityType] = mapped_column(String(20), nullable=False)
    contact: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<FinancialEntity {self.name} ({self.entity_type})>"


class FinancialTransaction(TrackedBase):
    """Header of one financial posting."""

    __tablename__ = "financial_transactions"

    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_financial_voucher_number"),
        UniqueConstraint("idempotency_key", name="uq_financial_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_financial_amount_positive"),
        Index("idx_financial_transaction_entity", "entity_id"),
        Index("idx_financial_transaction_type", "transaction_type"),
    )

    voucher_number: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_type: Mapped[FinancialTransactionType] = mapped_column(String(30), nullable=False)

    # Null for self investment
    entity_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("financial_entities.id"),
        nullable=True,
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    principal_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    interest_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    interest_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    tenure_months: Mapped[Decimal | None] = mapped_column(nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="Bank")
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    remarks: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    ledger_entries: Mapped[list["FinancialTransactionLedger"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
    )


class FinancialTransactionLedger(Base):
    """One debit or credit leg of a financial transaction."""

    __tablename__ = "financial_transaction_ledger"

    __table_args__ = (Index("idx_financial_ledger_account", "ledger_account_id"),)

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Entity id, account id or a fixed ledger name such as EXPENSE-INTEREST
    ledger_account_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ledger_type: Mapped[str] = mapped_column(String(20), nullable=False)

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    transaction: Mapped[FinancialTransaction] = relationship(back_populates="ledger_entries")

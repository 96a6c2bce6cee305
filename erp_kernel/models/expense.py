"""
Module: erp_kernel.models.expense
Responsibility: Operating expenses paid out of a bank or cash account,
    classified by expense head.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - An expense row exists only together with the account movement and
      the balanced EXPENSE / bank voucher written in the same transaction.
    - idempotency_key is unique when present.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase, UUIDString


class ExpenseHead(TrackedBase):
    """Rent, electricity, freight, ..."""

    __tablename__ = "expense_heads"

    __table_args__ = (UniqueConstraint("name", name="uq_expense_head_name"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def ledger_id(self) -> str:
        return f"EXPENSE-{self.id}"


class Expense(TrackedBase):
    __tablename__ = "expenses"

    __table_args__ = (
        UniqueConstraint("code", name="uq_expense_code"),
        UniqueConstraint("idempotency_key", name="uq_expense_idempotency_key"),
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("idx_expense_head", "expense_head_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    expense_head_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("expense_heads.id"),
        nullable=False,
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="Cash")
    expense_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<Expense {self.code} {self.amount}>"

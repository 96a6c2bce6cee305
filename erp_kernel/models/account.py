"""
Module: erp_kernel.models.account
Responsibility: Bank and cash accounts that receipts, payments and financial
    transactions move money through.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - balance has exactly one writer, services/account_service.py, which only
      issues ``balance = balance + delta``.  The balance may go negative
      (overdraft / cash-credit accounts); no floor is applied.
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
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base, TrackedBase, UUIDString


class AccountType(str, Enum):
    BANK = "Bank"
    CASH = "Cash"


class Account(TrackedBase):
    """A bank or cash account."""

    __tablename__ = "accounts"

    __table_args__ = (UniqueConstraint("code", name="uq_account_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    account_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def ledger_type(self) -> str:
        return "BANK" if self.account_type == AccountType.BANK else "CASH"

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name} balance={self.balance}>"


class AccountTransaction(Base):
    """
    Per-account movement history.

    balance is the account balance right after this movement, read back
    from the row after the atomic update.  History only; Account.balance
    stays the figure of record.
    """

    __tablename__ = "account_transactions"

    __table_args__ = (Index("idx_account_transaction_account", "account_id"),)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    particular: Mapped[str] = mapped_column(String(500), nullable=False)
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

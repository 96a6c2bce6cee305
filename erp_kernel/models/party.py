"""
Module: erp_kernel.models.party
Responsibility: ORM persistence for customers and suppliers and their running
    outstanding balance.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - outstanding is a single non-negative figure: receivable for customers,
      payable for suppliers.
    - outstanding has exactly one writer, services/party_ledger.py, which
      only ever issues ``outstanding = CASE ... outstanding + delta ...``.
      recalculate_from_source() is the sanctioned drift correction.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """A customer or supplier the business trades with."""

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("code", name="uq_party_code"),
        Index("idx_party_type", "party_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    party_type: Mapped[PartyType] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)

    # Two-letter state code; compared with the company state for GST split
    state_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    outstanding: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Party {self.code}: {self.name} ({self.party_type})>"

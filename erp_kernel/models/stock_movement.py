"""
Module: erp_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/ and sibling
    item models only.

Invariants enforced:
    - stock(item) == SUM(quantity_in) - SUM(quantity_out) over this table.
      No other column anywhere in the schema is a source of truth for stock.
    - Exactly one of raw_material_id / finished_product_id is set
      (ck_movement_single_item).
    - quantity_in and quantity_out are non-negative and never both non-zero.
    - Rows are never updated or deleted.  Cancellations append compensating
      rows (SI_REVERSAL, PB_REVERSAL).
    - running_balance is informational: the balance right after this row at
      insert time.  It is never read back as a stock figure.

Failure modes:
    - IntegrityError if a CHECK constraint is violated; the stock ledger
      service validates first and raises typed errors instead.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base, UUIDString


class MovementType(str, Enum):
    """Why stock moved."""

    RAW_IN = "RAW_IN"
    RAW_OUT = "RAW_OUT"
    FG_IN = "FG_IN"
    FG_OUT = "FG_OUT"
    ADJUSTMENT = "ADJUSTMENT"
    SI_REVERSAL = "SI_REVERSAL"
    PB_REVERSAL = "PB_REVERSAL"
    SAMPLE_OUT = "SAMPLE_OUT"


class StockMovement(Base):
    """One append-only stock movement row."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity_in >= 0", name="ck_movement_qty_in_non_negative"),
        CheckConstraint("quantity_out >= 0", name="ck_movement_qty_out_non_negative"),
        CheckConstraint(
            "(raw_material_id IS NULL) <> (finished_product_id IS NULL)",
            name="ck_movement_single_item",
        ),
        Index("idx_movement_raw_material", "raw_material_id"),
        Index("idx_movement_finished_product", "finished_product_id"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_seq", "seq", unique=True),
    )

    # Monotonic insertion order, allocated from the sequence service
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

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

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    quantity_in: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    quantity_out: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    running_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # What caused the movement (document, production batch, manual adjustment)
    reference_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reference_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    movement_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def item_id(self) -> UUID:
        return self.raw_material_id or self.finished_product_id

    @property
    def net_quantity(self) -> Decimal:
        return self.quantity_in - self.quantity_out

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.seq} {self.movement_type} "
            f"in={self.quantity_in} out={self.quantity_out}>"
        )

"""
Module: erp_kernel.models.bell
Responsibility: Bells: finished product packed into individually coded
    bundles, grouped in the batch they were packed in.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Packing a batch writes one FG_OUT per finished product for the net
      weight of its bells; deleting the batch writes the matching FG_IN.
      Bell rows never hold stock themselves.
    - status moves Available -> Issued when a confirmed sales invoice line
      carries the bell, and back to Available when that invoice is voided.
      Deleted is final.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString


class BellStatus(str, Enum):
    AVAILABLE = "Available"
    ISSUED = "Issued"
    DELETED = "Deleted"


class BellBatchStatus(str, Enum):
    ACTIVE = "Active"
    DELETED = "Deleted"


class BellBatch(TrackedBase):
    __tablename__ = "bell_batches"

    __table_args__ = (UniqueConstraint("code", name="uq_bell_batch_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    # Sum of item net weights, i.e. what left finished goods stock
    total_weight: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[BellBatchStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BellBatchStatus.ACTIVE,
    )

    items: Mapped[list["BellItem"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BellItem.code",
    )


class BellItem(TrackedBase):
    __tablename__ = "bell_items"

    __table_args__ = (
        UniqueConstraint("code", name="uq_bell_item_code"),
        CheckConstraint("gross_weight > 0", name="ck_bell_gross_weight_positive"),
        CheckConstraint("net_weight > 0", name="ck_bell_net_weight_positive"),
        Index("idx_bell_item_batch", "batch_id"),
        Index("idx_bell_item_status", "status"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bell_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    finished_product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("finished_products.id"),
        nullable=False,
    )

    gsm: Mapped[str] = mapped_column(String(20), nullable=False)
    size: Mapped[str] = mapped_column(String(50), nullable=False)
    piece_count: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    # gross_weight is what the customer receives; weight_loss is in grams
    gross_weight: Mapped[Decimal] = mapped_column(nullable=False)
    weight_loss: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_weight: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[BellStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BellStatus.AVAILABLE,
    )

    batch: Mapped[BellBatch] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<BellItem {self.code} {self.net_weight} {self.status}>"

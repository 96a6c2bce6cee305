"""
Module: erp_kernel.models.production
Responsibility: Production batches that consume raw material and yield
    finished products.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Starting a batch writes one RAW_OUT movement per input; completing it
      writes one FG_IN movement per output.  The batch rows never hold stock.
    - Cancelling an in-progress batch writes one RAW_IN per RAW_OUT it
      issued.  Completed and cancelled are final.
    - loss_percent = (input - output) / input * 100, rounded to 2 places.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import Base, TrackedBase, UUIDString


class BatchStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ProductionBatch(TrackedBase):
    __tablename__ = "production_batches"

    __table_args__ = (
        UniqueConstraint("code", name="uq_production_batch_code"),
        Index("idx_production_batch_status", "status"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[BatchStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BatchStatus.IN_PROGRESS,
    )

    machine: Mapped[str | None] = mapped_column(String(100), nullable=True)

    allocation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    input_quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    output_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    loss_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    loss_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    loss_exceeded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    remarks: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    inputs: Mapped[list["ProductionBatchInput"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
    )
    outputs: Mapped[list["ProductionBatchOutput"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
    )


class ProductionBatchInput(Base):
    __tablename__ = "production_batch_inputs"

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    raw_material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("raw_materials.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    batch: Mapped[ProductionBatch] = relationship(back_populates="inputs")


class ProductionBatchOutput(Base):
    __tablename__ = "production_batch_outputs"

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    finished_product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("finished_products.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    batch: Mapped[ProductionBatch] = relationship(back_populates="outputs")

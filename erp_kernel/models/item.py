"""
Module: erp_kernel.models.item
Responsibility: Master rows for stocked items (raw materials and finished
    products).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Items carry NO stock column.  Stock is always derived from
      stock_movements (see services/stock_ledger.py).
    - The item row doubles as the per-item lock: every OUT movement locks it
      with SELECT ... FOR UPDATE before checking availability.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class ItemType(str, Enum):
    """Which master table a movement or line refers to."""

    RAW_MATERIAL = "raw_material"
    FINISHED_PRODUCT = "finished_product"


class RawMaterial(TrackedBase):
    """A purchased input consumed by production."""

    __tablename__ = "raw_materials"

    __table_args__ = (UniqueConstraint("code", name="uq_raw_material_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="kg")
    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Low-stock threshold used by the stock summary
    reorder_level: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<RawMaterial {self.code}: {self.name}>"


class FinishedProduct(TrackedBase):
    """A manufactured or traded item sold on sales invoices."""

    __tablename__ = "finished_products"

    __table_args__ = (UniqueConstraint("code", name="uq_finished_product_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    hsn_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    reorder_level: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<FinishedProduct {self.code}: {self.name}>"


ITEM_MODELS: dict[str, type[RawMaterial] | type[FinishedProduct]] = {
    ItemType.RAW_MATERIAL.value: RawMaterial,
    ItemType.FINISHED_PRODUCT.value: FinishedProduct,
}

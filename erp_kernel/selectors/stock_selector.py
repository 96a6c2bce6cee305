"""
Module: erp_kernel.selectors.stock_selector
Responsibility: Stock figures derived from the movement ledger.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - stock(item) = SUM(quantity_in) - SUM(quantity_out).  No stored column
      is ever read as stock.
    - The grouped query used for "all items" and the per-item query agree
      exactly (both sum the same rows).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from erp_kernel.domain.dtos import ItemStock, MovementRecord
from erp_kernel.domain.values import ZERO, round_quantity
from erp_kernel.models.bell import BellItem, BellStatus
from erp_kernel.models.item import ITEM_MODELS, ItemType
from erp_kernel.models.production import BatchStatus, ProductionBatch, ProductionBatchInput
from erp_kernel.models.stock_movement import StockMovement
from erp_kernel.selectors.base import BaseSelector


def item_column(item_type: str):
    """The movement FK column that holds ids of the given item type."""
    if item_type == ItemType.RAW_MATERIAL.value:
        return StockMovement.raw_material_id
    return StockMovement.finished_product_id


class StockSelector(BaseSelector):
    """Read-side queries over stock_movements."""

    def current_stock(self, item_type: str, item_id: UUID) -> Decimal:
        column = item_column(item_type)
        total = self.session.execute(
            select(
                func.coalesce(
                    func.sum(StockMovement.quantity_in - StockMovement.quantity_out),
                    0,
                )
            ).where(
                StockMovement.item_type == item_type,
                column == item_id,
            )
        ).scalar_one()
        return round_quantity(self.as_decimal(total))

    def stock_by_item(self, item_type: str) -> dict[UUID, Decimal]:
        """Stock of every item of a type that has at least one movement."""
        column = item_column(item_type)
        rows = self.session.execute(
            select(
                column,
                func.sum(StockMovement.quantity_in - StockMovement.quantity_out),
            )
            .where(StockMovement.item_type == item_type)
            .group_by(column)
        ).all()
        return {item_id: round_quantity(self.as_decimal(total)) for item_id, total in rows}

    def items_with_stock(self, item_type: str, active_only: bool = True) -> list[ItemStock]:
        """Every master item of a type with its derived stock, ordered by code."""
        model = ITEM_MODELS[item_type]
        stmt = select(model).order_by(model.code)
        if active_only:
            stmt = stmt.where(model.is_active.is_(True))
        items = self.session.execute(stmt).scalars().all()

        stock = self.stock_by_item(item_type)
        zero = round_quantity(ZERO)
        return [
            ItemStock(
                item_type=item_type,
                item_id=item.id,
                code=item.code,
                name=item.name,
                unit=item.unit,
                current_stock=stock.get(item.id, zero),
                reorder_level=round_quantity(item.reorder_level),
            )
            for item in items
        ]

    def movement_history(
        self,
        item_type: str,
        item_id: UUID,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements of one item, newest first."""
        column = item_column(item_type)
        stmt = (
            select(StockMovement)
            .where(StockMovement.item_type == item_type, column == item_id)
            .order_by(StockMovement.seq.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        return [
            MovementRecord(
                movement_id=m.id,
                seq=m.seq,
                movement_type=m.movement_type,
                quantity_in=round_quantity(m.quantity_in),
                quantity_out=round_quantity(m.quantity_out),
                running_balance=round_quantity(m.running_balance),
                reference_type=m.reference_type,
                reference_code=m.reference_code,
                reason=m.reason,
                movement_date=m.movement_date,
            )
            for m in self.session.execute(stmt).scalars()
        ]

    def latest_running_balance(self, item_type: str, item_id: UUID) -> Decimal | None:
        history = self.movement_history(item_type, item_id, limit=1)
        return history[0].running_balance if history else None

    def movements_for_reference(self, reference_type: str, reference_id: UUID) -> list[StockMovement]:
        return list(
            self.session.execute(
                select(StockMovement)
                .where(
                    StockMovement.reference_type == reference_type,
                    StockMovement.reference_id == reference_id,
                )
                .order_by(StockMovement.seq)
            ).scalars()
        )

    def stock_in_process(self) -> Decimal:
        """Raw material issued to production batches that are still open."""
        total = self.session.execute(
            select(func.coalesce(func.sum(ProductionBatchInput.quantity), 0))
            .join(ProductionBatch, ProductionBatch.id == ProductionBatchInput.batch_id)
            .where(ProductionBatch.status == BatchStatus.IN_PROGRESS.value)
        ).scalar_one()
        return round_quantity(self.as_decimal(total))

    def stock_in_bell(self) -> Decimal:
        """Gross weight of bells packed and not yet sold."""
        total = self.session.execute(
            select(func.coalesce(func.sum(BellItem.gross_weight), 0)).where(
                BellItem.status == BellStatus.AVAILABLE.value
            )
        ).scalar_one()
        return round_quantity(self.as_decimal(total))

"""
StockLedgerService -- the append-only movement ledger.

Responsibility:
    Records stock movements and answers "how much is on hand" by summing
    them.  The only writer of stock_movements.

Architecture position:
    Kernel > Services.  Called by DocumentService (invoice / bill confirm and
    void), ProductionService (batch issue / completion, samples) and the
    route layer (manual adjustments).

Invariants enforced:
    - stock(item) = SUM(quantity_in) - SUM(quantity_out).  Items carry no
      stock column.
    - Exactly one of quantity_in / quantity_out is non-zero, both are
      non-negative, and the movement references exactly one existing item.
    - No oversell: an OUT movement first locks the item master row
      (SELECT ... FOR UPDATE), then re-sums stock under the lock and refuses
      to go below zero.  Two concurrent sales of the last unit therefore
      serialize and the second one fails.
    - running_balance is written for audit display only.

Failure modes:
    - ValidationError / AmbiguousItemReferenceError on malformed input.
    - ItemNotFoundError for an unknown item.
    - InsufficientStockError when an OUT movement would make stock negative.
    - StockBalanceDivergenceError from verify_running_balances().
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.dtos import (
    ItemStock,
    MovementInput,
    MovementRecord,
    StockValidationResult,
)
from erp_kernel.domain.values import ZERO, quantity_equal, round_quantity
from erp_kernel.exceptions import (
    AmbiguousItemReferenceError,
    InsufficientStockError,
    ItemNotFoundError,
    StockBalanceDivergenceError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.item import ITEM_MODELS, FinishedProduct, ItemType, RawMaterial
from erp_kernel.models.stock_movement import MovementType, StockMovement
from erp_kernel.selectors.stock_selector import StockSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.stock_ledger")


class StockLedgerService(BaseService):
    """
    Movement-sourced stock ledger.

    Usage:
        ledger = StockLedgerService(session, sequences, invalidator, clock)
        ledger.record_movement(MovementInput(
            item_type="raw_material", item_id=rm.id,
            movement_type="RAW_IN", quantity_in=Decimal("100"),
        ))
        ledger.current_stock("raw_material", rm.id)   # Decimal("100.000")
    """

    def __init__(
        self,
        session,
        sequences: SequenceService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._sequences = sequences
        self._invalidator = invalidator or CacheInvalidator()
        self._selector = StockSelector(session)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def current_stock(self, item_type: str, item_id: UUID) -> Decimal:
        """Sum of quantity_in minus quantity_out for one item.  No side effects."""
        return self._selector.current_stock(self._item_type(item_type), item_id)

    def validate_availability(
        self,
        item_type: str,
        item_id: UUID,
        required: Decimal,
    ) -> StockValidationResult:
        """Check whether ``required`` units can be issued.  Read only."""
        required = round_quantity(required)
        current = self.current_stock(item_type, item_id)
        if current >= required:
            return StockValidationResult(
                is_valid=True,
                current_stock=current,
                requested_quantity=required,
                shortfall=round_quantity(ZERO),
                message="Stock available",
            )
        shortfall = round_quantity(required - current)
        return StockValidationResult(
            is_valid=False,
            current_stock=current,
            requested_quantity=required,
            shortfall=shortfall,
            message=f"Insufficient stock. Available: {current}, Required: {required}",
        )

    def all_items_with_stock(self, item_type: str) -> list[ItemStock]:
        """Every item of a type with its stock, from one grouped query."""
        return self._selector.items_with_stock(self._item_type(item_type))

    def movement_history(
        self,
        item_type: str,
        item_id: UUID,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        return self._selector.movement_history(self._item_type(item_type), item_id, limit)

    def verify_running_balances(self, item_type: str, item_id: UUID) -> Decimal:
        """
        Compare the latest stored running balance with the recomputed sum.

        Returns:
            The recomputed stock.

        Raises:
            StockBalanceDivergenceError: the two differ beyond 0.001.
        """
        recomputed = self.current_stock(item_type, item_id)
        stored = self._selector.latest_running_balance(self._item_type(item_type), item_id)
        if stored is not None and not quantity_equal(stored, recomputed):
            logger.error(
                "stock_balance_divergence",
                extra={
                    "item_id": str(item_id),
                    "stored": str(stored),
                    "recomputed": str(recomputed),
                },
            )
            raise StockBalanceDivergenceError(str(item_id), stored, recomputed)
        return recomputed

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_movement(self, movement: MovementInput) -> StockMovement:
        """
        Append one movement.

        Preconditions:
            - Exactly one of quantity_in / quantity_out is > 0.
            - item_id refers to an existing item of item_type.

        Postconditions:
            - A StockMovement row is flushed with running_balance equal to
              the stock after this movement.
            - The stock summary and dashboard KPI cache entries are dropped.

        Raises:
            ValidationError, AmbiguousItemReferenceError, ItemNotFoundError,
            InsufficientStockError.
        """
        item_type = self._item_type(movement.item_type)
        self._validate_quantities(movement)
        movement_type = self._movement_type(movement.movement_type)

        if movement.item_id is None:
            raise AmbiguousItemReferenceError(item_type, None, None)

        qty_in = round_quantity(movement.quantity_in)
        qty_out = round_quantity(movement.quantity_out)

        if qty_out > ZERO:
            # Serialize OUT movements per item, then re-read stock under the lock
            item = self._lock_item(item_type, movement.item_id)
        else:
            item = self.session.get(ITEM_MODELS[item_type], movement.item_id)
            if item is None:
                raise ItemNotFoundError(str(movement.item_id))

        current = self.current_stock(item_type, movement.item_id)
        if qty_out > current and not movement.allow_negative:
            logger.warning(
                "stock_insufficient",
                extra={
                    "item_id": str(movement.item_id),
                    "current_stock": str(current),
                    "requested": str(qty_out),
                },
            )
            raise InsufficientStockError(str(movement.item_id), current, qty_out, item.name)

        row = StockMovement(
            seq=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
            item_type=item_type,
            raw_material_id=movement.item_id if item_type == ItemType.RAW_MATERIAL.value else None,
            finished_product_id=(
                movement.item_id if item_type == ItemType.FINISHED_PRODUCT.value else None
            ),
            movement_type=movement_type,
            quantity_in=qty_in,
            quantity_out=qty_out,
            running_balance=round_quantity(current + qty_in - qty_out),
            reference_type=movement.reference_type,
            reference_id=movement.reference_id,
            reference_code=movement.reference_code,
            reason=movement.reason,
            movement_date=movement.movement_date or self.clock.now(),
            created_by_id=self.actor_id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(row.id),
                "item_type": item_type,
                "item_id": str(movement.item_id),
                "movement_type": movement_type,
                "quantity_in": str(qty_in),
                "quantity_out": str(qty_out),
                "running_balance": str(row.running_balance),
                "reference_code": movement.reference_code,
            },
        )

        self._invalidator.invalidate_stock_summary()
        self._invalidator.invalidate_dashboard_kpis()
        return row

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _lock_item(self, item_type: str, item_id: UUID) -> RawMaterial | FinishedProduct:
        model = ITEM_MODELS[item_type]
        item = self.session.execute(
            select(model)
            .where(model.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    @staticmethod
    def _item_type(item_type: str) -> str:
        try:
            return ItemType(item_type).value
        except ValueError:
            raise ValidationError(f"Unknown item type: {item_type}", field="item_type") from None

    @staticmethod
    def _movement_type(movement_type: str) -> str:
        try:
            return MovementType(movement_type).value
        except ValueError:
            raise ValidationError(
                f"Unknown movement type: {movement_type}", field="movement_type"
            ) from None

    @staticmethod
    def _validate_quantities(movement: MovementInput) -> None:
        if movement.quantity_in < ZERO or movement.quantity_out < ZERO:
            raise ValidationError("Movement quantities must be non-negative", field="quantity")
        if movement.quantity_in > ZERO and movement.quantity_out > ZERO:
            raise ValidationError(
                "A movement is either inward or outward, not both", field="quantity"
            )
        if movement.quantity_in == ZERO and movement.quantity_out == ZERO:
            raise ValidationError("Movement quantity must be greater than zero", field="quantity")

"""
ProductionService -- production batches and samples as stock movements.

Responsibility:
    Issues raw material to a batch (RAW_OUT), completes it into finished
    goods (FG_IN) with a loss figure, cancels it back into raw material
    (RAW_IN), and records samples (SAMPLE_OUT).

Architecture position:
    Kernel > Services.  Every quantity change goes through
    StockLedgerService.record_movement().

Invariants enforced:
    - A batch is started only if every input is available; the check covers
      all inputs before the first RAW_OUT is written.
    - in-progress -> completed | cancelled happens once.
    - RAW_OUT rows are written in raw material id order, so concurrent
      batches lock item rows in the same order.
    - loss_percent = (input - output) / input * 100, rounded to 2 places;
      loss_exceeded when it is above the configured threshold.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.dtos import BatchResult, MovementInput, ProductionInput, ProductionOutput
from erp_kernel.domain.production import is_loss_exceeded, loss_percent
from erp_kernel.domain.values import ZERO, round_quantity
from erp_kernel.exceptions import (
    BatchNotInProgressError,
    InsufficientStockError,
    ItemNotFoundError,
    ProductionBatchNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.item import FinishedProduct, ItemType, RawMaterial
from erp_kernel.models.production import (
    BatchStatus,
    ProductionBatch,
    ProductionBatchInput,
    ProductionBatchOutput,
)
from erp_kernel.models.stock_movement import MovementType, StockMovement
from erp_kernel.selectors.stock_selector import StockSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedgerService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.production")

BATCH_REFERENCE = "PRODUCTION_BATCH"
SAMPLE_REFERENCE = "SAMPLE"


class ProductionService(BaseService):

    def __init__(
        self,
        session,
        stock_ledger: StockLedgerService,
        sequences: SequenceService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
        loss_threshold_percent: Decimal = Decimal("5"),
    ):
        super().__init__(session, clock, actor_id)
        self._stock = stock_ledger
        self._sequences = sequences
        self._invalidator = invalidator or CacheInvalidator()
        self._loss_threshold = loss_threshold_percent

    def start_batch(
        self,
        inputs: Sequence[ProductionInput],
        machine: str | None = None,
        allocation_date: datetime | None = None,
        remarks: str | None = None,
    ) -> BatchResult:
        """Allocate raw material to a new batch.  Raises InsufficientStockError."""
        if not inputs:
            raise ValidationError("A batch needs at least one input", field="inputs")

        required: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for item in inputs:
            if item.quantity <= ZERO:
                raise ValidationError("Input quantity must be positive", field="quantity")
            if self.session.get(RawMaterial, item.raw_material_id) is None:
                raise ItemNotFoundError(str(item.raw_material_id))
            required[item.raw_material_id] += round_quantity(item.quantity)

        for raw_material_id in sorted(required, key=str):
            quantity = required[raw_material_id]
            check = self._stock.validate_availability(
                ItemType.RAW_MATERIAL.value, raw_material_id, quantity
            )
            if not check.is_valid:
                raise InsufficientStockError(
                    str(raw_material_id),
                    check.current_stock,
                    check.requested_quantity,
                    self.session.get(RawMaterial, raw_material_id).name,
                )

        allocated_at = allocation_date or self.clock.now()
        batch = ProductionBatch(
            code=self._sequences.next_code(SequenceService.PRODUCTION_BATCH),
            status=BatchStatus.IN_PROGRESS.value,
            machine=machine,
            allocation_date=allocated_at,
            input_quantity=round_quantity(sum(required.values(), ZERO)),
            remarks=remarks,
            created_by_id=self.actor_id,
            inputs=[
                ProductionBatchInput(
                    raw_material_id=item.raw_material_id,
                    quantity=round_quantity(item.quantity),
                )
                for item in inputs
            ],
        )
        self.session.add(batch)
        self.session.flush()

        for item in sorted(inputs, key=lambda i: str(i.raw_material_id)):
            self._stock.record_movement(
                MovementInput(
                    item_type=ItemType.RAW_MATERIAL.value,
                    item_id=item.raw_material_id,
                    movement_type=MovementType.RAW_OUT.value,
                    quantity_out=item.quantity,
                    reference_type=BATCH_REFERENCE,
                    reference_id=batch.id,
                    reference_code=batch.code,
                    reason="Production allocation",
                    movement_date=allocated_at,
                )
            )

        logger.info(
            "batch_started",
            extra={
                "batch_id": str(batch.id),
                "code": batch.code,
                "input_quantity": str(batch.input_quantity),
            },
        )
        return self._result(batch)

    def complete_batch(
        self,
        batch_id: UUID,
        outputs: Sequence[ProductionOutput],
        completion_date: datetime | None = None,
    ) -> BatchResult:
        if not outputs:
            raise ValidationError("A batch completion needs at least one output", field="outputs")

        batch = self._lock_open_batch(batch_id)

        for output in outputs:
            if output.quantity <= ZERO:
                raise ValidationError("Output quantity must be positive", field="quantity")
            if self.session.get(FinishedProduct, output.finished_product_id) is None:
                raise ItemNotFoundError(str(output.finished_product_id))

        completed_at = completion_date or self.clock.now()
        for output in outputs:
            batch.outputs.append(
                ProductionBatchOutput(
                    finished_product_id=output.finished_product_id,
                    quantity=round_quantity(output.quantity),
                )
            )
            self._stock.record_movement(
                MovementInput(
                    item_type=ItemType.FINISHED_PRODUCT.value,
                    item_id=output.finished_product_id,
                    movement_type=MovementType.FG_IN.value,
                    quantity_in=output.quantity,
                    reference_type=BATCH_REFERENCE,
                    reference_id=batch.id,
                    reference_code=batch.code,
                    reason="Production output",
                    movement_date=completed_at,
                )
            )

        input_quantity = round_quantity(batch.input_quantity)
        output_quantity = round_quantity(sum((round_quantity(o.quantity) for o in outputs), ZERO))
        percent = loss_percent(input_quantity, output_quantity)

        batch.status = BatchStatus.COMPLETED.value
        batch.completion_date = completed_at
        batch.output_quantity = output_quantity
        batch.loss_quantity = round_quantity(input_quantity - output_quantity)
        batch.loss_percent = percent
        batch.loss_exceeded = is_loss_exceeded(percent, self._loss_threshold)
        self.session.flush()

        log = logger.warning if batch.loss_exceeded else logger.info
        log(
            "batch_completed",
            extra={
                "batch_id": str(batch.id),
                "code": batch.code,
                "output_quantity": str(output_quantity),
                "loss_percent": str(percent),
                "loss_exceeded": batch.loss_exceeded,
            },
        )
        # Completion moves stock out of "in process"
        self._invalidator.invalidate_stock_summary()
        return self._result(batch)

    def cancel_batch(self, batch_id: UUID, reason: str | None = None) -> BatchResult:
        """
        Abandon an in-progress batch and return its raw material to stock.

        Each RAW_OUT the batch issued gets a matching RAW_IN, so the item
        ledgers show the round trip rather than a silent correction.
        """
        batch = self._lock_open_batch(batch_id)

        issued = [
            movement
            for movement in StockSelector(self.session).movements_for_reference(
                BATCH_REFERENCE, batch.id
            )
            if movement.movement_type == MovementType.RAW_OUT.value
        ]
        for movement in sorted(issued, key=lambda m: (str(m.raw_material_id), m.seq)):
            self._stock.record_movement(
                MovementInput(
                    item_type=ItemType.RAW_MATERIAL.value,
                    item_id=movement.raw_material_id,
                    movement_type=MovementType.RAW_IN.value,
                    quantity_in=movement.quantity_out,
                    reference_type=BATCH_REFERENCE,
                    reference_id=batch.id,
                    reference_code=batch.code,
                    reason=reason or f"Batch {batch.code} cancelled",
                )
            )

        batch.status = BatchStatus.CANCELLED.value
        self.session.flush()

        logger.info(
            "batch_cancelled",
            extra={
                "batch_id": str(batch.id),
                "code": batch.code,
                "returned_quantity": str(
                    round_quantity(sum((m.quantity_out for m in issued), ZERO))
                ),
                "reason": reason,
            },
        )
        self._invalidator.invalidate_stock_summary()
        return self._result(batch)

    def _lock_open_batch(self, batch_id: UUID) -> ProductionBatch:
        batch = self.session.execute(
            select(ProductionBatch)
            .where(ProductionBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise ProductionBatchNotFoundError(str(batch_id))
        if batch.status != BatchStatus.IN_PROGRESS.value:
            raise BatchNotInProgressError(str(batch_id), batch.status)
        return batch

    def record_sample(
        self,
        item_id: UUID,
        quantity: Decimal,
        item_type: str = ItemType.FINISHED_PRODUCT.value,
        reason: str | None = None,
        sample_date: datetime | None = None,
    ) -> StockMovement:
        """Take stock out as a sample.  Subject to the same availability rule as a sale."""
        return self._stock.record_movement(
            MovementInput(
                item_type=item_type,
                item_id=item_id,
                movement_type=MovementType.SAMPLE_OUT.value,
                quantity_out=quantity,
                reference_type=SAMPLE_REFERENCE,
                reason=reason or "Sample",
                movement_date=sample_date,
            )
        )

    @staticmethod
    def _result(batch: ProductionBatch) -> BatchResult:
        return BatchResult(
            batch_id=batch.id,
            code=batch.code,
            status=batch.status,
            input_quantity=round_quantity(batch.input_quantity),
            output_quantity=(
                round_quantity(batch.output_quantity) if batch.output_quantity is not None else None
            ),
            loss_quantity=(
                round_quantity(batch.loss_quantity) if batch.loss_quantity is not None else None
            ),
            loss_percent=batch.loss_percent,
            loss_exceeded=batch.loss_exceeded,
        )

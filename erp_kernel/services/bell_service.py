"""
BellService -- packing finished goods into bells and taking them apart again.

Responsibility:
    Creates bell batches (FG_OUT for the packed net weight), deletes them
    (FG_IN back to finished goods), and moves single bells between
    Available and Issued for the sales invoices that sell them.

Architecture position:
    Kernel > Services.  Stock changes go through
    StockLedgerService.record_movement(); DocumentService calls
    check_available / mark_issued / release for invoice lines that carry a
    bell.

Invariants enforced:
    - Stock for every product in a batch is checked before the first
      FG_OUT is written.
    - One movement per product, written in product id order, so two
      batches packing the same products lock item rows in the same order.
    - A batch with an issued bell cannot be deleted; the invoice has to be
      voided first.

Failure modes:
    - ValidationError, ItemNotFoundError, InsufficientStockError on create.
    - BellBatchNotFoundError, BellBatchNotDeletableError on delete.
    - BellItemNotFoundError, BellNotAvailableError on issue.
"""

from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from erp_kernel.domain.dtos import BellBatchResult, BellItemDraft, MovementInput
from erp_kernel.domain.values import ZERO, round_quantity
from erp_kernel.exceptions import (
    BellBatchNotDeletableError,
    BellBatchNotFoundError,
    BellItemNotFoundError,
    BellNotAvailableError,
    InsufficientStockError,
    ItemNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.bell import BellBatch, BellBatchStatus, BellItem, BellStatus
from erp_kernel.models.item import FinishedProduct, ItemType
from erp_kernel.models.stock_movement import MovementType
from erp_kernel.services.base import BaseService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedgerService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.bell")

BELL_REFERENCE = "BELL_BATCH"
GRAMS_PER_KG = Decimal("1000")


def net_weight(draft: BellItemDraft) -> Decimal:
    return round_quantity(draft.gross_weight - draft.weight_loss / GRAMS_PER_KG)


class BellService(BaseService):
    """
    Usage:
        result = bells.create_bell_batch([
            BellItemDraft(product.id, gsm="90", size="36x72", gross_weight=Decimal("25")),
        ])
        bells.delete_bell_batch(result.batch_id)   # stock back to finished goods
    """

    def __init__(
        self,
        session,
        stock_ledger: StockLedgerService,
        sequences: SequenceService,
        invalidator: CacheInvalidator | None = None,
        clock=None,
        actor_id: UUID | None = None,
    ):
        super().__init__(session, clock, actor_id)
        self._stock = stock_ledger
        self._sequences = sequences
        self._invalidator = invalidator or CacheInvalidator()

    def create_bell_batch(self, items: Sequence[BellItemDraft]) -> BellBatchResult:
        if not items:
            raise ValidationError("A bell batch needs at least one bell", field="items")

        required: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        weights: list[Decimal] = []
        for position, draft in enumerate(items, start=1):
            if not draft.gsm or not draft.size:
                raise ValidationError(f"Bell {position}: GSM and size are required", field="items")
            if draft.weight_loss < ZERO or draft.piece_count <= ZERO:
                raise ValidationError(
                    f"Bell {position}: weight loss must be non-negative and piece count positive",
                    field="items",
                )
            weight = net_weight(draft)
            if weight <= ZERO:
                raise ValidationError(f"Bell {position}: net weight must be positive", field="items")
            if self.session.get(FinishedProduct, draft.finished_product_id) is None:
                raise ItemNotFoundError(str(draft.finished_product_id))
            required[draft.finished_product_id] += weight
            weights.append(weight)

        product_ids = sorted(required, key=str)
        for product_id in product_ids:
            check = self._stock.validate_availability(
                ItemType.FINISHED_PRODUCT.value, product_id, required[product_id]
            )
            if not check.is_valid:
                raise InsufficientStockError(
                    str(product_id),
                    check.current_stock,
                    check.requested_quantity,
                    self.session.get(FinishedProduct, product_id).name,
                )

        code = self._sequences.next_code(SequenceService.BELL_BATCH)
        number = code.split("-", 1)[1]
        batch = BellBatch(
            code=code,
            total_weight=round_quantity(sum(weights, ZERO)),
            status=BellBatchStatus.ACTIVE.value,
            created_by_id=self.actor_id,
            items=[
                BellItem(
                    code=f"BEL-{number}-{position:03d}",
                    finished_product_id=draft.finished_product_id,
                    gsm=draft.gsm,
                    size=draft.size,
                    piece_count=draft.piece_count,
                    gross_weight=round_quantity(draft.gross_weight),
                    weight_loss=round_quantity(draft.weight_loss),
                    net_weight=weight,
                    status=BellStatus.AVAILABLE.value,
                    created_by_id=self.actor_id,
                )
                for position, (draft, weight) in enumerate(zip(items, weights), start=1)
            ],
        )
        self.session.add(batch)
        self.session.flush()

        for product_id in product_ids:
            self._stock.record_movement(
                MovementInput(
                    item_type=ItemType.FINISHED_PRODUCT.value,
                    item_id=product_id,
                    movement_type=MovementType.FG_OUT.value,
                    quantity_out=required[product_id],
                    reference_type=BELL_REFERENCE,
                    reference_id=batch.id,
                    reference_code=code,
                    reason=f"Packed into bell batch {code}",
                )
            )

        logger.info(
            "bell_batch_created",
            extra={
                "bell_batch_id": str(batch.id),
                "code": code,
                "bell_count": len(weights),
                "total_weight": str(batch.total_weight),
            },
        )
        return self._result(batch)

    def delete_bell_batch(self, batch_id: UUID, reason: str | None = None) -> BellBatchResult:
        """Unpack a batch: bells Deleted, net weight back to finished goods."""
        batch = self.session.execute(
            select(BellBatch)
            .where(BellBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BellBatchNotFoundError(str(batch_id))
        if batch.status != BellBatchStatus.ACTIVE.value:
            raise BellBatchNotDeletableError(str(batch_id), batch.status)

        live = [item for item in batch.items if item.status != BellStatus.DELETED.value]
        issued = tuple(item.code for item in live if item.status == BellStatus.ISSUED.value)
        if issued:
            raise BellBatchNotDeletableError(str(batch_id), batch.status, issued)

        refunds: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for item in live:
            refunds[item.finished_product_id] += round_quantity(item.net_weight)

        for product_id in sorted(refunds, key=str):
            self._stock.record_movement(
                MovementInput(
                    item_type=ItemType.FINISHED_PRODUCT.value,
                    item_id=product_id,
                    movement_type=MovementType.FG_IN.value,
                    quantity_in=refunds[product_id],
                    reference_type=BELL_REFERENCE,
                    reference_id=batch.id,
                    reference_code=batch.code,
                    reason=reason or f"Bell batch {batch.code} deleted",
                )
            )

        batch.status = BellBatchStatus.DELETED.value
        for item in live:
            item.status = BellStatus.DELETED.value
        self.session.flush()

        logger.info(
            "bell_batch_deleted",
            extra={
                "bell_batch_id": str(batch.id),
                "code": batch.code,
                "restored_weight": str(sum(refunds.values(), ZERO)),
                "reason": reason,
            },
        )
        self._invalidator.invalidate_stock_summary()
        return self._result(batch)

    # -------------------------------------------------------------------------
    # Invoice lines
    # -------------------------------------------------------------------------

    def check_available(self, bell_item_id: UUID, finished_product_id: UUID) -> BellItem:
        """Lock a bell and check it can be sold as the given product."""
        bell = self._lock_bell(bell_item_id)
        if bell.finished_product_id != finished_product_id:
            raise ValidationError(
                f"Bell {bell.code} is not packed from product {finished_product_id}",
                field="bell_item_id",
            )
        if bell.status != BellStatus.AVAILABLE.value:
            raise BellNotAvailableError(str(bell.id), bell.code, bell.status)
        return bell

    def mark_issued(self, bell: BellItem) -> None:
        bell.status = BellStatus.ISSUED.value
        self.session.flush()
        logger.info("bell_issued", extra={"bell_item_id": str(bell.id), "code": bell.code})
        self._invalidator.invalidate_stock_summary()

    def release(self, bell_item_id: UUID) -> None:
        """Issued -> Available, for a voided invoice."""
        bell = self._lock_bell(bell_item_id)
        if bell.status != BellStatus.ISSUED.value:
            return
        bell.status = BellStatus.AVAILABLE.value
        self.session.flush()
        logger.info("bell_released", extra={"bell_item_id": str(bell.id), "code": bell.code})
        self._invalidator.invalidate_stock_summary()

    def _lock_bell(self, bell_item_id: UUID) -> BellItem:
        bell = self.session.execute(
            select(BellItem)
            .where(BellItem.id == bell_item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if bell is None:
            raise BellItemNotFoundError(str(bell_item_id))
        return bell

    @staticmethod
    def _result(batch: BellBatch) -> BellBatchResult:
        return BellBatchResult(
            batch_id=batch.id,
            code=batch.code,
            status=batch.status,
            total_weight=round_quantity(batch.total_weight),
            item_codes=tuple(item.code for item in batch.items),
        )

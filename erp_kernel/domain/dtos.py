"""
DTOs -- immutable inputs and results of kernel operations.

Responsibility:
    Frozen dataclasses that cross the boundary between the route layer and
    the services: movement inputs, document drafts, payment requests with a
    tagged funding variant, and the results each operation returns.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Enumerated fields are carried as
    their string values; services convert them to model enums.

Invariants enforced:
    - Money and quantities are Decimal.  Float input raises TypeError at
      construction.
    - A payment is funded by exactly one of AccountFunding / AdvanceFunding.
      The union type makes "both" and "neither" unrepresentable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from erp_kernel.domain.values import ZERO, to_decimal


def _freeze_decimal(obj: object, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is not None:
            object.__setattr__(obj, name, to_decimal(value))


# =============================================================================
# Stock
# =============================================================================


@dataclass(frozen=True)
class MovementInput:
    """
    One stock movement to record.

    allow_negative is reserved for compensating rows (document voids),
    which must always be writable.
    """

    item_type: str
    item_id: UUID | None
    movement_type: str
    quantity_in: Decimal = ZERO
    quantity_out: Decimal = ZERO
    reference_type: str | None = None
    reference_id: UUID | None = None
    reference_code: str | None = None
    reason: str | None = None
    movement_date: datetime | None = None
    allow_negative: bool = False

    def __post_init__(self) -> None:
        _freeze_decimal(self, "quantity_in", "quantity_out")


@dataclass(frozen=True)
class StockValidationResult:
    is_valid: bool
    current_stock: Decimal
    requested_quantity: Decimal
    shortfall: Decimal
    message: str


@dataclass(frozen=True)
class ItemStock:
    """Current stock of one item with its master data."""

    item_type: str
    item_id: UUID
    code: str
    name: str
    unit: str
    current_stock: Decimal
    reorder_level: Decimal

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_level > ZERO and self.current_stock <= self.reorder_level


@dataclass(frozen=True)
class MovementRecord:
    movement_id: UUID
    seq: int
    movement_type: str
    quantity_in: Decimal
    quantity_out: Decimal
    running_balance: Decimal
    reference_type: str | None
    reference_code: str | None
    reason: str | None
    movement_date: datetime


# =============================================================================
# Documents
# =============================================================================


@dataclass(frozen=True)
class DocumentLineDraft:
    """
    One line of a new document.

    discount is an amount (not a percentage) taken off quantity * rate.
    bell_item_id sells one packed bell of the finished product item_id; the
    bell already left stock when it was packed.
    """

    item_type: str
    item_id: UUID
    quantity: Decimal
    rate: Decimal
    discount: Decimal = ZERO
    gst_percent: Decimal = ZERO
    bell_item_id: UUID | None = None

    def __post_init__(self) -> None:
        _freeze_decimal(self, "quantity", "rate", "discount", "gst_percent")


@dataclass(frozen=True)
class DocumentDraft:
    document_type: str
    party_id: UUID
    lines: tuple[DocumentLineDraft, ...]
    document_date: datetime | None = None
    due_date: datetime | None = None
    external_number: str | None = None
    remarks: str | None = None
    confirm: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class OutstandingDocument:
    document_id: UUID
    document_type: str
    number: str
    document_date: datetime
    grand_total: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: str


# =============================================================================
# Payments
# =============================================================================


@dataclass(frozen=True)
class AccountFunding:
    """Money moves through a bank or cash account."""

    account_id: UUID


@dataclass(frozen=True)
class AdvanceFunding:
    """Money comes out of an earlier advance of the same party."""

    advance_payment_id: UUID


Funding = AccountFunding | AdvanceFunding


@dataclass(frozen=True)
class Allocation:
    document_id: UUID
    amount: Decimal

    def __post_init__(self) -> None:
        _freeze_decimal(self, "amount")


@dataclass(frozen=True)
class PaymentRequest:
    """
    A receipt (RECEIPT, customer pays us) or payment (PAYMENT, we pay a
    supplier).  Any amount not covered by allocations becomes an advance.
    """

    payment_type: str
    party_id: UUID
    amount: Decimal
    funding: Funding
    allocations: tuple[Allocation, ...] = ()
    mode: str = "Bank"
    payment_date: datetime | None = None
    remarks: str | None = None
    bank_reference: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        _freeze_decimal(self, "amount")
        object.__setattr__(self, "allocations", tuple(self.allocations))

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)


@dataclass(frozen=True)
class PaymentResult:
    payment_id: UUID
    code: str
    payment_type: str
    party_id: UUID
    amount: Decimal
    allocated_total: Decimal
    is_advance: bool
    advance_balance: Decimal
    voucher_number: str | None
    replayed: bool = False


@dataclass(frozen=True)
class AdjustmentResult:
    adjustment_id: UUID
    payment_id: UUID
    document_id: UUID
    amount: Decimal
    advance_balance: Decimal
    document_balance: Decimal
    document_payment_status: str
    replayed: bool = False


@dataclass(frozen=True)
class ReversalResult:
    """Immutable result of a successful payment reversal."""

    payment_id: UUID
    code: str
    amount: Decimal
    voucher_number: str
    restored_document_ids: tuple[UUID, ...]
    party_outstanding: Decimal


@dataclass(frozen=True)
class AvailableAdvance:
    payment_id: UUID
    code: str
    payment_date: datetime
    amount: Decimal
    advance_balance: Decimal


# =============================================================================
# Financial postings
# =============================================================================


@dataclass(frozen=True)
class FinancialTransactionRequest:
    """
    A non-trade money movement.  principal_amount / interest_amount are only
    read for REPAYMENT, where they must add up to amount.
    """

    transaction_type: str
    account_id: UUID
    amount: Decimal
    entity_id: UUID | None = None
    principal_amount: Decimal | None = None
    interest_amount: Decimal | None = None
    interest_rate: Decimal | None = None
    tenure_months: Decimal | None = None
    due_date: datetime | None = None
    payment_mode: str = "Bank"
    transaction_date: datetime | None = None
    reference: str | None = None
    remarks: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        _freeze_decimal(
            self,
            "amount",
            "principal_amount",
            "interest_amount",
            "interest_rate",
            "tenure_months",
        )


@dataclass(frozen=True)
class LedgerLeg:
    """One side of a double entry.  Exactly one of debit / credit is non-zero."""

    ledger_id: str
    ledger_type: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO


@dataclass(frozen=True)
class FinancialPostingResult:
    transaction_id: UUID
    voucher_number: str
    transaction_type: str
    amount: Decimal
    legs: tuple[LedgerLeg, ...]
    account_balance: Decimal
    replayed: bool = False


@dataclass(frozen=True)
class EntityPosition:
    """
    What has been raised from and repaid to a financial counterparty.

    interest_paid is repaid gross minus principal repaid, floored at zero.
    """

    entity_id: UUID
    name: str
    total_taken: Decimal
    total_repaid_gross: Decimal
    principal_repaid: Decimal
    interest_paid: Decimal

    @property
    def principal_outstanding(self) -> Decimal:
        return max(ZERO, self.total_taken - self.principal_repaid)


# =============================================================================
# Production
# =============================================================================


@dataclass(frozen=True)
class ProductionInput:
    raw_material_id: UUID
    quantity: Decimal

    def __post_init__(self) -> None:
        _freeze_decimal(self, "quantity")


@dataclass(frozen=True)
class ProductionOutput:
    finished_product_id: UUID
    quantity: Decimal

    def __post_init__(self) -> None:
        _freeze_decimal(self, "quantity")


@dataclass(frozen=True)
class BatchResult:
    batch_id: UUID
    code: str
    status: str
    input_quantity: Decimal
    output_quantity: Decimal | None = None
    loss_quantity: Decimal | None = None
    loss_percent: Decimal | None = None
    loss_exceeded: bool = False


# =============================================================================
# Bell inventory
# =============================================================================


@dataclass(frozen=True)
class BellItemDraft:
    """
    One bell packed from a finished product.

    weight_loss is in grams; net_weight = gross_weight - weight_loss / 1000
    is what leaves finished goods stock.
    """

    finished_product_id: UUID
    gsm: str
    size: str
    gross_weight: Decimal
    weight_loss: Decimal = ZERO
    piece_count: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        _freeze_decimal(self, "gross_weight", "weight_loss", "piece_count")


@dataclass(frozen=True)
class BellBatchResult:
    batch_id: UUID
    code: str
    status: str
    total_weight: Decimal
    item_codes: tuple[str, ...]


# =============================================================================
# Expenses
# =============================================================================


@dataclass(frozen=True)
class ExpenseRequest:
    expense_head_id: UUID
    account_id: UUID
    amount: Decimal
    payment_mode: str = "Cash"
    expense_date: datetime | None = None
    description: str | None = None
    reference: str | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        _freeze_decimal(self, "amount")


@dataclass(frozen=True)
class ExpenseResult:
    expense_id: UUID
    code: str
    amount: Decimal
    account_balance: Decimal
    replayed: bool = False


# =============================================================================
# Summaries (cache payloads)
# =============================================================================


@dataclass(frozen=True)
class StockTypeSummary:
    item_count: int
    total_stock: Decimal
    low_stock_count: int


@dataclass(frozen=True)
class StockSummary:
    raw_materials: StockTypeSummary
    finished_products: StockTypeSummary
    stock_in_process: Decimal
    # Net weight of Available bells: packed finished goods not yet sold
    stock_in_bell: Decimal
    computed_at: datetime


@dataclass(frozen=True)
class DashboardKpis:
    total_receivables: Decimal
    total_payables: Decimal
    cash_balance: Decimal
    bank_balance: Decimal
    pending_invoices: int
    pending_bills: int
    total_collections: Decimal
    total_payments: Decimal
    computed_at: datetime


@dataclass(frozen=True)
class AccountBalance:
    account_id: UUID
    code: str
    name: str
    account_type: str
    balance: Decimal


@dataclass(frozen=True)
class PartyBalance:
    party_id: UUID
    code: str
    name: str
    party_type: str
    outstanding: Decimal
    recomputed: Decimal = field(default=ZERO)

"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every business failure in the kernel is raised as a typed exception that
carries a machine-readable ``code`` class attribute and the figures a caller
needs to act on it (current stock vs requested quantity, available advance
vs requested amount, document status, ...).  The route layer maps the
categories below to HTTP status codes; the kernel itself never speaks HTTP.

    try:
        kernel.payments.create_payment(request)
    except InsufficientFundsError as e:
        return {"error": e.code, "available": e.available, "requested": e.requested}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpKernelError (base)
    |
    +-- ValidationError                 (400-equivalent)
    |   +-- AmbiguousItemReferenceError
    |   +-- AllocationExceedsAmountError
    |   +-- AllocationExceedsBalanceError
    |   +-- PartyMismatchError
    |   +-- RepaymentSplitMismatchError
    |
    +-- NotFoundError                   (404-equivalent)
    |   +-- ItemNotFoundError
    |   +-- PartyNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- AccountNotFoundError
    |   +-- FinancialEntityNotFoundError
    |   +-- ProductionBatchNotFoundError
    |   +-- BellBatchNotFoundError
    |   +-- BellItemNotFoundError
    |   +-- ExpenseHeadNotFoundError
    |
    +-- InsufficientStockError          (400-equivalent, business rule)
    +-- InsufficientFundsError          (400-equivalent, business rule)
    |
    +-- InvalidStateError               (409-equivalent)
    |   +-- DocumentNotDraftError
    |   +-- DocumentNotConfirmedError
    |   +-- DocumentPaidError
    |   +-- PaymentAlreadyReversedError
    |   +-- NotAnAdvanceError
    |   +-- AdvanceConsumedError
    |   +-- BatchNotInProgressError
    |   +-- BellNotAvailableError
    |   +-- BellBatchNotDeletableError
    |
    +-- ConsistencyError                (500-equivalent, never swallowed)
        +-- StockBalanceDivergenceError
        +-- OutstandingDivergenceError
        +-- UnbalancedPostingError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                         | When Raised
--------------|------------------------------|-----------------------------------
Validation    | VALIDATION_ERROR             | Malformed / out-of-range input
              | AMBIGUOUS_ITEM_REFERENCE     | Both or neither item ids set
              | ALLOCATION_EXCEEDS_AMOUNT    | Allocations sum above payment
              | ALLOCATION_EXCEEDS_BALANCE   | Allocation above document balance
              | PARTY_MISMATCH               | Document belongs to another party
              | REPAYMENT_SPLIT_MISMATCH     | principal + interest != amount
--------------|------------------------------|-----------------------------------
Not found     | ITEM_NOT_FOUND ... etc.      | Referenced row does not exist
--------------|------------------------------|-----------------------------------
Business      | INSUFFICIENT_STOCK           | OUT movement would go negative
              | INSUFFICIENT_FUNDS           | Advance balance below request
--------------|------------------------------|-----------------------------------
State         | DOCUMENT_NOT_DRAFT           | Confirming a non-draft document
              | DOCUMENT_NOT_CONFIRMED       | Paying / voiding a draft
              | DOCUMENT_PAID                | Voiding a paid document
              | PAYMENT_ALREADY_REVERSED     | Reversing / adjusting a reversed payment
              | NOT_AN_ADVANCE               | Adjusting a non-advance payment
              | ADVANCE_CONSUMED             | Reversing an advance already spent
              | BATCH_NOT_IN_PROGRESS        | Completing / cancelling a closed batch
              | BELL_NOT_AVAILABLE           | Selling an issued or deleted bell
              | BELL_BATCH_NOT_DELETABLE     | Deleting a bell batch with issued bells
--------------|------------------------------|-----------------------------------
Consistency   | STOCK_BALANCE_DIVERGENCE     | running_balance != recomputed sum
              | OUTSTANDING_DIVERGENCE       | outstanding != recomputed balance
              | UNBALANCED_POSTING           | Debits != credits

===============================================================================
"""

from decimal import Decimal


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "ERP_KERNEL_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(ErpKernelError):
    """Input is malformed or out of range."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AmbiguousItemReferenceError(ValidationError):
    """Movement must reference exactly one of raw material / finished product."""

    code: str = "AMBIGUOUS_ITEM_REFERENCE"

    def __init__(self, item_type: str, raw_material_id: str | None, finished_product_id: str | None):
        self.item_type = item_type
        self.raw_material_id = raw_material_id
        self.finished_product_id = finished_product_id
        super().__init__(
            f"Movement for {item_type} must reference exactly one item "
            f"(raw_material_id={raw_material_id}, finished_product_id={finished_product_id})",
            field="item",
        )


class AllocationExceedsAmountError(ValidationError):
    """Sum of allocations is larger than the payment amount."""

    code: str = "ALLOCATION_EXCEEDS_AMOUNT"

    def __init__(self, amount: Decimal, allocated_total: Decimal):
        self.amount = amount
        self.allocated_total = allocated_total
        super().__init__(
            f"Allocated total {allocated_total} exceeds payment amount {amount}",
            field="allocations",
        )


class AllocationExceedsBalanceError(ValidationError):
    """Allocation against a document is larger than its open balance."""

    code: str = "ALLOCATION_EXCEEDS_BALANCE"

    def __init__(self, document_id: str, balance_amount: Decimal, requested: Decimal):
        self.document_id = document_id
        self.balance_amount = balance_amount
        self.requested = requested
        super().__init__(
            f"Allocation of {requested} exceeds balance {balance_amount} "
            f"of document {document_id}",
            field="allocations",
        )


class PartyMismatchError(ValidationError):
    """Referenced document or advance belongs to a different party."""

    code: str = "PARTY_MISMATCH"

    def __init__(self, expected_party_id: str, actual_party_id: str, reference: str):
        self.expected_party_id = expected_party_id
        self.actual_party_id = actual_party_id
        self.reference = reference
        super().__init__(
            f"{reference} belongs to party {actual_party_id}, "
            f"not {expected_party_id}"
        )


class RepaymentSplitMismatchError(ValidationError):
    """Principal plus interest does not match the repayment amount."""

    code: str = "REPAYMENT_SPLIT_MISMATCH"

    def __init__(self, amount: Decimal, principal: Decimal, interest: Decimal):
        self.amount = amount
        self.principal = principal
        self.interest = interest
        super().__init__(
            f"Principal {principal} + interest {interest} does not match "
            f"total amount {amount}",
            field="principal_amount",
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(ErpKernelError):
    """A referenced row does not exist."""

    code: str = "NOT_FOUND"
    entity: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}")


class ItemNotFoundError(NotFoundError):
    code: str = "ITEM_NOT_FOUND"
    entity: str = "Item"


class PartyNotFoundError(NotFoundError):
    code: str = "PARTY_NOT_FOUND"
    entity: str = "Party"


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"
    entity: str = "Document"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity: str = "Payment"


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity: str = "Account"


class FinancialEntityNotFoundError(NotFoundError):
    code: str = "FINANCIAL_ENTITY_NOT_FOUND"
    entity: str = "Financial entity"


class ProductionBatchNotFoundError(NotFoundError):
    code: str = "PRODUCTION_BATCH_NOT_FOUND"
    entity: str = "Production batch"


class BellBatchNotFoundError(NotFoundError):
    code: str = "BELL_BATCH_NOT_FOUND"
    entity: str = "Bell batch"


class BellItemNotFoundError(NotFoundError):
    code: str = "BELL_ITEM_NOT_FOUND"
    entity: str = "Bell item"


class ExpenseHeadNotFoundError(NotFoundError):
    code: str = "EXPENSE_HEAD_NOT_FOUND"
    entity: str = "Expense head"


# =============================================================================
# Business-rule violations
# =============================================================================


class InsufficientStockError(ErpKernelError):
    """An OUT movement would take an item's stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        current_stock: Decimal,
        requested: Decimal,
        item_name: str | None = None,
    ):
        self.item_id = item_id
        self.item_name = item_name
        self.current_stock = current_stock
        self.requested = requested
        self.shortfall = requested - current_stock
        label = item_name or item_id
        super().__init__(
            f"Insufficient stock for {label}. Need {requested}, have {current_stock}"
        )


class InsufficientFundsError(ErpKernelError):
    """An advance does not have enough unallocated balance."""

    code: str = "INSUFFICIENT_FUNDS"

    def __init__(self, payment_id: str, available: Decimal, requested: Decimal):
        self.payment_id = payment_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient advance balance on {payment_id}. "
            f"Available: {available}, requested: {requested}"
        )


# =============================================================================
# State errors
# =============================================================================


class InvalidStateError(ErpKernelError):
    """Operation is not valid in the current document / payment state."""

    code: str = "INVALID_STATE"

    def __init__(self, message: str, entity_id: str | None = None, state: str | None = None):
        self.entity_id = entity_id
        self.state = state
        super().__init__(message)


class DocumentNotDraftError(InvalidStateError):
    code: str = "DOCUMENT_NOT_DRAFT"

    def __init__(self, document_id: str, status: str):
        super().__init__(
            f"Document {document_id} is {status}; only Draft documents can be confirmed",
            entity_id=document_id,
            state=status,
        )


class DocumentNotConfirmedError(InvalidStateError):
    code: str = "DOCUMENT_NOT_CONFIRMED"

    def __init__(self, document_id: str, status: str):
        super().__init__(
            f"Document {document_id} is {status}; payments require a Confirmed document",
            entity_id=document_id,
            state=status,
        )


class DocumentPaidError(InvalidStateError):
    code: str = "DOCUMENT_PAID"

    def __init__(self, document_id: str, payment_status: str, paid_amount: Decimal):
        self.paid_amount = paid_amount
        super().__init__(
            f"Cannot void document {document_id} with payment status "
            f"{payment_status} (paid {paid_amount}). Reverse payments first.",
            entity_id=document_id,
            state=payment_status,
        )


class PaymentAlreadyReversedError(InvalidStateError):
    code: str = "PAYMENT_ALREADY_REVERSED"

    def __init__(self, payment_id: str):
        super().__init__(
            f"Payment {payment_id} is already reversed",
            entity_id=payment_id,
            state="Reversed",
        )


class NotAnAdvanceError(InvalidStateError):
    code: str = "NOT_AN_ADVANCE"

    def __init__(self, payment_id: str):
        super().__init__(
            f"Payment {payment_id} is not an advance",
            entity_id=payment_id,
        )


class AdvanceConsumedError(InvalidStateError):
    """Reversal of an advance whose balance has been spent elsewhere."""

    code: str = "ADVANCE_CONSUMED"

    def __init__(self, payment_id: str, consumed: Decimal):
        self.consumed = consumed
        super().__init__(
            f"Advance {payment_id} has {consumed} already adjusted against "
            "other documents; reverse those first",
            entity_id=payment_id,
        )


class BatchNotInProgressError(InvalidStateError):
    code: str = "BATCH_NOT_IN_PROGRESS"

    def __init__(self, batch_id: str, status: str):
        super().__init__(
            f"Production batch {batch_id} is {status}",
            entity_id=batch_id,
            state=status,
        )


class BellNotAvailableError(InvalidStateError):
    """A bell on an invoice line has already been sold or deleted."""

    code: str = "BELL_NOT_AVAILABLE"

    def __init__(self, bell_item_id: str, bell_code: str, status: str):
        self.bell_code = bell_code
        super().__init__(
            f"Bell {bell_code} is {status}",
            entity_id=bell_item_id,
            state=status,
        )


class BellBatchNotDeletableError(InvalidStateError):
    code: str = "BELL_BATCH_NOT_DELETABLE"

    def __init__(self, batch_id: str, status: str, issued_codes: tuple[str, ...] = ()):
        self.issued_codes = issued_codes
        reason = f"bells {', '.join(issued_codes)} are issued" if issued_codes else f"it is {status}"
        super().__init__(
            f"Bell batch {batch_id} cannot be deleted: {reason}",
            entity_id=batch_id,
            state=status,
        )


# =============================================================================
# Consistency errors
# =============================================================================


class ConsistencyError(ErpKernelError):
    """Recomputed totals diverge from stored running figures."""

    code: str = "CONSISTENCY_ERROR"


class StockBalanceDivergenceError(ConsistencyError):
    code: str = "STOCK_BALANCE_DIVERGENCE"

    def __init__(self, item_id: str, stored: Decimal, recomputed: Decimal):
        self.item_id = item_id
        self.stored = stored
        self.recomputed = recomputed
        super().__init__(
            f"Stored running balance {stored} for item {item_id} diverges "
            f"from recomputed stock {recomputed}"
        )


class OutstandingDivergenceError(ConsistencyError):
    code: str = "OUTSTANDING_DIVERGENCE"

    def __init__(self, party_id: str, stored: Decimal, recomputed: Decimal):
        self.party_id = party_id
        self.stored = stored
        self.recomputed = recomputed
        super().__init__(
            f"Stored outstanding {stored} for party {party_id} diverges "
            f"from recomputed {recomputed}"
        )


class UnbalancedPostingError(ConsistencyError):
    code: str = "UNBALANCED_POSTING"

    def __init__(self, debits: Decimal, credits: Decimal, amount: Decimal):
        self.debits = debits
        self.credits = credits
        self.amount = amount
        super().__init__(
            f"Posting is unbalanced: debits={debits}, credits={credits}, amount={amount}"
        )

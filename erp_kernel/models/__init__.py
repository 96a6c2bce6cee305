"""Persistence models for the ERP kernel."""

from erp_kernel.models.account import Account, AccountTransaction, AccountType
from erp_kernel.models.bell import BellBatch, BellBatchStatus, BellItem, BellStatus
from erp_kernel.models.document import (
    Document,
    DocumentLine,
    DocumentStatus,
    DocumentType,
    PaymentStatus,
)
from erp_kernel.models.expense import Expense, ExpenseHead
from erp_kernel.models.financial import (
    FinancialEntity,
    FinancialEntityType,
    FinancialTransaction,
    FinancialTransactionLedger,
    FinancialTransactionType,
)
from erp_kernel.models.general_ledger import GeneralLedgerEntry, LedgerType, VoucherType
from erp_kernel.models.item import ITEM_MODELS, FinishedProduct, ItemType, RawMaterial
from erp_kernel.models.party import Party, PartyType
from erp_kernel.models.payment import (
    AdvanceAdjustment,
    PaymentAllocation,
    PaymentMode,
    PaymentTransaction,
    PaymentType,
    TransactionStatus,
)
from erp_kernel.models.production import (
    BatchStatus,
    ProductionBatch,
    ProductionBatchInput,
    ProductionBatchOutput,
)
from erp_kernel.models.sequence import SequenceCounter
from erp_kernel.models.stock_movement import MovementType, StockMovement

__all__ = [
    "Account",
    "AccountTransaction",
    "AccountType",
    "AdvanceAdjustment",
    "BatchStatus",
    "BellBatch",
    "BellBatchStatus",
    "BellItem",
    "BellStatus",
    "Document",
    "DocumentLine",
    "DocumentStatus",
    "DocumentType",
    "Expense",
    "ExpenseHead",
    "FinancialEntity",
    "FinancialEntityType",
    "FinancialTransaction",
    "FinancialTransactionLedger",
    "FinancialTransactionType",
    "FinishedProduct",
    "GeneralLedgerEntry",
    "ITEM_MODELS",
    "ItemType",
    "LedgerType",
    "MovementType",
    "Party",
    "PartyType",
    "PaymentAllocation",
    "PaymentMode",
    "PaymentStatus",
    "PaymentTransaction",
    "PaymentType",
    "ProductionBatch",
    "ProductionBatchInput",
    "ProductionBatchOutput",
    "RawMaterial",
    "SequenceCounter",
    "StockMovement",
    "TransactionStatus",
    "VoucherType",
]

"""Services for the ERP kernel (write side)."""

from erp_kernel.services.account_service import AccountService
from erp_kernel.services.advance_service import AdvanceService
from erp_kernel.services.bell_service import BellService
from erp_kernel.services.document_service import DocumentService
from erp_kernel.services.expense_service import ExpenseService
from erp_kernel.services.financial_poster import FinancialPoster
from erp_kernel.services.general_ledger import GeneralLedgerWriter
from erp_kernel.services.kernel import ErpKernel
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.payment_service import PaymentService
from erp_kernel.services.production_service import ProductionService
from erp_kernel.services.reversal_service import ReversalService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedgerService
from erp_kernel.services.summary_cache import (
    CacheKeys,
    CacheTtl,
    InMemorySummaryCache,
    NullSummaryCache,
    SummaryCache,
)
from erp_kernel.services.summary_service import CacheInvalidator, SummaryService

__all__ = [
    "AccountService",
    "AdvanceService",
    "BellService",
    "CacheInvalidator",
    "CacheKeys",
    "CacheTtl",
    "DocumentService",
    "ErpKernel",
    "ExpenseService",
    "FinancialPoster",
    "GeneralLedgerWriter",
    "InMemorySummaryCache",
    "NullSummaryCache",
    "PartyLedgerService",
    "PaymentService",
    "ProductionService",
    "ReversalService",
    "SequenceService",
    "StockLedgerService",
    "SummaryCache",
    "SummaryService",
]

"""Read-only query selectors (the Q side of CQRS-lite)."""

from erp_kernel.selectors.base import BaseSelector
from erp_kernel.selectors.document_selector import DocumentSelector
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.selectors.party_selector import PartySelector
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "DocumentSelector",
    "FinanceSelector",
    "PartySelector",
    "PaymentSelector",
    "StockSelector",
]

"""
SummaryService -- precomputed summaries and their invalidation.

Responsibility:
    Computes the stock summary, dashboard KPIs and account balance list on a
    cache miss and stores them under their CacheKeys entry.  CacheInvalidator
    is the narrow write-side handle every mutating service receives; it only
    deletes keys.

Architecture position:
    Kernel > Services.  Reads through selectors; never mutates business rows.

Invariants enforced:
    - Cached values are derived.  A stale read is bounded by the TTL and by
      explicit invalidation after every mutation that affects the figure.
    - Invalidation happens after the mutating service has flushed.
"""

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.dtos import (
    AccountBalance,
    DashboardKpis,
    StockSummary,
    StockTypeSummary,
)
from erp_kernel.domain.values import ZERO, round_money, round_quantity
from erp_kernel.logging_config import get_logger
from erp_kernel.models.account import AccountType
from erp_kernel.models.document import DocumentType
from erp_kernel.models.item import ItemType
from erp_kernel.models.party import PartyType
from erp_kernel.models.payment import PaymentType
from erp_kernel.selectors.document_selector import DocumentSelector
from erp_kernel.selectors.finance_selector import FinanceSelector
from erp_kernel.selectors.party_selector import PartySelector
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.selectors.stock_selector import StockSelector
from erp_kernel.services.summary_cache import (
    CacheKeys,
    CacheTtl,
    NullSummaryCache,
    SummaryCache,
)

logger = get_logger("services.summary")


class CacheInvalidator:
    """Deletes summary cache keys on behalf of mutating services."""

    def __init__(self, cache: SummaryCache | None = None):
        self.cache = cache or NullSummaryCache()

    def _invalidate(self, key: str) -> None:
        removed = self.cache.delete(key)
        logger.debug("cache_invalidated", extra={"cache_key": key, "removed": removed})

    def invalidate_stock_summary(self) -> None:
        self._invalidate(CacheKeys.STOCK_SUMMARY)

    def invalidate_dashboard_kpis(self) -> None:
        self._invalidate(CacheKeys.DASHBOARD_KPIS)

    def invalidate_account_balances(self) -> None:
        self._invalidate(CacheKeys.ACCOUNT_BALANCES)
        self._invalidate(CacheKeys.ACCOUNTS)

    def invalidate_masters(self, party_type: str | None = None) -> None:
        if party_type is None:
            self._invalidate(CacheKeys.CUSTOMERS)
            self._invalidate(CacheKeys.SUPPLIERS)
        else:
            self._invalidate(CacheKeys.masters_for(party_type))

    def invalidate_all(self) -> None:
        count = self.cache.delete_prefix(CacheKeys.PRECOMPUTED_PREFIX)
        count += self.cache.delete_prefix(CacheKeys.MASTERS_PREFIX)
        logger.info("cache_invalidated_all", extra={"removed": count})


class SummaryService(CacheInvalidator):
    """
    Read-through cache for dashboard style summaries.

    Usage:
        summaries = SummaryService(session, cache, clock)
        kpis = summaries.dashboard_kpis()      # computed on first call
        kpis = summaries.dashboard_kpis()      # served from cache
    """

    def __init__(
        self,
        session,
        cache: SummaryCache | None = None,
        clock: Clock | None = None,
        ttl: CacheTtl | None = None,
    ):
        super().__init__(cache)
        self.session = session
        self.clock = clock or SystemClock()
        self.ttl = ttl or CacheTtl()

    def _cached(self, key: str, ttl_seconds: int, compute):
        value = self.cache.get(key)
        if value is not None:
            logger.debug("cache_hit", extra={"cache_key": key})
            return value
        value = compute()
        self.cache.set(key, value, ttl_seconds)
        logger.debug("cache_miss_computed", extra={"cache_key": key})
        return value

    def stock_summary(self) -> StockSummary:
        return self._cached(CacheKeys.STOCK_SUMMARY, self.ttl.computed, self._compute_stock_summary)

    def dashboard_kpis(self) -> DashboardKpis:
        return self._cached(CacheKeys.DASHBOARD_KPIS, self.ttl.computed, self._compute_dashboard_kpis)

    def account_balances(self) -> list[AccountBalance]:
        return self._cached(
            CacheKeys.ACCOUNT_BALANCES,
            self.ttl.volatile,
            lambda: FinanceSelector(self.session).account_balances(),
        )

    def _type_summary(self, selector: StockSelector, item_type: str) -> StockTypeSummary:
        items = selector.items_with_stock(item_type)
        return StockTypeSummary(
            item_count=len(items),
            total_stock=round_quantity(sum((i.current_stock for i in items), ZERO)),
            low_stock_count=sum(1 for i in items if i.is_low_stock),
        )

    def _compute_stock_summary(self) -> StockSummary:
        selector = StockSelector(self.session)
        return StockSummary(
            raw_materials=self._type_summary(selector, ItemType.RAW_MATERIAL.value),
            finished_products=self._type_summary(selector, ItemType.FINISHED_PRODUCT.value),
            stock_in_process=selector.stock_in_process(),
            stock_in_bell=selector.stock_in_bell(),
            computed_at=self.clock.now(),
        )

    def _compute_dashboard_kpis(self) -> DashboardKpis:
        parties = PartySelector(self.session)
        documents = DocumentSelector(self.session)
        payments = PaymentSelector(self.session)
        by_type = FinanceSelector(self.session).balance_by_account_type()

        return DashboardKpis(
            total_receivables=parties.total_outstanding(PartyType.CUSTOMER.value),
            total_payables=parties.total_outstanding(PartyType.SUPPLIER.value),
            cash_balance=by_type.get(AccountType.CASH.value, round_money(ZERO)),
            bank_balance=by_type.get(AccountType.BANK.value, round_money(ZERO)),
            pending_invoices=documents.pending_count(DocumentType.SALES_INVOICE.value),
            pending_bills=documents.pending_count(DocumentType.PURCHASE_BILL.value),
            total_collections=payments.completed_total(PaymentType.RECEIPT.value),
            total_payments=payments.completed_total(PaymentType.PAYMENT.value),
            computed_at=self.clock.now(),
        )

"""
Summary cache: TTL expiry, statistics, and invalidation by kernel mutations.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from erp_kernel.domain.dtos import (
    AccountFunding,
    Allocation,
    ExpenseRequest,
    FinancialTransactionRequest,
    PaymentRequest,
    ProductionInput,
)
from erp_kernel.models.party import Party
from erp_kernel.services.summary_cache import (
    CacheKeys,
    CacheTtl,
    InMemorySummaryCache,
    NullSummaryCache,
)
from erp_kernel.services.summary_service import CacheInvalidator


class TestInMemorySummaryCache:

    def test_entry_expires_after_ttl(self, cache, deterministic_clock):
        cache.set("precomputed:x", 1, ttl_seconds=60)

        deterministic_clock.advance(59)
        assert cache.get("precomputed:x") == 1

        deterministic_clock.advance(1)
        assert cache.get("precomputed:x") is None
        assert len(cache) == 0

    def test_stats(self, cache):
        cache.set("a", "value", ttl_seconds=60)
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        assert cache.stats.hits == 2
        assert cache.stats.misses == 1
        assert cache.stats.hit_rate == pytest.approx(2 / 3)

    def test_hit_rate_without_reads(self):
        assert InMemorySummaryCache().stats.hit_rate == 0.0

    def test_delete_counts_only_present_keys(self, cache):
        cache.set("a", 1, ttl_seconds=60)

        assert cache.delete("a")
        assert not cache.delete("a")
        assert cache.stats.invalidations == 1

    def test_delete_prefix(self, cache):
        cache.set(CacheKeys.CUSTOMERS, [], ttl_seconds=60)
        cache.set(CacheKeys.SUPPLIERS, [], ttl_seconds=60)
        cache.set(CacheKeys.STOCK_SUMMARY, {}, ttl_seconds=60)

        assert cache.delete_prefix(CacheKeys.MASTERS_PREFIX) == 2
        assert CacheKeys.STOCK_SUMMARY in cache
        assert CacheKeys.CUSTOMERS not in cache

    def test_clear(self, cache):
        cache.set("a", 1, ttl_seconds=60)
        cache.clear()
        assert len(cache) == 0

    def test_null_cache_stores_nothing(self):
        null = NullSummaryCache()
        null.set("a", 1, ttl_seconds=60)

        assert null.get("a") is None
        assert not null.delete("a")
        assert null.delete_prefix("") == 0

    def test_default_ttls(self):
        ttl = CacheTtl()
        assert (ttl.master, ttl.computed, ttl.volatile) == (1800, 300, 60)


class TestCacheInvalidator:

    def test_masters_by_party_type(self, cache):
        cache.set(CacheKeys.CUSTOMERS, [], ttl_seconds=60)
        cache.set(CacheKeys.SUPPLIERS, [], ttl_seconds=60)

        CacheInvalidator(cache).invalidate_masters("supplier")

        assert CacheKeys.CUSTOMERS in cache
        assert CacheKeys.SUPPLIERS not in cache

    def test_account_balances_drops_account_masters(self, cache):
        cache.set(CacheKeys.ACCOUNT_BALANCES, [], ttl_seconds=60)
        cache.set(CacheKeys.ACCOUNTS, [], ttl_seconds=60)

        CacheInvalidator(cache).invalidate_account_balances()

        assert len(cache) == 0

    def test_invalidate_all_keeps_foreign_keys(self, cache):
        for key in (CacheKeys.STOCK_SUMMARY, CacheKeys.DASHBOARD_KPIS, CacheKeys.CUSTOMERS):
            cache.set(key, {}, ttl_seconds=60)
        cache.set("session:abc", {}, ttl_seconds=60)

        CacheInvalidator(cache).invalidate_all()

        assert len(cache) == 1
        assert "session:abc" in cache


class TestSummaryService:

    def test_stock_summary_served_from_cache_until_ttl(self, kernel, deterministic_clock):
        first = kernel.summaries.stock_summary()

        assert kernel.summaries.stock_summary() is first
        deterministic_clock.advance(CacheTtl().computed)
        assert kernel.summaries.stock_summary() is not first

    def test_stock_movement_invalidates_summary(self, kernel, make_raw_material, receive_stock):
        material = make_raw_material()
        receive_stock(material, Decimal("10"))
        before = kernel.summaries.stock_summary()

        receive_stock(material, Decimal("5"))
        after = kernel.summaries.stock_summary()

        assert after is not before
        assert after.raw_materials.total_stock == before.raw_materials.total_stock + Decimal("5")

    def test_dashboard_kpis(self, kernel, customer, supplier, bank, make_sales_invoice, make_purchase_bill):
        invoice = make_sales_invoice(customer)
        make_purchase_bill(supplier)
        kernel.payments.create_payment(
            PaymentRequest(
                payment_type="RECEIPT",
                party_id=customer.id,
                amount=Decimal("500"),
                funding=AccountFunding(bank.id),
                allocations=(Allocation(invoice.id, Decimal("500")),),
            )
        )

        kpis = kernel.summaries.dashboard_kpis()

        assert kpis.total_receivables == Decimal("680.00")
        assert kpis.total_payables == Decimal("1180.00")
        assert kpis.bank_balance == Decimal("500.00")
        assert kpis.cash_balance == Decimal("0.00")
        assert kpis.pending_invoices == 1
        assert kpis.pending_bills == 1
        assert kpis.total_collections == Decimal("500.00")
        assert kpis.total_payments == Decimal("0.00")

    def test_confirmed_invoice_invalidates_kpis(self, kernel, customer, make_sales_invoice):
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("0.00")

        make_sales_invoice(customer)

        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("1180.00")

    def test_payment_invalidates_account_balances(self, kernel, customer, bank):
        (before,) = kernel.summaries.account_balances()
        assert before.balance == Decimal("0.00")

        kernel.payments.create_payment(
            PaymentRequest(
                payment_type="RECEIPT",
                party_id=customer.id,
                amount=Decimal("250"),
                funding=AccountFunding(bank.id),
            )
        )

        (after,) = kernel.summaries.account_balances()
        assert after.account_id == bank.id
        assert after.balance == Decimal("250.00")


class TestMutationsInvalidateCache:
    """Each mutation drops the cached figures it changes; the next read recomputes."""

    def _receipt(self, kernel, customer, bank, amount, allocations=()):
        return kernel.payments.create_payment(
            PaymentRequest(
                payment_type="RECEIPT",
                party_id=customer.id,
                amount=Decimal(amount),
                funding=AccountFunding(bank.id),
                allocations=tuple(Allocation(doc.id, Decimal(a)) for doc, a in allocations),
            )
        )

    def test_reverse_payment(self, kernel, cache, customer, bank, make_sales_invoice):
        invoice = make_sales_invoice(customer)
        result = self._receipt(kernel, customer, bank, "500", [(invoice, "500")])
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("680.00")
        (balance,) = kernel.summaries.account_balances()
        assert balance.balance == Decimal("500.00")

        kernel.reversals.reverse_payment(result.payment_id, reason="Cheque bounced")

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert CacheKeys.ACCOUNT_BALANCES not in cache
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("1180.00")
        (balance,) = kernel.summaries.account_balances()
        assert balance.balance == Decimal("0.00")

    def test_adjust_advance(self, kernel, cache, customer, bank, make_sales_invoice):
        advance = self._receipt(kernel, customer, bank, "2000")
        invoice = make_sales_invoice(customer)
        assert kernel.summaries.dashboard_kpis().pending_invoices == 1

        kernel.advances.adjust_advance(advance.payment_id, invoice.id, Decimal("1180"))

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert kernel.summaries.dashboard_kpis().pending_invoices == 0

    def test_void_document(self, kernel, cache, customer, make_sales_invoice):
        invoice = make_sales_invoice(customer)
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("1180.00")

        kernel.documents.void_document(invoice.id)

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("0.00")

    def test_post_financial_transaction(self, kernel, cache, bank, lender):
        assert kernel.summaries.dashboard_kpis().bank_balance == Decimal("0.00")
        (balance,) = kernel.summaries.account_balances()
        assert balance.balance == Decimal("0.00")

        kernel.financial.post_financial_transaction(
            FinancialTransactionRequest(
                transaction_type="LOAN_TAKEN",
                account_id=bank.id,
                amount=Decimal("10000"),
                entity_id=lender.id,
            )
        )

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert CacheKeys.ACCOUNT_BALANCES not in cache
        assert kernel.summaries.dashboard_kpis().bank_balance == Decimal("10000.00")
        (balance,) = kernel.summaries.account_balances()
        assert balance.balance == Decimal("10000.00")

    def test_post_expense(self, kernel, cache, bank):
        rent = kernel.expenses.create_expense_head("Rent")
        assert kernel.summaries.dashboard_kpis().bank_balance == Decimal("0.00")
        kernel.summaries.account_balances()

        kernel.expenses.post_expense(
            ExpenseRequest(rent.id, bank.id, Decimal("750"), payment_mode="Bank")
        )

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert CacheKeys.ACCOUNT_BALANCES not in cache
        assert kernel.summaries.dashboard_kpis().bank_balance == Decimal("-750.00")

    def test_recalculate_from_source(self, kernel, session, cache, customer, make_sales_invoice):
        make_sales_invoice(customer)
        session.execute(
            update(Party)
            .where(Party.id == customer.id)
            .values(outstanding=Decimal("999"))
            .execution_options(synchronize_session=False)
        )
        session.expire(customer)
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("999.00")

        kernel.parties.recalculate_from_source("customer")

        assert CacheKeys.DASHBOARD_KPIS not in cache
        assert kernel.summaries.dashboard_kpis().total_receivables == Decimal("1180.00")

    def test_cancel_batch(self, kernel, cache, make_raw_material, receive_stock):
        material = make_raw_material()
        receive_stock(material, Decimal("50"))
        batch = kernel.production.start_batch([ProductionInput(material.id, Decimal("20"))])
        assert kernel.summaries.stock_summary().stock_in_process == Decimal("20.000")

        kernel.production.cancel_batch(batch.batch_id)

        assert CacheKeys.STOCK_SUMMARY not in cache
        summary = kernel.summaries.stock_summary()
        assert summary.stock_in_process == Decimal("0.000")
        assert summary.raw_materials.total_stock == Decimal("50.000")

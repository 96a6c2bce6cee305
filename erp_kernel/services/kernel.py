"""
ErpKernel -- constructs and wires every kernel service onto one session.

Responsibility:
    Creates each service exactly once, in dependency order, and exposes them
    as attributes.  No service constructs another service internally.

Architecture position:
    Kernel > Services -- the single point of dependency injection.  Settings
    arrive as plain values; the kernel never imports erp_config.

Usage:
    with session_scope() as session:
        kernel = ErpKernel(session, cache=cache, clock=clock)
        kernel.documents.confirm_document(invoice_id)
        kernel.payments.create_payment(request)

Non-goals:
    - Does NOT manage transaction boundaries (caller's responsibility).
    - Does NOT own the Session lifecycle (no commit/rollback).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.services.account_service import AccountService
from erp_kernel.services.advance_service import AdvanceService
from erp_kernel.services.bell_service import BellService
from erp_kernel.services.document_service import DocumentService
from erp_kernel.services.expense_service import ExpenseService
from erp_kernel.services.financial_poster import FinancialPoster
from erp_kernel.services.general_ledger import GeneralLedgerWriter
from erp_kernel.services.party_ledger import PartyLedgerService
from erp_kernel.services.payment_service import PaymentService
from erp_kernel.services.production_service import ProductionService
from erp_kernel.services.reversal_service import ReversalService
from erp_kernel.services.sequence_service import SequenceService
from erp_kernel.services.stock_ledger import StockLedgerService
from erp_kernel.services.summary_cache import CacheTtl, SummaryCache
from erp_kernel.services.summary_service import SummaryService


class ErpKernel:
    """
    Central factory for kernel services.

    All services share the same Session, Clock and SummaryCache, so a
    mutation made by one service invalidates what SummaryService serves.
    """

    def __init__(
        self,
        session: Session,
        cache: SummaryCache | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        cache_ttl: CacheTtl | None = None,
        company_state_code: str = "27",
        loss_threshold_percent: Decimal = Decimal("5"),
        code_width: int = 4,
    ) -> None:
        self.session = session
        self.clock = clock or SystemClock()

        # Foundational services
        self.summaries = SummaryService(session, cache, self.clock, cache_ttl)
        self.sequences = SequenceService(session, code_width=code_width)
        self.general_ledger = GeneralLedgerWriter(session, self.clock, actor_id)

        # Hot-counter owners
        invalidator = self.summaries
        self.stock = StockLedgerService(session, self.sequences, invalidator, self.clock, actor_id)
        self.parties = PartyLedgerService(session, invalidator, self.clock, actor_id)
        self.accounts = AccountService(session, invalidator, self.clock, actor_id)
        self.bells = BellService(session, self.stock, self.sequences, invalidator, self.clock, actor_id)
        self.documents = DocumentService(
            session,
            self.stock,
            self.parties,
            self.sequences,
            self.bells,
            invalidator,
            self.clock,
            actor_id,
            company_state_code=company_state_code,
        )
        self.advances = AdvanceService(
            session, self.documents, self.parties, invalidator, self.clock, actor_id
        )

        # Engines
        self.payments = PaymentService(
            session,
            self.documents,
            self.parties,
            self.accounts,
            self.advances,
            self.general_ledger,
            self.sequences,
            invalidator,
            self.clock,
            actor_id,
        )
        self.reversals = ReversalService(
            session,
            self.documents,
            self.parties,
            self.accounts,
            self.advances,
            self.general_ledger,
            self.sequences,
            invalidator,
            self.clock,
            actor_id,
        )
        self.financial = FinancialPoster(
            session,
            self.accounts,
            self.general_ledger,
            self.sequences,
            invalidator,
            self.clock,
            actor_id,
        )
        self.expenses = ExpenseService(
            session,
            self.accounts,
            self.general_ledger,
            self.sequences,
            invalidator,
            self.clock,
            actor_id,
        )
        self.production = ProductionService(
            session,
            self.stock,
            self.sequences,
            invalidator,
            self.clock,
            actor_id,
            loss_threshold_percent=loss_threshold_percent,
        )

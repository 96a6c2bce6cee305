"""
PartyLedgerService -- sole owner of Party.outstanding.

Responsibility:
    Moves a customer's receivable or a supplier's payable up and down, and
    recomputes it from documents and open advances when it has drifted.

Architecture position:
    Kernel > Services.  Called by DocumentService (confirm / void),
    PaymentService, AdvanceService and ReversalService.

Invariants enforced:
    - Every incremental change is one SQL statement,
      ``outstanding = CASE WHEN outstanding + delta < 0 THEN 0
      ELSE outstanding + delta END``, issued with the party row locked so
      the figure before the change is known.  That CASE is the only place
      the zero floor is applied.
    - outstanding is never negative.  Overpayment beyond the allocations of
      a payment lives on as advance_balance of that payment, not as a
      negative outstanding.
    - recalculate_from_source() is the only absolute write:
      max(0, SUM(balance_amount of Confirmed documents) - SUM(open advance
      balances)).

Failure modes:
    - PartyNotFoundError for an unknown party.
    - ValidationError for a negative amount.
    - OutstandingDivergenceError from verify_outstanding().
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, select, update

from erp_kernel.domain.dtos import PartyBalance
from erp_kernel.domain.values import ZERO, money_equal, round_money
from erp_kernel.exceptions import (
    OutstandingDivergenceError,
    PartyNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.party import Party, PartyType
from erp_kernel.selectors.document_selector import PARTY_DOCUMENT_TYPE, DocumentSelector
from erp_kernel.selectors.payment_selector import PaymentSelector
from erp_kernel.services.base import BaseService
from erp_kernel.services.summary_service import CacheInvalidator

logger = get_logger("services.party_ledger")


class PartyLedgerService(BaseService):
    """
    Single entry point for party outstanding.

    Usage:
        ledger = PartyLedgerService(session, invalidator)
        ledger.increase(customer.id, Decimal("1180"))   # invoice confirmed
        ledger.decrease(customer.id, Decimal("500"))    # receipt recorded
    """

    def __init__(self, session, invalidator: CacheInvalidator | None = None, clock=None, actor_id=None):
        super().__init__(session, clock, actor_id)
        self._invalidator = invalidator or CacheInvalidator()
        self._documents = DocumentSelector(session)
        self._payments = PaymentSelector(session)

    def get_party(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def increase(self, party_id: UUID, amount: Decimal) -> Decimal:
        """Raise outstanding by amount.  Returns the new outstanding."""
        return self._apply(party_id, self._positive(amount))[1]

    def decrease(self, party_id: UUID, amount: Decimal) -> Decimal:
        """Lower outstanding by amount, floored at zero.  Returns the new outstanding."""
        return self._apply(party_id, -self._positive(amount))[1]

    def settle(self, party_id: UUID, amount: Decimal) -> Decimal:
        """
        Lower outstanding like decrease() and return the part of amount that
        was actually taken off.

        With 300 outstanding, settling 500 leaves 0 and returns 300.  A
        payment stores this figure so that reversing it puts back exactly
        what it removed.
        """
        previous, outstanding = self._apply(party_id, -self._positive(amount))
        return round_money(previous - outstanding)

    def _apply(self, party_id: UUID, delta: Decimal) -> tuple[Decimal, Decimal]:
        previous = self.session.execute(
            select(Party.outstanding).where(Party.id == party_id).with_for_update()
        ).scalar_one_or_none()
        if previous is None:
            raise PartyNotFoundError(str(party_id))

        new_value = Party.outstanding + delta
        self.session.execute(
            update(Party)
            .where(Party.id == party_id)
            .values(outstanding=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )

        party = self._reload(party_id)
        outstanding = round_money(party.outstanding)

        logger.info(
            "party_outstanding_changed",
            extra={
                "party_id": str(party_id),
                "delta": str(delta),
                "outstanding": str(outstanding),
            },
        )
        self._invalidator.invalidate_masters(party.party_type)
        self._invalidator.invalidate_dashboard_kpis()
        return round_money(previous), outstanding

    def _reload(self, party_id: UUID) -> Party:
        return self.session.execute(
            select(Party).where(Party.id == party_id).execution_options(populate_existing=True)
        ).scalar_one()

    @staticmethod
    def _positive(amount: Decimal) -> Decimal:
        amount = round_money(amount)
        if amount < ZERO:
            raise ValidationError("Outstanding change must be non-negative", field="amount")
        return amount

    # -------------------------------------------------------------------------
    # Drift correction
    # -------------------------------------------------------------------------

    def recomputed_outstanding(self, party_id: UUID) -> Decimal:
        """Outstanding as it follows from documents and open advances."""
        self.get_party(party_id)
        documents = self._documents.confirmed_balance(party_id)
        advances = self._payments.open_advance_total(party_id)
        return round_money(max(ZERO, documents - advances))

    def verify_outstanding(self, party_id: UUID) -> Decimal:
        """
        Raises:
            OutstandingDivergenceError: stored and recomputed outstanding
                differ by more than 0.01.
        """
        stored = round_money(self.get_party(party_id).outstanding)
        recomputed = self.recomputed_outstanding(party_id)
        if not money_equal(stored, recomputed):
            logger.error(
                "outstanding_divergence",
                extra={
                    "party_id": str(party_id),
                    "stored": str(stored),
                    "recomputed": str(recomputed),
                },
            )
            raise OutstandingDivergenceError(str(party_id), stored, recomputed)
        return stored

    def recalculate_from_source(self, party_type: str | None = None) -> list[PartyBalance]:
        """
        Reset outstanding of every party (of one type, or all) to the value
        recomputed from Confirmed documents and open advances.

        Returns:
            One PartyBalance per party, with the previous stored figure in
            ``outstanding`` and the new one in ``recomputed``.
        """
        party_types = [party_type] if party_type else [t.value for t in PartyType]
        results: list[PartyBalance] = []
        corrected = 0

        for current_type in party_types:
            documents = self._documents.confirmed_balance_by_party(PARTY_DOCUMENT_TYPE[current_type])
            advances = self._payments.open_advance_by_party(current_type)

            parties = self.session.execute(
                select(Party)
                .where(Party.party_type == current_type)
                .order_by(Party.code)
                .with_for_update()
            ).scalars().all()

            for party in parties:
                stored = round_money(party.outstanding)
                recomputed = round_money(
                    max(ZERO, documents.get(party.id, ZERO) - advances.get(party.id, ZERO))
                )
                if stored != recomputed:
                    corrected += 1
                    self.session.execute(
                        update(Party)
                        .where(Party.id == party.id)
                        .values(outstanding=recomputed)
                        .execution_options(synchronize_session=False)
                    )
                    logger.warning(
                        "outstanding_corrected",
                        extra={
                            "party_id": str(party.id),
                            "stored": str(stored),
                            "recomputed": str(recomputed),
                        },
                    )
                results.append(
                    PartyBalance(
                        party_id=party.id,
                        code=party.code,
                        name=party.name,
                        party_type=party.party_type,
                        outstanding=stored,
                        recomputed=recomputed,
                    )
                )

        self.session.flush()
        # Expire so later reads see the corrected figures
        self.session.expire_all()

        logger.info(
            "outstanding_recalculated",
            extra={"party_count": len(results), "corrected": corrected},
        )
        self._invalidator.invalidate_masters(party_type)
        self._invalidator.invalidate_dashboard_kpis()
        return results

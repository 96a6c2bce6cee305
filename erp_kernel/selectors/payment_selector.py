"""
Module: erp_kernel.selectors.payment_selector
Responsibility: Read models over receipts and payments: open advances,
    allocation history, idempotency lookups and collection totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Open advance money is read from PaymentTransaction.advance_balance
      only.  AdvanceAdjustment rows are history and are never summed to
      derive a balance.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from erp_kernel.domain.dtos import AvailableAdvance
from erp_kernel.domain.values import round_money
from erp_kernel.models.payment import (
    AdvanceAdjustment,
    PaymentAllocation,
    PaymentTransaction,
    TransactionStatus,
)
from erp_kernel.selectors.base import BaseSelector


class PaymentSelector(BaseSelector):

    def by_idempotency_key(self, key: str) -> PaymentTransaction | None:
        return self.session.execute(
            select(PaymentTransaction).where(PaymentTransaction.idempotency_key == key)
        ).scalar_one_or_none()

    def adjustment_by_idempotency_key(self, key: str) -> AdvanceAdjustment | None:
        return self.session.execute(
            select(AdvanceAdjustment).where(AdvanceAdjustment.idempotency_key == key)
        ).scalar_one_or_none()

    def available_advances(self, party_id: UUID) -> list[AvailableAdvance]:
        """Completed advances of a party that still have money left, oldest first."""
        rows = self.session.execute(
            select(PaymentTransaction)
            .where(
                PaymentTransaction.party_id == party_id,
                PaymentTransaction.is_advance.is_(True),
                PaymentTransaction.status == TransactionStatus.COMPLETED.value,
                PaymentTransaction.advance_balance > 0,
            )
            .order_by(PaymentTransaction.payment_date, PaymentTransaction.code)
        ).scalars()

        return [
            AvailableAdvance(
                payment_id=p.id,
                code=p.code,
                payment_date=p.payment_date,
                amount=round_money(p.amount),
                advance_balance=round_money(p.advance_balance),
            )
            for p in rows
        ]

    def open_advance_total(self, party_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(PaymentTransaction.advance_balance), 0)).where(
                PaymentTransaction.party_id == party_id,
                PaymentTransaction.is_advance.is_(True),
                PaymentTransaction.status == TransactionStatus.COMPLETED.value,
            )
        ).scalar_one()
        return round_money(self.as_decimal(total))

    def open_advance_by_party(self, party_type: str) -> dict[UUID, Decimal]:
        rows = self.session.execute(
            select(PaymentTransaction.party_id, func.sum(PaymentTransaction.advance_balance))
            .where(
                PaymentTransaction.party_type == party_type,
                PaymentTransaction.is_advance.is_(True),
                PaymentTransaction.status == TransactionStatus.COMPLETED.value,
            )
            .group_by(PaymentTransaction.party_id)
        ).all()
        return {party_id: round_money(self.as_decimal(total)) for party_id, total in rows}

    def allocations_for(self, payment_id: UUID) -> list[PaymentAllocation]:
        return list(
            self.session.execute(
                select(PaymentAllocation).where(PaymentAllocation.payment_id == payment_id)
            ).scalars()
        )

    def adjustments_for(self, payment_id: UUID) -> list[AdvanceAdjustment]:
        return list(
            self.session.execute(
                select(AdvanceAdjustment)
                .where(AdvanceAdjustment.payment_id == payment_id)
                .order_by(AdvanceAdjustment.adjusted_at)
            ).scalars()
        )

    def completed_total(self, payment_type: str) -> Decimal:
        """
        Sum of Completed payment amounts of a type, excluding advance-funded
        payments (no new money moved).
        """
        total = self.session.execute(
            select(func.coalesce(func.sum(PaymentTransaction.amount), 0)).where(
                PaymentTransaction.payment_type == payment_type,
                PaymentTransaction.status == TransactionStatus.COMPLETED.value,
                PaymentTransaction.source_advance_id.is_(None),
            )
        ).scalar_one()
        return round_money(self.as_decimal(total))

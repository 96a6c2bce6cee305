"""
Module: erp_kernel.selectors.party_selector
Responsibility: Read models over customers and suppliers and their stored
    outstanding figures.
Architecture position: Kernel > Selectors.
"""

from decimal import Decimal

from sqlalchemy import func, select

from erp_kernel.domain.values import round_money
from erp_kernel.models.party import Party
from erp_kernel.selectors.base import BaseSelector


class PartySelector(BaseSelector):

    def total_outstanding(self, party_type: str) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(Party.outstanding), 0)).where(
                Party.party_type == party_type
            )
        ).scalar_one()
        return round_money(self.as_decimal(total))

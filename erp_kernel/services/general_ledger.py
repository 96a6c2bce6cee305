"""
GeneralLedgerWriter -- appends balanced voucher legs to the general ledger.

Responsibility:
    The one place that inserts GeneralLedgerEntry rows.  Payment, reversal
    and financial posting engines hand it legs; it checks balance and writes.

Architecture position:
    Kernel > Services.

Invariants enforced:
    - A voucher is written only if SUM(debit) == SUM(credit) across its legs.
    - Rows are never updated.  Corrections are new legs with is_reversal=True.
"""

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from erp_kernel.domain.dtos import LedgerLeg
from erp_kernel.domain.values import ZERO, round_money
from erp_kernel.exceptions import UnbalancedPostingError, ValidationError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.general_ledger import GeneralLedgerEntry, LedgerType, VoucherType
from erp_kernel.services.base import BaseService

logger = get_logger("services.general_ledger")


def reverse_legs(entries: Sequence[GeneralLedgerEntry]) -> tuple[LedgerLeg, ...]:
    """Mirror of posted entries: every debit becomes a credit and vice versa."""
    return tuple(
        LedgerLeg(
            ledger_id=entry.ledger_id,
            ledger_type=entry.ledger_type,
            debit=round_money(entry.credit_amount),
            credit=round_money(entry.debit_amount),
        )
        for entry in entries
    )


class GeneralLedgerWriter(BaseService):

    def post_voucher(
        self,
        voucher_number: str,
        voucher_type: str,
        legs: Sequence[LedgerLeg],
        reference_id: UUID | None = None,
        is_reversal: bool = False,
        description: str | None = None,
        transaction_date: datetime | None = None,
        leg_voucher_types: Sequence[str] | None = None,
    ) -> list[GeneralLedgerEntry]:
        """
        Write one voucher.

        Args:
            leg_voucher_types: Optional per-leg voucher type, parallel to
                ``legs``; financial postings book the bank leg as PAYMENT and
                the other legs as JOURNAL.

        Raises:
            ValidationError: no legs, or unknown voucher / ledger type.
            UnbalancedPostingError: debits != credits.
        """
        if not legs:
            raise ValidationError("A voucher needs at least one leg", field="legs")
        if leg_voucher_types is not None and len(leg_voucher_types) != len(legs):
            raise ValidationError("One voucher type per leg is required", field="legs")

        types = list(leg_voucher_types) if leg_voucher_types is not None else [voucher_type] * len(legs)
        valid_vouchers = {v.value for v in VoucherType}
        valid_ledgers = {t.value for t in LedgerType}
        for value in types:
            if value not in valid_vouchers:
                raise ValidationError(f"Unknown voucher type: {value}", field="voucher_type")
        for leg in legs:
            if leg.ledger_type not in valid_ledgers:
                raise ValidationError(f"Unknown ledger type: {leg.ledger_type}", field="ledger_type")

        debits = round_money(sum((leg.debit for leg in legs), ZERO))
        credits = round_money(sum((leg.credit for leg in legs), ZERO))
        if debits != credits:
            raise UnbalancedPostingError(debits, credits, debits)

        posted_at = transaction_date or self.clock.now()
        entries = [
            GeneralLedgerEntry(
                transaction_date=posted_at,
                voucher_number=voucher_number,
                voucher_type=leg_type,
                ledger_id=leg.ledger_id,
                ledger_type=leg.ledger_type,
                debit_amount=round_money(leg.debit),
                credit_amount=round_money(leg.credit),
                description=description,
                reference_id=reference_id,
                is_reversal=is_reversal,
            )
            for leg, leg_type in zip(legs, types)
        ]
        self.session.add_all(entries)
        self.session.flush()

        logger.info(
            "voucher_posted",
            extra={
                "voucher_number": voucher_number,
                "voucher_type": voucher_type,
                "leg_count": len(entries),
                "amount": str(debits),
                "is_reversal": is_reversal,
            },
        )
        return entries

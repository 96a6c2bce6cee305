"""
Balances -- pure derivation rule for document balances.

Responsibility:
    The three-way payment status rule.  DocumentService delegates to it so
    the rule exists in one place and can be property-tested without a
    database.  The zero floor of party outstanding lives in the single SQL
    statement of PartyLedgerService.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - balance = max(0, grand_total - paid)
    - status = Paid if paid >= grand_total, Partial if paid > 0, else Unpaid
"""

from decimal import Decimal
from typing import NamedTuple

from erp_kernel.domain.values import ZERO, round_money

PAID = "Paid"
PARTIAL = "Partial"
UNPAID = "Unpaid"


class PaymentState(NamedTuple):
    paid_amount: Decimal
    balance_amount: Decimal
    payment_status: str


def derive_payment_state(grand_total: Decimal, paid_amount: Decimal) -> PaymentState:
    """Derive balance and status of a document from its total and paid amount."""
    grand_total = round_money(grand_total)
    paid = round_money(max(paid_amount, ZERO))
    balance = max(ZERO, grand_total - paid)

    if paid >= grand_total:
        status = PAID
    elif paid > ZERO:
        status = PARTIAL
    else:
        status = UNPAID

    return PaymentState(paid, round_money(balance), status)


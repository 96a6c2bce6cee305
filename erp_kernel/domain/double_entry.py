"""
Double entry -- leg table for non-trade financial transactions.

Responsibility:
    Turns a financial transaction type and amount into balanced ledger legs.
    The poster persists exactly what derive_legs() returns after
    assert_balanced() has passed.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - SUM(debit) == SUM(credit) == amount for every transaction.
    - REPAYMENT: principal + interest == amount within 0.01.  The bank is
      credited the full amount, the counterparty debited the principal and
      interest expense debited the interest.

    type                 bank leg    party leg          party ledger type
    LOAN_TAKEN           Dr amount   Cr amount          LIABILITY
    LOAN_GIVEN           Cr amount   Dr amount          ASSET
    INVESTMENT_RECEIVED  Dr amount   Cr amount          CAPITAL
    INVESTMENT_MADE      Cr amount   Dr amount          ASSET
    BORROWING            Dr amount   Cr amount          LIABILITY
    REPAYMENT            Cr amount   Dr principal       LIABILITY
                                     (+ Dr interest to EXPENSE-INTEREST)
"""

from decimal import Decimal
from typing import NamedTuple

from erp_kernel.domain.dtos import LedgerLeg
from erp_kernel.domain.values import MONEY_TOLERANCE, ZERO, round_money
from erp_kernel.exceptions import (
    RepaymentSplitMismatchError,
    UnbalancedPostingError,
    ValidationError,
)

INTEREST_EXPENSE_LEDGER = "EXPENSE-INTEREST"
SELF_LEDGER = "SELF"


class _Rule(NamedTuple):
    bank_debit: bool
    party_ledger_type: str


_RULES: dict[str, _Rule] = {
    "LOAN_TAKEN": _Rule(bank_debit=True, party_ledger_type="LIABILITY"),
    "LOAN_GIVEN": _Rule(bank_debit=False, party_ledger_type="ASSET"),
    "INVESTMENT_RECEIVED": _Rule(bank_debit=True, party_ledger_type="CAPITAL"),
    "INVESTMENT_MADE": _Rule(bank_debit=False, party_ledger_type="ASSET"),
    "BORROWING": _Rule(bank_debit=True, party_ledger_type="LIABILITY"),
    "REPAYMENT": _Rule(bank_debit=False, party_ledger_type="LIABILITY"),
}

TRANSACTION_TYPES = frozenset(_RULES)


def split_repayment(
    amount: Decimal,
    principal: Decimal | None,
    interest: Decimal | None,
) -> tuple[Decimal, Decimal]:
    """
    Resolve the principal / interest split of a repayment.

    Missing principal defaults to the whole amount, missing interest to zero.

    Raises:
        RepaymentSplitMismatchError: principal + interest differs from amount
            by more than 0.01.
    """
    principal = round_money(amount if principal is None else principal)
    interest = round_money(ZERO if interest is None else interest)
    if principal < ZERO or interest < ZERO:
        raise ValidationError("Principal and interest must be non-negative", field="principal_amount")
    if abs(principal + interest - round_money(amount)) > MONEY_TOLERANCE:
        raise RepaymentSplitMismatchError(round_money(amount), principal, interest)
    return principal, interest


def derive_legs(
    transaction_type: str,
    amount: Decimal,
    bank_ledger_id: str,
    bank_ledger_type: str,
    party_ledger_id: str | None,
    principal: Decimal | None = None,
    interest: Decimal | None = None,
) -> tuple[LedgerLeg, ...]:
    """
    Derive the ledger legs of a financial transaction.

    Args:
        transaction_type: One of TRANSACTION_TYPES.
        amount: Positive transaction amount.
        bank_ledger_id: Id of the bank / cash account moved.
        bank_ledger_type: BANK or CASH.
        party_ledger_id: Counterparty entity id; None posts to SELF.
        principal / interest: REPAYMENT split only.

    Raises:
        ValidationError: unknown type or non-positive amount.
        RepaymentSplitMismatchError: REPAYMENT split does not add up.
    """
    rule = _RULES.get(transaction_type)
    if rule is None:
        raise ValidationError(
            f"Invalid financial transaction type: {transaction_type}",
            field="transaction_type",
        )

    amount = round_money(amount)
    if amount <= ZERO:
        raise ValidationError("Amount must be positive", field="amount")

    party_id = party_ledger_id or SELF_LEDGER

    if rule.bank_debit:
        return (
            LedgerLeg(bank_ledger_id, bank_ledger_type, debit=amount),
            LedgerLeg(party_id, rule.party_ledger_type, credit=amount),
        )

    if transaction_type != "REPAYMENT":
        return (
            LedgerLeg(bank_ledger_id, bank_ledger_type, credit=amount),
            LedgerLeg(party_id, rule.party_ledger_type, debit=amount),
        )

    principal, interest = split_repayment(amount, principal, interest)
    # A split difference within tolerance is carried by the principal leg
    principal = amount - interest

    legs = [LedgerLeg(bank_ledger_id, bank_ledger_type, credit=amount)]
    if principal > ZERO:
        legs.append(LedgerLeg(party_id, rule.party_ledger_type, debit=principal))
    if interest > ZERO:
        legs.append(LedgerLeg(INTEREST_EXPENSE_LEDGER, "EXPENSE", debit=interest))

    return tuple(legs)


def assert_balanced(legs: tuple[LedgerLeg, ...], amount: Decimal) -> None:
    """
    Raises:
        UnbalancedPostingError: debits != credits or either != amount.
    """
    debits = sum((leg.debit for leg in legs), ZERO)
    credits = sum((leg.credit for leg in legs), ZERO)
    if debits != credits or debits != round_money(amount):
        raise UnbalancedPostingError(debits, credits, round_money(amount))

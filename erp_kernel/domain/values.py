"""
Values -- money and quantity rounding rules.

Responsibility:
    The single place where money (2 places) and stock quantities (3 places)
    are rounded, and where "equal within tolerance" is defined.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - No floats.  to_decimal() rejects them outright.
    - Rounding is half-up everywhere.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
MONEY_TOLERANCE = Decimal("0.01")
QUANTITY_TOLERANCE = Decimal("0.001")

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
_QUANTITY_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)
_WHOLE = Decimal("1")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Raises:
        TypeError: for float input.
    """
    if isinstance(value, float):
        raise TypeError(f"float not allowed for money or quantity: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(amount: Decimal | int | str) -> Decimal:
    """Round a monetary amount to 2 places, half-up."""
    return to_decimal(amount).quantize(_MONEY_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_quantity(quantity: Decimal | int | str) -> Decimal:
    """Round a stock quantity to 3 places, half-up."""
    return to_decimal(quantity).quantize(_QUANTITY_QUANTUM, rounding=DEFAULT_ROUNDING)


def round_whole(amount: Decimal) -> Decimal:
    """Round to the nearest rupee, as document grand totals are."""
    return round_money(to_decimal(amount).quantize(_WHOLE, rounding=DEFAULT_ROUNDING))


def money_equal(a: Decimal, b: Decimal) -> bool:
    return abs(round_money(a) - round_money(b)) < MONEY_TOLERANCE


def quantity_equal(a: Decimal, b: Decimal) -> bool:
    return abs(round_quantity(a) - round_quantity(b)) < QUANTITY_TOLERANCE

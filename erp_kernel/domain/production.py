"""Production loss arithmetic."""

from decimal import Decimal

from erp_kernel.domain.values import ZERO, round_money

HUNDRED = Decimal("100")


def loss_percent(input_quantity: Decimal, output_quantity: Decimal) -> Decimal:
    """(input - output) / input * 100, rounded to 2 places; zero for no input."""
    if input_quantity <= ZERO:
        return round_money(ZERO)
    return round_money((input_quantity - output_quantity) / input_quantity * HUNDRED)


def is_loss_exceeded(percent: Decimal, threshold: Decimal) -> bool:
    return percent > threshold

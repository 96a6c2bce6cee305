"""
Tax -- line amount and GST computation for trade documents.

Intra-state supply splits GST into equal CGST and SGST halves; inter-state
supply charges IGST.  The grand total is rounded to the nearest whole unit
and the difference is kept as round_off.
"""

from decimal import Decimal
from typing import NamedTuple

from erp_kernel.domain.values import ZERO, round_money, round_whole

HUNDRED = Decimal("100")


class LineAmounts(NamedTuple):
    amount: Decimal
    taxable_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal


class DocumentTotals(NamedTuple):
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_tax: Decimal
    round_off: Decimal
    grand_total: Decimal


def compute_line(
    quantity: Decimal,
    rate: Decimal,
    discount: Decimal,
    gst_percent: Decimal,
    inter_state: bool,
) -> LineAmounts:
    amount = round_money(quantity * rate)
    taxable = round_money(amount - discount)
    gst = taxable * gst_percent / HUNDRED

    if inter_state:
        cgst = sgst = ZERO
        igst = round_money(gst)
    else:
        cgst = sgst = round_money(gst / 2)
        igst = ZERO

    return LineAmounts(
        amount=amount,
        taxable_amount=taxable,
        cgst=round_money(cgst),
        sgst=round_money(sgst),
        igst=round_money(igst),
        total=round_money(taxable + cgst + sgst + igst),
    )


def compute_totals(lines: list[LineAmounts]) -> DocumentTotals:
    subtotal = sum((line.amount for line in lines), ZERO)
    taxable = sum((line.taxable_amount for line in lines), ZERO)
    cgst = sum((line.cgst for line in lines), ZERO)
    sgst = sum((line.sgst for line in lines), ZERO)
    igst = sum((line.igst for line in lines), ZERO)
    total_tax = cgst + sgst + igst

    exact = taxable + total_tax
    grand_total = round_whole(exact)

    return DocumentTotals(
        subtotal=round_money(subtotal),
        discount_amount=round_money(subtotal - taxable),
        taxable_amount=round_money(taxable),
        cgst=round_money(cgst),
        sgst=round_money(sgst),
        igst=round_money(igst),
        total_tax=round_money(total_tax),
        round_off=round_money(grand_total - exact),
        grand_total=grand_total,
    )

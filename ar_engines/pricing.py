"""
Module: ar_engines.pricing
Responsibility:
    Turn invoice and credit-note line items into stored line amounts and
    document totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Imports only
    ar_kernel.domain and ar_kernel.exceptions.

Invariants enforced:
    - Every line amount is rounded half-up to cents before it is summed, so
      ``subtotal == sum(line_total)`` holds exactly on the stored rows.
    - ``total_amount == subtotal + tax_amount - discount_amount``.

Failure modes:
    - ValidationError for an empty line list, a negative quantity or unit
      price, a discount percentage outside 0..100, a negative tax rate, or
      a pre-computed discount larger than the line it belongs to.

Usage:
    from ar_engines.pricing import LineInput, price_invoice_lines

    totals = price_invoice_lines([
        LineInput("Monthly dues", Decimal("2"), Decimal("100"),
                  discount_pct=Decimal("10"), tax_rate=Decimal("7")),
    ])
    totals.subtotal      # Decimal("180.00")
    totals.tax_amount    # Decimal("12.60")
    totals.total_amount  # Decimal("192.60")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from ar_kernel.domain.money import HUNDRED, ZERO, money_sum, round2, to_decimal
from ar_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class LineInput:
    """
    One line item as supplied by the caller.

    ``discount_amount`` is the absolute discount computed upstream by the
    discount engine; ``discount_pct`` is the line's own percentage discount.
    """

    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_pct: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    taxable: bool = True
    discount_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class PricedLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    discount_pct: Decimal
    tax_rate: Decimal
    taxable: bool
    discount_amount: Decimal
    line_total: Decimal
    tax_amount: Decimal
    sort_order: int


@dataclass(frozen=True)
class DocumentTotals:
    lines: tuple[PricedLine, ...]
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def _check_line(index: int, line: LineInput) -> tuple[Decimal, Decimal, Decimal, Decimal, Decimal]:
    quantity = to_decimal(line.quantity, f"line_items[{index}].quantity")
    unit_price = to_decimal(line.unit_price, f"line_items[{index}].unit_price")
    discount_pct = to_decimal(line.discount_pct, f"line_items[{index}].discount_pct")
    tax_rate = to_decimal(line.tax_rate, f"line_items[{index}].tax_rate")
    discount_amount = round2(to_decimal(line.discount_amount, f"line_items[{index}].discount_amount"))

    if quantity < 0:
        raise ValidationError(
            "Quantity cannot be negative", field=f"line_items[{index}].quantity", value=quantity
        )
    if unit_price < 0:
        raise ValidationError(
            "Unit price cannot be negative", field=f"line_items[{index}].unit_price", value=unit_price
        )
    if not ZERO <= discount_pct <= HUNDRED:
        raise ValidationError(
            "Discount percentage must be between 0 and 100",
            field=f"line_items[{index}].discount_pct",
            value=discount_pct,
        )
    if tax_rate < 0:
        raise ValidationError(
            "Tax rate cannot be negative", field=f"line_items[{index}].tax_rate", value=tax_rate
        )
    if discount_amount < 0:
        raise ValidationError(
            "Discount amount cannot be negative",
            field=f"line_items[{index}].discount_amount",
            value=discount_amount,
        )
    return quantity, unit_price, discount_pct, tax_rate, discount_amount


def price_line(index: int, line: LineInput) -> PricedLine:
    """Price one invoice line (percentage discount applies before tax)."""
    quantity, unit_price, discount_pct, tax_rate, discount_amount = _check_line(index, line)

    line_total = round2(quantity * unit_price * (1 - discount_pct / HUNDRED))
    tax_amount = round2(line_total * tax_rate / HUNDRED) if line.taxable else ZERO

    if discount_amount > line_total + tax_amount:
        raise ValidationError(
            "Discount exceeds line amount",
            field=f"line_items[{index}].discount_amount",
            value=discount_amount,
        )

    return PricedLine(
        description=line.description,
        quantity=quantity,
        unit_price=unit_price,
        discount_pct=discount_pct,
        tax_rate=tax_rate,
        taxable=line.taxable,
        discount_amount=discount_amount,
        line_total=line_total,
        tax_amount=tax_amount,
        sort_order=index,
    )


def _totals(priced: Sequence[PricedLine]) -> DocumentTotals:
    subtotal = money_sum(p.line_total for p in priced)
    tax_amount = money_sum(p.tax_amount for p in priced)
    discount_amount = money_sum(p.discount_amount for p in priced)
    return DocumentTotals(
        lines=tuple(priced),
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total_amount=round2(subtotal + tax_amount - discount_amount),
    )


def price_invoice_lines(lines: Sequence[LineInput]) -> DocumentTotals:
    if not lines:
        raise ValidationError("An invoice needs at least one line item", field="line_items")
    return _totals([price_line(i, line) for i, line in enumerate(lines)])


def price_credit_note_lines(lines: Sequence[LineInput]) -> DocumentTotals:
    """
    Credit-note lines: ``line_total = quantity * unit_price``, tax only on
    taxable lines.  Percentage and absolute discounts do not apply.
    """
    if not lines:
        raise ValidationError("A credit note needs at least one line item", field="line_items")

    priced = []
    for index, line in enumerate(lines):
        quantity, unit_price, _, tax_rate, _ = _check_line(index, line)
        line_total = round2(quantity * unit_price)
        tax_amount = round2(line_total * tax_rate / HUNDRED) if line.taxable else ZERO
        priced.append(
            PricedLine(
                description=line.description,
                quantity=quantity,
                unit_price=unit_price,
                discount_pct=Decimal("0"),
                tax_rate=tax_rate,
                taxable=line.taxable,
                discount_amount=ZERO,
                line_total=line_total,
                tax_amount=tax_amount,
                sort_order=index,
            )
        )

    totals = _totals(priced)
    if totals.total_amount <= 0:
        raise ValidationError(
            "Credit note total must be positive", field="line_items", value=totals.total_amount
        )
    return totals

"""
Tests for invoice and credit-note line pricing.

Covers:
- Percentage discount before tax
- Non-taxable lines
- Pre-computed discount amounts
- Credit-note pricing (no discounts, positive total)
- Input validation
"""

from decimal import Decimal

import pytest

from ar_engines.pricing import (
    LineInput,
    price_credit_note_lines,
    price_invoice_lines,
    price_line,
)
from ar_kernel.exceptions import ValidationError


class TestInvoiceLinePricing:
    """Tests for price_line / price_invoice_lines."""

    def test_discount_applies_before_tax(self):
        """2 x 100 at 10% off and 7% tax is 180.00 + 12.60."""
        totals = price_invoice_lines([
            LineInput(
                "Monthly dues",
                Decimal("2"),
                Decimal("100"),
                discount_pct=Decimal("10"),
                tax_rate=Decimal("7"),
            ),
        ])

        assert totals.subtotal == Decimal("180.00")
        assert totals.tax_amount == Decimal("12.60")
        assert totals.discount_amount == Decimal("0.00")
        assert totals.total_amount == Decimal("192.60")

    def test_non_taxable_line_has_no_tax(self):
        line = price_line(0, LineInput(
            "Locker rental", Decimal("1"), Decimal("40"), tax_rate=Decimal("8"), taxable=False,
        ))

        assert line.line_total == Decimal("40.00")
        assert line.tax_amount == Decimal("0.00")

    def test_line_amounts_round_half_up_before_summing(self):
        """Each line is rounded to cents, so subtotal is the sum of stored lines."""
        totals = price_invoice_lines([
            LineInput("Range balls", Decimal("3"), Decimal("0.335")),
            LineInput("Range balls", Decimal("3"), Decimal("0.335")),
        ])

        assert [p.line_total for p in totals.lines] == [Decimal("1.01"), Decimal("1.01")]
        assert totals.subtotal == Decimal("2.02")

    def test_precomputed_discount_reduces_total(self):
        totals = price_invoice_lines([
            LineInput("Guest fee", Decimal("1"), Decimal("50"), discount_amount=Decimal("5")),
        ])

        assert totals.discount_amount == Decimal("5.00")
        assert totals.total_amount == Decimal("45.00")

    def test_sort_order_follows_input_order(self):
        totals = price_invoice_lines([
            LineInput("Dues", Decimal("1"), Decimal("100")),
            LineInput("F&B minimum", Decimal("1"), Decimal("25")),
        ])

        assert [p.sort_order for p in totals.lines] == [0, 1]
        assert [p.description for p in totals.lines] == ["Dues", "F&B minimum"]

    def test_zero_price_line_is_allowed(self):
        totals = price_invoice_lines([LineInput("Complimentary round", Decimal("1"), Decimal("0"))])

        assert totals.total_amount == Decimal("0.00")


class TestInvoiceLineValidation:
    """Rejected inputs name the offending field."""

    def test_empty_line_list_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            price_invoice_lines([])
        assert exc_info.value.field == "line_items"

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            price_invoice_lines([LineInput("Dues", Decimal("-1"), Decimal("10"))])
        assert exc_info.value.field == "line_items[0].quantity"

    def test_negative_unit_price_rejected(self):
        with pytest.raises(ValidationError):
            price_invoice_lines([LineInput("Dues", Decimal("1"), Decimal("-10"))])

    @pytest.mark.parametrize("pct", ["-1", "100.01", "150"])
    def test_discount_pct_outside_range_rejected(self, pct):
        with pytest.raises(ValidationError):
            price_invoice_lines([
                LineInput("Dues", Decimal("1"), Decimal("10"), discount_pct=Decimal(pct)),
            ])

    def test_full_percentage_discount_allowed(self):
        totals = price_invoice_lines([
            LineInput("Dues", Decimal("1"), Decimal("10"), discount_pct=Decimal("100")),
        ])
        assert totals.total_amount == Decimal("0.00")

    def test_negative_tax_rate_rejected(self):
        with pytest.raises(ValidationError):
            price_invoice_lines([LineInput("Dues", Decimal("1"), Decimal("10"), tax_rate=Decimal("-5"))])

    def test_discount_larger_than_line_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            price_invoice_lines([
                LineInput("Dues", Decimal("1"), Decimal("10"), discount_amount=Decimal("10.01")),
            ])
        assert exc_info.value.field == "line_items[0].discount_amount"

    def test_error_points_at_second_line(self):
        with pytest.raises(ValidationError) as exc_info:
            price_invoice_lines([
                LineInput("Dues", Decimal("1"), Decimal("10")),
                LineInput("Cart fee", Decimal("-2"), Decimal("10")),
            ])
        assert exc_info.value.field == "line_items[1].quantity"


class TestCreditNotePricing:
    """Credit notes ignore discounts and must total more than zero."""

    def test_credit_note_lines_taxed_when_taxable(self):
        totals = price_credit_note_lines([
            LineInput("Returned shirt", Decimal("2"), Decimal("25"), tax_rate=Decimal("6")),
            LineInput("Cancelled lesson", Decimal("1"), Decimal("60"), taxable=False),
        ])

        assert totals.subtotal == Decimal("110.00")
        assert totals.tax_amount == Decimal("3.00")
        assert totals.total_amount == Decimal("113.00")

    def test_credit_note_ignores_discount_fields(self):
        totals = price_credit_note_lines([
            LineInput("Refund", Decimal("1"), Decimal("80"), discount_pct=Decimal("50")),
        ])

        assert totals.total_amount == Decimal("80.00")
        assert totals.lines[0].discount_pct == Decimal("0")

    def test_zero_total_credit_note_rejected(self):
        with pytest.raises(ValidationError):
            price_credit_note_lines([LineInput("Nothing", Decimal("1"), Decimal("0"))])

    def test_empty_credit_note_rejected(self):
        with pytest.raises(ValidationError):
            price_credit_note_lines([])

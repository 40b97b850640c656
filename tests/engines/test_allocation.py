"""
Tests for FIFO payment allocation.

Covers:
- Oldest due date first, invoice number as tie-breaker
- Partial allocation of the last invoice reached
- Remaining amount when the payment exceeds all balances
- Zero-balance invoices skipped
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from ar_engines.allocation import OpenInvoice, fifo_allocate, fifo_order


def _invoice(number: str, due: date, balance: str) -> OpenInvoice:
    return OpenInvoice(uuid4(), number, due, Decimal(balance))


class TestFifoOrder:

    def test_orders_by_due_date(self):
        late = _invoice("INV-2024-00001", date(2024, 2, 10), "10")
        early = _invoice("INV-2024-00002", date(2024, 1, 10), "10")

        assert fifo_order([late, early]) == [early, late]

    def test_invoice_number_breaks_same_day_ties(self):
        b = _invoice("INV-2024-00002", date(2024, 1, 10), "10")
        a = _invoice("INV-2024-00001", date(2024, 1, 10), "10")

        assert fifo_order([b, a]) == [a, b]


class TestFifoAllocate:

    def test_120_across_100_and_150(self):
        """Oldest invoice paid in full, the next one partially."""
        a = _invoice("INV-2024-00001", date(2024, 1, 10), "100")
        b = _invoice("INV-2024-00002", date(2024, 2, 10), "150")

        plan = fifo_allocate(Decimal("120"), [b, a])

        assert [p.invoice_id for p in plan.allocations] == [a.invoice_id, b.invoice_id]
        assert [p.amount for p in plan.allocations] == [Decimal("100.00"), Decimal("20.00")]
        assert [p.new_balance for p in plan.allocations] == [Decimal("0.00"), Decimal("130.00")]
        assert plan.total_allocated == Decimal("120.00")
        assert plan.remaining == Decimal("0.00")
        assert plan.invoice_count == 2

    def test_overpayment_leaves_remaining(self):
        a = _invoice("INV-2024-00001", date(2024, 1, 10), "100")

        plan = fifo_allocate(Decimal("175.50"), [a])

        assert plan.total_allocated == Decimal("100.00")
        assert plan.remaining == Decimal("75.50")

    def test_stops_once_amount_is_used(self):
        a = _invoice("INV-2024-00001", date(2024, 1, 10), "100")
        b = _invoice("INV-2024-00002", date(2024, 2, 10), "150")

        plan = fifo_allocate(Decimal("60"), [a, b])

        assert plan.invoice_count == 1
        assert plan.allocations[0].previous_balance == Decimal("100.00")
        assert plan.allocations[0].new_balance == Decimal("40.00")

    def test_zero_balance_invoices_skipped(self):
        settled = _invoice("INV-2024-00001", date(2024, 1, 1), "0")
        open_ = _invoice("INV-2024-00002", date(2024, 2, 1), "30")

        plan = fifo_allocate(Decimal("30"), [settled, open_])

        assert [p.invoice_id for p in plan.allocations] == [open_.invoice_id]

    def test_no_invoices_everything_remains(self):
        plan = fifo_allocate(Decimal("42"), [])

        assert plan.allocations == ()
        assert plan.remaining == Decimal("42.00")


class TestFifoProperties:

    @settings(max_examples=100)
    @given(
        amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2),
        balances=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("5000"), places=2),
            max_size=8,
        ),
    )
    def test_allocated_plus_remaining_equals_amount(self, amount, balances):
        invoices = [
            _invoice(f"INV-2024-{i:05d}", date(2024, 1, 1 + i), str(b))
            for i, b in enumerate(balances)
        ]

        plan = fifo_allocate(amount, invoices)

        assert plan.total_allocated + plan.remaining == amount
        by_id = {inv.invoice_id: inv for inv in invoices}
        for p in plan.allocations:
            assert Decimal("0") < p.amount <= by_id[p.invoice_id].balance_due

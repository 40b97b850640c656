"""
Module: ar_engines.allocation
Responsibility:
    Distribute a payment amount over an account's open invoices, oldest
    due date first (FIFO settlement).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``sum(allocation.amount) + remaining == payment amount``.
    - No allocation exceeds the invoice's balance.
    - Invoices with a zero balance are skipped.
    - Ordering is ``(due_date, invoice_number)``: the invoice number breaks
      ties between invoices due on the same day.

Usage:
    result = fifo_allocate(Decimal("120"), [
        OpenInvoice(a_id, "INV-2024-00001", date(2024, 1, 10), Decimal("100")),
        OpenInvoice(b_id, "INV-2024-00002", date(2024, 2, 10), Decimal("150")),
    ])
    [a.amount for a in result.allocations]  # [Decimal("100.00"), Decimal("20.00")]
    result.remaining                        # Decimal("0.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from ar_kernel.domain.money import ZERO, round2, subtract
from ar_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class OpenInvoice:
    """Snapshot of an invoice that can still receive money."""

    invoice_id: UUID
    invoice_number: str
    due_date: date
    balance_due: Decimal


@dataclass(frozen=True)
class PlannedAllocation:
    invoice_id: UUID
    invoice_number: str
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    allocations: tuple[PlannedAllocation, ...]
    total_allocated: Decimal
    remaining: Decimal

    @property
    def invoice_count(self) -> int:
        return len(self.allocations)


def fifo_order(invoices: Sequence[OpenInvoice]) -> list[OpenInvoice]:
    return sorted(invoices, key=lambda inv: (inv.due_date, inv.invoice_number))


def fifo_allocate(amount: Decimal, invoices: Sequence[OpenInvoice]) -> AllocationPlan:
    """Allocate *amount* across *invoices* in FIFO order."""
    remaining = round2(amount)
    allocations: list[PlannedAllocation] = []

    for inv in fifo_order(invoices):
        if remaining <= 0:
            break
        balance = round2(inv.balance_due)
        if balance <= 0:
            continue
        applied = min(remaining, balance)
        allocations.append(
            PlannedAllocation(
                invoice_id=inv.invoice_id,
                invoice_number=inv.invoice_number,
                amount=applied,
                previous_balance=balance,
                new_balance=subtract(balance, applied),
            )
        )
        remaining = subtract(remaining, applied)

    total = round2(sum((a.amount for a in allocations), ZERO))
    logger.debug(
        "fifo_allocation_planned",
        extra={
            "amount": str(amount),
            "invoice_count": len(allocations),
            "total_allocated": str(total),
            "remaining": str(remaining),
        },
    )
    return AllocationPlan(
        allocations=tuple(allocations),
        total_allocated=total,
        remaining=remaining,
    )

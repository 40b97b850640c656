"""
Payment Domain Models (``ar_modules.payments.models``).

Responsibility
--------------
Frozen value objects for money received against an AR account and its
allocations to invoices.

Invariants enforced
-------------------
* ``amount > 0``.
* ``allocated_amount + credited_amount <= amount``; the rest is pending.
* An allocation never exceeds the invoice balance it was applied to
  (``new_balance == previous_balance - amount``).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ar_kernel.logging_config import get_logger

logger = get_logger("modules.payments.models")


class PaymentMethod(Enum):
    CASH = "CASH"
    CHECK = "CHECK"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    DIRECT_DEBIT = "DIRECT_DEBIT"
    OTHER = "OTHER"


@dataclass(frozen=True)
class AllocationRequest:
    """Caller instruction: put *amount* of a payment on one invoice."""
    invoice_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class PaymentAllocation:
    id: UUID
    payment_id: UUID
    invoice_id: UUID
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    created_at: datetime | None = None


@dataclass(frozen=True)
class Payment:
    """Money received from a member or city-ledger account."""
    id: UUID
    tenant_id: UUID
    account_id: UUID
    receipt_number: str
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    allocated_amount: Decimal
    credited_amount: Decimal
    allocations: tuple[PaymentAllocation, ...] = field(default_factory=tuple)
    reference_number: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.amount <= 0:
            logger.warning(
                "payment_invalid_amount",
                extra={"payment_id": str(self.id), "amount": str(self.amount)},
            )
            raise ValueError("Payment amount must be positive")
        if self.allocated_amount + self.credited_amount > self.amount:
            logger.warning(
                "payment_over_applied",
                extra={
                    "payment_id": str(self.id),
                    "allocated_amount": str(self.allocated_amount),
                    "credited_amount": str(self.credited_amount),
                    "amount": str(self.amount),
                },
            )
            raise ValueError(
                f"allocated ({self.allocated_amount}) + credited ({self.credited_amount}) "
                f"cannot exceed amount ({self.amount})"
            )

    @property
    def pending_amount(self) -> Decimal:
        """Received but neither allocated nor credited."""
        return self.amount - self.allocated_amount - self.credited_amount

    @property
    def is_fully_applied(self) -> bool:
        return self.pending_amount == 0


@dataclass(frozen=True)
class FifoPreview:
    """What ``settle_fifo`` would do with an amount, without doing it."""
    account_id: UUID
    amount: Decimal
    allocations: tuple  # tuple[ar_engines.allocation.PlannedAllocation, ...]
    total_allocated: Decimal
    unallocated: Decimal

    @property
    def invoice_count(self) -> int:
        return len(self.allocations)

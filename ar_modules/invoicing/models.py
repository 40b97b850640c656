"""
Invoicing Domain Models (``ar_modules.invoicing.models``).

Responsibility
--------------
Frozen value objects for member/city-ledger invoices and their lines, as
returned to callers of the ledger.

Invariants enforced
-------------------
* ``total_amount == subtotal + tax_amount - discount_amount``.
* ``paid_amount <= total_amount`` and ``balance_due >= 0``.
* For every status except VOID: ``balance_due == total_amount - paid_amount``.
  A voided invoice keeps its ``paid_amount`` but its balance is written
  off to zero.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ar_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.models")


class InvoiceStatus(Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


# Statuses whose balance can be collected (FIFO settlement, aging)
OUTSTANDING_STATUSES: tuple[InvoiceStatus, ...] = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
)


@dataclass(frozen=True)
class InvoiceLine:
    id: UUID
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
class Invoice:
    """A charge against an AR account."""
    id: UUID
    tenant_id: UUID
    account_id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date
    currency: str
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    status: InvoiceStatus = InvoiceStatus.DRAFT
    lines: tuple[InvoiceLine, ...] = field(default_factory=tuple)
    notes: str | None = None
    internal_notes: str | None = None
    billing_period: str | None = None
    sent_at: datetime | None = None
    paid_date: date | None = None
    voided_at: datetime | None = None

    def __post_init__(self):
        if self.balance_due < 0:
            logger.warning(
                "invoice_negative_balance",
                extra={"invoice_id": str(self.id), "balance_due": str(self.balance_due)},
            )
            raise ValueError("balance_due cannot be negative")
        if self.paid_amount > self.total_amount:
            logger.warning(
                "invoice_overpaid",
                extra={
                    "invoice_id": str(self.id),
                    "paid_amount": str(self.paid_amount),
                    "total_amount": str(self.total_amount),
                },
            )
            raise ValueError("paid_amount cannot exceed total_amount")

    @property
    def is_outstanding(self) -> bool:
        return self.status in OUTSTANDING_STATUSES and self.balance_due > 0


@dataclass(frozen=True)
class BatchFailure:
    """An account that could not be invoiced in a batch run."""
    account_id: UUID
    error_code: str
    message: str


@dataclass(frozen=True)
class BatchInvoiceResult:
    created: tuple[Invoice, ...]
    failed: tuple[BatchFailure, ...]

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

"""
Payment Arrangement Domain Models (``ar_modules.arrangements.models``).

Responsibility
--------------
Frozen value objects for payment arrangements: an agreement that an
account settles a set of invoices in scheduled installments.

Invariants enforced
-------------------
* ``sum(installment.amount) == total_amount``.
* ``paid_amount + remaining_amount == total_amount``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ar_engines.installments import Frequency
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.arrangements.models")

__all__ = [
    "ArrangementInstallment",
    "ArrangementStatus",
    "Frequency",
    "InstallmentStatus",
    "PaymentArrangement",
]


class ArrangementStatus(Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"
    CANCELLED = "CANCELLED"


class InstallmentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    WAIVED = "WAIVED"


# Installments that need no more money
SETTLED_INSTALLMENT_STATUSES = (InstallmentStatus.PAID, InstallmentStatus.WAIVED)


@dataclass(frozen=True)
class ArrangementInstallment:
    id: UUID
    arrangement_id: UUID
    installment_no: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    payment_id: UUID | None = None
    paid_at: datetime | None = None

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.paid_amount


@dataclass(frozen=True)
class PaymentArrangement:
    """An installment plan covering some of an account's invoices."""
    id: UUID
    tenant_id: UUID
    account_id: UUID
    arrangement_number: str
    installment_count: int
    frequency: Frequency
    start_date: date
    end_date: date
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: ArrangementStatus
    invoice_ids: tuple[UUID, ...] = field(default_factory=tuple)
    installments: tuple[ArrangementInstallment, ...] = field(default_factory=tuple)
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.paid_amount + self.remaining_amount != self.total_amount:
            logger.warning(
                "arrangement_totals_mismatch",
                extra={
                    "arrangement_id": str(self.id),
                    "paid_amount": str(self.paid_amount),
                    "remaining_amount": str(self.remaining_amount),
                    "total_amount": str(self.total_amount),
                },
            )
            raise ValueError("paid_amount + remaining_amount must equal total_amount")

    @property
    def next_due(self) -> ArrangementInstallment | None:
        for inst in self.installments:
            if inst.status not in SETTLED_INSTALLMENT_STATUSES:
                return inst
        return None

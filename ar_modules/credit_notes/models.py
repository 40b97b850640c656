"""
Credit Note Domain Models (``ar_modules.credit_notes.models``).

Responsibility
--------------
Frozen value objects for credit notes: money the club gives back to an
account, either as account credit, against specific invoices, or as a
refund.

Invariants enforced
-------------------
* ``applied_to_balance + refunded_amount <= total_amount``.
* ``total_amount == subtotal + tax_amount`` and is positive.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ar_kernel.logging_config import get_logger

logger = get_logger("modules.credit_notes.models")


class CreditNoteType(Enum):
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"
    COURTESY = "COURTESY"
    PROMO = "PROMO"
    WRITE_OFF = "WRITE_OFF"
    RETURN = "RETURN"
    CANCELLATION = "CANCELLATION"


class CreditNoteReason(Enum):
    BILLING_ERROR = "BILLING_ERROR"
    DUPLICATE_CHARGE = "DUPLICATE_CHARGE"
    SERVICE_NOT_RENDERED = "SERVICE_NOT_RENDERED"
    MEMBERSHIP_CANCELLATION = "MEMBERSHIP_CANCELLATION"
    PRODUCT_RETURN = "PRODUCT_RETURN"
    PRICE_ADJUSTMENT = "PRICE_ADJUSTMENT"
    CUSTOMER_SATISFACTION = "CUSTOMER_SATISFACTION"
    EVENT_CANCELLATION = "EVENT_CANCELLATION"
    RAIN_CHECK = "RAIN_CHECK"
    OVERPAYMENT = "OVERPAYMENT"
    OTHER = "OTHER"


class CreditNoteStatus(Enum):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    APPLIED = "APPLIED"
    PARTIALLY_APPLIED = "PARTIALLY_APPLIED"
    REFUNDED = "REFUNDED"
    VOIDED = "VOIDED"


@dataclass(frozen=True)
class CreditNoteLine:
    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    taxable: bool
    line_total: Decimal
    tax_amount: Decimal
    sort_order: int


@dataclass(frozen=True)
class CreditNoteApplication:
    """Part of a credit note applied to one invoice."""
    id: UUID
    credit_note_id: UUID
    invoice_id: UUID
    amount_applied: Decimal
    created_at: datetime | None = None


@dataclass(frozen=True)
class CreditNote:
    id: UUID
    tenant_id: UUID
    account_id: UUID
    credit_note_number: str
    type: CreditNoteType
    reason: CreditNoteReason
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    applied_to_balance: Decimal
    refunded_amount: Decimal
    status: CreditNoteStatus
    lines: tuple[CreditNoteLine, ...] = field(default_factory=tuple)
    applications: tuple[CreditNoteApplication, ...] = field(default_factory=tuple)
    reason_detail: str | None = None
    source_invoice_id: UUID | None = None
    internal_notes: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    voided_by: UUID | None = None
    voided_at: datetime | None = None

    def __post_init__(self):
        if self.applied_to_balance + self.refunded_amount > self.total_amount:
            logger.warning(
                "credit_note_over_applied",
                extra={
                    "credit_note_id": str(self.id),
                    "applied_to_balance": str(self.applied_to_balance),
                    "refunded_amount": str(self.refunded_amount),
                    "total_amount": str(self.total_amount),
                },
            )
            raise ValueError("applied_to_balance + refunded_amount cannot exceed total_amount")

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.applied_to_balance - self.refunded_amount

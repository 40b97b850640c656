"""
Module: ar_kernel.models.ledger_event
Responsibility: ORM persistence for the append-only ledger event log.
Architecture position: Kernel > Models.  Imports db/ only.

Invariants enforced:
    - Rows are never updated or deleted (ORM listeners raise
      ImmutabilityViolationError).
    - Every row is written in the same transaction as the mutation it
      describes; a rolled-back operation leaves no event.

Downstream consumers (GL export, notifications, reporting) read this table;
no ledger decision depends on it.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from ar_kernel.db.base import Base, UUIDString
from ar_kernel.exceptions import ImmutabilityViolationError


class LedgerEventType(str, Enum):

    ACCOUNT_OPENED = "account.opened"
    ACCOUNT_STATUS_CHANGED = "account.status_changed"
    ACCOUNT_BALANCES_RECALCULATED = "account.balances_recalculated"

    INVOICE_CREATED = "invoice.created"
    INVOICE_SENT = "invoice.sent"
    INVOICE_VOIDED = "invoice.voided"
    INVOICE_OVERDUE = "invoice.overdue"

    PAYMENT_RECORDED = "payment.recorded"
    PAYMENT_ALLOCATED = "payment.allocated"
    PAYMENT_SETTLED = "payment.settled"

    CREDIT_NOTE_CREATED = "credit_note.created"
    CREDIT_NOTE_SUBMITTED = "credit_note.submitted"
    CREDIT_NOTE_APPROVED = "credit_note.approved"
    CREDIT_NOTE_APPLIED = "credit_note.applied"
    CREDIT_NOTE_REFUNDED = "credit_note.refunded"
    CREDIT_NOTE_VOIDED = "credit_note.voided"

    ARRANGEMENT_CREATED = "arrangement.created"
    ARRANGEMENT_ACTIVATED = "arrangement.activated"
    ARRANGEMENT_INSTALLMENT_PAID = "arrangement.installment_paid"
    ARRANGEMENT_COMPLETED = "arrangement.completed"
    ARRANGEMENT_CANCELLED = "arrangement.cancelled"
    ARRANGEMENT_DEFAULTED = "arrangement.defaulted"


class LedgerEvent(Base):
    """One ledger mutation, as seen by downstream consumers."""

    __tablename__ = "ar_ledger_events"

    __table_args__ = (
        Index("idx_ledger_event_aggregate", "aggregate_type", "aggregate_id"),
        Index("idx_ledger_event_tenant_type", "tenant_id", "event_type"),
        Index("idx_ledger_event_occurred", "occurred_at"),
        UniqueConstraint("tenant_id", "seq", name="uq_ledger_event_tenant_seq"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Per-tenant monotonic order, from SequenceService
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # "invoice", "payment", "credit_note", ...
    aggregate_type: Mapped[str] = mapped_column(String(50), nullable=False)

    aggregate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    event_type: Mapped[str] = mapped_column(String(60), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<LedgerEvent {self.event_type} on {self.aggregate_type}:{self.aggregate_id}>"


@event.listens_for(LedgerEvent, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutabilityViolationError("LedgerEvent", target.id)


@event.listens_for(LedgerEvent, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutabilityViolationError("LedgerEvent", target.id)

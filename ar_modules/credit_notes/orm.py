"""
Credit Note ORM Models (``ar_modules.credit_notes.orm``).

Credit notes, their line items, and their applications to invoices.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ar_kernel.db.base import TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. CreditNoteModel
# ---------------------------------------------------------------------------


class CreditNoteModel(TrackedBase):
    """
    ORM model for credit notes.

    Guarantees:
        - credit_note_number is unique per tenant and never reused.
        - applied_to_balance + refunded_amount <= total_amount (maintained
          by CreditNoteService under the account lock).
    """

    __tablename__ = "ar_credit_notes"

    __table_args__ = (
        UniqueConstraint("tenant_id", "credit_note_number", name="uq_ar_credit_notes_tenant_number"),
        Index("idx_ar_credit_notes_account_status", "account_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("ar_accounts.id"), nullable=False)
    credit_note_number: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    reason_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_invoice_id: Mapped[UUID | None] = mapped_column(ForeignKey("ar_invoices.id"), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    applied_to_balance: Mapped[Decimal] = mapped_column(nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    voided_by: Mapped[UUID | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["CreditNoteLineModel"]] = relationship(
        back_populates="credit_note",
        cascade="all, delete-orphan",
        order_by="CreditNoteLineModel.sort_order",
        lazy="selectin",
    )
    applications: Mapped[list["CreditNoteApplicationModel"]] = relationship(
        back_populates="credit_note",
        cascade="all, delete-orphan",
        order_by="CreditNoteApplicationModel.position",
        lazy="selectin",
    )

    @property
    def remaining_amount(self) -> Decimal:
        return self.total_amount - self.applied_to_balance - self.refunded_amount

    def to_dto(self):
        from ar_modules.credit_notes.models import (
            CreditNote,
            CreditNoteReason,
            CreditNoteStatus,
            CreditNoteType,
        )

        return CreditNote(
            id=self.id,
            tenant_id=self.tenant_id,
            account_id=self.account_id,
            credit_note_number=self.credit_note_number,
            type=CreditNoteType(self.type),
            reason=CreditNoteReason(self.reason),
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            total_amount=self.total_amount,
            applied_to_balance=self.applied_to_balance,
            refunded_amount=self.refunded_amount,
            status=CreditNoteStatus(self.status),
            lines=tuple(line.to_dto() for line in self.lines),
            applications=tuple(app.to_dto() for app in self.applications),
            reason_detail=self.reason_detail,
            source_invoice_id=self.source_invoice_id,
            internal_notes=self.internal_notes,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            voided_by=self.voided_by,
            voided_at=self.voided_at,
        )

    def __repr__(self) -> str:
        return f"<CreditNoteModel {self.credit_note_number}: {self.total_amount} ({self.status})>"


# ---------------------------------------------------------------------------
# 2. CreditNoteLineModel
# ---------------------------------------------------------------------------


class CreditNoteLineModel(TrackedBase):

    __tablename__ = "ar_credit_note_lines"

    __table_args__ = (
        UniqueConstraint("credit_note_id", "sort_order", name="uq_ar_credit_note_lines_sort"),
    )

    credit_note_id: Mapped[UUID] = mapped_column(ForeignKey("ar_credit_notes.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sort_order: Mapped[int] = mapped_column(nullable=False)

    credit_note: Mapped["CreditNoteModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from ar_modules.credit_notes.models import CreditNoteLine

        return CreditNoteLine(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_rate=self.tax_rate,
            taxable=self.taxable,
            line_total=self.line_total,
            tax_amount=self.tax_amount,
            sort_order=self.sort_order,
        )

    @classmethod
    def from_priced(cls, priced, created_by_id: UUID) -> "CreditNoteLineModel":
        return cls(
            description=priced.description,
            quantity=priced.quantity,
            unit_price=priced.unit_price,
            tax_rate=priced.tax_rate,
            taxable=priced.taxable,
            line_total=priced.line_total,
            tax_amount=priced.tax_amount,
            sort_order=priced.sort_order,
            created_by_id=created_by_id,
        )


# ---------------------------------------------------------------------------
# 3. CreditNoteApplicationModel
# ---------------------------------------------------------------------------


class CreditNoteApplicationModel(TrackedBase):
    """Part of a credit note applied to one invoice."""

    __tablename__ = "ar_credit_note_applications"

    __table_args__ = (
        UniqueConstraint("credit_note_id", "position", name="uq_ar_credit_note_applications_position"),
        Index("idx_ar_credit_note_applications_invoice", "invoice_id"),
    )

    credit_note_id: Mapped[UUID] = mapped_column(ForeignKey("ar_credit_notes.id"), nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("ar_invoices.id"), nullable=False)
    amount_applied: Mapped[Decimal] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)

    credit_note: Mapped["CreditNoteModel"] = relationship(back_populates="applications")

    def to_dto(self):
        from ar_modules.credit_notes.models import CreditNoteApplication

        return CreditNoteApplication(
            id=self.id,
            credit_note_id=self.credit_note_id,
            invoice_id=self.invoice_id,
            amount_applied=self.amount_applied,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<CreditNoteApplicationModel note={self.credit_note_id} "
            f"invoice={self.invoice_id} amount={self.amount_applied}>"
        )

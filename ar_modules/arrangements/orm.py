"""
Payment Arrangement ORM Models (``ar_modules.arrangements.orm``).

Arrangements, the invoices they cover, and their installment schedule.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ar_kernel.db.base import TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. PaymentArrangementModel
# ---------------------------------------------------------------------------


class PaymentArrangementModel(TrackedBase):
    """
    ORM model for payment arrangements.

    Guarantees:
        - arrangement_number is unique per tenant.
        - Installments and invoice links load with the arrangement.
    """

    __tablename__ = "ar_payment_arrangements"

    __table_args__ = (
        UniqueConstraint("tenant_id", "arrangement_number", name="uq_ar_arrangements_tenant_number"),
        Index("idx_ar_arrangements_account_status", "account_id", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("ar_accounts.id"), nullable=False)
    arrangement_number: Mapped[str] = mapped_column(String(32), nullable=False)
    installment_count: Mapped[int] = mapped_column(nullable=False)
    frequency: Mapped[str] = mapped_column(String(10), nullable=False)
    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoice_links: Mapped[list["ArrangementInvoiceModel"]] = relationship(
        back_populates="arrangement",
        cascade="all, delete-orphan",
        order_by="ArrangementInvoiceModel.position",
        lazy="selectin",
    )
    installments: Mapped[list["ArrangementInstallmentModel"]] = relationship(
        back_populates="arrangement",
        cascade="all, delete-orphan",
        order_by="ArrangementInstallmentModel.installment_no",
        lazy="selectin",
    )

    def to_dto(self):
        from ar_modules.arrangements.models import ArrangementStatus, Frequency, PaymentArrangement

        return PaymentArrangement(
            id=self.id,
            tenant_id=self.tenant_id,
            account_id=self.account_id,
            arrangement_number=self.arrangement_number,
            installment_count=self.installment_count,
            frequency=Frequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            remaining_amount=self.remaining_amount,
            status=ArrangementStatus(self.status),
            invoice_ids=tuple(link.invoice_id for link in self.invoice_links),
            installments=tuple(inst.to_dto() for inst in self.installments),
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PaymentArrangementModel {self.arrangement_number}: {self.paid_amount}/{self.total_amount} ({self.status})>"


# ---------------------------------------------------------------------------
# 2. ArrangementInvoiceModel
# ---------------------------------------------------------------------------


class ArrangementInvoiceModel(TrackedBase):
    """Link row: one invoice covered by an arrangement."""

    __tablename__ = "ar_arrangement_invoices"

    __table_args__ = (
        UniqueConstraint("arrangement_id", "invoice_id", name="uq_ar_arrangement_invoice"),
        Index("idx_ar_arrangement_invoices_invoice", "invoice_id"),
    )

    arrangement_id: Mapped[UUID] = mapped_column(ForeignKey("ar_payment_arrangements.id"), nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("ar_invoices.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)

    arrangement: Mapped["PaymentArrangementModel"] = relationship(back_populates="invoice_links")


# ---------------------------------------------------------------------------
# 3. ArrangementInstallmentModel
# ---------------------------------------------------------------------------


class ArrangementInstallmentModel(TrackedBase):

    __tablename__ = "ar_arrangement_installments"

    __table_args__ = (
        UniqueConstraint("arrangement_id", "installment_no", name="uq_ar_installment_no"),
        Index("idx_ar_installments_due_status", "due_date", "status"),
    )

    arrangement_id: Mapped[UUID] = mapped_column(ForeignKey("ar_payment_arrangements.id"), nullable=False)
    installment_no: Mapped[int] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="PENDING")
    payment_id: Mapped[UUID | None] = mapped_column(ForeignKey("ar_payments.id"), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    arrangement: Mapped["PaymentArrangementModel"] = relationship(back_populates="installments")

    def to_dto(self):
        from ar_modules.arrangements.models import ArrangementInstallment, InstallmentStatus

        return ArrangementInstallment(
            id=self.id,
            arrangement_id=self.arrangement_id,
            installment_no=self.installment_no,
            due_date=self.due_date,
            amount=self.amount,
            paid_amount=self.paid_amount,
            status=InstallmentStatus(self.status),
            payment_id=self.payment_id,
            paid_at=self.paid_at,
        )

    def __repr__(self) -> str:
        return f"<ArrangementInstallmentModel #{self.installment_no} {self.amount} due {self.due_date} ({self.status})>"

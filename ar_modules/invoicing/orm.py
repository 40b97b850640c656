"""
Invoicing ORM Models (``ar_modules.invoicing.orm``).

Invoices and their line items.  Invoices are never deleted; voiding is a
status change.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ar_kernel.db.base import TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - invoice_number is unique per tenant (uq_ar_invoices_tenant_number).
        - Lines are loaded with the invoice (selectin) and cascade with it.
    """

    __tablename__ = "ar_invoices"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_ar_invoices_tenant_number"),
        Index("idx_ar_invoices_account_status", "account_id", "status"),
        Index("idx_ar_invoices_tenant_status", "tenant_id", "status"),
        Index("idx_ar_invoices_due_date", "due_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("ar_accounts.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False)
    invoice_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance_due: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_period: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["InvoiceLineModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineModel.sort_order",
        lazy="selectin",
    )

    def to_dto(self):
        from ar_modules.invoicing.models import Invoice, InvoiceStatus

        return Invoice(
            id=self.id,
            tenant_id=self.tenant_id,
            account_id=self.account_id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            currency=self.currency,
            subtotal=self.subtotal,
            tax_amount=self.tax_amount,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            balance_due=self.balance_due,
            status=InvoiceStatus(self.status),
            lines=tuple(line.to_dto() for line in self.lines),
            notes=self.notes,
            internal_notes=self.internal_notes,
            billing_period=self.billing_period,
            sent_at=self.sent_at,
            paid_date=self.paid_date,
            voided_at=self.voided_at,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number}: {self.balance_due}/{self.total_amount} ({self.status})>"


# ---------------------------------------------------------------------------
# 2. InvoiceLineModel
# ---------------------------------------------------------------------------


class InvoiceLineModel(TrackedBase):
    """Line item of an invoice; immutable once the invoice leaves DRAFT."""

    __tablename__ = "ar_invoice_lines"

    __table_args__ = (
        UniqueConstraint("invoice_id", "sort_order", name="uq_ar_invoice_lines_invoice_sort"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("ar_invoices.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    discount_pct: Mapped[Decimal] = mapped_column(nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(nullable=False)
    taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    line_total: Mapped[Decimal] = mapped_column(nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sort_order: Mapped[int] = mapped_column(nullable=False)

    invoice: Mapped["InvoiceModel"] = relationship(back_populates="lines")

    def to_dto(self):
        from ar_modules.invoicing.models import InvoiceLine

        return InvoiceLine(
            id=self.id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount_pct=self.discount_pct,
            tax_rate=self.tax_rate,
            taxable=self.taxable,
            discount_amount=self.discount_amount,
            line_total=self.line_total,
            tax_amount=self.tax_amount,
            sort_order=self.sort_order,
        )

    @classmethod
    def from_priced(cls, priced, created_by_id: UUID) -> "InvoiceLineModel":
        """Build from an ``ar_engines.pricing.PricedLine``."""
        return cls(
            description=priced.description,
            quantity=priced.quantity,
            unit_price=priced.unit_price,
            discount_pct=priced.discount_pct,
            tax_rate=priced.tax_rate,
            taxable=priced.taxable,
            discount_amount=priced.discount_amount,
            line_total=priced.line_total,
            tax_amount=priced.tax_amount,
            sort_order=priced.sort_order,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<InvoiceLineModel {self.sort_order}: {self.description} {self.line_total}>"

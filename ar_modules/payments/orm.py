"""
Payments ORM Models (``ar_modules.payments.orm``).

Payments and their invoice allocations.  Neither is ever deleted; an
allocation row is the permanent record of money moving onto an invoice.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ar_kernel.db.base import TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. PaymentModel
# ---------------------------------------------------------------------------


class PaymentModel(TrackedBase):
    """
    ORM model for payments received.

    Guarantees:
        - receipt_number is unique per tenant.
        - allocated_amount + credited_amount <= amount (maintained by
          PaymentService under the account lock).
    """

    __tablename__ = "ar_payments"

    __table_args__ = (
        UniqueConstraint("tenant_id", "receipt_number", name="uq_ar_payments_tenant_receipt"),
        Index("idx_ar_payments_account_date", "account_id", "payment_date"),
        Index("idx_ar_payments_tenant_date", "tenant_id", "payment_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("ar_accounts.id"), nullable=False)
    receipt_number: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    allocated_amount: Mapped[Decimal] = mapped_column(nullable=False)
    credited_amount: Mapped[Decimal] = mapped_column(nullable=False)

    allocations: Mapped[list["PaymentAllocationModel"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAllocationModel.position",
        lazy="selectin",
    )

    @property
    def pending_amount(self) -> Decimal:
        return self.amount - self.allocated_amount - self.credited_amount

    def to_dto(self):
        from ar_modules.payments.models import Payment, PaymentMethod

        return Payment(
            id=self.id,
            tenant_id=self.tenant_id,
            account_id=self.account_id,
            receipt_number=self.receipt_number,
            amount=self.amount,
            method=PaymentMethod(self.method),
            payment_date=self.payment_date,
            allocated_amount=self.allocated_amount,
            credited_amount=self.credited_amount,
            allocations=tuple(a.to_dto() for a in self.allocations),
            reference_number=self.reference_number,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.receipt_number}: {self.amount} allocated={self.allocated_amount}>"


# ---------------------------------------------------------------------------
# 2. PaymentAllocationModel
# ---------------------------------------------------------------------------


class PaymentAllocationModel(TrackedBase):
    """One payment applied to one invoice."""

    __tablename__ = "ar_payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "position", name="uq_ar_payment_allocations_position"),
        Index("idx_ar_payment_allocations_invoice", "invoice_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(ForeignKey("ar_payments.id"), nullable=False)
    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("ar_invoices.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    previous_balance: Mapped[Decimal] = mapped_column(nullable=False)
    new_balance: Mapped[Decimal] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)

    payment: Mapped["PaymentModel"] = relationship(back_populates="allocations")

    def to_dto(self):
        from ar_modules.payments.models import PaymentAllocation

        return PaymentAllocation(
            id=self.id,
            payment_id=self.payment_id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            previous_balance=self.previous_balance,
            new_balance=self.new_balance,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<PaymentAllocationModel payment={self.payment_id} invoice={self.invoice_id} amount={self.amount}>"

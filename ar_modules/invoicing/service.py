"""
Invoice Lifecycle Service.

Creates invoices from priced line items, moves them through
DRAFT -> SENT -> ... -> VOID, and applies money to them on behalf of the
payment and credit-note services.  Every balance change adjusts the
owning account's outstanding balance in the same flush.

Lock order: the account row first (``AccountService.lock_account``), then
the invoice rows.

Flush-only: the ARLedgerService facade owns commit/rollback.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_engines.pricing import LineInput, price_invoice_lines
from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import ZERO, round2, subtract
from ar_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEventType
from ar_kernel.services.base import BaseService
from ar_modules.accounts.orm import ARAccountModel
from ar_modules.accounts.service import AccountService
from ar_modules.config import LedgerConfig
from ar_modules.invoicing.helpers import MONEY_ACCEPTING_STATUSES, recompute_invoice_status
from ar_modules.invoicing.models import OUTSTANDING_STATUSES, Invoice, InvoiceStatus
from ar_modules.invoicing.orm import InvoiceLineModel, InvoiceModel
from ar_modules.invoicing.workflows import INVOICE_WORKFLOW

logger = get_logger("modules.invoicing.service")

_OUTSTANDING = tuple(s.value for s in OUTSTANDING_STATUSES)


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class InvoiceService(BaseService):

    def __init__(
        self,
        session: Session,
        accounts: AccountService,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts
        self.config = config or LedgerConfig.with_defaults()

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_invoice(self, tenant_id: UUID, invoice_id: UUID, *, lock: bool = False) -> InvoiceModel:
        stmt = select(InvoiceModel).where(InvoiceModel.id == invoice_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        invoice = self.session.execute(stmt).scalar_one_or_none()
        if invoice is None or invoice.tenant_id != tenant_id:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    def lock_with_account(self, tenant_id: UUID, invoice_id: UUID) -> tuple[ARAccountModel, InvoiceModel]:
        """Lock the owning account, then the invoice."""
        account_id = self.find_invoice(tenant_id, invoice_id).account_id
        account = self.accounts.lock_account(tenant_id, account_id)
        return account, self.find_invoice(tenant_id, invoice_id, lock=True)

    def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return self.find_invoice(self.require_tenant(tenant_id), invoice_id).to_dto()

    def list_invoices(
        self,
        tenant_id: UUID,
        account_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        stmt = select(InvoiceModel).where(InvoiceModel.account_id == account.id)
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == status.value)
        stmt = stmt.order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
        return [inv.to_dto() for inv in self.session.scalars(stmt)]

    def outstanding_invoices(self, account: ARAccountModel, *, lock: bool = False) -> list[InvoiceModel]:
        """SENT / PARTIALLY_PAID / OVERDUE invoices with a balance, in FIFO order."""
        stmt = (
            select(InvoiceModel)
            .where(
                InvoiceModel.account_id == account.id,
                InvoiceModel.status.in_(_OUTSTANDING),
            )
            .order_by(InvoiceModel.due_date, InvoiceModel.invoice_number)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return [inv for inv in self.session.scalars(stmt) if inv.balance_due > 0]

    def list_outstanding_invoices(self, tenant_id: UUID, account_id: UUID) -> list[Invoice]:
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        return [inv.to_dto() for inv in self.outstanding_invoices(account)]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_invoice(
        self,
        tenant_id: UUID,
        account_id: UUID,
        line_items: Sequence[LineInput],
        actor_id: UUID,
        *,
        invoice_date: date | None = None,
        due_date: date | None = None,
        notes: str | None = None,
        billing_period: str | None = None,
    ) -> Invoice:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        totals = price_invoice_lines(line_items)

        account = self.accounts.lock_account(tenant_id, account_id)
        self.accounts.ensure_open(account, "invoice")

        invoice_date = invoice_date or self.clock.today()
        if due_date is None:
            due_date = invoice_date + timedelta(days=account.payment_terms_days)
        if due_date < invoice_date:
            raise ValidationError("due_date cannot be before invoice_date", field="due_date", value=due_date)
        if totals.total_amount < 0:
            raise ValidationError(
                "Discounts exceed the invoice total", field="discount_amount", value=totals.discount_amount
            )

        numbering = self.config.invoice_numbering
        invoice = InvoiceModel(
            tenant_id=tenant_id,
            account_id=account.id,
            invoice_number=self.sequences.next_document_number(
                tenant_id, numbering.prefix, invoice_date.year, numbering.width
            ),
            invoice_date=invoice_date,
            due_date=due_date,
            currency=self.config.currency,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            paid_amount=ZERO,
            balance_due=totals.total_amount,
            status=InvoiceStatus.DRAFT.value,
            notes=notes,
            billing_period=billing_period,
            created_by_id=actor_id,
        )
        invoice.lines = [InvoiceLineModel.from_priced(p, created_by_id=actor_id) for p in totals.lines]
        self.session.add(invoice)
        self.accounts.change_outstanding(account, totals.total_amount)
        account.updated_by_id = actor_id
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="invoice",
            aggregate_id=invoice.id,
            event_type=LedgerEventType.INVOICE_CREATED,
            actor_id=actor_id,
            payload={
                "invoice_number": invoice.invoice_number,
                "account_id": account.id,
                "total_amount": invoice.total_amount,
                "due_date": due_date,
            },
        )
        logger.info(
            "invoice_created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "account_id": str(account.id),
                "total_amount": str(invoice.total_amount),
                "line_count": len(totals.lines),
            },
        )
        return invoice.to_dto()

    def send_invoice(self, tenant_id: UUID, invoice_id: UUID, actor_id: UUID) -> Invoice:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        invoice = self.find_invoice(tenant_id, invoice_id, lock=True)
        INVOICE_WORKFLOW.require(invoice.status, "send", entity_type="Invoice", entity_id=invoice.id)

        invoice.status = InvoiceStatus.SENT.value
        invoice.sent_at = self.clock.now()
        invoice.updated_by_id = actor_id
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="invoice",
            aggregate_id=invoice.id,
            event_type=LedgerEventType.INVOICE_SENT,
            actor_id=actor_id,
            payload={"invoice_number": invoice.invoice_number},
        )
        logger.info("invoice_sent", extra={"invoice_id": str(invoice.id)})
        return invoice.to_dto()

    def void_invoice(self, tenant_id: UUID, invoice_id: UUID, reason: str, actor_id: UUID) -> Invoice:
        """
        Write off the remaining balance and mark the invoice VOID.

        Money already applied stays on the invoice as ``paid_amount``.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account, invoice = self.lock_with_account(tenant_id, invoice_id)
        INVOICE_WORKFLOW.require(invoice.status, "void", entity_type="Invoice", entity_id=invoice.id)
        if not reason or not reason.strip():
            raise ValidationError("A void reason is required", field="reason")

        written_off = round2(invoice.balance_due)
        previous_status = invoice.status
        invoice.status = InvoiceStatus.VOID.value
        invoice.balance_due = ZERO
        invoice.voided_at = self.clock.now()
        invoice.internal_notes = _append_note(invoice.internal_notes, f"[VOIDED] {reason.strip()}")
        invoice.updated_by_id = actor_id
        self.accounts.change_outstanding(account, -written_off)
        account.updated_by_id = actor_id
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="invoice",
            aggregate_id=invoice.id,
            event_type=LedgerEventType.INVOICE_VOIDED,
            actor_id=actor_id,
            payload={
                "invoice_number": invoice.invoice_number,
                "previous_status": previous_status,
                "written_off": written_off,
                "reason": reason.strip(),
            },
        )
        logger.info(
            "invoice_voided",
            extra={
                "invoice_id": str(invoice.id),
                "previous_status": previous_status,
                "written_off": str(written_off),
            },
        )
        return invoice.to_dto()

    def mark_overdue_invoices(self, tenant_id: UUID, actor_id: UUID) -> list[Invoice]:
        """Time sweep: SENT invoices past their due date with a balance become OVERDUE."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        today = self.clock.today()

        candidates = self.session.scalars(
            select(InvoiceModel)
            .where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.status == InvoiceStatus.SENT.value,
                InvoiceModel.due_date < today,
            )
            .order_by(InvoiceModel.due_date, InvoiceModel.invoice_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()

        marked = []
        for invoice in candidates:
            if recompute_invoice_status(invoice, today) != InvoiceStatus.OVERDUE.value:
                continue
            invoice.updated_by_id = actor_id
            self.events.record(
                tenant_id=tenant_id,
                aggregate_type="invoice",
                aggregate_id=invoice.id,
                event_type=LedgerEventType.INVOICE_OVERDUE,
                actor_id=actor_id,
                payload={"invoice_number": invoice.invoice_number, "due_date": invoice.due_date},
            )
            marked.append(invoice)
        self.session.flush()

        logger.info(
            "invoices_marked_overdue",
            extra={"tenant_id": str(tenant_id), "count": len(marked), "as_of": today.isoformat()},
        )
        return [inv.to_dto() for inv in marked]

    # =========================================================================
    # Money (caller holds the account lock)
    # =========================================================================

    def apply_amount(
        self,
        account: ARAccountModel,
        invoice: InvoiceModel,
        amount: Decimal,
        actor_id: UUID,
    ) -> tuple[Decimal, Decimal]:
        """
        Apply *amount* to *invoice* and reduce the account's outstanding balance.

        Returns ``(previous_balance, new_balance)``.
        """
        if invoice.account_id != account.id:
            raise NotFoundError("Invoice", invoice.id)
        if invoice.status not in MONEY_ACCEPTING_STATUSES:
            raise InvalidStateError("Invoice", invoice.id, invoice.status, "apply_payment")
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError("Applied amount must be positive", field="amount", value=amount)

        previous_balance = round2(invoice.balance_due)
        if amount > previous_balance:
            raise OverAllocationError("Invoice", invoice.id, amount, previous_balance)

        invoice.paid_amount = round2(invoice.paid_amount + amount)
        invoice.balance_due = subtract(previous_balance, amount)
        invoice.updated_by_id = actor_id
        recompute_invoice_status(invoice, self.clock.today())
        self.accounts.change_outstanding(account, -amount)
        return previous_balance, invoice.balance_due

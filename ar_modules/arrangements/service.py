"""
Payment Arrangement Service.

Puts a set of an account's unpaid invoices on an installment plan and
records installment payments.  Installment money is not tracked apart
from the invoices: every installment payment goes through the payment
engine and is allocated oldest-due-first across the arrangement's
invoices, so invoice balances, account outstanding and the arrangement
all move in the same transaction.

Lock order: account, arrangement, invoices, payment.

Flush-only: the ARLedgerService facade owns commit/rollback.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_engines.allocation import OpenInvoice, fifo_allocate
from ar_engines.installments import Frequency, build_schedule
from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import ZERO, money_sum, require_positive, round2, subtract
from ar_kernel.exceptions import (
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEventType
from ar_kernel.services.base import BaseService
from ar_modules.accounts.models import CreditEntrySource
from ar_modules.accounts.orm import ARAccountModel
from ar_modules.accounts.service import AccountService
from ar_modules.arrangements.models import (
    ArrangementInstallment,
    ArrangementStatus,
    InstallmentStatus,
    PaymentArrangement,
)
from ar_modules.arrangements.orm import (
    ArrangementInstallmentModel,
    ArrangementInvoiceModel,
    PaymentArrangementModel,
)
from ar_modules.arrangements.workflows import ARRANGEMENT_WORKFLOW, INSTALLMENT_WORKFLOW
from ar_modules.config import LedgerConfig
from ar_modules.invoicing.helpers import MONEY_ACCEPTING_STATUSES
from ar_modules.invoicing.models import InvoiceStatus
from ar_modules.invoicing.orm import InvoiceModel
from ar_modules.invoicing.service import InvoiceService
from ar_modules.payments.models import PaymentMethod
from ar_modules.payments.orm import PaymentModel
from ar_modules.payments.service import PaymentService

logger = get_logger("modules.arrangements.service")

_CLOSED_INVOICE_STATUSES = (InvoiceStatus.VOID.value, InvoiceStatus.PAID.value)
_SETTLED = (InstallmentStatus.PAID.value, InstallmentStatus.WAIVED.value)


class ArrangementService(BaseService):

    def __init__(
        self,
        session: Session,
        accounts: AccountService,
        invoices: InvoiceService,
        payments: PaymentService,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts
        self.invoices = invoices
        self.payments = payments
        self.config = config or LedgerConfig.with_defaults()

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_arrangement(
        self, tenant_id: UUID, arrangement_id: UUID, *, lock: bool = False
    ) -> PaymentArrangementModel:
        stmt = select(PaymentArrangementModel).where(PaymentArrangementModel.id == arrangement_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        arrangement = self.session.execute(stmt).scalar_one_or_none()
        if arrangement is None or arrangement.tenant_id != tenant_id:
            raise NotFoundError("PaymentArrangement", arrangement_id)
        return arrangement

    def _lock_with_account(
        self, tenant_id: UUID, arrangement_id: UUID
    ) -> tuple[ARAccountModel, PaymentArrangementModel]:
        account_id = self.find_arrangement(tenant_id, arrangement_id).account_id
        account = self.accounts.lock_account(tenant_id, account_id)
        return account, self.find_arrangement(tenant_id, arrangement_id, lock=True)

    def get_arrangement(self, tenant_id: UUID, arrangement_id: UUID) -> PaymentArrangement:
        return self.find_arrangement(self.require_tenant(tenant_id), arrangement_id).to_dto()

    def list_arrangements(
        self,
        tenant_id: UUID,
        account_id: UUID,
        status: ArrangementStatus | None = None,
    ) -> list[PaymentArrangement]:
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        stmt = select(PaymentArrangementModel).where(PaymentArrangementModel.account_id == account.id)
        if status is not None:
            stmt = stmt.where(PaymentArrangementModel.status == status.value)
        stmt = stmt.order_by(PaymentArrangementModel.arrangement_number)
        return [a.to_dto() for a in self.session.scalars(stmt)]

    def _record(self, arrangement: PaymentArrangementModel, event_type: LedgerEventType, actor_id: UUID, **payload):
        self.events.record(
            tenant_id=arrangement.tenant_id,
            aggregate_type="arrangement",
            aggregate_id=arrangement.id,
            event_type=event_type,
            actor_id=actor_id,
            payload={"arrangement_number": arrangement.arrangement_number, **payload},
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_arrangement(
        self,
        tenant_id: UUID,
        account_id: UUID,
        invoice_ids: Sequence[UUID],
        installment_count: int,
        frequency: Frequency,
        start_date: date,
        actor_id: UUID,
        *,
        notes: str | None = None,
    ) -> PaymentArrangement:
        """
        Create a DRAFT arrangement over *invoice_ids* with an even schedule.

        Raises:
            ValidationError: count < 1, no invoices, duplicate invoices, or
                an invoice that is VOID or PAID.
            NotFoundError: an invoice does not exist or belongs to another
                account.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        if installment_count is None or installment_count < 1:
            raise ValidationError(
                "installment_count must be at least 1", field="installment_count", value=installment_count
            )
        if not isinstance(frequency, Frequency):
            raise ValidationError("Unknown frequency", field="frequency", value=frequency)
        if not invoice_ids:
            raise ValidationError("An arrangement needs at least one invoice", field="invoice_ids")
        if len(set(invoice_ids)) != len(invoice_ids):
            raise ValidationError("Duplicate invoice in arrangement", field="invoice_ids")

        account = self.accounts.lock_account(tenant_id, account_id)
        self.accounts.ensure_open(account, "create_arrangement")

        invoices = []
        for invoice_id in invoice_ids:
            invoice = self.invoices.find_invoice(tenant_id, invoice_id, lock=True)
            if invoice.account_id != account.id:
                raise NotFoundError("Invoice", invoice_id)
            if invoice.status in _CLOSED_INVOICE_STATUSES:
                raise ValidationError(
                    f"Invoice {invoice.invoice_number} is {invoice.status}",
                    field="invoice_ids",
                    value=str(invoice_id),
                )
            invoices.append(invoice)

        total = money_sum(inv.balance_due for inv in invoices)
        schedule = build_schedule(total, installment_count, frequency, start_date)

        numbering = self.config.arrangement_numbering
        arrangement = PaymentArrangementModel(
            tenant_id=tenant_id,
            account_id=account.id,
            arrangement_number=self.sequences.next_document_number(
                tenant_id, numbering.prefix, start_date.year, numbering.width
            ),
            installment_count=installment_count,
            frequency=frequency.value,
            start_date=start_date,
            end_date=schedule[-1].due_date,
            total_amount=total,
            paid_amount=ZERO,
            remaining_amount=total,
            status=ArrangementStatus.DRAFT.value,
            notes=notes,
            created_by_id=actor_id,
        )
        arrangement.invoice_links = [
            ArrangementInvoiceModel(invoice_id=inv.id, position=i, created_by_id=actor_id)
            for i, inv in enumerate(invoices)
        ]
        arrangement.installments = [
            ArrangementInstallmentModel(
                installment_no=s.installment_no,
                due_date=s.due_date,
                amount=s.amount,
                paid_amount=ZERO,
                status=(InstallmentStatus.PENDING if s.amount > 0 else InstallmentStatus.WAIVED).value,
                created_by_id=actor_id,
            )
            for s in schedule
        ]
        self.session.add(arrangement)
        self.session.flush()

        self._record(
            arrangement,
            LedgerEventType.ARRANGEMENT_CREATED,
            actor_id,
            account_id=account.id,
            total_amount=total,
            installment_count=installment_count,
            frequency=frequency.value,
            invoice_ids=[inv.id for inv in invoices],
        )
        logger.info(
            "arrangement_created",
            extra={
                "arrangement_id": str(arrangement.id),
                "arrangement_number": arrangement.arrangement_number,
                "account_id": str(account.id),
                "total_amount": str(total),
                "installment_count": installment_count,
                "frequency": frequency.value,
            },
        )
        return arrangement.to_dto()

    def activate_arrangement(self, tenant_id: UUID, arrangement_id: UUID, approver_id: UUID) -> PaymentArrangement:
        tenant_id = self.require_tenant(tenant_id)
        approver_id = self.require_actor(approver_id)
        arrangement = self.find_arrangement(tenant_id, arrangement_id, lock=True)
        ARRANGEMENT_WORKFLOW.require(
            arrangement.status, "activate", entity_type="PaymentArrangement", entity_id=arrangement.id
        )

        arrangement.status = ArrangementStatus.ACTIVE.value
        arrangement.approved_by = approver_id
        arrangement.approved_at = self.clock.now()
        arrangement.updated_by_id = approver_id
        self.session.flush()

        self._record(arrangement, LedgerEventType.ARRANGEMENT_ACTIVATED, approver_id)
        logger.info("arrangement_activated", extra={"arrangement_id": str(arrangement.id)})
        return arrangement.to_dto()

    def cancel_arrangement(
        self,
        tenant_id: UUID,
        arrangement_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PaymentArrangement:
        """Stop the plan.  Money already applied to invoices stays applied."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        arrangement = self.find_arrangement(tenant_id, arrangement_id, lock=True)
        ARRANGEMENT_WORKFLOW.require(
            arrangement.status, "cancel", entity_type="PaymentArrangement", entity_id=arrangement.id
        )

        previous_status = arrangement.status
        arrangement.status = ArrangementStatus.CANCELLED.value
        if reason:
            arrangement.notes = f"{arrangement.notes}\n[CANCELLED] {reason}" if arrangement.notes else f"[CANCELLED] {reason}"
        arrangement.updated_by_id = actor_id
        self.session.flush()

        self._record(
            arrangement,
            LedgerEventType.ARRANGEMENT_CANCELLED,
            actor_id,
            previous_status=previous_status,
            paid_amount=arrangement.paid_amount,
            reason=reason,
        )
        logger.info(
            "arrangement_cancelled",
            extra={"arrangement_id": str(arrangement.id), "previous_status": previous_status},
        )
        return arrangement.to_dto()

    def default_arrangement(
        self,
        tenant_id: UUID,
        arrangement_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> PaymentArrangement:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        arrangement = self.find_arrangement(tenant_id, arrangement_id, lock=True)
        ARRANGEMENT_WORKFLOW.require(
            arrangement.status, "default", entity_type="PaymentArrangement", entity_id=arrangement.id
        )
        if not reason or not reason.strip():
            raise ValidationError("A default reason is required", field="reason")

        arrangement.status = ArrangementStatus.DEFAULTED.value
        note = f"[DEFAULTED] {reason.strip()}"
        arrangement.notes = f"{arrangement.notes}\n{note}" if arrangement.notes else note
        arrangement.updated_by_id = actor_id
        self.session.flush()

        self._record(
            arrangement,
            LedgerEventType.ARRANGEMENT_DEFAULTED,
            actor_id,
            remaining_amount=arrangement.remaining_amount,
            reason=reason.strip(),
        )
        logger.warning(
            "arrangement_defaulted",
            extra={
                "arrangement_id": str(arrangement.id),
                "remaining_amount": str(arrangement.remaining_amount),
            },
        )
        return arrangement.to_dto()

    # =========================================================================
    # Installments
    # =========================================================================

    def _payment_for_installment(
        self,
        account: ARAccountModel,
        amount: Decimal,
        actor_id: UUID,
        payment_id: UUID | None,
        method: PaymentMethod | None,
        payment_date: date | None,
    ) -> tuple[PaymentModel, bool]:
        if payment_id is not None:
            payment = self.payments.find_payment(account.tenant_id, payment_id, lock=True)
            if payment.account_id != account.id:
                raise NotFoundError("Payment", payment_id)
            available = self.payments.available_funds(account, payment)
            if amount > available:
                raise OverAllocationError("Payment", payment.id, amount, available)
            return payment, False

        if method is None:
            raise ValidationError("method is required when no payment_id is given", field="method")
        payment = self.payments.new_payment(
            account, amount, method, actor_id, payment_date=payment_date, notes="Installment payment"
        )
        return payment, True

    def _arrangement_invoices(self, arrangement: PaymentArrangementModel) -> list[InvoiceModel]:
        ids = [link.invoice_id for link in arrangement.invoice_links]
        rows = self.session.scalars(
            select(InvoiceModel)
            .where(InvoiceModel.id.in_(ids))
            .order_by(InvoiceModel.due_date, InvoiceModel.invoice_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()
        return [inv for inv in rows if inv.status in MONEY_ACCEPTING_STATUSES and inv.balance_due > 0]

    def record_installment_payment(
        self,
        tenant_id: UUID,
        arrangement_id: UUID,
        installment_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        *,
        payment_id: UUID | None = None,
        method: PaymentMethod | None = None,
        payment_date: date | None = None,
    ) -> PaymentArrangement:
        """
        Pay (part of) an installment.

        The money comes from *payment_id* when given, otherwise a new
        payment is recorded with *method*.  It is allocated oldest-due-first
        across the arrangement's invoices.  Money the invoices can no
        longer absorb is accepted only from a new payment under the
        ``credit_balance`` policy, where it becomes account credit; otherwise
        OverAllocationError is raised before anything is written.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        amount = require_positive(amount, "amount")
        account, arrangement = self._lock_with_account(tenant_id, arrangement_id)
        ARRANGEMENT_WORKFLOW.require(
            arrangement.status, "pay_installment", entity_type="PaymentArrangement", entity_id=arrangement.id
        )

        installment = next((i for i in arrangement.installments if i.id == installment_id), None)
        if installment is None:
            raise NotFoundError("ArrangementInstallment", installment_id)
        INSTALLMENT_WORKFLOW.require(
            installment.status, "pay", entity_type="ArrangementInstallment", entity_id=installment.id
        )
        outstanding = subtract(installment.amount, installment.paid_amount)
        if amount > outstanding:
            raise OverAllocationError("ArrangementInstallment", installment.id, amount, outstanding)

        open_invoices = {inv.id: inv for inv in self._arrangement_invoices(arrangement)}
        plan = fifo_allocate(
            amount,
            [
                OpenInvoice(inv.id, inv.invoice_number, inv.due_date, inv.balance_due)
                for inv in open_invoices.values()
            ],
        )
        # Money the invoices cannot absorb only counts when it becomes credit
        # from a new payment; otherwise it would still be spendable elsewhere.
        if plan.total_allocated < amount and (payment_id is not None or not self.config.credits_overpayments):
            raise OverAllocationError("PaymentArrangement", arrangement.id, amount, plan.total_allocated)

        payment, is_new = self._payment_for_installment(
            account, amount, actor_id, payment_id, method, payment_date
        )

        for planned in plan.allocations:
            self.payments.allocate(account, payment, open_invoices[planned.invoice_id], planned.amount, actor_id)
        if is_new and self.config.credits_overpayments:
            self.payments.credit_remainder(account, payment, CreditEntrySource.OVERPAYMENT, actor_id)

        now = self.clock.now()
        installment.paid_amount = round2(installment.paid_amount + amount)
        installment.payment_id = payment.id
        installment.updated_by_id = actor_id
        if installment.paid_amount >= installment.amount:
            installment.status = InstallmentStatus.PAID.value
            installment.paid_at = now

        arrangement.paid_amount = round2(arrangement.paid_amount + amount)
        arrangement.remaining_amount = subtract(arrangement.total_amount, arrangement.paid_amount)
        arrangement.updated_by_id = actor_id
        completed = all(i.status in _SETTLED for i in arrangement.installments)
        if completed:
            arrangement.status = ArrangementStatus.COMPLETED.value
        self.session.flush()

        if is_new:
            self.events.record(
                tenant_id=tenant_id,
                aggregate_type="payment",
                aggregate_id=payment.id,
                event_type=LedgerEventType.PAYMENT_RECORDED,
                actor_id=actor_id,
                payload={
                    "receipt_number": payment.receipt_number,
                    "account_id": account.id,
                    "amount": payment.amount,
                    "method": payment.method,
                    "arrangement_id": arrangement.id,
                },
            )
        self._record(
            arrangement,
            LedgerEventType.ARRANGEMENT_INSTALLMENT_PAID,
            actor_id,
            installment_no=installment.installment_no,
            amount=amount,
            payment_id=payment.id,
            installment_status=installment.status,
            allocated_to=[a.invoice_number for a in plan.allocations],
        )
        if completed:
            self._record(arrangement, LedgerEventType.ARRANGEMENT_COMPLETED, actor_id, paid_amount=arrangement.paid_amount)

        logger.info(
            "arrangement_installment_paid",
            extra={
                "arrangement_id": str(arrangement.id),
                "installment_no": installment.installment_no,
                "amount": str(amount),
                "installment_status": installment.status,
                "remaining_amount": str(arrangement.remaining_amount),
                "completed": completed,
            },
        )
        return arrangement.to_dto()

    def mark_overdue_installments(self, tenant_id: UUID, actor_id: UUID) -> list[ArrangementInstallment]:
        """Time sweep: PENDING installments of active plans past their due date."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        today = self.clock.today()

        rows = self.session.scalars(
            select(ArrangementInstallmentModel)
            .join(
                PaymentArrangementModel,
                PaymentArrangementModel.id == ArrangementInstallmentModel.arrangement_id,
            )
            .where(
                PaymentArrangementModel.tenant_id == tenant_id,
                PaymentArrangementModel.status == ArrangementStatus.ACTIVE.value,
                ArrangementInstallmentModel.status == InstallmentStatus.PENDING.value,
                ArrangementInstallmentModel.due_date < today,
            )
            .order_by(ArrangementInstallmentModel.due_date, ArrangementInstallmentModel.installment_no)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).all()

        for installment in rows:
            INSTALLMENT_WORKFLOW.require(
                installment.status, "mark_overdue", entity_type="ArrangementInstallment", entity_id=installment.id
            )
            installment.status = InstallmentStatus.OVERDUE.value
            installment.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "installments_marked_overdue",
            extra={"tenant_id": str(tenant_id), "count": len(rows), "as_of": today.isoformat()},
        )
        return [i.to_dto() for i in rows]

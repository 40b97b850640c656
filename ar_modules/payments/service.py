"""
Payment & Allocation Service.

Records money received against an account and puts it on invoices, either
by explicit allocation or oldest-due-first (FIFO settlement).  Whatever a
payment does not settle becomes account credit or stays pending on the
payment, per ``LedgerConfig.unallocated_payment_policy``.

Lock order: the account row first, then its invoices in FIFO order.  Two
settlements on the same account therefore run one after the other and the
second sees the balances the first left behind.

Flush-only: the ARLedgerService facade owns commit/rollback.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_engines.allocation import OpenInvoice, fifo_allocate
from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import ZERO, money_sum, require_positive, round2, subtract
from ar_kernel.exceptions import NotFoundError, OverAllocationError, ValidationError
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEventType
from ar_kernel.services.base import BaseService
from ar_modules.accounts.models import CreditEntrySource
from ar_modules.accounts.orm import ARAccountModel
from ar_modules.accounts.service import AccountService
from ar_modules.config import LedgerConfig
from ar_modules.invoicing.orm import InvoiceModel
from ar_modules.invoicing.service import InvoiceService
from ar_modules.payments.models import AllocationRequest, FifoPreview, Payment, PaymentMethod
from ar_modules.payments.orm import PaymentAllocationModel, PaymentModel

logger = get_logger("modules.payments.service")


def _open_invoice(invoice: InvoiceModel) -> OpenInvoice:
    return OpenInvoice(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        due_date=invoice.due_date,
        balance_due=invoice.balance_due,
    )


class PaymentService(BaseService):
    """Payment recording, explicit allocation and FIFO settlement."""

    def __init__(
        self,
        session: Session,
        accounts: AccountService,
        invoices: InvoiceService,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts
        self.invoices = invoices
        self.config = config or LedgerConfig.with_defaults()

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_payment(self, tenant_id: UUID, payment_id: UUID, *, lock: bool = False) -> PaymentModel:
        stmt = select(PaymentModel).where(PaymentModel.id == payment_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        payment = self.session.execute(stmt).scalar_one_or_none()
        if payment is None or payment.tenant_id != tenant_id:
            raise NotFoundError("Payment", payment_id)
        return payment

    def get_payment(self, tenant_id: UUID, payment_id: UUID) -> Payment:
        return self.find_payment(self.require_tenant(tenant_id), payment_id).to_dto()

    def list_payments(self, tenant_id: UUID, account_id: UUID) -> list[Payment]:
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        rows = self.session.scalars(
            select(PaymentModel)
            .where(PaymentModel.account_id == account.id)
            .order_by(PaymentModel.payment_date, PaymentModel.receipt_number)
        )
        return [p.to_dto() for p in rows]

    # =========================================================================
    # Building blocks (caller holds the account lock)
    # =========================================================================

    def new_payment(
        self,
        account: ARAccountModel,
        amount: Decimal,
        method: PaymentMethod,
        actor_id: UUID,
        *,
        payment_date: date | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> PaymentModel:
        """Add an unapplied payment with a fresh receipt number."""
        amount = require_positive(amount, "amount")
        if not isinstance(method, PaymentMethod):
            raise ValidationError("Unknown payment method", field="method", value=method)
        self.accounts.ensure_open(account, "record_payment")

        payment_date = payment_date or self.clock.today()
        numbering = self.config.receipt_numbering
        payment = PaymentModel(
            id=uuid4(),
            tenant_id=account.tenant_id,
            account_id=account.id,
            receipt_number=self.sequences.next_document_number(
                account.tenant_id, numbering.prefix, payment_date.year, numbering.width
            ),
            amount=amount,
            method=method.value,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
            allocated_amount=ZERO,
            credited_amount=ZERO,
            created_by_id=actor_id,
        )
        self.session.add(payment)
        self.session.flush()
        return payment

    def allocate(
        self,
        account: ARAccountModel,
        payment: PaymentModel,
        invoice: InvoiceModel,
        amount: Decimal,
        actor_id: UUID,
    ) -> PaymentAllocationModel:
        """
        Move *amount* of *payment* onto *invoice*.

        The money is taken from the payment's pending funds first, then
        from what the payment previously credited to the account.
        """
        amount = round2(amount)
        pending = round2(payment.pending_amount)
        from_credit = subtract(amount, min(amount, pending))
        if from_credit > 0:
            if from_credit > payment.credited_amount:
                raise OverAllocationError(
                    "Payment", payment.id, amount, pending + payment.credited_amount
                )
            self.accounts.change_credit(
                account,
                -from_credit,
                CreditEntrySource.PAYMENT_APPLICATION,
                payment.id,
                actor_id,
                memo=f"Applied to {invoice.invoice_number}",
            )
            payment.credited_amount = subtract(payment.credited_amount, from_credit)

        previous_balance, new_balance = self.invoices.apply_amount(account, invoice, amount, actor_id)
        allocation = PaymentAllocationModel(
            invoice_id=invoice.id,
            amount=amount,
            previous_balance=previous_balance,
            new_balance=new_balance,
            position=len(payment.allocations),
            created_by_id=actor_id,
        )
        payment.allocations.append(allocation)
        payment.allocated_amount = round2(payment.allocated_amount + amount)
        payment.updated_by_id = actor_id
        return allocation

    def credit_remainder(
        self,
        account: ARAccountModel,
        payment: PaymentModel,
        source: CreditEntrySource,
        actor_id: UUID,
    ) -> Decimal:
        """Move whatever is still pending on *payment* into account credit."""
        remainder = round2(payment.pending_amount)
        if remainder <= 0:
            return ZERO
        self.accounts.change_credit(
            account,
            remainder,
            source,
            payment.id,
            actor_id,
            memo=f"Unallocated from {payment.receipt_number}",
        )
        payment.credited_amount = round2(payment.credited_amount + remainder)
        return remainder

    def available_funds(self, account: ARAccountModel, payment: PaymentModel) -> Decimal:
        """Pending funds plus the part of its credit the account still holds."""
        credited = min(round2(payment.credited_amount), round2(account.credit_balance))
        return round2(payment.pending_amount + credited)

    def _requested_invoices(
        self,
        tenant_id: UUID,
        requests: Sequence[AllocationRequest],
    ) -> list[tuple[InvoiceModel, Decimal]]:
        seen: set[UUID] = set()
        targets = []
        for req in requests:
            if req.invoice_id in seen:
                raise ValidationError(
                    "Invoice appears more than once in the allocations",
                    field="allocations",
                    value=str(req.invoice_id),
                )
            seen.add(req.invoice_id)
            amount = require_positive(req.amount, "allocations.amount")
            targets.append((self.invoices.find_invoice(tenant_id, req.invoice_id, lock=True), amount))
        return targets

    # =========================================================================
    # Operations
    # =========================================================================

    def record_payment(
        self,
        tenant_id: UUID,
        account_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        actor_id: UUID,
        *,
        allocations: Sequence[AllocationRequest] = (),
        payment_date: date | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        """
        Record a payment and apply it to the invoices named in *allocations*.

        Raises:
            OverAllocationError: An allocation exceeds its invoice balance,
                or the allocations together exceed the payment amount.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account = self.accounts.lock_account(tenant_id, account_id)
        payment = self.new_payment(
            account,
            amount,
            method,
            actor_id,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
        )

        targets = self._requested_invoices(tenant_id, allocations)
        requested = money_sum(a for _, a in targets)
        if requested > payment.amount:
            raise OverAllocationError("Payment", payment.id, requested, payment.amount)

        for invoice, applied in targets:
            self.allocate(account, payment, invoice, applied, actor_id)

        credited = ZERO
        if self.config.credits_overpayments:
            credited = self.credit_remainder(account, payment, CreditEntrySource.OVERPAYMENT, actor_id)
        self.session.flush()

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
                "allocated_amount": payment.allocated_amount,
                "credited_amount": credited,
                "invoice_ids": [inv.id for inv, _ in targets],
            },
        )
        logger.info(
            "payment_recorded",
            extra={
                "payment_id": str(payment.id),
                "receipt_number": payment.receipt_number,
                "account_id": str(account.id),
                "amount": str(payment.amount),
                "allocation_count": len(targets),
                "allocated_amount": str(payment.allocated_amount),
                "credited_amount": str(credited),
                "pending_amount": str(payment.pending_amount),
            },
        )
        return payment.to_dto()

    def settle_fifo(
        self,
        tenant_id: UUID,
        account_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        actor_id: UUID,
        *,
        use_fifo: bool = True,
        payment_date: date | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        """
        Record a payment and settle the account's open invoices oldest first.

        With ``use_fifo=False`` nothing is allocated and the whole amount
        becomes account credit.  Any leftover after FIFO is credited too.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account = self.accounts.lock_account(tenant_id, account_id)
        payment = self.new_payment(
            account,
            amount,
            method,
            actor_id,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
        )

        settled = []
        if use_fifo:
            open_invoices = {
                inv.id: inv for inv in self.invoices.outstanding_invoices(account, lock=True)
            }
            plan = fifo_allocate(payment.amount, [_open_invoice(inv) for inv in open_invoices.values()])
            for planned in plan.allocations:
                invoice = open_invoices[planned.invoice_id]
                self.allocate(account, payment, invoice, planned.amount, actor_id)
                settled.append(invoice.invoice_number)

        source = CreditEntrySource.OVERPAYMENT if use_fifo else CreditEntrySource.PREPAYMENT
        credited = self.credit_remainder(account, payment, source, actor_id)
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="payment",
            aggregate_id=payment.id,
            event_type=LedgerEventType.PAYMENT_SETTLED,
            actor_id=actor_id,
            payload={
                "receipt_number": payment.receipt_number,
                "account_id": account.id,
                "amount": payment.amount,
                "use_fifo": use_fifo,
                "settled_invoices": settled,
                "credited_amount": credited,
            },
        )
        logger.info(
            "payment_settled_fifo",
            extra={
                "payment_id": str(payment.id),
                "account_id": str(account.id),
                "amount": str(payment.amount),
                "use_fifo": use_fifo,
                "invoice_count": len(settled),
                "credited_amount": str(credited),
            },
        )
        return payment.to_dto()

    def preview_fifo_allocation(self, tenant_id: UUID, account_id: UUID, amount: Decimal) -> FifoPreview:
        """Read-only: how ``settle_fifo`` would distribute *amount* right now."""
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        amount = require_positive(amount, "amount")
        plan = fifo_allocate(amount, [_open_invoice(inv) for inv in self.invoices.outstanding_invoices(account)])
        return FifoPreview(
            account_id=account.id,
            amount=amount,
            allocations=plan.allocations,
            total_allocated=plan.total_allocated,
            unallocated=plan.remaining,
        )

    def allocate_payment(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        allocations: Sequence[AllocationRequest],
        actor_id: UUID,
    ) -> Payment:
        """
        Apply the unapplied funds of an existing payment to invoices.

        Pending funds are used first; beyond that the payment's earlier
        credit is withdrawn from the account's credit balance.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        if not allocations:
            raise ValidationError("At least one allocation is required", field="allocations")

        account_id = self.find_payment(tenant_id, payment_id).account_id
        account = self.accounts.lock_account(tenant_id, account_id)
        payment = self.find_payment(tenant_id, payment_id, lock=True)

        targets = self._requested_invoices(tenant_id, allocations)
        requested = money_sum(a for _, a in targets)
        available = self.available_funds(account, payment)
        if requested > available:
            raise OverAllocationError("Payment", payment.id, requested, available)

        for invoice, applied in targets:
            self.allocate(account, payment, invoice, applied, actor_id)
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="payment",
            aggregate_id=payment.id,
            event_type=LedgerEventType.PAYMENT_ALLOCATED,
            actor_id=actor_id,
            payload={
                "receipt_number": payment.receipt_number,
                "allocations": [{"invoice_id": inv.id, "amount": a} for inv, a in targets],
            },
        )
        logger.info(
            "payment_allocated",
            extra={
                "payment_id": str(payment.id),
                "allocation_count": len(targets),
                "requested": str(requested),
                "allocated_amount": str(payment.allocated_amount),
            },
        )
        return payment.to_dto()

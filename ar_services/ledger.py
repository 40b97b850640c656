"""
AR Ledger Service -- the collaborator-facing entry point of the ledger.

Thin glue layer that:
1. Builds the module services on one injected session
2. Binds tenant/actor/operation into the log context
3. Owns the transaction boundary: commit on success, rollback and
   re-raise on any error

Module services only flush.  A balance-moving call is therefore exactly
one transaction, and a failed call leaves nothing behind (no invoice, no
allocation, no ledger event, no consumed document number).

Usage:
    ledger = ARLedgerService(session, clock=SystemClock())
    invoice = ledger.create_invoice(
        tenant_id, account_id,
        [LineInput("Monthly dues", Decimal("1"), Decimal("250"))],
        actor_id,
    )
    ledger.send_invoice(tenant_id, invoice.id, actor_id)
    ledger.settle_fifo(tenant_id, account_id, Decimal("250"), PaymentMethod.CHECK, actor_id)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable, Sequence, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ar_engines.aging import AgingFilter
from ar_engines.installments import Frequency
from ar_engines.pricing import LineInput
from ar_kernel.domain.clock import Clock, SystemClock
from ar_kernel.exceptions import ARLedgerError
from ar_kernel.logging_config import LogContext, get_logger
from ar_modules.accounts.models import (
    AccountCreditEntry,
    AccountStatus,
    AccountType,
    ARAccount,
    CityLedgerCategory,
)
from ar_modules.accounts.service import AccountService
from ar_modules.arrangements.models import ArrangementInstallment, PaymentArrangement
from ar_modules.arrangements.service import ArrangementService
from ar_modules.config import LedgerConfig
from ar_modules.credit_notes.models import CreditNote, CreditNoteReason, CreditNoteType
from ar_modules.credit_notes.service import CreditNoteService
from ar_modules.invoicing.models import BatchFailure, BatchInvoiceResult, Invoice
from ar_modules.invoicing.service import InvoiceService
from ar_modules.payments.models import AllocationRequest, FifoPreview, Payment, PaymentMethod
from ar_modules.payments.service import PaymentService
from ar_modules.reporting.models import AgingReport, BillingStats, MemberStatement
from ar_modules.reporting.service import ReportingService

logger = get_logger("services.ledger")

T = TypeVar("T")


class ARLedgerService:
    """
    Accounts-receivable ledger operations on one session.

    Transaction boundary: every mutating method commits on success and
    rolls back on failure.  Read methods end their read transaction so no
    lock outlives the call.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or LedgerConfig.with_defaults()
        self._clock = clock or SystemClock()

        self.accounts = AccountService(
            session, self._clock, default_terms_days=self._config.default_payment_terms_days
        )
        self.invoices = InvoiceService(session, self.accounts, self._config, self._clock)
        self.payments = PaymentService(session, self.accounts, self.invoices, self._config, self._clock)
        self.credit_notes = CreditNoteService(
            session, self.accounts, self.invoices, self._config, self._clock
        )
        self.arrangements = ArrangementService(
            session, self.accounts, self.invoices, self.payments, self._config, self._clock
        )
        self.reporting = ReportingService(session, self.accounts, self._config, self._clock)

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    def _run(
        self,
        operation: str,
        tenant_id: UUID,
        actor_id: UUID | None,
        work: Callable[[], T],
        **fields,
    ) -> T:
        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id, operation=operation):
            logger.info(f"{operation}_started", extra={k: str(v) for k, v in fields.items()})
            try:
                result = work()
                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise
            logger.info(f"{operation}_committed")
            return result

    def _read(self, operation: str, tenant_id: UUID, work: Callable[[], T]) -> T:
        with LogContext.bind(tenant_id=tenant_id, operation=operation):
            try:
                return work()
            finally:
                self._session.rollback()

    # =========================================================================
    # Accounts
    # =========================================================================

    def open_account(
        self,
        tenant_id: UUID,
        account_number: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        *,
        payment_terms_days: int | None = None,
        credit_limit: Decimal | None = None,
        category: CityLedgerCategory | None = None,
        email: str | None = None,
    ) -> ARAccount:
        return self._run(
            "open_account",
            tenant_id,
            actor_id,
            lambda: self.accounts.open_account(
                tenant_id,
                account_number,
                name,
                account_type,
                actor_id,
                payment_terms_days=payment_terms_days,
                credit_limit=credit_limit,
                category=category,
                email=email,
            ),
            account_number=account_number,
        )

    def set_account_status(
        self,
        tenant_id: UUID,
        account_id: UUID,
        status: AccountStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ARAccount:
        return self._run(
            "set_account_status",
            tenant_id,
            actor_id,
            lambda: self.accounts.set_account_status(tenant_id, account_id, status, actor_id, reason),
            account_id=account_id,
            status=status.value,
        )

    def recalculate_balances(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> ARAccount:
        return self._run(
            "recalculate_balances",
            tenant_id,
            actor_id,
            lambda: self.accounts.recalculate_balances(tenant_id, account_id, actor_id),
            account_id=account_id,
        )

    def get_account(self, tenant_id: UUID, account_id: UUID) -> ARAccount:
        return self._read("get_account", tenant_id, lambda: self.accounts.get_account(tenant_id, account_id))

    def list_accounts(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        status: AccountStatus | None = None,
    ) -> list[ARAccount]:
        return self._read(
            "list_accounts", tenant_id, lambda: self.accounts.list_accounts(tenant_id, account_type, status)
        )

    def list_credit_entries(self, tenant_id: UUID, account_id: UUID) -> list[AccountCreditEntry]:
        return self._read(
            "list_credit_entries", tenant_id, lambda: self.accounts.list_credit_entries(tenant_id, account_id)
        )

    # =========================================================================
    # Invoices
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
        return self._run(
            "create_invoice",
            tenant_id,
            actor_id,
            lambda: self.invoices.create_invoice(
                tenant_id,
                account_id,
                line_items,
                actor_id,
                invoice_date=invoice_date,
                due_date=due_date,
                notes=notes,
                billing_period=billing_period,
            ),
            account_id=account_id,
            line_count=len(line_items),
        )

    def send_invoice(self, tenant_id: UUID, invoice_id: UUID, actor_id: UUID) -> Invoice:
        return self._run(
            "send_invoice",
            tenant_id,
            actor_id,
            lambda: self.invoices.send_invoice(tenant_id, invoice_id, actor_id),
            invoice_id=invoice_id,
        )

    def void_invoice(self, tenant_id: UUID, invoice_id: UUID, reason: str, actor_id: UUID) -> Invoice:
        return self._run(
            "void_invoice",
            tenant_id,
            actor_id,
            lambda: self.invoices.void_invoice(tenant_id, invoice_id, reason, actor_id),
            invoice_id=invoice_id,
        )

    def mark_overdue_invoices(self, tenant_id: UUID, actor_id: UUID) -> list[Invoice]:
        return self._run(
            "mark_overdue_invoices",
            tenant_id,
            actor_id,
            lambda: self.invoices.mark_overdue_invoices(tenant_id, actor_id),
        )

    def create_batch_invoices(
        self,
        tenant_id: UUID,
        account_ids: Sequence[UUID],
        line_items: Sequence[LineInput],
        actor_id: UUID,
        *,
        invoice_date: date | None = None,
        due_date: date | None = None,
        billing_period: str | None = None,
        send: bool = False,
    ) -> BatchInvoiceResult:
        """
        Invoice each account in its own transaction.

        A ledger error on one account is reported in ``failed`` and does
        not undo the invoices already created for other accounts.
        """
        created: list[Invoice] = []
        failed: list[BatchFailure] = []

        for account_id in account_ids:
            def work(account_id=account_id) -> Invoice:
                invoice = self.invoices.create_invoice(
                    tenant_id,
                    account_id,
                    line_items,
                    actor_id,
                    invoice_date=invoice_date,
                    due_date=due_date,
                    billing_period=billing_period,
                )
                if send:
                    invoice = self.invoices.send_invoice(tenant_id, invoice.id, actor_id)
                return invoice

            try:
                created.append(
                    self._run("create_batch_invoice", tenant_id, actor_id, work, account_id=account_id)
                )
            except ARLedgerError as exc:
                failed.append(BatchFailure(account_id=account_id, error_code=exc.code, message=str(exc)))

        logger.info(
            "batch_invoices_finished",
            extra={
                "tenant_id": str(tenant_id),
                "requested": len(account_ids),
                "created_count": len(created),
                "failed_count": len(failed),
            },
        )
        return BatchInvoiceResult(created=tuple(created), failed=tuple(failed))

    def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        return self._read("get_invoice", tenant_id, lambda: self.invoices.get_invoice(tenant_id, invoice_id))

    def list_invoices(self, tenant_id: UUID, account_id: UUID, status=None) -> list[Invoice]:
        return self._read(
            "list_invoices", tenant_id, lambda: self.invoices.list_invoices(tenant_id, account_id, status)
        )

    def list_outstanding_invoices(self, tenant_id: UUID, account_id: UUID) -> list[Invoice]:
        return self._read(
            "list_outstanding_invoices",
            tenant_id,
            lambda: self.invoices.list_outstanding_invoices(tenant_id, account_id),
        )

    # =========================================================================
    # Payments
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
        return self._run(
            "record_payment",
            tenant_id,
            actor_id,
            lambda: self.payments.record_payment(
                tenant_id,
                account_id,
                amount,
                method,
                actor_id,
                allocations=allocations,
                payment_date=payment_date,
                reference_number=reference_number,
                notes=notes,
            ),
            account_id=account_id,
            amount=amount,
            allocation_count=len(allocations),
        )

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
        return self._run(
            "settle_fifo",
            tenant_id,
            actor_id,
            lambda: self.payments.settle_fifo(
                tenant_id,
                account_id,
                amount,
                method,
                actor_id,
                use_fifo=use_fifo,
                payment_date=payment_date,
                reference_number=reference_number,
                notes=notes,
            ),
            account_id=account_id,
            amount=amount,
            use_fifo=use_fifo,
        )

    def allocate_payment(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        allocations: Sequence[AllocationRequest],
        actor_id: UUID,
    ) -> Payment:
        return self._run(
            "allocate_payment",
            tenant_id,
            actor_id,
            lambda: self.payments.allocate_payment(tenant_id, payment_id, allocations, actor_id),
            payment_id=payment_id,
        )

    def preview_fifo_allocation(self, tenant_id: UUID, account_id: UUID, amount: Decimal) -> FifoPreview:
        return self._read(
            "preview_fifo_allocation",
            tenant_id,
            lambda: self.payments.preview_fifo_allocation(tenant_id, account_id, amount),
        )

    def get_payment(self, tenant_id: UUID, payment_id: UUID) -> Payment:
        return self._read("get_payment", tenant_id, lambda: self.payments.get_payment(tenant_id, payment_id))

    def list_payments(self, tenant_id: UUID, account_id: UUID) -> list[Payment]:
        return self._read("list_payments", tenant_id, lambda: self.payments.list_payments(tenant_id, account_id))

    # =========================================================================
    # Credit notes
    # =========================================================================

    def create_credit_note(
        self,
        tenant_id: UUID,
        account_id: UUID,
        note_type: CreditNoteType,
        reason: CreditNoteReason,
        line_items: Sequence[LineInput],
        actor_id: UUID,
        *,
        reason_detail: str | None = None,
        source_invoice_id: UUID | None = None,
        submit: bool = True,
    ) -> CreditNote:
        return self._run(
            "create_credit_note",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.create_credit_note(
                tenant_id,
                account_id,
                note_type,
                reason,
                line_items,
                actor_id,
                reason_detail=reason_detail,
                source_invoice_id=source_invoice_id,
                submit=submit,
            ),
            account_id=account_id,
        )

    def submit_credit_note(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        return self._run(
            "submit_credit_note",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.submit_credit_note(tenant_id, credit_note_id, actor_id),
            credit_note_id=credit_note_id,
        )

    def approve_credit_note(self, tenant_id: UUID, credit_note_id: UUID, approver_id: UUID) -> CreditNote:
        return self._run(
            "approve_credit_note",
            tenant_id,
            approver_id,
            lambda: self.credit_notes.approve_credit_note(tenant_id, credit_note_id, approver_id),
            credit_note_id=credit_note_id,
        )

    def apply_credit_note_to_balance(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        return self._run(
            "apply_credit_note_to_balance",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.apply_credit_note_to_balance(tenant_id, credit_note_id, actor_id),
            credit_note_id=credit_note_id,
        )

    def apply_credit_note_to_invoice(
        self,
        tenant_id: UUID,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> CreditNote:
        return self._run(
            "apply_credit_note_to_invoice",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.apply_credit_note_to_invoice(
                tenant_id, credit_note_id, invoice_id, amount, actor_id
            ),
            credit_note_id=credit_note_id,
            invoice_id=invoice_id,
            amount=amount,
        )

    def refund_credit_note(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        return self._run(
            "refund_credit_note",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.refund_credit_note(tenant_id, credit_note_id, actor_id),
            credit_note_id=credit_note_id,
        )

    def void_credit_note(self, tenant_id: UUID, credit_note_id: UUID, reason: str, actor_id: UUID) -> CreditNote:
        return self._run(
            "void_credit_note",
            tenant_id,
            actor_id,
            lambda: self.credit_notes.void_credit_note(tenant_id, credit_note_id, reason, actor_id),
            credit_note_id=credit_note_id,
        )

    def get_credit_note(self, tenant_id: UUID, credit_note_id: UUID) -> CreditNote:
        return self._read(
            "get_credit_note", tenant_id, lambda: self.credit_notes.get_credit_note(tenant_id, credit_note_id)
        )

    def list_credit_notes(self, tenant_id: UUID, account_id: UUID, status=None) -> list[CreditNote]:
        return self._read(
            "list_credit_notes",
            tenant_id,
            lambda: self.credit_notes.list_credit_notes(tenant_id, account_id, status),
        )

    # =========================================================================
    # Payment arrangements
    # =========================================================================

    def create_payment_arrangement(
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
        return self._run(
            "create_payment_arrangement",
            tenant_id,
            actor_id,
            lambda: self.arrangements.create_arrangement(
                tenant_id,
                account_id,
                invoice_ids,
                installment_count,
                frequency,
                start_date,
                actor_id,
                notes=notes,
            ),
            account_id=account_id,
            installment_count=installment_count,
        )

    def activate_arrangement(self, tenant_id: UUID, arrangement_id: UUID, approver_id: UUID) -> PaymentArrangement:
        return self._run(
            "activate_arrangement",
            tenant_id,
            approver_id,
            lambda: self.arrangements.activate_arrangement(tenant_id, arrangement_id, approver_id),
            arrangement_id=arrangement_id,
        )

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
        return self._run(
            "record_installment_payment",
            tenant_id,
            actor_id,
            lambda: self.arrangements.record_installment_payment(
                tenant_id,
                arrangement_id,
                installment_id,
                amount,
                actor_id,
                payment_id=payment_id,
                method=method,
                payment_date=payment_date,
            ),
            arrangement_id=arrangement_id,
            installment_id=installment_id,
            amount=amount,
        )

    def cancel_arrangement(
        self,
        tenant_id: UUID,
        arrangement_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> PaymentArrangement:
        return self._run(
            "cancel_arrangement",
            tenant_id,
            actor_id,
            lambda: self.arrangements.cancel_arrangement(tenant_id, arrangement_id, actor_id, reason),
            arrangement_id=arrangement_id,
        )

    def default_arrangement(
        self,
        tenant_id: UUID,
        arrangement_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> PaymentArrangement:
        return self._run(
            "default_arrangement",
            tenant_id,
            actor_id,
            lambda: self.arrangements.default_arrangement(tenant_id, arrangement_id, reason, actor_id),
            arrangement_id=arrangement_id,
        )

    def mark_overdue_installments(self, tenant_id: UUID, actor_id: UUID) -> list[ArrangementInstallment]:
        return self._run(
            "mark_overdue_installments",
            tenant_id,
            actor_id,
            lambda: self.arrangements.mark_overdue_installments(tenant_id, actor_id),
        )

    def get_arrangement(self, tenant_id: UUID, arrangement_id: UUID) -> PaymentArrangement:
        return self._read(
            "get_arrangement", tenant_id, lambda: self.arrangements.get_arrangement(tenant_id, arrangement_id)
        )

    def list_arrangements(self, tenant_id: UUID, account_id: UUID, status=None) -> list[PaymentArrangement]:
        return self._read(
            "list_arrangements",
            tenant_id,
            lambda: self.arrangements.list_arrangements(tenant_id, account_id, status),
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_ar_aging_report(
        self,
        tenant_id: UUID,
        aging_filter: AgingFilter | str | None = AgingFilter.ALL,
        page: int = 1,
        limit: int | None = None,
        account_type: AccountType | None = None,
    ) -> AgingReport:
        return self._read(
            "get_ar_aging_report",
            tenant_id,
            lambda: self.reporting.get_ar_aging_report(tenant_id, aging_filter, page, limit, account_type),
        )

    def get_member_statement(
        self,
        tenant_id: UUID,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> MemberStatement:
        return self._read(
            "get_member_statement",
            tenant_id,
            lambda: self.reporting.get_member_statement(tenant_id, account_id, start_date, end_date),
        )

    def get_billing_stats(self, tenant_id: UUID) -> BillingStats:
        return self._read("get_billing_stats", tenant_id, lambda: self.reporting.get_billing_stats(tenant_id))

"""
Credit Note Service.

Issues credit notes from line items, takes them through approval, and
applies the approved credit either to the account's credit balance, to
specific invoices, or out as a refund.

Numbers come from the locked per-tenant-per-year counter and are never
reused, even when the credit note is later voided.

Flush-only: the ARLedgerService facade owns commit/rollback.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_engines.pricing import LineInput, price_credit_note_lines
from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import ZERO, require_positive, round2, subtract
from ar_kernel.exceptions import NotFoundError, OverAllocationError, ValidationError
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEventType
from ar_kernel.services.base import BaseService
from ar_modules.accounts.models import CreditEntrySource
from ar_modules.accounts.orm import ARAccountModel
from ar_modules.accounts.service import AccountService
from ar_modules.config import LedgerConfig
from ar_modules.credit_notes.models import (
    CreditNote,
    CreditNoteReason,
    CreditNoteStatus,
    CreditNoteType,
)
from ar_modules.credit_notes.orm import (
    CreditNoteApplicationModel,
    CreditNoteLineModel,
    CreditNoteModel,
)
from ar_modules.credit_notes.workflows import CREDIT_NOTE_WORKFLOW
from ar_modules.invoicing.service import InvoiceService

logger = get_logger("modules.credit_notes.service")


class CreditNoteService(BaseService):

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

    def find_credit_note(self, tenant_id: UUID, credit_note_id: UUID, *, lock: bool = False) -> CreditNoteModel:
        stmt = select(CreditNoteModel).where(CreditNoteModel.id == credit_note_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        note = self.session.execute(stmt).scalar_one_or_none()
        if note is None or note.tenant_id != tenant_id:
            raise NotFoundError("CreditNote", credit_note_id)
        return note

    def _lock_with_account(self, tenant_id: UUID, credit_note_id: UUID) -> tuple[ARAccountModel, CreditNoteModel]:
        account_id = self.find_credit_note(tenant_id, credit_note_id).account_id
        account = self.accounts.lock_account(tenant_id, account_id)
        return account, self.find_credit_note(tenant_id, credit_note_id, lock=True)

    def get_credit_note(self, tenant_id: UUID, credit_note_id: UUID) -> CreditNote:
        return self.find_credit_note(self.require_tenant(tenant_id), credit_note_id).to_dto()

    def list_credit_notes(
        self,
        tenant_id: UUID,
        account_id: UUID,
        status: CreditNoteStatus | None = None,
    ) -> list[CreditNote]:
        account = self.accounts.find_account(self.require_tenant(tenant_id), account_id)
        stmt = select(CreditNoteModel).where(CreditNoteModel.account_id == account.id)
        if status is not None:
            stmt = stmt.where(CreditNoteModel.status == status.value)
        stmt = stmt.order_by(CreditNoteModel.credit_note_number)
        return [n.to_dto() for n in self.session.scalars(stmt)]

    def _record(self, note: CreditNoteModel, event_type: LedgerEventType, actor_id: UUID, **payload) -> None:
        self.events.record(
            tenant_id=note.tenant_id,
            aggregate_type="credit_note",
            aggregate_id=note.id,
            event_type=event_type,
            actor_id=actor_id,
            payload={"credit_note_number": note.credit_note_number, "status": note.status, **payload},
        )

    # =========================================================================
    # Issue and approve
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
        """
        Issue a credit note.  It starts in PENDING_APPROVAL, or in DRAFT
        when ``submit=False``.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        if not isinstance(note_type, CreditNoteType):
            raise ValidationError("Unknown credit note type", field="type", value=note_type)
        if not isinstance(reason, CreditNoteReason):
            raise ValidationError("Unknown credit note reason", field="reason", value=reason)
        totals = price_credit_note_lines(line_items)

        account = self.accounts.lock_account(tenant_id, account_id)
        self.accounts.ensure_open(account, "credit_note")
        if source_invoice_id is not None:
            source = self.invoices.find_invoice(tenant_id, source_invoice_id)
            if source.account_id != account.id:
                raise NotFoundError("Invoice", source_invoice_id)

        numbering = self.config.credit_note_numbering
        status = CreditNoteStatus.PENDING_APPROVAL if submit else CreditNoteStatus.DRAFT
        note = CreditNoteModel(
            tenant_id=tenant_id,
            account_id=account.id,
            credit_note_number=self.sequences.next_document_number(
                tenant_id, numbering.prefix, self.clock.today().year, numbering.width
            ),
            type=note_type.value,
            reason=reason.value,
            reason_detail=reason_detail,
            source_invoice_id=source_invoice_id,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total_amount=totals.total_amount,
            applied_to_balance=ZERO,
            refunded_amount=ZERO,
            status=status.value,
            created_by_id=actor_id,
        )
        note.lines = [CreditNoteLineModel.from_priced(p, created_by_id=actor_id) for p in totals.lines]
        self.session.add(note)
        self.session.flush()

        self._record(
            note,
            LedgerEventType.CREDIT_NOTE_CREATED,
            actor_id,
            account_id=account.id,
            type=note.type,
            reason=note.reason,
            total_amount=note.total_amount,
        )
        logger.info(
            "credit_note_created",
            extra={
                "credit_note_id": str(note.id),
                "credit_note_number": note.credit_note_number,
                "account_id": str(account.id),
                "total_amount": str(note.total_amount),
                "status": note.status,
            },
        )
        return note.to_dto()

    def submit_credit_note(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        note = self.find_credit_note(tenant_id, credit_note_id, lock=True)
        CREDIT_NOTE_WORKFLOW.require(note.status, "submit", entity_type="CreditNote", entity_id=note.id)

        note.status = CreditNoteStatus.PENDING_APPROVAL.value
        note.updated_by_id = actor_id
        self.session.flush()
        self._record(note, LedgerEventType.CREDIT_NOTE_SUBMITTED, actor_id)
        logger.info("credit_note_submitted", extra={"credit_note_id": str(note.id)})
        return note.to_dto()

    def approve_credit_note(self, tenant_id: UUID, credit_note_id: UUID, approver_id: UUID) -> CreditNote:
        tenant_id = self.require_tenant(tenant_id)
        approver_id = self.require_actor(approver_id)
        note = self.find_credit_note(tenant_id, credit_note_id, lock=True)
        CREDIT_NOTE_WORKFLOW.require(note.status, "approve", entity_type="CreditNote", entity_id=note.id)

        note.status = CreditNoteStatus.APPROVED.value
        note.approved_by = approver_id
        note.approved_at = self.clock.now()
        note.updated_by_id = approver_id
        self.session.flush()
        self._record(note, LedgerEventType.CREDIT_NOTE_APPROVED, approver_id)
        logger.info(
            "credit_note_approved",
            extra={"credit_note_id": str(note.id), "approved_by": str(approver_id)},
        )
        return note.to_dto()

    # =========================================================================
    # Money
    # =========================================================================

    def apply_credit_note_to_balance(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        """Put the whole credit note on the account's credit balance."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account, note = self._lock_with_account(tenant_id, credit_note_id)
        CREDIT_NOTE_WORKFLOW.require(
            note.status, "apply_to_balance", entity_type="CreditNote", entity_id=note.id
        )
        self.accounts.ensure_open(account, "apply_to_balance")

        amount = round2(note.remaining_amount)
        self.accounts.change_credit(
            account,
            amount,
            CreditEntrySource.CREDIT_NOTE,
            note.id,
            actor_id,
            memo=note.credit_note_number,
        )
        note.applied_to_balance = round2(note.applied_to_balance + amount)
        note.status = CreditNoteStatus.APPLIED.value
        note.updated_by_id = actor_id
        self.session.flush()

        self._record(note, LedgerEventType.CREDIT_NOTE_APPLIED, actor_id, target="balance", amount=amount)
        logger.info(
            "credit_note_applied_to_balance",
            extra={
                "credit_note_id": str(note.id),
                "account_id": str(account.id),
                "amount": str(amount),
                "credit_balance": str(account.credit_balance),
            },
        )
        return note.to_dto()

    def apply_credit_note_to_invoice(
        self,
        tenant_id: UUID,
        credit_note_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> CreditNote:
        """
        Apply part of an approved credit note to one invoice of the same account.

        Raises:
            OverAllocationError: *amount* exceeds the unapplied credit or
                the invoice's balance.
        """
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        amount = require_positive(amount, "amount")
        account, note = self._lock_with_account(tenant_id, credit_note_id)
        CREDIT_NOTE_WORKFLOW.require(
            note.status, "apply_to_invoice", entity_type="CreditNote", entity_id=note.id
        )

        remaining = round2(note.remaining_amount)
        if amount > remaining:
            raise OverAllocationError("CreditNote", note.id, amount, remaining)

        invoice = self.invoices.find_invoice(tenant_id, invoice_id, lock=True)
        if invoice.account_id != account.id:
            raise NotFoundError("Invoice", invoice_id)
        self.invoices.apply_amount(account, invoice, amount, actor_id)

        note.applications.append(
            CreditNoteApplicationModel(
                invoice_id=invoice.id,
                amount_applied=amount,
                position=len(note.applications),
                created_by_id=actor_id,
            )
        )
        note.applied_to_balance = round2(note.applied_to_balance + amount)
        if subtract(remaining, amount) == 0:
            note.status = CreditNoteStatus.APPLIED.value
        else:
            note.status = CreditNoteStatus.PARTIALLY_APPLIED.value
        note.updated_by_id = actor_id
        self.session.flush()

        self._record(
            note,
            LedgerEventType.CREDIT_NOTE_APPLIED,
            actor_id,
            target="invoice",
            invoice_id=invoice.id,
            amount=amount,
        )
        logger.info(
            "credit_note_applied_to_invoice",
            extra={
                "credit_note_id": str(note.id),
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "invoice_status": invoice.status,
                "credit_note_status": note.status,
            },
        )
        return note.to_dto()

    def refund_credit_note(self, tenant_id: UUID, credit_note_id: UUID, actor_id: UUID) -> CreditNote:
        """Pay the remaining credit out to the member; no balance changes."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        note = self.find_credit_note(tenant_id, credit_note_id, lock=True)
        CREDIT_NOTE_WORKFLOW.require(note.status, "refund", entity_type="CreditNote", entity_id=note.id)

        refunded = round2(note.remaining_amount)
        note.refunded_amount = round2(note.refunded_amount + refunded)
        note.status = CreditNoteStatus.REFUNDED.value
        note.updated_by_id = actor_id
        self.session.flush()

        self._record(note, LedgerEventType.CREDIT_NOTE_REFUNDED, actor_id, amount=refunded)
        logger.info(
            "credit_note_refunded",
            extra={"credit_note_id": str(note.id), "refunded_amount": str(refunded)},
        )
        return note.to_dto()

    def void_credit_note(self, tenant_id: UUID, credit_note_id: UUID, reason: str, actor_id: UUID) -> CreditNote:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        note = self.find_credit_note(tenant_id, credit_note_id, lock=True)
        CREDIT_NOTE_WORKFLOW.require(note.status, "void", entity_type="CreditNote", entity_id=note.id)
        if not reason or not reason.strip():
            raise ValidationError("A void reason is required", field="reason")

        previous_status = note.status
        note.status = CreditNoteStatus.VOIDED.value
        note.voided_by = actor_id
        note.voided_at = self.clock.now()
        note.internal_notes = (
            f"{note.internal_notes}\n[VOIDED] {reason.strip()}"
            if note.internal_notes
            else f"[VOIDED] {reason.strip()}"
        )
        note.updated_by_id = actor_id
        self.session.flush()

        self._record(
            note,
            LedgerEventType.CREDIT_NOTE_VOIDED,
            actor_id,
            previous_status=previous_status,
            reason=reason.strip(),
        )
        logger.info(
            "credit_note_voided",
            extra={"credit_note_id": str(note.id), "previous_status": previous_status},
        )
        return note.to_dto()

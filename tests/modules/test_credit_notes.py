"""
Tests for credit notes: issue, approval, application, refund and void.
"""

from decimal import Decimal

import pytest

from ar_engines.pricing import LineInput
from ar_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ar_modules.accounts.models import AccountStatus, CreditEntrySource
from ar_modules.credit_notes.models import CreditNoteReason, CreditNoteStatus, CreditNoteType
from ar_modules.invoicing.models import InvoiceStatus


@pytest.fixture
def issue_credit_note(ledger, tenant_id, test_actor_id):
    def _issue(account_id, amount="50", *, submit=True, approve=False, **kwargs):
        note = ledger.create_credit_note(
            tenant_id,
            account_id,
            CreditNoteType.ADJUSTMENT,
            CreditNoteReason.BILLING_ERROR,
            [LineInput("Billing correction", Decimal("1"), Decimal(amount), taxable=False)],
            test_actor_id,
            submit=submit,
            **kwargs,
        )
        if approve:
            note = ledger.approve_credit_note(tenant_id, note.id, test_actor_id)
        return note
    return _issue


class TestIssue:

    def test_create_pending_approval(self, ledger, tenant_id, test_actor_id, member_account):
        note = ledger.create_credit_note(
            tenant_id,
            member_account.id,
            CreditNoteType.RETURN,
            CreditNoteReason.PRODUCT_RETURN,
            [
                LineInput("Returned shirt", Decimal("2"), Decimal("25"), tax_rate=Decimal("6")),
                LineInput("Cancelled lesson", Decimal("1"), Decimal("60"), taxable=False),
            ],
            test_actor_id,
            reason_detail="Wrong size",
        )

        assert note.credit_note_number == "CN-2024-000001"
        assert note.status is CreditNoteStatus.PENDING_APPROVAL
        assert note.total_amount == Decimal("113.00")
        assert note.remaining_amount == Decimal("113.00")
        assert note.reason_detail == "Wrong size"
        assert len(note.lines) == 2

    def test_draft_then_submit(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        draft = issue_credit_note(member_account.id, submit=False)
        assert draft.status is CreditNoteStatus.DRAFT

        submitted = ledger.submit_credit_note(tenant_id, draft.id, test_actor_id)

        assert submitted.status is CreditNoteStatus.PENDING_APPROVAL

    def test_source_invoice_must_belong_to_account(
        self, make_account, make_invoice, issue_credit_note
    ):
        owner = make_account("Owner")
        other = make_account("Other")
        invoice = make_invoice(other.id, "40")

        with pytest.raises(NotFoundError):
            issue_credit_note(owner.id, source_invoice_id=invoice.id)

    def test_closed_account_rejected(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        ledger.set_account_status(tenant_id, member_account.id, AccountStatus.CLOSED, test_actor_id)

        with pytest.raises(InvalidStateError):
            issue_credit_note(member_account.id)

    def test_approve_stamps_approver(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note, clock):
        note = issue_credit_note(member_account.id)

        approved = ledger.approve_credit_note(tenant_id, note.id, test_actor_id)

        assert approved.status is CreditNoteStatus.APPROVED
        assert approved.approved_by == test_actor_id
        assert approved.approved_at == clock.now()

    def test_draft_cannot_be_approved(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        draft = issue_credit_note(member_account.id, submit=False)

        with pytest.raises(InvalidStateError):
            ledger.approve_credit_note(tenant_id, draft.id, test_actor_id)


class TestApplyToBalance:

    def test_whole_note_becomes_account_credit(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id, "50", approve=True)

        applied = ledger.apply_credit_note_to_balance(tenant_id, note.id, test_actor_id)

        assert applied.status is CreditNoteStatus.APPLIED
        assert applied.applied_to_balance == Decimal("50.00")
        assert applied.remaining_amount == Decimal("0.00")
        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("50.00")
        entry = ledger.list_credit_entries(tenant_id, member_account.id)[-1]
        assert (entry.source, entry.source_id, entry.amount) == (
            CreditEntrySource.CREDIT_NOTE, note.id, Decimal("50.00")
        )

    def test_unapproved_note_cannot_be_applied(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id)

        with pytest.raises(InvalidStateError):
            ledger.apply_credit_note_to_balance(tenant_id, note.id, test_actor_id)

        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("0.00")

    def test_closed_account_cannot_receive_credit(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id, approve=True)
        ledger.set_account_status(tenant_id, member_account.id, AccountStatus.CLOSED, test_actor_id)

        with pytest.raises(InvalidStateError) as exc_info:
            ledger.apply_credit_note_to_balance(tenant_id, note.id, test_actor_id)

        assert exc_info.value.current_state == "CLOSED"
        assert ledger.get_credit_note(tenant_id, note.id).status is CreditNoteStatus.APPROVED
        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("0.00")


class TestApplyToInvoice:

    def test_partial_then_full(self, ledger, tenant_id, test_actor_id, member_account, make_invoice, issue_credit_note):
        first = make_invoice(member_account.id, "30")
        second = make_invoice(member_account.id, "100")
        note = issue_credit_note(member_account.id, "50", approve=True)

        partial = ledger.apply_credit_note_to_invoice(tenant_id, note.id, first.id, Decimal("30"), test_actor_id)
        assert partial.status is CreditNoteStatus.PARTIALLY_APPLIED
        assert partial.remaining_amount == Decimal("20.00")
        assert ledger.get_invoice(tenant_id, first.id).status is InvoiceStatus.PAID

        full = ledger.apply_credit_note_to_invoice(tenant_id, note.id, second.id, Decimal("20"), test_actor_id)

        assert full.status is CreditNoteStatus.APPLIED
        assert full.remaining_amount == Decimal("0.00")
        assert [(a.invoice_id, a.amount_applied) for a in full.applications] == [
            (first.id, Decimal("30.00")),
            (second.id, Decimal("20.00")),
        ]
        second_now = ledger.get_invoice(tenant_id, second.id)
        assert second_now.status is InvoiceStatus.PARTIALLY_PAID
        assert second_now.balance_due == Decimal("80.00")
        account = ledger.get_account(tenant_id, member_account.id)
        assert account.outstanding_balance == Decimal("80.00")
        assert account.credit_balance == Decimal("0.00")

    def test_more_than_remaining_rejected(self, ledger, tenant_id, test_actor_id, member_account, make_invoice, issue_credit_note):
        invoice = make_invoice(member_account.id, "200")
        note = issue_credit_note(member_account.id, "50", approve=True)

        with pytest.raises(OverAllocationError) as exc_info:
            ledger.apply_credit_note_to_invoice(tenant_id, note.id, invoice.id, Decimal("60"), test_actor_id)
        assert exc_info.value.max_allowed == Decimal("50.00")

        unchanged = ledger.get_credit_note(tenant_id, note.id)
        assert unchanged.status is CreditNoteStatus.APPROVED
        assert unchanged.applied_to_balance == Decimal("0.00")
        assert unchanged.applications == ()
        invoice_now = ledger.get_invoice(tenant_id, invoice.id)
        assert invoice_now.status is InvoiceStatus.SENT
        assert invoice_now.balance_due == Decimal("200.00")
        assert ledger.get_account(tenant_id, member_account.id).outstanding_balance == Decimal("200.00")

    def test_more_than_invoice_balance_rejected(
        self, ledger, tenant_id, test_actor_id, member_account, make_invoice, issue_credit_note
    ):
        invoice = make_invoice(member_account.id, "20")
        note = issue_credit_note(member_account.id, "50", approve=True)

        with pytest.raises(OverAllocationError):
            ledger.apply_credit_note_to_invoice(tenant_id, note.id, invoice.id, Decimal("30"), test_actor_id)

        assert ledger.get_credit_note(tenant_id, note.id).status is CreditNoteStatus.APPROVED
        assert ledger.get_invoice(tenant_id, invoice.id).balance_due == Decimal("20.00")

    def test_invoice_of_other_account_rejected(
        self, ledger, tenant_id, test_actor_id, make_account, make_invoice, issue_credit_note
    ):
        owner = make_account("Owner")
        other = make_account("Other")
        invoice = make_invoice(other.id, "40")
        note = issue_credit_note(owner.id, "40", approve=True)

        with pytest.raises(NotFoundError):
            ledger.apply_credit_note_to_invoice(tenant_id, note.id, invoice.id, Decimal("40"), test_actor_id)


class TestRefundAndVoid:

    def test_refund_pays_out_remaining(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id, "75", approve=True)

        refunded = ledger.refund_credit_note(tenant_id, note.id, test_actor_id)

        assert refunded.status is CreditNoteStatus.REFUNDED
        assert refunded.refunded_amount == Decimal("75.00")
        assert refunded.remaining_amount == Decimal("0.00")
        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("0.00")

    def test_partially_applied_cannot_be_refunded(
        self, ledger, tenant_id, test_actor_id, member_account, make_invoice, issue_credit_note
    ):
        invoice = make_invoice(member_account.id, "100")
        note = issue_credit_note(member_account.id, "50", approve=True)
        ledger.apply_credit_note_to_invoice(tenant_id, note.id, invoice.id, Decimal("10"), test_actor_id)

        with pytest.raises(InvalidStateError):
            ledger.refund_credit_note(tenant_id, note.id, test_actor_id)

    def test_void_records_reason(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id)

        voided = ledger.void_credit_note(tenant_id, note.id, "Issued twice", test_actor_id)

        assert voided.status is CreditNoteStatus.VOIDED
        assert voided.voided_by == test_actor_id
        assert voided.internal_notes == "[VOIDED] Issued twice"

    def test_void_requires_reason(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id)

        with pytest.raises(ValidationError):
            ledger.void_credit_note(tenant_id, note.id, " ", test_actor_id)

    def test_applied_note_cannot_be_voided(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        note = issue_credit_note(member_account.id, approve=True)
        ledger.apply_credit_note_to_balance(tenant_id, note.id, test_actor_id)

        with pytest.raises(InvalidStateError):
            ledger.void_credit_note(tenant_id, note.id, "Too late", test_actor_id)

    def test_voided_number_not_reused(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        first = issue_credit_note(member_account.id)
        ledger.void_credit_note(tenant_id, first.id, "Mistake", test_actor_id)

        second = issue_credit_note(member_account.id)

        assert second.credit_note_number == "CN-2024-000002"

    def test_list_filters_by_status(self, ledger, tenant_id, test_actor_id, member_account, issue_credit_note):
        first = issue_credit_note(member_account.id)
        ledger.void_credit_note(tenant_id, first.id, "Mistake", test_actor_id)
        second = issue_credit_note(member_account.id)

        notes = ledger.list_credit_notes(tenant_id, member_account.id)
        voided = ledger.list_credit_notes(tenant_id, member_account.id, CreditNoteStatus.VOIDED)

        assert [n.id for n in notes] == [first.id, second.id]
        assert [n.id for n in voided] == [first.id]

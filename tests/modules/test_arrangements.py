"""
Tests for payment arrangements.

Covers:
- Schedule creation (number, even split, due dates, invoice validation)
- Activation and the DRAFT/ACTIVE gate on installment payments
- Installment payments flowing through to invoices oldest-due-first
- Completion, cancellation, default
- Overdue installment sweep
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ar_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ar_modules.arrangements.models import ArrangementStatus, Frequency, InstallmentStatus
from ar_modules.config import LedgerConfig
from ar_modules.invoicing.models import InvoiceStatus
from ar_modules.payments.models import AllocationRequest, PaymentMethod
from ar_services.ledger import ARLedgerService


@pytest.fixture
def two_invoices(member_account, make_invoice):
    older = make_invoice(member_account.id, "100", invoice_date=date(2024, 1, 1), due_date=date(2024, 1, 10))
    newer = make_invoice(member_account.id, "150", invoice_date=date(2024, 2, 1), due_date=date(2024, 2, 10))
    return older, newer


@pytest.fixture
def arrange(ledger, tenant_id, test_actor_id, member_account):
    def _arrange(invoice_ids, count=3, *, frequency=Frequency.MONTHLY, start=date(2024, 3, 15), activate=True):
        plan = ledger.create_payment_arrangement(
            tenant_id, member_account.id, invoice_ids, count, frequency, start, test_actor_id
        )
        if activate:
            plan = ledger.activate_arrangement(tenant_id, plan.id, test_actor_id)
        return plan
    return _arrange


class TestCreateArrangement:

    def test_even_monthly_schedule(self, ledger, tenant_id, test_actor_id, member_account, two_invoices):
        older, newer = two_invoices

        plan = ledger.create_payment_arrangement(
            tenant_id, member_account.id, [older.id, newer.id], 3, Frequency.MONTHLY, date(2024, 3, 31),
            test_actor_id, notes="Agreed at front desk",
        )

        assert plan.arrangement_number == "PA-2024-00001"
        assert plan.status is ArrangementStatus.DRAFT
        assert plan.total_amount == Decimal("250.00")
        assert plan.remaining_amount == Decimal("250.00")
        assert plan.invoice_ids == (older.id, newer.id)
        assert [(i.installment_no, i.due_date, i.amount) for i in plan.installments] == [
            (1, date(2024, 3, 31), Decimal("83.33")),
            (2, date(2024, 4, 30), Decimal("83.33")),
            (3, date(2024, 5, 31), Decimal("83.34")),
        ]
        assert plan.end_date == date(2024, 5, 31)
        assert sum(i.amount for i in plan.installments) == plan.total_amount

    def test_total_uses_remaining_balance(self, ledger, tenant_id, test_actor_id, member_account, make_invoice, arrange):
        invoice = make_invoice(member_account.id, "100")
        ledger.settle_fifo(tenant_id, member_account.id, Decimal("40"), PaymentMethod.CASH, test_actor_id)

        plan = arrange([invoice.id], 2, activate=False)

        assert plan.total_amount == Decimal("60.00")

    def test_tiny_total_waives_zero_installments(self, member_account, make_invoice, arrange):
        invoice = make_invoice(member_account.id, "0.02")

        plan = arrange([invoice.id], 3, activate=False)

        assert [(i.amount, i.status) for i in plan.installments] == [
            (Decimal("0.00"), InstallmentStatus.WAIVED),
            (Decimal("0.00"), InstallmentStatus.WAIVED),
            (Decimal("0.02"), InstallmentStatus.PENDING),
        ]
        assert plan.next_due.installment_no == 3

    @pytest.mark.parametrize("count", [0, -1])
    def test_count_must_be_positive(self, two_invoices, arrange, count):
        with pytest.raises(ValidationError):
            arrange([two_invoices[0].id], count, activate=False)

    def test_invoices_required(self, arrange):
        with pytest.raises(ValidationError):
            arrange([], activate=False)

    def test_duplicate_invoice_rejected(self, two_invoices, arrange):
        older, _ = two_invoices

        with pytest.raises(ValidationError):
            arrange([older.id, older.id], activate=False)

    def test_void_invoice_rejected(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        older, newer = two_invoices
        ledger.void_invoice(tenant_id, older.id, "Waived by board", test_actor_id)

        with pytest.raises(ValidationError):
            arrange([older.id, newer.id], activate=False)

    def test_paid_invoice_rejected(self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange):
        older, newer = two_invoices
        ledger.settle_fifo(tenant_id, member_account.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)

        with pytest.raises(ValidationError):
            arrange([older.id, newer.id], activate=False)

    def test_invoice_of_other_account_rejected(self, make_account, make_invoice, arrange):
        other = make_account("Other")
        foreign = make_invoice(other.id, "40")

        with pytest.raises(NotFoundError):
            arrange([foreign.id], activate=False)

    def test_failed_create_consumes_no_number(self, two_invoices, arrange):
        older, _ = two_invoices
        with pytest.raises(ValidationError):
            arrange([older.id, older.id], activate=False)

        plan = arrange([older.id], activate=False)

        assert plan.arrangement_number == "PA-2024-00001"


class TestActivate:

    def test_activate_stamps_approver(self, ledger, tenant_id, test_actor_id, two_invoices, arrange, clock):
        plan = arrange([two_invoices[0].id], activate=False)

        active = ledger.activate_arrangement(tenant_id, plan.id, test_actor_id)

        assert active.status is ArrangementStatus.ACTIVE
        assert active.approved_by == test_actor_id
        assert active.approved_at == clock.now()

    def test_draft_does_not_accept_payments(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], activate=False)

        with pytest.raises(InvalidStateError):
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("10"), test_actor_id,
                method=PaymentMethod.CASH,
            )


class TestInstallmentPayments:

    def test_payment_settles_oldest_invoice_first(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, newer = two_invoices
        plan = arrange([newer.id, older.id])
        first = plan.installments[0]

        updated = ledger.record_installment_payment(
            tenant_id, plan.id, first.id, Decimal("83.33"), test_actor_id, method=PaymentMethod.CASH
        )

        assert updated.installments[0].status is InstallmentStatus.PAID
        assert updated.installments[0].payment_id is not None
        assert updated.paid_amount == Decimal("83.33")
        assert updated.remaining_amount == Decimal("166.67")
        assert updated.next_due.installment_no == 2
        assert ledger.get_invoice(tenant_id, older.id).balance_due == Decimal("16.67")
        assert ledger.get_invoice(tenant_id, newer.id).balance_due == Decimal("150.00")
        assert ledger.get_account(tenant_id, member_account.id).outstanding_balance == Decimal("166.67")

        payment = ledger.get_payment(tenant_id, updated.installments[0].payment_id)
        assert payment.receipt_number == "RCP-2024-00001"
        assert payment.allocated_amount == Decimal("83.33")

    def test_partial_installment_stays_pending(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], 2)
        first = plan.installments[0]

        updated = ledger.record_installment_payment(
            tenant_id, plan.id, first.id, Decimal("20"), test_actor_id, method=PaymentMethod.CASH
        )

        assert updated.installments[0].status is InstallmentStatus.PENDING
        assert updated.installments[0].remaining_amount == Decimal("30.00")

    def test_more_than_installment_rejected(self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], 2)

        with pytest.raises(OverAllocationError):
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("50.01"), test_actor_id,
                method=PaymentMethod.CASH,
            )

        assert ledger.list_payments(tenant_id, member_account.id) == []

    def test_paying_all_installments_completes_plan(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, newer = two_invoices
        plan = arrange([older.id, newer.id])

        for installment in plan.installments:
            plan = ledger.record_installment_payment(
                tenant_id, plan.id, installment.id, installment.amount, test_actor_id,
                method=PaymentMethod.BANK_TRANSFER,
            )

        assert plan.status is ArrangementStatus.COMPLETED
        assert plan.remaining_amount == Decimal("0.00")
        assert plan.next_due is None
        assert ledger.get_invoice(tenant_id, older.id).status is InvoiceStatus.PAID
        assert ledger.get_invoice(tenant_id, newer.id).status is InvoiceStatus.PAID
        assert ledger.get_account(tenant_id, member_account.id).outstanding_balance == Decimal("0.00")

    def test_paid_installment_rejects_more_money(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], 2)
        first = plan.installments[0]
        ledger.record_installment_payment(
            tenant_id, plan.id, first.id, first.amount, test_actor_id, method=PaymentMethod.CASH
        )

        with pytest.raises(InvalidStateError):
            ledger.record_installment_payment(
                tenant_id, plan.id, first.id, Decimal("1"), test_actor_id, method=PaymentMethod.CASH
            )

    def test_existing_credit_pays_installment(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, _ = two_invoices
        plan = arrange([older.id], 2)
        prepaid = ledger.settle_fifo(
            tenant_id, member_account.id, Decimal("80"), PaymentMethod.CHECK, test_actor_id, use_fifo=False
        )

        updated = ledger.record_installment_payment(
            tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, payment_id=prepaid.id
        )

        assert updated.installments[0].payment_id == prepaid.id
        account = ledger.get_account(tenant_id, member_account.id)
        assert account.credit_balance == Decimal("30.00")
        assert account.outstanding_balance == Decimal("200.00")
        assert ledger.get_payment(tenant_id, prepaid.id).allocated_amount == Decimal("50.00")

    def test_existing_payment_must_cover_amount(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        plan = arrange([two_invoices[0].id], 2)
        prepaid = ledger.settle_fifo(
            tenant_id, member_account.id, Decimal("20"), PaymentMethod.CHECK, test_actor_id, use_fifo=False
        )

        with pytest.raises(OverAllocationError):
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, payment_id=prepaid.id
            )

    def test_method_required_without_payment(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], 2)

        with pytest.raises(ValidationError):
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("10"), test_actor_id
            )

    def test_unknown_installment(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], 2)

        with pytest.raises(NotFoundError):
            ledger.record_installment_payment(
                tenant_id, plan.id, uuid4(), Decimal("10"), test_actor_id, method=PaymentMethod.CASH
            )

    def test_money_beyond_invoices_becomes_credit(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, _ = two_invoices
        plan = arrange([older.id], 2)
        # settled outside the plan
        ledger.settle_fifo(tenant_id, member_account.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)

        ledger.record_installment_payment(
            tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, method=PaymentMethod.CASH
        )

        assert ledger.get_invoice(tenant_id, older.id).status is InvoiceStatus.PAID
        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("50.00")

    def test_existing_credit_not_counted_when_invoices_are_settled(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, _ = two_invoices
        plan = arrange([older.id], 2)
        # settled outside the plan
        ledger.settle_fifo(tenant_id, member_account.id, Decimal("100"), PaymentMethod.CASH, test_actor_id)
        prepaid = ledger.settle_fifo(
            tenant_id, member_account.id, Decimal("100"), PaymentMethod.CHECK, test_actor_id, use_fifo=False
        )

        with pytest.raises(OverAllocationError) as exc_info:
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, payment_id=prepaid.id
            )

        assert exc_info.value.max_allowed == Decimal("0.00")
        unchanged = ledger.get_arrangement(tenant_id, plan.id)
        assert unchanged.status is ArrangementStatus.ACTIVE
        assert unchanged.paid_amount == Decimal("0.00")
        assert unchanged.installments[0].status is InstallmentStatus.PENDING
        assert unchanged.installments[0].paid_amount == Decimal("0.00")
        assert ledger.get_payment(tenant_id, prepaid.id).allocated_amount == Decimal("0.00")
        assert ledger.get_account(tenant_id, member_account.id).credit_balance == Decimal("100.00")

    def test_existing_credit_limited_to_what_invoices_absorb(
        self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, _ = two_invoices
        plan = arrange([older.id], 1)
        ledger.record_payment(
            tenant_id, member_account.id, Decimal("70"), PaymentMethod.CASH, test_actor_id,
            allocations=[AllocationRequest(older.id, Decimal("70"))],
        )
        prepaid = ledger.settle_fifo(
            tenant_id, member_account.id, Decimal("100"), PaymentMethod.CHECK, test_actor_id, use_fifo=False
        )

        with pytest.raises(OverAllocationError) as exc_info:
            ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, payment_id=prepaid.id
            )

        assert exc_info.value.max_allowed == Decimal("30.00")
        assert ledger.get_invoice(tenant_id, older.id).balance_due == Decimal("30.00")

    def test_pending_policy_rejects_money_beyond_invoices(
        self, session, clock, tenant_id, test_actor_id, member_account, two_invoices, arrange
    ):
        older, _ = two_invoices
        plan = arrange([older.id], 2)
        pending_ledger = ARLedgerService(
            session, config=LedgerConfig(unallocated_payment_policy="pending"), clock=clock
        )
        paid = pending_ledger.settle_fifo(
            tenant_id, member_account.id, Decimal("100"), PaymentMethod.CASH, test_actor_id
        )

        with pytest.raises(OverAllocationError):
            pending_ledger.record_installment_payment(
                tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, method=PaymentMethod.CASH
            )

        assert [p.id for p in pending_ledger.list_payments(tenant_id, member_account.id)] == [paid.id]
        assert pending_ledger.get_arrangement(tenant_id, plan.id).paid_amount == Decimal("0.00")


class TestEndingArrangements:

    def test_cancel_draft_with_reason(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        plan = arrange([two_invoices[0].id], activate=False)

        cancelled = ledger.cancel_arrangement(tenant_id, plan.id, test_actor_id, reason="Member paid in full")

        assert cancelled.status is ArrangementStatus.CANCELLED
        assert cancelled.notes == "[CANCELLED] Member paid in full"

    def test_list_filters_by_status(self, ledger, tenant_id, test_actor_id, member_account, two_invoices, arrange):
        cancelled = arrange([two_invoices[0].id], activate=False)
        ledger.cancel_arrangement(tenant_id, cancelled.id, test_actor_id, reason="Replaced")
        active = arrange([two_invoices[1].id])

        plans = ledger.list_arrangements(tenant_id, member_account.id)
        live = ledger.list_arrangements(tenant_id, member_account.id, ArrangementStatus.ACTIVE)

        assert [p.id for p in plans] == [cancelled.id, active.id]
        assert [p.id for p in live] == [active.id]

    def test_cancel_keeps_applied_money(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        older, _ = two_invoices
        plan = arrange([older.id], 2)
        ledger.record_installment_payment(
            tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, method=PaymentMethod.CASH
        )

        cancelled = ledger.cancel_arrangement(tenant_id, plan.id, test_actor_id)

        assert cancelled.paid_amount == Decimal("50.00")
        assert ledger.get_invoice(tenant_id, older.id).balance_due == Decimal("50.00")

    def test_default_requires_active_and_reason(self, ledger, tenant_id, test_actor_id, two_invoices, arrange):
        draft = arrange([two_invoices[0].id], activate=False)
        with pytest.raises(InvalidStateError):
            ledger.default_arrangement(tenant_id, draft.id, "Missed payments", test_actor_id)

        active = arrange([two_invoices[1].id])
        with pytest.raises(ValidationError):
            ledger.default_arrangement(tenant_id, active.id, "", test_actor_id)

        defaulted = ledger.default_arrangement(tenant_id, active.id, "Missed payments", test_actor_id)
        assert defaulted.status is ArrangementStatus.DEFAULTED
        assert "[DEFAULTED] Missed payments" in defaulted.notes

    def test_completed_plan_cannot_be_cancelled(self, ledger, tenant_id, test_actor_id, member_account, make_invoice, arrange):
        invoice = make_invoice(member_account.id, "30")
        plan = arrange([invoice.id], 1)
        plan = ledger.record_installment_payment(
            tenant_id, plan.id, plan.installments[0].id, Decimal("30"), test_actor_id, method=PaymentMethod.CASH
        )
        assert plan.status is ArrangementStatus.COMPLETED

        with pytest.raises(InvalidStateError):
            ledger.cancel_arrangement(tenant_id, plan.id, test_actor_id)


class TestOverdueInstallments:

    def test_sweep_marks_past_due_pending(self, ledger, tenant_id, test_actor_id, two_invoices, arrange, clock):
        plan = arrange([two_invoices[0].id], 2, start=date(2024, 3, 10), activate=True)
        draft = arrange([two_invoices[1].id], 2, start=date(2024, 2, 1), activate=False)
        clock.advance_days(10)

        marked = ledger.mark_overdue_installments(tenant_id, test_actor_id)

        assert [i.id for i in marked] == [plan.installments[0].id]
        assert ledger.get_arrangement(tenant_id, plan.id).installments[0].status is InstallmentStatus.OVERDUE
        assert all(
            i.status is InstallmentStatus.PENDING for i in ledger.get_arrangement(tenant_id, draft.id).installments
        )

    def test_overdue_installment_can_still_be_paid(self, ledger, tenant_id, test_actor_id, two_invoices, arrange, clock):
        plan = arrange([two_invoices[0].id], 2, start=date(2024, 2, 1))
        ledger.mark_overdue_installments(tenant_id, test_actor_id)

        updated = ledger.record_installment_payment(
            tenant_id, plan.id, plan.installments[0].id, Decimal("50"), test_actor_id, method=PaymentMethod.CASH
        )

        assert updated.installments[0].status is InstallmentStatus.PAID
        assert updated.installments[0].paid_at == clock.now()

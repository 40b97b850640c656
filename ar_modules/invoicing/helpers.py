"""
Invoice status recompute -- the single place invoice status follows money.

Called in the same transaction as every change to ``paid_amount`` or
``balance_due`` (payment allocation, credit-note application) and by the
overdue sweep.
"""

from datetime import date

from ar_kernel.domain.money import round2
from ar_modules.invoicing.orm import InvoiceModel
from ar_modules.invoicing.workflows import INVOICE_WORKFLOW

MONEY_ACCEPTING_STATUSES: frozenset[str] = frozenset(INVOICE_WORKFLOW.sources_for("apply_payment"))


def next_invoice_status(invoice: InvoiceModel, today: date) -> str:
    """
    PAID when nothing is owed; PARTIALLY_PAID while partly paid; OVERDUE
    when unpaid past its due date; otherwise the status does not change.
    A DRAFT invoice is never marked overdue; it has not been sent.
    """
    status = invoice.status
    if status in INVOICE_WORKFLOW.terminal_states:
        return status

    total = round2(invoice.total_amount)
    paid = round2(invoice.paid_amount)
    balance = round2(invoice.balance_due)

    if balance <= 0:
        return "PAID"
    if 0 < paid < total:
        return "PARTIALLY_PAID"
    if status != "DRAFT" and today > invoice.due_date:
        return "OVERDUE"
    return status


def recompute_invoice_status(invoice: InvoiceModel, today: date) -> str:
    """Apply :func:`next_invoice_status`; stamps ``paid_date`` on the move to PAID."""
    new_status = next_invoice_status(invoice, today)
    if new_status == "PAID" and invoice.status != "PAID":
        invoice.paid_date = today
    invoice.status = new_status
    return new_status

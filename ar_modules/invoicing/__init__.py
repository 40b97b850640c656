"""
Invoicing Module.

Invoice creation from priced line items, the DRAFT/SENT/PAID/VOID
lifecycle, and the status recompute every money movement runs through.
"""

from ar_modules.invoicing.models import (
    OUTSTANDING_STATUSES,
    BatchFailure,
    BatchInvoiceResult,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
)
from ar_modules.invoicing.workflows import INVOICE_WORKFLOW

__all__ = [
    "OUTSTANDING_STATUSES",
    "BatchFailure",
    "BatchInvoiceResult",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "INVOICE_WORKFLOW",
]

"""
AR Engines - pure calculation functions.

No database, no clock, no session.  Modules load rows, hand snapshots to
these functions and persist the results.

- pricing:      line and document totals
- allocation:   FIFO settlement plan
- installments: arrangement schedules
- aging:        bucket classification and roll-up
- statement:    running-balance statement lines
"""

from ar_engines.aging import AgingBucket, AgingFilter, bucket_for, classify_days
from ar_engines.allocation import AllocationPlan, OpenInvoice, fifo_allocate
from ar_engines.installments import Frequency, build_schedule
from ar_engines.pricing import DocumentTotals, LineInput, price_invoice_lines
from ar_engines.statement import StatementEntryKind, build_statement_lines

__all__ = [
    "AgingBucket",
    "AgingFilter",
    "bucket_for",
    "classify_days",
    "AllocationPlan",
    "OpenInvoice",
    "fifo_allocate",
    "Frequency",
    "build_schedule",
    "DocumentTotals",
    "LineInput",
    "price_invoice_lines",
    "StatementEntryKind",
    "build_statement_lines",
]

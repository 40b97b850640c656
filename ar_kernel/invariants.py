"""
Ledger invariants contract.

These rules hold after every committed operation, whatever the tenant's
LedgerConfig says.  Enforcement is spread across the module services;
this module only names them so tests and reviewers can refer to them.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable guarantees of the AR ledger."""

    INVOICE_BALANCE = "invoice_balance"
    """balance_due == total_amount - paid_amount and balance_due >= 0 for
    every non-void invoice.  Enforced by the invoicing status recompute."""

    ACCOUNT_OUTSTANDING = "account_outstanding"
    """account.outstanding_balance == sum of balance_due over its non-void
    invoices.  Every invoice mutation adjusts the account in the same
    transaction."""

    NO_OVER_ALLOCATION = "no_over_allocation"
    """Payment allocations never exceed the payment amount or the invoice
    balance; credit note applications never exceed the remaining credit."""

    INSTALLMENT_SUM = "installment_sum"
    """The installments of an arrangement sum exactly to its total."""

    NON_NEGATIVE_CREDIT = "non_negative_credit"
    """account.credit_balance never drops below zero."""

    DOCUMENT_NUMBER_UNIQUENESS = "document_number_uniqueness"
    """Document numbers come from locked counters and are never reused."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# ar_kernel may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "ar_engines",
    "ar_modules",
    "ar_services",
)

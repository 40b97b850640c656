"""
Payment Arrangements Module.

Installment plans over an account's unpaid invoices.
"""

from ar_modules.arrangements.models import (
    ArrangementInstallment,
    ArrangementStatus,
    Frequency,
    InstallmentStatus,
    PaymentArrangement,
)
from ar_modules.arrangements.workflows import ARRANGEMENT_WORKFLOW, INSTALLMENT_WORKFLOW

__all__ = [
    "ArrangementInstallment",
    "ArrangementStatus",
    "Frequency",
    "InstallmentStatus",
    "PaymentArrangement",
    "ARRANGEMENT_WORKFLOW",
    "INSTALLMENT_WORKFLOW",
]

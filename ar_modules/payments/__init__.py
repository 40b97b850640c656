"""
Payments Module.

Payments received, explicit allocations to invoices, and FIFO settlement
of an account's open invoices.
"""

from ar_modules.payments.models import (
    AllocationRequest,
    FifoPreview,
    Payment,
    PaymentAllocation,
    PaymentMethod,
)

__all__ = [
    "AllocationRequest",
    "FifoPreview",
    "Payment",
    "PaymentAllocation",
    "PaymentMethod",
]

"""Kernel-owned ORM models."""

from ar_kernel.models.ledger_event import LedgerEvent, LedgerEventType
from ar_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "LedgerEvent",
    "LedgerEventType",
    "SequenceCounter",
]

"""
Credit Notes Module.

Credit notes issued against an account: approval, application to the
credit balance or to invoices, refund and void.
"""

from ar_modules.credit_notes.models import (
    CreditNote,
    CreditNoteApplication,
    CreditNoteLine,
    CreditNoteReason,
    CreditNoteStatus,
    CreditNoteType,
)
from ar_modules.credit_notes.workflows import CREDIT_NOTE_WORKFLOW

__all__ = [
    "CreditNote",
    "CreditNoteApplication",
    "CreditNoteLine",
    "CreditNoteReason",
    "CreditNoteStatus",
    "CreditNoteType",
    "CREDIT_NOTE_WORKFLOW",
]

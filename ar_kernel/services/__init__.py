"""Kernel services: sequences, ledger events, base service."""

from ar_kernel.services.base import BaseService
from ar_kernel.services.event_recorder import EventRecorder
from ar_kernel.services.sequence_service import SequenceService, format_document_number

__all__ = [
    "BaseService",
    "EventRecorder",
    "SequenceService",
    "format_document_number",
]

"""
BaseService -- common constructor for flush-only ledger services.

Responsibility:
    Every module service (invoicing, payments, credit notes, arrangements)
    extends BaseService.  They receive the caller's Session, mutate rows and
    call ``session.flush()`` -- never ``commit()`` or ``rollback()``.  The
    ``ARLedgerService`` facade owns the transaction boundary, so one
    operation that spans several module services is still atomic.

Architecture position:
    Kernel > Services.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from ar_kernel.domain.clock import Clock, SystemClock
from ar_kernel.exceptions import ValidationError
from ar_kernel.services.event_recorder import EventRecorder
from ar_kernel.services.sequence_service import SequenceService


class BaseService(ABC):
    """Holds the session, clock, event recorder and sequence allocator."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self.events = EventRecorder(session, self.clock)
        self.sequences = SequenceService(session)

    @staticmethod
    def require_tenant(tenant_id: UUID | None) -> UUID:
        if tenant_id is None:
            raise ValidationError("tenant_id is required", field="tenant_id")
        return tenant_id

    @staticmethod
    def require_actor(actor_id: UUID | None) -> UUID:
        if actor_id is None:
            raise ValidationError("actor_id is required", field="actor_id")
        return actor_id

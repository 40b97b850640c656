"""
EventRecorder -- appends LedgerEvent rows inside the caller's transaction.

Payload values are normalized to JSON-safe primitives (Decimal and UUID as
strings, dates as ISO text, enums as their value) so the JSON column
round-trips identically on every backend.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_kernel.domain.clock import Clock, SystemClock
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEvent, LedgerEventType
from ar_kernel.services.sequence_service import SequenceService

logger = get_logger("services.event_recorder")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class EventRecorder:
    """Flush-only writer for the ledger event log."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        *,
        tenant_id: UUID,
        aggregate_type: str,
        aggregate_id: UUID,
        event_type: LedgerEventType,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> LedgerEvent:
        ledger_event = LedgerEvent(
            tenant_id=tenant_id,
            seq=self._sequences.next_value(f"{tenant_id}:ledger_event"),
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=_jsonable(payload or {}),
        )
        self._session.add(ledger_event)
        self._session.flush()
        logger.debug(
            "ledger_event_recorded",
            extra={
                "event_type": event_type.value,
                "aggregate_type": aggregate_type,
                "aggregate_id": str(aggregate_id),
            },
        )
        return ledger_event

    def events_for(self, aggregate_type: str, aggregate_id: UUID) -> list[LedgerEvent]:
        return list(
            self._session.scalars(
                select(LedgerEvent)
                .where(
                    LedgerEvent.aggregate_type == aggregate_type,
                    LedgerEvent.aggregate_id == aggregate_id,
                )
                .order_by(LedgerEvent.seq)
            )
        )

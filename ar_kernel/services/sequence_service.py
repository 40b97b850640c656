"""
SequenceService -- document numbers from locked counter rows.

Responsibility:
    Hands out invoice, receipt, credit-note and arrangement numbers.
    Each (tenant, prefix, year) pair owns one counter row; the row is
    locked with ``SELECT ... FOR UPDATE`` and incremented in the caller's
    transaction, so two concurrent creators can never read the same value.

Architecture position:
    Kernel > Services -- called by every ar_modules service that issues a
    document number.

Invariants enforced:
    - Numbers are never derived from "find the last document and add one".
    - A committed number is never reused; a rolled-back one is returned
      with the transaction.

Failure modes:
    - IntegrityError on a concurrent first use of a counter: handled with a
      savepoint rollback and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ar_kernel.db.base import Base
from ar_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter. ``current_value`` is the last number handed out."""

    __tablename__ = "ar_sequence_counters"

    # "{tenant_id}:{prefix}:{year}"
    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


def format_document_number(prefix: str, year: int, value: int, width: int) -> str:
    """``format_document_number("INV", 2024, 7, 5) -> "INV-2024-00007"``."""
    return f"{prefix}-{year}-{value:0{width}d}"


class SequenceService:
    """
    Transactional counters.

    Never commits; the caller's transaction decides whether the number is
    consumed.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the counter row, increment it, return the new value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_document_number(
        self,
        tenant_id: object,
        prefix: str,
        year: int,
        width: int,
    ) -> str:
        """Allocate the next ``PREFIX-YYYY-NNNN`` number for a tenant."""
        value = self.next_value(f"{tenant_id}:{prefix}:{year}")
        return format_document_number(prefix, year, value, width)

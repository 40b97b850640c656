"""
Module: ar_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Owns
    the UUID primary key convention, the type annotation map used for every
    column, and the TrackedBase mixin carrying audit columns.
Architecture position: Kernel > DB.  Lowest-level import target of the kernel;
    MUST NOT import from models/, services/, domain/ or any ar_modules package.

Invariants enforced:
    - UUID primary keys on every table (uuid4, stored as String(36)).
    - Decimal columns are exact on every backend: Numeric(38, 9) on
      PostgreSQL, decimal text on SQLite (which has no native DECIMAL).
    - created_by_id is mandatory: every ledger row names its creator.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36); converts transparently in both directions."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class ExactDecimal(TypeDecorator):
    """
    Decimal column that never passes through float.

    PostgreSQL gets a native NUMERIC(38, 9).  SQLite stores the canonical
    decimal string, because its NUMERIC affinity rounds through a double.
    """

    impl = Numeric(38, 9)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(48))
        return dialect.type_descriptor(Numeric(38, 9, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(Decimal(value))
        return Decimal(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    - id is a uuid4 stored as String(36).
    - Decimal maps to ExactDecimal, datetime to a tz-aware DateTime,
      date to Date, int to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: ExactDecimal(),
        datetime: DateTime(timezone=True),
        date: Date(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    created_at / updated_at come from the database clock; created_by_id is
    required, updated_by_id is filled in by the service that mutates a row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID

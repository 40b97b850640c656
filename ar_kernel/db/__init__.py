"""Database layer - engine, base classes and column types."""

from ar_kernel.db.base import UUID, Base, ExactDecimal, TrackedBase, UUIDString
from ar_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from ar_kernel.db.types import validate_currency

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "ExactDecimal",
    "UUID",
    "validate_currency",
]

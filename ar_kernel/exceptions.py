"""
Typed exception hierarchy for the AR ledger.

Every error a caller can act on has its own class, a class-level ``code``
(machine-readable and stable across releases) and structured attributes
carrying the data needed to build an API response without parsing the
message string.

    ARLedgerError (base)
    |
    +-- ValidationError             VALIDATION_ERROR
    |   +-- AccountNumberTakenError ACCOUNT_NUMBER_TAKEN
    |
    +-- NotFoundError               NOT_FOUND
    |
    +-- InvalidStateError           INVALID_STATE
    |
    +-- OverAllocationError         OVER_ALLOCATION
    |
    +-- ImmutabilityViolationError  IMMUTABILITY_VIOLATION

Usage::

    try:
        ledger.apply_credit_note_to_invoice(cn_id, inv_id, amount)
    except OverAllocationError as e:
        respond(code=e.code, max_allowed=e.max_allowed)

Raising any of these inside a service method rolls back the whole
transaction; nothing is partially committed.
"""

from decimal import Decimal
from typing import Any


class ARLedgerError(Exception):
    """Base exception for all AR ledger errors."""

    code: str = "AR_LEDGER_ERROR"


class ValidationError(ARLedgerError):
    """Input rejected before any state was touched."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


class AccountNumberTakenError(ValidationError):
    """Another account in the same tenant already uses this number."""

    code: str = "ACCOUNT_NUMBER_TAKEN"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(
            f"Account number already in use: {account_number}",
            field="account_number",
            value=account_number,
        )


class NotFoundError(ARLedgerError):
    """Referenced entity does not exist (or belongs to another tenant/account)."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateError(ARLedgerError):
    """Operation is not allowed from the entity's current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_state: str,
        attempted: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity_type} {entity_id} "
            f"in status {current_state}"
        )


class OverAllocationError(ARLedgerError):
    """Requested amount exceeds what remains on the target."""

    code: str = "OVER_ALLOCATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        requested: Decimal,
        max_allowed: Decimal,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.requested = requested
        self.max_allowed = max_allowed
        super().__init__(
            f"Requested {requested} exceeds maximum {max_allowed} "
            f"for {entity_type} {entity_id}"
        )


class ImmutabilityViolationError(ARLedgerError):
    """An append-only record was updated or deleted."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} {entity_id} is append-only")

"""
AR Account Domain Models (``ar_modules.accounts.models``).

Responsibility
--------------
Frozen value objects for receivable accounts -- club members and
city-ledger (non-member) accounts -- and the typed trail of every change
to an account's credit balance.

Invariants enforced
-------------------
* ``credit_balance >= 0``.
* All monetary fields are ``Decimal``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ar_kernel.logging_config import get_logger

logger = get_logger("modules.accounts.models")


class AccountType(Enum):
    MEMBER = "MEMBER"
    CITY_LEDGER = "CITY_LEDGER"


class AccountStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class CityLedgerCategory(Enum):
    """Kind of non-member account."""
    CORPORATE = "CORPORATE"
    HOUSE = "HOUSE"
    VENDOR = "VENDOR"
    OTHER = "OTHER"


class CreditEntrySource(Enum):
    OVERPAYMENT = "OVERPAYMENT"          # unallocated remainder of a payment
    PREPAYMENT = "PREPAYMENT"            # settlement with FIFO disabled
    CREDIT_NOTE = "CREDIT_NOTE"          # credit note applied to balance
    PAYMENT_APPLICATION = "PAYMENT_APPLICATION"  # credit spent on an invoice


@dataclass(frozen=True)
class ARAccount:
    """A receivable account: who owes the club money."""
    id: UUID
    tenant_id: UUID
    account_number: str
    name: str
    account_type: AccountType
    status: AccountStatus
    credit_balance: Decimal
    outstanding_balance: Decimal
    payment_terms_days: int
    credit_limit: Decimal | None = None
    category: CityLedgerCategory | None = None
    email: str | None = None

    def __post_init__(self):
        if self.credit_balance < 0:
            logger.warning(
                "account_negative_credit_balance",
                extra={"account_id": str(self.id), "credit_balance": str(self.credit_balance)},
            )
            raise ValueError("credit_balance cannot be negative")
        if self.category is not None and self.account_type is not AccountType.CITY_LEDGER:
            raise ValueError("category applies to city ledger accounts only")

    @property
    def is_suspended(self) -> bool:
        return self.status is AccountStatus.SUSPENDED

    @property
    def net_balance(self) -> Decimal:
        """Outstanding minus available credit (negative when in credit)."""
        return self.outstanding_balance - self.credit_balance


@dataclass(frozen=True)
class AccountCreditEntry:
    """One signed movement of an account's credit balance."""
    id: UUID
    account_id: UUID
    source: CreditEntrySource
    amount: Decimal
    balance_after: Decimal
    source_id: UUID | None
    created_at: datetime | None = None
    memo: str | None = None

"""
AR Accounts Module.

Member and city-ledger receivable accounts, their status lifecycle, and
the outstanding/credit balances every other module moves.
"""

from ar_modules.accounts.models import (
    AccountCreditEntry,
    AccountStatus,
    AccountType,
    ARAccount,
    CityLedgerCategory,
    CreditEntrySource,
)
from ar_modules.accounts.workflows import ACCOUNT_WORKFLOW

__all__ = [
    "AccountCreditEntry",
    "AccountStatus",
    "AccountType",
    "ARAccount",
    "CityLedgerCategory",
    "CreditEntrySource",
    "ACCOUNT_WORKFLOW",
]

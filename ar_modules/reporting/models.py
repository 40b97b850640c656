"""
Reporting Models (``ar_modules.reporting.models``).

Read-only views built from the ledger: the AR aging report, the member
statement and the billing dashboard figures.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ar_engines.aging import AccountAging, AgingFilter, BucketTotal
from ar_engines.statement import StatementLine


@dataclass(frozen=True)
class AgingReport:
    """
    One page of the aging report.

    ``buckets`` and ``total_outstanding`` cover every account with an open
    balance; ``accounts`` and ``total_count`` are after the filter.
    """
    as_of: date
    filter: AgingFilter
    buckets: tuple[BucketTotal, ...]
    total_outstanding: Decimal
    accounts: tuple[AccountAging, ...]
    total_count: int
    page: int
    limit: int

    @property
    def page_count(self) -> int:
        return max(1, -(-self.total_count // self.limit))

    @property
    def has_next_page(self) -> bool:
        return self.page * self.limit < self.total_count


@dataclass(frozen=True)
class MemberStatement:
    account_id: UUID
    account_number: str
    account_name: str
    start_date: date
    end_date: date
    opening_balance: Decimal
    lines: tuple[StatementLine, ...]
    closing_balance: Decimal


@dataclass(frozen=True)
class BillingStats:
    as_of: date
    total_outstanding: Decimal
    overdue_count: int
    this_month_collections: Decimal
    pending_invoice_count: int

"""
Module: ar_engines.aging
Responsibility:
    Classify open invoice balances into aging buckets, roll them up per
    account, and build bucket totals for the AR aging report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The as-of date is an
    argument; this module never reads a clock.

Invariants enforced:
    - ``days = (as_of - due_date).days``: <30 current, 30..59 "30",
      60..89 "60", >=90 "90".  An invoice due today or in the future is
      current.
    - A SUSPENDED account lands in the "suspended" bucket whatever its
      invoice ages.
    - An account's bucket is its worst invoice bucket, ordered
      current < 30 < 60 < 90 < suspended.
    - Bucket percentages are 0 when the report total is 0.

Usage:
    classify_days(30)   # AgingBucket.DAYS_30
    classify_days(29)   # AgingBucket.CURRENT
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from ar_kernel.domain.money import ZERO, money_sum, percent_of
from ar_kernel.exceptions import ValidationError


class AgingBucket(str, Enum):
    CURRENT = "current"
    DAYS_30 = "30"
    DAYS_60 = "60"
    DAYS_90 = "90"
    SUSPENDED = "suspended"

    @property
    def rank(self) -> int:
        return _BUCKET_ORDER.index(self)

    @property
    def label(self) -> str:
        return _BUCKET_LABELS[self]


_BUCKET_ORDER: tuple[AgingBucket, ...] = (
    AgingBucket.CURRENT,
    AgingBucket.DAYS_30,
    AgingBucket.DAYS_60,
    AgingBucket.DAYS_90,
    AgingBucket.SUSPENDED,
)

_BUCKET_LABELS = {
    AgingBucket.CURRENT: "Current",
    AgingBucket.DAYS_30: "30 Days",
    AgingBucket.DAYS_60: "60 Days",
    AgingBucket.DAYS_90: "90+ Days",
    AgingBucket.SUSPENDED: "Suspended",
}


class AgingFilter(str, Enum):
    ALL = "all"
    PLUS_30 = "30+"
    PLUS_60 = "60+"
    PLUS_90 = "90+"
    SUSPENDED = "suspended"

    @classmethod
    def parse(cls, value: "AgingFilter | str | None") -> "AgingFilter":
        if value is None:
            return cls.ALL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown aging filter: {value!r}", field="filter", value=value
            ) from None


_FILTER_FLOOR = {
    AgingFilter.ALL: AgingBucket.CURRENT,
    AgingFilter.PLUS_30: AgingBucket.DAYS_30,
    AgingFilter.PLUS_60: AgingBucket.DAYS_60,
    AgingFilter.PLUS_90: AgingBucket.DAYS_90,
    AgingFilter.SUSPENDED: AgingBucket.SUSPENDED,
}


def days_past_due(due_date: date, as_of: date) -> int:
    return (as_of - due_date).days


def classify_days(days: int) -> AgingBucket:
    if days < 30:
        return AgingBucket.CURRENT
    if days < 60:
        return AgingBucket.DAYS_30
    if days < 90:
        return AgingBucket.DAYS_60
    return AgingBucket.DAYS_90


def bucket_for(due_date: date, as_of: date, suspended: bool = False) -> AgingBucket:
    if suspended:
        return AgingBucket.SUSPENDED
    return classify_days(days_past_due(due_date, as_of))


def worst_bucket(buckets: Iterable[AgingBucket]) -> AgingBucket:
    worst = AgingBucket.CURRENT
    for b in buckets:
        if b.rank > worst.rank:
            worst = b
    return worst


def matches_filter(bucket: AgingBucket, aging_filter: AgingFilter) -> bool:
    """Filters are thresholds: "30+" keeps 30, 60, 90 and suspended."""
    return bucket.rank >= _FILTER_FLOOR[aging_filter].rank


# ---------------------------------------------------------------------------
# Roll-up
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgingInput:
    """One open invoice balance with the owning account's identity."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    account_suspended: bool
    invoice_id: UUID
    due_date: date
    balance_due: Decimal


@dataclass(frozen=True)
class AccountAging:
    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    balance: Decimal
    oldest_due_date: date
    days_outstanding: int
    bucket: AgingBucket
    invoice_count: int


@dataclass(frozen=True)
class BucketTotal:
    bucket: AgingBucket
    label: str
    account_count: int
    total_amount: Decimal
    percentage: Decimal


def roll_up(items: Sequence[AgingInput], as_of: date) -> list[AccountAging]:
    """Group open balances per account, sorted by balance desc then account number."""
    grouped: dict[UUID, list[AgingInput]] = {}
    for item in items:
        if item.balance_due <= 0:
            continue
        grouped.setdefault(item.account_id, []).append(item)

    accounts = []
    for account_id, rows in grouped.items():
        first = rows[0]
        oldest = min(r.due_date for r in rows)
        accounts.append(
            AccountAging(
                account_id=account_id,
                account_number=first.account_number,
                account_name=first.account_name,
                account_type=first.account_type,
                balance=money_sum(r.balance_due for r in rows),
                oldest_due_date=oldest,
                days_outstanding=max(0, days_past_due(oldest, as_of)),
                bucket=worst_bucket(
                    bucket_for(r.due_date, as_of, r.account_suspended) for r in rows
                ),
                invoice_count=len(rows),
            )
        )

    accounts.sort(key=lambda a: (-a.balance, a.account_number))
    return accounts


def bucket_totals(accounts: Sequence[AccountAging]) -> tuple[list[BucketTotal], Decimal]:
    """Per-bucket amount, account count and share of the grand total."""
    grand_total = money_sum(a.balance for a in accounts)
    totals = []
    for bucket in _BUCKET_ORDER:
        members = [a for a in accounts if a.bucket is bucket]
        amount = money_sum(a.balance for a in members) if members else ZERO
        totals.append(
            BucketTotal(
                bucket=bucket,
                label=bucket.label,
                account_count=len(members),
                total_amount=amount,
                percentage=percent_of(amount, grand_total),
            )
        )
    return totals, grand_total

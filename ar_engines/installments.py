"""
Module: ar_engines.installments
Responsibility:
    Build the installment schedule of a payment arrangement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``sum(installment.amount) == total`` exactly: every installment but
      the last is ``floor2(total / count)``; the last takes the remainder.
    - Installment k (0-based) is due ``start + k * interval``.  Monthly
      schedules step by calendar month from the start date and clamp to the
      last day of shorter months (Jan 31 -> Feb 29 -> Mar 31).

Failure modes:
    - ValidationError when count < 1 or total <= 0.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from ar_kernel.domain.money import floor2, round2, subtract
from ar_kernel.exceptions import ValidationError


class Frequency(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


@dataclass(frozen=True)
class ScheduledInstallment:
    installment_no: int
    due_date: date
    amount: Decimal


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date_for(start: date, frequency: Frequency, index: int) -> date:
    if frequency is Frequency.WEEKLY:
        return start + timedelta(days=7 * index)
    if frequency is Frequency.BIWEEKLY:
        return start + timedelta(days=14 * index)
    return add_months(start, index)


def build_schedule(
    total: Decimal,
    count: int,
    frequency: Frequency,
    start_date: date,
) -> tuple[ScheduledInstallment, ...]:
    if count < 1:
        raise ValidationError(
            "installment_count must be at least 1", field="installment_count", value=count
        )
    total = round2(total)
    if total <= 0:
        raise ValidationError(
            "Arrangement total must be positive", field="total_amount", value=total
        )

    base = floor2(total / count)
    last = subtract(total, base * (count - 1))

    return tuple(
        ScheduledInstallment(
            installment_no=i + 1,
            due_date=due_date_for(start_date, frequency, i),
            amount=last if i == count - 1 else base,
        )
        for i in range(count)
    )

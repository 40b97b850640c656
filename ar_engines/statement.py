"""
Module: ar_engines.statement
Responsibility:
    Order an account's invoices and payments for a period and compute the
    running balance of a member statement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Invoices add their total; payments subtract their amount.
    - Entries sort by date; on the same date invoices come before payments,
      then insertion order (the ``position`` the caller supplies).
    - ``closing_balance == opening_balance + sum(signed amounts)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from ar_kernel.domain.money import round2


class StatementEntryKind(str, Enum):
    INVOICE = "INVOICE"
    PAYMENT = "PAYMENT"


_KIND_ORDER = {StatementEntryKind.INVOICE: 0, StatementEntryKind.PAYMENT: 1}


@dataclass(frozen=True)
class StatementSource:
    kind: StatementEntryKind
    document_id: UUID
    document_number: str
    entry_date: date
    description: str
    amount: Decimal
    position: int = 0

    @property
    def signed_amount(self) -> Decimal:
        if self.kind is StatementEntryKind.PAYMENT:
            return -self.amount
        return self.amount


@dataclass(frozen=True)
class StatementLine:
    kind: StatementEntryKind
    document_id: UUID
    document_number: str
    entry_date: date
    description: str
    amount: Decimal
    running_balance: Decimal


def build_statement_lines(
    opening_balance: Decimal,
    sources: Sequence[StatementSource],
) -> tuple[tuple[StatementLine, ...], Decimal]:
    """Return the ordered lines with running balances, and the closing balance."""
    ordered = sorted(
        sources,
        key=lambda s: (s.entry_date, _KIND_ORDER[s.kind], s.position),
    )
    balance = round2(opening_balance)
    lines = []
    for src in ordered:
        balance = round2(balance + src.signed_amount)
        lines.append(
            StatementLine(
                kind=src.kind,
                document_id=src.document_id,
                document_number=src.document_number,
                entry_date=src.entry_date,
                description=src.description,
                amount=round2(src.signed_amount),
                running_balance=balance,
            )
        )
    return tuple(lines), balance

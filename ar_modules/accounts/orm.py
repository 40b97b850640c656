"""
AR Account ORM Models (``ar_modules.accounts.orm``).

Persistence for receivable accounts and their credit-balance trail.
Imports ``ar_kernel.db`` and sibling ``models.py`` only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ar_kernel.db.base import TrackedBase, UUIDString


# ---------------------------------------------------------------------------
# 1. ARAccountModel
# ---------------------------------------------------------------------------


class ARAccountModel(TrackedBase):
    """
    ORM model for receivable accounts.

    Guarantees:
        - account_number is unique per tenant (uq_ar_accounts_tenant_number).
        - This row is the lock target for every balance-moving operation.
    """

    __tablename__ = "ar_accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "account_number", name="uq_ar_accounts_tenant_number"),
        Index("idx_ar_accounts_tenant_status", "tenant_id", "status"),
        Index("idx_ar_accounts_tenant_type", "tenant_id", "account_type"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    credit_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    outstanding_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit_limit: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_terms_days: Mapped[int] = mapped_column(nullable=False, default=30)
    # Last seq handed to an AccountCreditEntryModel; bumped under the row lock
    credit_entry_seq: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self):
        from ar_modules.accounts.models import (
            AccountStatus,
            AccountType,
            ARAccount,
            CityLedgerCategory,
        )

        return ARAccount(
            id=self.id,
            tenant_id=self.tenant_id,
            account_number=self.account_number,
            name=self.name,
            account_type=AccountType(self.account_type),
            status=AccountStatus(self.status),
            credit_balance=self.credit_balance,
            outstanding_balance=self.outstanding_balance,
            payment_terms_days=self.payment_terms_days,
            credit_limit=self.credit_limit,
            category=CityLedgerCategory(self.category) if self.category else None,
            email=self.email,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "ARAccountModel":
        return cls(
            id=dto.id,
            tenant_id=dto.tenant_id,
            account_number=dto.account_number,
            name=dto.name,
            account_type=dto.account_type.value,
            status=dto.status.value,
            category=dto.category.value if dto.category else None,
            email=dto.email,
            credit_balance=dto.credit_balance,
            outstanding_balance=dto.outstanding_balance,
            credit_limit=dto.credit_limit,
            payment_terms_days=dto.payment_terms_days,
            credit_entry_seq=0,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<ARAccountModel {self.account_number}: {self.name} ({self.status})>"


# ---------------------------------------------------------------------------
# 2. AccountCreditEntryModel
# ---------------------------------------------------------------------------


class AccountCreditEntryModel(TrackedBase):
    """
    Append-only trail of credit_balance movements.

    Guarantees:
        - balance_after of the latest entry equals the account's credit_balance.
        - seq orders the entries of one account.
    """

    __tablename__ = "ar_account_credit_entries"

    __table_args__ = (
        UniqueConstraint("account_id", "seq", name="uq_ar_credit_entries_account_seq"),
        Index("idx_ar_credit_entries_source", "source", "source_id"),
    )

    account_id: Mapped[UUID] = mapped_column(ForeignKey("ar_accounts.id"), nullable=False)
    seq: Mapped[int] = mapped_column(nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def to_dto(self):
        from ar_modules.accounts.models import AccountCreditEntry, CreditEntrySource

        return AccountCreditEntry(
            id=self.id,
            account_id=self.account_id,
            source=CreditEntrySource(self.source),
            amount=self.amount,
            balance_after=self.balance_after,
            source_id=self.source_id,
            created_at=self.created_at,
            memo=self.memo,
        )

    def __repr__(self) -> str:
        return f"<AccountCreditEntryModel {self.source} {self.amount} -> {self.balance_after}>"

"""
AR Account Service -- account lifecycle and the two account balances.

Every change to ``outstanding_balance`` or ``credit_balance`` goes through
this service, and only on an account row the caller has locked with
``lock_account``.  Other module services receive an AccountService and
never assign those two columns themselves.

Flush-only: the ARLedgerService facade owns commit/rollback.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import ZERO, clamp_non_negative, money_sum, round2
from ar_kernel.exceptions import (
    AccountNumberTakenError,
    InvalidStateError,
    NotFoundError,
    OverAllocationError,
    ValidationError,
)
from ar_kernel.logging_config import get_logger
from ar_kernel.models.ledger_event import LedgerEventType
from ar_kernel.services.base import BaseService
from ar_modules.accounts.models import (
    AccountCreditEntry,
    AccountStatus,
    AccountType,
    ARAccount,
    CityLedgerCategory,
    CreditEntrySource,
)
from ar_modules.accounts.orm import AccountCreditEntryModel, ARAccountModel
from ar_modules.accounts.workflows import ACCOUNT_WORKFLOW, STATUS_ACTIONS
from ar_modules.invoicing.orm import InvoiceModel

logger = get_logger("modules.accounts.service")


class AccountService(BaseService):
    """Account lifecycle, row locking and balance bookkeeping."""

    def __init__(self, session: Session, clock: Clock | None = None, default_terms_days: int = 30):
        super().__init__(session, clock)
        self._default_terms_days = default_terms_days

    # =========================================================================
    # Lookup and locking
    # =========================================================================

    def find_account(self, tenant_id: UUID, account_id: UUID, *, lock: bool = False) -> ARAccountModel:
        stmt = select(ARAccountModel).where(ARAccountModel.id == account_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        account = self.session.execute(stmt).scalar_one_or_none()
        if account is None or account.tenant_id != tenant_id:
            raise NotFoundError("ARAccount", account_id)
        return account

    def lock_account(self, tenant_id: UUID, account_id: UUID) -> ARAccountModel:
        """
        ``SELECT ... FOR UPDATE`` on the account row.

        Balance-moving operations call this before reading any invoice, so
        all money movements on one account serialize on this row.
        """
        return self.find_account(tenant_id, account_id, lock=True)

    def get_account(self, tenant_id: UUID, account_id: UUID) -> ARAccount:
        return self.find_account(self.require_tenant(tenant_id), account_id).to_dto()

    def list_accounts(
        self,
        tenant_id: UUID,
        account_type: AccountType | None = None,
        status: AccountStatus | None = None,
    ) -> list[ARAccount]:
        stmt = select(ARAccountModel).where(ARAccountModel.tenant_id == self.require_tenant(tenant_id))
        if account_type is not None:
            stmt = stmt.where(ARAccountModel.account_type == account_type.value)
        if status is not None:
            stmt = stmt.where(ARAccountModel.status == status.value)
        stmt = stmt.order_by(ARAccountModel.account_number)
        return [a.to_dto() for a in self.session.scalars(stmt)]

    @staticmethod
    def ensure_open(account: ARAccountModel, attempted: str) -> None:
        if account.status == AccountStatus.CLOSED.value:
            raise InvalidStateError("ARAccount", account.id, account.status, attempted)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def open_account(
        self,
        tenant_id: UUID,
        account_number: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        *,
        payment_terms_days: int | None = None,
        credit_limit: Decimal | None = None,
        category: CityLedgerCategory | None = None,
        email: str | None = None,
    ) -> ARAccount:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account_number = (account_number or "").strip()
        if not account_number:
            raise ValidationError("account_number is required", field="account_number")
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")
        terms = self._default_terms_days if payment_terms_days is None else payment_terms_days
        if terms < 0:
            raise ValidationError("payment_terms_days cannot be negative", field="payment_terms_days", value=terms)
        if credit_limit is not None and round2(credit_limit) < 0:
            raise ValidationError("credit_limit cannot be negative", field="credit_limit", value=credit_limit)
        if category is not None and account_type is not AccountType.CITY_LEDGER:
            raise ValidationError("category applies to city ledger accounts only", field="category")

        existing = self.session.execute(
            select(ARAccountModel.id).where(
                ARAccountModel.tenant_id == tenant_id,
                ARAccountModel.account_number == account_number,
            )
        ).first()
        if existing is not None:
            raise AccountNumberTakenError(account_number)

        dto = ARAccount(
            id=uuid4(),
            tenant_id=tenant_id,
            account_number=account_number,
            name=name.strip(),
            account_type=account_type,
            status=AccountStatus.ACTIVE,
            credit_balance=ZERO,
            outstanding_balance=ZERO,
            payment_terms_days=terms,
            credit_limit=round2(credit_limit) if credit_limit is not None else None,
            category=category,
            email=email,
        )
        model = ARAccountModel.from_dto(dto, created_by_id=actor_id)
        self.session.add(model)
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="account",
            aggregate_id=model.id,
            event_type=LedgerEventType.ACCOUNT_OPENED,
            actor_id=actor_id,
            payload={
                "account_number": account_number,
                "account_type": account_type.value,
            },
        )
        logger.info(
            "account_opened",
            extra={
                "account_id": str(model.id),
                "account_number": account_number,
                "account_type": account_type.value,
            },
        )
        return model.to_dto()

    def set_account_status(
        self,
        tenant_id: UUID,
        account_id: UUID,
        status: AccountStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ARAccount:
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account = self.lock_account(tenant_id, account_id)
        previous = account.status

        action = STATUS_ACTIONS[status.value]
        ACCOUNT_WORKFLOW.require(previous, action, entity_type="ARAccount", entity_id=account.id)

        if status is AccountStatus.CLOSED and (
            account.outstanding_balance > 0 or account.credit_balance > 0
        ):
            raise InvalidStateError("ARAccount", account.id, previous, "close with open balances")

        account.status = status.value
        account.updated_by_id = actor_id
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="account",
            aggregate_id=account.id,
            event_type=LedgerEventType.ACCOUNT_STATUS_CHANGED,
            actor_id=actor_id,
            payload={"from": previous, "to": status.value, "reason": reason},
        )
        logger.info(
            "account_status_changed",
            extra={"account_id": str(account.id), "from": previous, "to": status.value},
        )
        return account.to_dto()

    # =========================================================================
    # Balances (caller holds the account lock)
    # =========================================================================

    def change_outstanding(self, account: ARAccountModel, delta: Decimal) -> None:
        new_value = round2(clamp_non_negative(account.outstanding_balance + delta))
        if new_value < 0:
            raise OverAllocationError("ARAccount", account.id, -delta, account.outstanding_balance)
        account.outstanding_balance = new_value

    def change_credit(
        self,
        account: ARAccountModel,
        delta: Decimal,
        source: CreditEntrySource,
        source_id: UUID | None,
        actor_id: UUID,
        memo: str | None = None,
    ) -> AccountCreditEntryModel:
        """Move credit_balance by *delta* and append the matching trail entry."""
        delta = round2(delta)
        if delta == 0:
            raise ValidationError("Credit movement cannot be zero", field="amount", value=delta)
        new_balance = round2(account.credit_balance + delta)
        if new_balance < 0:
            raise OverAllocationError("ARAccount", account.id, -delta, account.credit_balance)

        account.credit_balance = new_balance
        account.credit_entry_seq = (account.credit_entry_seq or 0) + 1
        account.updated_by_id = actor_id
        entry = AccountCreditEntryModel(
            account_id=account.id,
            seq=account.credit_entry_seq,
            source=source.value,
            source_id=source_id,
            amount=delta,
            balance_after=new_balance,
            memo=memo,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()
        logger.info(
            "account_credit_changed",
            extra={
                "account_id": str(account.id),
                "source": source.value,
                "amount": str(delta),
                "credit_balance": str(new_balance),
            },
        )
        return entry

    def recalculate_balances(self, tenant_id: UUID, account_id: UUID, actor_id: UUID) -> ARAccount:
        """Rebuild outstanding_balance from the account's non-void invoices."""
        tenant_id = self.require_tenant(tenant_id)
        actor_id = self.require_actor(actor_id)
        account = self.lock_account(tenant_id, account_id)

        balances = self.session.scalars(
            select(InvoiceModel.balance_due).where(
                InvoiceModel.account_id == account.id,
                InvoiceModel.status != "VOID",
            )
        ).all()
        recomputed = money_sum(balances)
        previous = account.outstanding_balance

        if recomputed != round2(previous):
            logger.warning(
                "account_outstanding_drift_corrected",
                extra={
                    "account_id": str(account.id),
                    "stored": str(previous),
                    "recomputed": str(recomputed),
                },
            )
        account.outstanding_balance = recomputed
        account.updated_by_id = actor_id
        self.session.flush()

        self.events.record(
            tenant_id=tenant_id,
            aggregate_type="account",
            aggregate_id=account.id,
            event_type=LedgerEventType.ACCOUNT_BALANCES_RECALCULATED,
            actor_id=actor_id,
            payload={"previous": previous, "outstanding_balance": recomputed},
        )
        return account.to_dto()

    def list_credit_entries(self, tenant_id: UUID, account_id: UUID) -> list[AccountCreditEntry]:
        account = self.find_account(self.require_tenant(tenant_id), account_id)
        rows = self.session.scalars(
            select(AccountCreditEntryModel)
            .where(AccountCreditEntryModel.account_id == account.id)
            .order_by(AccountCreditEntryModel.seq)
        )
        return [r.to_dto() for r in rows]

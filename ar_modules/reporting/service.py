"""
AR Reporting Service -- aging report, member statements, billing stats.

Read-only.  Queries load the rows and the pure engines in
``ar_engines.aging`` and ``ar_engines.statement`` do the arithmetic, so
the figures are the same on every database backend.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ar_engines.aging import AgingFilter, AgingInput, bucket_totals, matches_filter, roll_up
from ar_engines.statement import StatementEntryKind, StatementSource, build_statement_lines
from ar_kernel.domain.clock import Clock
from ar_kernel.domain.money import money_sum, round2
from ar_kernel.exceptions import ValidationError
from ar_kernel.logging_config import get_logger
from ar_kernel.services.base import BaseService
from ar_modules.accounts.models import AccountStatus, AccountType
from ar_modules.accounts.orm import ARAccountModel
from ar_modules.accounts.service import AccountService
from ar_modules.config import LedgerConfig
from ar_modules.invoicing.models import OUTSTANDING_STATUSES, InvoiceStatus
from ar_modules.invoicing.orm import InvoiceModel
from ar_modules.payments.orm import PaymentModel
from ar_modules.reporting.models import AgingReport, BillingStats, MemberStatement

logger = get_logger("modules.reporting.service")

_OUTSTANDING = tuple(s.value for s in OUTSTANDING_STATUSES)


class ReportingService(BaseService):

    def __init__(
        self,
        session: Session,
        accounts: AccountService,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.accounts = accounts
        self.config = config or LedgerConfig.with_defaults()

    def _page_args(self, page: int, limit: int | None) -> tuple[int, int]:
        if limit is None:
            limit = self.config.default_page_size
        if page is None or page < 1:
            raise ValidationError("page must be at least 1", field="page", value=page)
        if limit < 1 or limit > self.config.max_page_size:
            raise ValidationError(
                f"limit must be between 1 and {self.config.max_page_size}", field="limit", value=limit
            )
        return page, limit

    def get_ar_aging_report(
        self,
        tenant_id: UUID,
        aging_filter: AgingFilter | str | None = AgingFilter.ALL,
        page: int = 1,
        limit: int | None = None,
        account_type: AccountType | None = None,
    ) -> AgingReport:
        tenant_id = self.require_tenant(tenant_id)
        aging_filter = AgingFilter.parse(aging_filter)
        page, limit = self._page_args(page, limit)
        as_of = self.clock.today()

        stmt = (
            select(
                ARAccountModel.id,
                ARAccountModel.account_number,
                ARAccountModel.name,
                ARAccountModel.account_type,
                ARAccountModel.status,
                InvoiceModel.id,
                InvoiceModel.due_date,
                InvoiceModel.balance_due,
            )
            .join(InvoiceModel, InvoiceModel.account_id == ARAccountModel.id)
            .where(
                ARAccountModel.tenant_id == tenant_id,
                InvoiceModel.status.in_(_OUTSTANDING),
            )
        )
        if account_type is not None:
            stmt = stmt.where(ARAccountModel.account_type == account_type.value)

        items = [
            AgingInput(
                account_id=acc_id,
                account_number=number,
                account_name=name,
                account_type=acc_type,
                account_suspended=status == AccountStatus.SUSPENDED.value,
                invoice_id=inv_id,
                due_date=due_date,
                balance_due=balance,
            )
            for acc_id, number, name, acc_type, status, inv_id, due_date, balance in self.session.execute(stmt)
        ]

        everyone = roll_up(items, as_of)
        totals, grand_total = bucket_totals(everyone)
        selected = [a for a in everyone if matches_filter(a.bucket, aging_filter)]
        start = (page - 1) * limit

        logger.info(
            "aging_report_built",
            extra={
                "tenant_id": str(tenant_id),
                "filter": aging_filter.value,
                "account_count": len(everyone),
                "matched": len(selected),
                "total_outstanding": str(grand_total),
            },
        )
        return AgingReport(
            as_of=as_of,
            filter=aging_filter,
            buckets=tuple(totals),
            total_outstanding=grand_total,
            accounts=tuple(selected[start:start + limit]),
            total_count=len(selected),
            page=page,
            limit=limit,
        )

    def get_member_statement(
        self,
        tenant_id: UUID,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> MemberStatement:
        """
        Invoices (+total) and payments (-amount) between the two dates,
        inclusive, with a running balance from the opening balance.
        """
        tenant_id = self.require_tenant(tenant_id)
        if end_date < start_date:
            raise ValidationError("end_date cannot be before start_date", field="end_date", value=end_date)
        account = self.accounts.find_account(tenant_id, account_id)

        invoices = self.session.scalars(
            select(InvoiceModel)
            .where(
                InvoiceModel.account_id == account.id,
                InvoiceModel.status != InvoiceStatus.VOID.value,
                InvoiceModel.invoice_date <= end_date,
            )
            .order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
        ).all()
        payments = self.session.scalars(
            select(PaymentModel)
            .where(
                PaymentModel.account_id == account.id,
                PaymentModel.payment_date <= end_date,
            )
            .order_by(PaymentModel.payment_date, PaymentModel.receipt_number)
        ).all()

        opening = round2(
            money_sum(inv.total_amount for inv in invoices if inv.invoice_date < start_date)
            - money_sum(p.amount for p in payments if p.payment_date < start_date)
        )

        sources = [
            StatementSource(
                kind=StatementEntryKind.INVOICE,
                document_id=inv.id,
                document_number=inv.invoice_number,
                entry_date=inv.invoice_date,
                description=f"Invoice {inv.billing_period}" if inv.billing_period else "Invoice",
                amount=inv.total_amount,
                position=i,
            )
            for i, inv in enumerate(invoices)
            if inv.invoice_date >= start_date
        ]
        sources.extend(
            StatementSource(
                kind=StatementEntryKind.PAYMENT,
                document_id=p.id,
                document_number=p.receipt_number,
                entry_date=p.payment_date,
                description=f"Payment - {p.method}",
                amount=p.amount,
                position=i,
            )
            for i, p in enumerate(payments)
            if p.payment_date >= start_date
        )
        lines, closing = build_statement_lines(opening, sources)

        logger.info(
            "member_statement_built",
            extra={
                "account_id": str(account.id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "line_count": len(lines),
            },
        )
        return MemberStatement(
            account_id=account.id,
            account_number=account.account_number,
            account_name=account.name,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            lines=lines,
            closing_balance=closing,
        )

    def get_billing_stats(self, tenant_id: UUID) -> BillingStats:
        tenant_id = self.require_tenant(tenant_id)
        today = self.clock.today()
        month_start = today.replace(day=1)

        outstanding = self.session.scalars(
            select(InvoiceModel.balance_due).where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.status.in_(_OUTSTANDING),
            )
        ).all()
        overdue_count = self.session.scalar(
            select(func.count(InvoiceModel.id)).where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.status == InvoiceStatus.OVERDUE.value,
            )
        )
        pending_count = self.session.scalar(
            select(func.count(InvoiceModel.id)).where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.status.in_((InvoiceStatus.SENT.value, InvoiceStatus.PARTIALLY_PAID.value)),
            )
        )
        collected = self.session.scalars(
            select(PaymentModel.amount).where(
                PaymentModel.tenant_id == tenant_id,
                PaymentModel.payment_date >= month_start,
                PaymentModel.payment_date <= today,
            )
        ).all()

        return BillingStats(
            as_of=today,
            total_outstanding=money_sum(outstanding),
            overdue_count=overdue_count or 0,
            this_month_collections=money_sum(collected),
            pending_invoice_count=pending_count or 0,
        )

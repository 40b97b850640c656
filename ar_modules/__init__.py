"""
AR Modules.

Domain modules of the club accounts-receivable ledger.  Each module contains:
- Domain models (frozen DTOs returned to callers)
- ORM models (SQLAlchemy tables)
- A flush-only service (ar_services.ARLedgerService owns commit/rollback)
- Workflows (state machines), where the documents have a lifecycle

Modules:
- accounts: Member and city-ledger accounts, credit balance trail
- invoicing: Invoices, line pricing, status recompute, overdue sweep
- payments: Payments, allocations, FIFO settlement
- credit_notes: Credit note approval, application, refund
- arrangements: Installment plans over unpaid invoices
- reporting: Aging report, member statements, billing stats
"""

from ar_modules.config import DocumentNumbering, LedgerConfig

__all__ = ["DocumentNumbering", "LedgerConfig"]

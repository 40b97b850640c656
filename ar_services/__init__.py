"""
ar_services -- the ledger's public entry point.

Responsibility:
    ``ARLedgerService`` composes the ar_modules services on one injected
    SQLAlchemy session and owns the transaction boundary of every call.

Architecture position:
    Services -- orchestration over ar_modules, ar_engines and ar_kernel.

    Dependency direction (enforced by tests/architecture/test_import_boundaries.py):
        ar_services/ -> ar_modules/, ar_engines/, ar_kernel/  (allowed)
        ar_kernel/   -> ar_services/                          (FORBIDDEN)
        ar_engines/  -> ar_services/                          (FORBIDDEN)
"""

from ar_services.ledger import ARLedgerService

__all__ = ["ARLedgerService"]

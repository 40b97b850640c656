"""
Module ORM Registry (``ar_modules._orm_registry``).

Imports every ``ar_modules.*.orm`` module so ``Base.metadata`` knows all
ledger tables, then delegates to the kernel's ``create_tables``.

Scripts, entrypoints and ``tests/conftest.py`` call
``create_ledger_tables()``; nothing else should call ``create_all``.
"""

from sqlalchemy.engine import Engine


def import_all_orm_models() -> None:
    """Register kernel and module ORM classes. Idempotent."""
    import ar_kernel.models  # noqa: F401
    # fmt: off
    import ar_modules.accounts.orm  # noqa: F401
    import ar_modules.invoicing.orm  # noqa: F401
    import ar_modules.payments.orm  # noqa: F401
    import ar_modules.credit_notes.orm  # noqa: F401
    import ar_modules.arrangements.orm  # noqa: F401
    # fmt: on


def create_ledger_tables(engine: Engine | None = None) -> None:
    from ar_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables(engine)

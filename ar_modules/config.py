"""
AR Ledger Configuration Schema.

Per-tenant ledger settings with defaults that match how clubs usually bill.
Values can come from a dict (database row, API payload) or a YAML file:

    # ledger.yaml
    currency: USD
    unallocated_payment_policy: pending
    document_numbers:
      invoice: {prefix: INV, width: 5}
      credit_note: {prefix: CN, width: 6}
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Self

import yaml

from ar_kernel.db.types import validate_currency
from ar_kernel.logging_config import get_logger

logger = get_logger("modules.config")


UNALLOCATED_POLICIES = ("credit_balance", "pending")


@dataclass(frozen=True)
class DocumentNumbering:
    """Prefix and zero-padded width of one document number series."""
    prefix: str
    width: int

    def __post_init__(self):
        if not self.prefix or not self.prefix.strip():
            raise ValueError("document prefix cannot be empty")
        if "-" in self.prefix:
            raise ValueError(f"document prefix cannot contain '-': {self.prefix!r}")
        if not 3 <= self.width <= 10:
            raise ValueError(f"document number width must be 3..10, got {self.width}")


@dataclass
class LedgerConfig:
    """
    Configuration schema for the AR ledger.

        config = LedgerConfig(
            unallocated_payment_policy="pending",
            default_payment_terms_days=15,
        )
    """

    currency: str = "USD"

    # Where the unallocated part of a payment goes:
    #   "credit_balance": added to the account's credit balance
    #   "pending":        left on the payment for a later allocate_payment
    unallocated_payment_policy: str = "credit_balance"

    default_payment_terms_days: int = 30

    # Aging report paging
    default_page_size: int = 20
    max_page_size: int = 200

    invoice_numbering: DocumentNumbering = field(
        default_factory=lambda: DocumentNumbering("INV", 5)
    )
    receipt_numbering: DocumentNumbering = field(
        default_factory=lambda: DocumentNumbering("RCP", 5)
    )
    credit_note_numbering: DocumentNumbering = field(
        default_factory=lambda: DocumentNumbering("CN", 6)
    )
    arrangement_numbering: DocumentNumbering = field(
        default_factory=lambda: DocumentNumbering("PA", 5)
    )

    def __post_init__(self):
        self.currency = validate_currency(self.currency)

        if self.unallocated_payment_policy not in UNALLOCATED_POLICIES:
            raise ValueError(
                f"unallocated_payment_policy must be one of {UNALLOCATED_POLICIES}, "
                f"got '{self.unallocated_payment_policy}'"
            )
        if self.default_payment_terms_days < 0:
            raise ValueError("default_payment_terms_days cannot be negative")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be at least 1")
        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size cannot be smaller than default_page_size")

        prefixes = [
            self.invoice_numbering.prefix,
            self.receipt_numbering.prefix,
            self.credit_note_numbering.prefix,
            self.arrangement_numbering.prefix,
        ]
        if len(set(prefixes)) != len(prefixes):
            raise ValueError(f"document prefixes must be distinct, got {prefixes}")

        logger.info(
            "ledger_config_initialized",
            extra={
                "currency": self.currency,
                "unallocated_payment_policy": self.unallocated_payment_policy,
                "default_payment_terms_days": self.default_payment_terms_days,
                "document_prefixes": prefixes,
            },
        )

    @property
    def credits_overpayments(self) -> bool:
        return self.unallocated_payment_policy == "credit_balance"

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("ledger_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build from a plain mapping; unknown keys are rejected."""
        logger.info(
            "ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        numbering = data.pop("document_numbers", None) or {}
        for kind, entry in numbering.items():
            key = f"{kind}_numbering"
            data[key] = DocumentNumbering(**entry) if isinstance(entry, dict) else entry

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown ledger config keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Self:
        """Load from a YAML file (missing file and bad YAML propagate)."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        return cls.from_dict(data)

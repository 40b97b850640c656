"""
AR Kernel - shared foundation of the club receivables ledger.

- Exact Decimal money with a single rounding policy
- Typed, code-carrying exceptions
- Structured JSON logging
- Locked document-number sequences
- Ledger events written in the same transaction as each mutation
"""

__version__ = "0.1.0"

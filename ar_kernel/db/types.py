"""
Module: ar_kernel.db.types
Responsibility: The ISO 4217 check used when a tenant configures the
    currency its invoices are issued in (stored as String(3)).
Architecture position: Kernel > DB.  Importable from models, services and
    ar_modules; imports nothing above db/.
"""

# The currencies a club tenant is realistically billed in
SUPPORTED_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "CAD", "AUD", "NZD", "CHF", "JPY",
    "SGD", "HKD", "MYR", "THB", "IDR", "PHP", "INR", "AED",
    "ZAR", "MXN", "BRL", "SEK", "NOK", "DKK",
})


def validate_currency(currency: str) -> str:
    """Return the normalized code, or raise ValueError if unsupported."""
    if not currency or not isinstance(currency, str):
        raise ValueError(f"Invalid currency code: {currency!r}")
    normalized = currency.upper().strip()
    if normalized not in SUPPORTED_CURRENCIES:
        raise ValueError(f"Unsupported currency code: {currency!r}")
    return normalized

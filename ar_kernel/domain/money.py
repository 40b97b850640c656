"""
Money & rounding utility.

Responsibility:
    The one place monetary values are converted, rounded and compared.
    Every stored amount goes through ``round2`` first; every subtraction
    that can drift below zero goes through ``subtract``.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Shared by every engine
    and module.

Invariants enforced:
    - No float arithmetic: floats are only accepted at the boundary and
      converted through their shortest ``repr``.
    - Balances never go negative because of representation noise:
      anything in (-0.000001, 0) clamps to zero.
"""

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from ar_kernel.exceptions import ValidationError

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
EPSILON = Decimal("0.000001")


def to_decimal(value, field: str | None = None) -> Decimal:
    """
    Convert a boundary value to Decimal.

    Accepts Decimal, int, str and float (via ``str``).  Rejects bool, None,
    NaN and infinities with ValidationError.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Not a monetary value: {value!r}", field=field, value=value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise ValidationError(
                f"Not a monetary value: {value!r}", field=field, value=value
            ) from None
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValidationError(f"Not a monetary value: {value!r}", field=field, value=value)

    if not result.is_finite():
        raise ValidationError(f"Not a finite amount: {value!r}", field=field, value=value)
    return result


def round2(value) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def floor2(value) -> Decimal:
    """Round toward negative infinity at cents (installment splitting)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_FLOOR)


def clamp_non_negative(value) -> Decimal:
    """Map values within EPSILON below zero to exactly zero."""
    value = to_decimal(value)
    if -EPSILON < value < 0:
        return Decimal("0")
    return value


def subtract(a, b) -> Decimal:
    """``round2(clamp_non_negative(a - b))``."""
    return round2(clamp_non_negative(to_decimal(a) - to_decimal(b)))


def money_sum(values: Iterable) -> Decimal:
    total = Decimal("0")
    for v in values:
        total += to_decimal(v)
    return round2(total)


def percent_of(part, whole) -> Decimal:
    """``part / whole * 100`` rounded to cents; 0 when whole is 0."""
    whole = to_decimal(whole)
    if whole == 0:
        return ZERO
    return round2(to_decimal(part) / whole * HUNDRED)


def require_positive(value, field: str) -> Decimal:
    """Round to cents and reject anything <= 0."""
    amount = round2(to_decimal(value, field))
    if amount <= 0:
        raise ValidationError(f"{field} must be positive, got {amount}", field=field, value=value)
    return amount


def require_non_negative(value, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative, got {amount}", field=field, value=value)
    return amount

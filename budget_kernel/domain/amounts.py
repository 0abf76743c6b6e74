"""
Amount validation for every money-moving call.

All amounts entering the kernel must be finite Decimals strictly greater
than zero, with no more decimal places than the store keeps (MONEY_SCALE).
Floats are rejected outright; ints and numeric strings are accepted and
converted exactly.  Nothing is rounded here.
"""

from decimal import Decimal, InvalidOperation

from budget_kernel.exceptions import ValidationError

# Decimal places every stored amount keeps
MONEY_SCALE = 9


def to_decimal(value: object, field: str = "amount") -> Decimal:
    """Convert ``value`` to a finite Decimal without going through float."""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field} must be a Decimal, int or numeric string, got {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation as exc:
            raise ValidationError(f"{field} is not a number: {value!r}", field=field) from exc
    else:
        raise ValidationError(
            f"{field} must be a Decimal, int or numeric string, got {type(value).__name__}",
            field=field,
        )
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {result}", field=field)
    if not result.is_zero() and result.normalize().as_tuple().exponent < -MONEY_SCALE:
        raise ValidationError(
            f"{field} has more than {MONEY_SCALE} decimal places: {result}", field=field
        )
    return result


def require_positive(value: object, field: str = "amount") -> Decimal:
    """Validate and return a strictly positive finite amount."""
    amount = to_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero, got {amount}", field=field)
    return amount


def require_non_negative(value: object, field: str = "amount") -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must not be negative, got {amount}", field=field)
    return amount

"""
Money helpers

Amounts are ``Decimal`` in major units. Persisted values always carry two
decimal places; intermediate daily rates are never rounded.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from ..core.errors import InvalidAmountError

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Any) -> Decimal:
    """
    Coerce ``value`` into a finite ``Decimal`` without rounding.

    Floats go through ``str`` so ``0.1`` stays ``Decimal("0.1")``.

    Raises:
        InvalidAmountError: for ``None``, booleans, NaN/Infinity or unparsable input.

    Example:
        >>> to_money("12.345")
        Decimal('12.345')
    """
    if isinstance(value, Decimal):
        result = value
    elif value is None or isinstance(value, bool):
        raise InvalidAmountError(f"Malformed currency amount: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmountError(f"Malformed currency amount: {value!r}") from exc
    if not result.is_finite():
        raise InvalidAmountError(f"Malformed currency amount: {value!r}")
    return result


def round_money(value: Any) -> Decimal:
    """Round half-up to the minor currency unit."""
    return to_money(value).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)

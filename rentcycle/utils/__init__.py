"""Amount coercion helpers shared by billing and payment code."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_decimal(value: Any) -> Optional[Decimal]:
    """Coerce a stored amount to ``Decimal``; ``None`` for missing or non-finite input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def positive_amount(value: Any) -> Optional[Decimal]:
    """Return the amount only when it is a finite number greater than zero."""
    amount = to_decimal(value)
    if amount is None or amount <= 0:
        return None
    return amount

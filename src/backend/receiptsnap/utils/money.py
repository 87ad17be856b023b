"""
Numeric coercion for user-edited receipt fields.

Input arrives one keystroke at a time, so coercion never raises:
- Comma or dot decimal separator: "12,50" and "12.50" are both 12.50
- Price / tax / total: blank or unparsable -> 0
- Quantity: integer, fractional input truncates, blank or unparsable -> 1
- Rating: accepted only within [1, 10], otherwise the previous value stays
"""

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

Number = Union[Decimal, int, float]

RATING_MIN = 1
RATING_MAX = 10


class FieldPolicy(Enum):
    """Per-field coercion rules."""
    PRICE = "price"  # may be negative (discount lines)
    TAX = "tax"
    TOTAL = "total"
    QUANTITY = "quantity"
    RATING = "rating"


MONEY_POLICIES = (FieldPolicy.PRICE, FieldPolicy.TAX, FieldPolicy.TOTAL)


def _to_decimal(text: Optional[str]) -> Optional[Decimal]:
    """Parse free text into a finite Decimal, accepting ',' as decimal separator."""
    if text is None:
        return None

    cleaned = str(text).strip().replace(',', '.')
    if not cleaned:
        return None

    try:
        value = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None

    # Decimal accepts "nan" and "inf"; neither is a usable amount
    if not value.is_finite():
        return None

    return value


def coerce(
    text: Optional[str],
    policy: FieldPolicy,
    current: Optional[Number] = None
) -> Optional[Number]:
    """
    Coerce free-text input for a numeric receipt field.

    Args:
        text: Raw input as typed by the user
        policy: Which field the text belongs to
        current: Previous value (only used by RATING)

    Returns:
        Decimal for money fields, int for quantity, float (or ``current``)
        for rating

    Examples:
        >>> coerce("12,50", FieldPolicy.PRICE)
        Decimal('12.50')
        >>> coerce("", FieldPolicy.QUANTITY)
        1
        >>> coerce("15", FieldPolicy.RATING, current=7)
        7
    """
    value = _to_decimal(text)

    if policy in MONEY_POLICIES:
        if value is None:
            return Decimal('0')
        if value < 0 and policy != FieldPolicy.PRICE:
            return Decimal('0')
        return value

    if policy == FieldPolicy.QUANTITY:
        if value is None:
            return 1
        quantity = int(value)  # truncates toward zero
        return quantity if quantity > 0 else 1

    if policy == FieldPolicy.RATING:
        if value is None or not (RATING_MIN <= value <= RATING_MAX):
            return current
        return float(value)

    raise ValueError(f"Unknown field policy: {policy}")


def coerce_price(text: Optional[str]) -> Decimal:
    return coerce(text, FieldPolicy.PRICE)


def coerce_tax(text: Optional[str]) -> Decimal:
    return coerce(text, FieldPolicy.TAX)


def coerce_total(text: Optional[str]) -> Decimal:
    return coerce(text, FieldPolicy.TOTAL)


def coerce_quantity(text: Optional[str]) -> int:
    return coerce(text, FieldPolicy.QUANTITY)


def coerce_rating(text: Optional[str], current: Optional[Number] = None) -> Optional[Number]:
    return coerce(text, FieldPolicy.RATING, current=current)


@dataclass(frozen=True)
class EditableNumber:
    """
    A numeric field being edited: the text on screen plus its validated value.

    The text is kept verbatim (including a trailing "," while typing);
    ``value`` is always a usable number for the field's policy.
    """
    policy: FieldPolicy
    value: Optional[Number]
    text: str = ""

    @classmethod
    def from_value(cls, policy: FieldPolicy, value: Optional[Number]) -> "EditableNumber":
        return cls(policy=policy, value=value, text="" if value is None else str(value))

    def edit(self, text: str) -> "EditableNumber":
        """Return the field after the user typed ``text``."""
        return replace(self, text=text, value=coerce(text, self.policy, current=self.value))


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """
    Convert Decimal to string for database storage.

    Supabase-py JSON encoder cannot serialize Decimal objects directly.
    """
    return str(value) if value is not None else None

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")
# Largest single amount accepted; keeps cents well inside a 64-bit column.
MAX_AMOUNT = Decimal("1000000000")
MAX_AMOUNT_CENTS = int(MAX_AMOUNT * 100)

Number = Union[Decimal, int, float, str]


def _as_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their shortest repr instead of binary noise
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc


def round2(value: Number) -> Decimal:
    return _as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value: Number) -> int:
    return int(round2(value) * 100)


def cents_to_amount(cents: Union[int, Decimal]) -> Decimal:
    """Convert minor units (possibly fractional, e.g. a mean) to a 2dp amount."""
    return round2(Decimal(cents) / 100)


def format_amount(cents: Union[int, Decimal]) -> str:
    return f"{cents_to_amount(cents):.2f}"


from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

TWO_PLACES = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not an amount: {value!r}") from exc


def fixed_total(quantity: int, unit_price: Number) -> Decimal:
    """Quantity times unit price, exact."""
    return to_decimal(unit_price) * int(quantity)


def distance_total(base: Number, per_km: Number, distance_km: Number) -> Decimal:
    """Base fare plus per-kilometre rate, rounded to cents."""
    total = to_decimal(base) + to_decimal(per_km) * to_decimal(distance_km)
    return total.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(amount: Number) -> str:
    """Plain decimal text without exponent ("100", "162.50")."""
    return f"{to_decimal(amount):f}"


def format_rand(amount: Number) -> str:
    return f"R{format_amount(amount)}"

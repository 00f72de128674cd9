from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from collections.abc import Iterable
from typing import Literal


MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def to_decimal(value: object | None) -> Decimal:
    """Coerce ORM/JSON numbers to Decimal without inheriting float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip() or "0")
    except InvalidOperation:
        return ZERO


def quantize_money(value: Decimal | int | float | str, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return to_decimal(value).quantize(MONEY_QUANT, rounding=mode)


def sum_money(values: Iterable[object]) -> Decimal:
    total = sum((to_decimal(v) for v in values), start=ZERO)
    return quantize_money(total)


def floor_points(amount: Decimal, rate: Decimal) -> int:
    """Whole loyalty points for ``amount`` at ``rate`` points per currency unit, never negative."""
    points = (to_decimal(amount) * to_decimal(rate)).to_integral_value(rounding=ROUND_FLOOR)
    return max(0, int(points))


def per_unit_price(total: Decimal, quantity: int) -> Decimal:
    if quantity <= 1:
        return quantize_money(total)
    return quantize_money(to_decimal(total) / Decimal(quantity))


def net_of_fee(amount: Decimal, fee_rate: Decimal) -> Decimal:
    return quantize_money(to_decimal(amount) * (Decimal("1") - to_decimal(fee_rate)))

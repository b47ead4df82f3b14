"""
TAO ↔ RAO conversion.

Public amounts are decimal strings in TAO / Alpha; the chain works in
integer RAO (1 TAO = 10⁹ RAO). Alpha uses the same 9‑decimal scale.
"""
from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import Union

from config import RAO_PER_TAO

Number = Union[str, int, Decimal]

_RAO = Decimal(RAO_PER_TAO)


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def format_amount(value: Decimal) -> str:
    """Plain (non‑scientific) string without trailing zeros."""
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def tao_to_rao(amount: Number) -> int:
    """Scale to RAO, flooring anything below 1 RAO."""
    scaled = to_decimal(amount) * _RAO
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def rao_to_tao(raw: Number) -> str:
    return format_amount(to_decimal(raw) / _RAO)


def price_to_raw(price: Decimal) -> int:
    """Limit prices are submitted scaled by 10⁹ and floored."""
    return tao_to_rao(price)

# bakery_pos/checkout/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

# 0.01 of the currency unit
EPSILON_CENTS = 1


def to_cents(val: Any) -> Optional[int]:
    """Converts a user/API amount (12.5, "12,50", "AED 12.50", Decimal) into cents."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, int):
        return val * 100
    try:
        if isinstance(val, str):
            v = val.strip().upper().replace("AED", "").replace(",", ".").strip()
            if not v:
                return None
            d = Decimal(v)
        else:
            d = Decimal(str(val))
    except (InvalidOperation, ValueError):
        return None
    return int((d * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_amount(cents: int) -> float:
    """Cents -> two-decimal float for wire payloads."""
    return float((Decimal(int(cents)) / 100).quantize(Decimal("0.01")))


def format_money(cents: int, currency: str = "AED") -> str:
    return f"{currency} {Decimal(int(cents)) / 100:.2f}"


def percent_of(cents: int, percent: Any) -> int:
    d = Decimal(int(cents)) * Decimal(str(percent)) / Decimal(100)
    return int(d.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def within_epsilon(a: int, b: int) -> bool:
    return abs(int(a) - int(b)) <= EPSILON_CENTS

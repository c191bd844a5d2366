# bakery_pos/checkout/totals.py
"""Cart Aggregator: subtotal, coupon discount, delivery surcharge, final total.

Everything here is pure and cheap; callers recompute on every change instead
of caching a total across line, coupon or zone edits.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from .money import percent_of, to_cents
from .pricing import compute_line_total
from .types import CartLine, Fulfillment, FulfillmentMethod


class CouponKind(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


@dataclass(frozen=True)
class CouponApplication:
    code: str
    kind: CouponKind
    # percent for PERCENTAGE, currency units for FIXED_AMOUNT
    value: Decimal
    min_order_cents: Optional[int] = None
    max_discount_cents: Optional[int] = None

    def applies_to(self, subtotal_cents: int) -> bool:
        return self.min_order_cents is None or subtotal_cents >= self.min_order_cents

    def computed_discount(self, subtotal_cents: int) -> int:
        if not self.applies_to(subtotal_cents):
            return 0
        if self.kind == CouponKind.PERCENTAGE:
            discount = percent_of(subtotal_cents, self.value)
            if self.max_discount_cents is not None:
                discount = min(discount, int(self.max_discount_cents))
        else:
            discount = to_cents(self.value) or 0
        # never more than the goods themselves
        return max(0, min(discount, subtotal_cents))


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    discount_cents: int
    delivery_surcharge_cents: int
    final_total_cents: int


def cart_subtotal(lines: Iterable[CartLine]) -> int:
    return sum(compute_line_total(line).line_total_cents for line in lines)


def compute_totals(
    lines: Iterable[CartLine],
    coupon: Optional[CouponApplication] = None,
    delivery_charge_cents: int = 0,
) -> CartTotals:
    subtotal = cart_subtotal(lines)
    discount = coupon.computed_discount(subtotal) if coupon else 0
    surcharge = max(0, int(delivery_charge_cents or 0))
    final_total = max(0, subtotal - discount + surcharge)
    return CartTotals(
        subtotal_cents=subtotal,
        discount_cents=discount,
        delivery_surcharge_cents=surcharge,
        final_total_cents=final_total,
    )


def resolve_delivery_surcharge(fulfillment: Optional[Fulfillment], rates) -> int:
    """Zone default (or the manual override) for deliveries with a chosen zone, else 0.

    ``rates`` is anything with ``charge_for(zone) -> cents``, normally
    ``CONFIG.delivery``.
    """
    if fulfillment is None or fulfillment.method != FulfillmentMethod.DELIVERY:
        return 0
    if not (fulfillment.zone or "").strip():
        return 0
    if fulfillment.charge_override_cents is not None:
        return max(0, int(fulfillment.charge_override_cents))
    return int(rates.charge_for(fulfillment.zone))

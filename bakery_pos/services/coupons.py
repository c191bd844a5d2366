# bakery_pos/services/coupons.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

from ..checkout.errors import ExternalServiceError
from ..checkout.money import to_amount, to_cents
from ..checkout.totals import CouponApplication, CouponKind
from .http import BackOfficeClient


def coupon_from_payload(code: str, data: Any) -> CouponApplication:
    if not isinstance(data, dict):
        raise ExternalServiceError("coupons", "Invalid coupon response")
    try:
        kind = CouponKind(str(data.get("type") or "").upper())
        value = Decimal(str(data.get("value")))
    except (ValueError, InvalidOperation) as exc:
        raise ExternalServiceError("coupons", "Invalid coupon response") from exc
    return CouponApplication(
        code=str(data.get("code") or code).upper(),
        kind=kind,
        value=value,
        min_order_cents=to_cents(data.get("minOrderAmount")),
        max_discount_cents=to_cents(data.get("maxDiscount")),
    )


class CouponClient(BackOfficeClient):
    service = "coupons"

    async def validate(self, code: str, subtotal_cents: int) -> CouponApplication:
        data = await self._request(
            "POST",
            f"/api/coupons/{quote(code.strip(), safe='')}/validate",
            json={"total": to_amount(subtotal_cents)},
        )
        return coupon_from_payload(code, data)

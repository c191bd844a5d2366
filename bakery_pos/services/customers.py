# bakery_pos/services/customers.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..checkout.types import CustomerDetails, Fulfillment, FulfillmentMethod
from .http import BackOfficeClient


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    phone: str
    email: Optional[str] = None
    reward_points: int = 0

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Customer":
        name = " ".join(p for p in (data.get("firstName"), data.get("lastName")) if p) or data.get("name") or ""
        reward = data.get("reward") or {}
        return cls(
            id=str(data.get("id") or ""),
            name=name.strip(),
            phone=str(data.get("phone") or ""),
            email=data.get("email") or None,
            reward_points=int(reward.get("points") or 0),
        )


class CustomerClient(BackOfficeClient):
    service = "customers"

    async def search(self, query: str) -> List[Customer]:
        query = (query or "").strip()
        if not query:
            return []
        data = await self._request("GET", "/api/pos/customers/search", params={"query": query})
        return [Customer.from_payload(c) for c in (data or []) if isinstance(c, dict)]

    async def create_or_update(self, customer: CustomerDetails, fulfillment: Optional[Fulfillment] = None) -> Customer:
        body: Dict[str, Any] = {
            "customerName": customer.name.strip(),
            "customerPhone": customer.phone.strip(),
        }
        if customer.email:
            body["customerEmail"] = customer.email.strip()
        # delivery address is remembered on the customer record
        if fulfillment is not None and fulfillment.method == FulfillmentMethod.DELIVERY and fulfillment.street_address:
            body["deliveryAddress"] = {
                "streetAddress": fulfillment.street_address,
                "apartment": fulfillment.apartment or "",
                "emirate": (fulfillment.zone or "").upper(),
                "city": fulfillment.city or "",
            }
        data = await self._request("POST", "/api/pos/customers/create-or-update", json=body)
        payload = (data or {}).get("customer") if isinstance(data, dict) else None
        return Customer.from_payload(payload or {})

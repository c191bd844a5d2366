# bakery_pos/services/orders.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..checkout.assembler import OrderSubmission
from ..checkout.errors import ExternalServiceError
from .http import BackOfficeClient, log


@dataclass(frozen=True)
class SubmitResult:
    order_id: str
    order_number: Optional[str] = None


@dataclass(frozen=True)
class ParkAck:
    parked_id: str


class OrderClient(BackOfficeClient):
    service = "orders"

    async def submit(self, submission: OrderSubmission) -> SubmitResult:
        data = await self._request("POST", "/api/pos/orders", json=submission.wire())
        if not isinstance(data, dict):
            raise ExternalServiceError(self.service, "Order created but no id returned")
        order_id = data.get("orderId") or data.get("id")
        if not order_id:
            raise ExternalServiceError(self.service, "Order created but no id returned")
        result = SubmitResult(order_id=str(order_id), order_number=data.get("orderNumber"))
        log.info("order %s accepted (%s)", result.order_id, result.order_number)
        return result


class ParkedOrderClient(BackOfficeClient):
    service = "parked-orders"

    async def park(self, snapshot: Dict[str, Any]) -> ParkAck:
        data = await self._request("POST", "/api/pos/parked-orders", json=snapshot)
        parked_id = data.get("id") if isinstance(data, dict) else None
        if not parked_id:
            raise ExternalServiceError(self.service, "Parked order has no id")
        return ParkAck(parked_id=str(parked_id))

    async def list(self) -> List[Dict[str, Any]]:
        data = await self._request("GET", "/api/pos/parked-orders")
        return [p for p in (data or []) if isinstance(p, dict)]

    async def get(self, parked_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/api/pos/parked-orders/{parked_id}")
        if not isinstance(data, dict):
            raise ExternalServiceError(self.service, f"Parked order {parked_id} not found")
        return data

    async def delete(self, parked_id: str) -> None:
        await self._request("DELETE", f"/api/pos/parked-orders/{parked_id}")
        log.info("parked order %s deleted", parked_id)

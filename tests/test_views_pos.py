import json

import httpx
import pytest

from bakery_pos import views_pos
from bakery_pos.config import PrinterConfig, ServicesConfig
from bakery_pos.receipts.drawer import ReceiptSidecar
from bakery_pos.services.http import make_async_client

CFG = ServicesConfig(base_url="http://backoffice.test", timeout_seconds=2)


class BackOffice:
    """In-memory stand-in for the back office API."""

    def __init__(self):
        self.orders = []
        self.parked = []
        self.deleted = set()
        self.down = False
        self.coupon_error = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.down:
            return httpx.Response(503, json={"success": False, "message": "Maintenance"})
        if path.startswith("/api/coupons/"):
            if self.coupon_error:
                return httpx.Response(404, json={"success": False, "message": self.coupon_error})
            return self._ok({"code": "TEN", "type": "PERCENTAGE", "value": 10})
        if path == "/api/pos/customers/create-or-update":
            return self._ok({"customer": {"id": "c-1"}})
        if path == "/api/pos/customers/search":
            return self._ok([{"id": "c-1", "firstName": "Mariam", "phone": "0500"}])
        if path == "/api/pos/orders":
            self.orders.append(json.loads(request.content))
            return self._ok({"orderId": "o-1", "orderNumber": "PW-9"})
        if path == "/api/pos/parked-orders" and request.method == "POST":
            self.parked.append(json.loads(request.content))
            return self._ok({"id": f"park-{len(self.parked)}"})
        if path == "/api/pos/parked-orders":
            return self._ok([{"id": pid, **p} for pid, p in self._parked_by_id().items()])
        if path.startswith("/api/pos/parked-orders/"):
            pid = path.rsplit("/", 1)[-1]
            parked = self._parked_by_id()
            if pid not in parked:
                return httpx.Response(404, json={"success": False, "message": "Parked order not found"})
            if request.method == "DELETE":
                self.deleted.add(pid)
                return self._ok(None)
            return self._ok({"id": pid, **parked[pid]})
        return httpx.Response(404, json={"success": False, "message": "not found"})

    def _parked_by_id(self):
        ids = (f"park-{n}" for n in range(1, len(self.parked) + 1))
        return {pid: p for pid, p in zip(ids, self.parked) if pid not in self.deleted}

    @staticmethod
    def _ok(data):
        return httpx.Response(200, json={"success": True, "data": data})


@pytest.fixture()
def backoffice(app):
    bo = BackOffice()

    async def _client():
        async with make_async_client(CFG, transport=httpx.MockTransport(bo)) as c:
            yield c

    app.dependency_overrides[views_pos.get_http_client] = _client
    app.dependency_overrides[views_pos.get_sidecar] = lambda: ReceiptSidecar(PrinterConfig(enabled=False))
    return bo


def _product(client, name):
    for pid in range(1, 10):
        r = client.get(f"/api/products/{pid}/customizations")
        if r.status_code == 200 and r.json()["name"] == name:
            return r.json()
    raise AssertionError(f"{name} not seeded")


def _open(client):
    r = client.post("/api/pos/sessions")
    assert r.status_code == 200
    return r.json()["session"]["id"]


def _delivery(client, sid, zone="DUBAI"):
    return client.put(f"/api/pos/sessions/{sid}/fulfillment", json={
        "method": "DELIVERY",
        "date": "2026-10-20",
        "time_slot": "14:00-16:00",
        "street_address": "Villa 12",
        "zone": zone,
    })


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.text == "OK"


def test_customizations_expose_variants(client):
    cake = _product(client, "Celebration Cake")
    assert [o["name"] for o in cake["options"]] == ["Size", "Flavour"]
    assert len(cake["variants"]) == 4
    assert cake["category"] == "cakes"
    assert client.get("/api/products/999/customizations").status_code == 404


def test_quote_uses_variant_price(client):
    cake = _product(client, "Celebration Cake")
    size, flavour = cake["options"]
    large = next(v for v in size["values"] if v["value"] == "Large")
    vanilla = next(v for v in flavour["values"] if v["value"] == "Vanilla")
    r = client.post("/api/pos/quote", json={
        "lines": [{
            "product_id": cake["id"],
            "quantity": 2,
            "options": [
                {"option_id": flavour["id"], "value_id": vanilla["id"]},
                {"option_id": size["id"], "value_id": large["id"]},
            ],
        }],
        "fulfillment": {"method": "DELIVERY", "zone": "SHARJAH"},
    })
    assert r.status_code == 200
    data = r.json()
    assert data["lines"][0]["unit_price_cents"] == 21000
    assert data["totals"]["subtotal_cents"] == 42000
    assert data["totals"]["delivery_surcharge_cents"] == 5000
    assert data["routing"]["routing"]["processingFlow"][0] == "KITCHEN_QUEUE"


def test_quote_missing_option_is_422(client):
    cake = _product(client, "Celebration Cake")
    r = client.post("/api/pos/quote", json={"lines": [{"product_id": cake["id"]}]})
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["field"] == "options.Size"


def test_full_checkout_flow(client, backoffice):
    sid = _open(client)
    custom = _product(client, "Custom Cake")
    r = client.post(f"/api/pos/sessions/{sid}/lines", json={
        "product_id": custom["id"], "quantity": 2, "custom_price": 100,
    })
    assert r.status_code == 200
    assert _delivery(client, sid).status_code == 200

    r = client.post(f"/api/pos/sessions/{sid}/coupon", json={"code": "ten"})
    assert r.json()["applied"] is True
    summary = r.json()["session"]
    assert summary["totals"]["final_total_cents"] == 21000

    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH", "amount": 100})
    summary = r.json()["session"]
    assert summary["remaining_cents"] == 11000
    assert summary["ledger_state"] == "ACCUMULATING"

    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CARD", "amount": 110, "reference": "RRN"})
    summary = r.json()["session"]
    assert summary["ledger_state"] == "COMPLETE"
    assert summary["payment_method"] == "SPLIT"

    r = client.post(f"/api/pos/sessions/{sid}/submit", json={
        "customer": {"name": "Mariam", "phone": "0500"},
    })
    assert r.status_code == 200, r.text
    assert r.json()["order_number"] == "PW-9"

    sent = backoffice.orders[0]
    assert sent["totalAmount"] == 210.0
    assert sent["couponCode"] == "TEN"
    assert sent["paymentMethod"] == "SPLIT"
    assert sent["delivery"]["emirate"] == "DUBAI"
    # custom cake: kitchen from the category, design from its own flag
    assert sent["requiresSequentialProcessing"] is True
    assert sent["metadata"]["routing"]["assignedTeam"] == "DESIGN"

    summary = client.get(f"/api/pos/sessions/{sid}").json()["session"]
    assert summary["lines"] == [] and summary["payments"] == []


def test_overshooting_payment_is_409(client):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH", "amount": 500})
    assert r.status_code == 409
    assert r.json()["ok"] is False


def test_split_payment_endpoint(client):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "SPLIT"})
    payment = r.json()["session"]["payments"][0]
    assert (payment["cashPortion"], payment["cardPortion"]) == (200.0, 200.0)

    sid = _open(client)
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "SPLIT", "cash_portion": 100, "card_portion": 200})
    assert r.status_code == 409


def test_partial_payment_and_defer(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    client.put(f"/api/pos/sessions/{sid}/fulfillment", json={
        "method": "PICKUP", "date": "2026-10-21", "time_slot": "09:00-11:00",
    })
    client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH", "amount": 150})
    r = client.post(f"/api/pos/sessions/{sid}/defer", json={"future_method": "CARD"})
    summary = r.json()["session"]
    assert summary["payment_method"] == "PARTIAL"
    assert summary["payments"][0]["remainingAmount"] == 250.0

    r = client.post(f"/api/pos/sessions/{sid}/submit", json={"customer": {"name": "Omar", "phone": "0501"}})
    assert r.status_code == 200, r.text
    assert backoffice.orders[0]["allowPartialPayment"] is True


def test_submit_validation_and_service_errors(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    _delivery(client, sid)
    client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH"})

    r = client.post(f"/api/pos/sessions/{sid}/submit", json={"customer": {"name": "Omar"}})
    assert r.status_code == 422
    assert r.json()["field"] == "customer_phone"

    backoffice.down = True
    r = client.post(f"/api/pos/sessions/{sid}/submit", json={"customer": {"name": "Omar", "phone": "0501"}})
    assert r.status_code == 502
    summary = client.get(f"/api/pos/sessions/{sid}").json()["session"]
    assert len(summary["lines"]) == 1 and len(summary["payments"]) == 1


def test_coupon_failure_degrades(client, backoffice):
    backoffice.coupon_error = "Coupon not found"
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/coupon", json={"code": "NOPE"})
    assert r.status_code == 200
    assert r.json()["applied"] is False
    assert r.json()["session"]["coupon"]["error"] == "Coupon not found"


def test_park_and_dismiss(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/park", json={"name": "Walk-in"})
    assert r.json()["parked_id"] == "park-1"
    assert backoffice.parked[0]["name"] == "Walk-in"

    assert client.delete(f"/api/pos/sessions/{sid}").status_code == 200
    assert client.get(f"/api/pos/sessions/{sid}").status_code == 404


def test_remove_line_and_payment(client):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"], "quantity": 2})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH", "amount": 100})
    pid = r.json()["payment_id"]
    assert client.delete(f"/api/pos/sessions/{sid}/payments/{pid}").status_code == 200
    assert client.delete(f"/api/pos/sessions/{sid}/payments/{pid}").status_code == 404
    r = client.delete(f"/api/pos/sessions/{sid}/lines/0")
    assert r.json()["session"]["lines"] == []
    assert client.delete(f"/api/pos/sessions/{sid}/lines/0").status_code == 422


def test_customer_search_proxy(client, backoffice):
    r = client.get("/api/pos/customers/search", params={"query": "0500"})
    assert r.json()["customers"][0]["name"] == "Mariam"


def test_rejected_split_leaves_single_method(client):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "SPLIT", "cash_portion": 100, "card_portion": 200})
    assert r.status_code == 409

    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH"})
    summary = r.json()["session"]
    assert summary["ledger_state"] == "COMPLETE"
    assert summary["payment_method"] == "CASH"


def test_removed_split_leaves_single_method(client):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "SPLIT"})
    assert r.json()["session"]["payment_method"] == "SPLIT"
    client.delete(f"/api/pos/sessions/{sid}/payments/{r.json()['payment_id']}")

    r = client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH"})
    assert r.json()["session"]["payment_method"] == "CASH"


def test_park_with_payments_is_422(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    client.post(f"/api/pos/sessions/{sid}/payments", json={"method": "CASH", "amount": 100})
    r = client.post(f"/api/pos/sessions/{sid}/park", json={"name": "Walk-in"})
    assert r.status_code == 422
    assert r.json()["field"] == "payments"
    assert backoffice.parked == []
    summary = client.get(f"/api/pos/sessions/{sid}").json()["session"]
    assert summary["paid_cents"] == 10000


def test_parked_orders_list_get_delete(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"]})
    client.post(f"/api/pos/sessions/{sid}/park", json={"name": "Walk-in"})

    parked = client.get("/api/pos/parked-orders").json()["parked_orders"]
    assert [(p["id"], p["name"]) for p in parked] == [("park-1", "Walk-in")]
    r = client.get("/api/pos/parked-orders/park-1")
    assert r.json()["parked_order"]["totalAmount"] == 400.0

    assert client.delete("/api/pos/parked-orders/park-1").status_code == 200
    assert client.get("/api/pos/parked-orders").json()["parked_orders"] == []
    assert client.get("/api/pos/parked-orders/park-1").status_code == 502


def test_resume_parked_order(client, backoffice):
    sid = _open(client)
    gift_set = _product(client, "Cake & Roses Gift Set")
    client.post(f"/api/pos/sessions/{sid}/lines", json={"product_id": gift_set["id"], "quantity": 2})
    _delivery(client, sid, zone="SHARJAH")
    client.post(f"/api/pos/sessions/{sid}/park", json={"name": "Omar"})
    backoffice.parked[0]["items"].append({"productId": "999", "productName": "Old Tart"})

    r = client.post(f"/api/pos/sessions/{sid}/resume/park-1")
    assert r.status_code == 200, r.text
    assert r.json()["skipped"] == ["Old Tart is no longer available"]
    summary = r.json()["session"]
    assert [(line["name"], line["qty"]) for line in summary["lines"]] == [("Cake & Roses Gift Set", 2)]
    assert summary["fulfillment"] == "DELIVERY"
    assert summary["totals"]["final_total_cents"] == 85000

    r = client.post(f"/api/pos/sessions/{sid}/resume/park-1")
    assert r.status_code == 422

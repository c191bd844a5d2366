import asyncio
from decimal import Decimal

import pytest

from bakery_pos.checkout.errors import (
    CheckoutError,
    ExternalServiceError,
    ReconciliationError,
    ValidationError,
)
from bakery_pos.checkout.ledger import LedgerState
from bakery_pos.checkout.payments import (
    PaymentMethod,
    build_card_payment,
    build_cash_payment,
    build_partial_payment,
    build_split_payment,
)
from bakery_pos.checkout.session import CheckoutSession
from bakery_pos.checkout.totals import CouponApplication, CouponKind
from bakery_pos.checkout.types import (
    AddonSelection,
    Attachment,
    CartLine,
    CustomerDetails,
    Fulfillment,
    FulfillmentMethod,
    GiftDetails,
)
from bakery_pos.services.orders import ParkAck, SubmitResult


class FakeCoupons:
    def __init__(self, coupon=None, error=None):
        self.coupon = coupon
        self.error = error
        self.calls = []

    async def validate(self, code, subtotal_cents):
        self.calls.append((code, subtotal_cents))
        if self.error:
            raise ExternalServiceError("coupons", self.error)
        return self.coupon


class FakeOrders:
    def __init__(self, fail=False):
        self.fail = fail
        self.submitted = []

    async def submit(self, submission):
        if self.fail:
            raise ExternalServiceError("orders", "Order service down")
        self.submitted.append(submission)
        return SubmitResult(order_id="ord-1", order_number="PW-1001")


class FakeCustomers:
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    async def create_or_update(self, customer, fulfillment=None):
        if self.fail:
            raise ExternalServiceError("customers", "nope")
        self.saved.append(customer)


class FakeUploads:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.uploaded = []

    async def upload(self, filename, content, content_type):
        if filename in self.fail_on:
            raise ExternalServiceError("attachments", "too big")
        self.uploaded.append(filename)
        return f"https://cdn.example/{filename}"


class FakeSidecar:
    def __init__(self, warnings=()):
        self.warnings = list(warnings)
        self.calls = []

    def after_submit(self, submission, result, cash_cents):
        self.calls.append(cash_cents)
        return list(self.warnings)


class FakeParking:
    def __init__(self, parked=None):
        self.snapshots = []
        self.parked = dict(parked or {})

    async def park(self, snapshot):
        self.snapshots.append(snapshot)
        return ParkAck(parked_id="park-7")

    async def get(self, parked_id):
        if parked_id not in self.parked:
            raise ExternalServiceError("parked-orders", "Parked order not found", 404)
        return self.parked[parked_id]


TEN_PERCENT = CouponApplication("TEN", CouponKind.PERCENTAGE, Decimal("10"), min_order_cents=15000)


def _ready_session(candle, qty=2):
    s = CheckoutSession()
    s.add_line(CartLine(product=candle, quantity=qty))
    s.customer = CustomerDetails(name="Mariam", phone="+971500000000")
    s.set_fulfillment(Fulfillment(
        method=FulfillmentMethod.DELIVERY,
        date="2026-10-20",
        time_slot="14:00-16:00",
        street_address="Villa 12",
        zone="DUBAI",
    ))
    return s


def test_add_line_validates_first(cake):
    s = CheckoutSession()
    with pytest.raises(ValidationError):
        s.add_line(CartLine(product=cake))
    assert s.lines == []


def test_end_to_end(candle):
    s = _ready_session(candle)
    s.set_coupon_code("ten")
    coupon = asyncio.run(s.apply_coupon(FakeCoupons(TEN_PERCENT)))
    assert coupon is TEN_PERCENT
    assert s.totals().final_total_cents == 21000

    s.record_payment(build_cash_payment(10000))
    assert s.remaining() == 11000
    assert s.ledger_state() == LedgerState.ACCUMULATING
    s.record_payment(build_card_payment(11000, "RRN"))
    assert s.ledger_state() == LedgerState.COMPLETE
    assert s.payment_method() == PaymentMethod.SPLIT

    orders = FakeOrders()
    sidecar = FakeSidecar()
    result = asyncio.run(s.submit(orders, customers=FakeCustomers(), sidecar=sidecar))
    assert result.order_number == "PW-1001"
    assert orders.submitted[0].total_amount == 210.0
    assert sidecar.calls == [10000]
    # flushed for the next customer
    assert s.lines == [] and len(s.ledger) == 0 and s.coupon is None


def test_coupon_dropped_when_subtotal_falls_below_minimum(candle):
    s = _ready_session(candle)
    s.set_coupon_code("TEN")
    asyncio.run(s.apply_coupon(FakeCoupons(TEN_PERCENT)))
    assert s.totals().discount_cents == 2000

    s.set_quantity(0, 1)
    assert s.coupon is None
    assert s.coupon_error
    assert s.totals().discount_cents == 0


def test_coupon_failure_degrades(candle):
    s = _ready_session(candle)
    s.set_coupon_code("BOGUS")
    assert asyncio.run(s.apply_coupon(FakeCoupons(error="Coupon expired"))) is None
    assert s.coupon is None
    assert s.coupon_error == "Coupon expired"
    assert s.totals().final_total_cents == 23000


def test_stale_coupon_response_is_discarded(candle):
    s = _ready_session(candle)

    class SlowCoupons:
        async def validate(self, code, subtotal_cents):
            # the cashier clears the code while the request is in flight
            s.set_coupon_code("")
            return TEN_PERCENT

    s.set_coupon_code("TEN")
    assert asyncio.run(s.apply_coupon(SlowCoupons())) is None
    assert s.coupon is None
    assert s.totals().discount_cents == 0


def test_overshooting_payment_rejected(candle):
    s = _ready_session(candle)
    with pytest.raises(ReconciliationError):
        s.record_payment(build_cash_payment(30000))
    assert len(s.ledger) == 0


def test_defer_remaining_balance(candle):
    s = _ready_session(candle)
    s.record_payment(build_cash_payment(5000))
    deferred = s.defer_remaining(PaymentMethod.CARD)
    assert deferred.future_method == PaymentMethod.CARD
    assert s.ledger.has_partial() and s.allow_partial_payment

    order = s.build_submission()
    assert order.payment_method == "PARTIAL"
    assert order.payments[0].remaining_amount == 180.0


def test_defer_needs_a_payment(candle):
    s = _ready_session(candle)
    with pytest.raises(ValidationError):
        s.defer_remaining()


def test_partial_payment_enables_allow_flag(candle):
    s = _ready_session(candle)
    total = s.totals().final_total_cents
    s.record_payment(build_partial_payment(PaymentMethod.CASH, 3000, total))
    assert s.allow_partial_payment
    s.remove_payment(s.ledger.entries[0].id)
    assert not s.allow_partial_payment


def test_submit_failure_keeps_state(candle):
    s = _ready_session(candle)
    s.record_payment(build_cash_payment(s.totals().final_total_cents))
    with pytest.raises(ExternalServiceError):
        asyncio.run(s.submit(FakeOrders(fail=True)))
    assert len(s.lines) == 1 and len(s.ledger) == 1
    assert not s.submitting


def test_double_submit_guard(candle):
    s = _ready_session(candle)
    s.record_payment(build_cash_payment(s.totals().final_total_cents))
    s.submitting = True
    with pytest.raises(CheckoutError):
        asyncio.run(s.submit(FakeOrders()))


def test_customer_and_sidecar_failures_are_warnings(candle):
    s = _ready_session(candle)
    s.record_payment(build_card_payment(s.totals().final_total_cents, "RRN"))
    sidecar = FakeSidecar(warnings=["Receipt not printed"])
    asyncio.run(s.submit(FakeOrders(), customers=FakeCustomers(fail=True), sidecar=sidecar))
    assert sidecar.calls == [0]
    assert "Customer details could not be saved" in s.warnings
    assert "Receipt not printed" in s.warnings


def test_attachment_upload_degrades(custom_cake):
    s = CheckoutSession()
    s.add_line(CartLine(
        product=custom_cake,
        custom_unit_price_cents=20000,
        attachments=(
            Attachment(filename="ok.jpg", content=b"1"),
            Attachment(filename="big.jpg", content=b"2"),
            Attachment(filename="done.jpg", url="https://cdn.example/done.jpg"),
        ),
    ))
    store = FakeUploads(fail_on={"big.jpg"})
    assert asyncio.run(s.upload_attachments(store)) == 1
    urls = [a.url for a in s.lines[0].attachments]
    assert urls == ["https://cdn.example/ok.jpg", None, "https://cdn.example/done.jpg"]
    assert store.uploaded == ["ok.jpg"]
    assert s.warnings
    assert s.lines[0].attachments[1].content == b"2"
    # the failed image goes out as an empty URL but is retried next time
    s.customer = CustomerDetails(name="Mariam", phone="0500")
    s.set_fulfillment(Fulfillment(date="2026-10-20", time_slot="10:00-12:00"))
    s.record_payment(build_card_payment(s.totals().final_total_cents, "RRN"))
    assert s.build_submission().items[0].custom_images[1].url == ""

    store.fail_on.clear()
    assert asyncio.run(s.upload_attachments(store)) == 1
    assert store.uploaded == ["ok.jpg", "big.jpg"]
    assert s.lines[0].attachments[1].url == "https://cdn.example/big.jpg"


def test_park_skips_payment_checks(candle):
    s = _ready_session(candle)
    store = FakeParking()
    ack = asyncio.run(s.park(store, name="Table 4"))
    assert ack.parked_id == "park-7"
    assert store.snapshots[0]["name"] == "Table 4"
    assert store.snapshots[0]["items"][0]["productName"] == "Candle"
    assert s.lines == []


def test_dismiss_flushes_ledger_only(candle):
    s = _ready_session(candle)
    s.record_payment(build_cash_payment(1000))
    s.dismiss()
    assert len(s.ledger) == 0
    assert len(s.lines) == 1


def test_split_mode_follows_split_entries(candle):
    s = _ready_session(candle)
    total = s.totals().final_total_cents
    split = s.record_payment(build_split_payment(total, 0, 0))
    assert s.payment_method() == PaymentMethod.SPLIT

    s.remove_payment(split.id)
    assert not s.split_active
    s.record_payment(build_cash_payment(total))
    assert s.payment_method() == PaymentMethod.CASH


def test_single_payment_clears_split_mode(candle):
    s = _ready_session(candle)
    s.set_split_active(True)
    assert s.payment_method() == PaymentMethod.SPLIT
    s.record_payment(build_cash_payment(s.totals().final_total_cents))
    assert s.payment_method() == PaymentMethod.CASH
    assert s.build_submission().payment_method == "CASH"


def test_coupon_rechecked_after_cart_change_in_flight(candle):
    s = _ready_session(candle)

    class SlowCoupons:
        async def validate(self, code, subtotal_cents):
            # one candle is taken off while the request is in flight
            s.set_quantity(0, 1)
            return TEN_PERCENT

    s.set_coupon_code("TEN")
    assert asyncio.run(s.apply_coupon(SlowCoupons())) is None
    assert s.coupon is None
    assert s.coupon_error
    assert s.summary()["coupon"]["applied"] is False


def test_park_refused_with_payments(candle):
    s = _ready_session(candle)
    s.record_payment(build_cash_payment(1000))
    store = FakeParking()
    with pytest.raises(ValidationError) as exc:
        asyncio.run(s.park(store))
    assert exc.value.field == "payments"
    assert store.snapshots == []
    assert len(s.ledger) == 1 and len(s.lines) == 1


def test_park_then_resume(bouquet, candle):
    s = CheckoutSession()
    flowers = (AddonSelection("wrap", "luxury"), AddonSelection("extras", "balloon", sub_option_ids=("heart",)))
    s.add_line(CartLine(product=bouquet, addon_selections=flowers))
    s.add_line(CartLine(product=candle, quantity=2, notes="unscented"))
    s.customer = CustomerDetails(name="Mariam", phone="0500")
    s.set_fulfillment(Fulfillment(
        method=FulfillmentMethod.DELIVERY,
        date="2026-10-20",
        time_slot="14:00-16:00",
        street_address="Villa 12",
        zone="SHARJAH",
        instructions="Ring twice",
    ))
    s.gift = GiftDetails(is_gift=True, recipient_name="Sara", message="With love")
    s.notes = "call first"
    before = s.totals()

    store = FakeParking()
    asyncio.run(s.park(store, name="Bouquet for Sara"))
    store.parked["park-7"] = store.snapshots[0]

    resumed = CheckoutSession()
    catalog = {"bouquet": bouquet, "candle": candle}
    assert asyncio.run(resumed.resume(store, "park-7", catalog.get)) == []
    assert resumed.totals() == before
    assert resumed.lines[0].addon_selections == flowers
    assert resumed.lines[1].notes == "unscented"
    assert resumed.customer == CustomerDetails(name="Mariam", phone="0500")
    assert resumed.fulfillment.zone == "SHARJAH"
    assert resumed.fulfillment.instructions == "Ring twice"
    assert resumed.gift.recipient_name == "Sara"
    assert resumed.notes == "call first"


def test_resume_skips_items_that_no_longer_fit(candle, cake):
    parked = {
        "items": [
            {"productId": "candle", "productName": "Candle", "quantity": 1},
            {"productId": "old", "productName": "Retired cake"},
            {"productId": "cake", "productName": "Celebration Cake", "variations": []},
        ],
        "deliveryMethod": "PICKUP",
        "pickupDate": "2026-10-21",
        "pickupTimeSlot": "09:00-11:00",
        "couponCode": "ten",
    }
    s = CheckoutSession()
    warnings = s.restore(parked, {"candle": candle, "cake": cake}.get)
    assert len(s.lines) == 1
    assert warnings[0] == "Retired cake is no longer available"
    assert warnings[1].startswith("Celebration Cake:")
    assert s.fulfillment.method == FulfillmentMethod.PICKUP
    assert s.fulfillment.time_slot == "09:00-11:00"
    # the code comes back, the discount needs a fresh validation
    assert s.coupon_code == "TEN" and s.coupon is None


def test_restore_needs_an_empty_session(candle):
    s = _ready_session(candle)
    with pytest.raises(ValidationError):
        s.restore({"items": [{"productId": "candle"}]}, {"candle": candle}.get)

    with pytest.raises(ExternalServiceError):
        asyncio.run(CheckoutSession().resume(FakeParking(), "missing", {}.get))

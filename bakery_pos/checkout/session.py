# bakery_pos/checkout/session.py
"""CheckoutSession: the one stateful object the till drives.

Totals, routing and ledger aggregates are recomputed from the current lines,
coupon, fulfillment and payments on every read. The only async parts are the
collaborator calls (coupon, customer, order, parking and resuming, attachment upload).
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ..config import CONFIG, AppConfig
from .assembler import OrderSubmission, assemble, cart_line_from_item, order_item
from .errors import CheckoutError, ExternalServiceError, ValidationError
from .ledger import LedgerState, PaymentLedger
from .money import format_money, to_amount, to_cents
from .payments import (
    CardPayment,
    CashPayment,
    CodPayment,
    PartialPayment,
    Payment,
    PaymentMethod,
    ReferencedPayment,
    SplitPayment,
    cash_component_cents,
    payment_record,
    resolve_payment_method,
)
from .pricing import compute_line_total, validate_line
from .routing import RoutingPlan, derive_routing
from .totals import CartTotals, CouponApplication, compute_totals, resolve_delivery_surcharge
from .types import CartLine, CustomerDetails, Fulfillment, FulfillmentMethod, GiftDetails, ProductSpec

log = logging.getLogger("bakery-pos.checkout")


class CheckoutSession:
    def __init__(self, config: Optional[AppConfig] = None, session_id: Optional[str] = None):
        self.id = session_id or uuid4().hex
        self.config = config or CONFIG
        self.lines: List[CartLine] = []
        self.ledger = PaymentLedger()
        self.customer = CustomerDetails()
        self.fulfillment = Fulfillment()
        self.gift = GiftDetails()
        self.notes: Optional[str] = None

        self.coupon_code = ""
        self.coupon: Optional[CouponApplication] = None
        self.coupon_error: Optional[str] = None
        # bumped on every code change / apply; older responses are dropped
        self._coupon_generation = 0

        self.split_active = False
        self.allow_partial_payment = False
        self.submitting = False
        self.warnings: List[str] = []
        self.last_result: Any = None

    # ---- cart ---------------------------------------------------------------

    def _line_at(self, index: int) -> CartLine:
        if index < 0 or index >= len(self.lines):
            raise ValidationError("line", f"No cart line at position {index}")
        return self.lines[index]

    def add_line(self, line: CartLine) -> int:
        validate_line(line)
        self.lines.append(line)
        self._recheck_coupon()
        return len(self.lines) - 1

    def remove_line(self, index: int) -> CartLine:
        line = self._line_at(index)
        del self.lines[index]
        self._recheck_coupon()
        return line

    def set_quantity(self, index: int, quantity: int) -> CartLine:
        line = self._line_at(index).with_quantity(int(quantity))
        validate_line(line)
        self.lines[index] = line
        self._recheck_coupon()
        return line

    # ---- coupon -------------------------------------------------------------

    def _recheck_coupon(self) -> None:
        if self.coupon is None:
            return
        subtotal = self.totals().subtotal_cents
        if not self.coupon.applies_to(subtotal):
            log.info("coupon %s dropped: subtotal %s below minimum", self.coupon.code, subtotal)
            self.coupon_error = (
                f"Coupon {self.coupon.code} needs a minimum order of "
                f"{format_money(self.coupon.min_order_cents, self.config.currency)}"
            )
            self.coupon = None

    def set_coupon_code(self, code: Optional[str]) -> None:
        code = (code or "").strip().upper()
        if code == self.coupon_code:
            return
        self.coupon_code = code
        self._coupon_generation += 1
        self.coupon_error = None
        if self.coupon is not None and self.coupon.code != code:
            self.coupon = None

    def remove_coupon(self) -> None:
        self.set_coupon_code("")

    async def apply_coupon(self, client) -> Optional[CouponApplication]:
        """Validates the current code; ``client.validate(code, subtotal_cents)``."""
        code = self.coupon_code
        if not code:
            raise ValidationError("coupon_code", "Enter a coupon code")
        self._coupon_generation += 1
        generation = self._coupon_generation
        subtotal = self.totals().subtotal_cents

        try:
            coupon = await client.validate(code, subtotal)
        except ExternalServiceError as exc:
            if generation != self._coupon_generation:
                log.info("stale coupon failure for %s ignored", code)
                return None
            log.warning("coupon %s rejected: %s", code, exc.message)
            self.coupon = None
            self.coupon_error = exc.message
            return None

        if generation != self._coupon_generation:
            log.info("stale coupon response for %s ignored", code)
            return None
        if not coupon.applies_to(subtotal):
            self.coupon = None
            self.coupon_error = (
                f"Minimum order of {format_money(coupon.min_order_cents, self.config.currency)} required"
            )
            return None
        self.coupon = coupon
        self.coupon_error = None
        # the cart may have changed while the request was in flight
        self._recheck_coupon()
        return self.coupon

    # ---- derived ------------------------------------------------------------

    def set_fulfillment(self, fulfillment: Fulfillment) -> None:
        self.fulfillment = fulfillment

    def delivery_charge_cents(self) -> int:
        return resolve_delivery_surcharge(self.fulfillment, self.config.delivery)

    def totals(self) -> CartTotals:
        return compute_totals(self.lines, self.coupon, self.delivery_charge_cents())

    def routing(self) -> RoutingPlan:
        return derive_routing(self.lines, self.config.routing.category_teams)

    def remaining(self) -> int:
        return self.ledger.remaining(self.totals().final_total_cents)

    def ledger_state(self) -> LedgerState:
        return self.ledger.state(self.totals().final_total_cents)

    def payment_method(self) -> Optional[PaymentMethod]:
        return resolve_payment_method(self.ledger.entries, self.split_active)

    # ---- payments -----------------------------------------------------------

    def _has_split(self) -> bool:
        return any(isinstance(p, SplitPayment) for p in self.ledger.entries)

    def record_payment(self, payment: Payment) -> Payment:
        self.ledger.add(payment, self.totals().final_total_cents)
        if isinstance(payment, PartialPayment):
            self.allow_partial_payment = True
        # split mode lives only as long as a split entry does
        self.split_active = self._has_split()
        return payment

    def remove_payment(self, payment_id: str) -> bool:
        removed = self.ledger.remove(payment_id)
        if removed:
            if not self.ledger.has_partial():
                self.allow_partial_payment = False
            if not self._has_split():
                self.split_active = False
        return removed

    def set_split_active(self, active: bool) -> None:
        self.split_active = bool(active)

    def defer_remaining(self, future_method: PaymentMethod = PaymentMethod.CASH) -> PartialPayment:
        """Leaves the outstanding balance to be collected later with ``future_method``.

        The last single-instrument entry becomes the partial payment carrying
        the deferral; an existing partial entry just gets the new future method.
        """
        future_method = PaymentMethod(future_method)
        final_total = self.totals().final_total_cents
        remaining = self.ledger.remaining(final_total)
        if not len(self.ledger):
            raise ValidationError("payments", "Take a payment before deferring the balance")
        if remaining <= 0:
            raise ValidationError("payments", "Nothing left to defer")

        entries = self.ledger.entries
        for p in entries:
            if isinstance(p, PartialPayment):
                deferred = replace(p, future_method=future_method)
                break
        else:
            last = entries[-1]
            if not isinstance(last, (CashPayment, CardPayment, ReferencedPayment, CodPayment)):
                raise ValidationError("payments", "A split payment can't carry a deferred balance")
            deferred = PartialPayment(
                id=last.id,
                amount_cents=last.amount_cents,
                method=last.method,
                future_method=future_method,
                remaining_at_creation_cents=remaining,
                reference=getattr(last, "reference", None),
            )
        self.ledger.replace(deferred.id, deferred)
        self.allow_partial_payment = True
        return deferred

    # ---- output -------------------------------------------------------------

    def build_submission(self) -> OrderSubmission:
        return assemble(
            self.lines,
            self.totals(),
            self.ledger,
            self.routing(),
            self.customer,
            self.fulfillment,
            gift=self.gift,
            notes=self.notes,
            coupon=self.coupon,
            allow_partial_payment=self.allow_partial_payment,
            split_active=self.split_active,
            category_teams=self.config.routing.category_teams,
        )

    def summary(self) -> Dict[str, Any]:
        totals = self.totals()
        remaining = self.ledger.remaining(totals.final_total_cents)
        method = self.payment_method()
        lines = []
        for idx, line in enumerate(self.lines):
            price = compute_line_total(line)
            lines.append({
                "index": idx,
                "product_id": line.product.id,
                "name": line.product.name,
                "qty": line.quantity,
                "unit_price_cents": price.unit_price_cents,
                "line_total_cents": price.line_total_cents,
                "variant_id": price.variant_id,
            })
        return {
            "id": self.id,
            "lines": lines,
            "totals": {
                "subtotal_cents": totals.subtotal_cents,
                "discount_cents": totals.discount_cents,
                "delivery_surcharge_cents": totals.delivery_surcharge_cents,
                "final_total_cents": totals.final_total_cents,
            },
            "coupon": {
                "code": self.coupon_code or None,
                "applied": self.coupon is not None,
                "error": self.coupon_error,
            },
            "fulfillment": self.fulfillment.method.value if self.fulfillment.method else None,
            "routing": self.routing().as_metadata()["routing"],
            "payments": [payment_record(p, remaining) for p in self.ledger.entries],
            "paid_cents": self.ledger.total_paid(),
            "remaining_cents": remaining,
            "ledger_state": self.ledger.state(totals.final_total_cents).value,
            "payment_method": method.value if method else None,
            "allow_partial_payment": self.allow_partial_payment,
            "warnings": list(self.warnings),
        }

    # ---- collaborators ------------------------------------------------------

    async def upload_attachments(self, store) -> int:
        """Uploads pending line images; a failed one stays pending for the next submit."""
        uploaded = 0
        for idx, line in enumerate(self.lines):
            if not any(not a.uploaded for a in line.attachments):
                continue
            fresh = []
            for att in line.attachments:
                if att.uploaded:
                    fresh.append(att)
                    continue
                try:
                    url = await store.upload(att.filename, att.content or b"", att.content_type)
                    uploaded += 1
                except ExternalServiceError as exc:
                    log.warning("attachment %s not uploaded: %s", att.filename, exc.message)
                    self.warnings.append(f"Image {att.filename} could not be uploaded")
                    fresh.append(att)
                    continue
                fresh.append(replace(att, url=url, content=None))
            self.lines[idx] = line.with_attachments(tuple(fresh))
        return uploaded

    def _flush(self) -> None:
        self.lines = []
        self.ledger.clear()
        self.customer = CustomerDetails()
        self.fulfillment = Fulfillment()
        self.gift = GiftDetails()
        self.notes = None
        self.coupon_code = ""
        self.coupon = None
        self.coupon_error = None
        self._coupon_generation += 1
        self.split_active = False
        self.allow_partial_payment = False

    async def submit(self, orders, *, customers=None, attachments=None, sidecar=None):
        if self.submitting:
            raise CheckoutError("Order submission already in progress")
        self.submitting = True
        self.warnings = []
        try:
            # fail fast before touching any collaborator
            submission = self.build_submission()
            if attachments is not None:
                await self.upload_attachments(attachments)
                submission = self.build_submission()
            if customers is not None:
                try:
                    await customers.create_or_update(self.customer, self.fulfillment)
                except ExternalServiceError as exc:
                    log.warning("customer upsert failed: %s", exc.message)
                    self.warnings.append("Customer details could not be saved")
            result = await orders.submit(submission)
        finally:
            self.submitting = False

        log.info(
            "order %s submitted: total %s, method %s",
            getattr(result, "order_number", None),
            submission.total_amount,
            submission.payment_method,
        )
        cash_cents = cash_component_cents(self.ledger.entries)
        self.last_result = result
        self._flush()

        if sidecar is not None:
            self.warnings.extend(sidecar.after_submit(submission, result, cash_cents))
        return result

    def snapshot(self, name: Optional[str] = None) -> Dict[str, Any]:
        """Parked-order payload: cart and form state, no payment checks."""
        totals = self.totals()
        f = self.fulfillment
        delivery = f.method == FulfillmentMethod.DELIVERY
        g = self.gift
        return {
            "name": (name or self.customer.name or "").strip() or None,
            "items": [order_item(line, self.config.routing.category_teams).model_dump(by_alias=True, mode="json")
                      for line in self.lines],
            "customerName": self.customer.name or None,
            "customerPhone": self.customer.phone or None,
            "customerEmail": self.customer.email,
            "deliveryMethod": f.method.value if f.method else None,
            "deliveryDate": f.date if delivery else None,
            "deliveryTimeSlot": f.time_slot if delivery else None,
            "deliveryInstructions": f.instructions if delivery else None,
            "deliveryCharge": to_amount(f.charge_override_cents) if f.charge_override_cents is not None else None,
            "streetAddress": f.street_address if delivery else None,
            "apartment": f.apartment if delivery else None,
            "emirate": f.zone if delivery else None,
            "city": f.city if delivery else None,
            "pickupDate": None if delivery else f.date,
            "pickupTimeSlot": None if delivery else f.time_slot,
            "isGift": bool(g.is_gift),
            "giftRecipientName": g.recipient_name if g.is_gift else None,
            "giftRecipientPhone": g.recipient_phone if g.is_gift else None,
            "giftMessage": g.message if g.is_gift else None,
            "includeCash": bool(g.is_gift and g.include_cash),
            "giftCashAmount": to_amount(g.cash_amount_cents) if g.is_gift and g.include_cash else None,
            "couponCode": self.coupon.code if self.coupon else None,
            "subtotal": to_amount(totals.subtotal_cents),
            "totalAmount": to_amount(totals.final_total_cents),
            "notes": self.notes,
        }

    async def park(self, store, name: Optional[str] = None):
        if not self.lines:
            raise ValidationError("items", "Nothing to park")
        # a parked order carries no payments; taken money must not vanish
        if len(self.ledger):
            raise ValidationError("payments", "Remove the payments before parking the order")
        ack = await store.park(self.snapshot(name))
        log.info("cart parked as %s", getattr(ack, "parked_id", None))
        self._flush()
        return ack

    def restore(self, parked: Dict[str, Any], products: Callable[[Any], Optional[ProductSpec]]) -> List[str]:
        """Loads a parked order into this (empty) session.

        ``products(product_id)`` returns the current catalog entry or None.
        Items that no longer price or validate are skipped with a warning.
        The coupon code is restored but has to be applied again.
        """
        if self.lines or len(self.ledger):
            raise ValidationError("items", "Clear the current cart before resuming a parked order")

        lines: List[CartLine] = []
        warnings: List[str] = []
        for item in parked.get("items") or ():
            label = item.get("productName") or item.get("productId")
            product = products(item.get("productId"))
            if product is None:
                warnings.append(f"{label} is no longer available")
                continue
            line = cart_line_from_item(item, product)
            try:
                validate_line(line)
            except ValidationError as exc:
                warnings.append(f"{label}: {exc.message}")
                continue
            lines.append(line)
        if not lines:
            raise ValidationError("items", "None of the parked items can be restored")

        self._flush()
        self.lines = lines
        self.customer = CustomerDetails(
            name=parked.get("customerName") or "",
            phone=parked.get("customerPhone") or "",
            email=parked.get("customerEmail") or None,
        )
        if str(parked.get("deliveryMethod") or "").upper() == FulfillmentMethod.DELIVERY.value:
            self.fulfillment = Fulfillment(
                method=FulfillmentMethod.DELIVERY,
                date=parked.get("deliveryDate"),
                time_slot=parked.get("deliveryTimeSlot"),
                street_address=parked.get("streetAddress"),
                apartment=parked.get("apartment"),
                zone=(parked.get("emirate") or "").upper() or None,
                city=parked.get("city"),
                instructions=parked.get("deliveryInstructions"),
                charge_override_cents=to_cents(parked.get("deliveryCharge")),
            )
        else:
            self.fulfillment = Fulfillment(
                method=FulfillmentMethod.PICKUP,
                date=parked.get("pickupDate") or parked.get("deliveryDate"),
                time_slot=parked.get("pickupTimeSlot") or parked.get("deliveryTimeSlot"),
            )
        if parked.get("isGift"):
            self.gift = GiftDetails(
                is_gift=True,
                recipient_name=parked.get("giftRecipientName"),
                recipient_phone=parked.get("giftRecipientPhone"),
                message=parked.get("giftMessage"),
                include_cash=bool(parked.get("includeCash")),
                cash_amount_cents=to_cents(parked.get("giftCashAmount")) or 0,
            )
        self.notes = parked.get("notes") or None
        self.set_coupon_code(parked.get("couponCode"))
        self.warnings = warnings
        return warnings

    async def resume(self, store, parked_id: str, products) -> List[str]:
        parked = await store.get(parked_id)
        warnings = self.restore(parked, products)
        log.info("parked order %s resumed (%d lines, %d skipped)", parked_id, len(self.lines), len(warnings))
        return warnings

    def dismiss(self) -> None:
        self.ledger.clear()
        self.split_active = False
        self.allow_partial_payment = False

# bakery_pos/views_pos.py
from __future__ import annotations

import base64
import binascii
from dataclasses import asdict
from typing import Any, AsyncIterator, Dict, Optional, Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session

from .catalog import load_product_spec, product_payload
from .checkout.errors import ValidationError
from .checkout.money import to_cents
from .checkout.payments import (
    PaymentMethod,
    build_partial_payment,
    build_payment,
    build_remaining_split,
    build_split_payment,
)
from .checkout.pricing import compute_line_total, validate_line
from .checkout.routing import derive_routing
from .checkout.session import CheckoutSession
from .checkout.totals import CouponApplication, compute_totals, resolve_delivery_surcharge
from .checkout.types import (
    AddonSelection,
    Attachment,
    CartLine,
    CustomerDetails,
    Fulfillment,
    GiftDetails,
    OptionSelection,
)
from .config import CONFIG
from .db import get_session_dep
from .receipts.drawer import ReceiptSidecar
from .schemas import (
    CheckoutIn,
    CouponCodeIn,
    CouponIn,
    CustomerIn,
    DeferIn,
    FulfillmentIn,
    GiftIn,
    LineIn,
    ParkIn,
    PaymentIn,
    QuantityIn,
    QuoteIn,
)
from .services.attachments import AttachmentClient
from .services.coupons import CouponClient
from .services.customers import CustomerClient
from .services.http import make_async_client
from .services.orders import OrderClient, ParkedOrderClient

router = APIRouter()

# Typed dependencies
SessionDep = Annotated[Session, Depends(get_session_dep)]


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with make_async_client() as client:
        yield client


def get_sidecar() -> ReceiptSidecar:
    return ReceiptSidecar()


HttpDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
SidecarDep = Annotated[ReceiptSidecar, Depends(get_sidecar)]

# open checkout sessions, one per till screen
SESSIONS: Dict[str, CheckoutSession] = {}


def _get_checkout(sid: str) -> CheckoutSession:
    s = SESSIONS.get(sid)
    if s is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return s


# ---- payload -> engine types ----

def _attachment(a) -> Attachment:
    content = None
    if a.content_base64:
        try:
            content = base64.b64decode(a.content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError("attachments", f"Image {a.filename} is not valid base64") from e
    return Attachment(
        filename=a.filename,
        url=a.url,
        comment=(a.comment or "").strip() or None,
        content=content,
        content_type=a.content_type,
    )


def _cart_line(session: Session, payload: LineIn) -> CartLine:
    spec = load_product_spec(session, payload.product_id)
    if spec is None:
        raise ValidationError("product_id", f"Unknown product {payload.product_id}")
    custom = None
    if payload.custom_price is not None:
        custom = to_cents(payload.custom_price)
    return CartLine(
        product=spec,
        quantity=payload.quantity,
        option_selections=tuple(OptionSelection(o.option_id, o.value_id) for o in payload.options),
        addon_selections=tuple(
            AddonSelection(
                addon_group_id=a.addon_group_id,
                option_id=a.option_id,
                selection_slot=a.selection_slot,
                custom_text=a.custom_text,
                sub_option_ids=tuple(a.sub_option_ids),
            )
            for a in payload.addons
        ),
        custom_unit_price_cents=custom,
        notes=payload.notes,
        attachments=tuple(_attachment(a) for a in payload.attachments),
    )


def _fulfillment(f: Optional[FulfillmentIn]) -> Fulfillment:
    if f is None:
        return Fulfillment()
    return Fulfillment(
        method=f.method,
        date=f.date,
        time_slot=f.time_slot,
        street_address=f.street_address,
        apartment=f.apartment,
        zone=(f.zone or "").strip().upper() or None,
        city=f.city,
        instructions=f.instructions,
        charge_override_cents=to_cents(f.delivery_charge),
    )


def _customer(c: Optional[CustomerIn]) -> CustomerDetails:
    if c is None:
        return CustomerDetails()
    return CustomerDetails(name=c.name, phone=c.phone, email=c.email)


def _gift(g: Optional[GiftIn]) -> GiftDetails:
    if g is None:
        return GiftDetails()
    return GiftDetails(
        is_gift=g.is_gift,
        recipient_name=g.recipient_name,
        recipient_phone=g.recipient_phone,
        message=g.message,
        note=g.note,
        include_cash=g.include_cash,
        cash_amount_cents=to_cents(g.cash_amount) or 0,
    )


def _coupon(c: Optional[CouponIn]) -> Optional[CouponApplication]:
    if c is None:
        return None
    return CouponApplication(
        code=c.code.strip().upper(),
        kind=c.type,
        value=c.value,
        min_order_cents=to_cents(c.min_order_amount),
        max_discount_cents=to_cents(c.max_discount),
    )


def _ok(s: CheckoutSession, **extra: Any) -> JSONResponse:
    return JSONResponse({"ok": True, "session": s.summary(), **extra})


# ---- catalog ----

@router.get("/api/products/{product_id}/customizations")
def api_product_customizations(session: SessionDep, product_id: str):
    spec = load_product_spec(session, product_id)
    if spec is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return JSONResponse(product_payload(spec))


# ---- stateless quote ----

@router.post("/api/pos/quote")
def api_quote(session: SessionDep, body: QuoteIn):
    lines = [_cart_line(session, l) for l in body.lines]
    priced = []
    for idx, line in enumerate(lines):
        validate_line(line)
        price = compute_line_total(line)
        priced.append({
            "index": idx,
            "product_id": line.product.id,
            "name": line.product.name,
            "qty": line.quantity,
            "unit_price_cents": price.unit_price_cents,
            "line_total_cents": price.line_total_cents,
            "addons_cents": price.addons_cents,
            "variant_id": price.variant_id,
        })
    surcharge = resolve_delivery_surcharge(_fulfillment(body.fulfillment), CONFIG.delivery)
    totals = compute_totals(lines, _coupon(body.coupon), surcharge)
    routing = derive_routing(lines, CONFIG.routing.category_teams)
    return JSONResponse({
        "ok": True,
        "lines": priced,
        "totals": asdict(totals),
        "routing": routing.as_metadata(),
    })


# ---- checkout sessions ----

@router.post("/api/pos/sessions")
def api_open_session():
    s = CheckoutSession()
    SESSIONS[s.id] = s
    return _ok(s)


@router.get("/api/pos/sessions/{sid}")
def api_get_session(sid: str):
    return _ok(_get_checkout(sid))


@router.delete("/api/pos/sessions/{sid}")
def api_dismiss_session(sid: str):
    s = _get_checkout(sid)
    s.dismiss()
    SESSIONS.pop(sid, None)
    return JSONResponse({"ok": True})


@router.post("/api/pos/sessions/{sid}/lines")
def api_add_line(sid: str, session: SessionDep, body: LineIn):
    s = _get_checkout(sid)
    idx = s.add_line(_cart_line(session, body))
    return _ok(s, index=idx)


@router.put("/api/pos/sessions/{sid}/lines/{index}")
def api_set_quantity(sid: str, index: int, body: QuantityIn):
    s = _get_checkout(sid)
    s.set_quantity(index, body.quantity)
    return _ok(s)


@router.delete("/api/pos/sessions/{sid}/lines/{index}")
def api_remove_line(sid: str, index: int):
    s = _get_checkout(sid)
    s.remove_line(index)
    return _ok(s)


@router.put("/api/pos/sessions/{sid}/fulfillment")
def api_set_fulfillment(sid: str, body: FulfillmentIn):
    s = _get_checkout(sid)
    s.set_fulfillment(_fulfillment(body))
    return _ok(s)


@router.post("/api/pos/sessions/{sid}/coupon")
async def api_apply_coupon(sid: str, body: CouponCodeIn, http: HttpDep):
    s = _get_checkout(sid)
    s.set_coupon_code(body.code)
    await s.apply_coupon(CouponClient(http))
    return _ok(s, applied=s.coupon is not None)


@router.delete("/api/pos/sessions/{sid}/coupon")
def api_remove_coupon(sid: str):
    s = _get_checkout(sid)
    s.remove_coupon()
    return _ok(s)


@router.post("/api/pos/sessions/{sid}/payments")
def api_record_payment(sid: str, body: PaymentIn):
    s = _get_checkout(sid)
    final_total = s.totals().final_total_cents
    remaining = s.remaining()

    if body.parts:
        if len(body.parts) != 2:
            raise ValidationError("parts", "A split of the balance needs exactly two payments")
        first, second = (
            (p.method, to_cents(p.amount), p.reference) for p in body.parts
        )
        for p in build_remaining_split(remaining, first, second):
            s.record_payment(p)
        return _ok(s)

    amount = to_cents(body.amount) if body.amount is not None else remaining
    if body.method == PaymentMethod.SPLIT:
        payment = build_split_payment(
            amount, to_cents(body.cash_portion) or 0, to_cents(body.card_portion) or 0, body.card_reference,
        )
    elif body.partial:
        payment = build_partial_payment(body.method, amount, final_total, body.future_method, body.reference)
    else:
        payment = build_payment(body.method, amount, body.reference, to_cents(body.cash_tendered))
    s.record_payment(payment)
    return _ok(s, payment_id=payment.id)


@router.delete("/api/pos/sessions/{sid}/payments/{pid}")
def api_remove_payment(sid: str, pid: str):
    s = _get_checkout(sid)
    if not s.remove_payment(pid):
        raise HTTPException(status_code=404, detail="Payment not found")
    return _ok(s)


@router.post("/api/pos/sessions/{sid}/defer")
def api_defer_remaining(sid: str, body: DeferIn):
    s = _get_checkout(sid)
    s.defer_remaining(body.future_method)
    return _ok(s)


@router.post("/api/pos/sessions/{sid}/submit")
async def api_submit(sid: str, body: CheckoutIn, http: HttpDep, sidecar: SidecarDep):
    s = _get_checkout(sid)
    s.customer = _customer(body.customer)
    if body.fulfillment is not None:
        s.set_fulfillment(_fulfillment(body.fulfillment))
    s.gift = _gift(body.gift)
    s.notes = body.notes
    result = await s.submit(
        OrderClient(http),
        customers=CustomerClient(http),
        attachments=AttachmentClient(http),
        sidecar=sidecar,
    )
    return JSONResponse({
        "ok": True,
        "order_id": result.order_id,
        "order_number": result.order_number,
        "warnings": list(s.warnings),
    })


@router.post("/api/pos/sessions/{sid}/park")
async def api_park(sid: str, body: ParkIn, http: HttpDep):
    s = _get_checkout(sid)
    if body.customer is not None:
        s.customer = _customer(body.customer)
    ack = await s.park(ParkedOrderClient(http), body.name)
    return JSONResponse({"ok": True, "parked_id": ack.parked_id})


# ---- customers ----

@router.get("/api/pos/customers/search")
async def api_customer_search(http: HttpDep, query: str = ""):
    found = await CustomerClient(http).search(query)
    return JSONResponse({"ok": True, "customers": [asdict(c) for c in found]})


# ---- parked orders ----

@router.get("/api/pos/parked-orders")
async def api_parked_orders(http: HttpDep):
    parked = await ParkedOrderClient(http).list()
    return JSONResponse({"ok": True, "parked_orders": parked})


@router.get("/api/pos/parked-orders/{parked_id}")
async def api_parked_order(parked_id: str, http: HttpDep):
    return JSONResponse({"ok": True, "parked_order": await ParkedOrderClient(http).get(parked_id)})


@router.delete("/api/pos/parked-orders/{parked_id}")
async def api_delete_parked_order(parked_id: str, http: HttpDep):
    await ParkedOrderClient(http).delete(parked_id)
    return JSONResponse({"ok": True})


@router.post("/api/pos/sessions/{sid}/resume/{parked_id}")
async def api_resume_parked(sid: str, parked_id: str, session: SessionDep, http: HttpDep):
    s = _get_checkout(sid)
    warnings = await s.resume(
        ParkedOrderClient(http),
        parked_id,
        lambda product_id: load_product_spec(session, product_id),
    )
    return _ok(s, parked_id=parked_id, skipped=warnings)

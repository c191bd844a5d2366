# bakery_pos/checkout/assembler.py
"""Order Assembler: final validation and the immutable order-submission payload.

Nothing here talks to the network; ``services.orders`` sends the payload.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .errors import ReconciliationError, ValidationError
from .ledger import PaymentLedger
from .money import format_money, to_amount, to_cents
from .payments import PaymentMethod, payment_record, resolve_payment_method
from .pricing import addons_price_cents, compute_line_total, validate_line
from .routing import RoutingPlan, product_teams
from .totals import CartTotals, CouponApplication
from .types import (
    AddonSelection,
    Attachment,
    CartLine,
    CustomerDetails,
    Fulfillment,
    FulfillmentMethod,
    GiftDetails,
    OptionSelection,
    ProductSpec,
)


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ItemVariation(_Payload):
    id: str
    type: str
    value: str
    price_adjustment: float = 0.0


class ItemAddon(_Payload):
    id: str
    group: str
    option: str
    slot: int = 0
    price: float = 0.0
    custom_text: Optional[str] = None
    sub_options: Tuple[str, ...] = ()
    sub_options_price: float = 0.0


class ItemImage(_Payload):
    url: str
    comment: Optional[str] = None


class OrderItem(_Payload):
    product_id: str
    product_name: str
    sku: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float
    custom_price: bool = False
    variant_id: Optional[str] = None
    variations: Tuple[ItemVariation, ...] = ()
    addons: Tuple[ItemAddon, ...] = ()
    notes: Optional[str] = None
    custom_images: Tuple[ItemImage, ...] = ()
    requires_kitchen: bool = False
    requires_design: bool = False


class PaymentRecord(_Payload):
    id: str
    amount: float
    method: str
    status: str
    reference: Optional[str] = None
    cash_amount: Optional[float] = None
    change_amount: Optional[float] = None
    is_split_payment: bool = False
    cash_portion: Optional[float] = None
    card_portion: Optional[float] = None
    card_reference: Optional[str] = None
    is_partial_payment: bool = False
    remaining_amount: Optional[float] = None
    future_payment_method: Optional[str] = None


class DeliveryBlock(_Payload):
    date: str
    time_slot: str
    street_address: str
    apartment: Optional[str] = None
    emirate: str
    city: Optional[str] = None
    instructions: Optional[str] = None
    charge: float = 0.0


class PickupBlock(_Payload):
    date: str
    time_slot: str


class GiftBlock(_Payload):
    recipient_name: str
    recipient_phone: Optional[str] = None
    message: Optional[str] = None
    note: Optional[str] = None
    include_cash: bool = False
    cash_amount: float = 0.0


class OrderSubmission(_Payload):
    items: Tuple[OrderItem, ...]
    payments: Tuple[PaymentRecord, ...]
    payment_method: Optional[str] = None
    subtotal: float
    coupon_code: Optional[str] = None
    coupon_discount: float = 0.0
    delivery_charge: float = 0.0
    total_amount: float
    paid_amount: float
    allow_partial_payment: bool = False

    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None

    delivery_method: str
    delivery: Optional[DeliveryBlock] = None
    pickup: Optional[PickupBlock] = None
    is_gift: bool = False
    gift: Optional[GiftBlock] = None

    requires_kitchen: bool = False
    requires_design: bool = False
    requires_final_check: bool = True
    requires_sequential_processing: bool = False
    metadata: Dict[str, Any]
    notes: Optional[str] = None

    def wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def _blank(val: Optional[str]) -> bool:
    return not (val or "").strip()


def order_item(line: CartLine, category_teams=None) -> OrderItem:
    product = line.product
    price = compute_line_total(line)
    show_adjustments = price.variant_id is None and not price.custom_priced

    variations: List[ItemVariation] = []
    for sel in line.option_selections:
        option = product.option(sel.option_id)
        value = option.value(sel.value_id) if option else None
        if option is None or value is None:
            continue
        variations.append(ItemVariation(
            id=value.id,
            type=option.name,
            value=value.value,
            price_adjustment=to_amount(value.price_adjustment_cents) if show_adjustments else 0.0,
        ))

    addons: List[ItemAddon] = []
    for sel in line.addon_selections:
        group = product.addon(sel.addon_group_id)
        option = group.option(sel.option_id) if group else None
        if group is None or option is None:
            continue
        subs = [option.sub_option(s) for s in sel.sub_option_ids]
        subs = [s for s in subs if s is not None]
        addons.append(ItemAddon(
            id=option.id,
            group=group.name,
            option=option.name,
            slot=int(sel.selection_slot),
            price=to_amount(option.price_cents),
            custom_text=(sel.custom_text or "").strip() or None,
            sub_options=tuple(s.name for s in subs),
            sub_options_price=to_amount(sum(s.price_cents for s in subs)),
        ))

    kitchen, design = product_teams(product, category_teams)
    return OrderItem(
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        category=product.category,
        quantity=int(line.quantity),
        unit_price=to_amount(price.unit_price_cents),
        total_price=to_amount(price.line_total_cents),
        custom_price=price.custom_priced,
        variant_id=price.variant_id,
        variations=tuple(variations),
        addons=tuple(addons),
        notes=(line.notes or "").strip() or None,
        custom_images=tuple(ItemImage(url=a.url or "", comment=a.comment) for a in line.attachments),
        requires_kitchen=kitchen,
        requires_design=design,
    )


def cart_line_from_item(item: Dict[str, Any], product: ProductSpec) -> CartLine:
    """Rebuilds a cart line from a wire item (a parked order) against the current catalog.

    Selections the catalog no longer has are dropped; images without a URL
    never made it to the attachment store and are dropped too.
    """
    option_of_value = {v.id: o.id for o in product.options for v in o.values}
    options = []
    for v in item.get("variations") or ():
        value_id = str(v.get("id"))
        if value_id in option_of_value:
            options.append(OptionSelection(option_of_value[value_id], value_id))

    addons = []
    for a in item.get("addons") or ():
        option_id = str(a.get("id"))
        group = next((g for g in product.addons if g.option(option_id) is not None), None)
        if group is None:
            continue
        option = group.option(option_id)
        wanted = set(a.get("subOptions") or ())
        addons.append(AddonSelection(
            addon_group_id=group.id,
            option_id=option_id,
            selection_slot=int(a.get("slot") or 0),
            custom_text=a.get("customText"),
            sub_option_ids=tuple(s.id for s in option.sub_options if s.name in wanted),
        ))

    custom = None
    if item.get("customPrice") and product.allow_custom_price:
        # unitPrice carries the add-ons on top of the custom base
        custom = max(0, (to_cents(item.get("unitPrice")) or 0) - addons_price_cents(product, addons))

    images = []
    for img in item.get("customImages") or ():
        url = (img.get("url") or "").strip()
        if url:
            images.append(Attachment(
                filename=url.rsplit("/", 1)[-1] or "image",
                url=url,
                comment=img.get("comment") or None,
            ))

    return CartLine(
        product=product,
        quantity=max(1, int(item.get("quantity") or 1)),
        option_selections=tuple(options),
        addon_selections=tuple(addons),
        custom_unit_price_cents=custom,
        notes=item.get("notes") or None,
        attachments=tuple(images),
    )


def validate_checkout(
    lines: List[CartLine],
    customer: Optional[CustomerDetails],
    fulfillment: Optional[Fulfillment],
    gift: Optional[GiftDetails] = None,
) -> None:
    """Order form checks, first violation wins."""
    if not lines:
        raise ValidationError("items", "The cart is empty")
    for line in lines:
        validate_line(line)

    customer = customer or CustomerDetails()
    if _blank(customer.name):
        raise ValidationError("customer_name", "Customer name is required")
    if _blank(customer.phone):
        raise ValidationError("customer_phone", "Customer phone is required")

    if fulfillment is None or fulfillment.method is None:
        raise ValidationError("delivery_method", "Choose delivery or pickup")
    if fulfillment.method == FulfillmentMethod.DELIVERY:
        for field, val in (
            ("street_address", fulfillment.street_address),
            ("zone", fulfillment.zone),
            ("delivery_date", fulfillment.date),
            ("delivery_time_slot", fulfillment.time_slot),
        ):
            if _blank(val):
                raise ValidationError(field, f"Delivery requires {field.replace('_', ' ')}")
    else:
        if _blank(fulfillment.date):
            raise ValidationError("pickup_date", "Please select a pickup date")
        if _blank(fulfillment.time_slot):
            raise ValidationError("pickup_time_slot", "Please select a pickup time")

    if gift is not None and gift.is_gift:
        if _blank(gift.recipient_name):
            raise ValidationError("gift_recipient_name", "Gift recipient name is required")
        if gift.include_cash and int(gift.cash_amount_cents or 0) <= 0:
            raise ValidationError("gift_cash_amount", "Enter the gift cash amount")


def check_reconciled(
    ledger: PaymentLedger,
    final_total_cents: int,
    allow_partial_payment: bool = False,
) -> None:
    if final_total_cents == 0 and len(ledger) == 0:
        return
    if len(ledger) == 0:
        raise ValidationError("payments", "Add at least one payment")
    if ledger.overpaid(final_total_cents):
        raise ReconciliationError(
            f"Payments exceed the order total of {format_money(final_total_cents)}",
            expected_cents=final_total_cents,
            actual_cents=ledger.total_paid(),
        )
    if ledger.is_complete(final_total_cents):
        return
    if allow_partial_payment and ledger.has_partial():
        return
    raise ReconciliationError(
        f"Remaining balance of {format_money(ledger.remaining(final_total_cents))} is not paid",
        expected_cents=final_total_cents,
        actual_cents=ledger.total_paid(),
    )


def assemble(
    lines: Iterable[CartLine],
    totals: CartTotals,
    ledger: PaymentLedger,
    routing: RoutingPlan,
    customer: Optional[CustomerDetails],
    fulfillment: Optional[Fulfillment],
    *,
    gift: Optional[GiftDetails] = None,
    notes: Optional[str] = None,
    coupon: Optional[CouponApplication] = None,
    allow_partial_payment: bool = False,
    split_active: bool = False,
    category_teams=None,
) -> OrderSubmission:
    lines = list(lines)
    validate_checkout(lines, customer, fulfillment, gift)
    final_total = totals.final_total_cents
    check_reconciled(ledger, final_total, allow_partial_payment)

    remaining = ledger.remaining(final_total)
    payments = tuple(
        PaymentRecord.model_validate(payment_record(p, remaining))
        for p in ledger.entries
    )
    method: Optional[PaymentMethod] = resolve_payment_method(ledger.entries, split_active)

    delivery = pickup = None
    if fulfillment.method == FulfillmentMethod.DELIVERY:
        delivery = DeliveryBlock(
            date=fulfillment.date.strip(),
            time_slot=fulfillment.time_slot.strip(),
            street_address=fulfillment.street_address.strip(),
            apartment=(fulfillment.apartment or "").strip() or None,
            emirate=fulfillment.zone.strip().upper(),
            city=(fulfillment.city or "").strip() or None,
            instructions=(fulfillment.instructions or "").strip() or None,
            charge=to_amount(totals.delivery_surcharge_cents),
        )
    else:
        pickup = PickupBlock(date=fulfillment.date.strip(), time_slot=fulfillment.time_slot.strip())

    gift_block = None
    if gift is not None and gift.is_gift:
        gift_block = GiftBlock(
            recipient_name=gift.recipient_name.strip(),
            recipient_phone=(gift.recipient_phone or "").strip() or None,
            message=(gift.message or "").strip() or None,
            note=(gift.note or "").strip() or None,
            include_cash=bool(gift.include_cash),
            cash_amount=to_amount(gift.cash_amount_cents if gift.include_cash else 0),
        )

    return OrderSubmission(
        items=tuple(order_item(line, category_teams) for line in lines),
        payments=payments,
        payment_method=method.value if method else None,
        subtotal=to_amount(totals.subtotal_cents),
        coupon_code=coupon.code if coupon and totals.discount_cents > 0 else None,
        coupon_discount=to_amount(totals.discount_cents),
        delivery_charge=to_amount(totals.delivery_surcharge_cents),
        total_amount=to_amount(final_total),
        paid_amount=to_amount(ledger.total_paid()),
        allow_partial_payment=bool(allow_partial_payment and ledger.has_partial()),
        customer_name=customer.name.strip(),
        customer_phone=customer.phone.strip(),
        customer_email=(customer.email or "").strip() or None,
        delivery_method=fulfillment.method.value,
        delivery=delivery,
        pickup=pickup,
        is_gift=gift_block is not None,
        gift=gift_block,
        requires_kitchen=routing.requires_kitchen,
        requires_design=routing.requires_design,
        requires_final_check=routing.requires_final_check,
        requires_sequential_processing=routing.requires_sequential_processing,
        metadata=routing.as_metadata(),
        notes=(notes or "").strip() or None,
    )

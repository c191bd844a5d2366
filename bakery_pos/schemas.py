# bakery_pos/schemas.py
"""Request bodies of the POS endpoints. Amounts arrive in currency units."""
from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .checkout.payments import PaymentMethod
from .checkout.totals import CouponKind
from .checkout.types import FulfillmentMethod


class OptionSelectionIn(BaseModel):
    option_id: str
    value_id: str


class AddonSelectionIn(BaseModel):
    addon_group_id: str
    option_id: str
    selection_slot: int = 0
    custom_text: Optional[str] = None
    sub_option_ids: List[str] = Field(default_factory=list)


class AttachmentIn(BaseModel):
    filename: str
    url: Optional[str] = None
    comment: Optional[str] = None
    content_base64: Optional[str] = None
    content_type: str = "image/jpeg"


class LineIn(BaseModel):
    product_id: str
    quantity: int = 1
    options: List[OptionSelectionIn] = Field(default_factory=list)
    addons: List[AddonSelectionIn] = Field(default_factory=list)
    custom_price: Optional[float] = None
    notes: Optional[str] = None
    attachments: List[AttachmentIn] = Field(default_factory=list)


class QuantityIn(BaseModel):
    quantity: int


class FulfillmentIn(BaseModel):
    method: FulfillmentMethod = FulfillmentMethod.PICKUP
    date: Optional[str] = None
    time_slot: Optional[str] = None
    street_address: Optional[str] = None
    apartment: Optional[str] = None
    zone: Optional[str] = None
    city: Optional[str] = None
    instructions: Optional[str] = None
    delivery_charge: Optional[float] = None  # manual override


class CustomerIn(BaseModel):
    name: str = ""
    phone: str = ""
    email: Optional[str] = None


class GiftIn(BaseModel):
    is_gift: bool = False
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    message: Optional[str] = None
    note: Optional[str] = None
    include_cash: bool = False
    cash_amount: float = 0


class CouponIn(BaseModel):
    """An already validated coupon, for stateless quotes."""
    code: str
    type: CouponKind
    value: Decimal
    min_order_amount: Optional[float] = None
    max_discount: Optional[float] = None


class QuoteIn(BaseModel):
    lines: List[LineIn]
    coupon: Optional[CouponIn] = None
    fulfillment: Optional[FulfillmentIn] = None


class CouponCodeIn(BaseModel):
    code: str


class PaymentPartIn(BaseModel):
    method: PaymentMethod
    amount: float
    reference: Optional[str] = None


class PaymentIn(BaseModel):
    method: PaymentMethod
    amount: Optional[float] = None  # None -> the remaining balance
    reference: Optional[str] = None
    cash_tendered: Optional[float] = None
    partial: bool = False
    future_method: PaymentMethod = PaymentMethod.CASH
    # SPLIT
    cash_portion: Optional[float] = None
    card_portion: Optional[float] = None
    card_reference: Optional[str] = None
    # remaining balance across two instruments
    parts: Optional[List[PaymentPartIn]] = None


class DeferIn(BaseModel):
    future_method: PaymentMethod = PaymentMethod.CASH


class CheckoutIn(BaseModel):
    customer: CustomerIn = Field(default_factory=CustomerIn)
    fulfillment: Optional[FulfillmentIn] = None
    gift: Optional[GiftIn] = None
    notes: Optional[str] = None


class ParkIn(BaseModel):
    name: Optional[str] = None
    customer: Optional[CustomerIn] = None

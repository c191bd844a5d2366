# bakery_pos/checkout/types.py
"""Immutable value types shared by the checkout engine.

Products reach the engine as ``ProductSpec`` snapshots (see ``catalog.py``),
so pricing never depends on client-supplied prices.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple


class FulfillmentMethod(str, Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


# ---- catalog snapshot ------------------------------------------------------

@dataclass(frozen=True)
class OptionValueSpec:
    id: str
    option_id: str
    value: str
    price_adjustment_cents: int = 0


@dataclass(frozen=True)
class OptionSpec:
    id: str
    name: str
    position: int = 0
    values: Tuple[OptionValueSpec, ...] = ()

    def value(self, value_id: str) -> Optional[OptionValueSpec]:
        for v in self.values:
            if v.id == value_id:
                return v
        return None


@dataclass(frozen=True)
class VariantSpec:
    id: str
    price_cents: int
    # (option_id, value_id) pairs, one per declared option
    values: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class SubOptionSpec:
    id: str
    name: str
    price_cents: int = 0


@dataclass(frozen=True)
class AddonOptionSpec:
    id: str
    name: str
    price_cents: int = 0
    allows_custom_text: bool = False
    max_text_length: Optional[int] = None
    sub_options: Tuple[SubOptionSpec, ...] = ()

    def sub_option(self, sub_id: str) -> Optional[SubOptionSpec]:
        for s in self.sub_options:
            if s.id == sub_id:
                return s
        return None


@dataclass(frozen=True)
class AddonGroupSpec:
    id: str
    name: str
    required: bool = False
    min_selections: int = 0
    max_selections: int = 1
    options: Tuple[AddonOptionSpec, ...] = ()

    def option(self, option_id: str) -> Optional[AddonOptionSpec]:
        for o in self.options:
            if o.id == option_id:
                return o
        return None


@dataclass(frozen=True)
class ProductSpec:
    id: str
    name: str
    base_price_cents: int
    category: Optional[str] = None
    sku: Optional[str] = None
    allow_custom_price: bool = False
    allow_custom_images: bool = False
    # None -> fall back to the category default
    requires_kitchen: Optional[bool] = None
    requires_design: Optional[bool] = None
    options: Tuple[OptionSpec, ...] = ()
    variants: Tuple[VariantSpec, ...] = ()
    addons: Tuple[AddonGroupSpec, ...] = ()

    def option(self, option_id: str) -> Optional[OptionSpec]:
        for o in self.options:
            if o.id == option_id:
                return o
        return None

    def addon(self, group_id: str) -> Optional[AddonGroupSpec]:
        for a in self.addons:
            if a.id == group_id:
                return a
        return None


# ---- cart ------------------------------------------------------------------

@dataclass(frozen=True)
class OptionSelection:
    option_id: str
    value_id: str


@dataclass(frozen=True)
class AddonSelection:
    addon_group_id: str
    option_id: str
    selection_slot: int = 0
    custom_text: Optional[str] = None
    sub_option_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Attachment:
    """A per-line image. ``content`` is set until the attachment store returns a URL."""
    filename: str
    url: Optional[str] = None
    comment: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False, compare=False)
    content_type: str = "image/jpeg"

    @property
    def uploaded(self) -> bool:
        return self.url is not None


@dataclass(frozen=True)
class CartLine:
    product: ProductSpec
    quantity: int = 1
    option_selections: Tuple[OptionSelection, ...] = ()
    addon_selections: Tuple[AddonSelection, ...] = ()
    custom_unit_price_cents: Optional[int] = None
    notes: Optional[str] = None
    attachments: Tuple[Attachment, ...] = ()

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def with_attachments(self, attachments: Tuple[Attachment, ...]) -> "CartLine":
        return replace(self, attachments=tuple(attachments))


# ---- checkout details ------------------------------------------------------

@dataclass(frozen=True)
class CustomerDetails:
    name: str = ""
    phone: str = ""
    email: Optional[str] = None


@dataclass(frozen=True)
class Fulfillment:
    method: Optional[FulfillmentMethod] = FulfillmentMethod.PICKUP
    date: Optional[str] = None
    time_slot: Optional[str] = None
    street_address: Optional[str] = None
    apartment: Optional[str] = None
    zone: Optional[str] = None
    city: Optional[str] = None
    instructions: Optional[str] = None
    # manual override of the zone default
    charge_override_cents: Optional[int] = None


@dataclass(frozen=True)
class GiftDetails:
    is_gift: bool = False
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    message: Optional[str] = None
    note: Optional[str] = None
    include_cash: bool = False
    cash_amount_cents: int = 0

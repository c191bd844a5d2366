# bakery_pos/checkout/pricing.py
"""Price Composer: unit price and line total for one cart line."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .errors import ValidationError
from .types import (
    AddonGroupSpec,
    AddonOptionSpec,
    AddonSelection,
    CartLine,
    OptionSelection,
    OptionValueSpec,
    ProductSpec,
    VariantSpec,
)


@dataclass(frozen=True)
class LinePrice:
    unit_price_cents: int
    line_total_cents: int
    base_price_cents: int
    addons_cents: int
    variant_id: Optional[str] = None
    custom_priced: bool = False


def _selected_value(product: ProductSpec, sel: OptionSelection) -> OptionValueSpec:
    option = product.option(sel.option_id)
    if option is None:
        raise ValidationError(f"options.{sel.option_id}", f"Unknown option '{sel.option_id}' for {product.name}")
    value = option.value(sel.value_id)
    if value is None:
        raise ValidationError(f"options.{option.name}", f"Unknown value '{sel.value_id}' for {option.name}")
    return value


def _selected_addon(product: ProductSpec, sel: AddonSelection) -> Tuple[AddonGroupSpec, AddonOptionSpec]:
    group = product.addon(sel.addon_group_id)
    if group is None:
        raise ValidationError(f"addons.{sel.addon_group_id}", f"Unknown add-on group '{sel.addon_group_id}'")
    option = group.option(sel.option_id)
    if option is None:
        raise ValidationError(f"addons.{group.name}", f"Unknown add-on option '{sel.option_id}' in {group.name}")
    return group, option


def match_variant(product: ProductSpec, selections: Iterable[OptionSelection]) -> Optional[VariantSpec]:
    """Returns the variant whose values equal the selection, if every option is selected.

    Both sides are sorted by option id, so the order in which the user picked
    the values never changes the match.
    """
    selections = list(selections)
    if not product.options or not product.variants:
        return None
    declared = {o.id for o in product.options}
    chosen = {s.option_id for s in selections}
    if len(selections) != len(declared) or chosen != declared:
        return None

    wanted = tuple(sorted(((s.option_id, s.value_id) for s in selections), key=lambda p: p[0]))
    for variant in product.variants:
        candidate = tuple(sorted(variant.values, key=lambda p: p[0]))
        if candidate == wanted:
            return variant
    return None


def addons_price_cents(product: ProductSpec, selections: Iterable[AddonSelection]) -> int:
    total = 0
    for sel in selections:
        _, option = _selected_addon(product, sel)
        total += int(option.price_cents or 0)
        for sub_id in sel.sub_option_ids:
            sub = option.sub_option(sub_id)
            if sub is None:
                raise ValidationError(f"addons.{option.name}", f"Unknown sub-option '{sub_id}' for {option.name}")
            total += int(sub.price_cents or 0)
    return total


def compute_line_total(line: CartLine) -> LinePrice:
    product = line.product
    variant: Optional[VariantSpec] = None
    custom = line.custom_unit_price_cents is not None and product.allow_custom_price

    if custom:
        # custom price replaces base + variation, add-ons still stack on top
        base = int(line.custom_unit_price_cents)
    else:
        variant = match_variant(product, line.option_selections)
        if variant is not None:
            base = int(variant.price_cents)
        else:
            base = int(product.base_price_cents) + sum(
                int(_selected_value(product, s).price_adjustment_cents or 0)
                for s in line.option_selections
            )

    addons = addons_price_cents(product, line.addon_selections)
    unit = max(0, base + addons)
    return LinePrice(
        unit_price_cents=unit,
        line_total_cents=unit * int(line.quantity),
        base_price_cents=base,
        addons_cents=addons,
        variant_id=variant.id if variant else None,
        custom_priced=custom,
    )


def validate_line(line: CartLine) -> None:
    """Raises ValidationError for the first reason the line can't be added to the cart."""
    product = line.product

    if int(line.quantity) < 1:
        raise ValidationError("quantity", "Quantity must be at least 1")

    if line.custom_unit_price_cents is not None:
        if not product.allow_custom_price:
            raise ValidationError("custom_unit_price", f"{product.name} does not allow a custom price")
        if int(line.custom_unit_price_cents) < 0:
            raise ValidationError("custom_unit_price", "Custom price can't be negative")

    # option axes: exactly one value each
    seen: Set[str] = set()
    for sel in line.option_selections:
        _selected_value(product, sel)
        if sel.option_id in seen:
            option = product.option(sel.option_id)
            raise ValidationError(f"options.{option.name}", f"{option.name} selected more than once")
        seen.add(sel.option_id)
    for option in sorted(product.options, key=lambda o: o.position):
        if option.id not in seen:
            raise ValidationError(f"options.{option.name}", f"Please select {option.name}")

    # add-on groups
    by_group: Dict[str, List[AddonSelection]] = {}
    for sel in line.addon_selections:
        group, option = _selected_addon(product, sel)
        by_group.setdefault(group.id, []).append(sel)

        max_sel = max(1, int(group.max_selections or 1))
        if not 0 <= int(sel.selection_slot) < max_sel:
            raise ValidationError(f"addons.{group.name}", f"Invalid selection slot {sel.selection_slot} for {group.name}")

        text = (sel.custom_text or "").strip()
        if text:
            if not option.allows_custom_text:
                raise ValidationError(f"addons.{option.name}", f"{option.name} does not take custom text")
            if option.max_text_length and len(text) > option.max_text_length:
                raise ValidationError(
                    f"addons.{option.name}",
                    f"Custom text for {option.name} is limited to {option.max_text_length} characters",
                )

        if len(set(sel.sub_option_ids)) != len(sel.sub_option_ids):
            raise ValidationError(f"addons.{option.name}", f"Duplicate sub-option for {option.name}")
        for sub_id in sel.sub_option_ids:
            if option.sub_option(sub_id) is None:
                raise ValidationError(f"addons.{option.name}", f"Unknown sub-option '{sub_id}' for {option.name}")

    for group in product.addons:
        picked = by_group.get(group.id, [])
        max_sel = max(1, int(group.max_selections or 1))
        if len(picked) > max_sel:
            raise ValidationError(f"addons.{group.name}", f"At most {max_sel} selection(s) allowed for {group.name}")
        slots = [int(s.selection_slot) for s in picked]
        if len(set(slots)) != len(slots):
            raise ValidationError(f"addons.{group.name}", f"Selection slot used twice in {group.name}")
        min_sel = int(group.min_selections or 0)
        if group.required:
            min_sel = max(1, min_sel)
        if (group.required and not picked) or (picked and len(picked) < min_sel):
            raise ValidationError(f"addons.{group.name}", f"Please select at least {min_sel} for {group.name}")

    if line.attachments and not product.allow_custom_images:
        raise ValidationError("attachments", f"{product.name} does not accept custom images")

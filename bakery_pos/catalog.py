# bakery_pos/catalog.py
"""Catalog rows -> immutable ``ProductSpec`` snapshots for the checkout engine."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from .checkout.types import (
    AddonGroupSpec,
    AddonOptionSpec,
    OptionSpec,
    OptionValueSpec,
    ProductSpec,
    SubOptionSpec,
    VariantSpec,
)
from .models import Category, Product
from .models_customizations import (
    AddonOption,
    AddonSubOption,
    ProductAddon,
    ProductOption,
    ProductOptionValue,
    ProductVariant,
)


def load_product_spec(session: Session, product_id: Any) -> Optional[ProductSpec]:
    try:
        pid = int(str(product_id).strip())
    except ValueError:
        return None
    prod = session.get(Product, pid)
    if not prod:
        return None

    category = session.get(Category, prod.category_id) if prod.category_id else None

    options = session.exec(
        select(ProductOption).where(ProductOption.product_id == pid).order_by(ProductOption.position, ProductOption.id)
    ).all()
    values_by_opt: Dict[int, List[ProductOptionValue]] = {}
    if options:
        rows = session.exec(
            select(ProductOptionValue)
            .where(ProductOptionValue.option_id.in_([o.id for o in options]))
            .order_by(ProductOptionValue.position, ProductOptionValue.id)
        ).all()
        for v in rows:
            values_by_opt.setdefault(v.option_id, []).append(v)

    option_of_value = {v.id: v.option_id for vals in values_by_opt.values() for v in vals}
    variants = session.exec(select(ProductVariant).where(ProductVariant.product_id == pid)).all()

    addons = session.exec(
        select(ProductAddon).where(ProductAddon.product_id == pid).order_by(ProductAddon.position, ProductAddon.id)
    ).all()
    opts_by_addon: Dict[int, List[AddonOption]] = {}
    subs_by_opt: Dict[int, List[AddonSubOption]] = {}
    if addons:
        addon_opts = session.exec(
            select(AddonOption)
            .where(AddonOption.addon_id.in_([a.id for a in addons]))
            .order_by(AddonOption.position, AddonOption.id)
        ).all()
        for o in addon_opts:
            opts_by_addon.setdefault(o.addon_id, []).append(o)
        if addon_opts:
            subs = session.exec(
                select(AddonSubOption)
                .where(AddonSubOption.addon_option_id.in_([o.id for o in addon_opts]))
                .order_by(AddonSubOption.position, AddonSubOption.id)
            ).all()
            for s in subs:
                subs_by_opt.setdefault(s.addon_option_id, []).append(s)

    return ProductSpec(
        id=str(prod.id),
        name=prod.name,
        base_price_cents=int(prod.price_cents or 0),
        category=category.slug if category else None,
        sku=prod.sku,
        allow_custom_price=bool(prod.allow_custom_price),
        allow_custom_images=bool(prod.allow_custom_images),
        requires_kitchen=prod.requires_kitchen,
        requires_design=prod.requires_design,
        options=tuple(
            OptionSpec(
                id=str(o.id),
                name=o.name,
                position=int(o.position or 0),
                values=tuple(
                    OptionValueSpec(
                        id=str(v.id),
                        option_id=str(o.id),
                        value=v.value,
                        price_adjustment_cents=int(v.price_adjustment_cents or 0),
                    )
                    for v in values_by_opt.get(o.id, [])
                ),
            )
            for o in options
        ),
        variants=tuple(
            VariantSpec(
                id=str(var.id),
                price_cents=int(var.price_cents or 0),
                values=tuple(
                    (str(option_of_value[vid]), str(vid))
                    for vid in (var.value_ids or [])
                    if vid in option_of_value
                ),
            )
            for var in variants
        ),
        addons=tuple(
            AddonGroupSpec(
                id=str(a.id),
                name=a.name,
                required=bool(a.required),
                min_selections=int(a.min_selections or 0),
                max_selections=max(1, int(a.max_selections or 1)),
                options=tuple(
                    AddonOptionSpec(
                        id=str(o.id),
                        name=o.name,
                        price_cents=int(o.price_cents or 0),
                        allows_custom_text=bool(o.allows_custom_text),
                        max_text_length=o.max_text_length,
                        sub_options=tuple(
                            SubOptionSpec(id=str(s.id), name=s.name, price_cents=int(s.price_cents or 0))
                            for s in subs_by_opt.get(o.id, [])
                        ),
                    )
                    for o in opts_by_addon.get(a.id, [])
                ),
            )
            for a in addons
        ),
    )


def product_payload(spec: ProductSpec) -> Dict[str, Any]:
    """JSON shape the till uses to build its option / add-on pickers."""
    return {
        "id": spec.id,
        "name": spec.name,
        "sku": spec.sku,
        "category": spec.category,
        "price_cents": spec.base_price_cents,
        "allow_custom_price": spec.allow_custom_price,
        "allow_custom_images": spec.allow_custom_images,
        "options": [
            {
                "id": o.id,
                "name": o.name,
                "values": [
                    {"id": v.id, "value": v.value, "price_adjustment_cents": v.price_adjustment_cents}
                    for v in o.values
                ],
            }
            for o in spec.options
        ],
        "variants": [
            {"id": v.id, "price_cents": v.price_cents, "values": [list(pair) for pair in v.values]}
            for v in spec.variants
        ],
        "addons": [
            {
                "id": a.id,
                "name": a.name,
                "required": a.required,
                "min_selections": a.min_selections,
                "max_selections": a.max_selections,
                "options": [
                    {
                        "id": o.id,
                        "name": o.name,
                        "price_cents": o.price_cents,
                        "allows_custom_text": o.allows_custom_text,
                        "max_text_length": o.max_text_length,
                        "sub_options": [
                            {"id": s.id, "name": s.name, "price_cents": s.price_cents}
                            for s in o.sub_options
                        ],
                    }
                    for o in a.options
                ],
            }
            for a in spec.addons
        ],
    }
